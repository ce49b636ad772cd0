"""Service layer – label manifest shipped next to the model.

The manifest is a small JSON file (``metadata.json``) listing the class
labels in model output order and the square input size the model expects::

    {"labels": ["Authentic", "Replica"], "imageSize": 224}

The authentic class index is always taken from the manifest, never assumed.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class LabelManifestError(ValueError):
    """The label manifest is missing, malformed, or ambiguous."""


class LabelManifest(BaseModel):
    """Class labels (in output order) and expected input size."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    labels: list[str]
    image_size: int = Field(default=224, alias="imageSize", gt=0)
    authentic_index: int = Field(default=0, exclude=True)

    @property
    def num_labels(self) -> int:
        return len(self.labels)

    def resolve_label_order(
        self,
        authentic_label: str = "authentic",
        replica_label: str = "replica",
    ) -> "LabelManifest":
        """Return a copy with ``authentic_index`` set from the labels.

        Raises ``LabelManifestError`` unless the labels declare exactly one
        authentic class and, for two-class models, exactly one replica class.
        """
        normalized = [label.strip().lower() for label in self.labels]
        authentic = authentic_label.strip().lower()
        replica = replica_label.strip().lower()

        if len(normalized) not in (1, 2):
            raise LabelManifestError(
                f"Expected 1 or 2 labels, got {len(normalized)}: {self.labels}",
            )
        if normalized.count(authentic) != 1:
            raise LabelManifestError(
                f"Manifest must declare the '{authentic_label}' label exactly once: "
                f"{self.labels}",
            )
        if len(normalized) == 2 and normalized.count(replica) != 1:
            raise LabelManifestError(
                f"Two-class manifest must declare the '{replica_label}' label: "
                f"{self.labels}",
            )

        return self.model_copy(update={"authentic_index": normalized.index(authentic)})


def parse_label_manifest(
    raw: str | bytes,
    authentic_label: str = "authentic",
    replica_label: str = "replica",
) -> LabelManifest:
    """Parse and validate manifest JSON text."""
    try:
        manifest = LabelManifest.model_validate_json(raw)
    except ValidationError as exc:
        raise LabelManifestError(f"Malformed label manifest: {exc}") from exc
    return manifest.resolve_label_order(authentic_label, replica_label)


def load_label_manifest(
    path: Path,
    authentic_label: str = "authentic",
    replica_label: str = "replica",
) -> LabelManifest:
    """Load the manifest from *path*; a missing file is a configuration error."""
    path = Path(path)
    if not path.exists():
        raise LabelManifestError(f"Label manifest not found: {path}")

    manifest = parse_label_manifest(path.read_bytes(), authentic_label, replica_label)
    logger.info(
        "Label manifest loaded from %s: labels=%s authentic_index=%d image_size=%d",
        path, manifest.labels, manifest.authentic_index, manifest.image_size,
    )
    return manifest
