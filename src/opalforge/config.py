from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

# ──────────────────────────────────────────────
# Paths
# ──────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent.parent          # src/
MODELS_DIR = BASE_DIR / "models" / "opalforge"


# ──────────────────────────────────────────────
# Settings (from environment variables / .env)
# ──────────────────────────────────────────────
class Settings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    # Certificate service
    certificate_service_url: str = "https://opalforge-cert-gen.garcia-fenny.workers.dev"
    public_base_url: str = "http://localhost:8000"
    request_timeout: float = 30.0
    persist_certificates: bool = True

    # Certificate identifiers
    certificate_id_prefix: str = "OF-"
    certificate_id_length: int = 9
    certificate_id_min_length: int = 10

    # Model artefacts
    model_path: Path = MODELS_DIR / "model.keras"
    tflite_path: Path = MODELS_DIR / "model.tflite"
    manifest_path: Path = MODELS_DIR / "metadata.json"
    default_image_size: int = 224

    # Label manifest
    authentic_label: str = "authentic"
    replica_label: str = "replica"

    # Decision policy
    decision_policy: Literal["three_band", "two_band"] = "three_band"
    authentic_threshold: float = 85.0
    uncertain_threshold: float = 50.0

    # CORS settings
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000"
    cors_allow_credentials: bool = True
    cors_allow_methods: str = "GET,POST,HEAD,OPTIONS"
    cors_allow_headers: str = "*"

    # Upload settings
    max_upload_size: int = 10 * 1024 * 1024  # 10 MB
    allowed_extensions: str = ".jpg,.jpeg,.png,.webp"

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="OPALFORGE_",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=(),
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def cors_methods_list(self) -> list[str]:
        """Parse CORS methods from comma-separated string."""
        if self.cors_allow_methods == "*":
            return ["*"]
        return [method.strip() for method in self.cors_allow_methods.split(",")]

    @property
    def cors_headers_list(self) -> list[str]:
        """Parse CORS headers from comma-separated string."""
        if self.cors_allow_headers == "*":
            return ["*"]
        return [header.strip() for header in self.cors_allow_headers.split(",")]

    @property
    def allowed_extensions_set(self) -> set[str]:
        """Parse allowed extensions from comma-separated string."""
        return {ext.strip().lower() for ext in self.allowed_extensions.split(",")}


# Global settings instance
settings = Settings()
