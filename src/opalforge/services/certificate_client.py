"""Service layer – client for the remote certificate service.

The service (PDF rendering, QR generation, persistence) is an external
collaborator.  This module only builds identifiers and verification links
and relays them over HTTP:

* ``POST /certificate``                         – persist a record
* ``GET  /certificate/{id}/pdf?qrData=&confidence=`` – generated PDF
* ``GET  /certificate/{id}``                    – metadata (or PDF)
* ``HEAD /certificate/{id}``                    – existence check
* ``GET  /qr/{id}``                             – QR image

Every non-success status aborts the current operation; nothing is retried.
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx

from src.opalforge.config import settings
from src.opalforge.services.decision import DecisionPolicy, policy_from_settings

logger = logging.getLogger(__name__)

BASE36_ALPHABET = string.digits + string.ascii_uppercase


# ──────────────────────────────────────────────
# Errors
# ──────────────────────────────────────────────
class CertificateServiceError(RuntimeError):
    """The certificate service answered with a failure or was unreachable."""

    def __init__(self, status_code: int | None, message: str) -> None:
        self.status_code = status_code
        self.message = message
        prefix = f"HTTP {status_code}" if status_code is not None else "Network error"
        super().__init__(f"{prefix}: {message}")


class CertificateNotFoundError(LookupError):
    def __init__(self, cert_id: str) -> None:
        self.cert_id = cert_id
        super().__init__(f"Certificate {cert_id} not found.")


class InvalidCertificateIdError(ValueError):
    """The identifier failed the local prefix / length check."""


class MintNotAllowedError(ValueError):
    """The confidence is below the authentic band."""


# ──────────────────────────────────────────────
# Records
# ──────────────────────────────────────────────
@dataclass(frozen=True)
class CertificateRecord:
    cert_id: str
    confidence: float
    timestamp: str
    qr_payload: str

    def to_payload(self) -> dict[str, Any]:
        """JSON body expected by ``POST /certificate``."""
        return {
            "certId": self.cert_id,
            "confidence": self.confidence,
            "timestamp": self.timestamp,
            "qrPayload": self.qr_payload,
        }


@dataclass(frozen=True)
class MintedCertificate:
    record: CertificateRecord
    pdf: bytes

    @property
    def filename(self) -> str:
        return certificate_filename(self.record.cert_id)


@dataclass
class VerificationResult:
    cert_id: str
    confidence: float | None = None
    timestamp: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    qr_image: bytes | None = None
    qr_content_type: str | None = None


# ──────────────────────────────────────────────
# Identifier helpers
# ──────────────────────────────────────────────
def generate_certificate_id(prefix: str | None = None, length: int | None = None) -> str:
    """Prefix plus ``length`` random base-36 characters, upper-cased."""
    prefix = settings.certificate_id_prefix if prefix is None else prefix
    length = settings.certificate_id_length if length is None else length
    suffix = "".join(secrets.choice(BASE36_ALPHABET) for _ in range(length))
    return f"{prefix}{suffix}".upper()


def normalize_certificate_id(raw: str) -> str:
    return (raw or "").strip().upper()


def validate_certificate_id(
    raw: str,
    prefix: str | None = None,
    min_length: int | None = None,
) -> str:
    """Return the normalised id or raise ``InvalidCertificateIdError``."""
    prefix = (settings.certificate_id_prefix if prefix is None else prefix).upper()
    min_length = settings.certificate_id_min_length if min_length is None else min_length

    cert_id = normalize_certificate_id(raw)
    if not cert_id:
        raise InvalidCertificateIdError("Please enter a Certificate ID.")
    if not cert_id.startswith(prefix) or len(cert_id) < min_length:
        raise InvalidCertificateIdError(
            f"Invalid Certificate ID format. IDs start with '{prefix}' "
            f"and are at least {min_length} characters long.",
        )
    return cert_id


def build_verification_url(cert_id: str, base_url: str | None = None) -> str:
    """Deep link that re-runs verification when opened (QR payload)."""
    base_url = (settings.public_base_url if base_url is None else base_url).rstrip("/")
    return f"{base_url}/?verify={quote(cert_id)}"


def certificate_filename(cert_id: str) -> str:
    return f"opalforge_certificate_{cert_id}.pdf"


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(data, dict):
        return str(data.get("error") or data.get("message") or data)
    return str(data)


def _raise_for_status(response: httpx.Response, action: str) -> None:
    if response.is_success:
        return
    message = _error_message(response)
    logger.error("Certificate service failed to %s (%s): %s", action, response.status_code, message)
    raise CertificateServiceError(response.status_code, message)


def _json_body(response: httpx.Response) -> dict[str, Any]:
    if "json" not in response.headers.get("content-type", ""):
        return {}
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _as_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_text(value: Any) -> str | None:
    return None if value is None else str(value)


# ──────────────────────────────────────────────
# Client
# ──────────────────────────────────────────────
class CertificateClient:
    """
    Async client for the certificate service.

    Parameters
    ----------
    base_url  : service root, defaults to ``settings.certificate_service_url``.
    timeout   : per-request timeout in seconds.
    transport : optional ``httpx`` transport (tests inject ``MockTransport``).
    policy    : decision policy gating ``mint``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        policy: DecisionPolicy | None = None,
        public_base_url: str | None = None,
    ) -> None:
        self.base_url = (base_url or settings.certificate_service_url).rstrip("/")
        self.timeout = settings.request_timeout if timeout is None else timeout
        self.transport = transport
        self.policy = policy or policy_from_settings()
        self.public_base_url = public_base_url or settings.public_base_url

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> httpx.Response:
        logger.info("%s %s%s", method, self.base_url, path)
        try:
            return await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("Certificate service unreachable: %s", exc)
            raise CertificateServiceError(None, "Network error or certificate service is unavailable.") from exc

    def build_record(
        self,
        cert_id: str,
        confidence: float,
        timestamp: str | None = None,
    ) -> CertificateRecord:
        return CertificateRecord(
            cert_id=cert_id,
            confidence=round(float(confidence), 2),
            timestamp=timestamp or _utc_timestamp(),
            qr_payload=build_verification_url(cert_id, self.public_base_url),
        )

    # ── individual calls ──
    async def _persist(self, client: httpx.AsyncClient, record: CertificateRecord) -> str | None:
        response = await self._send(client, "POST", "/certificate", json=record.to_payload())
        _raise_for_status(response, "persist certificate")
        issued = _json_body(response).get("certId")
        return normalize_certificate_id(issued) if isinstance(issued, str) and issued.strip() else None

    async def _fetch_pdf(
        self,
        client: httpx.AsyncClient,
        cert_id: str,
        qr_data: str,
        confidence: float,
    ) -> bytes:
        response = await self._send(
            client,
            "GET",
            f"/certificate/{quote(cert_id)}/pdf",
            params={"qrData": qr_data, "confidence": round(float(confidence), 2)},
        )
        _raise_for_status(response, "generate certificate PDF")
        return response.content

    async def persist_certificate(self, record: CertificateRecord) -> str | None:
        """POST the record; returns the service-issued id when one is echoed back."""
        async with self._client() as client:
            return await self._persist(client, record)

    async def fetch_certificate_pdf(self, cert_id: str, qr_data: str, confidence: float) -> bytes:
        async with self._client() as client:
            return await self._fetch_pdf(client, cert_id, qr_data, confidence)

    async def download_certificate(self, cert_id: str) -> bytes:
        """Fetch the PDF of an existing certificate by id."""
        cert_id = validate_certificate_id(cert_id)
        async with self._client() as client:
            response = await self._send(client, "GET", f"/certificate/{quote(cert_id)}")
        if response.status_code == 404:
            raise CertificateNotFoundError(cert_id)
        _raise_for_status(response, "download certificate")
        return response.content

    async def certificate_exists(self, cert_id: str) -> bool:
        cert_id = validate_certificate_id(cert_id)
        async with self._client() as client:
            response = await self._send(client, "HEAD", f"/certificate/{quote(cert_id)}")
        if response.status_code == 404:
            return False
        _raise_for_status(response, "check certificate")
        return True

    async def fetch_qr(self, cert_id: str) -> tuple[bytes, str]:
        """Return the QR image bytes and their content type."""
        cert_id = validate_certificate_id(cert_id)
        async with self._client() as client:
            response = await self._send(client, "GET", f"/qr/{quote(cert_id)}")
        if response.status_code == 404:
            raise CertificateNotFoundError(cert_id)
        _raise_for_status(response, "fetch QR code")
        return response.content, response.headers.get("content-type", "image/png")

    async def _attach_qr(self, client: httpx.AsyncClient, result: VerificationResult) -> None:
        # A missing QR code never fails a verification.
        try:
            response = await self._send(client, "GET", f"/qr/{quote(result.cert_id)}")
        except CertificateServiceError as exc:
            logger.warning("QR code for %s unavailable (%s).", result.cert_id, exc.message)
            return
        if not response.is_success:
            logger.warning("QR code for %s unavailable (%s).", result.cert_id, response.status_code)
            return
        result.qr_image = response.content
        result.qr_content_type = response.headers.get("content-type", "image/png")

    # ── flows ──
    async def mint(
        self,
        confidence: float,
        cert_id: str | None = None,
        persist: bool | None = None,
    ) -> MintedCertificate:
        """
        Persist a certificate record (optional) and fetch its PDF.

        A failed persistence call aborts before the PDF is requested.  If the
        service echoes a ``certId`` of its own, that id replaces the local one.
        """
        if not self.policy.mint_enabled(confidence):
            raise MintNotAllowedError(
                f"Confidence {confidence:.2f}% is below the "
                f"{self.policy.authentic_threshold:.0f}% minting threshold.",
            )

        persist = settings.persist_certificates if persist is None else persist
        cert_id = normalize_certificate_id(cert_id) if cert_id else generate_certificate_id()
        record = self.build_record(cert_id, confidence)

        async with self._client() as client:
            if persist:
                issued = await self._persist(client, record)
                if issued and issued != record.cert_id:
                    logger.info("Service issued certificate id %s (local %s).", issued, record.cert_id)
                    record = self.build_record(issued, confidence, timestamp=record.timestamp)

            pdf = await self._fetch_pdf(client, record.cert_id, record.qr_payload, record.confidence)

        logger.info("✅ Certificate %s minted (%.2f%%).", record.cert_id, record.confidence)
        return MintedCertificate(record=record, pdf=pdf)

    async def verify(self, cert_id: str, fetch_qr: bool = True) -> VerificationResult:
        """
        Look up a certificate by id.

        Invalid ids are rejected locally without any request.  A 404 raises
        ``CertificateNotFoundError`` and skips the QR fetch.
        """
        cert_id = validate_certificate_id(cert_id)

        async with self._client() as client:
            response = await self._send(client, "GET", f"/certificate/{quote(cert_id)}")
            if response.status_code == 404:
                logger.info("Certificate %s not found.", cert_id)
                raise CertificateNotFoundError(cert_id)
            _raise_for_status(response, "verify certificate")

            metadata = _json_body(response)
            result = VerificationResult(
                cert_id=cert_id,
                confidence=_as_float(metadata.get("confidence")),
                timestamp=_as_text(metadata.get("timestamp")),
                metadata=metadata,
            )

            if fetch_qr:
                await self._attach_qr(client, result)

        logger.info("✅ Certificate %s verified.", cert_id)
        return result
