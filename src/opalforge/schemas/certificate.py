from typing import Any, Optional

from pydantic import BaseModel, Field


class MintRequest(BaseModel):
    """Body schema for POST /certificates.

    Either ``confidence`` or the ``prediction_id`` returned by /predict must
    be given; an explicit ``confidence`` wins.
    """
    confidence: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    prediction_id: Optional[str] = None
    cert_id: Optional[str] = None


class VerificationResponse(BaseModel):
    """Response schema for GET /certificates/{cert_id}."""
    cert_id: str
    verified: bool
    confidence: Optional[float] = None
    timestamp: Optional[str] = None
    qr_url: Optional[str] = None
    metadata: dict[str, Any] = {}
    message: str
