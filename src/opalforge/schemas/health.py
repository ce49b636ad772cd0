from typing import Optional

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Response schema for GET /health."""
    status: str
    model_loaded: bool
    load_error: Optional[str] = None
