"""Router – model diagnostics."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from src.opalforge.context import AppContext, get_context
from src.opalforge.services.diagnostic_service import run_diagnostics

router = APIRouter(tags=["Diagnostics"])


@router.get("/diagnostics")
def get_diagnostics(context: AppContext = Depends(get_context)) -> dict[str, Any]:
    """Model shapes, synthetic-input predictions and output analysis."""
    if not context.model_loaded:
        raise HTTPException(status_code=503, detail="Model not loaded yet!")
    return run_diagnostics(context.model, context.manifest)
