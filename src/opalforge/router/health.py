"""Router – health check."""

from fastapi import APIRouter, Depends

from src.opalforge.context import AppContext, get_context
from src.opalforge.schemas.health import HealthResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
def health_check(context: AppContext = Depends(get_context)) -> HealthResponse:
    """Liveness / readiness check."""
    return HealthResponse(
        status="ok",
        model_loaded=context.model_loaded,
        load_error=context.load_error,
    )
