"""OpalForge authenticity checker – FastAPI application entry-point."""

from contextlib import asynccontextmanager
import logging
from collections.abc import AsyncIterator
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from starlette.middleware.cors import CORSMiddleware

from src.opalforge.config import settings
from src.opalforge.context import AppContext
from src.opalforge.router import certificates, diagnostics, health, predict
from src.opalforge.services.certificate_client import CertificateClient

# Configure logging from settings
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Lifespan: load the classifier on startup, release on shutdown
# ──────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    context: AppContext = app.state.context
    logger.info("🚀 Loading AI model …")
    context.load(settings)
    if context.model_loaded:
        logger.info("✅ AI model loaded. Upload an image for authentication.")
    else:
        logger.error("Model unavailable; predictions will fail until restart.")
    yield
    logger.info("🛑 Shutting down – releasing model …")
    context.clear()


# ──────────────────────────────────────────────
# Application factory
# ──────────────────────────────────────────────
app = FastAPI(
    title="OpalForge Authenticity API",
    description="Check item photos for authenticity and mint or verify certificates.",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.context = AppContext()

# ── CORS middleware (configured from environment variables) ──
app.add_middleware(
    middleware_class=CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_methods_list,
    allow_headers=settings.cors_headers_list,
)

logger.info("CORS configured with origins: %s", settings.cors_origins_list)


# ── landing page / QR deep link (?verify=<id>) ──
@app.get("/")
async def index(
    request: Request,
    verify: Optional[str] = Query(default=None),
    client: CertificateClient = Depends(certificates.get_certificate_client),
):
    if verify is None:
        return {"message": "Welcome to the OpalForge Authenticity API! Visit /docs for API documentation."}
    return await certificates.verify_certificate(verify, request, client)


# ── register routers ──
app.include_router(health.router)
app.include_router(predict.router)
app.include_router(certificates.router)
app.include_router(diagnostics.router)


def run() -> None:
    """Console entrypoint: ``opalforge-api``."""
    import uvicorn

    uvicorn.run("src.opalforge.main:app", host="0.0.0.0", port=8000, reload=False)
