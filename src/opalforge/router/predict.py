"""Router – authenticity prediction."""

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from PIL import Image
from starlette.concurrency import run_in_threadpool

from src.opalforge.config import settings
from src.opalforge.context import AppContext, get_context
from src.opalforge.schemas.predict import PredictionRequest, PredictionResponse
from src.opalforge.services.confidence import InvalidModelOutputError
from src.opalforge.services.decision import BAND_MESSAGES
from src.opalforge.services.model_service import (
    ImageDecodeError,
    ModelNotLoadedError,
    decode_image,
    fetch_image,
    run_inference,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Prediction"])


async def _classify(image: Image.Image, context: AppContext) -> PredictionResponse:
    if not context.model_loaded:
        detail = "Model not loaded yet. Please wait..."
        if context.load_error:
            detail = f"Error loading model: {context.load_error}"
        raise HTTPException(status_code=503, detail=detail)

    try:
        result = await run_in_threadpool(run_inference, context.model, context.manifest, image)
    except ModelNotLoadedError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except InvalidModelOutputError as exc:
        logger.error("Prediction error: %s", exc)
        raise HTTPException(status_code=500, detail=f"Error processing image: {exc}")

    prediction_id = context.record_prediction(result)

    band = context.policy.classify(result.confidence)
    logger.info("Confidence %.2f%% → %s", result.confidence, band.value)

    return PredictionResponse(
        prediction_id=prediction_id,
        confidence=round(result.confidence, 2),
        authentic_probability=round(result.authentic, 4),
        replica_probability=round(result.replica, 4),
        band=band.value,
        mint_enabled=context.policy.mint_enabled(result.confidence),
        message=BAND_MESSAGES[band],
        softmax_applied=result.softmax_applied,
        raw_output=list(result.raw_output),
    )


@router.post("/predict", response_model=PredictionResponse)
async def predict_upload(
    file: UploadFile = File(...),
    context: AppContext = Depends(get_context),
) -> PredictionResponse:
    """
    Classify an uploaded photo as authentic or replica.

    Parameters
    ----------
    file : UploadFile – single image (jpg, jpeg, png, webp).

    Returns the authentic confidence (0–100), its display band, whether
    certificate minting is unlocked and a ``prediction_id`` to mint with.
    """
    # ── validate file extension ──
    if not file.filename:
        raise HTTPException(status_code=400, detail="No file selected.")

    file_ext = Path(file.filename).suffix.lower()
    if file_ext not in settings.allowed_extensions_set:
        raise HTTPException(
            status_code=400,
            detail=f"File type '{file_ext}' not allowed. "
                   f"Allowed: {', '.join(sorted(settings.allowed_extensions_set))}",
        )

    # ── read file content ──
    content = await file.read()
    if len(content) > settings.max_upload_size:
        raise HTTPException(
            status_code=413,
            detail=f"File too large ({len(content)} bytes). "
                   f"Maximum size: {settings.max_upload_size} bytes.",
        )

    try:
        image = await run_in_threadpool(decode_image, content)
    except ImageDecodeError as exc:
        raise HTTPException(status_code=400, detail=f"Error loading image: {exc}")

    return await _classify(image, context)


@router.post("/predict/url", response_model=PredictionResponse)
async def predict_url(
    body: PredictionRequest,
    context: AppContext = Depends(get_context),
) -> PredictionResponse:
    """Classify an image fetched from ``body.image_url``."""
    try:
        image = await fetch_image(str(body.image_url), timeout=settings.request_timeout)
    except Exception as exc:
        raise HTTPException(
            status_code=400,
            detail=f"Could not fetch image: {exc}",
        )

    return await _classify(image, context)
