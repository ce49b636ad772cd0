"""Router – certificate minting, verification and downloads."""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response

from src.opalforge.context import AppContext, get_context
from src.opalforge.schemas.certificate import MintRequest, VerificationResponse
from src.opalforge.services.certificate_client import (
    CertificateClient,
    CertificateNotFoundError,
    CertificateServiceError,
    InvalidCertificateIdError,
    MintNotAllowedError,
    certificate_filename,
    validate_certificate_id,
)

router = APIRouter(prefix="/certificates", tags=["Certificates"])


def get_certificate_client(context: AppContext = Depends(get_context)) -> CertificateClient:
    return CertificateClient(policy=context.policy)


def _pdf_response(content: bytes, cert_id: str) -> Response:
    return Response(
        content=content,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{certificate_filename(cert_id)}"',
            "X-Certificate-Id": cert_id,
        },
    )


def _service_error(exc: CertificateServiceError) -> HTTPException:
    if exc.status_code is None:
        return HTTPException(status_code=502, detail=exc.message)
    return HTTPException(
        status_code=502,
        detail=f"Certificate service error ({exc.status_code}): {exc.message}",
    )


async def verify_certificate(
    cert_id: str,
    request: Request,
    client: CertificateClient,
) -> VerificationResponse:
    """Shared by ``GET /certificates/{id}`` and the ``/?verify=`` deep link."""
    try:
        result = await client.verify(cert_id)
    except InvalidCertificateIdError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except CertificateNotFoundError as exc:
        raise HTTPException(status_code=404, detail=f"Certificate {exc.cert_id} not found.")
    except CertificateServiceError as exc:
        raise _service_error(exc)

    qr_url = None
    if result.qr_image is not None:
        base_url = str(request.base_url).rstrip("/")
        qr_url = f"{base_url}/certificates/{result.cert_id}/qr"

    return VerificationResponse(
        cert_id=result.cert_id,
        verified=True,
        confidence=result.confidence,
        timestamp=result.timestamp,
        qr_url=qr_url,
        metadata=result.metadata,
        message=f"Certificate {result.cert_id} is valid.",
    )


@router.post("", response_class=Response)
async def mint_certificate(
    body: MintRequest,
    context: AppContext = Depends(get_context),
    client: CertificateClient = Depends(get_certificate_client),
) -> Response:
    """
    Mint a certificate for an authentic result and return its PDF.

    The confidence comes from ``body.confidence`` or from the prediction named
    by ``body.prediction_id``.  The new id is sent back in the
    ``X-Certificate-Id`` header.
    """
    confidence = body.confidence
    if confidence is None and body.prediction_id:
        confidence = context.prediction_confidence(body.prediction_id)
        if confidence is None:
            raise HTTPException(status_code=404, detail="Unknown or expired prediction id.")
    if confidence is None:
        raise HTTPException(status_code=400, detail="Upload an image before minting a certificate.")

    cert_id = None
    if body.cert_id:
        try:
            cert_id = validate_certificate_id(body.cert_id)
        except InvalidCertificateIdError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

    try:
        minted = await client.mint(confidence, cert_id=cert_id)
    except MintNotAllowedError as exc:
        raise HTTPException(status_code=403, detail=str(exc))
    except CertificateServiceError as exc:
        raise _service_error(exc)

    return _pdf_response(minted.pdf, minted.record.cert_id)


@router.get("/{cert_id}", response_model=VerificationResponse)
async def get_certificate(
    cert_id: str,
    request: Request,
    client: CertificateClient = Depends(get_certificate_client),
) -> VerificationResponse:
    """Verify a certificate id against the certificate service."""
    return await verify_certificate(cert_id, request, client)


@router.head("/{cert_id}", response_class=Response)
async def certificate_exists(
    cert_id: str,
    client: CertificateClient = Depends(get_certificate_client),
) -> Response:
    """Answer 200 if the certificate exists, 404 otherwise."""
    try:
        exists = await client.certificate_exists(cert_id)
    except InvalidCertificateIdError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except CertificateServiceError as exc:
        raise _service_error(exc)

    if not exists:
        raise HTTPException(status_code=404, detail=f"Certificate {cert_id.strip().upper()} not found.")
    return Response(status_code=200, headers={"X-Certificate-Id": cert_id.strip().upper()})


@router.get("/{cert_id}/pdf", response_class=Response)
async def download_certificate(
    cert_id: str,
    client: CertificateClient = Depends(get_certificate_client),
) -> Response:
    """Download the PDF of an existing certificate."""
    try:
        content = await client.download_certificate(cert_id)
    except InvalidCertificateIdError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except CertificateNotFoundError as exc:
        raise HTTPException(status_code=404, detail=f"Certificate {exc.cert_id} not found.")
    except CertificateServiceError as exc:
        raise _service_error(exc)

    return _pdf_response(content, cert_id.strip().upper())


@router.get("/{cert_id}/qr", response_class=Response)
async def get_qr_code(
    cert_id: str,
    client: CertificateClient = Depends(get_certificate_client),
) -> Response:
    """Proxy the QR code image for a certificate."""
    try:
        content, content_type = await client.fetch_qr(cert_id)
    except InvalidCertificateIdError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except CertificateNotFoundError as exc:
        raise HTTPException(status_code=404, detail=f"QR code for {exc.cert_id} not found.")
    except CertificateServiceError as exc:
        raise _service_error(exc)

    return Response(content=content, media_type=content_type)
