"""
API Routes - FastAPI endpoints for receipt verification.

NO DICTIONARIES - All requests/responses use Pydantic models.

Every endpoint answers 200 with the validated receipt or 400 with an empty
body. Failure reasons are logged and written to the audit log, never
returned to the client.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse
from structlog import get_logger

from iap_verify.api.dependencies import (
    get_apple_receipt_verifier,
    get_apple_transaction_verifier,
    get_audit_log,
    get_google_play_verifier,
)
from iap_verify.config import settings
from iap_verify.models.api import HealthResponse, ReceiptRequest, ValidatedReceiptResponse
from iap_verify.models.domain import ValidationOutcome
from iap_verify.services.audit import VerificationLogRepository
from iap_verify.services.verifier import ReceiptVerifier

logger = get_logger(__name__)

router = APIRouter()


async def _verify(
    request: ReceiptRequest,
    verifier: ReceiptVerifier | None,
    audit_log: VerificationLogRepository,
    store_name: str,
    route: str,
) -> Response:
    if verifier is None:
        logger.error("verifier_not_configured", route=route)
        outcome = ValidationOutcome.invalid(f"{store_name} verification is not configured")
        await audit_log.save_log(store_name, route, request.to_domain(), outcome)
        return Response(status_code=status.HTTP_400_BAD_REQUEST)

    outcome = await verifier.verify(request.to_domain())

    if outcome.is_valid and outcome.validated_receipt is not None:
        body = ValidatedReceiptResponse.from_domain(outcome.validated_receipt)
        return JSONResponse(
            content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
        )

    return Response(status_code=status.HTTP_400_BAD_REQUEST)


@router.post("/v1/Apple", response_model=ValidatedReceiptResponse)
async def verify_apple_receipt(
    request: ReceiptRequest,
    verifier: ReceiptVerifier | None = Depends(get_apple_receipt_verifier),
    audit_log: VerificationLogRepository = Depends(get_audit_log),
) -> Response:
    """
    Verify an iOS 7 style app receipt with ``verifyReceipt``.

    Production is tried first; sandbox receipts are retried once against
    the sandbox.
    """
    return await _verify(request, verifier, audit_log, "Apple", "v1/Apple")


@router.post("/v2/Apple", response_model=ValidatedReceiptResponse)
async def verify_apple_transaction(
    request: ReceiptRequest,
    verifier: ReceiptVerifier | None = Depends(get_apple_transaction_verifier),
    audit_log: VerificationLogRepository = Depends(get_audit_log),
) -> Response:
    """Verify a StoreKit v2 transaction with the App Store Server API."""
    return await _verify(request, verifier, audit_log, "Apple", "v2/Apple")


@router.post("/v1/Google", response_model=ValidatedReceiptResponse)
async def verify_google_play(
    request: ReceiptRequest,
    verifier: ReceiptVerifier | None = Depends(get_google_play_verifier),
    audit_log: VerificationLogRepository = Depends(get_audit_log),
) -> Response:
    """Verify a Google Play product or subscription purchase token."""
    return await _verify(request, verifier, audit_log, "Google", "v1/Google")


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness check. Does not call any store authority."""
    return HealthResponse(
        status="healthy",
        version=settings.api_version,
        timestamp=datetime.now(UTC),
    )
