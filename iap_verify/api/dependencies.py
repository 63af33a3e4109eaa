"""
FastAPI dependencies - verifier instances built once at startup.

The lifespan handler stores verifiers on ``app.state``; routes receive them
through these dependencies so tests can override them.
"""

from dataclasses import dataclass

from fastapi import Request
from structlog import get_logger

from iap_verify.config import Settings, decode_app_store_private_key
from iap_verify.models.apple import AppleStoreKitConfig
from iap_verify.services.app_store_token import AppStoreTokenCache, AppStoreTokenSigner
from iap_verify.services.apple_receipt_adapter import AppleReceiptAdapter
from iap_verify.services.apple_storekit_adapter import AppleStoreKitAdapter
from iap_verify.services.audit import VerificationLogRepository
from iap_verify.services.google_play_client import GooglePlayPublisher
from iap_verify.services.verifier import (
    AppleReceiptVerifier,
    AppleTransactionVerifier,
    GooglePlayVerifier,
    ReceiptVerifier,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class Verifiers:
    """Verifiers for every route. ``None`` when the store is not configured."""

    apple_receipt: ReceiptVerifier
    apple_transaction: ReceiptVerifier | None
    google_play: ReceiptVerifier | None
    audit_log: VerificationLogRepository


def build_verifiers(settings: Settings, audit_log: VerificationLogRepository) -> Verifiers:
    """Build all verifiers from configuration."""
    apple_receipt = AppleReceiptVerifier(
        AppleReceiptAdapter(
            master_secret=settings.apple_secret_master,
            app_secrets=settings.apple_app_secrets,
            timeout=settings.http_timeout_seconds,
        ),
        audit_log,
        grace_days=settings.grace_days,
    )

    apple_transaction: ReceiptVerifier | None = None
    if settings.storekit_configured:
        signer = AppStoreTokenSigner(
            AppleStoreKitConfig(
                key_id=settings.apple_store_key_id,
                issuer_id=settings.apple_store_issuer_id,
                private_key=decode_app_store_private_key(settings.apple_store_private_key_base64),
            )
        )
        apple_transaction = AppleTransactionVerifier(
            AppleStoreKitAdapter(
                AppStoreTokenCache(signer.sign),
                timeout=settings.http_timeout_seconds,
            ),
            audit_log,
            grace_days=settings.grace_days,
        )
    else:
        logger.warning("apple_storekit_not_configured")

    google_play: ReceiptVerifier | None = None
    if settings.google_play_configured:
        publisher = GooglePlayPublisher.from_service_account_info(
            settings.google_service_account_info(),
            timeout=settings.http_timeout_seconds,
        )
        google_play = GooglePlayVerifier(publisher, audit_log, grace_days=settings.grace_days)
    else:
        logger.warning("google_play_not_configured")

    return Verifiers(
        apple_receipt=apple_receipt,
        apple_transaction=apple_transaction,
        google_play=google_play,
        audit_log=audit_log,
    )


def _verifiers(request: Request) -> Verifiers:
    verifiers: Verifiers = request.app.state.verifiers
    return verifiers


def get_apple_receipt_verifier(request: Request) -> ReceiptVerifier | None:
    return _verifiers(request).apple_receipt


def get_apple_transaction_verifier(request: Request) -> ReceiptVerifier | None:
    return _verifiers(request).apple_transaction


def get_google_play_verifier(request: Request) -> ReceiptVerifier | None:
    return _verifiers(request).google_play


def get_audit_log(request: Request) -> VerificationLogRepository:
    return _verifiers(request).audit_log
