"""
Google Play Android Publisher client.

Wraps the synchronous googleapiclient service so every call runs in a
worker thread and can be awaited (and gathered) from the event loop.
https://developers.google.com/android-publisher/api-ref/rest
"""

import asyncio
from collections.abc import Callable
from typing import Any

import google_auth_httplib2
import httplib2
from google.oauth2 import service_account
from googleapiclient.discovery import build
from structlog import get_logger

logger = get_logger(__name__)

ANDROID_PUBLISHER_SCOPE = "https://www.googleapis.com/auth/androidpublisher"


class GooglePlayPublisher:
    """Async facade over the ``androidpublisher`` v3 service."""

    def __init__(
        self,
        service: Any,
        http_factory: Callable[[], Any] | None = None,
    ) -> None:
        """
        Initialize the publisher client.

        Args:
            service: A built ``androidpublisher`` v3 service
            http_factory: Builds a fresh authorized HTTP object per call.
                httplib2 connections are not thread safe, so concurrent calls
                must not share one.
        """
        self.service = service
        self._http_factory = http_factory

    @classmethod
    def from_service_account_info(
        cls, service_account_info: dict[str, str], timeout: float = 30.0
    ) -> "GooglePlayPublisher":
        credentials = service_account.Credentials.from_service_account_info(  # type: ignore[no-untyped-call]
            service_account_info,
            scopes=[ANDROID_PUBLISHER_SCOPE],
        )
        service = build("androidpublisher", "v3", credentials=credentials, cache_discovery=False)

        def http_factory() -> Any:
            return google_auth_httplib2.AuthorizedHttp(
                credentials, http=httplib2.Http(timeout=timeout)
            )

        logger.info(
            "google_play_publisher_initialized",
            client_email=service_account_info.get("client_email"),
        )
        return cls(service, http_factory=http_factory)

    async def _execute(self, request: Any) -> dict[str, Any]:
        if self._http_factory is None:
            result = await asyncio.to_thread(request.execute)
        else:
            result = await asyncio.to_thread(request.execute, http=self._http_factory())
        return result or {}

    async def get_product_purchase(
        self, package_name: str, product_id: str, token: str
    ) -> dict[str, Any]:
        """purchases.products.get"""
        request = (
            self.service.purchases()
            .products()
            .get(packageName=package_name, productId=product_id, token=token)
        )
        return await self._execute(request)

    async def get_subscription_purchase(
        self, package_name: str, subscription_id: str, token: str
    ) -> dict[str, Any]:
        """purchases.subscriptions.get"""
        request = (
            self.service.purchases()
            .subscriptions()
            .get(packageName=package_name, subscriptionId=subscription_id, token=token)
        )
        return await self._execute(request)

    async def get_subscription_purchase_v2(self, package_name: str, token: str) -> dict[str, Any]:
        """purchases.subscriptionsv2.get"""
        request = (
            self.service.purchases()
            .subscriptionsv2()
            .get(packageName=package_name, token=token)
        )
        return await self._execute(request)

    async def get_in_app_product(self, package_name: str, sku: str) -> dict[str, Any]:
        """inappproducts.get"""
        request = self.service.inappproducts().get(packageName=package_name, sku=sku)
        return await self._execute(request)

    async def get_subscription(self, package_name: str, product_id: str) -> dict[str, Any]:
        """monetization.subscriptions.get"""
        request = (
            self.service.monetization()
            .subscriptions()
            .get(packageName=package_name, productId=product_id)
        )
        return await self._execute(request)
