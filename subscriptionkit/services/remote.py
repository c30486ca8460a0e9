"""
Remote Sync Client - The two backend calls the synchronizer depends on.

NO DICTIONARIES - Request and response bodies use typed models.

Translates transport and HTTP outcomes into SubscriptionKit errors.
Never retries; retry policy belongs to the caller.
"""

from urllib.parse import quote

import httpx
from pydantic import ValidationError
from structlog import get_logger

from subscriptionkit.exceptions import NetworkError, ServerError, VerificationFailedError
from subscriptionkit.models.api import (
    CustomerInfoResponse,
    VerifyReceiptRequest,
    VerifyReceiptResponse,
)
from subscriptionkit.models.customer import CustomerSnapshot

logger = get_logger(__name__)

CUSTOMERS_PATH = "/api/v1/customers/"
VERIFY_PATH = "/api/v1/receipts/verify"


class RemoteSyncClient:
    """
    Backend client for customer snapshots and receipt verification.

    Usage:
        client = RemoteSyncClient(api_key="sk_...", base_url="https://api.example.com")
        snapshot = await client.fetch_snapshot("user-123")
        result = await client.verify_transaction("2000000123", "user-123")
        await client.close()
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            api_key: Bearer key, fixed for the lifetime of the client
            base_url: Backend root URL
            timeout: Per-request timeout in seconds (None = httpx default)
            http_client: Optional shared client; not closed by close()
        """
        if not api_key:
            raise ValueError("api_key is required")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            if self.timeout is None:
                self._http_client = httpx.AsyncClient()
            else:
                self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

    def customer_url(self, user_id: str) -> str:
        return f"{self.base_url}{CUSTOMERS_PATH}{quote(user_id, safe='')}"

    async def fetch_snapshot(self, user_id: str) -> CustomerSnapshot:
        """
        Fetch the authoritative snapshot for a user.

        Returns:
            The decoded snapshot, or an empty one when the backend answers 404

        Raises:
            ServerError: Any status other than 200 or 404
            NetworkError: Transport failure or undecodable 200 body
        """
        try:
            response = await self.http_client.get(
                self.customer_url(user_id), headers=self._headers()
            )
        except httpx.HTTPError as exc:
            logger.error(
                "customer_info_fetch_transport_failed", app_user_id=user_id, error=str(exc)
            )
            raise NetworkError(str(exc)) from exc

        if response.status_code == 404:
            # User doesn't exist yet on the backend
            logger.info("customer_not_found_using_empty_snapshot", app_user_id=user_id)
            return CustomerSnapshot.empty(user_id)

        if response.status_code != 200:
            logger.error(
                "customer_info_fetch_failed",
                app_user_id=user_id,
                status=response.status_code,
            )
            raise ServerError(response.status_code)

        try:
            body = CustomerInfoResponse.model_validate_json(response.content)
        except ValidationError as exc:
            logger.error("customer_info_decode_failed", app_user_id=user_id, error=str(exc))
            raise NetworkError("Malformed customer info payload") from exc

        return body.customer_info

    async def verify_transaction(self, transaction_id: str, user_id: str) -> VerifyReceiptResponse:
        """
        Ask the backend to verify a platform transaction for a user.

        Raises:
            VerificationFailedError: Transport failure, non-200 status or undecodable body
        """
        request = VerifyReceiptRequest(transaction_id=transaction_id, app_user_id=user_id)

        try:
            response = await self.http_client.post(
                f"{self.base_url}{VERIFY_PATH}",
                headers={**self._headers(), "Content-Type": "application/json"},
                content=request.model_dump_json(by_alias=True),
            )
        except httpx.HTTPError as exc:
            logger.error(
                "receipt_verification_transport_failed",
                transaction_id=transaction_id,
                error=str(exc),
            )
            raise VerificationFailedError(str(exc)) from exc

        if response.status_code != 200:
            logger.error(
                "receipt_verification_rejected",
                transaction_id=transaction_id,
                status=response.status_code,
            )
            raise VerificationFailedError(f"status {response.status_code}")

        try:
            result = VerifyReceiptResponse.model_validate_json(response.content)
        except ValidationError as exc:
            logger.error(
                "receipt_verification_decode_failed",
                transaction_id=transaction_id,
                error=str(exc),
            )
            raise VerificationFailedError("Malformed verification payload") from exc

        logger.info(
            "receipt_verified",
            transaction_id=transaction_id,
            app_user_id=user_id,
            success=result.success,
        )
        return result

    async def close(self) -> None:
        """Close HTTP client if this instance created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None
