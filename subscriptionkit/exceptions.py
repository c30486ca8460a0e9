"""
Exception Classes - Strongly typed exception hierarchy.

Every public synchronizer operation either returns a snapshot or raises
exactly one of these. None of them are retried internally.
"""


class SubscriptionKitError(Exception):
    """Base exception for all SubscriptionKit errors."""

    recovery_suggestion: str | None = None


class NotConfiguredError(SubscriptionKitError):
    """Raised when an operation is attempted before configure()."""

    recovery_suggestion = "Call configure(api_key) during application startup."

    def __init__(self) -> None:
        super().__init__("SubscriptionKit has not been configured. Call configure(api_key) first.")


class PurchaseCancelledError(SubscriptionKitError):
    """Raised when the user cancels a purchase.

    Callers are expected to absorb this silently.
    """

    def __init__(self) -> None:
        super().__init__("Purchase was cancelled.")


class PurchasePendingError(SubscriptionKitError):
    """Raised when a purchase awaits external approval (e.g. parental consent)."""

    recovery_suggestion = "The purchase requires approval. Please try again later."

    def __init__(self) -> None:
        super().__init__("Purchase is pending approval.")


class VerificationFailedError(SubscriptionKitError):
    """Raised when a transaction cannot be verified locally or by the backend."""

    recovery_suggestion = "Please try the purchase again or contact support."

    def __init__(self, message: str | None = None) -> None:
        self.message = message
        if message:
            super().__init__(f"Transaction verification failed: {message}")
        else:
            super().__init__("Transaction verification failed.")


class NetworkError(SubscriptionKitError):
    """Raised when the backend is unreachable or returns an undecodable payload."""

    recovery_suggestion = "Check your internet connection and try again."

    def __init__(self, message: str | None = None) -> None:
        self.message = message
        if message:
            super().__init__(f"Network request failed: {message}")
        else:
            super().__init__("Network request failed. Please check your connection.")


class ServerError(SubscriptionKitError):
    """Raised when the backend answers with an unexpected status code."""

    recovery_suggestion = "Please try again later."

    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"Server error occurred (status: {status_code}).")


class ProductNotFoundError(SubscriptionKitError):
    """Raised when a product is missing from the platform catalog."""

    recovery_suggestion = "Ensure the product is configured in the store console."

    def __init__(self, product_id: str) -> None:
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class NoActiveSubscriptionError(SubscriptionKitError):
    """Raised when an entitlement is required but not active."""

    recovery_suggestion = "Subscribe to access this feature."

    def __init__(self, entitlement_id: str | None = None) -> None:
        self.entitlement_id = entitlement_id
        if entitlement_id:
            super().__init__(f"No active subscription found for {entitlement_id}.")
        else:
            super().__init__("No active subscription found.")


class UnknownError(SubscriptionKitError):
    """Raised for unrecognized platform outcomes."""

    recovery_suggestion = "Please try again or contact support."

    def __init__(self) -> None:
        super().__init__("An unknown error occurred.")
