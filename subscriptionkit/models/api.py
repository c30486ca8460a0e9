"""
API Models - Pydantic models for backend request/response bodies.

NO DICTIONARIES - Request bodies are built from typed models, never map literals.
"""

from pydantic import Field

from subscriptionkit.models.customer import CustomerSnapshot, UtcDatetime, WireModel


class CustomerInfoResponse(WireModel):
    """GET /api/v1/customers/{userId} response."""

    customer_info: CustomerSnapshot = Field(..., alias="customerInfo")


class VerifyReceiptRequest(WireModel):
    """POST /api/v1/receipts/verify request body."""

    transaction_id: str = Field(..., min_length=1, alias="transactionId")
    app_user_id: str = Field(..., alias="appUserId")


class TransactionDetails(WireModel):
    """Transaction details echoed by the verification endpoint (informational)."""

    transaction_id: str = Field(..., alias="transactionId")
    original_transaction_id: str = Field(..., alias="originalTransactionId")
    product_id: str = Field(..., alias="productId")
    purchase_date: UtcDatetime | None = Field(None, alias="purchaseDate")
    expires_date: UtcDatetime | None = Field(None, alias="expiresDate")
    environment: str | None = None


class VerifyReceiptResponse(WireModel):
    """POST /api/v1/receipts/verify response."""

    success: bool
    customer_info: CustomerSnapshot = Field(..., alias="customerInfo")
    transaction: TransactionDetails | None = None
