"""Pydantic schemas for API request/response validation"""

from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class PaymentRequest(BaseModel):
    """Request body for POST /v1/payments"""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)
    nit: Optional[str] = Field(None, max_length=20)
    city: str = Field(..., min_length=1)
    department: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, description="Donation amount in major currency units")
    currency: Literal["GTQ", "USD"] = "GTQ"
    donation_type: Literal["unica", "mensual"] = "unica"
    transient_token: str = Field(..., min_length=1, description="JWT from the browser card tokenizer")


class PaymentResponse(BaseModel):
    """Response for POST /v1/payments"""

    status: str
    message: str
    reference_number: str
    transaction_id: Optional[str] = None
    details: Optional[Any] = None


class CaptureContextRequest(BaseModel):
    """Request body for POST /v1/payments/capture-context"""

    model_config = ConfigDict(populate_by_name=True)

    target_origins: List[str] = Field(default_factory=list, alias="targetOrigins")


class CaptureContextResponse(BaseModel):
    """Response for POST /v1/payments/capture-context"""

    success: bool
    capture_context: str
    resource: str


class CredentialTestRequest(BaseModel):
    """Request body for POST /v1/gateway/credential-test"""

    merchant_id: str = Field(..., min_length=1)
    key_id: str = Field(..., min_length=1)
    secret_key: str = Field(..., min_length=1)
    environment: Literal["test", "production"] = "test"
    key_format: Optional[Literal["hex", "base64", "raw"]] = None


class CredentialTestResponse(BaseModel):
    """Response for POST /v1/gateway/credential-test"""

    success: bool
    outcome: str
    message: str
    http_status: Optional[int] = None
    transaction_id: Optional[str] = None
    payment_status: Optional[str] = None
    key_format: Optional[str] = None
    response: Optional[Any] = None
    suggestions: List[str] = []


class NotificationRequest(BaseModel):
    """Request body for POST /v1/notifications/donation"""

    donor_name: str = Field(..., min_length=1)
    donor_email: Optional[str] = Field(None, max_length=255)
    amount: str = Field(..., min_length=1)
    currency: str = "GTQ"
    reference: str = Field(..., min_length=1)
    transaction_id: Optional[str] = None
    card_type: Optional[str] = None
    card_last4: Optional[str] = Field(None, max_length=4)
    date: str = Field(..., min_length=1)
    skip_idempotency: bool = False


class NotificationResponse(BaseModel):
    """Response for POST /v1/notifications/donation"""

    success: bool
    skipped: bool = False
    reason: Optional[str] = None
    sent: int = 0
    errors: List[str] = []


class CheckoutSignRequest(BaseModel):
    """Request body for POST /v1/checkout/sign"""

    amount: Decimal = Field(..., gt=0)
    currency: str = Field(..., min_length=3, max_length=3)
    reference_number: Optional[str] = None
    locale: str = "es"
    donor_email: Optional[str] = None
    donor_first_name: Optional[str] = None
    donor_last_name: Optional[str] = None
    bill_address1: Optional[str] = None
    bill_city: Optional[str] = None
    bill_country: Optional[str] = None
    test_mode: Optional[bool] = None


class CheckoutSignResponse(BaseModel):
    """Response for POST /v1/checkout/sign"""

    success: bool
    checkout_url: str
    fields: Dict[str, str]
