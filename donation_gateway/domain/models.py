"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import ClassVar, Dict, List, Optional


class KeyFormat(str, Enum):
    """Encoding the shared secret was interpreted as"""

    HEX = "hex"
    BASE64 = "base64"
    RAW = "raw"


@dataclass(frozen=True)
class GatewayCredentials:
    """Merchant credentials for the payment gateway REST API"""

    merchant_id: str
    key_id: str
    secret_key: str
    host: str
    key_format: Optional[KeyFormat] = None  # None means detect


@dataclass(frozen=True)
class SigningContext:
    """Everything needed to sign one outbound request"""

    merchant_id: str
    key_id: str
    secret_key: str
    host: str
    resource_path: str
    http_method: str
    timestamp: datetime
    payload: Optional[bytes] = None
    key_format: Optional[KeyFormat] = None


@dataclass(frozen=True)
class SignatureResult:
    """Headers produced by signing a request"""

    date_header: str
    signature_header: str
    key_format: KeyFormat
    digest_header: Optional[str] = None
    signature_base: str = ""

    def headers(self, host: str, merchant_id: str) -> Dict[str, str]:
        headers = {
            "Host": host,
            "Date": self.date_header,
            "v-c-merchant-id": merchant_id,
            "Signature": self.signature_header,
            "Accept": "application/json",
        }
        if self.digest_header is not None:
            headers["Digest"] = self.digest_header
            headers["Content-Type"] = "application/json"
        return headers


# Gateway outcomes. Every variant except TransportError keeps the raw body.


@dataclass(frozen=True)
class GatewayOutcome:
    kind: ClassVar[str] = "outcome"
    successful: ClassVar[bool] = False


@dataclass(frozen=True)
class Authorized(GatewayOutcome):
    kind: ClassVar[str] = "authorized"
    successful: ClassVar[bool] = True

    transaction_id: Optional[str]
    status: str
    raw_response: str


@dataclass(frozen=True)
class Pending(GatewayOutcome):
    kind: ClassVar[str] = "pending"
    successful: ClassVar[bool] = True

    transaction_id: Optional[str]
    raw_response: str


@dataclass(frozen=True)
class CaptureContext(GatewayOutcome):
    """Signed JWT the browser card tokenizer is initialized with"""

    kind: ClassVar[str] = "capture_context"
    successful: ClassVar[bool] = True

    token: str
    resource: str


@dataclass(frozen=True)
class AuthFailed(GatewayOutcome):
    kind: ClassVar[str] = "auth_failed"

    http_status: int
    raw_response: str


@dataclass(frozen=True)
class ServiceNotEnabled(GatewayOutcome):
    kind: ClassVar[str] = "service_not_enabled"

    http_status: int
    raw_response: str


@dataclass(frozen=True)
class Declined(GatewayOutcome):
    kind: ClassVar[str] = "declined"

    raw_response: str
    status: Optional[str] = None


@dataclass(frozen=True)
class Unexpected(GatewayOutcome):
    kind: ClassVar[str] = "unexpected"

    http_status: int
    raw_response: str


@dataclass(frozen=True)
class TransportError(GatewayOutcome):
    kind: ClassVar[str] = "transport_error"

    message: str


@dataclass
class DonationNotification:
    """Data needed to notify accounting and the donor about one donation"""

    donor_name: str
    donor_email: Optional[str]
    amount_text: str
    currency_code: str
    reference_number: str
    occurred_at: str
    transaction_id: Optional[str] = None
    card_brand: Optional[str] = None
    card_last4: Optional[str] = None


@dataclass
class DeliverySettings:
    """Sender identity, recipients, templates and channel toggles"""

    sender_name: str
    sender_address: Optional[str]
    accounting_emails: List[str]
    accounting_subject: str
    accounting_body: Optional[str]
    donor_subject: str
    donor_body: Optional[str]
    send_accounting_email: bool = True
    send_donor_email: bool = True
    donor_email_enabled: bool = True


@dataclass
class DispatchResult:
    """Outcome of one notification dispatch"""

    skipped: bool = False
    reason: Optional[str] = None
    status: Optional[str] = None  # "sent" | "failed"
    sent: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int


@dataclass
class DonorDetails:
    """Billing details entered by the donor"""

    first_name: str
    last_name: str
    email: str
    city: str
    department: str
    phone: Optional[str] = None
    nit: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

