"""Payment payload construction and donor input validation"""

import json
import re
import secrets
import string
import time
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List

from donation_gateway.domain.exceptions import InvalidDonationError
from donation_gateway.domain.models import DonorDetails

MIN_DONATION_AMOUNT = Decimal("1")
MAX_DONATION_AMOUNT = Decimal("100000")

# Flagged so a credential check can never be mistaken for a real donation
TEST_CARD_NUMBER = "4111111111111111"

ALLOWED_CARD_NETWORKS = ("VISA", "MASTERCARD", "AMEX", "DISCOVER")

DISPOSABLE_DOMAINS = [
    "tempmail.com",
    "throwaway.com",
    "mailinator.com",
    "guerrillamail.com",
    "10minutemail.com",
    "temp-mail.org",
    "fakeinbox.com",
    "trashmail.com",
]

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_BASE36 = string.digits + string.ascii_lowercase


def generate_reference_number(now_ms: int | None = None) -> str:
    """Business key for a donation: DON-<epoch ms>-<6 base36 chars>"""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"DON-{now_ms}-{suffix}"


def format_amount(amount: Decimal) -> str:
    return str(amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def validate_donation(donor: DonorDetails, amount: Decimal) -> None:
    """
    Server-side checks before any gateway call.

    Raises:
        InvalidDonationError: bad or disposable email, or amount out of range
    """
    email = donor.email.strip()
    if not _EMAIL_RE.match(email) or len(email) > 255:
        raise InvalidDonationError("Correo electrónico inválido")

    domain = email.rsplit("@", 1)[1].lower()
    if any(d in domain for d in DISPOSABLE_DOMAINS):
        raise InvalidDonationError("No se permiten correos electrónicos temporales")

    if amount < MIN_DONATION_AMOUNT or amount > MAX_DONATION_AMOUNT:
        raise InvalidDonationError("Monto de donación fuera de rango permitido")


def build_token_payment(
    donor: DonorDetails,
    amount: Decimal,
    currency: str,
    transient_token: str,
    reference_number: str,
) -> Dict[str, Any]:
    """Capture request authorized by a transient token from the browser tokenizer"""
    return {
        "clientReferenceInformation": {"code": reference_number},
        "tokenInformation": {"transientTokenJwt": transient_token},
        "orderInformation": {
            "amountDetails": {
                "totalAmount": format_amount(amount),
                "currency": currency,
            },
            "billTo": {
                "firstName": donor.first_name,
                "lastName": donor.last_name,
                "email": donor.email,
                "phoneNumber": donor.phone or "",
                "address1": f"{donor.city}, {donor.department}",
                "locality": donor.city,
                "administrativeArea": donor.department,
                "country": "GT",
                "postalCode": "01001",
            },
        },
        "processingInformation": {"capture": True},
    }


def build_capture_context_request(target_origins: List[str]) -> Dict[str, Any]:
    """Session request for the browser card tokenizer; origins are where it may be embedded"""
    return {
        "clientVersion": "v2",
        "targetOrigins": list(target_origins),
        "allowedCardNetworks": list(ALLOWED_CARD_NETWORKS),
        "allowedPaymentTypes": ["CARD"],
    }


def build_test_payment(now_ms: int | None = None) -> Dict[str, Any]:
    """Minimal authorization-only payload used to exercise credentials"""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return {
        "clientReferenceInformation": {"code": f"TEST-{now_ms}"},
        "paymentInformation": {
            "card": {
                "number": TEST_CARD_NUMBER,
                "expirationMonth": "12",
                "expirationYear": "30",
                "securityCode": "123",
            },
        },
        "orderInformation": {
            "amountDetails": {"totalAmount": "1.00", "currency": "GTQ"},
            "billTo": {
                "firstName": "Test",
                "lastName": "User",
                "email": "test@test.com",
                "address1": "Test Address",
                "locality": "Guatemala",
                "administrativeArea": "Guatemala",
                "country": "GT",
                "postalCode": "01001",
            },
        },
        "processingInformation": {"capture": False},
    }


def encode_payload(payload: Dict[str, Any]) -> bytes:
    """Serialize exactly once; these bytes are both digested and sent"""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
