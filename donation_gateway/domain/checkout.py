"""Hosted checkout: signed form fields and callback verification"""

import hmac
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from donation_gateway.domain.signing import hmac_sha256_b64
from donation_gateway.utils.date_utils import format_signed_date_time

SIGNED_FIELD_NAMES: List[str] = [
    "access_key",
    "profile_id",
    "transaction_uuid",
    "signed_field_names",
    "unsigned_field_names",
    "signed_date_time",
    "locale",
    "transaction_type",
    "reference_number",
    "amount",
    "currency",
    "bill_to_email",
    "bill_to_forename",
    "bill_to_surname",
    "bill_to_address_line1",
    "bill_to_address_city",
    "bill_to_address_country",
]


def fields_data_to_sign(signed_field_names: str, params: Dict[str, str]) -> str:
    return ",".join(f"{name}={params.get(name, '')}" for name in signed_field_names.split(","))


def sign_fields(secret_key: str, signed_field_names: str, params: Dict[str, str]) -> str:
    """base64(HMAC-SHA256) over 'name=value' pairs in signed_field_names order"""
    return hmac_sha256_b64(secret_key.encode("utf-8"), fields_data_to_sign(signed_field_names, params))


def verify_fields(secret_key: str, params: Dict[str, str]) -> bool:
    """Check the signature the gateway attached to a callback"""
    signed_field_names = params.get("signed_field_names", "")
    received = params.get("signature", "")
    if not signed_field_names or not received:
        return False
    expected = sign_fields(secret_key, signed_field_names, params)
    return hmac.compare_digest(expected, received)


def build_checkout_fields(
    access_key: str,
    profile_id: str,
    secret_key: str,
    reference_number: str,
    amount: str,
    currency: str,
    signed_at: datetime,
    locale: str = "es",
    bill_to: Optional[Dict[str, str]] = None,
) -> Dict[str, str]:
    """All form fields for a hosted checkout 'sale', signature included"""
    bill_to = bill_to or {}
    signed_field_names = ",".join(SIGNED_FIELD_NAMES)
    params = {
        "access_key": access_key,
        "profile_id": profile_id,
        "transaction_uuid": str(uuid.uuid4()),
        "signed_field_names": signed_field_names,
        "unsigned_field_names": "",
        "signed_date_time": format_signed_date_time(signed_at),
        "locale": locale,
        "transaction_type": "sale",
        "reference_number": reference_number,
        "amount": amount,
        "currency": currency,
        "bill_to_email": bill_to.get("email", ""),
        "bill_to_forename": bill_to.get("forename", ""),
        "bill_to_surname": bill_to.get("surname", ""),
        "bill_to_address_line1": bill_to.get("address_line1", ""),
        "bill_to_address_city": bill_to.get("city", ""),
        "bill_to_address_country": bill_to.get("country") or "GT",
    }
    params["signature"] = sign_fields(secret_key, signed_field_names, params)
    return params


def is_successful_callback(params: Dict[str, str]) -> bool:
    return params.get("decision", "").upper() == "ACCEPT" or params.get("reason_code", "") == "100"
