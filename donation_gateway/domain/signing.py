"""HTTP signature authentication for the payment gateway REST API"""

import base64
import binascii
import hashlib
import hmac
import re
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from donation_gateway.domain.exceptions import SigningError
from donation_gateway.domain.models import (
    GatewayCredentials,
    KeyFormat,
    SignatureResult,
    SigningContext,
)
from donation_gateway.utils.date_utils import format_http_date, utc_now

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")

SIGNATURE_ALGORITHM = "HmacSHA256"


def decode_secret_key(secret_key: str, declared: Optional[KeyFormat] = None) -> Tuple[bytes, KeyFormat]:
    """
    Turn a shared secret of unknown encoding into raw key bytes.

    Probing order (first match wins):
    1. Even-length hex string -> hex decode
    2. Valid base64 once right-padded with '=' to a multiple of 4
    3. Raw UTF-8 bytes of the trimmed string

    Never raises for the heuristic path. An operator who knows the encoding
    can pass `declared` to skip probing; a declared hex/base64 secret that
    does not decode raises SigningError.
    """
    trimmed = secret_key.strip()

    if declared is KeyFormat.RAW:
        return trimmed.encode("utf-8"), KeyFormat.RAW

    if declared is KeyFormat.HEX:
        try:
            return bytes.fromhex(trimmed), KeyFormat.HEX
        except ValueError as e:
            raise SigningError(f"Secret key declared as hex but is not valid hex: {e}") from e

    if declared is None and _HEX_RE.match(trimmed) and len(trimmed) % 2 == 0:
        return bytes.fromhex(trimmed), KeyFormat.HEX

    padded = trimmed + "=" * (-len(trimmed) % 4)
    try:
        return base64.b64decode(padded, validate=True), KeyFormat.BASE64
    except (binascii.Error, ValueError) as e:
        if declared is KeyFormat.BASE64:
            raise SigningError(f"Secret key declared as base64 but is not valid base64: {e}") from e

    return trimmed.encode("utf-8"), KeyFormat.RAW


def compute_digest(payload: bytes) -> str:
    """Body digest header value: 'SHA-256=' + base64(sha256(payload))"""
    return "SHA-256=" + base64.b64encode(hashlib.sha256(payload).digest()).decode("ascii")


def hmac_sha256_b64(key: bytes, message: str) -> str:
    return base64.b64encode(hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()).decode("ascii")


class RequestSigner:
    """Builds Date/Digest/Signature headers for gateway requests"""

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self.clock = clock or utc_now

    def context(
        self,
        credentials: GatewayCredentials,
        method: str,
        resource_path: str,
        payload: Optional[bytes] = None,
    ) -> SigningContext:
        """Capture the clock once so the signed date and the sent Date header agree"""
        return SigningContext(
            merchant_id=credentials.merchant_id,
            key_id=credentials.key_id,
            secret_key=credentials.secret_key,
            host=credentials.host,
            resource_path=resource_path,
            http_method=method,
            timestamp=self.clock(),
            payload=payload,
            key_format=credentials.key_format,
        )

    def sign(self, ctx: SigningContext) -> SignatureResult:
        """
        Sign one request.

        The signature base is newline-joined "name: value" lines; the order
        of lines is exactly the order advertised in the headers="..." list:
            (request-target) host date [digest] v-c-merchant-id
        Digest is only signed (and sent) when the request carries a body.

        Raises:
            SigningError: payload is not valid UTF-8 (before any network I/O)
        """
        digest = None
        if ctx.payload is not None:
            try:
                ctx.payload.decode("utf-8")
            except UnicodeDecodeError as e:
                raise SigningError(f"Request payload is not valid UTF-8: {e}") from e
            digest = compute_digest(ctx.payload)

        date_header = format_http_date(ctx.timestamp)

        components: List[Tuple[str, str]] = [
            ("(request-target)", f"{ctx.http_method.lower()} {ctx.resource_path}"),
            ("host", ctx.host),
            ("date", date_header),
        ]
        if digest is not None:
            components.append(("digest", digest))
        components.append(("v-c-merchant-id", ctx.merchant_id))

        signature_base = "\n".join(f"{name}: {value}" for name, value in components)
        header_names = " ".join(name for name, _ in components)

        key_bytes, key_format = decode_secret_key(ctx.secret_key, ctx.key_format)
        signature = hmac_sha256_b64(key_bytes, signature_base)

        signature_header = (
            f'keyid="{ctx.key_id}", algorithm="{SIGNATURE_ALGORITHM}", '
            f'headers="{header_names}", signature="{signature}"'
        )

        return SignatureResult(
            date_header=date_header,
            signature_header=signature_header,
            key_format=key_format,
            digest_header=digest,
            signature_base=signature_base,
        )
