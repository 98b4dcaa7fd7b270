"""Unit tests for request signing and secret key decoding"""

import base64
import pytest
from dataclasses import replace
from datetime import datetime, timezone
from donation_gateway.domain.exceptions import SigningError
from donation_gateway.domain.models import GatewayCredentials, KeyFormat
from donation_gateway.domain.signing import RequestSigner, compute_digest, decode_secret_key


FIXED_TIME = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
HEX_SECRET = "00112233445566778899aabbccddeeff"
PAYLOAD = b'{"amount":"10.00"}'


@pytest.fixture
def credentials() -> GatewayCredentials:
    return GatewayCredentials(
        merchant_id="m1",
        key_id="k1",
        secret_key=HEX_SECRET,
        host="apitest.cybersource.com",
    )


@pytest.fixture
def signer() -> RequestSigner:
    return RequestSigner(clock=lambda: FIXED_TIME)


def test_decode_even_length_hex():
    key, key_format = decode_secret_key(HEX_SECRET)
    assert key_format is KeyFormat.HEX
    assert key == bytes(range(0, 256, 17))


def test_decode_base64():
    key, key_format = decode_secret_key("AAECAw==")
    assert key_format is KeyFormat.BASE64
    assert key == b"\x00\x01\x02\x03"


def test_decode_unpadded_base64_is_padded_before_decoding():
    key, key_format = decode_secret_key("AAECAw")
    assert key_format is KeyFormat.BASE64
    assert key == b"\x00\x01\x02\x03"


def test_decode_odd_length_hex_falls_through_to_base64():
    """'abc' is not even-length hex, but is valid base64 once padded"""
    _, key_format = decode_secret_key("abc")
    assert key_format is KeyFormat.BASE64


def test_decode_raw_fallback():
    key, key_format = decode_secret_key("not-hex-secret!")
    assert key_format is KeyFormat.RAW
    assert key == b"not-hex-secret!"


def test_decode_trims_whitespace():
    key, key_format = decode_secret_key(f"  {HEX_SECRET}\n")
    assert key_format is KeyFormat.HEX
    assert len(key) == 16


def test_declared_format_skips_probing():
    """A hex-looking secret declared raw is used as its UTF-8 bytes"""
    key, key_format = decode_secret_key(HEX_SECRET, KeyFormat.RAW)
    assert key_format is KeyFormat.RAW
    assert key == HEX_SECRET.encode("utf-8")


def test_declared_base64_takes_precedence_over_hex():
    key, key_format = decode_secret_key("deadbeef", KeyFormat.BASE64)
    assert key_format is KeyFormat.BASE64
    assert key == bytes.fromhex("75e69d6de79f")


@pytest.mark.parametrize("declared", [KeyFormat.HEX, KeyFormat.BASE64])
def test_declared_format_that_does_not_decode_raises(declared: KeyFormat):
    with pytest.raises(SigningError):
        decode_secret_key("not-hex-secret!", declared)


def test_compute_digest():
    assert compute_digest(PAYLOAD) == "SHA-256=6etJWsy84qDpW74Hm5+eQsyuIDccFRbj7TA20qeHz1M="


def test_sign_post_golden_value(signer: RequestSigner, credentials: GatewayCredentials):
    """Known-answer test for a POST with body"""
    ctx = signer.context(credentials, "POST", "/pts/v2/payments", PAYLOAD)

    result = signer.sign(ctx)

    assert result.date_header == "Tue, 14 Nov 2023 22:13:20 GMT"
    assert result.digest_header == "SHA-256=6etJWsy84qDpW74Hm5+eQsyuIDccFRbj7TA20qeHz1M="
    assert result.key_format is KeyFormat.HEX
    assert result.signature_base == (
        "(request-target): post /pts/v2/payments\n"
        "host: apitest.cybersource.com\n"
        "date: Tue, 14 Nov 2023 22:13:20 GMT\n"
        "digest: SHA-256=6etJWsy84qDpW74Hm5+eQsyuIDccFRbj7TA20qeHz1M=\n"
        "v-c-merchant-id: m1"
    )
    assert result.signature_header == (
        'keyid="k1", algorithm="HmacSHA256", '
        'headers="(request-target) host date digest v-c-merchant-id", '
        'signature="gIA7hOtitRL+du0hEDOmLMqxAnPhORV8yrTLsuiGEII="'
    )


def test_sign_get_omits_digest(signer: RequestSigner, credentials: GatewayCredentials):
    ctx = signer.context(credentials, "GET", "/reporting/v3/report-definitions")

    result = signer.sign(ctx)

    assert result.digest_header is None
    assert "digest" not in result.signature_base
    assert 'headers="(request-target) host date v-c-merchant-id"' in result.signature_header
    assert result.signature_header.endswith('signature="5GMWeFLpxNTFbBHxbOo2/rF+uc4hBY7mmXtoSyjTWsQ="')


def test_sign_with_raw_secret(signer: RequestSigner):
    credentials = GatewayCredentials(
        merchant_id="m1",
        key_id="k1",
        secret_key="not-hex-secret!",
        host="apitest.cybersource.com",
    )
    result = signer.sign(signer.context(credentials, "GET", "/reporting/v3/report-definitions"))

    assert result.key_format is KeyFormat.RAW
    assert result.signature_header.endswith('signature="102kasjig3eddBBUbLYKWyBAhXwtSWAFL82DqT4XNTo="')


def test_headers_order_matches_signature_base(signer: RequestSigner, credentials: GatewayCredentials):
    result = signer.sign(signer.context(credentials, "POST", "/pts/v2/payments", PAYLOAD))

    advertised = result.signature_header.split('headers="')[1].split('"')[0].split(" ")
    base_names = [line.split(": ")[0] for line in result.signature_base.split("\n")]
    assert advertised == base_names


def test_request_headers_include_digest_only_with_body(signer: RequestSigner, credentials: GatewayCredentials):
    post = signer.sign(signer.context(credentials, "POST", "/pts/v2/payments", PAYLOAD))
    get = signer.sign(signer.context(credentials, "GET", "/reporting/v3/report-definitions"))

    post_headers = post.headers(credentials.host, credentials.merchant_id)
    get_headers = get.headers(credentials.host, credentials.merchant_id)

    assert post_headers["Digest"] == post.digest_header
    assert post_headers["Content-Type"] == "application/json"
    assert post_headers["Date"] == post.date_header
    assert post_headers["v-c-merchant-id"] == "m1"
    assert "Digest" not in get_headers


def test_sign_rejects_non_utf8_payload(signer: RequestSigner, credentials: GatewayCredentials):
    ctx = signer.context(credentials, "POST", "/pts/v2/payments", b"\xff\xfe")
    with pytest.raises(SigningError):
        signer.sign(ctx)


def test_signing_is_deterministic(signer: RequestSigner, credentials: GatewayCredentials):
    ctx = signer.context(credentials, "POST", "/pts/v2/payments", PAYLOAD)
    assert signer.sign(ctx) == signer.sign(ctx)


@pytest.mark.parametrize("secret", ["c2VjcmV0", "AAECAwQFBgc=", "Zm9vYmFy"])
def test_base64_secret_round_trips(secret: str):
    key, key_format = decode_secret_key(secret)
    assert key_format is KeyFormat.BASE64
    assert base64.b64encode(key).decode("ascii") == secret


@pytest.mark.parametrize(
    "field, value",
    [
        ("host", "api.cybersource.com"),
        ("merchant_id", "m2"),
        ("timestamp", datetime(2023, 11, 14, 22, 13, 21, tzinfo=timezone.utc)),
        ("payload", b'{"amount":"10.01"}'),
    ],
)
def test_changing_any_signed_value_changes_signature(signer: RequestSigner, credentials: GatewayCredentials, field, value):
    ctx = signer.context(credentials, "POST", "/pts/v2/payments", PAYLOAD)

    original = signer.sign(ctx)
    changed = signer.sign(replace(ctx, **{field: value}))

    assert changed.signature_header != original.signature_header
