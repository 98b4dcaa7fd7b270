"""Unit tests for the payment gateway client (HTTP mocked with httpx.MockTransport)"""

import json
import httpx
import pytest
from datetime import datetime, timezone
from typing import Callable, List
from prometheus_client import REGISTRY
from donation_gateway.domain.models import (
    AuthFailed,
    Authorized,
    CaptureContext,
    Declined,
    GatewayCredentials,
    KeyFormat,
    Pending,
    ServiceNotEnabled,
    TransportError,
    Unexpected,
)
from donation_gateway.domain.signing import RequestSigner
from donation_gateway.infrastructure.clients.gateway import (
    PAYMENTS_RESOURCE,
    CAPTURE_CONTEXT_RESOURCES,
    PROBE_RESOURCE,
    GatewayClient,
    classify_capture_context_response,
    classify_payment_response,
)

FIXED_TIME = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


@pytest.fixture
def credentials() -> GatewayCredentials:
    return GatewayCredentials(
        merchant_id="m1",
        key_id="k1",
        secret_key="00112233445566778899aabbccddeeff",
        host="apitest.cybersource.com",
    )


def make_client(credentials: GatewayCredentials, handler: Callable[[httpx.Request], httpx.Response]) -> GatewayClient:
    return GatewayClient(
        credentials=credentials,
        signer=RequestSigner(clock=lambda: FIXED_TIME),
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


def recording(responses: List[httpx.Response], calls: List[httpx.Request]) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return responses[len(calls) - 1]

    return handler


@pytest.mark.parametrize(
    "status_code, body, expected",
    [
        (201, {"id": "t1", "status": "AUTHORIZED"}, Authorized),
        (200, {"id": "t1", "status": "AUTHORIZED"}, Authorized),
        (201, {"id": "t1", "status": "PENDING"}, Pending),
        (201, {"id": "t1", "status": "DECLINED"}, Declined),
        (201, {"id": "t1", "status": "AUTHORIZED_PENDING_REVIEW"}, Declined),
        (401, {"response": {"rmsg": "Authentication Failed"}}, AuthFailed),
        (404, {"message": "Resource not found"}, ServiceNotEnabled),
        (400, {"status": "INVALID_REQUEST"}, Unexpected),
        (502, {}, Unexpected),
    ],
)
def test_classify_payment_response(status_code: int, body: dict, expected: type):
    outcome = classify_payment_response(status_code, json.dumps(body))
    assert type(outcome) is expected


def test_classify_keeps_raw_body_and_transaction_id():
    raw = '{"id":"7001","status":"AUTHORIZED"}'
    outcome = classify_payment_response(201, raw)
    assert outcome == Authorized(transaction_id="7001", status="AUTHORIZED", raw_response=raw)


def test_classify_non_json_success_body_is_unexpected():
    outcome = classify_payment_response(201, "<html>gateway maintenance</html>")
    assert isinstance(outcome, Unexpected)
    assert outcome.raw_response == "<html>gateway maintenance</html>"


async def test_submit_payment_sends_signed_request(credentials: GatewayCredentials):
    calls: List[httpx.Request] = []
    client = make_client(
        credentials,
        recording([httpx.Response(201, json={"id": "7001", "status": "AUTHORIZED"})], calls),
    )

    outcome = await client.submit_payment({"amount": "10.00"}, reference_number="DON-1-abcdef")

    assert isinstance(outcome, Authorized)
    assert outcome.transaction_id == "7001"
    assert len(calls) == 1
    request = calls[0]
    assert request.method == "POST"
    assert str(request.url) == f"https://apitest.cybersource.com{PAYMENTS_RESOURCE}"
    assert request.content == b'{"amount":"10.00"}'
    assert request.headers["v-c-merchant-id"] == "m1"
    assert request.headers["Date"] == "Tue, 14 Nov 2023 22:13:20 GMT"
    assert request.headers["Digest"] == "SHA-256=6etJWsy84qDpW74Hm5+eQsyuIDccFRbj7TA20qeHz1M="
    assert request.headers["Signature"].endswith('signature="gIA7hOtitRL+du0hEDOmLMqxAnPhORV8yrTLsuiGEII="')
    assert client.last_key_format is KeyFormat.HEX


async def test_submit_payment_declined_keeps_raw_response(credentials: GatewayCredentials):
    raw = '{"id":"7002","status":"DECLINED","errorInformation":{"reason":"INSUFFICIENT_FUND"}}'
    client = make_client(credentials, lambda request: httpx.Response(201, text=raw))

    outcome = await client.submit_payment({"amount": "10.00"})

    assert outcome == Declined(raw_response=raw, status="DECLINED")


async def test_submit_payment_timeout_is_transport_error(credentials: GatewayCredentials):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    outcome = await make_client(credentials, handler).submit_payment({"amount": "10.00"})

    assert isinstance(outcome, TransportError)
    assert "timeout" in outcome.message


async def test_submit_payment_connect_error_is_transport_error(credentials: GatewayCredentials):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    outcome = await make_client(credentials, handler).submit_payment({"amount": "10.00"})

    assert isinstance(outcome, TransportError)


async def test_verify_credentials_probe_401_short_circuits(credentials: GatewayCredentials):
    calls: List[httpx.Request] = []
    client = make_client(credentials, recording([httpx.Response(401, text='{"response":{}}')], calls))

    outcome = await client.verify_credentials()

    assert isinstance(outcome, AuthFailed)
    assert outcome.http_status == 401
    assert len(calls) == 1
    assert calls[0].method == "GET"
    assert calls[0].url.path == PROBE_RESOURCE
    assert "Digest" not in calls[0].headers


async def test_verify_credentials_inconclusive_probe_then_authorized(credentials: GatewayCredentials):
    calls: List[httpx.Request] = []
    client = make_client(
        credentials,
        recording(
            [
                httpx.Response(403, text="forbidden"),
                httpx.Response(201, json={"id": "9001", "status": "AUTHORIZED"}),
            ],
            calls,
        ),
    )

    outcome = await client.verify_credentials()

    assert isinstance(outcome, Authorized)
    assert [c.method for c in calls] == ["GET", "POST"]
    assert calls[1].url.path == PAYMENTS_RESOURCE
    sent = json.loads(calls[1].content)
    assert sent["processingInformation"]["capture"] is False
    assert sent["clientReferenceInformation"]["code"].startswith("TEST-")


async def test_verify_credentials_payment_404_is_service_not_enabled(credentials: GatewayCredentials):
    calls: List[httpx.Request] = []
    client = make_client(
        credentials,
        recording([httpx.Response(200, json={}), httpx.Response(404, text="not found")], calls),
    )

    outcome = await client.verify_credentials()

    assert isinstance(outcome, ServiceNotEnabled)
    assert len(calls) == 2


async def test_verify_credentials_probe_transport_error_stops(credentials: GatewayCredentials):
    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("unreachable", request=request)

    outcome = await make_client(credentials, handler).verify_credentials()

    assert isinstance(outcome, TransportError)
    assert len(calls) == 1


def gateway_outcome_count(operation: str, outcome: str) -> float:
    value = REGISTRY.get_sample_value("gateway_outcome_total", {"operation": operation, "outcome": outcome})
    return value or 0.0


async def test_verify_credentials_records_inconclusive_reporting_check(credentials: GatewayCredentials, caplog):
    before_probe = gateway_outcome_count("probe", "inconclusive")
    before_payment = gateway_outcome_count("test_payment", "authorized")
    client = make_client(
        credentials,
        recording(
            [
                httpx.Response(403, text="forbidden"),
                httpx.Response(201, json={"id": "9001", "status": "AUTHORIZED"}),
            ],
            [],
        ),
    )

    with caplog.at_level("INFO"):
        await client.verify_credentials()

    assert gateway_outcome_count("probe", "inconclusive") == before_probe + 1
    assert gateway_outcome_count("test_payment", "authorized") == before_payment + 1
    summaries = [r for r in caplog.records if getattr(r, "step", None) == "gateway_call"]
    assert [(r.operation, r.outcome, r.http_status) for r in summaries] == [
        ("probe", "inconclusive", 403),
        ("test_payment", "authorized", 201),
    ]


@pytest.mark.parametrize(
    "status_code, text, expected",
    [
        (200, "eyJhbGciOi.jwt", CaptureContext),
        (201, "eyJhbGciOi.jwt", CaptureContext),
        (200, "   ", Unexpected),
        (401, "unauthorized", AuthFailed),
        (404, "not found", ServiceNotEnabled),
        (500, "boom", Unexpected),
    ],
)
def test_classify_capture_context_response(status_code: int, text: str, expected: type):
    assert isinstance(classify_capture_context_response(status_code, text, "/flex/v2/sessions"), expected)


async def test_create_capture_context_uses_flex_sessions(credentials: GatewayCredentials):
    calls: List[httpx.Request] = []
    client = make_client(credentials, recording([httpx.Response(201, text="eyJhbGciOi.jwt\n")], calls))

    outcome = await client.create_capture_context(["https://donaciones.example.org"])

    assert outcome == CaptureContext(token="eyJhbGciOi.jwt", resource="/flex/v2/sessions")
    assert len(calls) == 1
    assert calls[0].method == "POST"
    assert calls[0].url.path == "/flex/v2/sessions"
    assert calls[0].headers["Digest"].startswith("SHA-256=")
    assert 'keyid="k1"' in calls[0].headers["Signature"]
    assert json.loads(calls[0].content) == {
        "clientVersion": "v2",
        "targetOrigins": ["https://donaciones.example.org"],
        "allowedCardNetworks": ["VISA", "MASTERCARD", "AMEX", "DISCOVER"],
        "allowedPaymentTypes": ["CARD"],
    }


async def test_create_capture_context_falls_back_to_microform(credentials: GatewayCredentials):
    calls: List[httpx.Request] = []
    client = make_client(
        credentials,
        recording([httpx.Response(404, text="not found"), httpx.Response(200, text="eyJhbGciOi.fallback")], calls),
    )

    outcome = await client.create_capture_context(["https://a.example"])

    assert isinstance(outcome, CaptureContext)
    assert outcome.resource == "/microform/v2/sessions"
    assert [c.url.path for c in calls] == list(CAPTURE_CONTEXT_RESOURCES)
    # Each attempt is signed for its own resource
    assert calls[0].headers["Signature"] != calls[1].headers["Signature"]
    assert calls[0].content == calls[1].content


async def test_create_capture_context_both_rejected(credentials: GatewayCredentials):
    calls: List[httpx.Request] = []
    client = make_client(
        credentials,
        recording([httpx.Response(404, text="not found"), httpx.Response(401, text="unauthorized")], calls),
    )

    outcome = await client.create_capture_context(["https://a.example"])

    assert isinstance(outcome, AuthFailed)
    assert outcome.raw_response == "unauthorized"
    assert len(calls) == 2


async def test_create_capture_context_transport_error_skips_fallback(credentials: GatewayCredentials):
    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("unreachable", request=request)

    outcome = await make_client(credentials, handler).create_capture_context(["https://a.example"])

    assert isinstance(outcome, TransportError)
    assert len(calls) == 1
