"""Payment gateway HTTP client with signed requests and response classification"""

import json
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from donation_gateway.config import settings
from donation_gateway.domain.models import (
    AuthFailed,
    Authorized,
    CaptureContext,
    Declined,
    GatewayCredentials,
    GatewayOutcome,
    KeyFormat,
    Pending,
    ServiceNotEnabled,
    TransportError,
    Unexpected,
)
from donation_gateway.domain.payments import build_capture_context_request, build_test_payment, encode_payload
from donation_gateway.domain.signing import RequestSigner
from donation_gateway.infrastructure.observability.logging import log_gateway_outcome
from donation_gateway.infrastructure.observability.metrics import gateway_latency_histogram, record_gateway_outcome

PAYMENTS_RESOURCE = "/pts/v2/payments"
PROBE_RESOURCE = "/reporting/v3/report-definitions"
PROBE_INCONCLUSIVE = "inconclusive"
CAPTURE_CONTEXT_RESOURCES = ("/flex/v2/sessions", "/microform/v2/sessions")


def parse_body(text: str) -> Optional[Any]:
    """JSON body when parseable, else None (caller keeps the raw text)"""
    try:
        return json.loads(text)
    except ValueError:
        return None


def classify_payment_response(status_code: int, text: str) -> GatewayOutcome:
    """
    Map a payment response to a typed outcome.

    - 200/201: AUTHORIZED -> Authorized, PENDING -> Pending, other status -> Declined
    - 401: AuthFailed (bad credentials)
    - 404: ServiceNotEnabled (account lacks the payment capability)
    - anything else: Unexpected
    """
    if status_code in (200, 201):
        body = parse_body(text)
        if not isinstance(body, dict):
            return Unexpected(http_status=status_code, raw_response=text)
        status = body.get("status")
        transaction_id = body.get("id")
        if status == "AUTHORIZED":
            return Authorized(transaction_id=transaction_id, status=status, raw_response=text)
        if status == "PENDING":
            return Pending(transaction_id=transaction_id, raw_response=text)
        return Declined(raw_response=text, status=status)

    if status_code == 401:
        return AuthFailed(http_status=status_code, raw_response=text)
    if status_code == 404:
        return ServiceNotEnabled(http_status=status_code, raw_response=text)
    return Unexpected(http_status=status_code, raw_response=text)


def classify_capture_context_response(status_code: int, text: str, resource: str) -> GatewayOutcome:
    """A 2xx body is the capture context JWT itself; 401 and 404 mean the tokenizer is not enabled"""
    if 200 <= status_code < 300:
        token = text.strip()
        if not token:
            return Unexpected(http_status=status_code, raw_response=text)
        return CaptureContext(token=token, resource=resource)

    if status_code == 401:
        return AuthFailed(http_status=status_code, raw_response=text)
    if status_code == 404:
        return ServiceNotEnabled(http_status=status_code, raw_response=text)
    return Unexpected(http_status=status_code, raw_response=text)


def credentials_from_settings() -> GatewayCredentials:
    key_format = None if settings.gateway_key_format == "auto" else KeyFormat(settings.gateway_key_format)
    return GatewayCredentials(
        merchant_id=settings.gateway_merchant_id,
        key_id=settings.gateway_key_id,
        secret_key=settings.gateway_secret_key,
        host=settings.gateway_host,
        key_format=key_format,
    )


class GatewayClient:
    """Client for the card payment gateway REST API"""

    def __init__(
        self,
        credentials: GatewayCredentials | None = None,
        signer: RequestSigner | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.credentials = credentials or credentials_from_settings()
        self.signer = signer or RequestSigner()
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport
        self.last_key_format: Optional[KeyFormat] = None

    async def _send(self, client: httpx.AsyncClient, method: str, resource: str, body: Optional[bytes]) -> httpx.Response:
        ctx = self.signer.context(self.credentials, method, resource, body)
        signed = self.signer.sign(ctx)
        self.last_key_format = signed.key_format

        headers = signed.headers(self.credentials.host, self.credentials.merchant_id)
        with gateway_latency_histogram.time():
            return await client.request(
                method,
                f"https://{self.credentials.host}{resource}",
                headers=headers,
                content=body,
            )

    async def _call(
        self,
        operation: str,
        method: str,
        resource: str,
        body: Optional[bytes] = None,
        reference_number: Optional[str] = None,
    ) -> httpx.Response | TransportError:
        """Issue one signed request; network failures become a TransportError outcome"""
        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                return await self._send(client, method, resource, body)
        except httpx.TimeoutException as e:
            outcome = TransportError(message=f"Gateway timeout after {self.timeout}s")
            logging.error(f"Gateway timeout: {e}", extra={"operation": operation, "reference_number": reference_number})
        except httpx.HTTPError as e:
            outcome = TransportError(message=f"Gateway transport error: {e}")
            logging.error(f"Gateway transport error: {e}", extra={"operation": operation, "reference_number": reference_number})

        self._record(operation, outcome.kind, None, start_time, reference_number)
        return outcome

    def _record(
        self,
        operation: str,
        outcome_kind: str,
        http_status: Optional[int],
        start_time: float,
        reference_number: Optional[str] = None,
    ) -> None:
        record_gateway_outcome(operation, outcome_kind)
        log_gateway_outcome(operation, outcome_kind, http_status, (time.time() - start_time) * 1000, reference_number)

    def _finish(
        self,
        operation: str,
        response: httpx.Response,
        outcome: GatewayOutcome,
        start_time: float,
        reference_number: Optional[str] = None,
    ) -> GatewayOutcome:
        self._record(operation, outcome.kind, response.status_code, start_time, reference_number)
        if isinstance(outcome, Unexpected):
            logging.error(
                "Unexpected gateway response",
                extra={"operation": operation, "http_status": response.status_code, "raw_response": response.text},
            )
        return outcome

    async def submit_payment(self, payload: Dict[str, Any], reference_number: Optional[str] = None) -> GatewayOutcome:
        """
        Submit a payment. No automatic retries: retry policy belongs to the caller.

        Raises:
            SigningError: payload could not be signed (before any network I/O)
        """
        body = encode_payload(payload)
        start_time = time.time()
        response = await self._call("payment", "POST", PAYMENTS_RESOURCE, body, reference_number)
        if isinstance(response, TransportError):
            return response

        outcome = classify_payment_response(response.status_code, response.text)
        return self._finish("payment", response, outcome, start_time, reference_number)

    async def verify_credentials(self) -> GatewayOutcome:
        """
        Two-step credential diagnostic.

        1. Signed GET against a read-only reporting resource. A 401 is
           conclusive (AuthFailed) and no payment is attempted. Any other
           status is inconclusive.
        2. Signed POST of a clearly marked, authorization-only test payment,
           classified like a real payment.
        """
        start_time = time.time()
        probe = await self._call("probe", "GET", PROBE_RESOURCE)
        if isinstance(probe, TransportError):
            return probe

        if probe.status_code == 401:
            outcome = AuthFailed(http_status=401, raw_response=probe.text)
            return self._finish("probe", probe, outcome, start_time)

        self._record("probe", PROBE_INCONCLUSIVE, probe.status_code, start_time)
        logging.info(
            "Credential probe inconclusive, attempting test payment",
            extra={"http_status": probe.status_code, "key_format": self.last_key_format},
        )

        start_time = time.time()
        body = encode_payload(build_test_payment())
        response = await self._call("test_payment", "POST", PAYMENTS_RESOURCE, body)
        if isinstance(response, TransportError):
            return response

        outcome = classify_payment_response(response.status_code, response.text)
        return self._finish("test_payment", response, outcome, start_time)

    async def create_capture_context(self, target_origins: List[str]) -> GatewayOutcome:
        """
        Request a capture context for the browser card tokenizer.

        Flow:
        1. Signed POST to the Flex v2 sessions resource
        2. Any non-2xx reply falls back once to the Microform v2 sessions resource
        3. The last reply is classified; a transport error stops immediately

        The returned JWT initializes the widget that produces the transient
        token later consumed by submit_payment.
        """
        body = encode_payload(build_capture_context_request(target_origins))
        outcome: GatewayOutcome | None = None

        for resource in CAPTURE_CONTEXT_RESOURCES:
            start_time = time.time()
            response = await self._call("capture_context", "POST", resource, body)
            if isinstance(response, TransportError):
                return response

            outcome = classify_capture_context_response(response.status_code, response.text, resource)
            self._finish("capture_context", response, outcome, start_time)
            if isinstance(outcome, CaptureContext):
                return outcome
            logging.warning(
                "Capture context request rejected",
                extra={"resource": resource, "http_status": response.status_code},
            )

        return outcome
