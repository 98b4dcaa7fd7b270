"""POST /v1/gateway/credential-test - diagnose operator-supplied gateway credentials"""

import logging
from typing import List, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request

from donation_gateway.api.v1.schemas import CredentialTestRequest, CredentialTestResponse
from donation_gateway.api.dependencies import get_gateway_transport, get_request_id
from donation_gateway.config import GATEWAY_HOSTS
from donation_gateway.domain.exceptions import SigningError
from donation_gateway.domain.models import (
    AuthFailed,
    Authorized,
    GatewayCredentials,
    GatewayOutcome,
    KeyFormat,
    Pending,
    ServiceNotEnabled,
    TransportError,
)
from donation_gateway.infrastructure.clients.gateway import GatewayClient, parse_body

router = APIRouter()


def auth_failed_suggestions(environment: str) -> List[str]:
    return [
        "Verify that the Merchant ID matches exactly (no spaces, correct case)",
        "Verify that the Key ID is the API Key ID shown in the gateway portal",
        "Verify that the Shared Secret Key was copied completely",
        f"Confirm the credentials were issued for the {environment} environment",
        "Check whether the API key has expired or been regenerated",
    ]


SERVICE_NOT_ENABLED_SUGGESTIONS = [
    "The credentials were accepted but the account cannot process card payments",
    "Ask the gateway operator to enable the payments (card authorization) service for this merchant ID",
    "No credential change is needed; retry once the service is enabled",
]


def describe(outcome: GatewayOutcome, environment: str) -> CredentialTestResponse:
    """Operator-facing summary of a credential test outcome"""
    if isinstance(outcome, TransportError):
        return CredentialTestResponse(
            success=False,
            outcome=outcome.kind,
            message=outcome.message,
            suggestions=["Check network connectivity to the gateway and retry"],
        )

    response = parse_body(outcome.raw_response)
    if response is None:
        response = {"raw": outcome.raw_response}

    if isinstance(outcome, (Authorized, Pending)):
        return CredentialTestResponse(
            success=True,
            outcome=outcome.kind,
            message="Authentication successful! Credentials are valid.",
            transaction_id=outcome.transaction_id,
            payment_status="AUTHORIZED" if isinstance(outcome, Authorized) else "PENDING",
            response=response,
        )
    if isinstance(outcome, AuthFailed):
        return CredentialTestResponse(
            success=False,
            outcome=outcome.kind,
            message="Authentication failed (401)",
            http_status=outcome.http_status,
            response=response,
            suggestions=auth_failed_suggestions(environment),
        )
    if isinstance(outcome, ServiceNotEnabled):
        return CredentialTestResponse(
            success=False,
            outcome=outcome.kind,
            message="Payment service not enabled for this merchant (404)",
            http_status=outcome.http_status,
            response=response,
            suggestions=SERVICE_NOT_ENABLED_SUGGESTIONS,
        )
    # Declined still proves the signature was accepted
    http_status = getattr(outcome, "http_status", None)
    return CredentialTestResponse(
        success=outcome.kind == "declined",
        outcome=outcome.kind,
        message=f"Unexpected response: {http_status}" if http_status else "Test payment was declined",
        http_status=http_status,
        response=response,
    )


@router.post("/gateway/credential-test", response_model=CredentialTestResponse)
async def run_credential_test(
    body: CredentialTestRequest,
    request: Request,
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_gateway_transport),
):
    """
    Run the probe + test payment diagnostic against the given credentials.

    Credentials come from the request and are never stored or logged.
    """
    request_id = get_request_id(request)
    host = GATEWAY_HOSTS[body.environment]
    credentials = GatewayCredentials(
        merchant_id=body.merchant_id.strip(),
        key_id=body.key_id.strip(),
        secret_key=body.secret_key,
        host=host,
        key_format=KeyFormat(body.key_format) if body.key_format else None,
    )
    logging.info(
        "Starting gateway credential test",
        extra={
            "request_id": request_id,
            "host": host,
            "merchant_id_length": len(credentials.merchant_id),
            "key_id_suffix": credentials.key_id[-6:],
            "secret_key_length": len(credentials.secret_key),
        },
    )

    client = GatewayClient(credentials=credentials, transport=transport)
    try:
        outcome = await client.verify_credentials()
    except SigningError as e:
        # Declared key format does not match the secret
        raise HTTPException(status_code=400, detail=str(e))

    result = describe(outcome, body.environment)
    result.key_format = client.last_key_format.value if client.last_key_format else None
    return result
