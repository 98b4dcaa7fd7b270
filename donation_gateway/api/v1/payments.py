"""Tokenized card donation endpoints: capture context for the browser tokenizer and payment"""

import logging
from datetime import datetime, timezone
from typing import Callable

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from donation_gateway.api.dependencies import (
    get_client_ip,
    get_gateway_client,
    get_mail_client,
    get_rate_limiter,
    get_request_id,
)
from donation_gateway.api.v1.schemas import (
    CaptureContextRequest,
    CaptureContextResponse,
    PaymentRequest,
    PaymentResponse,
)
from donation_gateway.domain.exceptions import InvalidDonationError, SigningError
from donation_gateway.domain.models import (
    AuthFailed,
    Authorized,
    CaptureContext,
    DonationNotification,
    DonorDetails,
    GatewayOutcome,
    Pending,
    ServiceNotEnabled,
    TransportError,
)
from donation_gateway.domain.payments import (
    build_token_payment,
    format_amount,
    generate_reference_number,
    validate_donation,
)
from donation_gateway.domain.rate_limit import RateLimiter
from donation_gateway.infrastructure.clients.gateway import GatewayClient, parse_body
from donation_gateway.infrastructure.clients.mail import MailTransferClient
from donation_gateway.infrastructure.database.repositories import DonationRepository
from donation_gateway.infrastructure.database.session import get_db, get_session_factory
from donation_gateway.infrastructure.observability.metrics import rate_limited_counter
from donation_gateway.services.notifications import run_dispatch
from donation_gateway.utils.date_utils import format_display_date

router = APIRouter()

RATE_LIMITED_MESSAGE = "Demasiados intentos de pago. Por favor espera una hora antes de intentar de nuevo."

TOKENIZER_NOT_ENABLED_MESSAGE = (
    "El servicio Flex Microform no está habilitado para esta cuenta. "
    "Contacta a NeoNet/VisaNet para solicitar la activación del servicio."
)
TOKENIZER_SUGGESTION = (
    "Contacta a NeoNet/VisaNet y solicita la habilitación del servicio 'Flex Microform' "
    "para tokenización segura de tarjetas."
)


def _capture_context_failure(outcome: GatewayOutcome) -> HTTPException:
    if isinstance(outcome, TransportError):
        return HTTPException(status_code=502, detail={"status": "ERROR", "message": outcome.message})

    if isinstance(outcome, AuthFailed):
        message = TOKENIZER_NOT_ENABLED_MESSAGE
    elif isinstance(outcome, ServiceNotEnabled):
        message = "Endpoint no encontrado. El servicio Flex Microform puede no estar habilitado."
    else:
        message = f"Gateway error ({outcome.http_status})"
    body = parse_body(outcome.raw_response)
    return HTTPException(
        status_code=502,
        detail={
            "status": outcome.kind.upper(),
            "message": message,
            "http_status": outcome.http_status,
            "details": body if body is not None else {"raw_response": outcome.raw_response},
            "suggestion": TOKENIZER_SUGGESTION,
        },
    )


def _save_donation(
    db: Session,
    reference_number: str,
    donor: DonorDetails,
    body: PaymentRequest,
    outcome: Authorized | Pending,
    request_id: str,
) -> None:
    """Best-effort: a failed save must never fail a payment the gateway accepted"""
    try:
        DonationRepository(db).create(
            reference_number=reference_number,
            donor=donor,
            amount=body.amount,
            currency=body.currency,
            donation_type=body.donation_type,
            confirmed=isinstance(outcome, Authorized),
            transaction_id=outcome.transaction_id,
            gateway_response=parse_body(outcome.raw_response),
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logging.warning(
            f"Donation record not saved (non-critical): {e}",
            extra={"request_id": request_id, "reference_number": reference_number},
        )


def _failure_response(outcome: GatewayOutcome, reference_number: str) -> HTTPException:
    if isinstance(outcome, TransportError):
        return HTTPException(
            status_code=502,
            detail={"status": "ERROR", "message": outcome.message, "reference_number": reference_number},
        )
    raw = outcome.raw_response
    body = parse_body(raw)
    return HTTPException(
        status_code=402 if outcome.kind == "declined" else 502,
        detail={
            "status": outcome.kind.upper(),
            "message": "Error processing payment",
            "reference_number": reference_number,
            "details": body if body is not None else {"raw_response": raw},
        },
    )


@router.post("/payments", response_model=PaymentResponse)
async def create_payment(
    body: PaymentRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    gateway_client: GatewayClient = Depends(get_gateway_client),
    mail_client: MailTransferClient = Depends(get_mail_client),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    """
    Charge a tokenized card donation.

    Flow:
    1. Rate limit by client IP
    2. Validate donor email and amount
    3. Build and submit the signed payment
    4. Persist the donation if authorized or pending (best-effort)
    5. Schedule donor/accounting notification for authorized payments
    """
    request_id = get_request_id(request)
    client_ip = get_client_ip(request)

    decision = rate_limiter.allow(client_ip)
    if not decision.allowed:
        rate_limited_counter.inc()
        logging.warning("Payment rate limit exceeded", extra={"request_id": request_id, "client_ip": client_ip})
        raise HTTPException(status_code=429, detail={"status": "RATE_LIMITED", "message": RATE_LIMITED_MESSAGE})

    donor = DonorDetails(
        first_name=body.first_name.strip(),
        last_name=body.last_name.strip(),
        email=body.email.strip().lower(),
        city=body.city.strip(),
        department=body.department.strip(),
        phone=body.phone,
        nit=body.nit,
    )
    try:
        validate_donation(donor, body.amount)
    except InvalidDonationError as e:
        raise HTTPException(status_code=400, detail={"status": "VALIDATION_ERROR", "message": str(e)})

    reference_number = generate_reference_number()
    payload = build_token_payment(donor, body.amount, body.currency, body.transient_token, reference_number)

    try:
        outcome = await gateway_client.submit_payment(payload, reference_number=reference_number)
    except SigningError as e:
        logging.error(f"Payment could not be signed: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Payment service misconfigured")

    if not isinstance(outcome, (Authorized, Pending)):
        raise _failure_response(outcome, reference_number)

    _save_donation(db, reference_number, donor, body, outcome, request_id)

    if isinstance(outcome, Authorized):
        notification = DonationNotification(
            donor_name=donor.full_name,
            donor_email=donor.email,
            amount_text=format_amount(body.amount),
            currency_code=body.currency,
            reference_number=reference_number,
            occurred_at=format_display_date(datetime.now(timezone.utc)),
            transaction_id=outcome.transaction_id,
        )
        background_tasks.add_task(run_dispatch, session_factory, mail_client, notification)

    return PaymentResponse(
        status="AUTHORIZED" if isinstance(outcome, Authorized) else "PENDING",
        message="Payment authorized successfully" if isinstance(outcome, Authorized) else "Payment is pending",
        reference_number=reference_number,
        transaction_id=outcome.transaction_id,
    )


@router.post("/payments/capture-context", response_model=CaptureContextResponse)
async def create_capture_context(
    body: CaptureContextRequest,
    request: Request,
    gateway_client: GatewayClient = Depends(get_gateway_client),
):
    """
    Start browser card tokenization.

    Flow:
    1. Require at least one target origin (400 otherwise)
    2. Request a signed capture context, falling back to the Microform resource
    3. Return the JWT the tokenizer widget is initialized with
    """
    request_id = get_request_id(request)
    target_origins = [origin.strip() for origin in body.target_origins if origin.strip()]
    if not target_origins:
        raise HTTPException(status_code=400, detail={"status": "VALIDATION_ERROR", "message": "targetOrigins is required"})

    credentials = gateway_client.credentials
    if not (credentials.merchant_id and credentials.key_id and credentials.secret_key):
        logging.error("Gateway credentials not configured", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Payment service not configured")

    try:
        outcome = await gateway_client.create_capture_context(target_origins)
    except SigningError as e:
        logging.error(f"Capture context could not be signed: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Payment service misconfigured")

    if not isinstance(outcome, CaptureContext):
        raise _capture_context_failure(outcome)

    logging.info(
        "Capture context generated",
        extra={"request_id": request_id, "resource": outcome.resource, "target_origins": target_origins},
    )
    return CaptureContextResponse(success=True, capture_context=outcome.token, resource=outcome.resource)
