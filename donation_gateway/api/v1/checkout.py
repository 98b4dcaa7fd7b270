"""Hosted checkout endpoints: form field signing and the gateway's browser callback"""

import logging
from typing import Callable, Dict
from urllib.parse import urlencode

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from donation_gateway.api.dependencies import get_mail_client, get_request_id
from donation_gateway.api.v1.schemas import CheckoutSignRequest, CheckoutSignResponse
from donation_gateway.config import CHECKOUT_URLS, settings
from donation_gateway.domain.checkout import build_checkout_fields, is_successful_callback, verify_fields
from donation_gateway.domain.models import DonationNotification
from donation_gateway.domain.payments import format_amount, generate_reference_number
from donation_gateway.infrastructure.clients.mail import MailTransferClient
from donation_gateway.infrastructure.database.session import get_session_factory
from donation_gateway.services.notifications import run_dispatch
from donation_gateway.utils.date_utils import format_display_date, utc_now

router = APIRouter()

RESULT_PATH = "/pago/resultado"
ANONYMOUS_DONOR = "Donante anónimo"


def result_redirect(params: Dict[str, str]) -> RedirectResponse:
    """302 to the frontend result page carrying only the non-empty params"""
    url = settings.frontend_base_url.rstrip("/") + RESULT_PATH
    query = urlencode({key: value for key, value in params.items() if value})
    if query:
        url = f"{url}?{query}"
    return RedirectResponse(url=url, status_code=302)


@router.post("/checkout/sign", response_model=CheckoutSignResponse)
def sign_checkout(body: CheckoutSignRequest, request: Request):
    """Signed form fields for posting the browser to the hosted checkout page"""
    if not (settings.checkout_access_key and settings.checkout_profile_id and settings.checkout_secret_key):
        logging.error("Hosted checkout credentials not configured", extra={"request_id": get_request_id(request)})
        raise HTTPException(status_code=500, detail="Hosted checkout not configured")

    if body.test_mode is None:
        checkout_url = settings.checkout_url
    else:
        checkout_url = CHECKOUT_URLS["test" if body.test_mode else "production"]

    fields = build_checkout_fields(
        access_key=settings.checkout_access_key,
        profile_id=settings.checkout_profile_id,
        secret_key=settings.checkout_secret_key,
        reference_number=body.reference_number or generate_reference_number(),
        amount=format_amount(body.amount),
        currency=body.currency.upper(),
        signed_at=utc_now(),
        locale=body.locale,
        bill_to={
            "email": body.donor_email or "",
            "forename": body.donor_first_name or "",
            "surname": body.donor_last_name or "",
            "address_line1": body.bill_address1 or "",
            "city": body.bill_city or "",
            "country": body.bill_country or "",
        },
    )
    logging.info(
        "Hosted checkout fields signed",
        extra={"request_id": get_request_id(request), "reference_number": fields["reference_number"]},
    )
    return CheckoutSignResponse(success=True, checkout_url=checkout_url, fields=fields)


@router.post("/checkout/return")
async def checkout_return(
    request: Request,
    background_tasks: BackgroundTasks,
    mail_client: MailTransferClient = Depends(get_mail_client),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    """
    Receive the signed form POST the gateway sends after hosted checkout.

    Flow:
    1. Verify the HMAC signature over signed_field_names (400 if missing or invalid)
    2. ACCEPT or reason code 100 counts as success
    3. On success with a reference number, schedule the payment notification
    4. Redirect the browser to the frontend result page
    """
    request_id = get_request_id(request)
    form = await request.form()
    params = {key: str(value) for key, value in form.items()}

    if not settings.checkout_secret_key:
        logging.error("Hosted checkout secret key not configured", extra={"request_id": request_id})
        return result_redirect({"message": "Configuración incompleta"})

    if not verify_fields(settings.checkout_secret_key, params):
        logging.error("Checkout callback signature verification failed", extra={"request_id": request_id})
        raise HTTPException(status_code=400, detail="Invalid signature")

    success = is_successful_callback(params)
    reference_number = params.get("req_reference_number") or params.get("reference_number", "")
    amount = params.get("req_amount") or params.get("auth_amount", "")
    currency = params.get("req_currency") or params.get("auth_currency", "")
    email = params.get("req_bill_to_email", "")
    forename = params.get("req_bill_to_forename", "")
    surname = params.get("req_bill_to_surname", "")
    transaction_id = params.get("transaction_id", "")
    card_type = params.get("req_card_type", "")
    card_last4 = params.get("req_card_number", "")[-4:]

    logging.info(
        "Checkout callback verified",
        extra={
            "request_id": request_id,
            "reference_number": reference_number,
            "decision": params.get("decision", ""),
            "reason_code": params.get("reason_code", ""),
        },
    )

    notify = success and bool(reference_number)
    if success and not reference_number:
        # Reference number is the idempotency key
        logging.warning(
            "Successful checkout callback without reference number, notification skipped",
            extra={"request_id": request_id, "transaction_id": transaction_id},
        )

    if notify:
        notification = DonationNotification(
            donor_name=f"{forename} {surname}".strip() or ANONYMOUS_DONOR,
            donor_email=email or None,
            amount_text=amount,
            currency_code=currency or "GTQ",
            reference_number=reference_number,
            occurred_at=format_display_date(utc_now()),
            transaction_id=transaction_id or None,
            card_brand=card_type or None,
            card_last4=card_last4 or None,
        )
        background_tasks.add_task(run_dispatch, session_factory, mail_client, notification)

    return result_redirect(
        {
            "decision": params.get("decision", ""),
            "reason_code": params.get("reason_code", ""),
            "req_reference_number": reference_number,
            "req_amount": amount,
            "req_currency": currency,
            "req_bill_to_email": email,
            "req_bill_to_forename": forename,
            "req_bill_to_surname": surname,
            "transaction_id": transaction_id,
            "req_card_type": card_type,
            "req_card_number": f"xxxx{card_last4}" if card_last4 else "",
            "message": params.get("message", ""),
            "notified": "1" if notify else "0",
        }
    )
