"""POST /v1/notifications/donation - trigger (or retry) donation emails"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from donation_gateway.api.dependencies import get_mail_client, get_request_id
from donation_gateway.api.v1.schemas import NotificationRequest, NotificationResponse
from donation_gateway.domain.models import DonationNotification
from donation_gateway.infrastructure.clients.mail import MailTransferClient
from donation_gateway.infrastructure.database.session import get_db
from donation_gateway.services.notifications import build_dispatcher

router = APIRouter()


@router.post("/notifications/donation", response_model=NotificationResponse)
async def notify_donation(
    body: NotificationRequest,
    request: Request,
    db: Session = Depends(get_db),
    mail_client: MailTransferClient = Depends(get_mail_client),
):
    """
    Send accounting and donor emails for a completed donation.

    Already-notified references are skipped unless skip_idempotency is set.
    Responds 500 when any message failed; the failure is recorded in the
    notification log so a later call retries it.
    """
    request_id = get_request_id(request)
    notification = DonationNotification(
        donor_name=body.donor_name,
        donor_email=body.donor_email or None,
        amount_text=body.amount,
        currency_code=body.currency,
        reference_number=body.reference,
        occurred_at=body.date,
        transaction_id=body.transaction_id,
        card_brand=body.card_type,
        card_last4=body.card_last4,
    )

    try:
        result = await build_dispatcher(db, mail_client).dispatch(
            notification, skip_idempotency=body.skip_idempotency
        )
        db.commit()
    except Exception as e:
        db.rollback()
        logging.error(
            f"Notification dispatch failed: {e}",
            extra={"request_id": request_id, "reference_number": body.reference},
            exc_info=True,
        )
        raise HTTPException(status_code=500, detail="Internal server error")

    response = NotificationResponse(
        success=not result.errors,
        skipped=result.skipped,
        reason=result.reason,
        sent=result.sent,
        errors=result.errors,
    )
    if result.errors:
        return JSONResponse(status_code=500, content=response.model_dump())
    return response
