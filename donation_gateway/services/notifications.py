"""Idempotent donation notification dispatch"""

import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from donation_gateway.config import settings
from donation_gateway.domain.exceptions import MailDeliveryError
from donation_gateway.domain.models import DeliverySettings, DispatchResult, DonationNotification
from donation_gateway.domain.templates import (
    build_template_vars,
    default_delivery_settings,
    render_accounting,
    render_donor,
)
from donation_gateway.infrastructure.clients.mail import MailTransferClient
from donation_gateway.infrastructure.database.repositories import (
    DonationSettingsRepository,
    NotificationLogRepository,
)
from donation_gateway.infrastructure.database.session import session_scope
from donation_gateway.infrastructure.observability.logging import log_notification_dispatch
from donation_gateway.infrastructure.observability.metrics import (
    mail_failure_counter,
    notification_dispatch_counter,
)

ALREADY_NOTIFIED = "already_notified"


class NotificationDispatcher:
    """
    Sends accounting and donor emails for a donation at most once per reference.

    Per reference: NOT_SENT -> (check log) -> ALREADY_SENT | SENDING -> SENT | FAILED

    The log lookup and the final upsert are separate statements; the unique
    key on the log table is the cross-process safety net.
    """

    def __init__(
        self,
        log_repository: NotificationLogRepository,
        settings_repository: DonationSettingsRepository,
        mail_client: MailTransferClient,
        default_sender_address: Optional[str] = None,
    ):
        self.log_repository = log_repository
        self.settings_repository = settings_repository
        self.mail_client = mail_client
        self.default_sender_address = default_sender_address or settings.smtp_username

    def _delivery_settings(self) -> DeliverySettings:
        config = self.settings_repository.get_active()
        if config is None:
            logging.info("No delivery settings configured, using built-in defaults")
            return default_delivery_settings()
        return config

    async def _send(self, channel: str, config: DeliverySettings, to: str, subject: str, html: str) -> Optional[str]:
        """Deliver one message; returns an error description instead of raising"""
        sender_address = config.sender_address or self.default_sender_address
        try:
            await self.mail_client.send(config.sender_name, sender_address, to, subject, html)
            return None
        except MailDeliveryError as e:
            mail_failure_counter.labels(channel=channel).inc()
            logging.error(f"Mail delivery failed: {e}", extra={"channel": channel, "to": to})
            return str(e)

    async def dispatch(self, notification: DonationNotification, skip_idempotency: bool = False) -> DispatchResult:
        """
        Notify accounting, then the donor, then record the outcome.

        Steps:
        1. Skip entirely if the log already holds a "sent" entry for the reference
        2. Load delivery settings (built-in defaults when none are configured)
        3. One accounting message per configured recipient, if enabled
        4. One donor message, if enabled and the donor gave an email
        5. Upsert the log entry: "sent", or "failed" with the joined errors
        """
        reference = notification.reference_number

        if not skip_idempotency:
            existing = self.log_repository.find(reference)
            if existing is not None and existing.status == "sent":
                notification_dispatch_counter.labels(result="skipped").inc()
                logging.info("Already notified, skipping", extra={"reference_number": reference})
                return DispatchResult(skipped=True, reason=ALREADY_NOTIFIED)

        config = self._delivery_settings()
        variables = build_template_vars(notification)
        result = DispatchResult()

        if config.send_accounting_email and config.accounting_emails:
            subject, html = render_accounting(config, variables)
            for email in config.accounting_emails:
                error = await self._send("accounting", config, email, subject, html)
                if error:
                    result.errors.append(f"accounting({email}): {error}")
                else:
                    result.sent += 1

        if config.send_donor_email and config.donor_email_enabled and notification.donor_email:
            subject, html = render_donor(config, variables)
            error = await self._send("donor", config, notification.donor_email, subject, html)
            if error:
                result.errors.append(f"donor: {error}")
            else:
                result.sent += 1

        result.status = "failed" if result.errors else "sent"
        self.log_repository.upsert(
            reference,
            status=result.status,
            error_message="; ".join(result.errors) or None,
            transaction_id=notification.transaction_id,
        )

        notification_dispatch_counter.labels(result=result.status).inc()
        log_notification_dispatch(reference, result.status, result.sent, result.errors)
        return result


def build_dispatcher(db: Session, mail_client: MailTransferClient) -> NotificationDispatcher:
    return NotificationDispatcher(
        log_repository=NotificationLogRepository(db),
        settings_repository=DonationSettingsRepository(db),
        mail_client=mail_client,
    )


async def run_dispatch(
    session_factory: Callable[[], Session],
    mail_client: MailTransferClient,
    notification: DonationNotification,
) -> DispatchResult:
    """Dispatch in a session of its own (used from background tasks)"""
    try:
        with session_scope(session_factory) as db:
            return await build_dispatcher(db, mail_client).dispatch(notification)
    except Exception:
        logging.exception(
            "Notification dispatch aborted",
            extra={"reference_number": notification.reference_number},
        )
        raise
