"""Data access layer for donations, delivery settings and the notification log"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from donation_gateway.domain.models import DeliverySettings, DonorDetails
from donation_gateway.domain.templates import default_delivery_settings
from donation_gateway.infrastructure.database.models import Donation, DonationSettings, NotificationLog

PAYMENT_NOTIFICATION = "payment"


class NotificationLogRepository:
    """Idempotency log keyed by (reference_number, notification_type)"""

    def __init__(self, db: Session):
        self.db = db

    def find(self, reference_number: str, notification_type: str = PAYMENT_NOTIFICATION) -> Optional[NotificationLog]:
        # upsert bypasses the identity map, so always reload the row
        return self.db.execute(
            select(NotificationLog)
            .where(
                NotificationLog.reference_number == reference_number,
                NotificationLog.notification_type == notification_type,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def upsert(
        self,
        reference_number: str,
        status: str,
        error_message: Optional[str] = None,
        transaction_id: Optional[str] = None,
        notification_type: str = PAYMENT_NOTIFICATION,
    ) -> None:
        """
        Insert or update the entry for the key in one statement.

        The unique constraint on the key is what prevents duplicate rows
        across processes. An existing "sent" row is never overwritten.
        """
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            self._upsert_orm(reference_number, status, error_message, transaction_id, notification_type)
            return

        stmt = insert(NotificationLog).values(
            id=uuid.uuid4(),
            reference_number=reference_number,
            notification_type=notification_type,
            transaction_id=transaction_id,
            status=status,
            error_message=error_message,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[NotificationLog.reference_number, NotificationLog.notification_type],
            set_={
                "status": stmt.excluded.status,
                "error_message": stmt.excluded.error_message,
                "transaction_id": stmt.excluded.transaction_id,
                "recorded_at": func.now(),
            },
            where=NotificationLog.status != "sent",
        )
        self.db.execute(stmt)

    def _upsert_orm(
        self,
        reference_number: str,
        status: str,
        error_message: Optional[str],
        transaction_id: Optional[str],
        notification_type: str,
    ) -> None:
        entry = self.find(reference_number, notification_type)
        if entry is None:
            self.db.add(
                NotificationLog(
                    reference_number=reference_number,
                    notification_type=notification_type,
                    transaction_id=transaction_id,
                    status=status,
                    error_message=error_message,
                )
            )
        elif entry.status != "sent":
            entry.status = status
            entry.error_message = error_message
            entry.transaction_id = transaction_id
            entry.recorded_at = datetime.now(timezone.utc)
        self.db.flush()


class DonationSettingsRepository:
    """Read-only access to the active delivery configuration"""

    def __init__(self, db: Session):
        self.db = db

    def get_active(self) -> Optional[DeliverySettings]:
        """Active configuration, or None when no row exists"""
        row = self.db.execute(select(DonationSettings).order_by(DonationSettings.id).limit(1)).scalar_one_or_none()
        if row is None:
            return None

        defaults = default_delivery_settings()
        return DeliverySettings(
            sender_name=row.sender_email_name or defaults.sender_name,
            sender_address=row.sender_email_address,
            accounting_emails=[e.strip() for e in (row.accounting_emails or []) if e and e.strip()],
            accounting_subject=row.accounting_email_subject or defaults.accounting_subject,
            accounting_body=row.accounting_email_body,
            donor_subject=row.donor_email_subject or defaults.donor_subject,
            donor_body=row.donor_email_body,
            send_accounting_email=row.send_accounting_email,
            send_donor_email=row.send_donor_email,
            donor_email_enabled=row.donor_email_enabled,
        )


class DonationRepository:
    """Repository for card donations"""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        reference_number: str,
        donor: DonorDetails,
        amount: Decimal,
        currency: str,
        donation_type: str,
        confirmed: bool,
        transaction_id: Optional[str],
        gateway_response: Optional[Dict[str, Any]],
    ) -> Donation:
        """Persist a donation the gateway authorized or left pending"""
        donation = Donation(
            reference_number=reference_number,
            donor_name=donor.full_name,
            donor_email=donor.email,
            donor_phone=donor.phone,
            donor_nit=donor.nit,
            donor_address=f"{donor.city}, {donor.department}",
            amount=amount,
            currency=currency,
            donation_type=donation_type,
            payment_method="tarjeta",
            status="confirmed" if confirmed else "pending",
            transaction_id=transaction_id,
            gateway_response=gateway_response,
            confirmed_at=datetime.now(timezone.utc) if confirmed else None,
        )
        self.db.add(donation)
        self.db.flush()
        return donation

    def get_by_reference(self, reference_number: str) -> Optional[Donation]:
        return self.db.execute(
            select(Donation).where(Donation.reference_number == reference_number)
        ).scalar_one_or_none()
