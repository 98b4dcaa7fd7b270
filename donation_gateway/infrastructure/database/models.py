"""SQLAlchemy ORM models for donations, delivery settings and the notification log"""

import uuid
from sqlalchemy import Column, Boolean, DateTime, Numeric, Integer, Text, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class Donation(Base):
    """Card donation recorded after the gateway authorized (or pended) it"""

    __tablename__ = "donations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reference_number = Column(Text, nullable=False, unique=True)
    donor_name = Column(Text, nullable=False)
    donor_email = Column(Text, nullable=False, index=True)
    donor_phone = Column(Text, nullable=True)
    donor_nit = Column(Text, nullable=True)
    donor_address = Column(Text, nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(Text, nullable=False, default="GTQ")
    donation_type = Column(Text, nullable=False, default="unica")
    payment_method = Column(Text, nullable=False, default="tarjeta")
    status = Column(Text, nullable=False)  # confirmed | pending
    transaction_id = Column(Text, nullable=True)
    gateway_response = Column(JSON, nullable=True)
    source = Column(Text, nullable=False, default="online")
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class DonationSettings(Base):
    """Single active row holding notification delivery configuration"""

    __tablename__ = "donation_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sender_email_name = Column(Text, nullable=True)
    sender_email_address = Column(Text, nullable=True)
    accounting_emails = Column(JSON, nullable=False, default=list)
    accounting_email_subject = Column(Text, nullable=True)
    accounting_email_body = Column(Text, nullable=True)
    donor_email_subject = Column(Text, nullable=True)
    donor_email_body = Column(Text, nullable=True)
    send_accounting_email = Column(Boolean, nullable=False, default=True)
    send_donor_email = Column(Boolean, nullable=False, default=True)
    donor_email_enabled = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class NotificationLog(Base):
    """Idempotency log: at most one row per (reference_number, notification_type)"""

    __tablename__ = "donation_notification_log"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reference_number = Column(Text, nullable=False)
    notification_type = Column(Text, nullable=False)  # payment
    transaction_id = Column(Text, nullable=True)
    status = Column(Text, nullable=False)  # sent | failed
    error_message = Column(Text, nullable=True)
    recorded_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("reference_number", "notification_type", name="uq_notification_reference_type"),
    )
