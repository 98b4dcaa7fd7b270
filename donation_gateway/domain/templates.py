"""Notification templates and placeholder rendering"""

import re
from typing import Dict

from donation_gateway.domain.models import DeliverySettings, DonationNotification

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")

DEFAULT_SENDER_NAME = "El Refugio de la Niñez"
GENERIC_CARD_LABEL = "Tarjeta de crédito/débito"


def apply_template(template: str, variables: Dict[str, str]) -> str:
    """Replace {{name}} placeholders; unknown names render as empty strings"""
    return _PLACEHOLDER_RE.sub(lambda m: variables.get(m.group(1)) or "", template)


def currency_symbol(currency_code: str) -> str:
    return "US$" if currency_code == "USD" else "Q"


def build_template_vars(notification: DonationNotification) -> Dict[str, str]:
    """Variables available to subject and body templates"""
    if notification.card_brand and notification.card_last4:
        card_info = f"{notification.card_brand} ****{notification.card_last4}"
    else:
        card_info = GENERIC_CARD_LABEL

    return {
        "donor_name": notification.donor_name,
        "donor_email": notification.donor_email or "",
        "amount": notification.amount_text,
        "currency": notification.currency_code,
        "currency_symbol": currency_symbol(notification.currency_code),
        "reference": notification.reference_number,
        "transaction_id": notification.transaction_id or "",
        "card_type": notification.card_brand or "",
        "card_last4": notification.card_last4 or "",
        "card_info": card_info,
        "date": notification.occurred_at,
    }


DEFAULT_ACCOUNTING_BODY = """
<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;">
  <h2 style="color:#0067B1;">Donación confirmada por tarjeta</h2>
  <p style="background:#d4edda;padding:12px;border-radius:8px;border-left:4px solid #28a745;">
    <strong>Estado:</strong> Pago autorizado
  </p>
  <div style="background:#f5f5f5;padding:20px;border-radius:8px;margin:20px 0;">
    <h3 style="margin-top:0;color:#333;">Datos del donante</h3>
    <p><strong>Nombre:</strong> {{donor_name}}</p>
    <p><strong>Correo:</strong> {{donor_email}}</p>
  </div>
  <div style="background:#e3f2fd;padding:20px;border-radius:8px;margin:20px 0;">
    <h3 style="margin-top:0;color:#0067B1;">Detalles de la donación</h3>
    <p><strong>Monto:</strong> <span style="font-size:1.5em;color:#0067B1;">{{currency_symbol}}{{amount}}</span></p>
    <p><strong>Método de pago:</strong> {{card_info}}</p>
    <p><strong>Fecha:</strong> {{date}}</p>
    <p><strong>Referencia:</strong> {{reference}}</p>
    <p><strong>ID de transacción:</strong> {{transaction_id}}</p>
  </div>
</div>"""

DEFAULT_DONOR_BODY = """
<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;">
  <h2 style="color:#0067B1;">¡Gracias por tu donación!</h2>
  <p>Hola {{donor_name}},</p>
  <p>Tu donación de <strong>{{currency_symbol}}{{amount}}</strong> ha sido procesada exitosamente.</p>
  <div style="background:#f5f5f5;padding:20px;border-radius:8px;margin:20px 0;">
    <p><strong>Monto:</strong> {{currency_symbol}}{{amount}}</p>
    <p><strong>Fecha:</strong> {{date}}</p>
    <p><strong>Referencia:</strong> {{reference}}</p>
  </div>
  <p>Tu recibo deducible de impuestos será enviado a tu correo electrónico.</p>
  <p>Tu apoyo nos permite continuar protegiendo a niños, niñas y adolescentes que más lo necesitan.</p>
  <p>Atentamente,<br><strong>El Refugio de la Niñez</strong></p>
</div>"""


def default_delivery_settings() -> DeliverySettings:
    """Built-in configuration used when no settings row exists"""
    return DeliverySettings(
        sender_name=DEFAULT_SENDER_NAME,
        sender_address=None,
        accounting_emails=["contabilidad@refugiodelaninez.org"],
        accounting_subject="Donación confirmada: {{currency_symbol}}{{amount}} – Ref: {{reference}}",
        accounting_body=None,
        donor_subject="Gracias por tu donación – El Refugio de la Niñez",
        donor_body=None,
        send_accounting_email=True,
        send_donor_email=True,
        donor_email_enabled=True,
    )


def render_accounting(config: DeliverySettings, variables: Dict[str, str]) -> tuple[str, str]:
    """Return (subject, html) for the accounting notification"""
    subject = apply_template(config.accounting_subject, variables)
    html = apply_template(config.accounting_body or DEFAULT_ACCOUNTING_BODY, variables)
    return subject, html


def render_donor(config: DeliverySettings, variables: Dict[str, str]) -> tuple[str, str]:
    """Return (subject, html) for the donor thank-you message"""
    subject = apply_template(config.donor_subject, variables)
    html = apply_template(config.donor_body or DEFAULT_DONOR_BODY, variables)
    return subject, html
