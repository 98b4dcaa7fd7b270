"""Unit tests for notification template rendering"""

from donation_gateway.domain.models import DonationNotification
from donation_gateway.domain.templates import (
    GENERIC_CARD_LABEL,
    apply_template,
    build_template_vars,
    currency_symbol,
    default_delivery_settings,
    render_accounting,
    render_donor,
)


def make_notification(**overrides) -> DonationNotification:
    values = dict(
        donor_name="Ana López",
        donor_email="ana@example.com",
        amount_text="150.00",
        currency_code="GTQ",
        reference_number="DON-1700000000-ab12cd",
        occurred_at="14/11/2023 22:13",
        transaction_id="7001234567",
    )
    values.update(overrides)
    return DonationNotification(**values)


def test_apply_template_replaces_known_names():
    assert apply_template("Hola {{name}}, ref {{ref}}", {"name": "Ana", "ref": "X1"}) == "Hola Ana, ref X1"


def test_apply_template_unknown_names_render_empty():
    assert apply_template("[{{missing}}]", {}) == "[]"


def test_apply_template_leaves_single_braces_alone():
    assert apply_template("{name} {{name}}", {"name": "Ana"}) == "{name} Ana"


def test_currency_symbol():
    assert currency_symbol("USD") == "US$"
    assert currency_symbol("GTQ") == "Q"
    assert currency_symbol("EUR") == "Q"


def test_card_info_with_brand_and_last4():
    variables = build_template_vars(make_notification(card_brand="VISA", card_last4="1111"))
    assert variables["card_info"] == "VISA ****1111"


def test_card_info_falls_back_to_generic_label():
    variables = build_template_vars(make_notification(card_brand="VISA"))
    assert variables["card_info"] == GENERIC_CARD_LABEL
    assert variables["card_last4"] == ""


def test_template_vars_optional_fields_are_empty_strings():
    variables = build_template_vars(make_notification(transaction_id=None, donor_email=None))
    assert variables["transaction_id"] == ""
    assert variables["donor_email"] == ""


def test_render_accounting_defaults():
    config = default_delivery_settings()
    variables = build_template_vars(make_notification(currency_code="USD", amount_text="25.00"))

    subject, html = render_accounting(config, variables)

    assert subject == "Donación confirmada: US$25.00 – Ref: DON-1700000000-ab12cd"
    assert "Ana López" in html
    assert "7001234567" in html
    assert "{{" not in html


def test_render_donor_uses_configured_templates():
    config = default_delivery_settings()
    config.donor_subject = "Gracias {{donor_name}}"
    config.donor_body = "<p>{{currency_symbol}}{{amount}} ({{reference}})</p>"

    subject, html = render_donor(config, build_template_vars(make_notification()))

    assert subject == "Gracias Ana López"
    assert html == "<p>Q150.00 (DON-1700000000-ab12cd)</p>"


def test_default_delivery_settings():
    config = default_delivery_settings()
    assert config.sender_name == "El Refugio de la Niñez"
    assert config.sender_address is None
    assert config.accounting_emails == ["contabilidad@refugiodelaninez.org"]
    assert config.send_accounting_email and config.send_donor_email and config.donor_email_enabled
