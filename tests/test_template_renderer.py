"""Tests for template placeholder rendering."""

from datetime import date
from uuid import uuid4

from notifyhub.models.recipient import Recipient
from notifyhub.services.template_renderer import format_date, render_template


def _recipient(**overrides):
    fields = dict(
        client_id=uuid4(),
        full_name="Анна Смирнова",
        vehicle_model="Kia Rio",
        vehicle_number="А123ВС77",
        policy_number="ХХХ-0042",
        end_date=date(2026, 3, 5),
    )
    fields.update(overrides)
    return Recipient(**fields)


def test_format_date():
    assert format_date(date(2026, 3, 5)) == "05.03.2026"
    assert format_date(None) == ""


def test_renders_known_placeholders():
    text = render_template(
        "{{customer_name}}: полис {{ policy }} на {{car}} ({{plate}}) истекает {{end_date}}",
        _recipient(),
    )
    assert text == "Анна Смирнова: полис ХХХ-0042 на Kia Rio (А123ВС77) истекает 05.03.2026"


def test_aliases():
    text = render_template("{{name}} {{car_brand}} {{policy_number}}", _recipient())
    assert text == "Анна Смирнова Kia Rio ХХХ-0042"


def test_unknown_placeholder_is_kept():
    assert render_template("Hi {{nickname}}", _recipient()) == "Hi {{nickname}}"


def test_debt_defaults_to_zero():
    recipient = _recipient(due_date=date(2026, 10, 30))
    assert render_template("{{debt}} до {{due_date}}", recipient) == "0 до 30.10.2026"


def test_empty_template():
    assert render_template("", _recipient()) == ""
    assert render_template(None, _recipient()) == ""
