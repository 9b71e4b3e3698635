"""
Template Renderer

Fills {{placeholder}} variables of a notification template from a Recipient.
Unknown placeholders are left as written.
"""
import re
from datetime import date
from typing import Dict, Optional

from ..models.recipient import Recipient

_PLACEHOLDER_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def format_date(value: Optional[date]) -> str:
    """dd.mm.yyyy, empty for None"""
    return value.strftime("%d.%m.%Y") if value else ""


def template_variables(recipient: Recipient) -> Dict[str, str]:
    """Placeholder values for one recipient (aliases included)"""
    car = recipient.vehicle_model or ""
    policy = recipient.policy_number or ""
    return {
        "customer_name": recipient.full_name or "",
        "name": recipient.full_name or "",
        "car": car,
        "car_brand": car,
        "plate": recipient.vehicle_number or "",
        "policy": policy,
        "policy_number": policy,
        "end_date": format_date(recipient.end_date),
        "debt": recipient.debt or "0",
        "due_date": format_date(recipient.due_date),
    }


def render_template(template: str, recipient: Recipient) -> str:
    """Substitute every known {{placeholder}} in template"""
    variables = template_variables(recipient)

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        return variables.get(key, match.group(0))

    return _PLACEHOLDER_RE.sub(_replace, template or "")
