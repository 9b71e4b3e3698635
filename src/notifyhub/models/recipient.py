"""
Recipient Model

Client matched by a trigger, with the fields templates can reference.
"""
from dataclasses import dataclass
from datetime import date
from typing import Optional
from uuid import UUID


@dataclass
class Recipient:
    """Read-only projection of a client (and policy / debt) for one trigger run"""
    client_id: UUID
    full_name: str = ""
    phone: Optional[str] = None
    telegram_id: Optional[str] = None
    max_chat_id: Optional[str] = None

    # Policy-expiry context
    policy_id: Optional[UUID] = None
    policy_number: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_number: Optional[str] = None
    end_date: Optional[date] = None

    # Debt-reminder context
    sale_id: Optional[UUID] = None
    debt: Optional[str] = None
    due_date: Optional[date] = None

    def address(self) -> dict:
        """Delivery address handed to senders"""
        return {
            "phone": self.phone,
            "chat_id": self.telegram_id,
            "max_chat_id": self.max_chat_id,
            "name": self.full_name,
        }

    def has_contact(self, channel: str) -> bool:
        """Whether the client can be reached on channel at all"""
        if channel == "max":
            return bool(self.max_chat_id)
        if channel == "telegram":
            return bool(self.phone or self.telegram_id)
        return bool(self.phone)
