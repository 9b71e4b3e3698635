"""
Audit Models

AuditRule: per (role, action) logging switch.
AuditBlacklistEntry: user exempt from logging.
AccessLogEntry: immutable access/event log fact.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4


class AuditAction(str, Enum):
    """Normalized audit action categories (columns of the rule matrix)"""
    LOGIN = "login"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    VIEW_CONTACT = "view_contact"
    PRINT = "print"
    SCREENSHOT_LOGGING = "screenshot_logging"
    TAB_SWITCH_LOGGING = "tab_switch_logging"


class EventCategory(str, Enum):
    """Business area an access log entry belongs to"""
    SALES = "sales"
    CLIENTS = "clients"
    FINANCE = "finance"
    SERVICE = "service"
    ACCESS = "access"
    AUTH = "auth"


@dataclass
class AuditRule:
    """
    Logging switch for one (role, normalized action) pair.

    A missing rule means the action is logged.
    """
    id: UUID = field(default_factory=uuid4)
    target_role: str = "agent"
    action_type: str = AuditAction.VIEW_CONTACT.value
    is_enabled: bool = True

    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary for API response"""
        return {
            "id": str(self.id),
            "target_role": self.target_role,
            "action_type": self.action_type,
            "is_enabled": self.is_enabled,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class AuditBlacklistEntry:
    """User whose actions are never logged"""
    id: UUID = field(default_factory=uuid4)
    target_user_id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary for API response"""
        return {
            "id": str(self.id),
            "target_user_id": str(self.target_user_id),
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class AccessLogEntry:
    """
    Immutable access log fact.

    `action` is the raw action string (e.g. 'view_contact_phone');
    the audit gate normalizes it only to evaluate rules.
    """
    user_id: Optional[UUID]
    action: str
    category: str
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    client_id: Optional[UUID] = None
    field_accessed: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    details: Optional[dict] = None
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary for API response"""
        return {
            "id": str(self.id),
            "user_id": str(self.user_id) if self.user_id else None,
            "action": self.action,
            "category": self.category,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "client_id": str(self.client_id) if self.client_id else None,
            "field_accessed": self.field_accessed,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "details": self.details,
            "created_at": self.created_at.isoformat(),
        }
