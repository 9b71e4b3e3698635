"""
Notification Models

NotificationLog: ledger row tracking one outbound message through its lifecycle.
NotificationStats: status counts over a time window.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4


class NotificationStatus(str, Enum):
    """Lifecycle states of a ledger row"""
    PENDING = "pending"
    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    ERROR = "error"
    TEST_PREPARED = "test_prepared"       # simulated send, never leaves the system


class NotificationSource(str, Enum):
    """What produced a ledger row"""
    SCHEDULED = "scheduled"
    MANUAL = "manual"
    BROADCAST = "broadcast"


@dataclass
class NotificationLog:
    """
    Ledger entry for one notification attempt.

    Created on enqueue, then only mutated by status transitions.
    read_at is set once, together with the transition into 'read'.
    """
    id: UUID = field(default_factory=uuid4)
    org_id: UUID = field(default_factory=uuid4)
    client_id: Optional[UUID] = None
    channel: str = ""
    status: str = NotificationStatus.PENDING.value
    message: str = ""
    source: str = NotificationSource.MANUAL.value

    template_id: Optional[UUID] = None
    template_title: Optional[str] = None
    trigger_id: Optional[UUID] = None
    policy_id: Optional[UUID] = None
    sale_id: Optional[UUID] = None

    error_message: Optional[str] = None
    external_message_id: Optional[str] = None
    external_peer_id: Optional[str] = None

    sent_at: datetime = field(default_factory=datetime.now)
    read_at: Optional[datetime] = None
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to dictionary for API response"""
        return {
            "id": str(self.id),
            "org_id": str(self.org_id),
            "client_id": str(self.client_id) if self.client_id else None,
            "channel": self.channel,
            "status": self.status,
            "message": self.message,
            "source": self.source,
            "template_id": str(self.template_id) if self.template_id else None,
            "template_title": self.template_title,
            "trigger_id": str(self.trigger_id) if self.trigger_id else None,
            "policy_id": str(self.policy_id) if self.policy_id else None,
            "sale_id": str(self.sale_id) if self.sale_id else None,
            "error_message": self.error_message,
            "external_message_id": self.external_message_id,
            "external_peer_id": self.external_peer_id,
            "sent_at": self.sent_at.isoformat(),
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class NotificationStats:
    """Ledger rows in a window, bucketed by reporting status"""
    total_prepared: int = 0
    sent: int = 0
    delivered: int = 0
    read: int = 0
    error: int = 0
    test_prepared: int = 0

    def to_dict(self) -> dict:
        return {
            "total_prepared": self.total_prepared,
            "sent": self.sent,
            "delivered": self.delivered,
            "read": self.read,
            "error": self.error,
            "test_prepared": self.test_prepared,
        }
