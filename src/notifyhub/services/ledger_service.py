"""
Ledger Service

Dispatch & status ledger: every outbound message is one notification_logs
row that only moves forward along the transition table.

    (none)           --ENQUEUE-->          pending | test_prepared
    pending          --DISPATCH-->         sending
    sending          --PROVIDER_ACK-->     sent
    sending          --PROVIDER_REJECT-->  error
    sent             --DELIVERY_RECEIPT--> delivered
    sent, delivered  --READ_CONFIRMED-->   read
"""
import logging
from datetime import datetime, time
from enum import Enum
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from ..errors import IllegalTransitionError
from ..models.notification import NotificationLog, NotificationStats, NotificationStatus
from ..storage.notification_log_storage import NotificationLogStorage

logger = logging.getLogger("notifyhub.services.ledger")


class LedgerEvent(str, Enum):
    """Events that move a ledger row"""
    ENQUEUE = "enqueue"
    DISPATCH = "dispatch"
    PROVIDER_ACK = "provider_ack"
    PROVIDER_REJECT = "provider_reject"
    DELIVERY_RECEIPT = "delivery_receipt"
    READ_CONFIRMED = "read_confirmed"


S = NotificationStatus

TRANSITIONS: Dict[Tuple[Optional[str], LedgerEvent], str] = {
    (None, LedgerEvent.ENQUEUE): S.PENDING.value,
    (S.PENDING.value, LedgerEvent.DISPATCH): S.SENDING.value,
    (S.SENDING.value, LedgerEvent.PROVIDER_ACK): S.SENT.value,
    (S.SENDING.value, LedgerEvent.PROVIDER_REJECT): S.ERROR.value,
    (S.SENT.value, LedgerEvent.DELIVERY_RECEIPT): S.DELIVERED.value,
    (S.SENT.value, LedgerEvent.READ_CONFIRMED): S.READ.value,
    (S.DELIVERED.value, LedgerEvent.READ_CONFIRMED): S.READ.value,
}

# Status -> stats bucket. Legacy rows carry 'failed' and the display label
# of simulated sends.
STATS_BUCKETS: Dict[str, str] = {
    S.PENDING.value: "sent",
    S.SENDING.value: "sent",
    S.SENT.value: "sent",
    S.DELIVERED.value: "delivered",
    S.READ.value: "read",
    S.ERROR.value: "error",
    "failed": "error",
    S.TEST_PREPARED.value: "test_prepared",
    "[ТЕСТ] Подготовлено": "test_prepared",
}


def apply_event(current: Optional[str], event: LedgerEvent, test_mode: bool = False) -> str:
    """Next status for (current, event); raises IllegalTransitionError otherwise"""
    if current is None and event == LedgerEvent.ENQUEUE and test_mode:
        return S.TEST_PREPARED.value
    target = TRANSITIONS.get((current, LedgerEvent(event)))
    if target is None:
        raise IllegalTransitionError(current, LedgerEvent(event).value)
    return target


def can_transition(current: Optional[str], target: str) -> bool:
    """Whether some event moves current to target"""
    if current is None and target == S.TEST_PREPARED.value:
        return True
    return any(
        src == current and dst == target for (src, _event), dst in TRANSITIONS.items()
    )


def sources_for(event: LedgerEvent) -> List[str]:
    """Statuses from which event is allowed"""
    return [src for (src, ev), _dst in TRANSITIONS.items() if ev == event and src is not None]


def stats_bucket(status: str) -> str:
    """Reporting bucket of a status; unknown statuses count as errors"""
    bucket = STATS_BUCKETS.get(status)
    if bucket is None:
        logger.warning(f"Unknown notification status '{status}', counting as error")
        return "error"
    return bucket


def aggregate_stats(statuses: List[str]) -> NotificationStats:
    """Count statuses into buckets; every row lands in exactly one"""
    stats = NotificationStats(total_prepared=len(statuses))
    for status in statuses:
        bucket = stats_bucket(status)
        setattr(stats, bucket, getattr(stats, bucket) + 1)
    return stats


class LedgerService:
    """Creates ledger rows and moves them along the transition table"""

    def __init__(self, log_storage: NotificationLogStorage):
        self.log_storage = log_storage

    # ==================== Transitions ====================

    async def enqueue(self, entry: NotificationLog, test_mode: bool = False) -> NotificationLog:
        """Insert a new row as pending (or test_prepared in test mode)"""
        entry.status = apply_event(None, LedgerEvent.ENQUEUE, test_mode=test_mode)
        created = await self.log_storage.create(entry)
        logger.debug(f"Enqueued notification {created.id} ({created.channel}, {created.status})")
        return created

    async def _advance(self, log_id: UUID, event: LedgerEvent, **fields) -> NotificationLog:
        target = TRANSITIONS[(sources_for(event)[0], event)]
        updated = await self.log_storage.transition(log_id, sources_for(event), target, **fields)
        if updated is None:
            current = await self.log_storage.get_by_id(log_id)
            raise IllegalTransitionError(current.status if current else None, target, log_id)
        return updated

    async def begin_dispatch(self, log_id: UUID) -> NotificationLog:
        return await self._advance(log_id, LedgerEvent.DISPATCH)

    async def mark_sent(
        self,
        log_id: UUID,
        external_message_id: Optional[str] = None,
        external_peer_id: Optional[str] = None,
    ) -> NotificationLog:
        return await self._advance(
            log_id,
            LedgerEvent.PROVIDER_ACK,
            external_message_id=external_message_id,
            external_peer_id=external_peer_id,
        )

    async def mark_error(self, log_id: UUID, error_message: str) -> NotificationLog:
        return await self._advance(log_id, LedgerEvent.PROVIDER_REJECT, error_message=error_message)

    async def mark_delivered(self, log_id: UUID) -> NotificationLog:
        return await self._advance(log_id, LedgerEvent.DELIVERY_RECEIPT)

    async def mark_read(self, log_id: UUID, read_at: Optional[datetime] = None) -> Optional[NotificationLog]:
        """
        Move a sent/delivered row to read and stamp read_at.

        Returns None when the row is no longer eligible (already read or
        moved on by another writer).
        """
        return await self.log_storage.mark_read(
            log_id, sources_for(LedgerEvent.READ_CONFIRMED), read_at or datetime.now()
        )

    # ==================== Projections ====================

    async def pending_queue(self, org_id: UUID, limit: int = 200) -> List[NotificationLog]:
        """Rows still waiting for (or in) dispatch"""
        return await self.log_storage.list_by_status(
            org_id, [S.PENDING.value, S.SENDING.value], limit=limit
        )

    async def history(
        self, org_id: UUID, limit: int = 30, status: Optional[str] = None
    ) -> List[NotificationLog]:
        return await self.log_storage.list_recent(org_id, limit=limit, status=status)

    async def stats(
        self,
        org_id: UUID,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> NotificationStats:
        """Bucketed counts for rows sent in [since, until]; defaults to today"""
        if since is None:
            since = datetime.combine(datetime.now().date(), time.min)
        statuses = await self.log_storage.list_statuses(org_id, since, until)
        return aggregate_stats(statuses)

    async def unread_sent(self, org_id: UUID, channel: str) -> List[NotificationLog]:
        """Sent rows with provider ids whose read state is unknown"""
        return await self.log_storage.list_unread_sent(org_id, channel)
