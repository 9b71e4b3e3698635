"""
Recipient Storage

Read-only queries over clients, policies and sales that find who a
trigger should notify on a given day.
"""
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from .base import BaseStorage
from ..models.recipient import Recipient

logger = logging.getLogger("notifyhub.storage.recipient")

_CLIENT_COLUMNS = """
    c.id AS client_id, c.first_name, c.last_name, c.middle_name,
    c.phone, c.telegram_id, c.max_chat_id
"""


class RecipientStorage(BaseStorage):
    """Queries that match business events to recipients"""

    async def birthdays(self, org_id: UUID, today: date) -> List[Recipient]:
        """Clients whose birthday is today"""
        query = f"""
            SELECT {_CLIENT_COLUMNS}
            FROM clients c
            WHERE c.org_id = $1
              AND c.birth_date IS NOT NULL
              AND EXTRACT(MONTH FROM c.birth_date) = $2
              AND EXTRACT(DAY FROM c.birth_date) = $3
        """
        rows = await self.fetch(query, org_id, today.month, today.day)
        return [self._row_to_recipient(row) for row in rows]

    async def expiring_policies(self, org_id: UUID, today: date, days_before: int) -> List[Recipient]:
        """Active policies ending between today and today + days_before (inclusive)"""
        query = f"""
            SELECT {_CLIENT_COLUMNS},
                   p.id AS policy_id, p.policy_number, p.vehicle_model,
                   p.vehicle_number, p.end_date
            FROM policies p
            JOIN clients c ON c.id = p.client_id
            WHERE p.org_id = $1
              AND p.end_date >= $2
              AND p.end_date <= $3
              AND p.status IN ('active', 'expiring_soon')
            ORDER BY p.end_date
        """
        rows = await self.fetch(query, org_id, today, today + timedelta(days=days_before))
        return [self._row_to_recipient(row) for row in rows]

    async def debts_due(self, org_id: UUID, today: date, days_before: int) -> List[Recipient]:
        """Unpaid installments due between today and today + days_before (inclusive)"""
        query = f"""
            SELECT {_CLIENT_COLUMNS},
                   s.id AS sale_id,
                   (s.total_amount - s.amount_paid) AS debt,
                   s.installment_due_date AS due_date
            FROM sales s
            JOIN clients c ON c.id = s.client_id
            WHERE s.org_id = $1
              AND s.debt_status = 'unpaid'
              AND s.installment_due_date >= $2
              AND s.installment_due_date <= $3
            ORDER BY s.installment_due_date
        """
        rows = await self.fetch(query, org_id, today, today + timedelta(days=days_before))
        return [self._row_to_recipient(row) for row in rows]

    async def get_client(self, org_id: UUID, client_id: UUID) -> Optional[Recipient]:
        """One client of a tenant, for manual sends"""
        query = f"""
            SELECT {_CLIENT_COLUMNS}
            FROM clients c
            WHERE c.org_id = $1 AND c.id = $2
        """
        row = await self.fetchrow(query, org_id, client_id)
        return self._row_to_recipient(row) if row else None

    def _row_to_recipient(self, row) -> Recipient:
        """Convert database row to Recipient"""
        keys = row.keys()
        full_name = " ".join(
            part for part in (row["last_name"], row["first_name"], row["middle_name"]) if part
        )

        debt = row["debt"] if "debt" in keys else None
        if debt is not None:
            debt = str(Decimal(debt).quantize(Decimal("1")))

        return Recipient(
            client_id=row["client_id"],
            full_name=full_name,
            phone=row["phone"],
            telegram_id=str(row["telegram_id"]) if row["telegram_id"] else None,
            max_chat_id=str(row["max_chat_id"]) if row["max_chat_id"] else None,
            policy_id=row["policy_id"] if "policy_id" in keys else None,
            policy_number=row["policy_number"] if "policy_number" in keys else None,
            vehicle_model=row["vehicle_model"] if "vehicle_model" in keys else None,
            vehicle_number=row["vehicle_number"] if "vehicle_number" in keys else None,
            end_date=row["end_date"] if "end_date" in keys else None,
            sale_id=row["sale_id"] if "sale_id" in keys else None,
            debt=debt,
            due_date=row["due_date"] if "due_date" in keys else None,
        )
