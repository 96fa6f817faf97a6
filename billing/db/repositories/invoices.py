"""Репозиторий для работы со счетами"""
import asyncpg
from typing import Optional
from decimal import Decimal
from datetime import datetime

from billing.constants import INVOICE_UNPAID, INVOICE_PAID
from billing.db.pool import connection
from billing.models.invoice import InvoiceRecord

_COLUMNS = (
    "guid, subscription_id, issue_date, due_date, "
    "total_amount_due, amount_paid, xch_payment_address, status"
)


class InvoiceRepository:
    """Репозиторий для работы со счетами"""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def create(
        self,
        guid: str,
        subscription_id: int,
        issue_date: datetime,
        due_date: datetime,
        amount: Decimal,
        xch_payment_address: str
    ) -> InvoiceRecord:
        """
        Создать новый неоплаченный счёт

        Args:
            guid: Идентификатор счёта
            subscription_id: Подписка, за которую выставлен счёт
            issue_date: Дата выставления
            due_date: Срок оплаты
            amount: Сумма к оплате в XCH
            xch_payment_address: Адрес для оплаты

        Returns:
            Созданная запись
        """
        async with connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO invoices (guid, subscription_id, issue_date, due_date,
                                      total_amount_due, amount_paid, xch_payment_address, status)
                VALUES ($1, $2, $3, $4, $5, 0, $6, $7)
                RETURNING {_COLUMNS}
                """,
                guid, subscription_id, issue_date, due_date, amount, xch_payment_address, INVOICE_UNPAID
            )
            return dict(row)  # type: ignore

    async def get(self, guid: str) -> Optional[InvoiceRecord]:
        """Получить счёт по guid"""
        async with connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM invoices WHERE guid = $1",
                guid
            )
            return dict(row) if row else None  # type: ignore

    async def get_unpaid_guids(self) -> list[str]:
        """Все неоплаченные счета, старые первыми"""
        async with connection(self.pool) as conn:
            rows = await conn.fetch(
                "SELECT guid FROM invoices WHERE status = $1 ORDER BY issue_date",
                INVOICE_UNPAID
            )
            return [row['guid'] for row in rows]

    async def mark_as_paid(self, guid: str) -> Optional[str]:
        """
        Отметить счёт как оплаченный

        Returns:
            Статус счёта до обновления ('unpaid' или 'paid'),
            None если счёт не найден
        """
        async with connection(self.pool) as conn:
            # FOR UPDATE сериализует конкурентные подтверждения одного счёта
            return await conn.fetchval(
                """
                WITH previous AS (
                    SELECT guid, status FROM invoices WHERE guid = $1 FOR UPDATE
                )
                UPDATE invoices i
                SET status = $2
                FROM previous
                WHERE i.guid = previous.guid
                RETURNING previous.status
                """,
                guid, INVOICE_PAID
            )
