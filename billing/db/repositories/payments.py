"""Репозиторий для работы с платежами"""
import asyncpg
import logging
from decimal import Decimal
from typing import Iterable

from billing.db.pool import connection
from billing.errors import InvoiceNotFound
from billing.models.payment import ChainTransaction, PaymentRecord

logger = logging.getLogger(__name__)


class PaymentRepository:
    """Репозиторий для работы с платежами"""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def record_transactions(
        self,
        invoice_guid: str,
        transactions: Iterable[ChainTransaction]
    ) -> tuple[Decimal, Decimal]:
        """
        Записать подтвержденные транзакции и увеличить amount_paid счёта

        Вставка идет с ON CONFLICT DO NOTHING по (invoice_guid, coin_name),
        поэтому повторно увиденная транзакция не учитывается дважды.
        Вставка платежей и обновление счёта выполняются в одной транзакции.

        Args:
            invoice_guid: guid счёта
            transactions: Подтвержденные транзакции на адрес счёта

        Returns:
            (сумма новых платежей, amount_paid счёта после обновления)
        """
        async with connection(self.pool) as conn:
            async with conn.transaction():
                ingested = Decimal(0)
                for tx in transactions:
                    amount = await conn.fetchval(
                        """
                        INSERT INTO payments (invoice_guid, coin_name, amount, confirmed_at_height, fee)
                        VALUES ($1, $2, $3, $4, $5)
                        ON CONFLICT (invoice_guid, coin_name) DO NOTHING
                        RETURNING amount
                        """,
                        invoice_guid, tx.name, tx.amount_xch, tx.confirmed_at_height, tx.fee_amount
                    )
                    if amount is not None:
                        ingested += amount
                        logger.info(f"🪙 Платеж {tx.name} записан для счёта {invoice_guid}: {amount} XCH")

                amount_paid = await conn.fetchval(
                    """
                    UPDATE invoices
                    SET amount_paid = amount_paid + $2
                    WHERE guid = $1
                    RETURNING amount_paid
                    """,
                    invoice_guid, ingested
                )
                if amount_paid is None:
                    raise InvoiceNotFound(invoice_guid)
                return ingested, amount_paid

    async def get_invoice_payments(self, invoice_guid: str) -> list[PaymentRecord]:
        """Получить все платежи по счёту"""
        async with connection(self.pool) as conn:
            rows = await conn.fetch(
                """
                SELECT invoice_guid, coin_name, amount, confirmed_at_height, fee
                FROM payments
                WHERE invoice_guid = $1
                ORDER BY confirmed_at_height
                """,
                invoice_guid
            )
            return [dict(row) for row in rows]  # type: ignore
