from datetime import date
from typing import Optional
import asyncpg

from billing.constants import (
    INVOICE_UNPAID,
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_GRACE_PERIOD,
    SUBSCRIPTION_PENDING,
    SUBSCRIPTION_TERMINATED,
)
from billing.db.pool import connection
from billing.models.subscription import SubscriptionRecord, ExpiringSubscription

_COLUMNS = "id, user_id, product_key, start_date, end_date, status, data"
_JOINED_COLUMNS = "s.id, s.user_id, s.product_key, s.start_date, s.end_date, s.status, s.data, u.email"


class SubscriptionRepository:
    """Репозиторий для работы с подписками в БД"""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def create(
        self,
        user_id: int,
        product_key: str,
        start_date: date,
        end_date: date,
        data: str
    ) -> int:
        """Создает подписку в статусе pending, возвращает её id"""
        async with connection(self.pool) as conn:
            return await conn.fetchval(
                """
                INSERT INTO subscriptions (user_id, product_key, start_date, end_date, status, data)
                VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING id
                """,
                user_id, product_key, start_date, end_date, SUBSCRIPTION_PENDING, data
            )

    async def get(self, subscription_id: int) -> Optional[SubscriptionRecord]:
        async with connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM subscriptions WHERE id = $1",
                subscription_id
            )
            return dict(row) if row else None  # type: ignore

    async def get_by_invoice(self, guid: str) -> Optional[SubscriptionRecord]:
        """Получает подписку, которой принадлежит счёт"""
        async with connection(self.pool) as conn:
            row = await conn.fetchrow(
                """
                SELECT s.id, s.user_id, s.product_key, s.start_date, s.end_date, s.status, s.data
                FROM subscriptions s
                JOIN invoices i ON s.id = i.subscription_id
                WHERE i.guid = $1
                """,
                guid
            )
            return dict(row) if row else None  # type: ignore

    async def set_status(self, subscription_id: int, status: str) -> Optional[SubscriptionRecord]:
        async with connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE subscriptions
                SET status = $2
                WHERE id = $1
                RETURNING {_COLUMNS}
                """,
                subscription_id, status
            )
            return dict(row) if row else None  # type: ignore

    async def extend(self, subscription_id: int, new_end_date: date) -> Optional[SubscriptionRecord]:
        """
        Переносит дату окончания; подписка в grace_period снова становится active

        Returns:
            Обновленная запись или None, если подписка уже terminated
        """
        async with connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE subscriptions
                SET end_date = $2,
                    status = CASE WHEN status = $3 THEN $4 ELSE status END
                WHERE id = $1 AND status <> $5
                RETURNING {_COLUMNS}
                """,
                subscription_id, new_end_date,
                SUBSCRIPTION_GRACE_PERIOD, SUBSCRIPTION_ACTIVE, SUBSCRIPTION_TERMINATED
            )
            return dict(row) if row else None  # type: ignore

    async def get_ending_between(self, status: str, start: date, end: date) -> list[ExpiringSubscription]:
        """Подписки со статусом status, у которых end_date в [start, end]"""
        async with connection(self.pool) as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_JOINED_COLUMNS}
                FROM subscriptions s
                JOIN users u ON s.user_id = u.id
                WHERE s.status = $1 AND s.end_date BETWEEN $2 AND $3
                ORDER BY s.end_date
                """,
                status, start, end
            )
            return [dict(row) for row in rows]  # type: ignore

    async def get_expiring_unbilled(self, start: date, end: date) -> list[ExpiringSubscription]:
        """Активные подписки с end_date в [start, end] без неоплаченного счёта"""
        async with connection(self.pool) as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_JOINED_COLUMNS}
                FROM subscriptions s
                JOIN users u ON s.user_id = u.id
                WHERE s.status = $1
                  AND s.end_date BETWEEN $2 AND $3
                  AND NOT EXISTS (
                      SELECT 1 FROM invoices i
                      WHERE i.subscription_id = s.id AND i.status = $4
                  )
                ORDER BY s.end_date
                """,
                SUBSCRIPTION_ACTIVE, start, end, INVOICE_UNPAID
            )
            return [dict(row) for row in rows]  # type: ignore

    async def get_ending_before(self, status: str, before: date) -> list[ExpiringSubscription]:
        """Подписки со статусом status, у которых end_date < before"""
        async with connection(self.pool) as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_JOINED_COLUMNS}
                FROM subscriptions s
                JOIN users u ON s.user_id = u.id
                WHERE s.status = $1 AND s.end_date < $2
                """,
                status, before
            )
            return [dict(row) for row in rows]  # type: ignore

    async def transition_many(
        self,
        subscription_ids: list[int],
        from_status: str,
        to_status: str,
        ending_by: Optional[date] = None
    ) -> list[int]:
        """
        Переводит подписки из from_status в to_status одним запросом

        Строки, статус которых уже изменился или которые успели продлить
        (end_date > ending_by), не затрагиваются.

        Returns:
            id действительно переведенных подписок
        """
        if not subscription_ids:
            return []

        async with connection(self.pool) as conn:
            rows = await conn.fetch(
                """
                UPDATE subscriptions
                SET status = $3
                WHERE id = ANY($1::bigint[])
                  AND status = $2
                  AND ($4::date IS NULL OR end_date <= $4::date)
                RETURNING id
                """,
                subscription_ids, from_status, to_status, ending_by
            )
            return [row['id'] for row in rows]
