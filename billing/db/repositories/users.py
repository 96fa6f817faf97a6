import asyncpg
from typing import Optional

from billing.db.pool import connection


class UserRepository:
    """Чтение контактов пользователей из таблицы основного приложения"""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def get_email(self, user_id: int) -> Optional[str]:
        async with connection(self.pool) as conn:
            return await conn.fetchval("SELECT email FROM users WHERE id = $1", user_id)
