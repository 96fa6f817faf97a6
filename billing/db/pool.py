import asyncpg
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
import logging

from billing.errors import PersistenceFailure

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.Pool] = None


async def init_pool(database_url: str) -> asyncpg.Pool:
    """Инициализирует пул соединений с PostgreSQL"""
    global _pool
    _pool = await asyncpg.create_pool(
        database_url,
        min_size=1,
        max_size=10,
        command_timeout=60
    )
    logger.info("✅ Подключение к базе данных установлено")
    return _pool


async def close_pool() -> None:
    """Закрывает пул соединений"""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None
        logger.info("🔒 Соединение с базой данных закрыто")


@asynccontextmanager
async def connection(pool: asyncpg.Pool) -> AsyncIterator[asyncpg.Connection]:
    """Берёт соединение из пула, ошибки БД превращает в PersistenceFailure"""
    try:
        async with pool.acquire() as conn:
            yield conn
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
        logger.error(f"Ошибка базы данных: {e}")
        raise PersistenceFailure(str(e)) from e
