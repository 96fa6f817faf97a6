"""Схема таблиц биллинга"""
import logging

import asyncpg

from billing.db.pool import connection

logger = logging.getLogger(__name__)

# Таблица users принадлежит основному приложению, здесь она только читается
SCHEMA = """
CREATE TABLE IF NOT EXISTS subscriptions (
    id BIGSERIAL PRIMARY KEY,
    user_id BIGINT NOT NULL,
    product_key TEXT NOT NULL,
    start_date DATE NOT NULL,
    end_date DATE NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'active', 'grace_period', 'terminated')),
    data TEXT NOT NULL,
    CHECK (end_date >= start_date)
);

CREATE INDEX IF NOT EXISTS subscriptions_status_end_date_idx
    ON subscriptions (status, end_date);

CREATE TABLE IF NOT EXISTS invoices (
    guid TEXT PRIMARY KEY,
    subscription_id BIGINT NOT NULL REFERENCES subscriptions (id),
    issue_date TIMESTAMPTZ NOT NULL,
    due_date TIMESTAMPTZ NOT NULL,
    total_amount_due NUMERIC(30, 12) NOT NULL,
    amount_paid NUMERIC(30, 12) NOT NULL DEFAULT 0,
    xch_payment_address TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'unpaid' CHECK (status IN ('unpaid', 'paid'))
);

CREATE INDEX IF NOT EXISTS invoices_unpaid_idx ON invoices (status) WHERE status = 'unpaid';

CREATE TABLE IF NOT EXISTS payments (
    invoice_guid TEXT NOT NULL REFERENCES invoices (guid),
    coin_name TEXT NOT NULL,
    amount NUMERIC(30, 12) NOT NULL,
    confirmed_at_height BIGINT NOT NULL,
    fee BIGINT NOT NULL DEFAULT 0,
    UNIQUE (invoice_guid, coin_name)
);
"""


async def apply_schema(pool: asyncpg.Pool) -> None:
    """Создает таблицы, если их еще нет"""
    async with connection(pool) as conn:
        await conn.execute(SCHEMA)
    logger.info("🗄️ Схема базы данных проверена")
