"""
Репозитории на настоящем PostgreSQL.

База берется из TEST_DATABASE_URL, иначе поднимается контейнер postgres
через testcontainers. Без Docker и без TEST_DATABASE_URL тесты пропускаются.
"""
import asyncio
import os
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from testcontainers.postgres import PostgresContainer

from billing.constants import (
    INVOICE_PAID,
    INVOICE_UNPAID,
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_GRACE_PERIOD,
    SUBSCRIPTION_TERMINATED,
)
from billing.db.pool import close_pool, init_pool
from billing.db.repositories.invoices import InvoiceRepository
from billing.db.repositories.payments import PaymentRepository
from billing.db.repositories.subscriptions import SubscriptionRepository
from billing.db.repositories.users import UserRepository
from billing.db.schema import apply_schema
from billing.errors import InvoiceNotFound, PersistenceFailure
from billing.models.payment import ChainTransaction

from fakes import MOJO

ISSUED = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

# В проде таблица принадлежит основному приложению
USERS_TABLE = "CREATE TABLE IF NOT EXISTS users (id BIGINT PRIMARY KEY, email TEXT)"


# ============================================================================
# DATABASE
# ============================================================================

@pytest.fixture(scope="session")
def database_url():
    url = os.getenv("TEST_DATABASE_URL")
    if url:
        yield url
        return

    container = PostgresContainer("postgres:16-alpine", driver=None)
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"PostgreSQL недоступен: {e}")
    try:
        yield container.get_connection_url()
    finally:
        container.stop()


@pytest.fixture
async def pool(database_url):
    pool = await init_pool(database_url)
    await apply_schema(pool)
    async with pool.acquire() as conn:
        await conn.execute(USERS_TABLE)
        await conn.execute("TRUNCATE payments, invoices, subscriptions, users RESTART IDENTITY")
        await conn.execute("INSERT INTO users (id, email) VALUES (1, 'alice@example.com')")
    yield pool
    await close_pool()


@pytest.fixture
def subscriptions(pool):
    return SubscriptionRepository(pool)


@pytest.fixture
def invoices(pool):
    return InvoiceRepository(pool)


@pytest.fixture
def payments(pool):
    return PaymentRepository(pool)


@pytest.fixture
async def invoice(subscriptions, invoices):
    subscription_id = await subscriptions.create(
        1, "store", date(2024, 6, 1), date(2025, 6, 1), '{"cmd": "CREATE_STORE", "data": {"user_id": 1}}'
    )
    return await invoices.create(
        "inv-1", subscription_id, ISSUED, ISSUED, Decimal("10"), "xch1pay"
    )


def coin(name: str, mojo: int, height: int = 100) -> ChainTransaction:
    return ChainTransaction(name=name, amount=mojo, confirmed=True, confirmed_at_height=height)


async def payment_rows(pool, guid: str) -> int:
    async with pool.acquire() as conn:
        return await conn.fetchval("SELECT count(*) FROM payments WHERE invoice_guid = $1", guid)


# ============================================================================
# PAYMENTS
# ============================================================================

async def test_duplicate_coin_is_recorded_once(pool, payments, invoices, invoice):
    assert await payments.record_transactions("inv-1", [coin("coin-a", 3 * MOJO)]) == (Decimal(3), Decimal(3))

    ingested, amount_paid = await payments.record_transactions(
        "inv-1", [coin("coin-a", 3 * MOJO), coin("coin-b", 2 * MOJO)]
    )

    assert ingested == Decimal(2)
    assert amount_paid == Decimal(5)
    assert await payment_rows(pool, "inv-1") == 2
    assert (await invoices.get("inv-1"))["amount_paid"] == Decimal(5)


async def test_concurrent_ingestion_of_same_coin(pool, payments, invoices, invoice):
    await asyncio.gather(*(
        payments.record_transactions("inv-1", [coin("coin-a", 4 * MOJO)]) for _ in range(5)
    ))

    assert await payment_rows(pool, "inv-1") == 1
    assert (await invoices.get("inv-1"))["amount_paid"] == Decimal(4)


async def test_failed_batch_leaves_no_partial_payments(pool, payments, invoices, invoice):
    # 10**40 mojo не помещается в NUMERIC(30, 12)
    with pytest.raises(PersistenceFailure):
        await payments.record_transactions("inv-1", [coin("coin-a", MOJO), coin("coin-huge", 10 ** 40)])

    assert await payment_rows(pool, "inv-1") == 0
    assert (await invoices.get("inv-1"))["amount_paid"] == Decimal(0)


async def test_record_for_unknown_invoice(payments, pool):
    with pytest.raises(InvoiceNotFound):
        await payments.record_transactions("missing", [])


async def test_invoice_payments_are_listed(payments, invoice):
    await payments.record_transactions("inv-1", [coin("coin-b", MOJO, height=20), coin("coin-a", MOJO, height=10)])

    rows = await payments.get_invoice_payments("inv-1")

    assert [row["coin_name"] for row in rows] == ["coin-a", "coin-b"]
    assert rows[0]["amount"] == Decimal(1)


# ============================================================================
# INVOICES
# ============================================================================

async def test_mark_as_paid_reports_previous_status(invoices, invoice):
    assert await invoices.mark_as_paid("inv-1") == INVOICE_UNPAID
    assert await invoices.mark_as_paid("inv-1") == INVOICE_PAID
    assert await invoices.mark_as_paid("missing") is None
    assert await invoices.get_unpaid_guids() == []


async def test_concurrent_mark_as_paid_has_one_winner(invoices, invoice):
    results = await asyncio.gather(*(invoices.mark_as_paid("inv-1") for _ in range(4)))

    assert results.count(INVOICE_UNPAID) == 1
    assert results.count(INVOICE_PAID) == 3


# ============================================================================
# SUBSCRIPTIONS
# ============================================================================

async def test_extend_reactivates_grace_and_refuses_terminated(subscriptions, invoice):
    subscription_id = invoice["subscription_id"]
    await subscriptions.set_status(subscription_id, SUBSCRIPTION_GRACE_PERIOD)

    renewed = await subscriptions.extend(subscription_id, date(2026, 6, 1))

    assert renewed["status"] == SUBSCRIPTION_ACTIVE
    assert renewed["end_date"] == date(2026, 6, 1)

    await subscriptions.set_status(subscription_id, SUBSCRIPTION_TERMINATED)
    assert await subscriptions.extend(subscription_id, date(2027, 6, 1)) is None
    assert (await subscriptions.get(subscription_id))["end_date"] == date(2026, 6, 1)


async def test_transition_many_moves_each_row_once(subscriptions):
    first = await subscriptions.create(1, "store", date(2023, 6, 1), date(2024, 6, 1), "{}")
    second = await subscriptions.create(1, "store", date(2023, 6, 1), date(2024, 6, 1), "{}")
    renewed = await subscriptions.create(1, "store", date(2023, 6, 1), date(2025, 6, 1), "{}")
    for subscription_id in (first, second, renewed):
        await subscriptions.set_status(subscription_id, SUBSCRIPTION_ACTIVE)
    ids = [first, second, renewed]

    moved = await subscriptions.transition_many(
        ids, SUBSCRIPTION_ACTIVE, SUBSCRIPTION_GRACE_PERIOD, ending_by=date(2024, 6, 1)
    )

    assert sorted(moved) == [first, second]
    assert await subscriptions.transition_many(
        ids, SUBSCRIPTION_ACTIVE, SUBSCRIPTION_GRACE_PERIOD, ending_by=date(2024, 6, 1)
    ) == []
    assert (await subscriptions.get(renewed))["status"] == SUBSCRIPTION_ACTIVE


async def test_expiring_unbilled_skips_open_invoices(subscriptions, invoices, invoice):
    billed = invoice["subscription_id"]
    unbilled = await subscriptions.create(1, "store", date(2023, 6, 10), date(2024, 6, 10), "{}")
    for subscription_id in (billed, unbilled):
        await subscriptions.set_status(subscription_id, SUBSCRIPTION_ACTIVE)
    await subscriptions.extend(billed, date(2024, 6, 5))

    rows = await subscriptions.get_expiring_unbilled(date(2024, 6, 1), date(2024, 6, 16))

    assert [(row["id"], row["email"]) for row in rows] == [(unbilled, "alice@example.com")]

    await invoices.mark_as_paid("inv-1")
    rows = await subscriptions.get_expiring_unbilled(date(2024, 6, 1), date(2024, 6, 16))
    assert [row["id"] for row in rows] == [billed, unbilled]


async def test_subscription_by_invoice_and_user_email(pool, subscriptions, invoice):
    subscription = await subscriptions.get_by_invoice("inv-1")

    assert subscription["id"] == invoice["subscription_id"]
    assert await subscriptions.get_by_invoice("missing") is None
    assert await UserRepository(pool).get_email(1) == "alice@example.com"
    assert await UserRepository(pool).get_email(2) is None
