"""
pytest fixtures для сервисов биллинга.

Provides:
- In-memory store и репозитории
- Фейковые Chia wallet, почта и воркер провижининга
- Собранные InvoiceService / SubscriptionService / PaymentService
"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from billing.models.product import ProductCatalog
from billing.services.invoices import InvoiceService
from billing.services.notifications import NotificationService
from billing.services.payments import PaymentService
from billing.services.subscriptions import SubscriptionService

from fakes import (
    FakeChia,
    FakeClock,
    FakeInvoiceRepository,
    FakeMailer,
    FakePaymentRepository,
    FakeProvisioning,
    FakeSubscriptionRepository,
    FakeUserRepository,
    Store,
)


def invoice_url(guid: str) -> str:
    return f"https://app.example.com/invoices/{guid}"


# ============================================================================
# STORAGE & COLLABORATORS
# ============================================================================

@pytest.fixture
def store():
    store = Store()
    store.users[1] = "alice@example.com"
    store.users[2] = "bob@example.com"
    store.users[3] = "carol@example.com"
    return store


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def chia():
    return FakeChia()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def provisioning():
    return FakeProvisioning()


@pytest.fixture
def catalog():
    return ProductCatalog.from_dict({
        "store": {"cmd": "CREATE_STORE", "cost": Decimal("10"), "name": "DataLayer Store"},
        "mirror": {"cmd": "ADD_MIRROR", "cost": Decimal("2")},
    })


@pytest.fixture
def subscription_repo(store):
    return FakeSubscriptionRepository(store)


@pytest.fixture
def invoice_repo(store):
    return FakeInvoiceRepository(store)


@pytest.fixture
def payment_repo(store):
    return FakePaymentRepository(store)


# ============================================================================
# SERVICES
# ============================================================================

@pytest.fixture
def notifications(mailer):
    return NotificationService(mailer)


@pytest.fixture
def invoice_service(store, invoice_repo, subscription_repo, catalog, chia, notifications, clock):
    counter = iter(range(1, 1000))
    return InvoiceService(
        invoice_repo,
        subscription_repo,
        FakeUserRepository(store),
        catalog,
        chia,
        notifications,
        invoice_url=invoice_url,
        clock=clock,
        id_factory=lambda: f"guid-{next(counter)}"
    )


@pytest.fixture
def subscription_service(subscription_repo, invoice_service, notifications, provisioning, catalog, clock):
    return SubscriptionService(
        subscription_repo,
        invoice_service,
        notifications,
        provisioning,
        catalog,
        invoice_url=invoice_url,
        clock=clock
    )


@pytest.fixture
def payment_service(invoice_repo, payment_repo, subscription_repo, subscription_service, chia):
    return PaymentService(invoice_repo, payment_repo, subscription_repo, subscription_service, chia)
