import logging
import uuid
from datetime import datetime
from typing import Callable, Protocol

from billing.constants import SUBSCRIPTION_TERM_YEARS, SUBSCRIPTION_TERMINATED
from billing.db.repositories.invoices import InvoiceRepository
from billing.db.repositories.subscriptions import SubscriptionRepository
from billing.db.repositories.users import UserRepository
from billing.errors import AddressUnavailable, AlreadyTerminated, PersistenceFailure, SubscriptionNotFound
from billing.models.invoice import InvoiceRecord
from billing.models.product import Product, ProductCatalog
from billing.services.notifications import NotificationService
from billing.utils.dates import add_years, utc_now

logger = logging.getLogger(__name__)


class AddressSource(Protocol):
    async def get_next_address(self) -> str | None: ...


def new_invoice_id() -> str:
    return str(uuid.uuid4())


class InvoiceService:
    """Выставление счетов на оплату в XCH"""

    def __init__(
        self,
        invoices: InvoiceRepository,
        subscriptions: SubscriptionRepository,
        users: UserRepository,
        catalog: ProductCatalog,
        chia: AddressSource,
        notifications: NotificationService,
        invoice_url: Callable[[str], str],
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = new_invoice_id
    ):
        self.invoices = invoices
        self.subscriptions = subscriptions
        self.users = users
        self.catalog = catalog
        self.chia = chia
        self.notifications = notifications
        self.invoice_url = invoice_url
        self.clock = clock
        self.id_factory = id_factory

    async def create_invoice(
        self,
        user_id: int,
        subscription_id: int,
        product: Product,
        notify: bool = True
    ) -> InvoiceRecord:
        """
        Выставляет счёт за подписку на новый адрес Chia кошелька

        Args:
            user_id: Владелец подписки
            subscription_id: Подписка, за которую выставляется счёт
            product: Продукт подписки (сумма = product.cost)
            notify: Отправить письмо "Your Invoice"

        Returns:
            Созданный счёт

        Raises:
            AddressUnavailable: кошелек не выдал адрес, счёт не создан
            GatewayUnavailable: Chia RPC недоступен, счёт не создан
            PersistenceFailure: не удалось записать счёт
        """
        issue_date = self.clock()
        due_date = add_years(issue_date, SUBSCRIPTION_TERM_YEARS)

        address = await self.chia.get_next_address()
        if not address:
            raise AddressUnavailable("Error retrieving payment address from Chia node")

        guid = self.id_factory()
        invoice = await self.invoices.create(
            guid, subscription_id, issue_date, due_date, product.cost, address
        )
        logger.info(f"🧾 Счёт {guid} выставлен: подписка {subscription_id}, {product.cost} XCH на {address}")

        if notify:
            await self._notify_user(user_id, guid)

        return invoice

    async def create_invoice_for_subscription(self, subscription_id: int, notify: bool = True) -> InvoiceRecord:
        """Выставляет новый счёт по существующей подписке (продление или повтор)"""
        subscription = await self.subscriptions.get(subscription_id)
        if not subscription:
            raise SubscriptionNotFound(subscription_id)
        if subscription['status'] == SUBSCRIPTION_TERMINATED:
            raise AlreadyTerminated(subscription_id)

        product = self.catalog.get(subscription['product_key'])
        return await self.create_invoice(subscription['user_id'], subscription_id, product, notify=notify)

    async def _notify_user(self, user_id: int, guid: str) -> None:
        # Счёт уже записан, письмо отправляется по возможности
        try:
            email = await self.users.get_email(user_id)
        except PersistenceFailure as e:
            logger.error(f"Не удалось получить email пользователя {user_id}: {e}")
            return

        if not email:
            logger.warning(f"У пользователя {user_id} нет email, письмо по счёту {guid} не отправлено")
            return

        if await self.notifications.notify_invoice_created(email, self.invoice_url(guid)):
            logger.info(f"📨 Письмо по счёту {guid} отправлено пользователю {user_id}")
