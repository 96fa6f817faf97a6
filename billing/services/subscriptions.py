import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional, Protocol

from billing.constants import (
    EXPIRATION_WARNING_DAYS,
    GRACE_PERIOD_DAYS,
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_GRACE_PERIOD,
    SUBSCRIPTION_PENDING,
    SUBSCRIPTION_TERM_YEARS,
    SUBSCRIPTION_TERMINATED,
)
from billing.db.repositories.subscriptions import SubscriptionRepository
from billing.errors import AlreadyTerminated, SubscriptionNotFound
from billing.models.invoice import InvoiceRecord
from billing.models.product import ProductCatalog
from billing.models.subscription import (
    ExpiringSubscription,
    SubscriptionRecord,
    build_activation_command,
    dump_activation_command,
    load_activation_command,
)
from billing.services.invoices import InvoiceService
from billing.services.notifications import NotificationService
from billing.utils.dates import add_years, utc_now

logger = logging.getLogger(__name__)


class CommandDispatcher(Protocol):
    async def dispatch(self, cmd: str, params: dict[str, Any]) -> dict[str, Any]: ...


async def _gather_isolated(
    label: str,
    rows: list[ExpiringSubscription],
    job: Callable[[ExpiringSubscription], Awaitable[Any]]
) -> int:
    """Запускает job для каждой строки параллельно, ошибки логирует. Возвращает число успешных"""
    results = await asyncio.gather(*(job(row) for row in rows), return_exceptions=True)
    succeeded = 0
    for row, result in zip(rows, results):
        if isinstance(result, BaseException):
            logger.error(f"Ошибка ({label}) для подписки {row['id']}: {result}")
        else:
            succeeded += 1
    return succeeded


class SubscriptionService:
    """Сервис для управления подписками"""

    def __init__(
        self,
        subscriptions: SubscriptionRepository,
        invoices: InvoiceService,
        notifications: NotificationService,
        provisioning: CommandDispatcher,
        catalog: ProductCatalog,
        invoice_url: Callable[[str], str],
        clock: Callable[[], datetime] = utc_now,
        auto_terminate_after_grace: bool = False
    ):
        self.subscriptions = subscriptions
        self.invoices = invoices
        self.notifications = notifications
        self.provisioning = provisioning
        self.catalog = catalog
        self.invoice_url = invoice_url
        self.clock = clock
        self.auto_terminate_after_grace = auto_terminate_after_grace

    async def create_subscription(
        self,
        user_id: int,
        product_key: str,
        data: Optional[dict] = None
    ) -> tuple[int, InvoiceRecord]:
        """
        Создает подписку в статусе pending и выставляет первый счёт

        Если счёт выставить не удалось, подписка остается pending,
        а ошибка пробрасывается (счёт можно выставить повторно).

        Returns:
            (id подписки, первый счёт)
        """
        product = self.catalog.get(product_key)
        command = build_activation_command(product.cmd, user_id, data)

        start_date = self.clock().date()
        end_date = add_years(start_date, SUBSCRIPTION_TERM_YEARS)

        subscription_id = await self.subscriptions.create(
            user_id, product_key, start_date, end_date, dump_activation_command(command)
        )
        logger.info(f"✅ Создана подписка {subscription_id}: user_id={user_id}, product={product_key}")

        try:
            invoice = await self.invoices.create_invoice(user_id, subscription_id, product)
        except Exception as e:
            logger.error(f"Не удалось выставить счёт по подписке {subscription_id}: {e}")
            raise

        return subscription_id, invoice

    async def renew_subscription(self, subscription_id: int) -> SubscriptionRecord:
        """Продлевает подписку на год от текущей даты окончания"""
        subscription = await self.subscriptions.get(subscription_id)
        if not subscription:
            raise SubscriptionNotFound(subscription_id)
        if subscription['status'] == SUBSCRIPTION_TERMINATED:
            raise AlreadyTerminated(subscription_id)

        new_end_date = add_years(subscription['end_date'], SUBSCRIPTION_TERM_YEARS)
        renewed = await self.subscriptions.extend(subscription_id, new_end_date)
        if renewed is None:
            # Подписку завершили между чтением и обновлением
            raise AlreadyTerminated(subscription_id)

        logger.info(f"🔁 Подписка {subscription_id} продлена до {new_end_date}")
        return renewed

    async def terminate_subscription(self, subscription_id: int) -> SubscriptionRecord:
        """Завершает подписку (повторный вызов ничего не меняет)"""
        subscription = await self.subscriptions.set_status(subscription_id, SUBSCRIPTION_TERMINATED)
        if not subscription:
            raise SubscriptionNotFound(subscription_id)

        logger.info(f"🛑 Подписка {subscription_id} завершена")
        return subscription

    async def activate_subscription(self, subscription: SubscriptionRecord) -> None:
        """
        Применяет оплату счёта к подписке

        pending -> active с отправкой команды активации воркеру;
        active / grace_period -> продление на год, команда повторно не отправляется
        (ресурс уже создан);
        terminated не меняется.
        """
        subscription_id = subscription['id']
        status = subscription['status']

        if status == SUBSCRIPTION_TERMINATED:
            logger.warning(f"Оплачен счёт завершенной подписки {subscription_id}, статус не меняется")
            return

        if status != SUBSCRIPTION_PENDING:
            await self.renew_subscription(subscription_id)
            return

        await self.subscriptions.set_status(subscription_id, SUBSCRIPTION_ACTIVE)
        logger.info(f"✅ Подписка {subscription_id} активирована")

        command = load_activation_command(subscription['data'])
        await self.provisioning.dispatch(
            command.cmd,
            {"subscriptionId": subscription_id, **command.data.model_dump(by_alias=True)}
        )

    async def check_subscriptions_for_expiration(self) -> int:
        """
        Выставляет счета на продление подпискам, истекающим в ближайшие 15 дней

        Returns:
            Количество подписок, по которым выставлен счёт
        """
        today = self.clock().date()
        rows = await self.subscriptions.get_expiring_unbilled(
            today, today + timedelta(days=EXPIRATION_WARNING_DAYS)
        )
        logger.info(f"Найдено подписок, истекающих в ближайшее время: {len(rows)}")

        return await _gather_isolated("счёт на продление", rows, self._send_renewal_invoice)

    async def _send_renewal_invoice(self, subscription: ExpiringSubscription) -> None:
        product = self.catalog.get(subscription['product_key'])
        invoice = await self.invoices.create_invoice(
            subscription['user_id'], subscription['id'], product, notify=False
        )
        sent = await self.notifications.notify_subscription_expiring(
            subscription['email'], self.invoice_url(invoice['guid'])
        )
        if sent:
            logger.info(f"📨 Счёт на продление отправлен пользователю {subscription['user_id']}")

    async def set_subscriptions_to_grace_period(self) -> int:
        """
        Переводит в grace_period активные подписки, истекающие сегодня

        Returns:
            Количество переведенных подписок
        """
        today = self.clock().date()
        rows = await self.subscriptions.get_ending_between(SUBSCRIPTION_ACTIVE, today, today)
        logger.info(f"Найдено подписок, истекших сегодня: {len(rows)}")

        if not rows:
            return 0

        moved = set(await self.subscriptions.transition_many(
            [row['id'] for row in rows], SUBSCRIPTION_ACTIVE, SUBSCRIPTION_GRACE_PERIOD,
            ending_by=today
        ))
        logger.info(f"⏳ Переведено в grace_period: {len(moved)}")

        # Письмо только тем, чей статус действительно сменился
        await _gather_isolated(
            "письмо о grace period", [row for row in rows if row['id'] in moved],
            lambda row: self.notifications.notify_grace_period(row['email'], GRACE_PERIOD_DAYS)
        )
        return len(moved)

    async def terminate_expired_grace_periods(self) -> int:
        """
        Завершает подписки, у которых закончился grace period

        Работает только при AUTO_TERMINATE_AFTER_GRACE=true.

        Returns:
            Количество завершенных подписок
        """
        if not self.auto_terminate_after_grace:
            return 0

        cutoff = self.clock().date() - timedelta(days=GRACE_PERIOD_DAYS)
        rows = await self.subscriptions.get_ending_before(SUBSCRIPTION_GRACE_PERIOD, cutoff)
        if not rows:
            return 0

        moved = set(await self.subscriptions.transition_many(
            [row['id'] for row in rows], SUBSCRIPTION_GRACE_PERIOD, SUBSCRIPTION_TERMINATED,
            ending_by=cutoff - timedelta(days=1)
        ))
        logger.info(f"🗑️ Завершено подписок после grace period: {len(moved)}")

        await _gather_isolated(
            "письмо о завершении", [row for row in rows if row['id'] in moved],
            lambda row: self.notifications.notify_subscription_terminated(row['email'])
        )
        return len(moved)
