import asyncio
import logging

from billing.constants import LIFECYCLE_INTERVAL_SECONDS, PAYMENT_POLL_INTERVAL_SECONDS
from billing.services.payments import PaymentService
from billing.services.subscriptions import SubscriptionService

logger = logging.getLogger(__name__)


async def run_lifecycle_checks(subscriptions: SubscriptionService) -> None:
    """Один проход проверок сроков подписок"""
    invoiced = await subscriptions.check_subscriptions_for_expiration()
    if invoiced:
        logger.info(f"🧾 Выставлено счетов на продление: {invoiced}")

    await subscriptions.set_subscriptions_to_grace_period()

    terminated = await subscriptions.terminate_expired_grace_periods()
    if terminated:
        logger.info(f"🗑️ Завершено подписок: {terminated}")


async def payment_polling_task(
    payments: PaymentService,
    interval: float = PAYMENT_POLL_INTERVAL_SECONDS
):
    """Фоновая задача опроса неоплаченных счетов"""
    logger.info("🔄 Запущена фоновая задача проверки оплат")

    try:
        while True:
            try:
                settled = await payments.check_unpaid_invoices()
                if settled:
                    logger.info(f"💰 Оплачено счетов: {settled}")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Ошибка в задаче проверки оплат: {e}")

            await asyncio.sleep(interval)

    except asyncio.CancelledError:
        logger.info("✅ Задача проверки оплат завершена")
        raise


async def subscription_lifecycle_task(
    subscriptions: SubscriptionService,
    interval: float = LIFECYCLE_INTERVAL_SECONDS
):
    """Фоновая задача: счета на продление, grace period, завершение подписок"""
    logger.info("🔄 Запущена фоновая задача жизненного цикла подписок")

    try:
        while True:
            try:
                await run_lifecycle_checks(subscriptions)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Ошибка в задаче жизненного цикла подписок: {e}")

            await asyncio.sleep(interval)

    except asyncio.CancelledError:
        logger.info("✅ Задача жизненного цикла подписок завершена")
        raise
