import logging
from typing import Protocol

from billing.constants import GRACE_PERIOD_DAYS

logger = logging.getLogger(__name__)


class MailSender(Protocol):
    async def send(self, to: str, subject: str, body: str) -> None: ...


class NotificationService:
    """Сервис для отправки уведомлений пользователям"""

    def __init__(self, sender: MailSender):
        self.sender = sender

    async def send(self, to: str, subject: str, body: str) -> bool:
        """Отправляет письмо; ошибка доставки только логируется"""
        try:
            await self.sender.send(to, subject, body)
            return True
        except Exception as e:
            logger.error(f"Не удалось отправить письмо '{subject}' на {to}: {e}")
            return False

    async def notify_invoice_created(self, email: str, invoice_url: str) -> bool:
        return await self.send(
            email,
            "Your Invoice",
            f"Please pay the invoice at {invoice_url} to activate or renew your subscription."
        )

    async def notify_subscription_expiring(self, email: str, invoice_url: str) -> bool:
        return await self.send(
            email,
            "Your Subscription Is Expiring Soon",
            f"Your subscription is expiring soon. "
            f"Please pay the invoice at {invoice_url} to renew your subscription."
        )

    async def notify_grace_period(self, email: str, days: int = GRACE_PERIOD_DAYS) -> bool:
        return await self.send(
            email,
            "Your Subscription Has Expired",
            f"Your subscription has expired. "
            f"You have a grace period of {days} days to renew your subscription."
        )

    async def notify_subscription_terminated(self, email: str) -> bool:
        return await self.send(
            email,
            "Your Subscription Has Been Terminated",
            "Your subscription has been terminated because the grace period has ended without payment."
        )
