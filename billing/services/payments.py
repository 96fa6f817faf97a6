"""Сверка платежей в блокчейне Chia со счетами"""
import logging
from typing import Protocol

from billing.constants import INVOICE_PAID
from billing.db.repositories.invoices import InvoiceRepository
from billing.db.repositories.payments import PaymentRepository
from billing.db.repositories.subscriptions import SubscriptionRepository
from billing.errors import InvoiceNotFound, SubscriptionNotFound
from billing.models.invoice import InvoiceRecord
from billing.models.payment import ChainTransaction
from billing.services.subscriptions import SubscriptionService

logger = logging.getLogger(__name__)


class TransactionSource(Protocol):
    async def get_transactions(self, address: str) -> list[ChainTransaction]: ...


class PaymentService:
    """Опрос адресов счетов и подтверждение оплаты"""

    def __init__(
        self,
        invoices: InvoiceRepository,
        payments: PaymentRepository,
        subscriptions: SubscriptionRepository,
        lifecycle: SubscriptionService,
        chia: TransactionSource
    ):
        self.invoices = invoices
        self.payments = payments
        self.subscriptions = subscriptions
        self.lifecycle = lifecycle
        self.chia = chia

    async def check_for_payment(self, guid: str) -> InvoiceRecord:
        """
        Проверяет оплату счёта; безопасно вызывать повторно

        Подтвержденные транзакции на адрес счёта записываются в payments
        (каждая не более одного раза), их сумма добавляется к amount_paid.
        Как только amount_paid >= total_amount_due, счёт подтверждается.
        Переплата принимается как есть.

        Raises:
            InvoiceNotFound: счёта нет
            GatewayUnavailable: Chia RPC не вернул список транзакций
        """
        invoice = await self.invoices.get(guid)
        if not invoice:
            raise InvoiceNotFound(guid)

        if invoice['status'] == INVOICE_PAID:
            logger.info(f"Счёт {guid} уже оплачен")
            return invoice

        transactions = await self.chia.get_transactions(invoice['xch_payment_address'])
        confirmed = [tx for tx in transactions if tx.confirmed]

        amount_paid = invoice['amount_paid']
        if confirmed:
            ingested, amount_paid = await self.payments.record_transactions(guid, confirmed)
            if ingested:
                logger.info(f"💰 Счёт {guid}: получено {ingested} XCH, всего {amount_paid} XCH")

        if amount_paid >= invoice['total_amount_due']:
            await self.confirm_payment(guid)
        else:
            logger.info(
                f"Счёт {guid} еще не оплачен: {amount_paid} из {invoice['total_amount_due']} XCH"
            )

        return await self.invoices.get(guid) or invoice

    async def confirm_payment(self, guid: str) -> int:
        """
        Отмечает счёт оплаченным и активирует подписку

        Активация выполняется один раз: если счёт уже был paid
        (его подтвердил параллельный вызов), подписка не трогается.

        Returns:
            id подписки
        """
        previous_status = await self.invoices.mark_as_paid(guid)
        if previous_status is None:
            raise InvoiceNotFound(guid)

        subscription = await self.subscriptions.get_by_invoice(guid)
        if not subscription:
            logger.error(f"Не найдена подписка для счёта {guid}")
            raise SubscriptionNotFound(f"invoice {guid}")

        if previous_status == INVOICE_PAID:
            logger.info(f"Счёт {guid} уже был подтвержден, подписка {subscription['id']} не меняется")
            return subscription['id']

        logger.info(f"✅ Счёт {guid} отмечен как оплаченный")
        await self.lifecycle.activate_subscription(subscription)
        return subscription['id']

    async def check_unpaid_invoices(self) -> int:
        """
        Проверяет все неоплаченные счета; ошибка по одному счёту не мешает остальным

        Returns:
            Количество счетов, оплаченных за этот проход
        """
        guids = await self.invoices.get_unpaid_guids()
        settled = 0
        for guid in guids:
            try:
                invoice = await self.check_for_payment(guid)
            except Exception as e:
                logger.error(f"Ошибка проверки оплаты счёта {guid}: {e}")
                continue
            if invoice['status'] == INVOICE_PAID:
                settled += 1
        return settled
