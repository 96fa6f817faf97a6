import asyncio
from aiohttp import web

from billing.config import Config, setup_logging
from billing.db.pool import init_pool, close_pool
from billing.db.schema import apply_schema
from billing.db.repositories.invoices import InvoiceRepository
from billing.db.repositories.payments import PaymentRepository
from billing.db.repositories.subscriptions import SubscriptionRepository
from billing.db.repositories.users import UserRepository
from billing.clients.chia_client import ChiaWalletClient, make_ssl_context
from billing.clients.email_client import EmailClient
from billing.clients.provisioning_client import ProvisioningClient
from billing.models.product import ProductCatalog
from billing.services.invoices import InvoiceService
from billing.services.notifications import NotificationService
from billing.services.payments import PaymentService
from billing.services.subscriptions import SubscriptionService
from billing.background.lifecycle import payment_polling_task, subscription_lifecycle_task
from billing.webhook.invoice_webhook import create_api_app


async def main():
    """Главная функция запуска воркера биллинга"""
    config = Config.from_env()
    logger = setup_logging(config.log_level)
    logger.info("🚀 Запуск воркера биллинга...")

    # Каталог продуктов загружается один раз
    catalog = ProductCatalog.load(config.products_config_path)

    # Инициализация базы данных
    pool = await init_pool(config.database_url)
    await apply_schema(pool)

    chia = ChiaWalletClient(
        config.chia_wallet_url,
        ssl_context=make_ssl_context(config.chia_cert_file, config.chia_key_file),
        wallet_id=config.chia_wallet_id
    )
    provisioning = ProvisioningClient(config.provisioning_url)
    notifications = NotificationService(EmailClient(
        host=config.smtp_host,
        port=config.smtp_port,
        sender=config.email_from,
        user=config.smtp_user,
        password=config.smtp_password,
        use_tls=config.smtp_use_tls
    ))

    subscription_repo = SubscriptionRepository(pool)
    invoice_repo = InvoiceRepository(pool)
    invoice_service = InvoiceService(
        invoice_repo,
        subscription_repo,
        UserRepository(pool),
        catalog,
        chia,
        notifications,
        invoice_url=config.invoice_url
    )
    subscription_service = SubscriptionService(
        subscription_repo,
        invoice_service,
        notifications,
        provisioning,
        catalog,
        invoice_url=config.invoice_url,
        auto_terminate_after_grace=config.auto_terminate_after_grace
    )
    payment_service = PaymentService(
        invoice_repo,
        PaymentRepository(pool),
        subscription_repo,
        subscription_service,
        chia
    )

    # HTTP сервер
    runner = web.AppRunner(create_api_app(payment_service, subscription_service, invoice_service))
    await runner.setup()
    site = web.TCPSite(runner, config.http_host, config.http_port)
    await site.start()
    logger.info(f"🌐 HTTP сервер слушает {config.http_host}:{config.http_port}")

    # Фоновые задачи
    tasks = [
        asyncio.create_task(payment_polling_task(payment_service)),
        asyncio.create_task(subscription_lifecycle_task(subscription_service)),
    ]

    logger.info("✅ Воркер инициализирован")
    if config.auto_terminate_after_grace:
        logger.info("⚙️ Автоматическое завершение подписок после grace period включено")

    try:
        await asyncio.gather(*tasks)
    finally:
        # Очистка ресурсов
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await runner.cleanup()
        await chia.close()
        await provisioning.close()
        await close_pool()
        logger.info("👋 Воркер остановлен")


if __name__ == "__main__":
    asyncio.run(main())
