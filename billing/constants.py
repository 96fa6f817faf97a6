from decimal import Decimal

# 1 XCH = 10^12 mojo
MOJO_PER_XCH = Decimal(10) ** 12

# Срок подписки и счёта (календарный год)
SUBSCRIPTION_TERM_YEARS = 1

# Окна жизненного цикла подписки
EXPIRATION_WARNING_DAYS = 15
GRACE_PERIOD_DAYS = 15

# Статусы подписки
SUBSCRIPTION_PENDING = "pending"
SUBSCRIPTION_ACTIVE = "active"
SUBSCRIPTION_GRACE_PERIOD = "grace_period"
SUBSCRIPTION_TERMINATED = "terminated"

# Статусы счёта
INVOICE_UNPAID = "unpaid"
INVOICE_PAID = "paid"

# Интервалы фоновых задач
PAYMENT_POLL_INTERVAL_SECONDS = 60  # Опрос неоплаченных счетов (1 минута)
LIFECYCLE_INTERVAL_SECONDS = 3600  # Проверка сроков подписок (1 час)

# Таймаут запросов к Chia RPC и воркеру провижининга
HTTP_TIMEOUT_SECONDS = 30
