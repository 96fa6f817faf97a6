"""Исключения биллинга"""


class BillingError(Exception):
    """Базовая ошибка биллинга"""


class NotFoundError(BillingError):
    """Сущность не найдена"""


class InvoiceNotFound(NotFoundError):
    def __init__(self, guid: str):
        super().__init__(f"No invoice found with GUID {guid}")
        self.guid = guid


class SubscriptionNotFound(NotFoundError):
    def __init__(self, subscription_id):
        super().__init__(f"Subscription {subscription_id} not found")
        self.subscription_id = subscription_id


class ProductNotFound(NotFoundError):
    def __init__(self, product_key: str):
        super().__init__(f"Product {product_key!r} not found")
        self.product_key = product_key


class AlreadyTerminated(BillingError):
    """Попытка продлить завершённую подписку"""

    def __init__(self, subscription_id: int):
        super().__init__(f"Cannot renew terminated subscription {subscription_id}")
        self.subscription_id = subscription_id


class GatewayUnavailable(BillingError):
    """Chia RPC или воркер провижининга недоступен"""


class AddressUnavailable(GatewayUnavailable):
    """Chia кошелёк не выдал новый адрес для оплаты"""


class PersistenceFailure(BillingError):
    """Ошибка чтения/записи в базу данных"""


class InvalidActivationData(BillingError, ValueError):
    """Параметры активации не прошли валидацию"""
