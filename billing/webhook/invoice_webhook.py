"""HTTP сервер: проверка оплаты счетов и операции с подписками"""
import json
import logging
from datetime import date, datetime
from decimal import Decimal
from functools import partial

from aiohttp import web

from billing.errors import AlreadyTerminated, GatewayUnavailable, NotFoundError, PersistenceFailure
from billing.services.invoices import InvoiceService
from billing.services.payments import PaymentService
from billing.services.subscriptions import SubscriptionService

logger = logging.getLogger(__name__)


def _json_default(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


json_response = partial(web.json_response, dumps=partial(json.dumps, default=_json_default))


def _error(status: int, message: str) -> web.Response:
    return json_response({"error": message}, status=status)


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Переводит исключения биллинга в HTTP статусы"""
    try:
        return await handler(request)
    except NotFoundError as e:
        return _error(404, str(e))
    except AlreadyTerminated as e:
        return _error(409, str(e))
    except GatewayUnavailable as e:
        logger.error(f"Шлюз недоступен ({request.path}): {e}")
        return _error(502, str(e))
    except PersistenceFailure as e:
        logger.error(f"Ошибка БД ({request.path}): {e}")
        return _error(503, "storage unavailable")
    except ValueError as e:
        return _error(400, str(e))


def _subscription_id(request: web.Request) -> int:
    try:
        return int(request.match_info['subscription_id'])
    except ValueError:
        raise web.HTTPBadRequest(text="subscription_id must be an integer")


async def handle_check_invoice(request: web.Request) -> web.Response:
    """Проверка оплаты счёта (вызывается страницей счёта или внешним вебхуком)"""
    payments: PaymentService = request.app['payments']
    invoice = await payments.check_for_payment(request.match_info['guid'])
    return json_response(invoice)


async def handle_get_invoice(request: web.Request) -> web.Response:
    payments: PaymentService = request.app['payments']
    guid = request.match_info['guid']
    invoice = await payments.invoices.get(guid)
    if not invoice:
        return _error(404, f"No invoice found with GUID {guid}")
    invoice_payments = await payments.payments.get_invoice_payments(guid)
    return json_response({**invoice, "payments": invoice_payments})


async def handle_create_subscription(request: web.Request) -> web.Response:
    """
    Создание подписки

    Тело: {"user_id": int, "product_key": str, "data": {...}}
    """
    subscriptions: SubscriptionService = request.app['subscriptions']
    try:
        body = await request.json()
        user_id = int(body['user_id'])
        product_key = str(body['product_key'])
    except (ValueError, KeyError, TypeError):
        return _error(400, "user_id and product_key are required")

    data = body.get('data')
    if data is not None and not isinstance(data, dict):
        return _error(400, "data must be an object")

    subscription_id, invoice = await subscriptions.create_subscription(user_id, product_key, data)
    return json_response({"subscription_id": subscription_id, "invoice": invoice}, status=201)


async def handle_renew_subscription(request: web.Request) -> web.Response:
    subscriptions: SubscriptionService = request.app['subscriptions']
    subscription = await subscriptions.renew_subscription(_subscription_id(request))
    return json_response(subscription)


async def handle_terminate_subscription(request: web.Request) -> web.Response:
    subscriptions: SubscriptionService = request.app['subscriptions']
    subscription = await subscriptions.terminate_subscription(_subscription_id(request))
    return json_response(subscription)


async def handle_create_invoice(request: web.Request) -> web.Response:
    """Повторное выставление счёта по подписке"""
    invoices: InvoiceService = request.app['invoices']
    invoice = await invoices.create_invoice_for_subscription(_subscription_id(request))
    return json_response(invoice, status=201)


def create_api_app(
    payments: PaymentService,
    subscriptions: SubscriptionService,
    invoices: InvoiceService
) -> web.Application:
    """Создает aiohttp приложение"""
    app = web.Application(middlewares=[error_middleware])
    app['payments'] = payments
    app['subscriptions'] = subscriptions
    app['invoices'] = invoices

    app.router.add_get('/invoices/{guid}', handle_get_invoice)
    app.router.add_post('/invoices/{guid}/check', handle_check_invoice)
    app.router.add_post('/subscriptions', handle_create_subscription)
    app.router.add_post('/subscriptions/{subscription_id}/renew', handle_renew_subscription)
    app.router.add_post('/subscriptions/{subscription_id}/terminate', handle_terminate_subscription)
    app.router.add_post('/subscriptions/{subscription_id}/invoices', handle_create_invoice)

    return app
