"""Клиент для работы с Chia wallet RPC"""
import logging
import ssl
from pathlib import Path
from typing import Any, Optional

import aiohttp
from pydantic import ValidationError

from billing.constants import HTTP_TIMEOUT_SECONDS
from billing.errors import GatewayUnavailable
from billing.models.payment import ChainTransaction

logger = logging.getLogger(__name__)


def make_ssl_context(cert_file: Path, key_file: Path) -> ssl.SSLContext:
    """
    SSL контекст с клиентским сертификатом кошелька

    Chia подписывает RPC сертификаты собственным CA, поэтому
    имя хоста и цепочка сертификатов не проверяются.
    """
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    context.load_cert_chain(str(cert_file), str(key_file))
    return context


class ChiaWalletClient:
    """Клиент Chia wallet RPC: адреса для оплаты и входящие транзакции"""

    def __init__(
        self,
        base_url: str,
        ssl_context: Optional[ssl.SSLContext] = None,
        wallet_id: int = 1,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.wallet_id = wallet_id
        self._ssl = ssl_context
        self._session = session

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SECONDS)
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def _rpc(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Вызывает RPC метод, возвращает тело ответа"""
        url = f"{self.base_url}/{endpoint}"
        try:
            async with self._get_session().post(url, json=payload, ssl=self._ssl) as response:
                response.raise_for_status()
                body = await response.json(content_type=None)
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            logger.error(f"Ошибка Chia RPC {endpoint}: {e}")
            raise GatewayUnavailable(f"Chia RPC {endpoint} failed: {e}") from e

        if not isinstance(body, dict):
            raise GatewayUnavailable(f"Chia RPC {endpoint} returned no result")
        if body.get("success") is False:
            raise GatewayUnavailable(f"Chia RPC {endpoint} error: {body.get('error')}")
        return body

    async def get_next_address(self) -> Optional[str]:
        """Запрашивает новый адрес для приема оплаты"""
        body = await self._rpc("get_next_address", {"wallet_id": self.wallet_id, "new_address": True})
        return body.get("address") or None

    async def get_transactions(self, address: str) -> list[ChainTransaction]:
        """
        Транзакции, пришедшие на адрес

        Пустой список - нормальный ответ (оплаты еще не было).

        Raises:
            GatewayUnavailable: RPC недоступен или ответ без поля transactions
        """
        body = await self._rpc(
            "get_transactions",
            {"wallet_id": self.wallet_id, "to_address": address}
        )
        raw = body.get("transactions")
        if raw is None:
            raise GatewayUnavailable(f"Error retrieving transactions from Chia node for {address}")
        try:
            return [ChainTransaction.model_validate(tx) for tx in raw]
        except ValidationError as e:
            raise GatewayUnavailable(f"Malformed transaction list for {address}: {e}") from e
