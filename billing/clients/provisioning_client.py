"""Клиент воркера провижининга"""
import logging
from typing import Any, Optional

import aiohttp

from billing.constants import HTTP_TIMEOUT_SECONDS
from billing.errors import GatewayUnavailable

logger = logging.getLogger(__name__)


class ProvisioningClient:
    """Отправляет команды активации подписок воркеру"""

    def __init__(self, base_url: str, session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url.rstrip("/")
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

    async def dispatch(self, cmd: str, params: dict[str, Any]) -> dict[str, Any]:
        """
        Отправляет команду воркеру

        Args:
            cmd: Имя команды (CREATE_STORE, ...)
            params: Параметры команды, включая subscription_id

        Returns:
            Ответ воркера
        """
        url = f"{self.base_url}/{cmd}"
        try:
            async with self._get_session().post(url, json=params) as response:
                response.raise_for_status()
                body = await response.json(content_type=None)
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            logger.error(f"Ошибка отправки команды {cmd}: {e}")
            raise GatewayUnavailable(f"Provisioning command {cmd} failed: {e}") from e

        logger.info(f"⚙️ Команда {cmd} отправлена воркеру: {params}")
        return body if isinstance(body, dict) else {"result": body}
