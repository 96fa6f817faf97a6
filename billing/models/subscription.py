"""Модели подписок и команд активации"""
import json
from datetime import date
from enum import Enum
from typing import Annotated, Literal, TypedDict, Union

from pydantic import AliasGenerator, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from billing.errors import InvalidActivationData


class SubscriptionRecord(TypedDict):
    """Запись подписки из базы данных"""
    id: int
    user_id: int
    product_key: str
    start_date: date
    end_date: date
    status: str  # pending, active, grace_period, terminated
    data: str  # JSON ActivationCommand


class ExpiringSubscription(SubscriptionRecord):
    """Подписка вместе с email владельца (для рассылок)"""
    email: str


class ActivationCmd(str, Enum):
    """Команды воркера провижининга"""
    CREATE_STORE = "CREATE_STORE"
    SUBSCRIBE_TO_STORE = "SUBSCRIBE_TO_STORE"
    ADD_MIRROR = "ADD_MIRROR"


class ProvisioningParams(BaseModel):
    """Параметры команды; воркер провижининга ждёт ключи в camelCase"""
    model_config = ConfigDict(alias_generator=AliasGenerator(serialization_alias=to_camel))


class CreateStoreParams(ProvisioningParams):
    user_id: int
    label: str | None = None


class SubscribeToStoreParams(ProvisioningParams):
    user_id: int
    store_id: str = Field(..., pattern=r"^[0-9a-fA-F]{64}$")


class AddMirrorParams(ProvisioningParams):
    user_id: int
    store_id: str = Field(..., pattern=r"^[0-9a-fA-F]{64}$")
    urls: list[str] = Field(..., min_length=1)


class CreateStoreCommand(BaseModel):
    cmd: Literal["CREATE_STORE"]
    data: CreateStoreParams


class SubscribeToStoreCommand(BaseModel):
    cmd: Literal["SUBSCRIBE_TO_STORE"]
    data: SubscribeToStoreParams


class AddMirrorCommand(BaseModel):
    cmd: Literal["ADD_MIRROR"]
    data: AddMirrorParams


ActivationCommand = Annotated[
    Union[CreateStoreCommand, SubscribeToStoreCommand, AddMirrorCommand],
    Field(discriminator="cmd"),
]

_activation_adapter: TypeAdapter[ActivationCommand] = TypeAdapter(ActivationCommand)


def build_activation_command(cmd: ActivationCmd, user_id: int, data: dict | None) -> ActivationCommand:
    """
    Собирает и валидирует команду активации при создании подписки

    Args:
        cmd: Команда из каталога продуктов
        user_id: Владелец подписки
        data: Параметры от клиента

    Returns:
        Валидированная команда

    Raises:
        InvalidActivationData: если параметры не подходят к команде
    """
    if data is not None and not isinstance(data, dict):
        raise InvalidActivationData(f"Parameters for {cmd.value} must be an object")

    payload = {"cmd": cmd.value, "data": {**(data or {}), "user_id": user_id}}
    try:
        return _activation_adapter.validate_python(payload)
    except ValidationError as e:
        raise InvalidActivationData(f"Invalid parameters for {cmd.value}: {e}") from e


def dump_activation_command(command: ActivationCommand) -> str:
    return command.model_dump_json()


def load_activation_command(raw: str | dict) -> ActivationCommand:
    """Разбирает команду, сохранённую в subscriptions.data"""
    if isinstance(raw, str):
        raw = json.loads(raw)
    return _activation_adapter.validate_python(raw)
