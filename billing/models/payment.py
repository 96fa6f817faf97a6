"""Модели для платежей"""
from decimal import Decimal
from typing import TypedDict

from pydantic import BaseModel, Field

from billing.utils.units import mojo_to_xch


class PaymentRecord(TypedDict):
    """Запись платежа из базы данных"""
    invoice_guid: str
    coin_name: str
    amount: Decimal  # XCH
    confirmed_at_height: int
    fee: int  # mojo


class ChainTransaction(BaseModel):
    """Транзакция из ответа Chia wallet RPC get_transactions"""

    model_config = {"extra": "ignore"}

    name: str
    amount: int  # mojo
    confirmed: bool
    confirmed_at_height: int = 0
    fee_amount: int = Field(default=0)

    @property
    def amount_xch(self) -> Decimal:
        return mojo_to_xch(self.amount)
