from datetime import datetime
from decimal import Decimal
from typing import TypedDict


class InvoiceRecord(TypedDict):
    """Запись счёта из базы данных"""
    guid: str
    subscription_id: int
    issue_date: datetime
    due_date: datetime
    total_amount_due: Decimal  # XCH
    amount_paid: Decimal  # XCH, сумма по таблице payments
    xch_payment_address: str
    status: str  # unpaid, paid
