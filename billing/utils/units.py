from decimal import Decimal

from billing.constants import MOJO_PER_XCH


def mojo_to_xch(mojo: int) -> Decimal:
    """Переводит сумму из mojo в XCH без потери точности"""
    return Decimal(mojo) / MOJO_PER_XCH
