from datetime import date, datetime, timezone
from typing import TypeVar

D = TypeVar("D", date, datetime)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def add_years(value: D, years: int) -> D:
    """Сдвигает дату на years календарных лет (29 февраля -> 28 февраля)"""
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        return value.replace(year=value.year + years, day=28)
