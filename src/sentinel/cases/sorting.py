"""
Column sorting for case lists.

Works on ORM rows or view rows alike: anything exposing the case
attributes. Sorting is stable, so equal keys keep their input order.
Text columns collate with the process LC_COLLATE locale, which the app
sets at startup through configure_collation().
"""

import locale
import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Sequence, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class SortField(str, Enum):
    GAMING_DAY = "gaming_day"
    CASH_IN_TOTAL = "cash_in_total"
    CASH_OUT_TOTAL = "cash_out_total"
    NAME = "name"
    STATUS = "status"
    SHIP = "ship"
    CURRENT_OWNER = "current_owner"
    RECOMMENDATION = "recommendation"
    FOLIO_NUMBER = "folio_number"
    VOYAGE_TOTAL = "voyage_total"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


DATE_FIELDS = {SortField.GAMING_DAY}
MONEY_FIELDS = {SortField.CASH_IN_TOTAL, SortField.CASH_OUT_TOTAL, SortField.VOYAGE_TOTAL}


def configure_collation(name: str = "") -> str:
    """
    Set the collation locale used for text columns.

    An empty name takes the locale from the environment. A locale the
    host does not have is logged and the current collation is kept.
    Returns the active collation locale.
    """
    try:
        return locale.setlocale(locale.LC_COLLATE, name)
    except locale.Error as e:
        current = locale.setlocale(locale.LC_COLLATE)
        logger.warning(f"Collation locale {name!r} unavailable ({e}); keeping {current}")
        return current


def _text_key(value: Any) -> str:
    if value is None:
        return locale.strxfrm("")
    if isinstance(value, Enum):
        value = value.value
    return locale.strxfrm(str(value).casefold())


def _date_key(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return value.toordinal()
    return date.fromisoformat(str(value)[:10]).toordinal()


def _money_key(value: Any) -> float:
    return float(value) if value is not None else 0.0


def _owner_name(case: Any) -> Optional[str]:
    name = getattr(case, "owner_name", None)
    if name is None:
        owner = getattr(case, "owner", None)
        name = getattr(owner, "full_name", None) if owner is not None else None
    return name


def sort_key(field: SortField) -> Callable[[Any], Any]:
    """Key function for one sortable column."""
    if field in DATE_FIELDS:
        return lambda case: _date_key(getattr(case, field.value, None))
    if field in MONEY_FIELDS:
        return lambda case: _money_key(getattr(case, field.value, None))
    if field is SortField.NAME:
        return lambda case: _text_key(
            f"{getattr(case, 'first_name', '') or ''} {getattr(case, 'last_name', '') or ''}"
        )
    if field is SortField.CURRENT_OWNER:
        return lambda case: _text_key(_owner_name(case))
    return lambda case: _text_key(getattr(case, field.value, None))


def sort_cases(
    cases: Iterable[T],
    field: Optional[SortField] = None,
    order: SortOrder = SortOrder.DESC,
) -> list[T]:
    """
    Return a new list sorted by one column.

    With no field the input order is kept. Missing dates and amounts
    sort as zero, missing text as the empty string.
    """
    items = list(cases)
    if field is None:
        return items
    return sorted(items, key=sort_key(SortField(field)), reverse=SortOrder(order) is SortOrder.DESC)


@dataclass
class SortState:
    """Current sort column of a list screen."""

    field: Optional[SortField] = None
    order: SortOrder = SortOrder.DESC

    def toggle(self, field: SortField) -> "SortState":
        """Clicking the active column flips the order; a new column starts descending."""
        if field == self.field:
            order = SortOrder.ASC if self.order is SortOrder.DESC else SortOrder.DESC
            return SortState(field=field, order=order)
        return SortState(field=field, order=SortOrder.DESC)

    def apply(self, cases: Sequence[T]) -> list[T]:
        return sort_cases(cases, self.field, self.order)
