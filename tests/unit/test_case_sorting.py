"""
Unit tests for case list sorting.
"""

import locale
import logging
from datetime import date
from types import SimpleNamespace

import pytest

from sentinel.cases.sorting import (
    SortField,
    SortOrder,
    SortState,
    configure_collation,
    sort_cases,
)


def _case(case_id, **fields):
    defaults = {
        "gaming_day": None,
        "cash_in_total": None,
        "first_name": "",
        "last_name": "",
        "status": "New",
        "owner_name": None,
    }
    defaults.update(fields)
    return SimpleNamespace(case_id=case_id, **defaults)


def _ids(cases):
    return [c.case_id for c in cases]


class TestSortCases:
    """Tests for sorting by one column."""

    def test_no_field_keeps_order(self):
        """Without a sort column the query order is kept."""
        cases = [_case("b"), _case("a"), _case("c")]
        assert _ids(sort_cases(cases)) == ["b", "a", "c"]

    def test_dates_descending_by_default(self):
        cases = [
            _case("old", gaming_day=date(2024, 1, 5)),
            _case("new", gaming_day=date(2024, 3, 1)),
            _case("mid", gaming_day="2024-02-10"),
        ]
        assert _ids(sort_cases(cases, SortField.GAMING_DAY)) == ["new", "mid", "old"]

    def test_missing_date_sorts_as_oldest(self):
        """A missing gaming day sorts below every real date."""
        cases = [_case("none"), _case("dated", gaming_day=date(2024, 1, 1))]

        assert _ids(sort_cases(cases, SortField.GAMING_DAY, SortOrder.ASC)) == ["none", "dated"]

    def test_money_is_numeric(self):
        """Amounts compare as numbers, not strings."""
        cases = [
            _case("nine", cash_in_total=9000),
            _case("twelve", cash_in_total=12000),
            _case("none"),
        ]
        assert _ids(sort_cases(cases, SortField.CASH_IN_TOTAL, SortOrder.ASC)) == [
            "none",
            "nine",
            "twelve",
        ]

    def test_missing_amount_sorts_as_zero(self):
        cases = [
            _case("none"),
            _case("zero", cash_in_total=0),
            _case("refund", cash_in_total=-100),
        ]
        assert _ids(sort_cases(cases, SortField.CASH_IN_TOTAL, SortOrder.ASC)) == [
            "refund",
            "none",
            "zero",
        ]

    def test_missing_ship_sorts_first_ascending(self):
        cases = [_case("at-sea", ship="Wonder"), _case("unknown", ship=None)]

        assert _ids(sort_cases(cases, SortField.SHIP, SortOrder.ASC)) == ["unknown", "at-sea"]
        assert _ids(sort_cases(cases, SortField.SHIP, SortOrder.DESC)) == ["at-sea", "unknown"]

    def test_missing_recommendation_sorts_first_ascending(self):
        cases = [
            _case("ctr", recommendation="File CTR"),
            _case("open", recommendation=None),
            _case("psa", recommendation="PSA"),
        ]
        assert _ids(sort_cases(cases, SortField.RECOMMENDATION, SortOrder.ASC)) == [
            "open",
            "ctr",
            "psa",
        ]

    def test_text_ignores_case(self):
        cases = [_case("upper", ship="Wonder"), _case("lower", ship="allure")]
        assert _ids(sort_cases(cases, SortField.SHIP, SortOrder.ASC)) == ["lower", "upper"]

    def test_name_uses_first_and_last(self):
        cases = [
            _case("1", first_name="john", last_name="Smith"),
            _case("2", first_name="Alice", last_name="Jones"),
        ]
        assert _ids(sort_cases(cases, SortField.NAME, SortOrder.ASC)) == ["2", "1"]

    def test_owner_falls_back_to_relationship(self):
        """ORM rows expose the owner through the relationship."""
        cases = [
            _case("1", owner=SimpleNamespace(full_name="Zed")),
            _case("2", owner_name="Amy"),
        ]
        assert _ids(sort_cases(cases, SortField.CURRENT_OWNER, SortOrder.ASC)) == ["2", "1"]

    def test_stable_for_equal_keys(self):
        cases = [_case("a", status="New"), _case("b", status="New")]
        assert _ids(sort_cases(cases, SortField.STATUS, SortOrder.ASC)) == ["a", "b"]


class TestCollation:
    """Tests for choosing the text collation locale."""

    @pytest.fixture(autouse=True)
    def restore_collation(self):
        previous = locale.setlocale(locale.LC_COLLATE)
        yield
        locale.setlocale(locale.LC_COLLATE, previous)

    def test_sets_named_locale(self):
        assert configure_collation("C") == "C"
        assert locale.setlocale(locale.LC_COLLATE) == "C"

    def test_unknown_locale_keeps_current(self, caplog):
        locale.setlocale(locale.LC_COLLATE, "C")

        with caplog.at_level(logging.WARNING, logger="sentinel.cases.sorting"):
            active = configure_collation("xx_NOWHERE.UTF-8")

        assert active == "C"
        assert "xx_NOWHERE.UTF-8" in caplog.text

    def test_sorting_under_c_collation(self):
        configure_collation("C")
        cases = [_case("b", status="Under Review"), _case("a", status="assigned")]
        assert _ids(sort_cases(cases, SortField.STATUS, SortOrder.ASC)) == ["a", "b"]


class TestSortState:
    """Tests for column header toggling."""

    def test_new_column_starts_descending(self):
        state = SortState().toggle(SortField.SHIP)
        assert state.field is SortField.SHIP
        assert state.order is SortOrder.DESC

    def test_same_column_flips(self):
        state = SortState(SortField.SHIP, SortOrder.DESC).toggle(SortField.SHIP)
        assert state.order is SortOrder.ASC
        assert state.toggle(SortField.SHIP).order is SortOrder.DESC

    def test_apply(self):
        state = SortState(SortField.CASH_IN_TOTAL, SortOrder.DESC)
        cases = [_case("small", cash_in_total=1), _case("big", cash_in_total=2)]
        assert _ids(state.apply(cases)) == ["big", "small"]
