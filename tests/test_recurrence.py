"""Tests for recurrence expansion."""

import logging
import random
from datetime import date, timedelta

import pytest

from ledgercal.models.transaction import TransactionTemplate
from ledgercal.services import recurrence
from ledgercal.utils.date_helpers import format_date

YEAR_2024 = (date(2024, 1, 1), date(2024, 12, 31))


def dates(instances) -> list[str]:
    return [i.date for i in instances]


class TestStrides:
    """Tests for each recurrence kind."""

    def test_one_time_in_range(self, make_template) -> None:
        """Test that a one-time template yields its anchor only."""
        t = make_template("2024-05-10")
        assert dates(recurrence.expand([t], *YEAR_2024)) == ["2024-05-10"]

    def test_one_time_out_of_range(self, make_template) -> None:
        """Test that an anchor outside the window yields nothing."""
        t = make_template("2023-05-10")
        assert recurrence.expand([t], *YEAR_2024) == []

    def test_daily(self, make_template) -> None:
        """Test daily stride."""
        t = make_template("2024-01-30", recurrence="daily")
        result = recurrence.expand([t], date(2024, 1, 30), date(2024, 2, 2))
        assert dates(result) == ["2024-01-30", "2024-01-31", "2024-02-01", "2024-02-02"]

    def test_weekly_and_biweekly(self, make_template) -> None:
        """Test 7 and 14 day strides."""
        weekly = make_template("2024-01-01", recurrence="weekly")
        biweekly = make_template("2024-01-01", recurrence="bi-weekly")
        window = (date(2024, 1, 1), date(2024, 1, 31))
        assert dates(recurrence.expand([weekly], *window)) == [
            "2024-01-01", "2024-01-08", "2024-01-15", "2024-01-22", "2024-01-29",
        ]
        assert dates(recurrence.expand([biweekly], *window)) == [
            "2024-01-01", "2024-01-15", "2024-01-29",
        ]

    def test_monthly_clamps_without_drift(self, make_template) -> None:
        """Test that a Jan 31 anchor lands on each month's last day and returns to the 31st."""
        t = make_template("2024-01-31", recurrence="monthly")
        result = recurrence.expand([t], date(2024, 1, 1), date(2024, 5, 31))
        assert dates(result) == [
            "2024-01-31", "2024-02-29", "2024-03-31", "2024-04-30", "2024-05-31",
        ]

    def test_quarterly(self, make_template) -> None:
        """Test three month stride."""
        t = make_template("2024-01-15", recurrence="quarterly")
        assert dates(recurrence.expand([t], *YEAR_2024)) == [
            "2024-01-15", "2024-04-15", "2024-07-15", "2024-10-15",
        ]

    def test_yearly_from_leap_day(self, make_template) -> None:
        """Test that Feb 29 clamps to Feb 28 in common years and comes back in leap years."""
        t = make_template("2024-02-29", recurrence="yearly")
        result = recurrence.expand([t], date(2024, 1, 1), date(2028, 12, 31))
        assert dates(result) == [
            "2024-02-29", "2025-02-28", "2026-02-28", "2027-02-28", "2028-02-29",
        ]


class TestInstanceShape:
    """Tests for instance ids and flags."""

    def test_anchor_is_verbatim_and_generated_are_flagged(self, make_template) -> None:
        """Test ids, isRecurring and originalId."""
        t = make_template("2024-01-01", recurrence="monthly", id="rent")
        anchor, second = recurrence.expand([t], date(2024, 1, 1), date(2024, 2, 1))
        assert anchor.id == "rent"
        assert anchor.is_recurring is False
        assert second.id == "rent-recur-2024-02-01"
        assert second.is_recurring is True
        assert second.original_id == "rent"
        assert second.to_dict()["isRecurring"] is True

    def test_server_id_format(self, make_template) -> None:
        """Test the alternate id format."""
        t = make_template("2024-01-01", recurrence="monthly", id="rent")
        result = recurrence.expand(
            [t], date(2024, 2, 1), date(2024, 2, 1), id_format=recurrence.SERVER_INSTANCE_ID
        )
        assert [i.id for i in result] == ["rent-2024-02-01"]

    def test_instances_carry_series_bounds(self, make_template) -> None:
        """Test end date and exclusions reach the instance wire shape."""
        t = make_template("2024-01-01", recurrence="monthly", id="rent",
                          recurrence_end_date="2024-06-30", excluded_dates=["2024-03-01"])
        [second] = recurrence.expand([t], date(2024, 2, 1), date(2024, 2, 29))
        data = second.to_dict()
        assert data["recurrenceEndDate"] == "2024-06-30"
        assert data["excludedDates"] == ["2024-03-01"]
        second.excluded_dates.append("2024-04-01")
        assert t.excluded_dates == ["2024-03-01"]

    def test_plain_instance_omits_series_bounds(self, make_template) -> None:
        """Test one-time instances keep the short shape."""
        [only] = recurrence.expand([make_template("2024-01-05")], date(2024, 1, 1), date(2024, 1, 31))
        assert "recurrenceEndDate" not in only.to_dict()
        assert "excludedDates" not in only.to_dict()


class TestBounds:
    """Tests for end dates, exclusions and windows."""

    def test_end_date_limits_series(self, make_template) -> None:
        """Test the monthly Jan 1 series ending Mar 15 yields exactly three instances."""
        t = make_template("2024-01-01", recurrence="monthly", recurrence_end_date="2024-03-15")
        assert dates(recurrence.expand([t], *YEAR_2024)) == [
            "2024-01-01", "2024-02-01", "2024-03-01",
        ]

    def test_end_date_is_inclusive(self, make_template) -> None:
        """Test that an occurrence on the end date is kept."""
        t = make_template("2024-01-01", recurrence="weekly", recurrence_end_date="2024-01-15")
        assert dates(recurrence.expand([t], *YEAR_2024))[-1] == "2024-01-15"

    def test_anchor_after_end_date_suppressed(self, make_template) -> None:
        """Test that a recurring anchor past its own end date yields nothing."""
        t = make_template("2024-06-01", recurrence="monthly", recurrence_end_date="2024-05-01")
        assert recurrence.expand([t], *YEAR_2024) == []

    def test_end_date_ignored_for_one_time(self, make_template) -> None:
        """Test that a one-time template ignores recurrenceEndDate."""
        t = make_template("2024-06-01", recurrence_end_date="2024-05-01")
        assert dates(recurrence.expand([t], *YEAR_2024)) == ["2024-06-01"]

    def test_excluded_dates(self, make_template) -> None:
        """Test that excluded occurrences, anchor included, are skipped."""
        t = make_template(
            "2024-01-01", recurrence="monthly",
            excluded_dates=["2024-01-01", "2024-03-01"],
        )
        result = recurrence.expand([t], date(2024, 1, 1), date(2024, 4, 30))
        assert dates(result) == ["2024-02-01", "2024-04-01"]

    def test_window_inside_long_series(self, make_template) -> None:
        """Test that a window far from the anchor starts at the right occurrence."""
        t = make_template("2000-01-31", recurrence="monthly")
        result = recurrence.expand([t], date(2024, 2, 1), date(2024, 3, 31))
        assert dates(result) == ["2024-02-29", "2024-03-31"]
        assert all(i.is_recurring for i in result)

    def test_open_start_expands_from_anchor(self, make_template) -> None:
        """Test start=None."""
        t = make_template("2024-01-01", recurrence="weekly")
        assert len(recurrence.expand([t], None, date(2024, 1, 31))) == 5


class TestAnomalies:
    """Tests for malformed templates."""

    def test_unknown_recurrence_yields_anchor_and_warns(self, make_template, caplog) -> None:
        """Test that an unknown kind degrades to one-time with a warning."""
        t = make_template("2024-01-01", recurrence="fortnightly-ish")
        with caplog.at_level(logging.WARNING):
            result = recurrence.expand([t], *YEAR_2024)
        assert dates(result) == ["2024-01-01"]
        assert "Unknown recurrence" in caplog.text

    def test_invalid_anchor_skipped(self, make_template, caplog) -> None:
        """Test that an unparseable anchor is skipped without raising."""
        good = make_template("2024-01-01")
        bad = make_template("not-a-date")
        with caplog.at_level(logging.WARNING):
            result = recurrence.expand([bad, good], *YEAR_2024)
        assert dates(result) == ["2024-01-01"]
        assert "invalid date" in caplog.text

    def test_none_recurrence_is_one_time(self, make_template) -> None:
        """Test legacy 'none'."""
        t = make_template("2024-01-01", recurrence="none")
        assert len(recurrence.expand([t], *YEAR_2024)) == 1

    def test_cap_truncates_and_warns(self, make_template, caplog) -> None:
        """Test max_generated."""
        t = make_template("2024-01-01", recurrence="daily")
        with caplog.at_level(logging.WARNING):
            result = recurrence.expand([t], *YEAR_2024, max_generated=5)
        assert len(result) == 6
        assert result[-1].date == "2024-01-06"
        assert "limit of 5" in caplog.text

    def test_horizon_expansion_is_capped(self, make_template) -> None:
        """Test that a daily series from long ago stops at 1000 generated instances."""
        t = make_template("2000-01-01", recurrence="daily", id="d")
        result = recurrence.expand_to_horizon([t], date(2024, 1, 1))
        assert len(result) == 1001
        assert result[1].id == "d-2000-01-02"

    def test_horizon_expansion_reaches_twelve_months(self, make_template) -> None:
        """Test the forward horizon."""
        t = make_template("2024-01-15", recurrence="monthly")
        result = recurrence.expand_to_horizon([t], date(2024, 1, 20))
        assert result[-1].date == "2025-01-15"


class TestDeterminism:
    """Tests for idempotence and order independence."""

    def test_idempotent_and_order_independent(self, make_template) -> None:
        """Test that expanding twice or in another order gives identical output."""
        templates = [
            make_template("2024-01-05", recurrence="weekly"),
            make_template("2024-01-31", recurrence="monthly", amount=50),
            make_template("2024-03-01"),
        ]
        first = recurrence.expand(templates, *YEAR_2024)
        again = recurrence.expand(templates, *YEAR_2024)
        reversed_order = recurrence.expand(list(reversed(templates)), *YEAR_2024)
        assert first == again == reversed_order


class TestCounting:
    """Tests for closed-form counting against enumeration."""

    @pytest.mark.parametrize("seed", range(5))
    def test_count_before_matches_enumeration(self, seed: int) -> None:
        """Test count_before equals the number of expanded instances before the bound."""
        rng = random.Random(seed)
        kinds = ["one-time", "daily", "weekly", "bi-weekly", "monthly", "quarterly", "yearly"]
        for n in range(30):
            anchor = date(2020, 1, 1) + timedelta(days=rng.randrange(0, 1500))
            kind = rng.choice(kinds)
            end = None
            if rng.random() < 0.4:
                end = format_date(anchor + timedelta(days=rng.randrange(0, 900)))
            occurrences = recurrence.expand(
                [TransactionTemplate(id="x", date=format_date(anchor), description="d",
                                     amount=1.0, recurrence=kind, recurrence_end_date=end)],
                None, date(2025, 12, 31),
            )
            excluded = [i.date for i in occurrences if rng.random() < 0.1]
            t = TransactionTemplate(
                id=f"t{n}", date=format_date(anchor), description="d", amount=1.0,
                recurrence=kind, recurrence_end_date=end, excluded_dates=excluded,
            )
            bound = date(2020, 1, 1) + timedelta(days=rng.randrange(0, 2100))
            expected = len(recurrence.expand([t], None, bound - timedelta(days=1)))
            assert recurrence.count_before(t, bound) == expected

    def test_is_occurrence(self, make_template) -> None:
        """Test membership checks."""
        t = make_template("2024-01-31", recurrence="monthly", recurrence_end_date="2024-06-30")
        assert recurrence.is_occurrence(t, date(2024, 2, 29))
        assert not recurrence.is_occurrence(t, date(2024, 2, 28))
        assert not recurrence.is_occurrence(t, date(2024, 7, 31))
        assert not recurrence.is_occurrence(t, date(2023, 12, 31))
