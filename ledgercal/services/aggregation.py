"""Daily totals, balance-before queries and the 42-cell month grid."""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable

from ledgercal.models.transaction import Instance, TransactionTemplate
from ledgercal.services import recurrence
from ledgercal.utils.constants import CALENDAR_GRID_CELLS
from ledgercal.utils.currency import round_money
from ledgercal.utils.date_helpers import format_date, grid_start, month_bounds, parse_date


def daily_totals(instances: Iterable[Instance]) -> dict[str, float]:
    """Net amount per 'YYYY-MM-DD'. Dates with no instances are absent (read as 0)."""
    totals: dict[str, float] = defaultdict(float)
    for inst in instances:
        totals[inst.date] += inst.amount
    return {d: round_money(v) for d, v in totals.items()}


def balance_before(templates: Iterable[TransactionTemplate], day: date) -> float:
    """Sum of every instance dated strictly before `day`, across all history."""
    total = 0.0
    for t in templates:
        n = recurrence.count_before(t, day)
        if n:
            total += n * t.amount
    return round_money(total)


@dataclass
class DayCell:
    date: str
    day: int
    in_month: bool
    total: float
    balance: float
    instances: list[Instance] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "day": self.day,
            "inMonth": self.in_month,
            "total": self.total,
            "balance": self.balance,
            "transactions": [i.to_dict() for i in self.instances],
        }


@dataclass
class MonthView:
    month: str
    starting_balance: float
    month_change: float
    ending_balance: float
    cells: list[DayCell]

    def to_dict(self) -> dict:
        return {
            "month": self.month,
            "startingBalance": self.starting_balance,
            "monthChange": self.month_change,
            "endingBalance": self.ending_balance,
            "cells": [c.to_dict() for c in self.cells],
        }


class BalanceCalculator:
    """Answers balance queries for one account's templates."""

    def __init__(self, templates: list[TransactionTemplate]):
        self._templates = list(templates)

    def balance_before(self, day: date) -> float:
        return balance_before(self._templates, day)

    def instances(self, start: date, end: date) -> list[Instance]:
        return recurrence.expand(self._templates, start, end)

    def day_items(self, day: str | date) -> list[Instance]:
        d = parse_date(day)
        if d is None:
            raise ValueError(f"Invalid date: {day}")
        return self.instances(d, d)

    def month_grid(self, month_str: str) -> MonthView:
        """Six Sunday-first weeks around the month with a running balance per cell.

        In-month cells carry start-of-month balance plus the accumulated daily
        totals; leading and trailing cells are computed on their own as
        balance_before(day) + that day's total.
        """
        first, last = month_bounds(month_str)
        grid_first = grid_start(month_str)
        grid_last = grid_first + timedelta(days=CALENDAR_GRID_CELLS - 1)

        window = self.instances(grid_first, grid_last)
        totals = daily_totals(window)
        by_day: dict[str, list[Instance]] = defaultdict(list)
        for inst in window:
            by_day[inst.date].append(inst)

        starting = self.balance_before(first)
        running = starting
        cells: list[DayCell] = []
        for offset in range(CALENDAR_GRID_CELLS):
            d = grid_first + timedelta(days=offset)
            key = format_date(d)
            day_total = totals.get(key, 0.0)
            in_month = first <= d <= last
            if in_month:
                running = round_money(running + day_total)
                balance = running
            else:
                balance = round_money(self.balance_before(d) + day_total)
            cells.append(DayCell(
                date=key,
                day=d.day,
                in_month=in_month,
                total=day_total,
                balance=balance,
                instances=by_day.get(key, []),
            ))

        return MonthView(
            month=month_str,
            starting_balance=starting,
            month_change=round_money(running - starting),
            ending_balance=running,
            cells=cells,
        )
