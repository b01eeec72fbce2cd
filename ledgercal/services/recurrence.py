"""Recurrence expansion: turn stored templates into dated instances.

Every view (calendar, day list, reports, server-side expansion) goes through
`expand`, so there is exactly one definition of when a template occurs.

Monthly-based strides are computed from the anchor, not from the previous
occurrence: a template anchored on Jan 31 occurs on Feb 28/29, Mar 31,
Apr 30, ... and never drifts to the 28th.
"""
import logging
from datetime import date, timedelta
from typing import Iterable

from ledgercal.models.transaction import Instance, TransactionTemplate, normalize_recurrence
from ledgercal.utils.constants import (
    CLIENT_INSTANCE_ID,
    DAY_STRIDES,
    MAX_GENERATED_PER_TEMPLATE,
    MONTH_STRIDES,
    ONE_TIME,
    SERVER_EXPANSION_MONTHS,
    SERVER_INSTANCE_ID,
)
from ledgercal.utils.date_helpers import add_months, format_date, months_between, parse_date

logger = logging.getLogger(__name__)


def is_known(recurrence: str) -> bool:
    recurrence = normalize_recurrence(recurrence)
    return recurrence == ONE_TIME or recurrence in DAY_STRIDES or recurrence in MONTH_STRIDES


def occurrence_date(anchor: date, recurrence: str, k: int) -> date:
    """Date of the k-th occurrence (k=0 is the anchor)."""
    if recurrence in DAY_STRIDES:
        return anchor + timedelta(days=k * DAY_STRIDES[recurrence])
    if recurrence in MONTH_STRIDES:
        return add_months(anchor, k * MONTH_STRIDES[recurrence])
    if k == 0:
        return anchor
    raise ValueError(f"'{recurrence}' does not repeat")


def _first_index_on_or_after(anchor: date, recurrence: str, from_date: date) -> int:
    """Smallest k >= 0 whose occurrence is on or after from_date."""
    if from_date <= anchor:
        return 0
    if recurrence in DAY_STRIDES:
        stride = DAY_STRIDES[recurrence]
        return -(-(from_date - anchor).days // stride)
    months = MONTH_STRIDES[recurrence]
    k = max(months_between(anchor, from_date) // months - 1, 0)
    while occurrence_date(anchor, recurrence, k) < from_date:
        k += 1
    return k


def _count_before(anchor: date, recurrence: str, bound: date) -> int:
    """Number of k >= 0 whose occurrence falls strictly before bound."""
    if bound <= anchor:
        return 0
    if recurrence not in DAY_STRIDES and recurrence not in MONTH_STRIDES:
        return 1
    return _first_index_on_or_after(anchor, recurrence, bound)


def _end_limit(template: TransactionTemplate, recurrence: str) -> date | None:
    if recurrence == ONE_TIME or not template.recurrence_end_date:
        return None
    end = parse_date(template.recurrence_end_date)
    if end is None:
        logger.warning(
            "Ignoring invalid recurrenceEndDate %r on transaction %s",
            template.recurrence_end_date, template.id,
        )
    return end


def _resolve(template: TransactionTemplate) -> tuple[date | None, str]:
    """Parsed anchor and effective recurrence; logs and degrades anomalies."""
    anchor = parse_date(template.date)
    if anchor is None:
        logger.warning("Skipping transaction %s with invalid date %r", template.id, template.date)
        return None, ONE_TIME
    recurrence = normalize_recurrence(template.recurrence)
    if not is_known(recurrence):
        logger.warning(
            "Unknown recurrence %r on transaction %s; treating as one-time",
            template.recurrence, template.id,
        )
        recurrence = ONE_TIME
    return anchor, recurrence


def is_occurrence(template: TransactionTemplate, d: date) -> bool:
    """True when d is one of the template's dates, ignoring excludedDates."""
    anchor, recurrence = _resolve(template)
    if anchor is None or d < anchor:
        return False
    end = _end_limit(template, recurrence)
    if end is not None and d > end:
        return False
    if recurrence == ONE_TIME:
        return d == anchor
    if recurrence in DAY_STRIDES:
        return (d - anchor).days % DAY_STRIDES[recurrence] == 0
    span = months_between(anchor, d)
    months = MONTH_STRIDES[recurrence]
    return span % months == 0 and add_months(anchor, span) == d


def iter_occurrences(template: TransactionTemplate, start: date | None, end: date):
    """Yield (date, generated) for every non-excluded occurrence in [start, end]."""
    anchor, recurrence = _resolve(template)
    if anchor is None:
        return
    limit = _end_limit(template, recurrence)
    if limit is not None and limit < end:
        end = limit
    excluded = set(template.excluded_dates or ())
    lower = start or anchor

    if recurrence == ONE_TIME:
        if lower <= anchor <= end and format_date(anchor) not in excluded:
            yield anchor, False
        return

    k = _first_index_on_or_after(anchor, recurrence, lower)
    while True:
        d = occurrence_date(anchor, recurrence, k)
        if d > end:
            return
        if format_date(d) not in excluded:
            yield d, k > 0
        k += 1


def expand(
    templates: Iterable[TransactionTemplate],
    start: date | None,
    end: date,
    *,
    max_generated: int | None = None,
    id_format: str = CLIENT_INSTANCE_ID,
) -> list[Instance]:
    """Expand templates into instances dated within [start, end] (inclusive).

    start=None expands from each template's anchor. max_generated caps the
    number of generated (non-anchor) instances per template; hitting the
    cap logs a warning and truncates that template's series.
    """
    result: list[Instance] = []
    for template in templates:
        generated = 0
        for d, is_generated in iter_occurrences(template, start, end):
            date_str = format_date(d)
            if not is_generated:
                result.append(Instance.of(template, date_str, template.id, False))
                continue
            if max_generated is not None and generated >= max_generated:
                logger.warning(
                    "Transaction %s reached the limit of %d generated occurrences; "
                    "truncating at %s",
                    template.id, max_generated, date_str,
                )
                break
            generated += 1
            instance_id = id_format.format(id=template.id, date=date_str)
            result.append(Instance.of(template, date_str, instance_id, True))
    result.sort(key=lambda i: (i.date, i.description, i.amount, i.id))
    return result


def count_before(template: TransactionTemplate, bound: date) -> int:
    """How many included occurrences fall strictly before bound, without enumerating them."""
    anchor, recurrence = _resolve(template)
    if anchor is None:
        return 0
    effective = bound
    limit = _end_limit(template, recurrence)
    if limit is not None and limit + timedelta(days=1) < effective:
        effective = limit + timedelta(days=1)
    total = _count_before(anchor, recurrence, effective)
    if total and template.excluded_dates:
        for raw in set(template.excluded_dates):
            d = parse_date(raw)
            if d is not None and d < effective and is_occurrence(template, d):
                total -= 1
    return total


def expand_to_horizon(
    templates: Iterable[TransactionTemplate],
    today: date,
    months: int = SERVER_EXPANSION_MONTHS,
) -> list[Instance]:
    """Everything from each anchor up to `months` ahead of today, capped per template."""
    return expand(
        templates,
        None,
        add_months(today, months),
        max_generated=MAX_GENERATED_PER_TEMPLATE,
        id_format=SERVER_INSTANCE_ID,
    )
