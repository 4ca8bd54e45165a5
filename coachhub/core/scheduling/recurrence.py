"""
Recurrence date calculation.

Turns a RecurrenceRule plus a start date into the ordered list of candidate
occurrence dates. Pure: no I/O, no shared state, and the same inputs always
give the same output, so previews can be recomputed freely.

The calculation is a bounded scan rather than closed-form date arithmetic.
Weekly and bi-weekly rules walk one day at a time; monthly and quarterly
rules walk day by day until a match and then jump whole months; custom rules
jump whole weeks. The scan stops at the effective end date, at the effective
occurrence count, or after `max_scan_steps` iterations. Hitting the step cap
first marks the result as truncated.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from .models import RecurrencePattern, RecurrenceRule

logger = logging.getLogger(__name__)

DEFAULT_MAX_SCAN_STEPS = 365

DAY_NAMES = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)


def weekday_index(moment: datetime) -> int:
    """Weekday as 0=Sunday..6=Saturday (Python's weekday() starts at Monday=0)."""
    return (moment.weekday() + 1) % 7


@dataclass(frozen=True)
class RecurrenceResult:
    """
    Candidate dates for a rule.

    `truncated` is True when the scan cap was reached before the end date or
    occurrence count, so more occurrences may exist past the last date.
    """
    dates: tuple[datetime, ...] = ()
    truncated: bool = False

    @property
    def count(self) -> int:
        return len(self.dates)


def _earliest(first: Optional[datetime], second: Optional[datetime]) -> Optional[datetime]:
    candidates = [value for value in (first, second) if value is not None]
    return min(candidates) if candidates else None


def _smallest(first: Optional[int], second: Optional[int]) -> Optional[int]:
    candidates = [value for value in (first, second) if value is not None]
    return min(candidates) if candidates else None


class RecurrenceCalculator:
    """
    Computes occurrence dates for the supported recurrence patterns.

    Instances only hold the scan cap, so one calculator can be shared
    across threads.
    """

    def __init__(self, max_scan_steps: int = DEFAULT_MAX_SCAN_STEPS) -> None:
        if max_scan_steps < 1:
            raise ValueError("max_scan_steps must be a positive integer")
        self._max_scan_steps = max_scan_steps

    @property
    def max_scan_steps(self) -> int:
        return self._max_scan_steps

    def calculate(
        self,
        rule: RecurrenceRule,
        start: datetime,
        end_date: Optional[datetime] = None,
        max_occurrences: Optional[int] = None,
    ) -> RecurrenceResult:
        """
        Compute the occurrence dates for `rule` beginning at `start`.

        `end_date` and `max_occurrences` can only tighten the rule's own
        bounds: the earlier end date and the smaller count win.

        Unknown patterns log a warning and return an empty result.
        """
        try:
            pattern = RecurrencePattern(rule.pattern)
        except ValueError:
            logger.warning(
                "Unknown recurrence pattern",
                extra={"pattern": str(rule.pattern)}
            )
            return RecurrenceResult()

        final_end = _earliest(rule.end_date, end_date)
        final_max = _smallest(rule.max_occurrences, max_occurrences)
        target_day = rule.day_of_month or start.day
        weekdays = set(rule.days_of_week) or {weekday_index(start)}

        dates: list[datetime] = []
        current = start
        steps = 0

        def reached_end() -> bool:
            if final_end is not None and current > final_end:
                return True
            return final_max is not None and len(dates) >= final_max

        while steps < self._max_scan_steps and not reached_end():
            steps += 1

            if pattern is RecurrencePattern.WEEKLY:
                matched = weekday_index(current) in weekdays
                following = current + timedelta(days=1)

            elif pattern is RecurrencePattern.BI_WEEKLY:
                # interval counts two-week units: interval=1 means every other week
                weeks_since_start = (current - start) // timedelta(weeks=1)
                matched = (
                    weeks_since_start % (rule.interval * 2) == 0
                    and weekday_index(current) in weekdays
                )
                following = current + timedelta(days=1)

            elif pattern is RecurrencePattern.MONTHLY:
                matched = current.day == target_day
                following = current + timedelta(days=1)

            elif pattern is RecurrencePattern.QUARTERLY:
                # Last month of each quarter (Mar/Jun/Sep/Dec), not the first.
                matched = current.month % 3 == 0 and current.day == target_day
                following = current + timedelta(days=1)

            else:
                matched = True
                following = current + timedelta(weeks=rule.interval)

            if matched:
                dates.append(current)
                # relativedelta clamps to month end (Jan 31 + 1 month = Feb 29),
                # after which the day scan resumes until the target day recurs.
                if pattern is RecurrencePattern.MONTHLY:
                    following = current + relativedelta(months=rule.interval)
                elif pattern is RecurrencePattern.QUARTERLY:
                    following = current + relativedelta(months=3 * rule.interval)

            current = following

        truncated = not reached_end()
        if truncated:
            logger.warning(
                "Recurrence scan stopped at step cap",
                extra={
                    "pattern": pattern.value,
                    "max_scan_steps": self._max_scan_steps,
                    "occurrences": len(dates),
                }
            )

        return RecurrenceResult(dates=tuple(dates), truncated=truncated)


def describe_rule(rule: RecurrenceRule) -> str:
    """
    Human-readable description of a rule, e.g. "Every month on day 15".

    Used in previews so the caller can show what a rule means without
    reimplementing the pattern semantics.
    """
    try:
        pattern = RecurrencePattern(rule.pattern)
    except ValueError:
        return "Unknown recurrence pattern"

    day_names = ", ".join(DAY_NAMES[day] for day in rule.days_of_week)

    if pattern is RecurrencePattern.WEEKLY:
        # weekly rules ignore the interval when scanning
        description = "Every week"
        if day_names:
            description += f" on {day_names}"

    elif pattern is RecurrencePattern.BI_WEEKLY:
        description = "Every two weeks" if rule.interval == 1 else f"Every {rule.interval * 2} weeks"
        if day_names:
            description += f" on {day_names}"

    elif pattern is RecurrencePattern.MONTHLY:
        description = "Every month" if rule.interval == 1 else f"Every {rule.interval} months"
        if rule.day_of_month:
            description += f" on day {rule.day_of_month}"

    elif pattern is RecurrencePattern.QUARTERLY:
        description = "Every quarter" if rule.interval == 1 else f"Every {rule.interval} quarters"
        if rule.day_of_month:
            description += f" on day {rule.day_of_month}"

    else:
        unit = "week" if rule.interval == 1 else f"{rule.interval} weeks"
        description = f"Custom pattern, every {unit}"

    if rule.end_date is not None:
        description += f" until {rule.end_date.date().isoformat()}"
    if rule.max_occurrences is not None:
        noun = "occurrence" if rule.max_occurrences == 1 else "occurrences"
        description += f", {rule.max_occurrences} {noun} at most"

    return description
