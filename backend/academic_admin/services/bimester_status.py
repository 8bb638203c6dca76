"""Class lifecycle derived from bimester dates.

Status is never persisted. Every read calls :func:`resolve_class_status` with
an explicit ``now`` so the result cannot drift from the period's dates.
Intervals are inclusive-low / exclusive-high::

    now < start                    -> open
    start <= now < end             -> active
    end <= now < grade_deadline    -> grading
    now >= grade_deadline          -> completed
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Optional, Protocol


class ClassStatus(str, Enum):
    open = "open"
    active = "active"
    grading = "grading"
    completed = "completed"


class Period(Protocol):
    start_date: datetime
    end_date: datetime
    grade_deadline: datetime


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(UTC).replace(tzinfo=None)


class FixedClock:
    def __init__(self, instant: datetime):
        self.instant = as_naive_utc(instant)

    def now(self) -> datetime:
        return self.instant


_system_clock = SystemClock()


def get_clock() -> Clock:
    """FastAPI dependency; tests override it with a :class:`FixedClock`."""
    return _system_clock


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(UTC).replace(tzinfo=None)
    return value


def resolve_class_status(now: datetime, period: Optional[Period]) -> ClassStatus:
    if period is None:
        return ClassStatus.open
    now = as_naive_utc(now)
    if now < as_naive_utc(period.start_date):
        return ClassStatus.open
    if now < as_naive_utc(period.end_date):
        return ClassStatus.active
    if now < as_naive_utc(period.grade_deadline):
        return ClassStatus.grading
    return ClassStatus.completed


def is_bimester_active(now: datetime, period: Optional[Period]) -> bool:
    return resolve_class_status(now, period) is ClassStatus.active


def can_submit_grades(now: datetime, period: Optional[Period]) -> bool:
    if period is None:
        return False
    return as_naive_utc(now) <= as_naive_utc(period.grade_deadline)


def validate_period_dates(start_date: datetime, end_date: datetime, grade_deadline: datetime) -> None:
    """Raise ``ValueError`` unless ``start < end <= grade_deadline``."""
    start, end, deadline = (as_naive_utc(d) for d in (start_date, end_date, grade_deadline))
    if start >= end:
        raise ValueError("La fecha de inicio debe ser anterior a la fecha de término")
    if deadline < end:
        raise ValueError("El plazo de notas debe ser igual o posterior a la fecha de término")


def periods_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    a_start, a_end, b_start, b_end = (as_naive_utc(d) for d in (a_start, a_end, b_start, b_end))
    return a_start < b_end and b_start < a_end
