"""Percentage to letter grade / 4.0 grade point conversion.

The band table is plain data (:class:`GradeScale`) so it can be replaced from
configuration (``GRADE_SCALE``) without touching the conversion code. Every
conversion validates the percentage first; an out of range value raises
:class:`InvalidGradeError` and never produces a letter grade.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from ..config import settings


PASSING_GRADE = 60


class InvalidGradeError(ValueError):
    """Raised when a percentage grade is not a number in [0, 100]."""


@dataclass(frozen=True)
class GradeBand:
    letter: str
    min_percentage: float
    grade_points: float


@dataclass(frozen=True)
class GradeResult:
    percentage_grade: float
    letter_grade: str
    grade_points: float
    quality_points: Optional[float] = None


class GradeScale:
    """Ordered grade bands, highest threshold first."""

    def __init__(self, bands: Sequence[GradeBand]):
        if not bands:
            raise ValueError("La escala de notas no puede estar vacía")
        previous: Optional[GradeBand] = None
        for band in bands:
            if not 0 <= band.min_percentage <= 100:
                raise ValueError(f"Umbral fuera de rango para {band.letter}: {band.min_percentage}")
            if previous is not None:
                if band.min_percentage >= previous.min_percentage:
                    raise ValueError("Los umbrales deben estar en orden estrictamente descendente")
                if band.grade_points > previous.grade_points:
                    raise ValueError("Los puntos de nota no pueden aumentar al bajar de banda")
            previous = band
        if bands[-1].min_percentage != 0:
            raise ValueError("La última banda debe comenzar en 0")
        self.bands: Tuple[GradeBand, ...] = tuple(bands)

    def band_for(self, percentage: float) -> GradeBand:
        for band in self.bands:
            if percentage >= band.min_percentage:
                return band
        # unreachable for validated input: the last band starts at 0
        return self.bands[-1]

    def __iter__(self):
        return iter(self.bands)

    def __len__(self) -> int:
        return len(self.bands)


DEFAULT_GRADE_SCALE = GradeScale(
    [
        GradeBand("A+", 97, 4.0),
        GradeBand("A", 93, 4.0),
        GradeBand("A-", 90, 3.7),
        GradeBand("B+", 87, 3.3),
        GradeBand("B", 83, 3.0),
        GradeBand("B-", 80, 2.7),
        GradeBand("C+", 77, 2.3),
        GradeBand("C", 73, 2.0),
        GradeBand("C-", 70, 1.7),
        GradeBand("D+", 67, 1.3),
        GradeBand("D", 63, 1.0),
        GradeBand("D-", 60, 0.7),
        GradeBand("F", 0, 0.0),
    ]
)


def load_grade_scale(raw: Optional[str]) -> GradeScale:
    """Build a scale from a JSON list of ``[letter, min_percentage, grade_points]``."""

    if not raw:
        return DEFAULT_GRADE_SCALE
    try:
        items = json.loads(raw)
        bands = [GradeBand(str(letter), float(minimum), float(points)) for letter, minimum, points in items]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"GRADE_SCALE inválido: {exc}") from exc
    return GradeScale(bands)


def get_grade_scale() -> GradeScale:
    return load_grade_scale(settings.grade_scale)


def is_valid_percentage(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if math.isnan(value):
        return False
    return 0 <= value <= 100


def validate_percentage(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        raise InvalidGradeError("La nota debe ser un número")
    if value < 0 or value > 100:
        raise InvalidGradeError("La nota debe estar entre 0 y 100")
    return float(value)


def convert_percentage(
    percentage: Any,
    credits: Optional[float] = None,
    scale: Optional[GradeScale] = None,
) -> GradeResult:
    value = validate_percentage(percentage)
    band = (scale or DEFAULT_GRADE_SCALE).band_for(value)
    quality_points = None
    if credits is not None:
        quality_points = round(band.grade_points * credits, 2)
    return GradeResult(
        percentage_grade=value,
        letter_grade=band.letter,
        grade_points=band.grade_points,
        quality_points=quality_points,
    )


def letter_grade(percentage: Any, scale: Optional[GradeScale] = None) -> str:
    return convert_percentage(percentage, scale=scale).letter_grade


def grade_points(percentage: Any, scale: Optional[GradeScale] = None) -> float:
    return convert_percentage(percentage, scale=scale).grade_points


@dataclass
class GradeStats:
    enrolled_credits: float = 0
    approved_credits: float = 0
    approved_percentage: int = 0
    average: float = 0
    gpa: Optional[float] = None


def calculate_grade_stats(rows: Iterable[Any]) -> GradeStats:
    """Aggregate ``credits``/``percentage_grade``/``quality_points`` rows.

    Rows may be mappings or objects. Ungraded rows count towards enrolled
    credits only. GPA only uses rows flagged ``counts_for_gpa`` (default true).
    """

    enrolled = approved = graded = weighted_sum = 0.0
    gpa_credits = quality_sum = 0.0
    for row in rows:
        credits = float(_field(row, "credits") or 0)
        enrolled += credits
        grade = _field(row, "percentage_grade")
        if grade is None:
            continue
        graded += credits
        weighted_sum += grade * credits
        if grade >= PASSING_GRADE:
            approved += credits
        quality = _field(row, "quality_points")
        if _field(row, "counts_for_gpa", True) and quality is not None:
            gpa_credits += credits
            quality_sum += quality

    return GradeStats(
        enrolled_credits=enrolled,
        approved_credits=approved,
        approved_percentage=round(approved / enrolled * 100) if enrolled > 0 else 0,
        average=round(weighted_sum / graded, 1) if graded > 0 else 0,
        gpa=round(quality_sum / gpa_credits, 2) if gpa_credits > 0 else None,
    )


def _field(row: Any, name: str, default: Any = None) -> Any:
    if isinstance(row, dict):
        return row.get(name, default)
    return getattr(row, name, default)


def scale_as_table(scale: Optional[GradeScale] = None) -> List[dict]:
    return [
        {"letter": band.letter, "min_percentage": band.min_percentage, "grade_points": band.grade_points}
        for band in (scale or DEFAULT_GRADE_SCALE)
    ]
