import json

import pytest

from academic_admin.services.grading import (
    DEFAULT_GRADE_SCALE,
    GradeBand,
    GradeScale,
    InvalidGradeError,
    calculate_grade_stats,
    convert_percentage,
    grade_points,
    is_valid_percentage,
    letter_grade,
    load_grade_scale,
)


@pytest.mark.parametrize(
    "percentage,letter,points",
    [
        (100, "A+", 4.0),
        (97, "A+", 4.0),
        (96.99, "A", 4.0),
        (90, "A-", 3.7),
        (89.5, "B+", 3.3),
        (83, "B", 3.0),
        (70, "C-", 1.7),
        (60, "D-", 0.7),
        (59.99, "F", 0.0),
        (0, "F", 0.0),
    ],
)
def test_band_boundaries(percentage, letter, points):
    assert letter_grade(percentage) == letter
    assert grade_points(percentage) == points


def test_grade_points_never_decrease_as_percentage_rises():
    previous_points = -1.0
    letters = []
    for tenth in range(0, 1001):
        value = tenth / 10
        result = convert_percentage(value)
        assert result.grade_points >= previous_points
        previous_points = result.grade_points
        if not letters or letters[-1] != result.letter_grade:
            letters.append(result.letter_grade)
    # cada banda aparece una sola vez y en orden: sin huecos ni solapamientos
    assert letters == [band.letter for band in reversed(DEFAULT_GRADE_SCALE.bands)]


@pytest.mark.parametrize("value", [-0.1, 100.01, 150, float("nan"), "90", None, True])
def test_invalid_percentages_raise(value):
    assert is_valid_percentage(value) is False
    with pytest.raises(InvalidGradeError):
        convert_percentage(value)


def test_quality_points_use_credits():
    result = convert_percentage(91, credits=3)
    assert result.letter_grade == "A-"
    assert result.quality_points == 11.1
    assert convert_percentage(91).quality_points is None


def test_scale_from_configuration():
    raw = json.dumps([["P", 50, 1.0], ["NP", 0, 0.0]])
    scale = load_grade_scale(raw)
    assert letter_grade(50, scale=scale) == "P"
    assert letter_grade(49.9, scale=scale) == "NP"
    assert load_grade_scale("") is DEFAULT_GRADE_SCALE


@pytest.mark.parametrize(
    "bands",
    [
        [],
        [GradeBand("A", 90, 4.0), GradeBand("B", 95, 3.0), GradeBand("F", 0, 0.0)],
        [GradeBand("A", 90, 3.0), GradeBand("B", 80, 4.0), GradeBand("F", 0, 0.0)],
        [GradeBand("A", 90, 4.0), GradeBand("B", 10, 3.0)],
    ],
)
def test_malformed_scales_are_rejected(bands):
    with pytest.raises(ValueError):
        GradeScale(bands)


def test_malformed_scale_json_is_rejected():
    with pytest.raises(ValueError):
        load_grade_scale("not json")


def test_grade_stats():
    rows = [
        {"credits": 3, "percentage_grade": 91, "quality_points": 11.1},
        {"credits": 2, "percentage_grade": 50, "quality_points": 0.0},
        {"credits": 4, "percentage_grade": None, "quality_points": None},
        {"credits": 1, "percentage_grade": 80, "quality_points": 2.7, "counts_for_gpa": False},
    ]
    stats = calculate_grade_stats(rows)
    assert stats.enrolled_credits == 10
    assert stats.approved_credits == 4
    assert stats.approved_percentage == 40
    assert stats.average == round((91 * 3 + 50 * 2 + 80) / 6, 1)
    assert stats.gpa == round(11.1 / 5, 2)


def test_grade_stats_without_rows():
    stats = calculate_grade_stats([])
    assert stats.enrolled_credits == 0
    assert stats.approved_percentage == 0
    assert stats.gpa is None
