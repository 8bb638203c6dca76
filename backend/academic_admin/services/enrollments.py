from datetime import datetime
from typing import Optional

from sqlmodel import select

from ..models import ClassEnrollment, ClassOffering, EnrollmentStatusEnum
from .grading import GradeScale, convert_percentage


def apply_grade(
    enrollment: ClassEnrollment,
    percentage: Optional[float],
    credits: Optional[float],
    now: datetime,
    graded_by: Optional[int] = None,
    scale: Optional[GradeScale] = None,
) -> ClassEnrollment:
    """Set ``percentage_grade`` and recompute the derived grade fields.

    ``None`` clears the grade and every derived value. Raises
    ``InvalidGradeError`` before touching the enrollment when out of range.
    """
    if percentage is None:
        enrollment.percentage_grade = None
        enrollment.letter_grade = None
        enrollment.grade_points = None
        enrollment.quality_points = None
    else:
        result = convert_percentage(percentage, credits=credits, scale=scale)
        enrollment.percentage_grade = result.percentage_grade
        enrollment.letter_grade = result.letter_grade
        enrollment.grade_points = result.grade_points
        enrollment.quality_points = result.quality_points
    enrollment.graded_by = graded_by
    enrollment.graded_at = now
    enrollment.updated_at = now
    return enrollment


def set_status(
    enrollment: ClassEnrollment,
    status: EnrollmentStatusEnum,
    now: datetime,
    changed_by: Optional[int] = None,
    reason: Optional[str] = None,
) -> ClassEnrollment:
    enrollment.status = status
    enrollment.status_changed_at = now
    enrollment.status_changed_by = changed_by
    enrollment.status_change_reason = reason
    enrollment.updated_at = now
    return enrollment


def new_enrollment(class_offering: ClassOffering, student_id: int, now: datetime, enrolled_by: Optional[int] = None) -> ClassEnrollment:
    return ClassEnrollment(
        class_id=class_offering.id,
        student_id=student_id,
        course_id=class_offering.course_id,
        bimester_id=class_offering.bimester_id,
        professor_id=class_offering.professor_id,
        enrolled_at=now,
        enrolled_by=enrolled_by,
        created_at=now,
    )


def find_enrollment(session, class_id: int, student_id: int) -> Optional[ClassEnrollment]:
    return session.exec(
        select(ClassEnrollment).where(ClassEnrollment.class_id == class_id, ClassEnrollment.student_id == student_id)
    ).first()
