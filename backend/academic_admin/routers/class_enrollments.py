from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from typing import Optional
from pydantic import BaseModel

from ..db import get_session
from ..models import Bimester, ClassEnrollment, ClassOffering, Course, EnrollmentStatusEnum, User
from ..security import ADMIN_ROLES, STAFF_ROLES, ensure_owns_class, is_admin, require_roles
from ..services.activity import log_activity
from ..services.bimester_status import Clock, can_submit_grades, get_clock
from ..services.enrollment_import import EnrollmentImporter, ImportFileError, ImportResult
from ..services.enrollments import apply_grade, set_status
from ..services.grading import InvalidGradeError, get_grade_scale


router = APIRouter(prefix="/class-enrollments", tags=["class-enrollments"])


class GradeUpdateRequest(BaseModel):
    percentage_grade: Optional[float] = None
    grade_notes: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: EnrollmentStatusEnum
    reason: Optional[str] = None


def _get_enrollment_for(session, enrollment_id: int, user: User):
    enrollment = session.get(ClassEnrollment, enrollment_id)
    if not enrollment:
        raise HTTPException(status_code=404, detail="Inscripción no encontrada")
    offering = session.get(ClassOffering, enrollment.class_id)
    ensure_owns_class(user, offering.professor_id if offering else None)
    return enrollment, offering


@router.post("/import", response_model=ImportResult)
async def import_class_enrollments(
    file: UploadFile = File(...),
    dry_run: bool = Form(False),
    session=Depends(get_session),
    clock: Clock = Depends(get_clock),
    user=Depends(require_roles(*ADMIN_ROLES)),
):
    content = await file.read()
    importer = EnrollmentImporter(session, clock, scale=get_grade_scale(), user_id=user.id)
    try:
        return importer.run(file.filename, content, dry_run=dry_run)
    except ImportFileError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.patch("/{enrollment_id}/grade", response_model=ClassEnrollment)
def update_grade(
    enrollment_id: int,
    payload: GradeUpdateRequest,
    session=Depends(get_session),
    clock: Clock = Depends(get_clock),
    user=Depends(require_roles(*STAFF_ROLES)),
):
    enrollment, _ = _get_enrollment_for(session, enrollment_id, user)
    now = clock.now()
    if not is_admin(user):
        bimester = session.get(Bimester, enrollment.bimester_id)
        if not can_submit_grades(now, bimester):
            raise HTTPException(status_code=403, detail="El plazo para registrar notas ha vencido")
    course = session.get(Course, enrollment.course_id)
    try:
        apply_grade(
            enrollment,
            payload.percentage_grade,
            course.credits if course else None,
            now,
            graded_by=user.id,
            scale=get_grade_scale(),
        )
    except InvalidGradeError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if "grade_notes" in payload.model_fields_set:
        enrollment.grade_notes = payload.grade_notes
    session.add(enrollment)
    log_activity(
        session,
        "enrollment",
        "updated",
        f"Nota {enrollment.letter_grade or '-'} registrada en la clase {enrollment.class_id}",
        entity_id=enrollment.id,
        user_id=user.id,
    )
    session.commit()
    session.refresh(enrollment)
    return enrollment


@router.patch("/{enrollment_id}/status", response_model=ClassEnrollment)
def update_status(
    enrollment_id: int,
    payload: StatusUpdateRequest,
    session=Depends(get_session),
    clock: Clock = Depends(get_clock),
    user=Depends(require_roles(*STAFF_ROLES)),
):
    enrollment, _ = _get_enrollment_for(session, enrollment_id, user)
    set_status(enrollment, payload.status, clock.now(), changed_by=user.id, reason=payload.reason)
    session.add(enrollment)
    log_activity(
        session,
        "enrollment",
        "updated",
        f"Estado de inscripción cambiado a {payload.status.value}",
        entity_id=enrollment.id,
        user_id=user.id,
    )
    session.commit()
    session.refresh(enrollment)
    return enrollment


@router.delete("/{enrollment_id}")
def delete_enrollment(enrollment_id: int, session=Depends(get_session), user=Depends(require_roles(*ADMIN_ROLES))):
    enrollment = session.get(ClassEnrollment, enrollment_id)
    if not enrollment:
        raise HTTPException(status_code=404, detail="Inscripción no encontrada")
    log_activity(session, "enrollment", "deleted", f"Inscripción {enrollment.id} eliminada", entity_id=enrollment.id, user_id=user.id)
    session.delete(enrollment)
    session.commit()
    return {"ok": True}
