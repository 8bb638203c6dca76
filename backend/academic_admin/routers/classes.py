from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException
from typing import Any, Dict, Optional
from pydantic import BaseModel
from sqlalchemy import func
from sqlmodel import select

from ..config import settings
from ..db import get_session
from ..models import Bimester, ClassEnrollment, ClassOffering, Course, RoleEnum, User
from ..security import ADMIN_ROLES, STAFF_ROLES, ensure_owns_class, is_admin, require_roles
from ..services.activity import log_activity
from ..services.bimester_status import Clock, can_submit_grades, get_clock, resolve_class_status
from ..services.enrollments import find_enrollment, new_enrollment
from ..utils.localized_fields import resolve_localized
from ..utils.sqlmodel_helpers import apply_partial_update


router = APIRouter(prefix="/classes", tags=["classes"])


class ClassCreate(BaseModel):
    course_id: int
    bimester_id: int
    group_number: str
    professor_id: int


class ClassUpdate(BaseModel):
    group_number: Optional[str] = None
    professor_id: Optional[int] = None


class EnrollStudentRequest(BaseModel):
    student_id: int


def _enrolled_count(session, class_id: int) -> int:
    return session.exec(
        select(func.count(ClassEnrollment.id)).where(ClassEnrollment.class_id == class_id)
    ).one()


def serialize_class(session, offering: ClassOffering, now: datetime, locale: str) -> Dict[str, Any]:
    course = session.get(Course, offering.course_id)
    bimester = session.get(Bimester, offering.bimester_id)
    professor = session.get(User, offering.professor_id)
    data = offering.model_dump()
    data["status"] = resolve_class_status(now, bimester).value
    data["can_submit_grades"] = can_submit_grades(now, bimester)
    data["enrolled_count"] = _enrolled_count(session, offering.id)
    data["course_code"] = resolve_localized(course, "code_es", "code_en", locale) if course else ""
    data["course_name"] = resolve_localized(course, "name_es", "name_en", locale) if course else ""
    data["bimester_name"] = bimester.name if bimester else ""
    data["professor_name"] = professor.full_name if professor else ""
    return data


def _get_class_or_404(session, class_id: int) -> ClassOffering:
    obj = session.get(ClassOffering, class_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Clase no encontrada")
    return obj


def _require_professor(session, professor_id: int) -> User:
    professor = session.get(User, professor_id)
    if not professor or professor.role != RoleEnum.professor:
        raise HTTPException(status_code=404, detail="Profesor no encontrado")
    return professor


@router.get("/")
def list_classes(
    course_id: Optional[int] = None,
    bimester_id: Optional[int] = None,
    professor_id: Optional[int] = None,
    status: Optional[str] = None,
    locale: Optional[str] = None,
    session=Depends(get_session),
    clock: Clock = Depends(get_clock),
    user=Depends(require_roles(*STAFF_ROLES)),
):
    stmt = select(ClassOffering)
    if course_id is not None:
        stmt = stmt.where(ClassOffering.course_id == course_id)
    if bimester_id is not None:
        stmt = stmt.where(ClassOffering.bimester_id == bimester_id)
    if not is_admin(user):
        stmt = stmt.where(ClassOffering.professor_id == user.id)
    elif professor_id is not None:
        stmt = stmt.where(ClassOffering.professor_id == professor_id)
    now = clock.now()
    locale = locale or settings.default_locale
    items = [serialize_class(session, offering, now, locale) for offering in session.exec(stmt).all()]
    if status:
        items = [item for item in items if item["status"] == status]
    return items


@router.post("/")
def create_class(
    payload: ClassCreate,
    session=Depends(get_session),
    clock: Clock = Depends(get_clock),
    user=Depends(require_roles(*ADMIN_ROLES)),
):
    if not session.get(Course, payload.course_id):
        raise HTTPException(status_code=404, detail="Curso no encontrado")
    if not session.get(Bimester, payload.bimester_id):
        raise HTTPException(status_code=404, detail="Bimestre no encontrado")
    _require_professor(session, payload.professor_id)
    group_number = payload.group_number.strip()
    if not group_number:
        raise HTTPException(status_code=400, detail="El número de grupo es obligatorio")
    duplicate = session.exec(
        select(ClassOffering).where(
            ClassOffering.course_id == payload.course_id,
            ClassOffering.bimester_id == payload.bimester_id,
            ClassOffering.group_number == group_number,
        )
    ).first()
    if duplicate:
        raise HTTPException(status_code=409, detail="Ya existe una clase para ese curso, bimestre y grupo")
    offering = ClassOffering(
        course_id=payload.course_id,
        bimester_id=payload.bimester_id,
        group_number=group_number,
        professor_id=payload.professor_id,
    )
    session.add(offering)
    session.flush()
    log_activity(session, "class", "created", f"Clase {offering.id} grupo {group_number} creada", entity_id=offering.id, user_id=user.id)
    session.commit()
    session.refresh(offering)
    return serialize_class(session, offering, clock.now(), settings.default_locale)


@router.get("/{class_id}")
def get_class(
    class_id: int,
    locale: Optional[str] = None,
    session=Depends(get_session),
    clock: Clock = Depends(get_clock),
    user=Depends(require_roles(*STAFF_ROLES)),
):
    obj = _get_class_or_404(session, class_id)
    ensure_owns_class(user, obj.professor_id)
    return serialize_class(session, obj, clock.now(), locale or settings.default_locale)


@router.put("/{class_id}")
def update_class(
    class_id: int,
    payload: ClassUpdate,
    session=Depends(get_session),
    clock: Clock = Depends(get_clock),
    user=Depends(require_roles(*ADMIN_ROLES)),
):
    obj = _get_class_or_404(session, class_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("professor_id") is not None:
        _require_professor(session, data["professor_id"])
    if data.get("group_number") is not None:
        data["group_number"] = data["group_number"].strip()
        duplicate = session.exec(
            select(ClassOffering).where(
                ClassOffering.course_id == obj.course_id,
                ClassOffering.bimester_id == obj.bimester_id,
                ClassOffering.group_number == data["group_number"],
            )
        ).first()
        if duplicate and duplicate.id != obj.id:
            raise HTTPException(status_code=409, detail="Ya existe una clase para ese curso, bimestre y grupo")
    apply_partial_update(obj, data)
    session.add(obj)
    if "professor_id" in data:
        # las inscripciones guardan el profesor para las consultas por estudiante
        for enrollment in session.exec(select(ClassEnrollment).where(ClassEnrollment.class_id == obj.id)).all():
            enrollment.professor_id = obj.professor_id
            session.add(enrollment)
    log_activity(session, "class", "updated", f"Clase {obj.id} actualizada", entity_id=obj.id, user_id=user.id)
    session.commit()
    session.refresh(obj)
    return serialize_class(session, obj, clock.now(), settings.default_locale)


@router.delete("/{class_id}")
def delete_class(class_id: int, session=Depends(get_session), user=Depends(require_roles(*ADMIN_ROLES))):
    obj = _get_class_or_404(session, class_id)
    if _enrolled_count(session, obj.id):
        raise HTTPException(status_code=409, detail="No se puede eliminar una clase con estudiantes inscritos")
    log_activity(session, "class", "deleted", f"Clase {obj.id} eliminada", entity_id=obj.id, user_id=user.id)
    session.delete(obj)
    session.commit()
    return {"ok": True}


@router.get("/{class_id}/enrollments")
def list_class_enrollments(class_id: int, session=Depends(get_session), user=Depends(require_roles(*STAFF_ROLES))):
    obj = _get_class_or_404(session, class_id)
    ensure_owns_class(user, obj.professor_id)
    roster = []
    enrollments = session.exec(select(ClassEnrollment).where(ClassEnrollment.class_id == class_id)).all()
    for enrollment in enrollments:
        student = session.get(User, enrollment.student_id)
        row = enrollment.model_dump()
        row["student_name"] = student.full_name if student else ""
        row["student_code"] = student.student_code if student else None
        roster.append(row)
    return sorted(roster, key=lambda row: row["student_name"])


@router.post("/{class_id}/enrollments", response_model=ClassEnrollment)
def enroll_student(
    class_id: int,
    payload: EnrollStudentRequest,
    session=Depends(get_session),
    clock: Clock = Depends(get_clock),
    user=Depends(require_roles(*ADMIN_ROLES)),
):
    obj = _get_class_or_404(session, class_id)
    student = session.get(User, payload.student_id)
    if not student or student.role != RoleEnum.student:
        raise HTTPException(status_code=404, detail="Estudiante no encontrado")
    if find_enrollment(session, obj.id, student.id):
        raise HTTPException(status_code=409, detail="El estudiante ya está inscrito en esta clase")
    enrollment = new_enrollment(obj, student.id, clock.now(), enrolled_by=user.id)
    session.add(enrollment)
    session.flush()
    log_activity(session, "enrollment", "created", f"{student.full_name} inscrito en la clase {obj.id}", entity_id=enrollment.id, user_id=user.id)
    session.commit()
    session.refresh(enrollment)
    return enrollment
