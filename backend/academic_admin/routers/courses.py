from fastapi import APIRouter, Depends, HTTPException
from typing import Any, Dict, List, Optional
from pydantic import BaseModel
from sqlmodel import SQLModel, select

from ..config import settings
from ..db import get_session
from ..models import ClassOffering, Course, CourseCategoryEnum, LanguageEnum, Program, ProgramCourse, utcnow
from ..security import ADMIN_ROLES, ALL_ROLES, require_roles
from ..services.activity import log_activity
from ..services.enrollment_import import normalize_code
from ..utils.localized_fields import build_search_key, missing_localized_fields, resolve_localized
from ..utils.sqlmodel_helpers import apply_partial_update
from .programs import LOCALIZED_FIELDS, _normalize_localized, recalculate_program_credits


router = APIRouter(prefix="/courses", tags=["courses"])


class CourseCreate(SQLModel):
    code_es: Optional[str] = None
    code_en: Optional[str] = None
    name_es: Optional[str] = None
    name_en: Optional[str] = None
    description_es: Optional[str] = None
    description_en: Optional[str] = None
    credits: int
    language: LanguageEnum
    category: CourseCategoryEnum = CourseCategoryEnum.core
    is_active: bool = True


class CourseUpdate(BaseModel):
    code_es: Optional[str] = None
    code_en: Optional[str] = None
    name_es: Optional[str] = None
    name_en: Optional[str] = None
    description_es: Optional[str] = None
    description_en: Optional[str] = None
    credits: Optional[int] = None
    language: Optional[LanguageEnum] = None
    category: Optional[CourseCategoryEnum] = None
    is_active: Optional[bool] = None


class ProgramLinkRequest(BaseModel):
    category_override: Optional[CourseCategoryEnum] = None
    is_required: bool = True


def serialize_course(course: Course, locale: str) -> Dict[str, Any]:
    data = course.model_dump()
    data["display_code"] = resolve_localized(course, "code_es", "code_en", locale)
    data["display_name"] = resolve_localized(course, "name_es", "name_en", locale)
    data["search_key"] = " ".join(
        part
        for part in (
            build_search_key(course, "code_es", "code_en", locale),
            build_search_key(course, "name_es", "name_en", locale),
        )
        if part
    )
    return data


def _find_by_code(session, code: str) -> Optional[Course]:
    normalized = normalize_code(code)
    for course in session.exec(select(Course)).all():
        if any(c and normalize_code(c) == normalized for c in (course.code_es, course.code_en)):
            return course
    return None


def _validate_course(session, values: Dict[str, Any], course_id: Optional[int] = None) -> None:
    missing = missing_localized_fields(values.get("language"), values, LOCALIZED_FIELDS)
    if missing:
        raise HTTPException(status_code=400, detail=f"Campos obligatorios para el idioma: {', '.join(missing)}")
    credits = values.get("credits")
    if credits is None or credits <= 0:
        raise HTTPException(status_code=400, detail="Los créditos deben ser positivos")
    for key in ("code_es", "code_en"):
        code = values.get(key)
        if not code:
            continue
        clash = _find_by_code(session, code)
        if clash and clash.id != course_id:
            raise HTTPException(status_code=409, detail=f"El código de curso {code} ya existe")


def _recalculate_linked_programs(session, course_id: int) -> None:
    links = session.exec(select(ProgramCourse).where(ProgramCourse.course_id == course_id)).all()
    for link in links:
        recalculate_program_credits(session, link.program_id)


@router.get("/")
def list_courses(
    locale: Optional[str] = None,
    q: Optional[str] = None,
    program_id: Optional[int] = None,
    category: Optional[CourseCategoryEnum] = None,
    is_active: Optional[bool] = None,
    session=Depends(get_session),
    user=Depends(require_roles(*ALL_ROLES)),
):
    locale = locale or settings.default_locale
    stmt = select(Course)
    if program_id is not None:
        stmt = stmt.join(ProgramCourse, ProgramCourse.course_id == Course.id).where(ProgramCourse.program_id == program_id)
    if category is not None:
        stmt = stmt.where(Course.category == category)
    if is_active is not None:
        stmt = stmt.where(Course.is_active == is_active)
    items = [serialize_course(course, locale) for course in session.exec(stmt).all()]
    if q:
        needle = q.strip().lower()
        items = [item for item in items if needle in item["search_key"]]
    return sorted(items, key=lambda item: item["search_key"])


@router.get("/check-code")
def check_code_exists(code: str, exclude_id: Optional[int] = None, session=Depends(get_session), user=Depends(require_roles(*ADMIN_ROLES))):
    clash = _find_by_code(session, code)
    return {"exists": clash is not None and clash.id != exclude_id}


@router.post("/")
def create_course(payload: CourseCreate, session=Depends(get_session), user=Depends(require_roles(*ADMIN_ROLES))):
    data = _normalize_localized(payload.model_dump())
    _validate_course(session, data)
    course = Course(**data)
    session.add(course)
    session.flush()
    log_activity(session, "course", "created", f"Curso {course.code_es or course.code_en} creado", entity_id=course.id, user_id=user.id)
    session.commit()
    session.refresh(course)
    return serialize_course(course, settings.default_locale)


@router.get("/{course_id}")
def get_course(course_id: int, locale: Optional[str] = None, session=Depends(get_session), user=Depends(require_roles(*ALL_ROLES))):
    obj = session.get(Course, course_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Curso no encontrado")
    data = serialize_course(obj, locale or settings.default_locale)
    data["program_ids"] = [
        link.program_id
        for link in session.exec(select(ProgramCourse).where(ProgramCourse.course_id == course_id)).all()
    ]
    return data


@router.put("/{course_id}")
def update_course(course_id: int, payload: CourseUpdate, session=Depends(get_session), user=Depends(require_roles(*ADMIN_ROLES))):
    obj = session.get(Course, course_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Curso no encontrado")
    data = _normalize_localized(payload.model_dump(exclude_unset=True))
    _validate_course(session, {**obj.model_dump(), **data}, course_id=course_id)
    credits_changed = "credits" in data or "is_active" in data
    apply_partial_update(obj, data)
    obj.updated_at = utcnow()
    session.add(obj)
    if credits_changed:
        session.flush()
        _recalculate_linked_programs(session, course_id)
    log_activity(session, "course", "updated", f"Curso {obj.code_es or obj.code_en} actualizado", entity_id=obj.id, user_id=user.id)
    session.commit()
    session.refresh(obj)
    return serialize_course(obj, settings.default_locale)


@router.delete("/{course_id}")
def delete_course(course_id: int, session=Depends(get_session), user=Depends(require_roles(*ADMIN_ROLES))):
    obj = session.get(Course, course_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Curso no encontrado")
    if session.exec(select(ClassOffering).where(ClassOffering.course_id == course_id)).first():
        raise HTTPException(status_code=409, detail="No se puede eliminar un curso con clases asociadas")
    links = session.exec(select(ProgramCourse).where(ProgramCourse.course_id == course_id)).all()
    program_ids = [link.program_id for link in links]
    for link in links:
        session.delete(link)
    log_activity(session, "course", "deleted", f"Curso {obj.code_es or obj.code_en} eliminado", entity_id=obj.id, user_id=user.id)
    session.delete(obj)
    session.flush()
    for program_id in program_ids:
        recalculate_program_credits(session, program_id)
    session.commit()
    return {"ok": True}


@router.post("/{course_id}/programs/{program_id}", response_model=ProgramCourse)
def link_program(
    course_id: int,
    program_id: int,
    payload: Optional[ProgramLinkRequest] = None,
    session=Depends(get_session),
    user=Depends(require_roles(*ADMIN_ROLES)),
):
    if not session.get(Course, course_id):
        raise HTTPException(status_code=404, detail="Curso no encontrado")
    if not session.get(Program, program_id):
        raise HTTPException(status_code=404, detail="Programa no encontrado")
    existing = session.exec(
        select(ProgramCourse).where(ProgramCourse.program_id == program_id, ProgramCourse.course_id == course_id)
    ).first()
    if existing:
        raise HTTPException(status_code=409, detail="El curso ya pertenece al programa")
    payload = payload or ProgramLinkRequest()
    link = ProgramCourse(
        program_id=program_id,
        course_id=course_id,
        category_override=payload.category_override,
        is_required=payload.is_required,
    )
    session.add(link)
    session.flush()
    recalculate_program_credits(session, program_id)
    session.commit()
    session.refresh(link)
    return link


@router.delete("/{course_id}/programs/{program_id}")
def unlink_program(course_id: int, program_id: int, session=Depends(get_session), user=Depends(require_roles(*ADMIN_ROLES))):
    link = session.exec(
        select(ProgramCourse).where(ProgramCourse.program_id == program_id, ProgramCourse.course_id == course_id)
    ).first()
    if not link:
        raise HTTPException(status_code=404, detail="Relación programa-curso no encontrada")
    session.delete(link)
    session.flush()
    recalculate_program_credits(session, program_id)
    session.commit()
    return {"ok": True}


@router.get("/{course_id}/programs", response_model=List[ProgramCourse])
def list_course_programs(course_id: int, session=Depends(get_session), user=Depends(require_roles(*ALL_ROLES))):
    if not session.get(Course, course_id):
        raise HTTPException(status_code=404, detail="Curso no encontrado")
    return session.exec(select(ProgramCourse).where(ProgramCourse.course_id == course_id)).all()
