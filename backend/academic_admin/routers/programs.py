from fastapi import APIRouter, Depends, HTTPException
from typing import Any, Dict, List, Optional
from pydantic import BaseModel
from sqlmodel import SQLModel, select

from ..config import settings
from ..db import get_session
from ..models import (
    Course,
    LanguageEnum,
    Program,
    ProgramCategory,
    ProgramCourse,
    ProgramTypeEnum,
    User,
    utcnow,
)
from ..security import ADMIN_ROLES, ALL_ROLES, require_roles
from ..services.activity import log_activity
from ..utils.localized_fields import (
    build_search_key,
    missing_localized_fields,
    normalize_text,
    resolve_localized,
)
from ..utils.sqlmodel_helpers import apply_partial_update


router = APIRouter(prefix="/programs", tags=["programs"])

LOCALIZED_FIELDS = ("code", "name", "description")


class ProgramCreate(SQLModel):
    code_es: Optional[str] = None
    code_en: Optional[str] = None
    name_es: Optional[str] = None
    name_en: Optional[str] = None
    description_es: Optional[str] = None
    description_en: Optional[str] = None
    type: ProgramTypeEnum
    degree: Optional[str] = None
    category_id: Optional[int] = None
    language: LanguageEnum
    duration_bimesters: int
    tuition_per_credit: Optional[float] = None
    is_active: bool = True


class ProgramUpdate(BaseModel):
    code_es: Optional[str] = None
    code_en: Optional[str] = None
    name_es: Optional[str] = None
    name_en: Optional[str] = None
    description_es: Optional[str] = None
    description_en: Optional[str] = None
    type: Optional[ProgramTypeEnum] = None
    degree: Optional[str] = None
    category_id: Optional[int] = None
    language: Optional[LanguageEnum] = None
    duration_bimesters: Optional[int] = None
    tuition_per_credit: Optional[float] = None
    is_active: Optional[bool] = None


def serialize_program(program: Program, locale: str) -> Dict[str, Any]:
    data = program.model_dump()
    data["display_code"] = resolve_localized(program, "code_es", "code_en", locale)
    data["display_name"] = resolve_localized(program, "name_es", "name_en", locale)
    data["search_key"] = " ".join(
        part
        for part in (
            build_search_key(program, "code_es", "code_en", locale),
            build_search_key(program, "name_es", "name_en", locale),
        )
        if part
    )
    return data


def _normalize_localized(data: Dict[str, Any]) -> Dict[str, Any]:
    for field in LOCALIZED_FIELDS:
        for suffix in ("es", "en"):
            key = f"{field}_{suffix}"
            if key in data:
                data[key] = normalize_text(data[key])
    return data


def _validate_program(session, values: Dict[str, Any], program_id: Optional[int] = None) -> None:
    missing = missing_localized_fields(values.get("language"), values, LOCALIZED_FIELDS)
    if missing:
        raise HTTPException(status_code=400, detail=f"Campos obligatorios para el idioma: {', '.join(missing)}")
    duration = values.get("duration_bimesters")
    if duration is None or duration <= 0:
        raise HTTPException(status_code=400, detail="La duración en bimestres debe ser positiva")
    category_id = values.get("category_id")
    if category_id is not None and not session.get(ProgramCategory, category_id):
        raise HTTPException(status_code=404, detail="Categoría no encontrada")
    for key in ("code_es", "code_en"):
        code = values.get(key)
        if not code:
            continue
        column = getattr(Program, key)
        clash = session.exec(select(Program).where(column == code)).first()
        if clash and clash.id != program_id:
            raise HTTPException(status_code=409, detail=f"El código de programa {code} ya existe")


def recalculate_program_credits(session, program_id: int) -> int:
    credits = 0
    links = session.exec(
        select(ProgramCourse).where(ProgramCourse.program_id == program_id, ProgramCourse.is_active.is_(True))
    ).all()
    for link in links:
        course = session.get(Course, link.course_id)
        if course and course.is_active:
            credits += course.credits
    program = session.get(Program, program_id)
    if program:
        program.total_credits = credits
        session.add(program)
    return credits


class CategoryCreate(BaseModel):
    name: str


@router.get("/categories", response_model=List[ProgramCategory])
def list_categories(session=Depends(get_session), user=Depends(require_roles(*ALL_ROLES))):
    return session.exec(select(ProgramCategory).order_by(ProgramCategory.name)).all()


@router.post("/categories", response_model=ProgramCategory)
def create_category(payload: CategoryCreate, session=Depends(get_session), user=Depends(require_roles(*ADMIN_ROLES))):
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="El nombre de la categoría es obligatorio")
    if session.exec(select(ProgramCategory).where(ProgramCategory.name == name)).first():
        raise HTTPException(status_code=409, detail="La categoría ya existe")
    category = ProgramCategory(name=name)
    session.add(category)
    session.commit()
    session.refresh(category)
    return category


@router.delete("/categories/{category_id}")
def delete_category(category_id: int, session=Depends(get_session), user=Depends(require_roles(*ADMIN_ROLES))):
    category = session.get(ProgramCategory, category_id)
    if not category:
        raise HTTPException(status_code=404, detail="Categoría no encontrada")
    if session.exec(select(Program).where(Program.category_id == category_id)).first():
        raise HTTPException(status_code=409, detail="No se puede eliminar una categoría con programas asociados")
    session.delete(category)
    session.commit()
    return {"ok": True}


@router.get("/")
def list_programs(
    locale: Optional[str] = None,
    q: Optional[str] = None,
    language: Optional[LanguageEnum] = None,
    is_active: Optional[bool] = None,
    session=Depends(get_session),
    user=Depends(require_roles(*ALL_ROLES)),
):
    locale = locale or settings.default_locale
    stmt = select(Program)
    if language is not None:
        stmt = stmt.where(Program.language == language)
    if is_active is not None:
        stmt = stmt.where(Program.is_active == is_active)
    items = [serialize_program(program, locale) for program in session.exec(stmt).all()]
    if q:
        needle = q.strip().lower()
        items = [item for item in items if needle in item["search_key"]]
    return sorted(items, key=lambda item: item["search_key"])


@router.post("/")
def create_program(payload: ProgramCreate, session=Depends(get_session), user=Depends(require_roles(*ADMIN_ROLES))):
    data = _normalize_localized(payload.model_dump())
    _validate_program(session, data)
    program = Program(**data)
    session.add(program)
    session.flush()
    log_activity(session, "program", "created", f"Programa {program.code_es or program.code_en} creado", entity_id=program.id, user_id=user.id)
    session.commit()
    session.refresh(program)
    return serialize_program(program, settings.default_locale)


@router.get("/{program_id}")
def get_program(program_id: int, locale: Optional[str] = None, session=Depends(get_session), user=Depends(require_roles(*ALL_ROLES))):
    obj = session.get(Program, program_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Programa no encontrado")
    return serialize_program(obj, locale or settings.default_locale)


@router.put("/{program_id}")
def update_program(program_id: int, payload: ProgramUpdate, session=Depends(get_session), user=Depends(require_roles(*ADMIN_ROLES))):
    obj = session.get(Program, program_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Programa no encontrado")
    update_data = _normalize_localized(payload.model_dump(exclude_unset=True))
    merged = {**obj.model_dump(), **update_data}
    _validate_program(session, merged, program_id=program_id)
    apply_partial_update(obj, update_data)
    obj.updated_at = utcnow()
    session.add(obj)
    log_activity(session, "program", "updated", f"Programa {obj.code_es or obj.code_en} actualizado", entity_id=obj.id, user_id=user.id)
    session.commit()
    session.refresh(obj)
    return serialize_program(obj, settings.default_locale)


@router.patch("/{program_id}")
def patch_program(program_id: int, payload: ProgramUpdate, session=Depends(get_session), user=Depends(require_roles(*ADMIN_ROLES))):
    return update_program(program_id, payload, session=session, user=user)


@router.delete("/{program_id}")
def delete_program(program_id: int, session=Depends(get_session), user=Depends(require_roles(*ADMIN_ROLES))):
    obj = session.get(Program, program_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Programa no encontrado")
    if session.exec(select(User).where(User.program_id == program_id)).first():
        raise HTTPException(status_code=409, detail="No se puede eliminar un programa con estudiantes asignados")
    if session.exec(select(ProgramCourse).where(ProgramCourse.program_id == program_id)).first():
        raise HTTPException(status_code=409, detail="No se puede eliminar un programa con cursos asociados")
    log_activity(session, "program", "deleted", f"Programa {obj.code_es or obj.code_en} eliminado", entity_id=obj.id, user_id=user.id)
    session.delete(obj)
    session.commit()
    return {"ok": True}
