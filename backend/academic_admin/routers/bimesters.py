from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException
from typing import Any, Dict, Optional
from pydantic import BaseModel
from sqlmodel import select

from ..db import get_session
from ..models import Bimester, ClassOffering, utcnow
from ..security import ADMIN_ROLES, ALL_ROLES, require_roles
from ..services.activity import log_activity
from ..services.bimester_status import (
    Clock,
    as_naive_utc,
    can_submit_grades,
    get_clock,
    is_bimester_active,
    periods_overlap,
    resolve_class_status,
    validate_period_dates,
)
from ..utils.sqlmodel_helpers import apply_partial_update


router = APIRouter(prefix="/bimesters", tags=["bimesters"])


class BimesterCreate(BaseModel):
    name: str
    start_date: datetime
    end_date: datetime
    grade_deadline: datetime


class BimesterUpdate(BaseModel):
    name: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    grade_deadline: Optional[datetime] = None


def serialize_bimester(bimester: Bimester, now: datetime) -> Dict[str, Any]:
    data = bimester.model_dump()
    data["is_active"] = is_bimester_active(now, bimester)
    data["status"] = resolve_class_status(now, bimester).value
    data["can_submit_grades"] = can_submit_grades(now, bimester)
    return data


def _validate_bimester(session, values: Dict[str, Any], bimester_id: Optional[int] = None) -> None:
    name = (values.get("name") or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="El nombre del bimestre es obligatorio")
    try:
        validate_period_dates(values["start_date"], values["end_date"], values["grade_deadline"])
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    for other in session.exec(select(Bimester)).all():
        if other.id == bimester_id:
            continue
        if other.name == name:
            raise HTTPException(status_code=409, detail=f"Ya existe un bimestre llamado {name}")
        if periods_overlap(values["start_date"], values["end_date"], other.start_date, other.end_date):
            raise HTTPException(status_code=409, detail=f"Las fechas se superponen con el bimestre {other.name}")


def _normalize_dates(data: Dict[str, Any]) -> Dict[str, Any]:
    for key in ("start_date", "end_date", "grade_deadline"):
        if data.get(key) is not None:
            data[key] = as_naive_utc(data[key])
    if data.get("name") is not None:
        data["name"] = data["name"].strip()
    return data


@router.get("/")
def list_bimesters(session=Depends(get_session), clock: Clock = Depends(get_clock), user=Depends(require_roles(*ALL_ROLES))):
    now = clock.now()
    bimesters = session.exec(select(Bimester).order_by(Bimester.start_date.desc())).all()
    return [serialize_bimester(b, now) for b in bimesters]


@router.get("/active")
def get_active_bimester(session=Depends(get_session), clock: Clock = Depends(get_clock), user=Depends(require_roles(*ALL_ROLES))):
    now = clock.now()
    for bimester in session.exec(select(Bimester).order_by(Bimester.start_date)).all():
        if is_bimester_active(now, bimester):
            return serialize_bimester(bimester, now)
    return None


@router.post("/")
def create_bimester(
    payload: BimesterCreate,
    session=Depends(get_session),
    clock: Clock = Depends(get_clock),
    user=Depends(require_roles(*ADMIN_ROLES)),
):
    data = _normalize_dates(payload.model_dump())
    _validate_bimester(session, data)
    bimester = Bimester(**data)
    session.add(bimester)
    session.flush()
    log_activity(session, "bimester", "created", f"Bimestre {bimester.name} creado", entity_id=bimester.id, user_id=user.id)
    session.commit()
    session.refresh(bimester)
    return serialize_bimester(bimester, clock.now())


@router.get("/{bimester_id}")
def get_bimester(bimester_id: int, session=Depends(get_session), clock: Clock = Depends(get_clock), user=Depends(require_roles(*ALL_ROLES))):
    obj = session.get(Bimester, bimester_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Bimestre no encontrado")
    return serialize_bimester(obj, clock.now())


@router.get("/{bimester_id}/can-submit-grades")
def get_can_submit_grades(bimester_id: int, session=Depends(get_session), clock: Clock = Depends(get_clock), user=Depends(require_roles(*ALL_ROLES))):
    obj = session.get(Bimester, bimester_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Bimestre no encontrado")
    return {"bimester_id": obj.id, "can_submit_grades": can_submit_grades(clock.now(), obj), "grade_deadline": obj.grade_deadline}


@router.put("/{bimester_id}")
def update_bimester(
    bimester_id: int,
    payload: BimesterUpdate,
    session=Depends(get_session),
    clock: Clock = Depends(get_clock),
    user=Depends(require_roles(*ADMIN_ROLES)),
):
    obj = session.get(Bimester, bimester_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Bimestre no encontrado")
    data = _normalize_dates(payload.model_dump(exclude_unset=True))
    _validate_bimester(session, {**obj.model_dump(), **data}, bimester_id=bimester_id)
    apply_partial_update(obj, data)
    obj.updated_at = utcnow()
    session.add(obj)
    log_activity(session, "bimester", "updated", f"Bimestre {obj.name} actualizado", entity_id=obj.id, user_id=user.id)
    session.commit()
    session.refresh(obj)
    return serialize_bimester(obj, clock.now())


@router.delete("/{bimester_id}")
def delete_bimester(bimester_id: int, session=Depends(get_session), user=Depends(require_roles(*ADMIN_ROLES))):
    obj = session.get(Bimester, bimester_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Bimestre no encontrado")
    if session.exec(select(ClassOffering).where(ClassOffering.bimester_id == bimester_id)).first():
        raise HTTPException(status_code=409, detail="No se puede eliminar un bimestre con clases asociadas")
    log_activity(session, "bimester", "deleted", f"Bimestre {obj.name} eliminado", entity_id=obj.id, user_id=user.id)
    session.delete(obj)
    session.commit()
    return {"ok": True}
