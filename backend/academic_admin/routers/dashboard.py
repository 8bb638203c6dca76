from datetime import timedelta
from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlmodel import select

from ..config import settings
from ..db import get_session
from ..models import Bimester, ClassEnrollment, ClassOffering, Course, Program, RoleEnum, SystemLog, User
from ..security import ADMIN_ROLES, require_roles
from ..services.bimester_status import Clock, ClassStatus, get_clock, resolve_class_status
from .classes import serialize_class


router = APIRouter(prefix="/dashboard", tags=["dashboard"])

UPCOMING_DEADLINE_DAYS = 30
RECENT_ACTIVITY_LIMIT = 20


def _count(session, column, *conditions) -> int:
    stmt = select(func.count(column))
    for condition in conditions:
        stmt = stmt.where(condition)
    return session.exec(stmt).one()


@router.get("/admin")
def admin_dashboard(session=Depends(get_session), clock: Clock = Depends(get_clock), user=Depends(require_roles(*ADMIN_ROLES))):
    now = clock.now()
    horizon = now + timedelta(days=UPCOMING_DEADLINE_DAYS)
    bimesters = session.exec(select(Bimester).order_by(Bimester.grade_deadline)).all()
    upcoming = [
        {"bimester_id": b.id, "name": b.name, "grade_deadline": b.grade_deadline}
        for b in bimesters
        if now <= b.grade_deadline <= horizon
    ]
    status_counts = {status.value: 0 for status in ClassStatus}
    bimesters_by_id = {b.id: b for b in bimesters}
    for offering in session.exec(select(ClassOffering)).all():
        status = resolve_class_status(now, bimesters_by_id.get(offering.bimester_id))
        status_counts[status.value] += 1
    recent = session.exec(select(SystemLog).order_by(SystemLog.created_at.desc()).limit(RECENT_ACTIVITY_LIMIT)).all()
    return {
        "counts": {
            "programs": _count(session, Program.id, Program.is_active.is_(True)),
            "courses": _count(session, Course.id, Course.is_active.is_(True)),
            "professors": _count(session, User.id, User.role == RoleEnum.professor, User.is_active.is_(True)),
            "students": _count(session, User.id, User.role == RoleEnum.student, User.is_active.is_(True)),
            "classes": sum(status_counts.values()),
            "enrollments": _count(session, ClassEnrollment.id),
        },
        "classes_by_status": status_counts,
        "upcoming_deadlines": upcoming,
        "recent_activity": [entry.model_dump() for entry in recent],
    }


@router.get("/professor")
def professor_dashboard(session=Depends(get_session), clock: Clock = Depends(get_clock), user=Depends(require_roles("professor"))):
    now = clock.now()
    offerings = session.exec(select(ClassOffering).where(ClassOffering.professor_id == user.id)).all()
    classes = [serialize_class(session, offering, now, settings.default_locale) for offering in offerings]
    pending = [c for c in classes if c["status"] == ClassStatus.grading.value]
    return {
        "classes": classes,
        "pending_grading": len(pending),
        "students": sum(c["enrolled_count"] for c in classes),
    }
