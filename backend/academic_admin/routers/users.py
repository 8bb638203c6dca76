from fastapi import APIRouter, Depends, HTTPException, status
from typing import List, Optional
from pydantic import BaseModel, Field
from sqlmodel import select

from ..db import get_session
from ..models import RoleEnum, User
from ..security import ADMIN_ROLES, get_current_user, require_roles, get_password_hash
from ..services.activity import log_activity
from ..services.enrollment_import import normalize_code


class UserOut(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    full_name: str
    role: RoleEnum
    is_active: bool
    phone: Optional[str] = None
    country: Optional[str] = None
    student_code: Optional[str] = None
    program_id: Optional[int] = None

    class Config:
        from_attributes = True


router = APIRouter(prefix="/users", tags=["users"])


@router.get("/", response_model=List[UserOut])
def list_users(role: Optional[RoleEnum] = None, session=Depends(get_session), user=Depends(require_roles(*ADMIN_ROLES))):
    stmt = select(User)
    if role is not None:
        stmt = stmt.where(User.role == role)
    return session.exec(stmt.order_by(User.last_name, User.first_name)).all()


@router.get("/professors", response_model=List[UserOut])
def list_professors(session=Depends(get_session), user=Depends(require_roles(*ADMIN_ROLES))):
    stmt = select(User).where(User.role == RoleEnum.professor, User.is_active.is_(True))
    return session.exec(stmt.order_by(User.last_name, User.first_name)).all()


@router.get("/me", response_model=UserOut)
def get_profile(user: User = Depends(get_current_user)):
    return user


@router.get("/check-email")
def check_email_exists(email: str, session=Depends(get_session), user=Depends(require_roles(*ADMIN_ROLES))):
    normalized = email.strip().lower()
    existing = session.exec(select(User).where(User.email == normalized)).first()
    return {"exists": existing is not None}


@router.get("/check-student-code")
def check_student_code_exists(student_code: str, session=Depends(get_session), user=Depends(require_roles(*ADMIN_ROLES))):
    code = normalize_code(student_code)
    existing = session.exec(
        select(User).where(User.role == RoleEnum.student, User.student_code == code)
    ).first()
    return {"exists": existing is not None}


class UserCreateRequest(BaseModel):
    email: str = Field(min_length=5, max_length=255)
    first_name: str = Field(min_length=1, max_length=120)
    last_name: str = Field(min_length=1, max_length=120)
    role: RoleEnum
    password: str = Field(min_length=8, max_length=128)
    phone: Optional[str] = None
    country: Optional[str] = None


@router.post("/", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreateRequest,
    session=Depends(get_session),
    current: User = Depends(require_roles(*ADMIN_ROLES)),
):
    if payload.role == RoleEnum.superadmin and current.role != RoleEnum.superadmin:
        raise HTTPException(status_code=403, detail="Sólo un superadmin puede crear superadmins")
    normalized_email = payload.email.strip().lower()
    existing = session.exec(select(User).where(User.email == normalized_email)).first()
    if existing:
        raise HTTPException(status_code=400, detail="El correo ya está registrado")

    user = User(
        email=normalized_email,
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        hashed_password=get_password_hash(payload.password),
        role=payload.role,
        must_change_password=True,
        phone=payload.phone,
        country=payload.country,
    )
    session.add(user)
    session.flush()
    log_activity(session, payload.role.value, "created", f"Usuario {user.full_name} creado", entity_id=user.id, user_id=current.id)
    session.commit()
    session.refresh(user)
    return user
