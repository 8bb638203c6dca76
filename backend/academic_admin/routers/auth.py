import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, Field
from sqlmodel import select

from ..config import settings
from ..db import get_session
from ..models import RoleEnum, User
from ..services.activity import log_activity
from ..security import (
    ADMIN_ROLES,
    verify_password,
    get_password_hash,
    create_access_token,
    get_current_user,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: RoleEnum
    must_change_password: bool = False


def _token_for(user: User) -> TokenResponse:
    token = create_access_token(user)
    return TokenResponse(access_token=token, role=user.role, must_change_password=user.must_change_password)


@router.post("/token", response_model=TokenResponse)
def login(form_data: OAuth2PasswordRequestForm = Depends(), session=Depends(get_session)):
    email = form_data.username.strip().lower()
    user = session.exec(select(User).where(User.email == email)).first()
    if not user or not verify_password(form_data.password, user.hashed_password):
        logger.info("Failed login for %s", email)
        raise HTTPException(status_code=400, detail="Credenciales inválidas")
    if not user.is_active:
        raise HTTPException(status_code=400, detail="Usuario inactivo")
    return _token_for(user)


class SignupRequest(BaseModel):
    email: str
    first_name: str
    last_name: str
    password: str = Field(min_length=6)
    role: RoleEnum = RoleEnum.student


@router.post("/signup", response_model=TokenResponse)
def signup(payload: SignupRequest, session=Depends(get_session)):
    if settings.is_production and payload.role.value in ADMIN_ROLES:
        raise HTTPException(status_code=403, detail="No se pueden registrar administradores")
    email = payload.email.strip().lower()
    existing = session.exec(select(User).where(User.email == email)).first()
    if existing:
        raise HTTPException(status_code=400, detail="Usuario ya existe")
    user = User(
        email=email,
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        hashed_password=get_password_hash(payload.password),
        role=payload.role,
    )
    session.add(user)
    log_activity(session, user.role.value, "created", f"Registro de {email}")
    session.commit()
    session.refresh(user)
    return _token_for(user)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=6)
    new_password: str = Field(min_length=8)


@router.post("/change-password", response_model=TokenResponse)
def change_password(
    payload: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    session=Depends(get_session),
):
    if not verify_password(payload.current_password, user.hashed_password):
        raise HTTPException(status_code=400, detail="Contraseña actual incorrecta")
    if payload.current_password == payload.new_password:
        raise HTTPException(status_code=400, detail="La nueva contraseña debe ser diferente")
    user.hashed_password = get_password_hash(payload.new_password)
    user.must_change_password = False
    session.add(user)
    session.commit()
    session.refresh(user)
    return _token_for(user)
