import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import jwt, JWTError
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import select

from .config import settings
from .db import get_session
from .models import RoleEnum, User


logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)

ADMIN_ROLES = (RoleEnum.admin.value, RoleEnum.superadmin.value)
STAFF_ROLES = (RoleEnum.professor.value, *ADMIN_ROLES)
ALL_ROLES = (RoleEnum.student.value, *STAFF_ROLES)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(user: User, expires_minutes: Optional[int] = None) -> str:
    """Sign a bearer token for ``user``; the ``role`` claim must still match on every request."""

    minutes = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    claims: Dict[str, Any] = {"sub": user.email, "role": user.role.value}
    if minutes is not None and minutes > 0:
        claims["exp"] = int((datetime.now(timezone.utc) + timedelta(minutes=minutes)).timestamp())
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED, detail="No autenticado", headers={"WWW-Authenticate": "Bearer"}
    )


def authenticate_token(token: str, session) -> User:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise _unauthorized()
    email = payload.get("sub")
    if email is None:
        raise _unauthorized()
    user = session.exec(select(User).where(User.email == email)).first()
    if not user or not user.is_active:
        raise _unauthorized()
    # un cambio de rol invalida los tokens emitidos antes
    if payload.get("role") != user.role.value:
        logger.info("Token role %s no longer matches user %s", payload.get("role"), user.id)
        raise _unauthorized()
    return user


def get_current_user(token: Optional[str] = Depends(oauth2_scheme), session=Depends(get_session)) -> User:
    if not token:
        raise _unauthorized()
    return authenticate_token(token, session)


def require_roles(*roles: str):
    def _inner(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="Permisos insuficientes")
        return user

    return _inner


def is_admin(user: User) -> bool:
    return user.role in ADMIN_ROLES


def ensure_owns_class(user: User, professor_id: Optional[int]) -> None:
    """Admins reach every class; a professor only the ones they teach."""
    if not is_admin(user) and professor_id != user.id:
        raise HTTPException(status_code=403, detail="No tiene acceso a esta clase")


def ensure_self_or_staff(user: User, target_id: int) -> None:
    if user.role == RoleEnum.student and user.id != target_id:
        raise HTTPException(status_code=403, detail="Permisos insuficientes")
