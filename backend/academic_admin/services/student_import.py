"""Bulk creation of student accounts from line-delimited JSON.

Required keys per line: ``firstName``, ``lastName``, ``email``,
``studentCode``, ``programCode`` and ``isActive``. Optional: ``phone``,
``country``, ``nationality``, ``documentType``, ``documentNumber`` and
``dateOfBirth`` (epoch milliseconds or ISO date). Each line succeeds or fails
on its own; file level problems raise ``ImportFileError``.
"""

from __future__ import annotations

import logging
import re
import secrets
from datetime import UTC, datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from ..models import DocTypeEnum, Program, RoleEnum, User
from ..security import get_password_hash
from .activity import log_activity
from .enrollment_import import normalize_code, normalize_email, parse_jsonl, read_content


logger = logging.getLogger(__name__)

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
REQUIRED_FIELDS = ("firstName", "lastName", "email", "studentCode", "programCode")


class StudentImportLineResult(BaseModel):
    line: int
    status: Literal["success", "error"]
    email: Optional[str] = None
    student_code: Optional[str] = None
    user_id: Optional[int] = None
    message: Optional[str] = None


class StudentImportResult(BaseModel):
    success_count: int = 0
    error_count: int = 0
    results: List[StudentImportLineResult] = []


def validate_student_payload(payload: Dict[str, Any]) -> List[str]:
    errors: List[str] = []
    for name in REQUIRED_FIELDS:
        value = payload.get(name)
        if not isinstance(value, str) or not value.strip():
            errors.append(f"Falta o es inválido {name}")
    email = payload.get("email")
    if isinstance(email, str) and email.strip() and not EMAIL_REGEX.match(email.strip()):
        errors.append("Correo electrónico inválido")
    if not isinstance(payload.get("isActive"), bool):
        errors.append("Falta o es inválido isActive")
    document_type = payload.get("documentType")
    if document_type is not None and document_type not in {item.value for item in DocTypeEnum}:
        errors.append(f"Tipo de documento inválido: {document_type}")
    return errors


def _parse_birth_date(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    try:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return datetime.fromtimestamp(value / 1000, UTC).replace(tzinfo=None)
        if isinstance(value, str):
            return datetime.fromisoformat(value)
    except (OverflowError, OSError, ValueError) as exc:
        raise ValueError(f"Fecha de nacimiento inválida: {value}") from exc
    raise ValueError(f"Fecha de nacimiento inválida: {value}")


def import_students(session, filename: Optional[str], content: bytes, user_id: Optional[int] = None) -> StudentImportResult:
    payloads = parse_jsonl(read_content(filename, content))

    programs: Dict[str, int] = {}
    for program in session.exec(select(Program)).all():
        for code in (program.code_es, program.code_en):
            if code and code.strip():
                programs[normalize_code(code)] = program.id

    result = StudentImportResult()
    for line, payload in enumerate(payloads, start=1):
        outcome = _import_one(session, line, payload, programs)
        result.results.append(outcome)
        if outcome.status == "success":
            result.success_count += 1
        else:
            result.error_count += 1

    if result.success_count:
        log_activity(session, "student", "imported", f"{result.success_count} estudiantes importados", user_id=user_id)
        session.commit()
    logger.info("Student import: %s ok, %s errors", result.success_count, result.error_count)
    return result


def _import_one(session, line: int, payload: Dict[str, Any], programs: Dict[str, int]) -> StudentImportLineResult:
    errors = validate_student_payload(payload)
    email = normalize_email(payload["email"]) if isinstance(payload.get("email"), str) else None
    student_code = normalize_code(payload["studentCode"]) if isinstance(payload.get("studentCode"), str) else None

    def _error(message: str) -> StudentImportLineResult:
        return StudentImportLineResult(line=line, status="error", email=email, student_code=student_code, message=message)

    if errors:
        return _error("; ".join(errors))

    program_id = programs.get(normalize_code(payload["programCode"]))
    if program_id is None:
        return _error(f"Programa no encontrado: {payload['programCode']}")
    if session.exec(select(User).where(User.email == email)).first():
        return _error(f"El correo ya está registrado: {email}")
    if session.exec(select(User).where(User.student_code == student_code)).first():
        return _error(f'El código de estudiante "{student_code}" ya existe')
    try:
        date_of_birth = _parse_birth_date(payload.get("dateOfBirth"))
    except ValueError as exc:
        return _error(str(exc))

    user = User(
        email=email,
        first_name=payload["firstName"].strip(),
        last_name=payload["lastName"].strip(),
        # Cuenta sin contraseña utilizable hasta que el estudiante la restablezca
        hashed_password=get_password_hash(secrets.token_urlsafe(16)),
        must_change_password=True,
        role=RoleEnum.student,
        is_active=payload["isActive"],
        phone=payload.get("phone") or None,
        country=payload.get("country") or None,
        nationality=payload.get("nationality") or None,
        document_type=payload.get("documentType"),
        document_number=payload.get("documentNumber") or None,
        date_of_birth=date_of_birth,
        student_code=student_code,
        program_id=program_id,
    )
    try:
        session.add(user)
        session.commit()
        session.refresh(user)
    except SQLAlchemyError as exc:
        session.rollback()
        logger.warning("Student import failed at line %s: %s", line, exc)
        return _error(f"No se pudo crear el estudiante: {exc}")
    return StudentImportLineResult(line=line, status="success", email=email, student_code=student_code, user_id=user.id)
