from dataclasses import asdict
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response
from typing import Any, Dict, List, Literal, Optional
from sqlmodel import select

from ..config import settings
from ..db import get_session
from ..exporters import export_grades_excel, export_grades_pdf
from ..models import Bimester, ClassEnrollment, Course, Program, RoleEnum, User
from ..security import ADMIN_ROLES, ALL_ROLES, STAFF_ROLES, ensure_self_or_staff, require_roles
from ..services.grading import calculate_grade_stats
from ..services.enrollment_import import ImportFileError
from ..services.student_import import StudentImportResult, import_students
from ..utils.localized_fields import resolve_localized


router = APIRouter(prefix="/students", tags=["students"])

EXPORT_HEADERS = {
    "es": ("Bimestre", "Código", "Curso", "Créditos", "Nota %", "Letra", "Puntos"),
    "en": ("Bimester", "Code", "Course", "Credits", "Grade %", "Letter", "Points"),
}


def serialize_student(session, student: User, locale: str) -> Dict[str, Any]:
    program = session.get(Program, student.program_id) if student.program_id else None
    return {
        "id": student.id,
        "email": student.email,
        "first_name": student.first_name,
        "last_name": student.last_name,
        "full_name": student.full_name,
        "student_code": student.student_code,
        "is_active": student.is_active,
        "phone": student.phone,
        "country": student.country,
        "nationality": student.nationality,
        "document_type": student.document_type,
        "document_number": student.document_number,
        "date_of_birth": student.date_of_birth,
        "program_id": student.program_id,
        "program_name": resolve_localized(program, "name_es", "name_en", locale) if program else "",
    }


def _get_student_or_404(session, student_id: int) -> User:
    student = session.get(User, student_id)
    if not student or student.role != RoleEnum.student:
        raise HTTPException(status_code=404, detail="Estudiante no encontrado")
    return student


def build_grade_rows(session, student_id: int, locale: str) -> List[Dict[str, Any]]:
    rows = []
    enrollments = session.exec(select(ClassEnrollment).where(ClassEnrollment.student_id == student_id)).all()
    for enrollment in enrollments:
        course = session.get(Course, enrollment.course_id)
        bimester = session.get(Bimester, enrollment.bimester_id)
        rows.append({
            "enrollment_id": enrollment.id,
            "class_id": enrollment.class_id,
            "bimester": bimester.name if bimester else "",
            "bimester_start": bimester.start_date if bimester else None,
            "course_code": resolve_localized(course, "code_es", "code_en", locale) if course else "",
            "course_name": resolve_localized(course, "name_es", "name_en", locale) if course else "",
            "credits": course.credits if course else 0,
            "status": enrollment.status.value,
            "percentage_grade": enrollment.percentage_grade,
            "letter_grade": enrollment.letter_grade,
            "grade_points": enrollment.grade_points,
            "quality_points": enrollment.quality_points,
            "counts_for_gpa": enrollment.counts_for_gpa,
        })
    rows.sort(key=lambda row: (row["bimester_start"] is None, row["bimester_start"], row["course_code"]))
    return rows


@router.get("/")
def list_students(
    program_id: Optional[int] = None,
    q: Optional[str] = None,
    locale: Optional[str] = None,
    session=Depends(get_session),
    user=Depends(require_roles(*STAFF_ROLES)),
):
    stmt = select(User).where(User.role == RoleEnum.student)
    if program_id is not None:
        stmt = stmt.where(User.program_id == program_id)
    locale = locale or settings.default_locale
    items = [serialize_student(session, s, locale) for s in session.exec(stmt.order_by(User.last_name, User.first_name)).all()]
    if q:
        needle = q.strip().lower()
        items = [
            item for item in items
            if needle in item["full_name"].lower()
            or needle in item["email"]
            or needle in (item["student_code"] or "").lower()
        ]
    return items


@router.post("/import", response_model=StudentImportResult)
async def import_students_file(
    file: UploadFile = File(...),
    session=Depends(get_session),
    user=Depends(require_roles(*ADMIN_ROLES)),
):
    content = await file.read()
    try:
        return import_students(session, file.filename, content, user_id=user.id)
    except ImportFileError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("/{student_id}")
def get_student(student_id: int, locale: Optional[str] = None, session=Depends(get_session), user=Depends(require_roles(*ALL_ROLES))):
    student = _get_student_or_404(session, student_id)
    ensure_self_or_staff(user, student.id)
    return serialize_student(session, student, locale or settings.default_locale)


@router.get("/{student_id}/grades")
def get_student_grades(student_id: int, locale: Optional[str] = None, session=Depends(get_session), user=Depends(require_roles(*ALL_ROLES))):
    student = _get_student_or_404(session, student_id)
    ensure_self_or_staff(user, student.id)
    rows = build_grade_rows(session, student.id, locale or settings.default_locale)
    return {"student": serialize_student(session, student, locale or settings.default_locale), "grades": rows, "stats": asdict(calculate_grade_stats(rows))}


@router.get("/{student_id}/grades/export")
def export_student_grades(
    student_id: int,
    format: Literal["pdf", "xlsx"] = "pdf",
    locale: Optional[str] = None,
    session=Depends(get_session),
    user=Depends(require_roles(*ALL_ROLES)),
):
    student = _get_student_or_404(session, student_id)
    ensure_self_or_staff(user, student.id)
    locale = locale or settings.default_locale
    rows = build_grade_rows(session, student.id, locale)
    headers = EXPORT_HEADERS["en" if locale == "en" else "es"]
    title = f"{student.full_name} ({student.student_code or '-'})"
    filename = f"notas_{student.student_code or student.id}.{format}"
    if format == "xlsx":
        content = export_grades_excel(title, headers, rows)
        media_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    else:
        stats = calculate_grade_stats(rows)
        summary = [
            f"Créditos: {stats.approved_credits:g}/{stats.enrolled_credits:g} ({stats.approved_percentage}%)",
            f"Promedio: {stats.average}",
            f"GPA: {stats.gpa if stats.gpa is not None else '-'}",
        ]
        content = export_grades_pdf(title, headers, rows, summary=summary)
        media_type = "application/pdf"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
