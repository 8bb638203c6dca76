from __future__ import annotations

from datetime import timedelta
from typing import Dict, Optional

from sqlmodel import Session, select

from .db import engine, session_scope
from .models import (
    Bimester,
    ClassOffering,
    Course,
    CourseCategoryEnum,
    EnrollmentStatusEnum,
    LanguageEnum,
    Program,
    ProgramCategory,
    ProgramCourse,
    ProgramTypeEnum,
    RoleEnum,
    User,
    utcnow,
)
from .security import get_password_hash, verify_password
from .services.enrollments import apply_grade, find_enrollment, new_enrollment, set_status
from .services.grading import get_grade_scale


DEFAULT_ADMIN_EMAIL = "admin@academic-admin.dev"
DEFAULT_ADMIN_PASSWORD = "admin123"

DEMO_PROFESSOR_PASSWORD = "profesor123"
DEMO_STUDENT_PASSWORD = "estudiante123"


def ensure_default_admin(session: Optional[Session] = None, force_password_reset: bool = False) -> User:
    """Create the bootstrap superadmin account if it does not exist yet."""
    owns_session = session is None
    session = session or Session(engine)
    try:
        existing = session.exec(select(User).where(User.email == DEFAULT_ADMIN_EMAIL)).first()
        if existing:
            updated = False
            if not force_password_reset and not verify_password(DEFAULT_ADMIN_PASSWORD, existing.hashed_password):
                existing.hashed_password = get_password_hash(DEFAULT_ADMIN_PASSWORD)
                updated = True
            if existing.role != RoleEnum.superadmin:
                existing.role = RoleEnum.superadmin
                updated = True
            if not existing.is_active:
                existing.is_active = True
                updated = True
            if updated:
                session.add(existing)
                session.commit()
                session.refresh(existing)
            return existing
        user = User(
            email=DEFAULT_ADMIN_EMAIL,
            first_name="Administrador",
            last_name="General",
            hashed_password=get_password_hash(DEFAULT_ADMIN_PASSWORD),
            role=RoleEnum.superadmin,
            is_active=True,
            must_change_password=force_password_reset,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user
    finally:
        if owns_session:
            session.close()


def ensure_demo_data() -> None:
    """Load a small deterministic catalog so the console has something to show."""
    with session_scope() as session:
        admin = ensure_default_admin(session)
        category = _get_or_create_category(session, "Ciencias Sociales")
        programs = _ensure_programs(session, category)
        courses = _ensure_courses(session, programs)
        bimesters = _ensure_bimesters(session)
        professors = _ensure_professors(session)
        students = _ensure_students(session, programs)
        _ensure_classes(session, admin, courses, bimesters, professors, students)


def _get_or_create_category(session: Session, name: str) -> ProgramCategory:
    category = session.exec(select(ProgramCategory).where(ProgramCategory.name == name)).first()
    if not category:
        category = ProgramCategory(name=name)
        session.add(category)
        session.commit()
        session.refresh(category)
    return category


def _get_or_create_user(session: Session, *, email: str, first_name: str, last_name: str, role: RoleEnum, password: str, **extra) -> User:
    user = session.exec(select(User).where(User.email == email)).first()
    if user:
        return user
    user = User(
        email=email,
        first_name=first_name,
        last_name=last_name,
        hashed_password=get_password_hash(password),
        role=role,
        is_active=True,
        **extra,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def _ensure_programs(session: Session, category: ProgramCategory) -> Dict[str, Program]:
    data = [
        {
            "code_es": "01L",
            "name_es": "Licenciatura en Teología",
            "description_es": "Formación bíblica y pastoral.",
            "type": ProgramTypeEnum.bachelor,
            "language": LanguageEnum.es,
            "duration_bimesters": 24,
        },
        {
            "code_es": "02M",
            "code_en": "02M",
            "name_es": "Maestría en Liderazgo",
            "name_en": "Master in Leadership",
            "description_es": "Liderazgo organizacional.",
            "description_en": "Organizational leadership.",
            "type": ProgramTypeEnum.master,
            "language": LanguageEnum.both,
            "duration_bimesters": 12,
        },
    ]
    mapping: Dict[str, Program] = {}
    for item in data:
        program = session.exec(select(Program).where(Program.code_es == item["code_es"])).first()
        if not program:
            program = Program(category_id=category.id, **item)
            session.add(program)
            session.commit()
            session.refresh(program)
        mapping[item["code_es"]] = program
    return mapping


def _ensure_courses(session: Session, programs: Dict[str, Program]) -> Dict[str, Course]:
    data = [
        ("01L", {"code_es": "CCOU-08", "name_es": "Consejería Cristiana", "credits": 3, "language": LanguageEnum.es, "category": CourseCategoryEnum.core}),
        ("01L", {"code_es": "HUM-01", "name_es": "Historia de la Iglesia", "credits": 2, "language": LanguageEnum.es, "category": CourseCategoryEnum.humanities}),
        ("02M", {"code_es": "LID-10", "code_en": "LEAD-10", "name_es": "Liderazgo Estratégico", "name_en": "Strategic Leadership", "credits": 4, "language": LanguageEnum.both, "category": CourseCategoryEnum.core}),
    ]
    mapping: Dict[str, Course] = {}
    touched = set()
    for program_code, item in data:
        course = session.exec(select(Course).where(Course.code_es == item["code_es"])).first()
        if not course:
            course = Course(**item)
            session.add(course)
            session.commit()
            session.refresh(course)
        program = programs[program_code]
        link = session.exec(
            select(ProgramCourse).where(ProgramCourse.program_id == program.id, ProgramCourse.course_id == course.id)
        ).first()
        if not link:
            session.add(ProgramCourse(program_id=program.id, course_id=course.id))
            touched.add(program.id)
        mapping[item["code_es"]] = course
    session.commit()
    for program in programs.values():
        if program.id in touched:
            program.total_credits = sum(
                session.get(Course, link.course_id).credits
                for link in session.exec(select(ProgramCourse).where(ProgramCourse.program_id == program.id)).all()
            )
            session.add(program)
    session.commit()
    return mapping


def _ensure_bimesters(session: Session) -> Dict[str, Bimester]:
    today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    # uno cerrado, uno en curso y uno futuro respecto de la fecha actual
    starts = {
        "Bimestre anterior": today - timedelta(days=90),
        "Bimestre actual": today - timedelta(days=20),
        "Bimestre siguiente": today + timedelta(days=60),
    }
    mapping: Dict[str, Bimester] = {}
    for name, start in starts.items():
        bimester = session.exec(select(Bimester).where(Bimester.name == name)).first()
        if not bimester:
            bimester = Bimester(
                name=name,
                start_date=start,
                end_date=start + timedelta(days=56),
                grade_deadline=start + timedelta(days=63),
            )
            session.add(bimester)
            session.commit()
            session.refresh(bimester)
        mapping[name] = bimester
    return mapping


def _ensure_professors(session: Session) -> Dict[str, User]:
    data = [
        ("ana.rojas@academic-admin.dev", "Ana", "Rojas"),
        ("david.miller@academic-admin.dev", "David", "Miller"),
    ]
    return {
        email: _get_or_create_user(
            session,
            email=email,
            first_name=first,
            last_name=last,
            role=RoleEnum.professor,
            password=DEMO_PROFESSOR_PASSWORD,
        )
        for email, first, last in data
    }


def _ensure_students(session: Session, programs: Dict[str, Program]) -> Dict[str, User]:
    data = [
        ("01L-2021-01", "lucia.perez@academic-admin.dev", "Lucía", "Pérez", "01L"),
        ("01L-2021-02", "mateo.gomez@academic-admin.dev", "Mateo", "Gómez", "01L"),
        ("02M-2022-01", "sarah.jones@academic-admin.dev", "Sarah", "Jones", "02M"),
    ]
    mapping: Dict[str, User] = {}
    for code, email, first, last, program_code in data:
        mapping[code] = _get_or_create_user(
            session,
            email=email,
            first_name=first,
            last_name=last,
            role=RoleEnum.student,
            password=DEMO_STUDENT_PASSWORD,
            student_code=code,
            program_id=programs[program_code].id,
        )
    return mapping


def _ensure_classes(
    session: Session,
    admin: User,
    courses: Dict[str, Course],
    bimesters: Dict[str, Bimester],
    professors: Dict[str, User],
    students: Dict[str, User],
) -> None:
    plan = [
        ("CCOU-08", "Bimestre anterior", "1", "ana.rojas@academic-admin.dev", {"01L-2021-01": 91, "01L-2021-02": 58}),
        ("HUM-01", "Bimestre actual", "1", "ana.rojas@academic-admin.dev", {"01L-2021-01": None, "01L-2021-02": None}),
        ("LID-10", "Bimestre actual", "1", "david.miller@academic-admin.dev", {"02M-2022-01": None}),
    ]
    scale = get_grade_scale()
    now = utcnow()
    for course_code, bimester_name, group, professor_email, roster in plan:
        course = courses[course_code]
        bimester = bimesters[bimester_name]
        offering = session.exec(
            select(ClassOffering).where(
                ClassOffering.course_id == course.id,
                ClassOffering.bimester_id == bimester.id,
                ClassOffering.group_number == group,
            )
        ).first()
        if not offering:
            offering = ClassOffering(
                course_id=course.id,
                bimester_id=bimester.id,
                group_number=group,
                professor_id=professors[professor_email].id,
            )
            session.add(offering)
            session.commit()
            session.refresh(offering)
        for student_code, grade in roster.items():
            student = students[student_code]
            if find_enrollment(session, offering.id, student.id):
                continue
            enrollment = new_enrollment(offering, student.id, now, enrolled_by=admin.id)
            if grade is not None:
                apply_grade(enrollment, grade, course.credits, now, graded_by=offering.professor_id, scale=scale)
                set_status(enrollment, EnrollmentStatusEnum.completed, now, changed_by=offering.professor_id)
            session.add(enrollment)
        session.commit()
