from datetime import UTC, datetime
from typing import Optional
from enum import Enum
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    # SQLite pierde la zona horaria; se guardan instantes UTC naive
    return datetime.now(UTC).replace(tzinfo=None)


class Timestamped(SQLModel):
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: Optional[datetime] = Field(default=None, sa_column_kwargs={"nullable": True})


class RoleEnum(str, Enum):
    student = "student"
    professor = "professor"
    admin = "admin"
    superadmin = "superadmin"


class LanguageEnum(str, Enum):
    es = "es"
    en = "en"
    both = "both"


class DocTypeEnum(str, Enum):
    passport = "passport"
    national_id = "national_id"
    driver_license = "driver_license"
    other = "other"


class ProgramTypeEnum(str, Enum):
    diploma = "diploma"
    bachelor = "bachelor"
    master = "master"
    doctorate = "doctorate"


class CourseCategoryEnum(str, Enum):
    humanities = "humanities"
    core = "core"
    elective = "elective"
    general = "general"


class EnrollmentStatusEnum(str, Enum):
    enrolled = "enrolled"
    dropped = "dropped"
    withdrawn = "withdrawn"
    completed = "completed"
    incomplete = "incomplete"
    failed = "failed"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    first_name: str
    last_name: str
    hashed_password: str
    role: RoleEnum = Field(default=RoleEnum.student, index=True)
    is_active: bool = Field(default=True)
    must_change_password: bool = Field(default=False, nullable=False)
    # Datos personales y de contacto
    phone: Optional[str] = None
    country: Optional[str] = None
    nationality: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    document_type: Optional[DocTypeEnum] = Field(default=None, sa_column_kwargs={"nullable": True})
    document_number: Optional[str] = None
    # Perfil de estudiante
    student_code: Optional[str] = Field(default=None, index=True, sa_column_kwargs={"nullable": True})
    program_id: Optional[int] = Field(default=None, foreign_key="program.id", sa_column_kwargs={"nullable": True})

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class ProgramCategory(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)


class Program(Timestamped, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    # Los campos por idioma son obligatorios según ``language``
    code_es: Optional[str] = Field(default=None, index=True)
    code_en: Optional[str] = Field(default=None, index=True)
    name_es: Optional[str] = None
    name_en: Optional[str] = None
    description_es: Optional[str] = None
    description_en: Optional[str] = None
    type: ProgramTypeEnum
    degree: Optional[str] = None
    category_id: Optional[int] = Field(default=None, foreign_key="programcategory.id", index=True)
    language: LanguageEnum = Field(index=True)
    total_credits: int = Field(default=0)
    duration_bimesters: int
    tuition_per_credit: Optional[float] = None
    is_active: bool = Field(default=True, index=True)


class Course(Timestamped, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    code_es: Optional[str] = Field(default=None, index=True)
    code_en: Optional[str] = Field(default=None, index=True)
    name_es: Optional[str] = None
    name_en: Optional[str] = None
    description_es: Optional[str] = None
    description_en: Optional[str] = None
    credits: int
    language: LanguageEnum = Field(index=True)
    category: CourseCategoryEnum = Field(default=CourseCategoryEnum.core, index=True)
    is_active: bool = Field(default=True, index=True)


class ProgramCourse(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("program_id", "course_id", name="uq_program_course"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    program_id: int = Field(foreign_key="program.id", index=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    category_override: Optional[CourseCategoryEnum] = Field(default=None, sa_column_kwargs={"nullable": True})
    is_required: bool = Field(default=True)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class Bimester(Timestamped, table=True):
    """Periodo académico. El estado se calcula siempre a partir de las fechas."""

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)  # p. ej. "2021 Bimester I"
    start_date: datetime = Field(index=True)
    end_date: datetime
    grade_deadline: datetime


class ClassOffering(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("course_id", "bimester_id", "group_number", name="uq_class_course_bimester_group"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    bimester_id: int = Field(foreign_key="bimester.id", index=True)
    group_number: str  # "01", "02", ...
    professor_id: int = Field(foreign_key="user.id", index=True)


class ClassEnrollment(Timestamped, table=True):
    __table_args__ = (
        UniqueConstraint("class_id", "student_id", name="uq_class_enrollment_student"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    class_id: int = Field(foreign_key="classoffering.id", index=True)
    student_id: int = Field(foreign_key="user.id", index=True)
    # Referencias denormalizadas para consultas por estudiante
    course_id: int = Field(foreign_key="course.id", index=True)
    bimester_id: int = Field(foreign_key="bimester.id", index=True)
    professor_id: int = Field(foreign_key="user.id")
    enrolled_at: datetime = Field(default_factory=utcnow, nullable=False)
    enrolled_by: Optional[int] = Field(default=None, foreign_key="user.id", sa_column_kwargs={"nullable": True})
    status: EnrollmentStatusEnum = Field(default=EnrollmentStatusEnum.enrolled, index=True)
    status_changed_at: Optional[datetime] = Field(default=None, sa_column_kwargs={"nullable": True})
    status_changed_by: Optional[int] = Field(default=None, foreign_key="user.id", sa_column_kwargs={"nullable": True})
    status_change_reason: Optional[str] = None
    # Sólo percentage_grade es editable; el resto se deriva en services.grading
    percentage_grade: Optional[float] = Field(default=None, sa_column_kwargs={"nullable": True})
    letter_grade: Optional[str] = Field(default=None, sa_column_kwargs={"nullable": True})
    grade_points: Optional[float] = Field(default=None, sa_column_kwargs={"nullable": True})
    quality_points: Optional[float] = Field(default=None, sa_column_kwargs={"nullable": True})
    graded_by: Optional[int] = Field(default=None, foreign_key="user.id", sa_column_kwargs={"nullable": True})
    graded_at: Optional[datetime] = Field(default=None, sa_column_kwargs={"nullable": True})
    grade_notes: Optional[str] = None
    is_retake: bool = Field(default=False)
    is_auditing: bool = Field(default=False)
    counts_for_gpa: bool = Field(default=True)
    counts_for_progress: bool = Field(default=True)


class SystemLog(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    entity_type: str = Field(index=True)  # enrollment, professor, student, course, program, bimester, class
    entity_id: Optional[str] = None
    action: str = Field(index=True)  # created, updated, deleted, imported
    description: str
    user_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True, sa_column_kwargs={"nullable": True})
    created_at: datetime = Field(default_factory=utcnow, nullable=False, index=True)
