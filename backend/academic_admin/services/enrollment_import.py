"""Bulk import of class enrollments from line-delimited JSON.

Each line describes one class offering and its graded roster::

    {"programCode": "01L", "courseCode": "CCOU-08", "bimesterName": "2021 Bimester I",
     "groupNumber": "1", "professorEmail": "prof@example.com",
     "students": [{"studentCode": "01L-2021-01", "percentageGrade": 91}]}

The import walks ``idle -> reading -> parsing -> validating -> importing ->
completed``. File level problems (wrong extension, empty file, a line that is
not a JSON object) raise :class:`ImportFileError` and leave the importer in
``idle`` before anything is written. After parsing the import is best effort:
row problems are collected as typed issues and never stop the remaining rows.
Only the ``importing`` phase writes, so ``dry_run`` gives a full report
without side effects.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Set, Tuple, Union

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from ..models import Bimester, ClassOffering, Course, EnrollmentStatusEnum, Program, RoleEnum, User
from .activity import log_activity
from .bimester_status import Clock
from .enrollments import apply_grade, find_enrollment, new_enrollment, set_status
from .grading import GradeScale, InvalidGradeError, is_valid_percentage


logger = logging.getLogger(__name__)

CLASS_FIELDS = ("programCode", "courseCode", "bimesterName", "groupNumber", "professorEmail")


class ImportState(str, Enum):
    idle = "idle"
    reading = "reading"
    parsing = "parsing"
    validating = "validating"
    importing = "importing"
    completed = "completed"


class ImportFileError(Exception):
    """File level failure; nothing has been written when this is raised."""


def normalize_code(code: str) -> str:
    return code.strip().upper()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def create_class_key(program_code: str, course_code: str, bimester_name: str, group_number: str) -> str:
    return f"{normalize_code(program_code)}-{normalize_code(course_code)}-{bimester_name.strip()}-{group_number}"


def _group_label(value: Any) -> str:
    # Excel entrega los grupos numéricos como float (1.0)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


@dataclass
class ImportRow:
    """Flat spreadsheet row: one student grade in one class."""

    program_code: Optional[str]
    course_code: Optional[str]
    bimester_name: Optional[str]
    group_number: Any
    professor_email: Optional[str]
    student_code: Optional[str]
    percentage_grade: Any


@dataclass
class StudentGrade:
    student_code: str
    percentage_grade: Any


@dataclass
class ClassEnrollmentRecord:
    program_code: str
    course_code: str
    bimester_name: str
    group_number: str
    professor_email: str
    students: List[StudentGrade] = field(default_factory=list)

    @property
    def class_key(self) -> str:
        return create_class_key(self.program_code, self.course_code, self.bimester_name, self.group_number)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "programCode": self.program_code,
            "courseCode": self.course_code,
            "bimesterName": self.bimester_name,
            "groupNumber": self.group_number,
            "professorEmail": self.professor_email,
            "students": [
                {"studentCode": s.student_code, "percentageGrade": s.percentage_grade} for s in self.students
            ],
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ClassEnrollmentRecord":
        return cls(
            program_code=payload["programCode"],
            course_code=payload["courseCode"],
            bimester_name=payload["bimesterName"],
            group_number=payload["groupNumber"],
            professor_email=payload["professorEmail"],
            students=[StudentGrade(s["studentCode"], s["percentageGrade"]) for s in payload["students"]],
        )


def group_rows(rows: Iterable[ImportRow]) -> Dict[str, ClassEnrollmentRecord]:
    """Merge flat rows into one record per class key, keeping input order."""

    classes: Dict[str, ClassEnrollmentRecord] = {}
    for row in rows:
        group = _group_label(row.group_number) if row.group_number is not None else ""
        if not (row.program_code and row.course_code and row.bimester_name and group and row.student_code):
            continue
        key = create_class_key(row.program_code, row.course_code, row.bimester_name, group)
        record = classes.get(key)
        if record is None:
            record = ClassEnrollmentRecord(
                program_code=normalize_code(row.program_code),
                course_code=normalize_code(row.course_code),
                bimester_name=row.bimester_name.strip(),
                group_number=group,
                professor_email=normalize_email(row.professor_email or ""),
            )
            classes[key] = record
        record.students.append(StudentGrade(normalize_code(row.student_code), row.percentage_grade))
    return classes


def flatten_records(records: Iterable[ClassEnrollmentRecord]) -> List[Tuple[str, str, Any]]:
    return [(record.class_key, s.student_code, s.percentage_grade) for record in records for s in record.students]


def to_jsonl(records: Iterable[ClassEnrollmentRecord]) -> str:
    return "\n".join(json.dumps(record.to_payload(), ensure_ascii=False) for record in records)


def read_content(filename: Optional[str], content: bytes) -> str:
    if not filename or not filename.lower().endswith(".jsonl"):
        raise ImportFileError("El archivo debe tener extensión .jsonl")
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ImportFileError("El archivo no está codificado en UTF-8") from exc
    if not text.strip():
        raise ImportFileError("El archivo está vacío")
    return text


def parse_jsonl(text: str) -> List[Dict[str, Any]]:
    lines = [line.strip() for line in text.splitlines()]
    lines = [line for line in lines if line]
    if not lines:
        raise ImportFileError("El archivo está vacío")
    items: List[Dict[str, Any]] = []
    for index, line in enumerate(lines, start=1):
        try:
            parsed = json.loads(line)
        except json.JSONDecodeError as exc:
            raise ImportFileError(f"JSON inválido en la línea {index}: {exc.msg}") from exc
        if not isinstance(parsed, dict):
            raise ImportFileError(f"La línea {index} debe ser un objeto JSON")
        items.append(parsed)
    return items


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def validate_class_enrollment(payload: Dict[str, Any]) -> List[str]:
    errors: List[str] = []
    for name in CLASS_FIELDS:
        if _is_blank(payload.get(name)):
            errors.append(f"Falta o es inválido {name}")

    students = payload.get("students")
    if not isinstance(students, list):
        errors.append("Falta o es inválida la lista students")
        return errors
    if not students:
        errors.append("La lista students está vacía")
    for index, student in enumerate(students):
        if not isinstance(student, dict):
            errors.append(f"El estudiante en la posición {index} no es un objeto")
            continue
        if _is_blank(student.get("studentCode")):
            errors.append(f"El estudiante en la posición {index} no tiene studentCode")
        grade = student.get("percentageGrade")
        if not is_valid_percentage(grade):
            reason = "debe ser un número" if isinstance(grade, bool) or not isinstance(grade, (int, float)) else "debe estar entre 0 y 100"
            errors.append(f"El estudiante en la posición {index} tiene una nota inválida: {reason}")
    return errors


def _payload_class_key(payload: Dict[str, Any]) -> Optional[str]:
    parts = [payload.get(name) for name in CLASS_FIELDS[:4]]
    if any(_is_blank(part) for part in parts):
        return None
    return create_class_key(*parts)


class _IssueBase(BaseModel):
    line: Optional[int] = None
    class_key: Optional[str] = None
    message: str


class InvalidRecordIssue(_IssueBase):
    type: Literal["invalid_record"] = "invalid_record"
    errors: List[str]


class ProgramNotFoundIssue(_IssueBase):
    type: Literal["program_not_found"] = "program_not_found"
    program_code: str


class CourseNotFoundIssue(_IssueBase):
    type: Literal["course_not_found"] = "course_not_found"
    course_code: str


class BimesterNotFoundIssue(_IssueBase):
    type: Literal["bimester_not_found"] = "bimester_not_found"
    bimester_name: str


class ProfessorNotFoundIssue(_IssueBase):
    type: Literal["professor_not_found"] = "professor_not_found"
    professor_email: str


class StudentNotFoundIssue(_IssueBase):
    type: Literal["student_not_found"] = "student_not_found"
    student_code: str


class InvalidGradeIssue(_IssueBase):
    type: Literal["invalid_grade"] = "invalid_grade"
    student_code: str
    grade: Any = None


class ClassCreationFailedIssue(_IssueBase):
    type: Literal["class_creation_failed"] = "class_creation_failed"


class EnrollmentFailedIssue(_IssueBase):
    type: Literal["enrollment_failed"] = "enrollment_failed"
    student_code: str


ImportIssue = Annotated[
    Union[
        InvalidRecordIssue,
        ProgramNotFoundIssue,
        CourseNotFoundIssue,
        BimesterNotFoundIssue,
        ProfessorNotFoundIssue,
        StudentNotFoundIssue,
        InvalidGradeIssue,
        ClassCreationFailedIssue,
        EnrollmentFailedIssue,
    ],
    Field(discriminator="type"),
]


class ImportResult(BaseModel):
    dry_run: bool = False
    classes_processed: int = 0
    classes_created: int = 0
    classes_already_existed: int = 0
    enrollments_created: int = 0
    enrollments_updated: int = 0
    enrollments_unchanged: int = 0
    errors: List[ImportIssue] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


@dataclass
class _DryRunPlan:
    """Classes and grades a dry run would have written so far."""

    classes: Set[Tuple[int, int, str]] = field(default_factory=set)
    grades: Dict[Tuple[Tuple[int, int, str], int], float] = field(default_factory=dict)


@dataclass
class _Lookups:
    programs: Dict[str, int]
    courses: Dict[str, Course]
    bimesters: Dict[str, int]
    professors: Dict[str, int]
    students: Dict[str, int]


class EnrollmentImporter:
    def __init__(self, session, clock: Clock, scale: Optional[GradeScale] = None, user_id: Optional[int] = None):
        self.session = session
        self.clock = clock
        self.scale = scale
        self.user_id = user_id
        self.state = ImportState.idle
        self.result: Optional[ImportResult] = None

    def run(self, filename: Optional[str], content: bytes, dry_run: bool = False) -> ImportResult:
        try:
            self.state = ImportState.reading
            text = read_content(filename, content)
            self.state = ImportState.parsing
            payloads = parse_jsonl(text)
        except ImportFileError:
            self.state = ImportState.idle
            raise

        self.state = ImportState.validating
        result = ImportResult(dry_run=dry_run)
        valid: List[Tuple[int, ClassEnrollmentRecord]] = []
        for line, payload in enumerate(payloads, start=1):
            result.classes_processed += 1
            errors = validate_class_enrollment(payload)
            if errors:
                result.errors.append(
                    InvalidRecordIssue(
                        line=line,
                        class_key=_payload_class_key(payload),
                        message=f"Registro inválido en la línea {line}",
                        errors=errors,
                    )
                )
                continue
            valid.append((line, ClassEnrollmentRecord.from_payload(payload)))

        lookups = self._load_lookups()
        if not dry_run:
            self.state = ImportState.importing
        plan = _DryRunPlan()
        for line, record in valid:
            self._process_record(line, record, lookups, result, commit=not dry_run, plan=plan)

        if not dry_run:
            log_activity(
                self.session,
                "enrollment",
                "imported",
                f"Importación: {result.classes_created} clases creadas, "
                f"{result.enrollments_created} matrículas creadas, {result.enrollments_updated} actualizadas",
                user_id=self.user_id,
            )
            self.session.commit()
        logger.info(
            "Import %s: processed=%s created=%s existing=%s enrollments created=%s updated=%s errors=%s",
            "dry-run" if dry_run else "commit",
            result.classes_processed,
            result.classes_created,
            result.classes_already_existed,
            result.enrollments_created,
            result.enrollments_updated,
            len(result.errors),
        )
        self.state = ImportState.completed
        self.result = result
        return result

    def _load_lookups(self) -> _Lookups:
        programs: Dict[str, int] = {}
        for program in self.session.exec(select(Program)).all():
            for code in (program.code_es, program.code_en):
                if code and code.strip():
                    programs[normalize_code(code)] = program.id
        courses: Dict[str, Course] = {}
        for course in self.session.exec(select(Course)).all():
            for code in (course.code_es, course.code_en):
                if code and code.strip():
                    courses[normalize_code(code)] = course
        bimesters = {b.name.strip(): b.id for b in self.session.exec(select(Bimester)).all()}
        professors: Dict[str, int] = {}
        students: Dict[str, int] = {}
        for user in self.session.exec(select(User)).all():
            if user.role == RoleEnum.professor:
                professors[normalize_email(user.email)] = user.id
            elif user.role == RoleEnum.student and user.student_code:
                students[normalize_code(user.student_code)] = user.id
        logger.info(
            "Lookup maps: programs=%s courses=%s bimesters=%s professors=%s students=%s",
            len(programs), len(courses), len(bimesters), len(professors), len(students),
        )
        return _Lookups(programs, courses, bimesters, professors, students)

    def _process_record(
        self,
        line: int,
        record: ClassEnrollmentRecord,
        lookups: _Lookups,
        result: ImportResult,
        commit: bool,
        plan: _DryRunPlan,
    ) -> None:
        key = record.class_key
        program_code = normalize_code(record.program_code)
        course_code = normalize_code(record.course_code)
        bimester_name = record.bimester_name.strip()
        professor_email = normalize_email(record.professor_email)

        if program_code not in lookups.programs:
            result.errors.append(ProgramNotFoundIssue(
                line=line, class_key=key, program_code=program_code,
                message=f"Programa no encontrado: {program_code}",
            ))
            return
        course = lookups.courses.get(course_code)
        if course is None:
            result.errors.append(CourseNotFoundIssue(
                line=line, class_key=key, course_code=course_code,
                message=f"Curso no encontrado: {course_code}",
            ))
            return
        bimester_id = lookups.bimesters.get(bimester_name)
        if bimester_id is None:
            result.errors.append(BimesterNotFoundIssue(
                line=line, class_key=key, bimester_name=bimester_name,
                message=f"Bimestre no encontrado: {bimester_name}",
            ))
            return
        professor_id = lookups.professors.get(professor_email)
        if professor_id is None:
            result.errors.append(ProfessorNotFoundIssue(
                line=line, class_key=key, professor_email=professor_email,
                message=f"Profesor no encontrado: {professor_email}",
            ))
            return

        identity = (course.id, bimester_id, record.group_number)
        class_offering = self.session.exec(
            select(ClassOffering).where(
                ClassOffering.course_id == course.id,
                ClassOffering.bimester_id == bimester_id,
                ClassOffering.group_number == record.group_number,
            )
        ).first()
        if class_offering is not None or identity in plan.classes:
            result.classes_already_existed += 1
            result.warnings.append(f"La clase ya existe: {key} (se reutiliza)")
        elif commit:
            class_offering = ClassOffering(
                course_id=course.id,
                bimester_id=bimester_id,
                group_number=record.group_number,
                professor_id=professor_id,
            )
            try:
                self.session.add(class_offering)
                self.session.commit()
                self.session.refresh(class_offering)
            except SQLAlchemyError as exc:
                self.session.rollback()
                logger.warning("Class creation failed for %s: %s", key, exc)
                result.errors.append(ClassCreationFailedIssue(
                    line=line, class_key=key, message=f"No se pudo crear la clase: {exc}",
                ))
                return
            result.classes_created += 1
        else:
            plan.classes.add(identity)
            result.classes_created += 1

        for student in record.students:
            self._process_student(line, key, student, class_offering, course, lookups, result, commit, identity, plan)

    def _process_student(
        self,
        line: int,
        key: str,
        student: StudentGrade,
        class_offering: Optional[ClassOffering],
        course: Course,
        lookups: _Lookups,
        result: ImportResult,
        commit: bool,
        identity: Tuple[int, int, str],
        plan: _DryRunPlan,
    ) -> None:
        student_code = normalize_code(student.student_code)
        student_id = lookups.students.get(student_code)
        if student_id is None:
            result.errors.append(StudentNotFoundIssue(
                line=line, class_key=key, student_code=student_code,
                message=f"Estudiante no encontrado: {student_code}",
            ))
            return
        if not is_valid_percentage(student.percentage_grade):
            result.errors.append(InvalidGradeIssue(
                line=line, class_key=key, student_code=student_code, grade=student.percentage_grade,
                message=f"Nota inválida para el estudiante {student_code}: {student.percentage_grade}",
            ))
            return

        existing = find_enrollment(self.session, class_offering.id, student_id) if class_offering is not None else None
        if not commit:
            # repeated students in the same file see the grade left by the earlier line
            planned_key = (identity, student_id)
            grade = float(student.percentage_grade)
            if planned_key in plan.grades:
                changed = plan.grades[planned_key] != grade
            elif existing is not None:
                changed = self._would_change(existing, grade)
            else:
                changed = None
            plan.grades[planned_key] = grade
            if changed is None:
                result.enrollments_created += 1
            elif changed:
                result.enrollments_updated += 1
            else:
                result.enrollments_unchanged += 1
            return

        now = self.clock.now()
        try:
            if existing is None:
                enrollment = new_enrollment(class_offering, student_id, now, enrolled_by=self.user_id)
                created = True
            else:
                enrollment = existing
                created = False
                if not self._would_change(existing, student.percentage_grade):
                    result.enrollments_unchanged += 1
                    return
            apply_grade(enrollment, student.percentage_grade, course.credits, now, graded_by=self.user_id, scale=self.scale)
            set_status(enrollment, EnrollmentStatusEnum.completed, now, changed_by=self.user_id, reason="import")
            self.session.add(enrollment)
            self.session.commit()
        except InvalidGradeError as exc:
            self.session.rollback()
            result.errors.append(InvalidGradeIssue(
                line=line, class_key=key, student_code=student_code, grade=student.percentage_grade,
                message=f"Nota inválida para el estudiante {student_code}: {exc}",
            ))
            return
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.warning("Enrollment failed for %s in %s: %s", student_code, key, exc)
            result.errors.append(EnrollmentFailedIssue(
                line=line, class_key=key, student_code=student_code,
                message=f"No se pudo matricular al estudiante {student_code}: {exc}",
            ))
            return
        if created:
            result.enrollments_created += 1
        else:
            result.enrollments_updated += 1

    @staticmethod
    def _would_change(enrollment, percentage: float) -> bool:
        return enrollment.percentage_grade != float(percentage) or enrollment.status != EnrollmentStatusEnum.completed
