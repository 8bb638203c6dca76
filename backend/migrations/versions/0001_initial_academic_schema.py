"""
Initial academic administration schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ROLE = sa.Enum("student", "professor", "admin", "superadmin", name="roleenum")
LANGUAGE = sa.Enum("es", "en", "both", name="languageenum")
DOC_TYPE = sa.Enum("passport", "national_id", "driver_license", "other", name="doctypeenum")
PROGRAM_TYPE = sa.Enum("diploma", "bachelor", "master", "doctorate", name="programtypeenum")
COURSE_CATEGORY = sa.Enum("humanities", "core", "elective", "general", name="coursecategoryenum")
ENROLLMENT_STATUS = sa.Enum(
    "enrolled", "dropped", "withdrawn", "completed", "incomplete", "failed", name="enrollmentstatusenum"
)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    ]


def _localized(*fields):
    return [sa.Column(f"{field}_{lang}", sa.String(), nullable=True) for field in fields for lang in ("es", "en")]


def upgrade() -> None:
    op.create_table(
        "programcategory",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_programcategory_name"), "programcategory", ["name"], unique=True)

    op.create_table(
        "program",
        sa.Column("id", sa.Integer(), nullable=False),
        *_localized("code", "name", "description"),
        sa.Column("type", PROGRAM_TYPE, nullable=False),
        sa.Column("degree", sa.String(), nullable=True),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("language", LANGUAGE, nullable=False),
        sa.Column("total_credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("duration_bimesters", sa.Integer(), nullable=False),
        sa.Column("tuition_per_credit", sa.Float(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.ForeignKeyConstraint(["category_id"], ["programcategory.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in ("code_es", "code_en", "category_id", "language", "is_active"):
        op.create_index(op.f(f"ix_program_{column}"), "program", [column], unique=False)

    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(), nullable=False),
        sa.Column("last_name", sa.String(), nullable=False),
        sa.Column("hashed_password", sa.String(), nullable=False),
        sa.Column("role", ROLE, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("must_change_password", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("country", sa.String(), nullable=True),
        sa.Column("nationality", sa.String(), nullable=True),
        sa.Column("date_of_birth", sa.DateTime(), nullable=True),
        sa.Column("document_type", DOC_TYPE, nullable=True),
        sa.Column("document_number", sa.String(), nullable=True),
        sa.Column("student_code", sa.String(), nullable=True),
        sa.Column("program_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["program_id"], ["program.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_user_email"), "user", ["email"], unique=True)
    op.create_index(op.f("ix_user_role"), "user", ["role"], unique=False)
    op.create_index(op.f("ix_user_student_code"), "user", ["student_code"], unique=False)

    op.create_table(
        "course",
        sa.Column("id", sa.Integer(), nullable=False),
        *_localized("code", "name", "description"),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("language", LANGUAGE, nullable=False),
        sa.Column("category", COURSE_CATEGORY, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in ("code_es", "code_en", "language", "category", "is_active"):
        op.create_index(op.f(f"ix_course_{column}"), "course", [column], unique=False)

    op.create_table(
        "programcourse",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("program_id", sa.Integer(), nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("category_override", COURSE_CATEGORY, nullable=True),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["program_id"], ["program.id"]),
        sa.ForeignKeyConstraint(["course_id"], ["course.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("program_id", "course_id", name="uq_program_course"),
    )
    op.create_index(op.f("ix_programcourse_program_id"), "programcourse", ["program_id"], unique=False)
    op.create_index(op.f("ix_programcourse_course_id"), "programcourse", ["course_id"], unique=False)

    op.create_table(
        "bimester",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=False),
        sa.Column("grade_deadline", sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_bimester_name"), "bimester", ["name"], unique=True)
    op.create_index(op.f("ix_bimester_start_date"), "bimester", ["start_date"], unique=False)

    op.create_table(
        "classoffering",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("bimester_id", sa.Integer(), nullable=False),
        sa.Column("group_number", sa.String(), nullable=False),
        sa.Column("professor_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["course_id"], ["course.id"]),
        sa.ForeignKeyConstraint(["bimester_id"], ["bimester.id"]),
        sa.ForeignKeyConstraint(["professor_id"], ["user.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("course_id", "bimester_id", "group_number", name="uq_class_course_bimester_group"),
    )
    for column in ("course_id", "bimester_id", "professor_id"):
        op.create_index(op.f(f"ix_classoffering_{column}"), "classoffering", [column], unique=False)

    op.create_table(
        "classenrollment",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("class_id", sa.Integer(), nullable=False),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("bimester_id", sa.Integer(), nullable=False),
        sa.Column("professor_id", sa.Integer(), nullable=False),
        sa.Column("enrolled_at", sa.DateTime(), nullable=False),
        sa.Column("enrolled_by", sa.Integer(), nullable=True),
        sa.Column("status", ENROLLMENT_STATUS, nullable=False),
        sa.Column("status_changed_at", sa.DateTime(), nullable=True),
        sa.Column("status_changed_by", sa.Integer(), nullable=True),
        sa.Column("status_change_reason", sa.String(), nullable=True),
        sa.Column("percentage_grade", sa.Float(), nullable=True),
        sa.Column("letter_grade", sa.String(), nullable=True),
        sa.Column("grade_points", sa.Float(), nullable=True),
        sa.Column("quality_points", sa.Float(), nullable=True),
        sa.Column("graded_by", sa.Integer(), nullable=True),
        sa.Column("graded_at", sa.DateTime(), nullable=True),
        sa.Column("grade_notes", sa.String(), nullable=True),
        sa.Column("is_retake", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_auditing", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("counts_for_gpa", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("counts_for_progress", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.ForeignKeyConstraint(["class_id"], ["classoffering.id"]),
        sa.ForeignKeyConstraint(["student_id"], ["user.id"]),
        sa.ForeignKeyConstraint(["course_id"], ["course.id"]),
        sa.ForeignKeyConstraint(["bimester_id"], ["bimester.id"]),
        sa.ForeignKeyConstraint(["professor_id"], ["user.id"]),
        sa.ForeignKeyConstraint(["enrolled_by"], ["user.id"]),
        sa.ForeignKeyConstraint(["status_changed_by"], ["user.id"]),
        sa.ForeignKeyConstraint(["graded_by"], ["user.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("class_id", "student_id", name="uq_class_enrollment_student"),
    )
    for column in ("class_id", "student_id", "course_id", "bimester_id", "status"):
        op.create_index(op.f(f"ix_classenrollment_{column}"), "classenrollment", [column], unique=False)

    op.create_table(
        "systemlog",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in ("entity_type", "action", "user_id", "created_at"):
        op.create_index(op.f(f"ix_systemlog_{column}"), "systemlog", [column], unique=False)


def downgrade() -> None:
    for table in (
        "systemlog",
        "classenrollment",
        "classoffering",
        "bimester",
        "programcourse",
        "course",
        "user",
        "program",
        "programcategory",
    ):
        op.drop_table(table)
