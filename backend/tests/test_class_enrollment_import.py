import json
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, select

from academic_admin import db
from academic_admin.main import app
from academic_admin.models import ClassEnrollment, ClassOffering, RoleEnum
from academic_admin.services.bimester_status import FixedClock, get_clock

from conftest import auth, create_user, unique


@pytest.fixture()
def catalog(make_program, make_course, make_bimester, professor):
    program = make_program()
    course = make_course(credits=3)
    bimester = make_bimester()
    prof, prof_token = professor
    students = [
        create_user(RoleEnum.student, student_code=unique("STU"), program_id=program["id"])
        for _ in range(2)
    ]
    return {
        "program": program,
        "course": course,
        "bimester": bimester,
        "professor": prof,
        "professor_token": prof_token,
        "students": students,
    }


def _line(catalog, grades, group="1", **overrides):
    record = {
        "programCode": catalog["program"]["code_es"].lower(),
        "courseCode": f" {catalog['course']['code_es']} ",
        "bimesterName": catalog["bimester"]["name"],
        "groupNumber": group,
        "professorEmail": catalog["professor"].email.upper(),
        "students": [
            {"studentCode": student.student_code, "percentageGrade": grade}
            for student, grade in zip(catalog["students"], grades)
        ],
    }
    record.update(overrides)
    return json.dumps(record)


def _upload(client, token, content: str, filename="enrollments.jsonl", dry_run=False):
    return client.post(
        "/class-enrollments/import",
        files={"file": (filename, content.encode("utf-8"), "application/jsonl")},
        data={"dry_run": "true" if dry_run else "false"},
        headers=auth(token),
    )


def _enrollments_for(class_course_id):
    with Session(db.engine) as session:
        return session.exec(select(ClassEnrollment).where(ClassEnrollment.course_id == class_course_id)).all()


def test_import_creates_class_and_graded_enrollments(client: TestClient, catalog, admin_token: str):
    res = _upload(client, admin_token, _line(catalog, [91, 58]) + "\n")
    assert res.status_code == 200, res.text
    result = res.json()
    assert result["classes_created"] == 1
    assert result["enrollments_created"] == 2
    assert result["errors"] == []

    rows = {row.student_id: row for row in _enrollments_for(catalog["course"]["id"])}
    top = rows[catalog["students"][0].id]
    assert top.letter_grade == "A-"
    assert top.grade_points == 3.7
    assert top.quality_points == 11.1
    assert top.status.value == "completed"
    low = rows[catalog["students"][1].id]
    assert low.letter_grade == "F"
    assert low.grade_points == 0.0


def test_reimport_is_idempotent(client: TestClient, catalog, admin_token: str):
    content = _line(catalog, [80, 70])
    first = _upload(client, admin_token, content).json()
    assert first["classes_created"] == 1

    second = _upload(client, admin_token, content).json()
    assert second["classes_created"] == 0
    assert second["classes_already_existed"] == 1
    assert second["enrollments_created"] == 0
    assert second["enrollments_updated"] == 0
    assert second["enrollments_unchanged"] == 2
    assert any("se reutiliza" in warning for warning in second["warnings"])

    changed = _upload(client, admin_token, _line(catalog, [95, 70])).json()
    assert changed["enrollments_updated"] == 1
    assert changed["enrollments_unchanged"] == 1


def test_out_of_range_grade_is_rejected_without_import(client: TestClient, catalog, admin_token: str):
    res = _upload(client, admin_token, _line(catalog, [150]))
    assert res.status_code == 200
    result = res.json()
    assert result["classes_created"] == 0
    assert result["enrollments_created"] == 0
    assert len(result["errors"]) == 1
    issue = result["errors"][0]
    assert issue["type"] == "invalid_record"
    assert issue["line"] == 1
    assert any("entre 0 y 100" in message for message in issue["errors"])
    assert _enrollments_for(catalog["course"]["id"]) == []


def test_unknown_references_are_typed_and_do_not_stop_other_lines(client: TestClient, catalog, admin_token: str):
    content = "\n".join([
        _line(catalog, [88], programCode="NOPE"),
        _line(catalog, [88], group="2", professorEmail="ghost@test.com"),
        _line(catalog, [88, 77], group="3"),
    ])
    result = _upload(client, admin_token, content).json()
    types = [issue["type"] for issue in result["errors"]]
    assert types == ["program_not_found", "professor_not_found"]
    assert result["errors"][0]["program_code"] == "NOPE"
    assert result["errors"][1]["line"] == 2
    assert result["classes_created"] == 1
    assert result["enrollments_created"] == 2


def test_unknown_student_is_reported_per_row(client: TestClient, catalog, admin_token: str):
    line = json.loads(_line(catalog, [88]))
    line["students"].append({"studentCode": "missing-code", "percentageGrade": 70})
    result = _upload(client, admin_token, json.dumps(line)).json()
    assert result["enrollments_created"] == 1
    assert result["errors"][0]["type"] == "student_not_found"
    assert result["errors"][0]["student_code"] == "MISSING-CODE"


def test_dry_run_reports_without_writing(client: TestClient, catalog, admin_token: str):
    result = _upload(client, admin_token, _line(catalog, [91, 85]), dry_run=True).json()
    assert result["dry_run"] is True
    assert result["classes_created"] == 1
    assert result["enrollments_created"] == 2
    with Session(db.engine) as session:
        offerings = session.exec(select(ClassOffering).where(ClassOffering.course_id == catalog["course"]["id"])).all()
    assert offerings == []


def test_dry_run_counts_match_commit_for_repeated_students(client: TestClient, catalog, admin_token: str):
    content = "\n".join([_line(catalog, [91]), _line(catalog, [91]), _line(catalog, [91, 80])])
    counts = ("classes_created", "classes_already_existed", "enrollments_created", "enrollments_updated", "enrollments_unchanged")

    preview = _upload(client, admin_token, content, dry_run=True).json()
    committed = _upload(client, admin_token, content).json()

    assert preview["errors"] == committed["errors"] == []
    assert {k: preview[k] for k in counts} == {k: committed[k] for k in counts}
    assert committed["enrollments_created"] == 2
    assert committed["enrollments_unchanged"] == 2
    assert committed["enrollments_updated"] == 0
    assert len(_enrollments_for(catalog["course"]["id"])) == 2


@pytest.mark.parametrize(
    "filename,content",
    [
        ("enrollments.csv", '{"a": 1}'),
        ("enrollments.jsonl", "   \n\n"),
        ("enrollments.jsonl", '{"programCode": "X"}\n{not json'),
        ("enrollments.jsonl", "[1, 2]"),
    ],
)
def test_file_level_errors_abort_before_writing(client: TestClient, admin_token: str, filename, content):
    res = _upload(client, admin_token, content, filename=filename)
    assert res.status_code == 400


def test_professor_grade_update_respects_deadline(client: TestClient, catalog, admin_token: str):
    _upload(client, admin_token, _line(catalog, [70]))
    enrollment = next(
        row for row in _enrollments_for(catalog["course"]["id"]) if row.student_id == catalog["students"][0].id
    )
    start = datetime.fromisoformat(catalog["bimester"]["start_date"])
    token = catalog["professor_token"]
    try:
        app.dependency_overrides[get_clock] = lambda: FixedClock(start + timedelta(days=62))
        res = client.patch(f"/class-enrollments/{enrollment.id}/grade", json={"percentage_grade": 87}, headers=auth(token))
        assert res.status_code == 200, res.text
        assert res.json()["letter_grade"] == "B+"
        assert res.json()["grade_points"] == 3.3

        bad = client.patch(f"/class-enrollments/{enrollment.id}/grade", json={"percentage_grade": 101}, headers=auth(token))
        assert bad.status_code == 400

        app.dependency_overrides[get_clock] = lambda: FixedClock(start + timedelta(days=80))
        late = client.patch(f"/class-enrollments/{enrollment.id}/grade", json={"percentage_grade": 90}, headers=auth(token))
        assert late.status_code == 403

        admin = client.patch(f"/class-enrollments/{enrollment.id}/grade", json={"percentage_grade": 90}, headers=auth(admin_token))
        assert admin.status_code == 200
        assert admin.json()["letter_grade"] == "A-"
    finally:
        app.dependency_overrides.pop(get_clock, None)


def test_status_change_and_delete(client: TestClient, catalog, admin_token: str):
    _upload(client, admin_token, _line(catalog, [70]))
    enrollment = _enrollments_for(catalog["course"]["id"])[0]

    res = client.patch(
        f"/class-enrollments/{enrollment.id}/status",
        json={"status": "withdrawn", "reason": "Solicitud del estudiante"},
        headers=auth(admin_token),
    )
    assert res.status_code == 200
    assert res.json()["status"] == "withdrawn"
    assert res.json()["status_change_reason"] == "Solicitud del estudiante"

    assert client.delete(f"/class-enrollments/{enrollment.id}", headers=auth(admin_token)).status_code == 200
    assert client.delete(f"/class-enrollments/{enrollment.id}", headers=auth(admin_token)).status_code == 404
