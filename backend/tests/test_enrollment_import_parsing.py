import json
from collections import Counter

import pytest

from academic_admin.services.enrollment_import import (
    ClassEnrollmentRecord,
    ImportFileError,
    ImportResult,
    ImportRow,
    create_class_key,
    flatten_records,
    group_rows,
    parse_jsonl,
    read_content,
    to_jsonl,
    validate_class_enrollment,
)


SCENARIO = (
    '{"programCode":"01L","courseCode":"CCOU-08","bimesterName":"2021 Bimester I","groupNumber":"1",'
    '"professorEmail":"p@x.com","students":[{"studentCode":"S1","percentageGrade":150}]}'
)


def _row(student, grade, group="1", course="ccou-08", **overrides):
    values = dict(
        program_code=" 01l ",
        course_code=course,
        bimester_name=" 2021 Bimester I ",
        group_number=group,
        professor_email=" Prof@Example.com ",
        student_code=student,
        percentage_grade=grade,
    )
    values.update(overrides)
    return ImportRow(**values)


def test_class_key_normalizes_codes():
    assert create_class_key(" 01l", "ccou-08 ", " 2021 Bimester I ", "1") == "01L-CCOU-08-2021 Bimester I-1"


def test_rows_are_grouped_by_class_in_input_order():
    rows = [
        _row("01l-2021-01", 91),
        _row("01L-2021-02", 75),
        _row("01L-2021-03", 88, group=2.0),
        _row("01L-2021-04", 64),
    ]
    records = group_rows(rows)
    assert list(records) == ["01L-CCOU-08-2021 Bimester I-1", "01L-CCOU-08-2021 Bimester I-2"]
    first = records["01L-CCOU-08-2021 Bimester I-1"]
    assert [s.student_code for s in first.students] == ["01L-2021-01", "01L-2021-02", "01L-2021-04"]
    assert first.professor_email == "prof@example.com"
    assert records["01L-CCOU-08-2021 Bimester I-2"].group_number == "2"


def test_rows_missing_required_fields_are_dropped():
    rows = [
        _row("S1", 90),
        _row(None, 90),
        _row("S3", 90, program_code=""),
        _row("S4", 90, group=None),
    ]
    records = group_rows(rows)
    assert len(records) == 1
    assert [s.student_code for s in next(iter(records.values())).students] == ["S1"]


def test_group_then_flatten_preserves_triples():
    rows = [_row("A", 91), _row("B", 75, course="HUM-01"), _row("C", 60), _row("D", 100, group="3")]
    triples = flatten_records(group_rows(rows).values())
    expected = [
        (create_class_key(r.program_code, r.course_code, r.bimester_name, str(r.group_number)), r.student_code, r.percentage_grade)
        for r in rows
    ]
    assert Counter(triples) == Counter(expected)


def test_jsonl_round_trip_uses_wire_keys():
    records = list(group_rows([_row("A", 91), _row("B", 70)]).values())
    text = to_jsonl(records)
    payloads = parse_jsonl(text)
    assert set(payloads[0]) == {"programCode", "courseCode", "bimesterName", "groupNumber", "professorEmail", "students"}
    assert payloads[0]["students"][1] == {"studentCode": "B", "percentageGrade": 70}
    assert ClassEnrollmentRecord.from_payload(payloads[0]) == records[0]


def test_scenario_grade_out_of_range_fails_validation():
    errors = validate_class_enrollment(json.loads(SCENARIO))
    assert len(errors) == 1
    assert "entre 0 y 100" in errors[0]


def test_validation_collects_every_problem():
    payload = {
        "programCode": " ",
        "courseCode": "CCOU-08",
        "bimesterName": "2021 Bimester I",
        "groupNumber": 1,
        "professorEmail": "p@x.com",
        "students": [{"studentCode": "", "percentageGrade": "90"}],
    }
    errors = validate_class_enrollment(payload)
    assert any("programCode" in e for e in errors)
    assert any("groupNumber" in e for e in errors)
    assert any("studentCode" in e for e in errors)
    assert any("debe ser un número" in e for e in errors)

    empty = dict(json.loads(SCENARIO), students=[])
    assert validate_class_enrollment(empty) == ["La lista students está vacía"]

    valid = json.loads(SCENARIO.replace("150", "91"))
    assert validate_class_enrollment(valid) == []


def test_parse_failure_reports_line_number():
    with pytest.raises(ImportFileError) as excinfo:
        parse_jsonl(SCENARIO + "\n\n{broken")
    assert "línea 2" in str(excinfo.value)


@pytest.mark.parametrize(
    "filename,content",
    [("grades.txt", b"{}"), (None, b"{}"), ("grades.jsonl", b"  \n"), ("grades.jsonl", b"\xff\xfe\x00")],
)
def test_read_content_rejects_bad_files(filename, content):
    with pytest.raises(ImportFileError):
        read_content(filename, content)


def test_read_content_strips_bom():
    assert read_content("GRADES.JSONL", "\ufeff{}".encode("utf-8")) == "{}"


def test_issue_union_round_trips_by_type():
    result = ImportResult.model_validate({
        "errors": [
            {"type": "course_not_found", "course_code": "X", "message": "Curso no encontrado: X", "line": 3},
            {"type": "invalid_grade", "student_code": "S1", "grade": 150, "message": "Nota inválida"},
        ]
    })
    assert [type(issue).__name__ for issue in result.errors] == ["CourseNotFoundIssue", "InvalidGradeIssue"]
    assert result.errors[0].line == 3
