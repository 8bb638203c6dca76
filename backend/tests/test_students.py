import json

from fastapi.testclient import TestClient

from conftest import auth, unique


def _student_line(program_code: str, **overrides) -> str:
    suffix = unique("s").lower()
    payload = {
        "firstName": "Lucía",
        "lastName": "Pérez",
        "email": f"Lucia.{suffix}@Test.com",
        "studentCode": f"01l-{suffix}",
        "programCode": program_code,
        "isActive": True,
        "documentType": "passport",
        "dateOfBirth": 946684800000,
    }
    payload.update(overrides)
    return json.dumps(payload)


def _import(client, token, content: str, filename="students.jsonl"):
    return client.post(
        "/students/import",
        files={"file": (filename, content.encode("utf-8"), "application/jsonl")},
        headers=auth(token),
    )


def test_student_import_reports_each_line(client: TestClient, make_program, admin_token: str):
    program = make_program()
    good = _student_line(program["code_es"])
    duplicate_email = _student_line(program["code_es"], email=json.loads(good)["email"].upper())
    content = "\n".join([
        good,
        duplicate_email,
        _student_line("UNKNOWN"),
        _student_line(program["code_es"], email="not-an-email"),
    ])
    res = _import(client, admin_token, content)
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["success_count"] == 1
    assert body["error_count"] == 3
    statuses = [(r["line"], r["status"]) for r in body["results"]]
    assert statuses == [(1, "success"), (2, "error"), (3, "error"), (4, "error")]
    assert body["results"][0]["student_code"] == json.loads(good)["studentCode"].upper()
    assert "Programa no encontrado" in body["results"][2]["message"]

    listing = client.get("/students/", params={"program_id": program["id"]}, headers=auth(admin_token))
    assert [s["student_code"] for s in listing.json()] == [body["results"][0]["student_code"]]
    assert listing.json()[0]["program_name"] == program["name_es"]


def test_student_import_rejects_wrong_extension(client: TestClient, admin_token: str):
    res = _import(client, admin_token, "{}", filename="students.json")
    assert res.status_code == 400


def test_student_import_reports_out_of_range_birth_date(client: TestClient, make_program, admin_token: str):
    program = make_program()
    content = "\n".join([
        _student_line(program["code_es"]),
        _student_line(program["code_es"], dateOfBirth=1e20),
    ])
    res = _import(client, admin_token, content)
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["success_count"] == 1
    assert body["error_count"] == 1
    assert body["results"][1]["status"] == "error"
    assert "Fecha de nacimiento inválida" in body["results"][1]["message"]


def _graded_student(client, admin_token, catalog_program, course, bimester, professor, grade):
    line = _student_line(catalog_program["code_es"])
    result = _import(client, admin_token, line).json()["results"][0]
    record = {
        "programCode": catalog_program["code_es"],
        "courseCode": course["code_es"],
        "bimesterName": bimester["name"],
        "groupNumber": "1",
        "professorEmail": professor.email,
        "students": [{"studentCode": result["student_code"], "percentageGrade": grade}],
    }
    res = client.post(
        "/class-enrollments/import",
        files={"file": ("e.jsonl", json.dumps(record).encode("utf-8"), "application/jsonl")},
        headers=auth(admin_token),
    )
    assert res.status_code == 200, res.text
    assert res.json()["enrollments_created"] == 1
    return result


def test_student_grades_are_localized_with_stats(client: TestClient, make_program, make_course, make_bimester, professor, admin_token: str):
    program = make_program()
    code = unique("BIL")
    course = make_course(
        code_es=code,
        code_en=code,
        name_es="Liderazgo",
        name_en="Leadership",
        description_en="Desc",
        language="both",
        credits=4,
    )
    bimester = make_bimester()
    prof, _ = professor
    student = _graded_student(client, admin_token, program, course, bimester, prof, 91)

    res = client.get(f"/students/{student['user_id']}/grades", params={"locale": "en"}, headers=auth(admin_token))
    assert res.status_code == 200
    body = res.json()
    row = body["grades"][0]
    assert row["course_name"] == "EN: Leadership\nES: Liderazgo"
    assert row["letter_grade"] == "A-"
    assert body["stats"]["enrolled_credits"] == 4
    assert body["stats"]["approved_credits"] == 4
    assert body["stats"]["approved_percentage"] == 100
    assert body["stats"]["average"] == 91.0
    assert body["stats"]["gpa"] == 3.7


def test_grade_export_formats(client: TestClient, make_program, make_course, make_bimester, professor, admin_token: str):
    program = make_program()
    course = make_course()
    bimester = make_bimester()
    prof, _ = professor
    student = _graded_student(client, admin_token, program, course, bimester, prof, 75)

    pdf = client.get(f"/students/{student['user_id']}/grades/export", params={"format": "pdf"}, headers=auth(admin_token))
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.content.startswith(b"%PDF")

    xlsx = client.get(f"/students/{student['user_id']}/grades/export", params={"format": "xlsx"}, headers=auth(admin_token))
    assert xlsx.status_code == 200
    assert xlsx.content[:2] == b"PK"

    bad = client.get(f"/students/{student['user_id']}/grades/export", params={"format": "doc"}, headers=auth(admin_token))
    assert bad.status_code == 422


def test_students_only_see_their_own_grades(client: TestClient, make_program, admin_token: str):
    program = make_program()
    first = _import(client, admin_token, _student_line(program["code_es"])).json()["results"][0]
    second = _import(client, admin_token, _student_line(program["code_es"])).json()["results"][0]
    # las cuentas importadas tienen contraseña aleatoria; se registra una propia para iniciar sesión
    signup = client.post("/auth/signup", json={
        "email": f"self-{unique('x').lower()}@test.com",
        "first_name": "Self",
        "last_name": "Student",
        "password": "pass1234",
    })
    token = signup.json()["access_token"]

    res = client.get(f"/students/{first['user_id']}/grades", headers=auth(token))
    assert res.status_code == 403
    res = client.get(f"/students/{second['user_id']}", headers=auth(token))
    assert res.status_code == 403

    admin_view = client.get(f"/students/{first['user_id']}/grades", headers=auth(admin_token))
    assert admin_view.status_code == 200
    assert admin_view.json()["grades"] == []
    assert admin_view.json()["stats"]["gpa"] is None
