from fastapi.testclient import TestClient

from academic_admin.models import RoleEnum

from conftest import auth, create_user, unique


def test_create_program_requires_fields_for_its_language(client: TestClient, admin_token: str):
    res = client.post("/programs/", json={
        "code_es": unique("PRG"),
        "name_es": "Sólo español",
        "description_es": "Descripción",
        "type": "master",
        "language": "both",
        "duration_bimesters": 8,
    }, headers=auth(admin_token))
    assert res.status_code == 400
    assert "code_en" in res.json()["detail"]
    assert "name_en" in res.json()["detail"]


def test_bilingual_program_display_follows_locale(client: TestClient, make_program, admin_token: str):
    code = unique("BIL")
    program = make_program(
        code_es=code,
        code_en=code,
        name_es="Maestría en Liderazgo",
        name_en="Master in Leadership",
        description_en="Leadership",
        language="both",
    )
    assert program["display_name"] == "ES: Maestría en Liderazgo\nEN: Master in Leadership"

    res = client.get(f"/programs/{program['id']}", params={"locale": "en"}, headers=auth(admin_token))
    assert res.status_code == 200
    assert res.json()["display_name"] == "EN: Master in Leadership\nES: Maestría en Liderazgo"

    listing = client.get("/programs/", params={"q": "master in leadership"}, headers=auth(admin_token))
    assert any(item["id"] == program["id"] for item in listing.json())


def test_english_program_falls_back_to_spanish_name(client: TestClient, make_program):
    code = unique("ENG")
    program = make_program(code_es=None, code_en=code, name_es="Nombre", name_en="Name", description_en="Desc", language="en")
    assert program["display_name"] == "Name"
    assert program["display_code"] == code


def test_duplicate_program_code_conflicts(client: TestClient, make_program, admin_token: str):
    program = make_program()
    res = client.post("/programs/", json={
        "code_es": program["code_es"],
        "name_es": "Otro",
        "description_es": "Otro",
        "type": "bachelor",
        "language": "es",
        "duration_bimesters": 4,
    }, headers=auth(admin_token))
    assert res.status_code == 409


def test_update_program_revalidates_language(client: TestClient, make_program, admin_token: str):
    program = make_program()
    res = client.put(f"/programs/{program['id']}", json={"language": "en"}, headers=auth(admin_token))
    assert res.status_code == 400

    ok = client.put(f"/programs/{program['id']}", json={"name_es": "  Renombrado  "}, headers=auth(admin_token))
    assert ok.status_code == 200
    assert ok.json()["name_es"] == "Renombrado"


def test_delete_program_blocked_by_students_and_courses(client: TestClient, make_program, make_course, admin_token: str):
    program = make_program()
    create_user(RoleEnum.student, student_code=unique("STU"), program_id=program["id"])
    res = client.delete(f"/programs/{program['id']}", headers=auth(admin_token))
    assert res.status_code == 409

    other = make_program()
    course = make_course()
    link = client.post(f"/courses/{course['id']}/programs/{other['id']}", headers=auth(admin_token))
    assert link.status_code == 200, link.text
    res = client.delete(f"/programs/{other['id']}", headers=auth(admin_token))
    assert res.status_code == 409

    client.delete(f"/courses/{course['id']}/programs/{other['id']}", headers=auth(admin_token))
    res = client.delete(f"/programs/{other['id']}", headers=auth(admin_token))
    assert res.status_code == 200
    assert res.json() == {"ok": True}


def test_program_categories(client: TestClient, make_program, admin_token: str):
    name = unique("Categoría")
    res = client.post("/programs/categories", json={"name": name}, headers=auth(admin_token))
    assert res.status_code == 200
    category_id = res.json()["id"]

    dup = client.post("/programs/categories", json={"name": name}, headers=auth(admin_token))
    assert dup.status_code == 409

    make_program(category_id=category_id)
    blocked = client.delete(f"/programs/categories/{category_id}", headers=auth(admin_token))
    assert blocked.status_code == 409

    listing = client.get("/programs/categories", headers=auth(admin_token))
    assert any(c["name"] == name for c in listing.json())
