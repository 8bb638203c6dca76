from fastapi.testclient import TestClient

from conftest import auth, unique


def test_check_code_is_case_insensitive(client: TestClient, make_course, admin_token: str):
    course = make_course()
    res = client.get("/courses/check-code", params={"code": course["code_es"].lower()}, headers=auth(admin_token))
    assert res.json() == {"exists": True}

    own = client.get(
        "/courses/check-code",
        params={"code": course["code_es"], "exclude_id": course["id"]},
        headers=auth(admin_token),
    )
    assert own.json() == {"exists": False}

    dup = client.post("/courses/", json={
        "code_es": f" {course['code_es'].lower()} ",
        "name_es": "Duplicado",
        "description_es": "Duplicado",
        "credits": 2,
        "language": "es",
    }, headers=auth(admin_token))
    assert dup.status_code == 409


def test_course_requires_positive_credits(client: TestClient, admin_token: str):
    res = client.post("/courses/", json={
        "code_es": unique("CUR"),
        "name_es": "Sin créditos",
        "description_es": "Desc",
        "credits": 0,
        "language": "es",
    }, headers=auth(admin_token))
    assert res.status_code == 400


def test_program_links_recalculate_total_credits(client: TestClient, make_program, make_course, admin_token: str):
    program = make_program()
    first = make_course(credits=3)
    second = make_course(credits=4)

    for course in (first, second):
        res = client.post(f"/courses/{course['id']}/programs/{program['id']}", headers=auth(admin_token))
        assert res.status_code == 200, res.text

    again = client.post(f"/courses/{first['id']}/programs/{program['id']}", headers=auth(admin_token))
    assert again.status_code == 409

    res = client.get(f"/programs/{program['id']}", headers=auth(admin_token))
    assert res.json()["total_credits"] == 7

    filtered = client.get("/courses/", params={"program_id": program["id"]}, headers=auth(admin_token))
    assert {c["id"] for c in filtered.json()} == {first["id"], second["id"]}

    client.put(f"/courses/{second['id']}", json={"credits": 5}, headers=auth(admin_token))
    res = client.get(f"/programs/{program['id']}", headers=auth(admin_token))
    assert res.json()["total_credits"] == 8

    client.delete(f"/courses/{first['id']}/programs/{program['id']}", headers=auth(admin_token))
    res = client.get(f"/programs/{program['id']}", headers=auth(admin_token))
    assert res.json()["total_credits"] == 5


def test_delete_course_blocked_by_classes(client: TestClient, make_course, make_bimester, professor, admin_token: str):
    course = make_course()
    bimester = make_bimester()
    prof, _ = professor
    created = client.post("/classes/", json={
        "course_id": course["id"],
        "bimester_id": bimester["id"],
        "group_number": "1",
        "professor_id": prof.id,
    }, headers=auth(admin_token))
    assert created.status_code == 200, created.text

    res = client.delete(f"/courses/{course['id']}", headers=auth(admin_token))
    assert res.status_code == 409

    client.delete(f"/classes/{created.json()['id']}", headers=auth(admin_token))
    res = client.delete(f"/courses/{course['id']}", headers=auth(admin_token))
    assert res.status_code == 200
    assert client.get(f"/courses/{course['id']}", headers=auth(admin_token)).status_code == 404
