from fastapi.testclient import TestClient

from academic_admin.models import RoleEnum

from conftest import auth, create_user, login, unique


def test_get_profile_returns_authenticated_user(client: TestClient, admin_token: str):
    res = client.get("/users/me", headers=auth(admin_token))
    assert res.status_code == 200
    data = res.json()
    assert data["email"] == "admin@test.com"
    assert data["full_name"] == "Admin Test"
    assert data["role"] == "admin"


def test_admin_can_create_professor_with_temporary_password(client: TestClient, admin_token: str):
    payload = {
        "email": "Nuevo.Profesor@academy.test",
        "first_name": "Profesor",
        "last_name": "Demo",
        "role": "professor",
        "password": "TempPass123!",
    }
    res = client.post("/users/", json=payload, headers=auth(admin_token))
    assert res.status_code == 201, res.text
    assert res.json()["email"] == "nuevo.profesor@academy.test"

    token_res = client.post(
        "/auth/token",
        data={"username": "nuevo.profesor@academy.test", "password": "TempPass123!"},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    assert token_res.status_code == 200
    assert token_res.json()["must_change_password"] is True

    again = client.post("/users/", json=payload, headers=auth(admin_token))
    assert again.status_code == 400

    professors = client.get("/users/professors", headers=auth(admin_token))
    assert any(p["email"] == "nuevo.profesor@academy.test" for p in professors.json())


def test_only_superadmin_creates_superadmins(client: TestClient, admin_token: str):
    res = client.post("/users/", json={
        "email": "root@academy.test",
        "first_name": "Root",
        "last_name": "User",
        "role": "superadmin",
        "password": "RootPass123!",
    }, headers=auth(admin_token))
    assert res.status_code == 403


def test_check_email_and_student_code(client: TestClient, admin_token: str):
    code = unique("STU")
    student = create_user(RoleEnum.student, student_code=code)

    res = client.get("/users/check-email", params={"email": student.email.upper()}, headers=auth(admin_token))
    assert res.json() == {"exists": True}
    res = client.get("/users/check-email", params={"email": "nobody@test.com"}, headers=auth(admin_token))
    assert res.json() == {"exists": False}

    res = client.get("/users/check-student-code", params={"student_code": f"  {code.lower()} "}, headers=auth(admin_token))
    assert res.json() == {"exists": True}


def test_professor_cannot_list_users(client: TestClient):
    prof = create_user(RoleEnum.professor)
    token = login(client, prof.email)
    res = client.get("/users/", headers=auth(token))
    assert res.status_code == 403
