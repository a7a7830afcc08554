from campusconnect.extensions import db, mail
from campusconnect.models import User


def register(client, **overrides):
    payload = {
        "email": "priya@college.test",
        "password": "secret123",
        "full_name": "Priya Nair",
        "role": "student",
        "department": "CSE",
        "year_of_study": 2,
    }
    payload.update(overrides)
    return client.post("/api/auth/register", json=payload)


def test_register_creates_user_and_profile(app, client):
    with mail.record_messages() as outbox:
        response = register(client)

    assert response.status_code == 201
    user = response.get_json()["data"]["user"]
    assert user["email"] == "priya@college.test"
    assert user["full_name"] == "Priya Nair"
    assert len(outbox) == 1
    assert outbox[0].recipients == ["priya@college.test"]

    with app.app_context():
        stored = User.query.filter_by(email="priya@college.test").one()
        assert stored.profile.year_of_study == 2
        assert stored.profile.department == "CSE"


def test_register_validation(client):
    assert register(client, password="123").status_code == 400
    assert register(client, email="not-an-email").status_code == 400
    assert register(client, role="authority").status_code == 400
    assert register(client, institution_code="NOPE").status_code == 404


def test_duplicate_email_conflicts(client):
    register(client)
    response = register(client)
    assert response.status_code == 409
    assert "already registered" in response.get_json()["message"]


def test_register_with_institution_code(client, institution):
    response = register(client, institution_code="tc01")
    assert response.get_json()["data"]["user"]["institution_id"] == institution


def test_login_returns_tokens(client):
    register(client)
    response = client.post("/api/auth/login", json={"email": "priya@college.test", "password": "secret123"})

    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["access_token"] and data["refresh_token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert me.get_json()["data"]["user"]["email"] == "priya@college.test"


def test_login_invalid_credentials(client):
    register(client)
    response = client.post("/api/auth/login", json={"email": "priya@college.test", "password": "wrong-pass"})
    assert response.status_code == 401


def test_refresh_token_issues_new_pair(app, client):
    register(client)
    tokens = client.post("/api/auth/login", json={
        "email": "priya@college.test", "password": "secret123"
    }).get_json()["data"]

    fresh = app.test_client()
    response = fresh.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 200
    assert response.get_json()["data"]["access_token"]

    # an access token is not accepted as a refresh token
    assert fresh.post("/api/auth/refresh", json={"refresh_token": tokens["access_token"]}).status_code == 401


def test_invalid_bearer_token_is_rejected(client):
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401


def test_deactivated_user_is_locked_out(app, client, make_user, headers_for):
    user = make_user()
    headers = headers_for(user)
    with app.app_context():
        User.query.get(user).active = False
        db.session.commit()

    assert client.get("/api/auth/me", headers=headers).status_code == 403


def test_profile_update_and_public_view(client, make_user, headers_for):
    user = make_user()
    viewer = make_user()

    response = client.patch("/api/profile", json={"bio": "Loves graphs", "skills": ["python", "sql"],
                                                  "year_of_study": 3}, headers=headers_for(user))
    assert response.status_code == 200

    data = client.get(f"/api/profile/{user}", headers=headers_for(viewer)).get_json()["data"]
    assert data["bio"] == "Loves graphs"
    assert data["connection"]["status"] == "none"


def test_join_institution_by_code(client, make_user, headers_for, institution):
    user = make_user()
    response = client.post("/api/profile/institution", json={"code": "TC01"}, headers=headers_for(user))
    assert response.status_code == 200
    assert response.get_json()["data"]["institution_id"] == institution
