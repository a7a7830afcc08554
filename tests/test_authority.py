import io

from openpyxl import load_workbook

from campusconnect.models import AuthorityAuditLog, User


def test_approval_request_flow(app, client, make_user, headers_for):
    teacher = make_user("teacher")
    authority = make_user("authority")

    response = client.post("/api/approvals", json={
        "request_type": "leave", "title": "Conference leave", "priority": "high"
    }, headers=headers_for(teacher))
    assert response.status_code == 201
    approval_id = response.get_json()["data"]["id"]

    assert client.post(f"/api/approvals/{approval_id}/decision", json={"status": "approved"},
                       headers=headers_for(teacher)).status_code == 403

    response = client.post(f"/api/approvals/{approval_id}/decision", json={"status": "approved"},
                           headers=headers_for(authority))
    assert response.status_code == 200
    assert client.post(f"/api/approvals/{approval_id}/decision", json={"status": "rejected"},
                       headers=headers_for(authority)).status_code == 409

    own = client.get("/api/approvals", headers=headers_for(teacher)).get_json()["data"]["requests"]
    assert [(r["id"], r["status"]) for r in own] == [(approval_id, "approved")]

    with app.app_context():
        entry = AuthorityAuditLog.query.filter_by(action_type="approval_approved").one()
        assert entry.target_user_id == teacher


def test_announcements_respect_audience(client, make_user, headers_for):
    authority = make_user("authority")
    student = make_user("student")
    teacher = make_user("teacher")

    client.post("/api/announcements", json={"title": "Exams", "content": "Start Monday", "audience": ["student"]},
                headers=headers_for(authority))
    client.post("/api/announcements", json={"title": "Holiday", "content": "Friday off"},
                headers=headers_for(authority))

    student_view = client.get("/api/announcements", headers=headers_for(student)).get_json()["data"]
    teacher_view = client.get("/api/announcements", headers=headers_for(teacher)).get_json()["data"]
    assert sorted(a["title"] for a in student_view["announcements"]) == ["Exams", "Holiday"]
    assert [a["title"] for a in teacher_view["announcements"]] == ["Holiday"]

    assert client.post("/api/announcements", json={"title": "x", "content": "y"},
                       headers=headers_for(student)).status_code == 403


def test_user_management_is_audited(app, client, make_user, headers_for):
    authority = make_user("authority")
    student = make_user("student", year_of_study=1)
    headers = headers_for(authority)

    listed = client.get("/api/authority/users?role=student", headers=headers).get_json()["data"]
    assert [u["id"] for u in listed["users"]] == [student]

    response = client.patch(f"/api/authority/users/{student}", json={"role": "mentor", "year_of_study": 4},
                            headers=headers)
    assert response.status_code == 200

    assert client.post(f"/api/authority/users/{student}/deactivate", headers=headers).status_code == 200
    assert client.post(f"/api/authority/users/{authority}/deactivate", headers=headers).status_code == 400

    with app.app_context():
        user = User.query.get(student)
        assert (user.role, user.profile.year_of_study, user.active) == ("mentor", 4, False)
        actions = [e.action_type for e in AuthorityAuditLog.query.order_by(AuthorityAuditLog.id).all()]
        assert actions == ["update_user", "deactivate_user"]

    log = client.get("/api/authority/audit-log", headers=headers).get_json()["data"]["entries"]
    assert log[0]["action_type"] == "deactivate_user"


def test_non_authority_cannot_manage_users(client, make_user, headers_for):
    teacher = make_user("teacher")
    student = make_user("student")
    assert client.get("/api/authority/users", headers=headers_for(teacher)).status_code == 403
    assert client.patch(f"/api/authority/users/{student}", json={"role": "authority"},
                        headers=headers_for(teacher)).status_code == 403


def test_user_export_workbook(app, client, make_user, headers_for):
    authority = make_user("authority", full_name="Admin")
    make_user("student", full_name="Kiran", year_of_study=2, section="A")
    make_user("student", full_name="Meera", year_of_study=3)

    response = client.get("/api/authority/users/export?role=student&year=2", headers=headers_for(authority))
    assert response.status_code == 200
    assert response.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

    sheet = load_workbook(io.BytesIO(response.data)).active
    rows = list(sheet.iter_rows(values_only=True))
    assert rows[0][:3] == ("Full Name", "Email", "Phone Number")
    assert [r[0] for r in rows[1:]] == ["Kiran"]

    with app.app_context():
        entry = AuthorityAuditLog.query.filter_by(action_type="export").one()
        assert entry.details["count"] == 1


def test_create_institution_joins_creator(client, make_user, headers_for):
    authority = make_user("authority")
    response = client.post("/api/authority/institutions", json={"name": "North Campus", "code": "nc1"},
                           headers=headers_for(authority))
    assert response.status_code == 201
    assert response.get_json()["data"]["code"] == "NC1"

    me = client.get("/api/profile", headers=headers_for(authority)).get_json()["data"]
    assert me["institution_id"] == response.get_json()["data"]["id"]


def test_dashboard_dispatches_by_role(client, make_user, headers_for):
    for role, key in (("student", "attendance"), ("mentor", "active_mentees"),
                      ("teacher", "weekly_classes"), ("authority", "users_by_role")):
        user = make_user(role)
        data = client.get("/api/dashboard", headers=headers_for(user)).get_json()["data"]
        assert data["role"] == role
        assert key in data
        assert "daily_streak" in data


def test_authority_views_stay_inside_their_institution(client, make_user, headers_for, make_institution):
    north = make_institution("North College", "NTH1")
    south = make_institution("South College", "STH1")
    north_authority = make_user("authority", institution_id=north)
    south_authority = make_user("authority", institution_id=south)
    north_teacher = make_user("teacher", institution_id=north)

    approval_id = client.post("/api/approvals", json={"request_type": "leave", "title": "Conference leave"},
                              headers=headers_for(north_teacher)).get_json()["data"]["id"]

    south_view = client.get("/api/approvals", headers=headers_for(south_authority)).get_json()["data"]
    assert south_view["requests"] == []
    assert client.get("/api/dashboard", headers=headers_for(south_authority)).get_json()["data"]["pending_approvals"] == 0
    assert client.post(f"/api/approvals/{approval_id}/decision", json={"status": "rejected"},
                       headers=headers_for(south_authority)).status_code == 404

    north_dashboard = client.get("/api/dashboard", headers=headers_for(north_authority)).get_json()["data"]
    assert north_dashboard["pending_approvals"] == 1
    assert client.post(f"/api/approvals/{approval_id}/decision", json={"status": "approved"},
                       headers=headers_for(north_authority)).status_code == 200

    north_log = client.get("/api/authority/audit-log", headers=headers_for(north_authority)).get_json()["data"]
    assert [e["action_type"] for e in north_log["entries"]] == ["approval_approved"]
    south_log = client.get("/api/authority/audit-log", headers=headers_for(south_authority)).get_json()["data"]
    assert south_log["entries"] == []
    south_dashboard = client.get("/api/dashboard", headers=headers_for(south_authority)).get_json()["data"]
    assert south_dashboard["recent_actions"] == []
