import datetime
import io

from campusconnect.models import CampusEvent, Post, Resource, StudyGroup


def future(days=7):
    return (datetime.datetime.utcnow() + datetime.timedelta(days=days)).isoformat(timespec="seconds")


# ----------------------------------------------------------------------------
# feed
# ----------------------------------------------------------------------------

def test_like_toggles_and_comments_count(app, client, make_user, headers_for):
    author = make_user()
    reader = make_user()
    post_id = client.post("/api/feed/posts", json={"content": "Study session at 5"},
                          headers=headers_for(author)).get_json()["data"]["id"]

    liked = client.post(f"/api/feed/posts/{post_id}/like", headers=headers_for(reader)).get_json()["data"]
    assert liked == {"liked": True, "likes_count": 1}
    unliked = client.post(f"/api/feed/posts/{post_id}/like", headers=headers_for(reader)).get_json()["data"]
    assert unliked == {"liked": False, "likes_count": 0}

    assert client.post(f"/api/feed/posts/{post_id}/comments", json={"content": "Count me in"},
                       headers=headers_for(reader)).status_code == 201
    comments = client.get(f"/api/feed/posts/{post_id}/comments", headers=headers_for(author)).get_json()["data"]
    assert [c["content"] for c in comments["comments"]] == ["Count me in"]

    with app.app_context():
        assert Post.query.get(post_id).comments_count == 1


def test_feed_audience_and_delete(client, make_user, headers_for):
    teacher = make_user("teacher")
    student = make_user("student")
    client.post("/api/feed/posts", json={"content": "Staff only", "audience": ["teacher"]},
                headers=headers_for(teacher))
    public_id = client.post("/api/feed/posts", json={"content": "Everyone"},
                            headers=headers_for(teacher)).get_json()["data"]["id"]

    posts = client.get("/api/feed", headers=headers_for(student)).get_json()["data"]["posts"]
    assert [p["content"] for p in posts] == ["Everyone"]

    assert client.delete(f"/api/feed/posts/{public_id}", headers=headers_for(student)).status_code == 403
    assert client.delete(f"/api/feed/posts/{public_id}", headers=headers_for(teacher)).status_code == 200


# ----------------------------------------------------------------------------
# events
# ----------------------------------------------------------------------------

def test_event_capacity_and_registration(app, client, make_user, headers_for):
    organizer = make_user("teacher")
    first = make_user()
    second = make_user()
    event_id = client.post("/api/events", json={
        "title": "Hackathon", "description": "24h build", "location": "Main hall",
        "event_date": future(), "max_participants": 1
    }, headers=headers_for(organizer)).get_json()["data"]["id"]

    assert client.post(f"/api/events/{event_id}/register", headers=headers_for(first)).status_code == 201
    assert client.post(f"/api/events/{event_id}/register", headers=headers_for(first)).status_code == 409
    full = client.post(f"/api/events/{event_id}/register", headers=headers_for(second))
    assert full.status_code == 409
    assert full.get_json()["message"] == "Event is full"

    assert client.delete(f"/api/events/{event_id}/register", headers=headers_for(first)).status_code == 200
    assert client.post(f"/api/events/{event_id}/register", headers=headers_for(second)).status_code == 201

    with app.app_context():
        assert CampusEvent.query.get(event_id).current_participants == 1


def test_students_cannot_create_events_and_past_events_hidden(app, client, make_user, headers_for):
    student = make_user()
    organizer = make_user("mentor")
    assert client.post("/api/events", json={"title": "x", "description": "y", "location": "z",
                                            "event_date": future()},
                       headers=headers_for(student)).status_code == 403

    client.post("/api/events", json={"title": "Old", "description": "d", "location": "l",
                                     "event_date": future(-3)}, headers=headers_for(organizer))
    client.post("/api/events", json={"title": "New", "description": "d", "location": "l",
                                     "event_date": future(3)}, headers=headers_for(organizer))

    events = client.get("/api/events", headers=headers_for(student)).get_json()["data"]["events"]
    assert [e["title"] for e in events] == ["New"]


# ----------------------------------------------------------------------------
# resources
# ----------------------------------------------------------------------------

def test_resource_upload_and_download_counter(app, client, make_user, headers_for):
    uploader = make_user()
    response = client.post("/api/resources", data={
        "file": (io.BytesIO(b"%PDF-1.4 notes"), "graphs.pdf"),
        "title": "Graph notes",
        "subject": "Algorithms",
        "resource_type": "notes",
        "tags": "graphs, bfs",
    }, content_type="multipart/form-data", headers=headers_for(uploader))
    assert response.status_code == 201
    data = response.get_json()["data"]
    assert data["tags"] == ["graphs", "bfs"]
    assert data["file_size"] == len(b"%PDF-1.4 notes")

    download = client.get(f"/api/resources/{data['id']}/download", headers=headers_for(uploader))
    assert download.status_code == 200
    assert download.data == b"%PDF-1.4 notes"
    download.close()

    with app.app_context():
        assert Resource.query.get(data["id"]).downloads_count == 1

    listed = client.get("/api/resources?subject=Algorithms", headers=headers_for(uploader)).get_json()["data"]
    assert len(listed["resources"]) == 1


def test_resource_rejects_disallowed_extension(client, make_user, headers_for):
    uploader = make_user()
    response = client.post("/api/resources", data={
        "file": (io.BytesIO(b"#!/bin/sh"), "run.sh"), "title": "x", "subject": "y",
    }, content_type="multipart/form-data", headers=headers_for(uploader))
    assert response.status_code == 400


# ----------------------------------------------------------------------------
# marketplace
# ----------------------------------------------------------------------------

def test_marketplace_listing_lifecycle(client, make_user, headers_for):
    seller = make_user()
    buyer = make_user()
    listing_id = client.post("/api/marketplace", json={
        "title": "Calculus textbook", "price": "250", "category": "books", "condition": "good"
    }, headers=headers_for(seller)).get_json()["data"]["id"]

    listings = client.get("/api/marketplace?category=books", headers=headers_for(buyer)).get_json()["data"]
    assert [(l["id"], l["price"]) for l in listings["listings"]] == [(listing_id, "250.00")]

    assert client.post(f"/api/marketplace/{listing_id}/sold", headers=headers_for(buyer)).status_code == 403
    assert client.post(f"/api/marketplace/{listing_id}/sold", headers=headers_for(seller)).status_code == 200
    assert client.get("/api/marketplace", headers=headers_for(buyer)).get_json()["data"]["listings"] == []

    assert client.post("/api/marketplace", json={"title": "x", "price": "-1"},
                       headers=headers_for(seller)).status_code == 400


# ----------------------------------------------------------------------------
# study groups
# ----------------------------------------------------------------------------

def test_study_group_capacity_and_leave(app, client, make_user, headers_for):
    creator = make_user()
    joiner = make_user()
    late = make_user()
    group_id = client.post("/api/study-groups", json={
        "name": "Graph theory", "subject": "Maths", "max_members": 2
    }, headers=headers_for(creator)).get_json()["data"]["id"]

    assert client.post(f"/api/study-groups/{group_id}/join", headers=headers_for(joiner)).status_code == 200
    assert client.post(f"/api/study-groups/{group_id}/join", headers=headers_for(late)).status_code == 409
    assert client.post(f"/api/study-groups/{group_id}/leave", headers=headers_for(creator)).status_code == 400
    assert client.post(f"/api/study-groups/{group_id}/leave", headers=headers_for(joiner)).status_code == 200
    assert client.post(f"/api/study-groups/{group_id}/join", headers=headers_for(late)).status_code == 200

    members = client.get(f"/api/study-groups/{group_id}/members", headers=headers_for(late)).get_json()["data"]
    assert sorted(m["id"] for m in members["members"]) == sorted([creator, late])
    with app.app_context():
        assert StudyGroup.query.get(group_id).current_members == 2


# ----------------------------------------------------------------------------
# projects
# ----------------------------------------------------------------------------

def test_join_open_project(client, make_user, headers_for):
    owner = make_user()
    collaborator = make_user()
    open_id = client.post("/api/projects", json={
        "title": "Campus map", "description": "Indoor navigation", "technologies": ["Flask"],
        "seeking_collaborators": True, "max_collaborators": 1
    }, headers=headers_for(owner)).get_json()["data"]["id"]
    closed_id = client.post("/api/projects", json={"title": "Thesis", "description": "Private"},
                            headers=headers_for(owner)).get_json()["data"]["id"]

    listed = client.get("/api/projects?technology=flask", headers=headers_for(collaborator)).get_json()["data"]
    assert [p["id"] for p in listed["projects"]] == [open_id]

    assert client.post(f"/api/projects/{closed_id}/join", headers=headers_for(collaborator)).status_code == 400
    assert client.post(f"/api/projects/{open_id}/join", headers=headers_for(collaborator)).status_code == 200
    assert client.post(f"/api/projects/{open_id}/join", headers=headers_for(make_user())).status_code == 409

    members = client.get(f"/api/projects/{open_id}/members", headers=headers_for(owner)).get_json()["data"]
    assert [(m["id"], m["project_role"]) for m in members["members"]] == [(owner, "owner"), (collaborator, "collaborator")]


# ----------------------------------------------------------------------------
# certificates, work assignments, notifications
# ----------------------------------------------------------------------------

def test_certificates(client, make_user, headers_for):
    user = make_user()
    response = client.post("/api/certificates", json={
        "title": "AWS Cloud Practitioner", "issuer": "AWS", "issue_date": "2026-01-10", "expiry_date": "2025-01-10"
    }, headers=headers_for(user))
    assert response.status_code == 400

    certificate_id = client.post("/api/certificates", json={
        "title": "AWS Cloud Practitioner", "issuer": "AWS", "issue_date": "2026-01-10"
    }, headers=headers_for(user)).get_json()["data"]["id"]
    listed = client.get("/api/certificates", headers=headers_for(user)).get_json()["data"]["certificates"]
    assert [c["id"] for c in listed] == [certificate_id]

    assert client.delete(f"/api/certificates/{certificate_id}", headers=headers_for(make_user())).status_code == 404
    assert client.delete(f"/api/certificates/{certificate_id}", headers=headers_for(user)).status_code == 200


def test_work_assignment_flow_notifies_both_sides(client, make_user, headers_for):
    mentor = make_user("mentor")
    student = make_user("student")

    assert client.post("/api/assignments", json={"assigned_to": student, "title": "Read ch. 3"},
                       headers=headers_for(student)).status_code == 403
    assignment_id = client.post("/api/assignments", json={
        "assigned_to": student, "title": "Read ch. 3", "due_date": "2026-11-01", "priority": "high"
    }, headers=headers_for(mentor)).get_json()["data"]["id"]

    inbox = client.get("/api/notifications?unread=1", headers=headers_for(student)).get_json()["data"]
    assert [n["type"] for n in inbox["notifications"]] == ["work_assigned"]

    assert client.patch(f"/api/assignments/{assignment_id}/status", json={"status": "completed"},
                        headers=headers_for(mentor)).status_code == 403
    response = client.patch(f"/api/assignments/{assignment_id}/status", json={"status": "completed"},
                            headers=headers_for(student))
    assert response.get_json()["data"]["status"] == "completed"

    mentor_inbox = client.get("/api/notifications", headers=headers_for(mentor)).get_json()["data"]
    assert mentor_inbox["unread_count"] == 1
    notification_id = mentor_inbox["notifications"][0]["id"]
    assert client.post(f"/api/notifications/{notification_id}/read", headers=headers_for(mentor)).status_code == 200
    assert client.get("/api/notifications", headers=headers_for(mentor)).get_json()["data"]["unread_count"] == 0
