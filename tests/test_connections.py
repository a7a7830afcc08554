import datetime

from campusconnect.extensions import db
from campusconnect.models import ConnectionRequest, Profile


def counts(app, *user_ids):
    with app.app_context():
        return [Profile.query.filter_by(user_id=uid).first().connections_count for uid in user_ids]


def test_send_and_accept_increments_both_counters(app, client, make_user, headers_for):
    sender = make_user()
    receiver = make_user()

    response = client.post(f"/api/connections/request/{receiver}", json={"message": "hi"},
                           headers=headers_for(sender))
    assert response.status_code == 201
    request_id = response.get_json()["data"]["request_id"]
    assert response.get_json()["data"]["message"] == "hi"

    response = client.post(f"/api/connections/{request_id}/accept", headers=headers_for(receiver))
    assert response.status_code == 200
    assert response.get_json()["data"]["status"] == "accepted"

    assert counts(app, sender, receiver) == [1, 1]
    with app.app_context():
        assert ConnectionRequest.query.get(request_id).status == "accepted"


def test_second_accept_does_not_double_increment(app, client, make_user, headers_for):
    sender = make_user()
    receiver = make_user()
    request_id = client.post(f"/api/connections/request/{receiver}",
                             headers=headers_for(sender)).get_json()["data"]["request_id"]

    assert client.post(f"/api/connections/{request_id}/accept", headers=headers_for(receiver)).status_code == 200
    response = client.post(f"/api/connections/{request_id}/accept", headers=headers_for(receiver))

    assert response.status_code == 409
    assert counts(app, sender, receiver) == [1, 1]


def test_only_receiver_can_respond(client, make_user, headers_for):
    sender = make_user()
    receiver = make_user()
    request_id = client.post(f"/api/connections/request/{receiver}",
                             headers=headers_for(sender)).get_json()["data"]["request_id"]

    response = client.post(f"/api/connections/{request_id}/accept", headers=headers_for(sender))
    assert response.status_code == 403


def test_one_active_request_per_pair_in_either_direction(app, client, make_user, headers_for):
    a = make_user()
    b = make_user()

    assert client.post(f"/api/connections/request/{b}", headers=headers_for(a)).status_code == 201
    assert client.post(f"/api/connections/request/{b}", headers=headers_for(a)).status_code == 409
    assert client.post(f"/api/connections/request/{a}", headers=headers_for(b)).status_code == 409

    with app.app_context():
        assert ConnectionRequest.query.count() == 1


def test_cannot_request_self(client, make_user, headers_for):
    a = make_user()
    response = client.post(f"/api/connections/request/{a}", headers=headers_for(a))
    assert response.status_code == 400


def test_rejected_request_row_is_reused(app, client, make_user, headers_for):
    a = make_user()
    b = make_user()
    request_id = client.post(f"/api/connections/request/{b}",
                             headers=headers_for(a)).get_json()["data"]["request_id"]
    assert client.post(f"/api/connections/{request_id}/reject", headers=headers_for(b)).status_code == 200
    with app.app_context():
        ConnectionRequest.query.get(request_id).created_at = datetime.datetime(2020, 1, 1)
        db.session.commit()

    response = client.post(f"/api/connections/request/{a}", headers=headers_for(b))
    assert response.status_code == 201
    assert response.get_json()["data"]["request_id"] == request_id
    renewed_at = datetime.datetime.fromisoformat(response.get_json()["data"]["created_at"])
    assert renewed_at > datetime.datetime(2020, 1, 1)

    with app.app_context():
        row = ConnectionRequest.query.get(request_id)
        assert (row.sender_id, row.receiver_id, row.status) == (b, a, "pending")
        assert ConnectionRequest.query.count() == 1
    assert counts(app, a, b) == [0, 0]


def test_cancel_pending_request(app, client, make_user, headers_for):
    a = make_user()
    b = make_user()
    request_id = client.post(f"/api/connections/request/{b}",
                             headers=headers_for(a)).get_json()["data"]["request_id"]

    assert client.delete(f"/api/connections/{request_id}", headers=headers_for(b)).status_code == 403
    assert client.delete(f"/api/connections/{request_id}", headers=headers_for(a)).status_code == 200
    with app.app_context():
        assert ConnectionRequest.query.count() == 0


def test_status_lookup_and_remove(app, client, make_user, headers_for):
    a = make_user()
    b = make_user()
    assert client.get(f"/api/connections/status/{b}", headers=headers_for(a)).get_json()["data"]["status"] == "none"

    request_id = client.post(f"/api/connections/request/{b}",
                             headers=headers_for(a)).get_json()["data"]["request_id"]
    assert client.get(f"/api/connections/status/{b}", headers=headers_for(a)).get_json()["data"]["status"] == "sent"
    assert client.get(f"/api/connections/status/{a}", headers=headers_for(b)).get_json()["data"]["status"] == "received"

    client.post(f"/api/connections/{request_id}/accept", headers=headers_for(b))
    assert client.get(f"/api/connections/status/{b}", headers=headers_for(a)).get_json()["data"]["status"] == "connected"

    listed = client.get("/api/connections", headers=headers_for(a)).get_json()["data"]
    assert [c["id"] for c in listed["connections"]] == [b]

    assert client.delete(f"/api/connections/remove/{b}", headers=headers_for(a)).status_code == 200
    assert counts(app, a, b) == [0, 0]
    assert client.delete(f"/api/connections/remove/{b}", headers=headers_for(a)).status_code == 404


def test_pending_lists_sent_and_received(client, make_user, headers_for):
    a = make_user()
    b = make_user()
    c = make_user()
    client.post(f"/api/connections/request/{b}", headers=headers_for(a))
    client.post(f"/api/connections/request/{a}", headers=headers_for(c))

    data = client.get("/api/connections/pending", headers=headers_for(a)).get_json()["data"]
    assert [r["receiver_id"] for r in data["sent"]] == [b]
    assert [r["sender_id"] for r in data["received"]] == [c]


def test_requests_require_authentication(client, make_user):
    b = make_user()
    assert client.post(f"/api/connections/request/{b}").status_code == 401


def test_concurrent_double_submit_hits_unique_pair(app, client, make_user, headers_for, monkeypatch):
    a = make_user()
    b = make_user()
    assert client.post(f"/api/connections/request/{b}", headers=headers_for(a)).status_code == 201

    # the second submit races past the lookup before the first row is visible
    monkeypatch.setattr("campusconnect.routes.connections.find_pair_request", lambda *ids: None)
    response = client.post(f"/api/connections/request/{a}", headers=headers_for(b))

    assert response.status_code == 409
    assert response.get_json()["message"] == "Connection request already pending"
    with app.app_context():
        assert ConnectionRequest.query.count() == 1
