import datetime

from campusconnect.models import Profile
from campusconnect.routes import profile as profile_routes


def set_today(monkeypatch, day):
    monkeypatch.setattr(profile_routes, "today", lambda: day)


def check_in(client, headers):
    response = client.post("/api/profile/check-in", headers=headers)
    assert response.status_code == 200
    return response.get_json()["data"]


def test_first_check_in_starts_streak(client, make_user, headers_for, monkeypatch):
    set_today(monkeypatch, datetime.date(2026, 10, 19))
    user = make_user()

    data = check_in(client, headers_for(user))
    assert data == {"daily_streak": 1, "checked_in_now": True}


def test_check_in_is_idempotent_within_a_day(app, client, make_user, headers_for, monkeypatch):
    set_today(monkeypatch, datetime.date(2026, 10, 19))
    user = make_user()
    headers = headers_for(user)

    check_in(client, headers)
    data = check_in(client, headers)
    assert data == {"daily_streak": 1, "checked_in_now": False}

    with app.app_context():
        profile = Profile.query.filter_by(user_id=user).first()
        assert profile.last_activity_date == datetime.date(2026, 10, 19)


def test_consecutive_days_extend_streak(client, make_user, headers_for, monkeypatch):
    user = make_user()
    headers = headers_for(user)

    for offset in range(3):
        set_today(monkeypatch, datetime.date(2026, 10, 17) + datetime.timedelta(days=offset))
        data = check_in(client, headers)

    assert data["daily_streak"] == 3


def test_gap_resets_streak(client, make_user, headers_for, monkeypatch):
    user = make_user(daily_streak=7, last_activity_date=datetime.date(2026, 10, 15))

    set_today(monkeypatch, datetime.date(2026, 10, 19))
    data = check_in(client, headers_for(user))
    assert data == {"daily_streak": 1, "checked_in_now": True}


def test_leaderboard_ranks_by_streak(client, make_user, headers_for):
    leader = make_user(full_name="Asha", daily_streak=9)
    middle = make_user(full_name="Bala", daily_streak=4)
    make_user(full_name="Chen", daily_streak=1)

    data = client.get("/api/profile/leaderboard?limit=2", headers=headers_for(middle)).get_json()["data"]
    assert [row["user_id"] for row in data["leaderboard"]] == [leader, middle]
    assert data["my_rank"] == 2
    assert data["my_streak"] == 4
