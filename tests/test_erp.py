import datetime
import io

from openpyxl import load_workbook

from campusconnect.models import Attendance, Notification, Schedule
from campusconnect.spreadsheets import parse_day, parse_schedule_row, parse_time

HEADER = ["Title", "Subject", "Teacher Name", "Day", "Start Time", "End Time", "Room", "Year", "Section"]


def create_schedule(client, headers, **overrides):
    payload = {
        "title": "DS Lecture",
        "subject": "Data Structures",
        "teacher_name": "Dr. Rao",
        "day_of_week": "Monday",
        "start_time": "09:00",
        "end_time": "10:00",
        "target_year": 2,
        "target_section": "A",
    }
    payload.update(overrides)
    return client.post("/api/schedules", json=payload, headers=headers)


# ----------------------------------------------------------------------------
# cell parsing
# ----------------------------------------------------------------------------

def test_parse_time_formats():
    assert parse_time("9:05") == "09:05"
    assert parse_time("1430") == "14:30"
    assert parse_time(0.375) == "09:00"
    assert parse_time(datetime.time(16, 45)) == "16:45"
    assert parse_time("25:00") is None
    assert parse_time("noon") is None


def test_parse_day_formats():
    assert parse_day("Sunday") == 0
    assert parse_day("wed") == 3
    assert parse_day(6) == 6
    assert parse_day("7") is None
    assert parse_day("someday") is None


def test_row_errors_are_collected():
    fields, errors = parse_schedule_row({"Title": "", "Subject": "Maths", "Day": "Funday", "Start Time": "11:00",
                                         "End Time": "10:00"})
    assert errors == ["Title required", "Invalid day", "End time must be after start time"]


def test_blank_times_use_defaults():
    fields, errors = parse_schedule_row({"title": "Lab", "subject": "Physics", "day": "tue"})
    assert errors == []
    assert (fields["start_time"], fields["end_time"], fields["day_of_week"]) == ("09:00", "10:00", 2)


def test_unreadable_year_is_a_row_error():
    for year in ("inf", "-inf", "nan", "second"):
        fields, errors = parse_schedule_row({"Title": "Lab", "Subject": "Physics", "Day": "Mon", "Year": year})
        assert errors == ["Invalid year"]
        assert fields["target_year"] is None


# ----------------------------------------------------------------------------
# schedules
# ----------------------------------------------------------------------------

def test_teacher_creates_and_students_cannot(client, make_user, headers_for):
    teacher = make_user("teacher")
    student = make_user("student")

    response = create_schedule(client, headers_for(teacher))
    assert response.status_code == 201
    assert response.get_json()["data"]["day_of_week"] == 1

    assert create_schedule(client, headers_for(student)).status_code == 403


def test_schedule_validation(client, make_user, headers_for):
    teacher = make_user("teacher")
    headers = headers_for(teacher)

    assert create_schedule(client, headers, day_of_week="Funday").get_json()["message"] == "Invalid day"
    response = create_schedule(client, headers, start_time="11:00", end_time="10:00")
    assert response.status_code == 400
    assert response.get_json()["message"] == "End time must be after start time"


def test_list_filters_and_my_schedule(client, make_user, headers_for):
    teacher = make_user("teacher", full_name="Dr. Rao")
    headers = headers_for(teacher)
    create_schedule(client, headers)
    create_schedule(client, headers, title="OS", subject="Operating Systems", day_of_week="Tuesday",
                    target_section="B", teacher_name="Prof. Iyer")

    data = client.get("/api/schedules?section=B", headers=headers).get_json()["data"]
    assert [s["title"] for s in data["schedules"]] == ["OS"]

    student = make_user("student", year_of_study=2, section="A")
    mine = client.get("/api/schedules/mine", headers=headers_for(student)).get_json()["data"]["schedules"]
    assert [s["title"] for s in mine] == ["DS Lecture"]

    teaching = client.get("/api/schedules/mine", headers=headers).get_json()["data"]["schedules"]
    assert [s["title"] for s in teaching] == ["DS Lecture"]


def test_copy_to_another_section(app, client, make_user, headers_for):
    teacher = make_user("teacher")
    headers = headers_for(teacher)
    schedule_id = create_schedule(client, headers).get_json()["data"]["id"]

    response = client.post("/api/schedules/copy", json={
        "schedule_ids": [schedule_id], "target_year": 3, "target_section": "C"
    }, headers=headers)
    assert response.status_code == 201

    with app.app_context():
        copy = Schedule.query.filter_by(target_section="C").one()
        assert (copy.title, copy.target_year, copy.start_time) == ("DS Lecture", 3, "09:00")


def test_only_creator_or_authority_edits(client, make_user, headers_for):
    owner = make_user("teacher")
    other = make_user("teacher")
    authority = make_user("authority")
    schedule_id = create_schedule(client, headers_for(owner)).get_json()["data"]["id"]

    assert client.patch(f"/api/schedules/{schedule_id}", json={"room_location": "B12"},
                        headers=headers_for(other)).status_code == 403
    response = client.patch(f"/api/schedules/{schedule_id}", json={"room_location": "B12"},
                            headers=headers_for(authority))
    assert response.status_code == 200
    assert response.get_json()["data"]["room_location"] == "B12"
    assert client.delete(f"/api/schedules/{schedule_id}", headers=headers_for(owner)).status_code == 200


# ----------------------------------------------------------------------------
# attendance
# ----------------------------------------------------------------------------

def test_attendance_upsert_keeps_one_row_with_latest_status(app, client, make_user, headers_for):
    teacher = make_user("teacher")
    student = make_user("student", year_of_study=2, section="A")
    headers = headers_for(teacher)
    schedule_id = create_schedule(client, headers).get_json()["data"]["id"]

    body = {"date": "2026-10-19", "records": [{"student_id": student, "status": "absent"}]}
    response = client.post(f"/api/attendance/{schedule_id}", json=body, headers=headers)
    assert response.get_json()["data"] == {"created": 1, "updated": 0, "date": "2026-10-19"}

    body["records"][0]["status"] = "present"
    response = client.post(f"/api/attendance/{schedule_id}", json=body, headers=headers)
    assert response.get_json()["data"]["updated"] == 1

    with app.app_context():
        rows = Attendance.query.filter_by(schedule_id=schedule_id, student_id=student).all()
        assert [(r.status, r.attendance_date) for r in rows] == [("present", datetime.date(2026, 10, 19))]


def test_invalid_status_writes_nothing(app, client, make_user, headers_for):
    teacher = make_user("teacher")
    first = make_user("student")
    second = make_user("student")
    headers = headers_for(teacher)
    schedule_id = create_schedule(client, headers).get_json()["data"]["id"]

    response = client.post(f"/api/attendance/{schedule_id}", json={
        "date": "2026-10-19",
        "records": [{"student_id": first, "status": "present"}, {"student_id": second, "status": "sleeping"}]
    }, headers=headers)
    assert response.status_code == 400
    with app.app_context():
        assert Attendance.query.count() == 0


def test_roster_and_summary(client, make_user, headers_for):
    teacher = make_user("teacher")
    present = make_user("student", year_of_study=2, section="A")
    unmarked = make_user("student", year_of_study=2, section="A")
    make_user("student", year_of_study=1, section="A")
    headers = headers_for(teacher)
    schedule_id = create_schedule(client, headers).get_json()["data"]["id"]

    client.post(f"/api/attendance/{schedule_id}", json={
        "date": "2026-10-19", "records": [{"student_id": present, "status": "late"}]
    }, headers=headers)

    roster = client.get(f"/api/attendance/{schedule_id}?date=2026-10-19", headers=headers).get_json()["data"]
    statuses = {row["id"]: (row["status"], row["marked"]) for row in roster["students"]}
    assert statuses == {present: ("late", True), unmarked: ("absent", False)}

    summary = client.get("/api/attendance/summary", headers=headers_for(present)).get_json()["data"]
    assert summary["total"] == 1
    assert summary["percentage"] == 100.0


def test_attendance_is_scoped_to_the_schedule_institution(app, client, make_user, headers_for, make_institution):
    north = make_institution("North College", "NTH1")
    south = make_institution("South College", "STH1")
    north_teacher = make_user("teacher", institution_id=north)
    south_teacher = make_user("teacher", institution_id=south)
    north_student = make_user("student", institution_id=north, year_of_study=2, section="A")
    south_student = make_user("student", institution_id=south, year_of_study=2, section="A")
    schedule_id = create_schedule(client, headers_for(north_teacher)).get_json()["data"]["id"]

    body = {"date": "2026-10-19", "records": [{"student_id": north_student, "status": "absent"}]}
    assert client.get(f"/api/attendance/{schedule_id}?date=2026-10-19",
                      headers=headers_for(south_teacher)).status_code == 404
    assert client.post(f"/api/attendance/{schedule_id}", json=body,
                       headers=headers_for(south_teacher)).status_code == 404

    foreign = {"date": "2026-10-19", "records": [{"student_id": south_student, "status": "present"}]}
    response = client.post(f"/api/attendance/{schedule_id}", json=foreign, headers=headers_for(north_teacher))
    assert response.status_code == 404
    assert response.get_json()["message"] == f"Unknown students: {south_student}"

    with app.app_context():
        assert Attendance.query.count() == 0


# ----------------------------------------------------------------------------
# bulk import
# ----------------------------------------------------------------------------

def test_bulk_import_inserts_valid_rows_and_reports_errors(app, client, make_user, headers_for, xlsx):
    authority = make_user("authority")
    named_teacher = make_user("teacher", full_name="Dr. Rao")
    workbook = xlsx(HEADER, [
        ["DS Lecture", "Data Structures", "Dr. Rao", "Monday", "09:00", "10:00", "101", 2, "A"],
        ["Physics Lab", "Physics", "Prof. Iyer", "tue", 0.5833333333, 0.6666666667, "Lab 3", 1, "B"],
        ["", "Maths", "Dr. Rao", "Funday", "09:00", "10:00", "102", 2, "A"],
    ])

    response = client.post(
        "/api/schedules/import",
        data={"file": (workbook, "schedules.xlsx")},
        content_type="multipart/form-data",
        headers=headers_for(authority),
    )
    assert response.status_code == 201
    data = response.get_json()["data"]
    assert data["imported"] == 2
    assert data["errors"] == [{"row": 4, "errors": ["Title required", "Invalid day"]}]

    with app.app_context():
        lab = Schedule.query.filter_by(title="Physics Lab").one()
        assert (lab.start_time, lab.end_time, lab.day_of_week) == ("14:00", "16:00", 2)
        assert Notification.query.filter_by(user_id=named_teacher, notification_type="schedule_assigned").count() == 1


def test_bulk_import_rejects_non_workbook(client, make_user, headers_for):
    teacher = make_user("teacher")
    response = client.post(
        "/api/schedules/import",
        data={"file": (io.BytesIO(b"not a spreadsheet"), "schedules.xlsx")},
        content_type="multipart/form-data",
        headers=headers_for(teacher),
    )
    assert response.status_code == 400


def test_template_download_has_headers(client, make_user, headers_for):
    teacher = make_user("teacher")
    response = client.get("/api/schedules/import/template", headers=headers_for(teacher))
    assert response.status_code == 200

    sheet = load_workbook(io.BytesIO(response.data)).active
    header = [cell.value for cell in sheet[1]]
    assert header[:4] == ["Title", "Subject", "Teacher Name", "Day"]
    assert sheet.max_row == 3
