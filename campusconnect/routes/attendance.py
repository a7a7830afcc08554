"""
CampusConnect - ERP Attendance
Marks are keyed on (schedule, student, date); saving again overwrites.
"""

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import func

from campusconnect.models import User, Profile, Schedule, Attendance
from campusconnect.extensions import db
from .schedules import STAFF_ROLES, scoped_schedules
from .helpers import (
    ActionError, token_required, roles_required, parse_date, profile_summary,
    success_response, error_response
)

attendance_bp = Blueprint("attendance", __name__)

ATTENDANCE_STATUSES = ("present", "absent", "late", "excused")


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def save_attendance(marker, schedule_id, attendance_date, records):
    """
    Upsert one mark per student for the schedule on the given date.

    records: [{"student_id": int, "status": str}, ...]. Every record is
    validated before anything is written; a later record for the same
    student wins. Returns (created, updated) counts.
    """
    schedule = scoped_schedules(marker).filter(Schedule.id == schedule_id).first()
    if not schedule:
        raise ActionError("Schedule not found", 404)

    if not records:
        raise ActionError("No attendance records provided")

    marks = {}
    for record in records:
        try:
            student_id = int(record.get("student_id"))
        except (TypeError, ValueError, AttributeError):
            raise ActionError("Each record needs a student_id")
        status = str(record.get("status", "")).strip().lower()
        if status not in ATTENDANCE_STATUSES:
            raise ActionError(f"Invalid status '{status}'. Must be one of: {', '.join(ATTENDANCE_STATUSES)}")
        marks[student_id] = status

    students = User.query.join(Profile).filter(User.id.in_(marks.keys()), User.role == "student")
    if schedule.institution_id:
        students = students.filter(Profile.institution_id == schedule.institution_id)
    known = {u.id for u in students.all()}
    unknown = sorted(set(marks) - known)
    if unknown:
        raise ActionError(f"Unknown students: {', '.join(str(i) for i in unknown)}", 404)

    existing = {
        a.student_id: a for a in Attendance.query.filter(
            Attendance.schedule_id == schedule_id,
            Attendance.attendance_date == attendance_date,
            Attendance.student_id.in_(marks.keys())
        ).all()
    }

    created = updated = 0
    for student_id, status in marks.items():
        row = existing.get(student_id)
        if row:
            row.status = status
            row.marked_by = marker.id
            updated += 1
        else:
            db.session.add(Attendance(
                schedule_id=schedule_id,
                student_id=student_id,
                attendance_date=attendance_date,
                status=status,
                marked_by=marker.id
            ))
            created += 1

    return created, updated


def attendance_summary(student_id, schedule_id=None):
    """Counts per status and percentage attended (present + late)"""
    query = db.session.query(Attendance.status, func.count(Attendance.id)).filter(
        Attendance.student_id == student_id
    )
    if schedule_id:
        query = query.filter(Attendance.schedule_id == schedule_id)

    counts = {status: 0 for status in ATTENDANCE_STATUSES}
    for status, count in query.group_by(Attendance.status).all():
        counts[status] = count

    total = sum(counts.values())
    attended = counts["present"] + counts["late"]
    return {
        "counts": counts,
        "total": total,
        "percentage": round(attended * 100.0 / total, 1) if total else None
    }


# ============================================================================
# ROUTES
# ============================================================================

@attendance_bp.route("/attendance/<int:schedule_id>", methods=["POST"])
@token_required
@roles_required(*STAFF_ROLES)
def mark_attendance(current_user, schedule_id):
    """
    Body: {"date": "2026-10-19", "records": [{"student_id": 3, "status": "present"}, ...]}

    The whole batch commits together or not at all.
    """
    try:
        data = request.get_json(silent=True) or {}
        attendance_date = parse_date(data.get("date"), "date")

        created, updated = save_attendance(current_user, schedule_id, attendance_date, data.get("records") or [])
        db.session.commit()

        return success_response(
            f"Attendance marked for {created + updated} students",
            data={"created": created, "updated": updated, "date": attendance_date.isoformat()}
        )

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Save attendance error: {str(e)}")
        return error_response("Failed to save attendance", 500)


@attendance_bp.route("/attendance/<int:schedule_id>", methods=["GET"])
@token_required
@roles_required(*STAFF_ROLES)
def get_attendance(current_user, schedule_id):
    """
    Roster for a schedule on ?date=YYYY-MM-DD

    Students in the schedule's cohort are listed; unmarked students show as absent.
    """
    try:
        schedule = scoped_schedules(current_user).filter(Schedule.id == schedule_id).first()
        if not schedule:
            return error_response("Schedule not found", 404)
        attendance_date = parse_date(request.args.get("date"), "date")

        roster = User.query.join(Profile).filter(User.role == "student", User.active.is_(True))
        if schedule.institution_id:
            roster = roster.filter(Profile.institution_id == schedule.institution_id)
        if schedule.target_year is not None:
            roster = roster.filter(Profile.year_of_study == schedule.target_year)
        if schedule.target_section:
            roster = roster.filter(Profile.section == schedule.target_section)
        if schedule.target_branch:
            roster = roster.filter(Profile.branch == schedule.target_branch)
        students = roster.order_by(Profile.full_name).all()

        marks = {
            a.student_id: a.status for a in Attendance.query.filter_by(
                schedule_id=schedule_id, attendance_date=attendance_date
            ).all()
        }

        rows = []
        for student in students:
            row = profile_summary(student)
            row["status"] = marks.get(student.id, "absent")
            row["marked"] = student.id in marks
            rows.append(row)

        counts = {status: 0 for status in ATTENDANCE_STATUSES}
        for row in rows:
            counts[row["status"]] += 1

        return jsonify({
            "status": "success",
            "data": {
                "schedule": schedule.to_dict(),
                "date": attendance_date.isoformat(),
                "students": rows,
                "counts": counts
            }
        })

    except ActionError as e:
        return error_response(e.message, e.status_code)
    except Exception as e:
        current_app.logger.error(f"Get attendance error: {str(e)}")
        return error_response("Failed to load attendance", 500)


@attendance_bp.route("/attendance/summary", methods=["GET"])
@token_required
def my_attendance_summary(current_user):
    """Students see their own summary; staff may pass ?student_id="""
    student_id = current_user.id
    if current_user.role in STAFF_ROLES and request.args.get("student_id"):
        student_id = request.args.get("student_id", type=int)

    schedule_id = request.args.get("schedule_id", type=int)
    return jsonify({
        "status": "success",
        "data": dict(student_id=student_id, **attendance_summary(student_id, schedule_id))
    })
