"""
CampusConnect - ERP Schedules
Weekly class schedule CRUD, copy to another cohort, and xlsx bulk import
"""

from flask import Blueprint, request, jsonify, current_app, send_file
from sqlalchemy import or_
import io

from campusconnect.models import User, Profile, Schedule
from campusconnect.extensions import db
from campusconnect.spreadsheets import (
    SpreadsheetError, parse_day, parse_time, parse_schedule_row, read_rows, schedule_template
)
from .helpers import (
    ActionError, token_required, roles_required, notify,
    success_response, error_response
)

schedules_bp = Blueprint("schedules", __name__)

STAFF_ROLES = ("teacher", "authority")
XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
TEXT_FIELDS = ("title", "subject", "teacher_name", "room_location",
               "target_section", "target_branch", "target_department")


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def institution_of(user):
    return user.profile.institution_id if user.profile else None


def scoped_schedules(user):
    """Schedules visible to the user: their institution's, or all when they have none"""
    query = Schedule.query
    institution_id = institution_of(user)
    if institution_id:
        query = query.filter(Schedule.institution_id == institution_id)
    return query


def validate_schedule_payload(data, partial=False):
    """Validated column values from a JSON body; partial=True for PATCH"""
    fields = {}

    for field in TEXT_FIELDS:
        if field in data:
            value = data[field]
            fields[field] = str(value).strip() if value not in (None, "") else None

    if not partial:
        for required in ("title", "subject"):
            if not fields.get(required):
                raise ActionError(f"{required.capitalize()} required")
    else:
        for required in ("title", "subject"):
            if required in fields and not fields[required]:
                raise ActionError(f"{required.capitalize()} required")

    if "day_of_week" in data or not partial:
        day = parse_day(data.get("day_of_week")) if data.get("day_of_week") is not None else None
        if day is None:
            raise ActionError("Invalid day")
        fields["day_of_week"] = day

    for field, label in (("start_time", "start time"), ("end_time", "end time")):
        if field in data or not partial:
            value = parse_time(data.get(field)) if data.get(field) is not None else None
            if value is None:
                raise ActionError(f"Invalid {label}")
            fields[field] = value

    if "start_time" in fields and "end_time" in fields and fields["end_time"] <= fields["start_time"]:
        raise ActionError("End time must be after start time")

    if "target_year" in data:
        year = data["target_year"]
        try:
            fields["target_year"] = int(year) if year not in (None, "") else None
        except (TypeError, ValueError):
            raise ActionError("Invalid year")

    return fields


def can_manage(user, schedule):
    return user.role == "authority" or schedule.created_by == user.id


def import_schedules(user, rows):
    """
    Insert every valid row; collect per-row errors for the rest.

    rows: list of (row_number, {header: value}). Returns (schedules, errors).
    """
    created = []
    errors = []
    for row_number, raw in rows:
        fields, row_errors = parse_schedule_row(raw)
        if row_errors:
            errors.append({"row": row_number, "errors": row_errors})
            continue
        schedule = Schedule(institution_id=institution_of(user), created_by=user.id, **fields)
        db.session.add(schedule)
        created.append(schedule)

    teacher_names = {s.teacher_name for s in created if s.teacher_name}
    if teacher_names:
        teachers = User.query.join(Profile).filter(
            User.role.in_(STAFF_ROLES),
            Profile.full_name.in_(teacher_names)
        )
        if institution_of(user):
            teachers = teachers.filter(Profile.institution_id == institution_of(user))
        for teacher in teachers.all():
            notify(
                teacher.id, "schedule_assigned", "New Schedule Assigned",
                "You have been assigned new class schedules. Check your teaching schedule for details.",
                created_by=user.id
            )

    return created, errors


# ============================================================================
# SCHEDULE CRUD
# ============================================================================

@schedules_bp.route("/schedules", methods=["GET"])
@token_required
def list_schedules(current_user):
    """
    Query params: day, year, section, branch, teacher, subject
    """
    query = scoped_schedules(current_user)

    day = request.args.get("day", type=int)
    if day is not None:
        query = query.filter(Schedule.day_of_week == day)
    year = request.args.get("year", type=int)
    if year is not None:
        query = query.filter(Schedule.target_year == year)
    for param, column in (("section", Schedule.target_section),
                          ("branch", Schedule.target_branch),
                          ("teacher", Schedule.teacher_name),
                          ("subject", Schedule.subject)):
        value = request.args.get(param, "").strip()
        if value:
            query = query.filter(column == value)

    schedules = query.order_by(Schedule.day_of_week, Schedule.start_time).all()
    return jsonify({
        "status": "success",
        "data": {"schedules": [s.to_dict() for s in schedules], "total": len(schedules)}
    })


@schedules_bp.route("/schedules/mine", methods=["GET"])
@token_required
def my_schedule(current_user):
    """Teachers: slots they teach. Students: slots targeting their cohort."""
    profile = current_user.profile
    query = scoped_schedules(current_user)

    if current_user.role in STAFF_ROLES:
        query = query.filter(Schedule.teacher_name == profile.full_name)
    else:
        if profile.year_of_study is not None:
            query = query.filter(or_(Schedule.target_year.is_(None), Schedule.target_year == profile.year_of_study))
        if profile.section:
            query = query.filter(or_(Schedule.target_section.is_(None), Schedule.target_section == profile.section))
        if profile.branch:
            query = query.filter(or_(Schedule.target_branch.is_(None), Schedule.target_branch == profile.branch))

    schedules = query.order_by(Schedule.day_of_week, Schedule.start_time).all()
    return jsonify({"status": "success", "data": {"schedules": [s.to_dict() for s in schedules]}})


@schedules_bp.route("/schedules", methods=["POST"])
@token_required
@roles_required(*STAFF_ROLES)
def create_schedule(current_user):
    try:
        fields = validate_schedule_payload(request.get_json(silent=True) or {})
        schedule = Schedule(institution_id=institution_of(current_user), created_by=current_user.id, **fields)
        db.session.add(schedule)
        db.session.commit()
        return success_response("Schedule created", data=schedule.to_dict()), 201

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Create schedule error: {str(e)}")
        return error_response("Failed to create schedule", 500)


@schedules_bp.route("/schedules/<int:schedule_id>", methods=["PATCH"])
@token_required
@roles_required(*STAFF_ROLES)
def update_schedule(current_user, schedule_id):
    try:
        schedule = Schedule.query.get(schedule_id)
        if not schedule:
            return error_response("Schedule not found", 404)
        if not can_manage(current_user, schedule):
            return error_response("Not authorized to edit this schedule", 403)

        fields = validate_schedule_payload(request.get_json(silent=True) or {}, partial=True)
        for key, value in fields.items():
            setattr(schedule, key, value)
        if schedule.end_time <= schedule.start_time:
            raise ActionError("End time must be after start time")

        db.session.commit()
        return success_response("Schedule updated", data=schedule.to_dict())

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Update schedule error: {str(e)}")
        return error_response("Failed to update schedule", 500)


@schedules_bp.route("/schedules/<int:schedule_id>", methods=["DELETE"])
@token_required
@roles_required(*STAFF_ROLES)
def delete_schedule(current_user, schedule_id):
    try:
        schedule = Schedule.query.get(schedule_id)
        if not schedule:
            return error_response("Schedule not found", 404)
        if not can_manage(current_user, schedule):
            return error_response("Not authorized to delete this schedule", 403)

        db.session.delete(schedule)
        db.session.commit()
        return success_response("Schedule deleted")

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Delete schedule error: {str(e)}")
        return error_response("Failed to delete schedule", 500)


@schedules_bp.route("/schedules/copy", methods=["POST"])
@token_required
@roles_required(*STAFF_ROLES)
def copy_schedules(current_user):
    """
    Duplicate schedules for another cohort

    Body: {"schedule_ids": [..], "target_year": 2|null, "target_section": "B", "target_branch": "ECE"}
    """
    try:
        data = request.get_json(silent=True) or {}
        ids = data.get("schedule_ids") or []
        if not ids:
            return error_response("Please select at least one schedule to copy")

        sources = scoped_schedules(current_user).filter(Schedule.id.in_(ids)).all()
        if len(sources) != len(set(ids)):
            return error_response("Some schedules were not found", 404)

        target_year = data.get("target_year")
        try:
            target_year = int(target_year) if target_year not in (None, "", "all") else None
        except (TypeError, ValueError):
            return error_response("Invalid year")

        copies = []
        for source in sources:
            copy = Schedule(
                title=source.title,
                subject=source.subject,
                teacher_name=source.teacher_name,
                day_of_week=source.day_of_week,
                start_time=source.start_time,
                end_time=source.end_time,
                room_location=source.room_location,
                target_year=target_year,
                target_section=data.get("target_section") or None,
                target_branch=data.get("target_branch") or None,
                target_department=source.target_department,
                institution_id=institution_of(current_user),
                created_by=current_user.id
            )
            db.session.add(copy)
            copies.append(copy)

        db.session.commit()
        return success_response(
            f"Copied {len(copies)} schedules",
            data={"schedules": [c.to_dict() for c in copies]}
        ), 201

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Copy schedules error: {str(e)}")
        return error_response("Failed to copy schedules", 500)


# ============================================================================
# BULK IMPORT
# ============================================================================

@schedules_bp.route("/schedules/import", methods=["POST"])
@token_required
@roles_required(*STAFF_ROLES)
def bulk_import(current_user):
    """
    Multipart upload field 'file' (.xlsx). Valid rows are inserted in one
    transaction; invalid rows come back with their spreadsheet row number.
    """
    try:
        upload = request.files.get("file")
        if not upload or not upload.filename:
            return error_response("No file uploaded")

        rows = read_rows(io.BytesIO(upload.read()))
        if not rows:
            return error_response("The spreadsheet has no data rows")

        created, errors = import_schedules(current_user, rows)
        db.session.commit()

        current_app.logger.info(
            f"User {current_user.id} imported {len(created)} schedules ({len(errors)} rows rejected)"
        )
        return success_response(
            f"Successfully imported {len(created)} schedules",
            data={
                "imported": len(created),
                "errors": errors,
                "schedules": [s.to_dict() for s in created]
            }
        ), 201 if created else 200

    except SpreadsheetError as e:
        db.session.rollback()
        return error_response(str(e))
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Bulk import error: {str(e)}")
        return error_response("Failed to import schedules", 500)


@schedules_bp.route("/schedules/import/template", methods=["GET"])
@token_required
def import_template(current_user):
    return send_file(
        io.BytesIO(schedule_template()),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name="schedule_import_template.xlsx"
    )
