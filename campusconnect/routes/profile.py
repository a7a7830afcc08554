"""
CampusConnect - Profiles
View and edit profiles, join an institution, daily check-in streaks
"""

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import or_
import datetime

from campusconnect.models import User, Profile, Institution, EducationDetails, Experience
from campusconnect.extensions import db
from campusconnect.utils import today
from .connections import connection_status
from .helpers import (
    ActionError, token_required, get_json_body, save_file, parse_date, ALLOWED_IMAGE_EXT,
    success_response, error_response
)

profile_bp = Blueprint("profile", __name__)

EDITABLE_FIELDS = (
    "full_name", "bio", "department", "course", "section", "branch",
    "phone_number", "student_number", "institution_roll_number"
)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def check_in(user_id, on_date):
    """
    Record today's activity and return (streak, checked_in_now).

    Yesterday → streak + 1, today → no-op, anything else → streak resets to 1.
    The write only applies while last_activity_date is still not today, so a
    second tab racing the first cannot increment twice.
    """
    profile = Profile.query.filter_by(user_id=user_id).first()
    if not profile:
        raise ActionError("Profile not found", 404)

    if profile.last_activity_date == on_date:
        return profile.daily_streak, False

    if profile.last_activity_date == on_date - datetime.timedelta(days=1):
        new_streak = (profile.daily_streak or 0) + 1
    else:
        new_streak = 1

    changed = Profile.query.filter(
        Profile.id == profile.id,
        or_(Profile.last_activity_date.is_(None), Profile.last_activity_date != on_date)
    ).update(
        {"daily_streak": new_streak, "last_activity_date": on_date},
        synchronize_session=False
    )
    if not changed:
        db.session.refresh(profile)
        return profile.daily_streak, False

    return new_streak, True


def _text_list(value, field):
    if not isinstance(value, list):
        raise ActionError(f"{field} must be a list")
    return [str(v).strip() for v in value if str(v).strip()][:50]


def upsert_education(user_id, data):
    """Create or replace the user's single education record"""
    degree = (data.get("degree") or "").strip()
    major = (data.get("major") or "").strip()
    if not degree or not major:
        raise ActionError("Degree and major are required")

    try:
        graduation_year = int(data.get("graduation_year"))
    except (TypeError, ValueError):
        raise ActionError("Invalid graduation year")
    if not 1950 <= graduation_year <= 2100:
        raise ActionError("Invalid graduation year")

    gpa = data.get("gpa")
    if gpa in (None, ""):
        gpa = None
    else:
        try:
            gpa = float(gpa)
        except (TypeError, ValueError):
            raise ActionError("GPA must be a number")
        if not 0 <= gpa <= 10:
            raise ActionError("GPA must be between 0 and 10")

    education = EducationDetails.query.filter_by(user_id=user_id).first()
    created = education is None
    if created:
        education = EducationDetails(user_id=user_id)
        db.session.add(education)

    education.degree = degree
    education.major = major
    education.minor = (data.get("minor") or "").strip() or None
    education.graduation_year = graduation_year
    education.gpa = gpa
    education.achievements = _text_list(data.get("achievements") or [], "achievements")
    education.certifications = _text_list(data.get("certifications") or [], "certifications")
    return education, created


def serialize_profile(profile, private=False):
    education = EducationDetails.query.filter_by(user_id=profile.user_id).first()
    experience = Experience.query.filter_by(user_id=profile.user_id).order_by(
        Experience.is_current.desc(), Experience.start_date.desc()
    ).all()
    data = {
        "user_id": profile.user_id,
        "full_name": profile.full_name,
        "role": profile.user.role,
        "bio": profile.bio,
        "department": profile.department,
        "course": profile.course,
        "year_of_study": profile.year_of_study,
        "section": profile.section,
        "branch": profile.branch,
        "profile_picture_url": profile.profile_picture_url,
        "institution_id": profile.institution_id,
        "links": profile.links or [],
        "skills": profile.skills or [],
        "connections_count": profile.connections_count,
        "daily_streak": profile.daily_streak,
        "education": education.to_dict() if education else None,
        "experience": [e.to_dict() for e in experience]
    }
    if private:
        data.update({
            "email": profile.email,
            "phone_number": profile.phone_number,
            "student_number": profile.student_number,
            "institution_roll_number": profile.institution_roll_number,
            "last_activity_date": profile.last_activity_date.isoformat() if profile.last_activity_date else None
        })
    return data


# ============================================================================
# PROFILE
# ============================================================================

@profile_bp.route("/profile", methods=["GET"])
@token_required
def my_profile(current_user):
    if not current_user.profile:
        return error_response("Profile not found", 404)
    return jsonify({"status": "success", "data": serialize_profile(current_user.profile, private=True)})


@profile_bp.route("/profile/<int:user_id>", methods=["GET"])
@token_required
def view_profile(current_user, user_id):
    """Public profile info plus connection status with the viewer"""
    user = User.query.get(user_id)
    if not user or not user.profile:
        return error_response("User not found", 404)

    data = serialize_profile(user.profile, private=(user.id == current_user.id))
    data["connection"] = connection_status(current_user, user_id)
    return jsonify({"status": "success", "data": data})


@profile_bp.route("/profile", methods=["PATCH"])
@token_required
def update_profile(current_user):
    """
    Update your own profile (JSON or multipart with 'picture')
    """
    try:
        profile = current_user.profile
        data = get_json_body()

        for field in EDITABLE_FIELDS:
            if field in data:
                value = data[field]
                value = value.strip() if isinstance(value, str) else value
                if field == "full_name" and not value:
                    return error_response("Full name cannot be empty")
                setattr(profile, field, value or None)

        if "year_of_study" in data:
            try:
                profile.year_of_study = int(data["year_of_study"]) if data["year_of_study"] not in (None, "") else None
            except (TypeError, ValueError):
                return error_response("Invalid year of study")

        for list_field in ("links", "skills"):
            if list_field in data:
                if not isinstance(data[list_field], list):
                    return error_response(f"{list_field} must be a list")
                setattr(profile, list_field, [str(v).strip() for v in data[list_field] if str(v).strip()][:20])

        if "picture" in request.files:
            profile.profile_picture_url = save_file(request.files["picture"], "avatars", ALLOWED_IMAGE_EXT)

        if not profile.department:
            profile.department = "General"

        db.session.commit()
        return success_response("Profile updated", data=serialize_profile(profile, private=True))

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Update profile error: {str(e)}")
        return error_response("Failed to update profile", 500)


@profile_bp.route("/profile/institution", methods=["POST"])
@token_required
def join_institution(current_user):
    """Body: {"code": "ABC123"}"""
    try:
        data = request.get_json(silent=True) or {}
        code = (data.get("code") or "").strip().upper()
        if not code:
            return error_response("Institution code required")

        institution = Institution.query.filter_by(code=code).first()
        if not institution:
            return error_response("Invalid institution code", 404)

        current_user.profile.institution_id = institution.id
        db.session.commit()
        return success_response(
            f"Joined {institution.name}",
            data={"institution_id": institution.id, "name": institution.name}
        )

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Join institution error: {str(e)}")
        return error_response("Failed to join institution", 500)


# ============================================================================
# EDUCATION & EXPERIENCE
# ============================================================================

@profile_bp.route("/profile/education", methods=["GET"])
@token_required
def get_education(current_user):
    education = EducationDetails.query.filter_by(user_id=current_user.id).first()
    return jsonify({"status": "success", "data": education.to_dict() if education else None})


@profile_bp.route("/profile/education", methods=["PUT"])
@token_required
def save_education(current_user):
    """
    Body: {"degree", "major", "graduation_year", "minor"?, "gpa"?,
           "achievements"?: [...], "certifications"?: [...]}

    Replaces the whole record; send the full achievements list each time.
    """
    try:
        data = request.get_json(silent=True) or {}
        education, created = upsert_education(current_user.id, data)
        db.session.commit()

        return success_response("Education details saved", data=education.to_dict()), 201 if created else 200

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Save education error: {str(e)}")
        return error_response("Failed to save education details", 500)


@profile_bp.route("/profile/experience", methods=["POST"])
@token_required
def add_experience(current_user):
    """Body: {"title", "company", "description"?, "start_date"?, "end_date"?, "is_current"?}"""
    try:
        data = request.get_json(silent=True) or {}
        title = (data.get("title") or "").strip()
        company = (data.get("company") or "").strip()
        if not title or not company:
            return error_response("Title and company are required")

        is_current = bool(data.get("is_current"))
        start_date = parse_date(data["start_date"], "start_date") if data.get("start_date") else None
        end_date = None
        if data.get("end_date") and not is_current:
            end_date = parse_date(data["end_date"], "end_date")
        if start_date and end_date and end_date < start_date:
            return error_response("End date cannot be before start date")

        experience = Experience(
            user_id=current_user.id,
            title=title,
            company=company,
            description=(data.get("description") or "").strip() or None,
            start_date=start_date,
            end_date=end_date,
            is_current=is_current
        )
        db.session.add(experience)
        db.session.commit()

        return success_response("Experience added", data=experience.to_dict()), 201

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Add experience error: {str(e)}")
        return error_response("Failed to add experience", 500)


@profile_bp.route("/profile/experience/<int:experience_id>", methods=["DELETE"])
@token_required
def delete_experience(current_user, experience_id):
    try:
        experience = Experience.query.filter_by(id=experience_id, user_id=current_user.id).first()
        if not experience:
            return error_response("Experience not found", 404)

        db.session.delete(experience)
        db.session.commit()
        return success_response("Experience removed")

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Delete experience error: {str(e)}")
        return error_response("Failed to remove experience", 500)


# ============================================================================
# DAILY CHECK-IN
# ============================================================================

@profile_bp.route("/profile/check-in", methods=["POST"])
@token_required
def daily_check_in(current_user):
    try:
        streak, checked_in = check_in(current_user.id, today())
        db.session.commit()

        message = "Checked in! Keep the streak going" if checked_in else "Already checked in today"
        return success_response(message, data={"daily_streak": streak, "checked_in_now": checked_in})

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Check-in error: {str(e)}")
        return error_response("Failed to check in", 500)


@profile_bp.route("/profile/leaderboard", methods=["GET"])
@token_required
def streak_leaderboard(current_user):
    """Top profiles by daily streak plus the caller's rank"""
    limit = min(request.args.get("limit", 10, type=int), 100)
    leaders = Profile.query.order_by(Profile.daily_streak.desc(), Profile.full_name).limit(limit).all()

    my_streak = current_user.profile.daily_streak if current_user.profile else 0
    rank = Profile.query.filter(Profile.daily_streak > my_streak).count() + 1

    return jsonify({
        "status": "success",
        "data": {
            "leaderboard": [
                {
                    "user_id": p.user_id,
                    "full_name": p.full_name,
                    "department": p.department,
                    "profile_picture_url": p.profile_picture_url,
                    "daily_streak": p.daily_streak
                }
                for p in leaders
            ],
            "my_rank": rank,
            "my_streak": my_streak
        }
    })
