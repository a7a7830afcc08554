"""
CampusConnect - Mentoring Relationships
Mentee asks, mentor accepts (active) or rejects. Independent of connections:
a student can be connected to someone without being mentored, and vice versa.
"""

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import IntegrityError

from campusconnect.models import User, MentoringRelationship
from campusconnect.extensions import db
from .helpers import (
    ActionError, token_required, roles_required, notify, profile_summary,
    success_response, error_response
)

mentoring_bp = Blueprint("mentoring", __name__)

MENTOR_ROLES = ("mentor", "teacher")


def request_mentor(mentee, mentor_id):
    """Open a pending relationship; a previously rejected row is reopened"""
    if mentor_id == mentee.id:
        raise ActionError("Cannot mentor yourself")

    mentor = User.query.get(mentor_id)
    if not mentor or not mentor.is_active:
        raise ActionError("Mentor not found", 404)
    if mentor.role not in MENTOR_ROLES:
        raise ActionError("This user is not a mentor")

    existing = MentoringRelationship.query.filter_by(mentor_id=mentor_id, mentee_id=mentee.id).first()
    if existing:
        if existing.status == "active":
            raise ActionError("Already mentored by this user", 409)
        if existing.status == "pending":
            raise ActionError("Mentor request already pending", 409)
        existing.status = "pending"
        relationship = existing
    else:
        relationship = MentoringRelationship(mentor_id=mentor_id, mentee_id=mentee.id, status="pending")
        db.session.add(relationship)

    db.session.flush()
    notify(
        mentor_id, "mentor_request", "New Mentorship Request",
        f"{mentee.name} would like you to be their mentor",
        created_by=mentee.id, action_type="mentoring", action_id=relationship.id
    )
    return relationship


def respond_mentoring(mentor, relationship_id, accept):
    relationship = MentoringRelationship.query.get(relationship_id)
    if not relationship:
        raise ActionError("Mentoring request not found", 404)
    if relationship.mentor_id != mentor.id:
        raise ActionError("Not authorized to respond to this request", 403)

    new_status = "active" if accept else "rejected"
    changed = MentoringRelationship.query.filter_by(id=relationship_id, status="pending").update(
        {"status": new_status}, synchronize_session=False
    )
    if not changed:
        raise ActionError("Request is not pending", 409)

    notify(
        relationship.mentee_id, "mentor_response",
        "Mentorship Accepted" if accept else "Mentorship Declined",
        f"{mentor.name} {'accepted' if accept else 'declined'} your mentorship request",
        created_by=mentor.id, action_type="mentoring", action_id=relationship.id
    )
    return new_status


def end_mentoring(user, relationship_id):
    relationship = MentoringRelationship.query.get(relationship_id)
    if not relationship:
        raise ActionError("Mentoring relationship not found", 404)
    if user.id not in (relationship.mentor_id, relationship.mentee_id):
        raise ActionError("Not authorized", 403)
    if relationship.status == "rejected":
        raise ActionError("Relationship is not active", 409)
    db.session.delete(relationship)


def serialize_relationship(relationship, viewer_id):
    other = relationship.mentee if relationship.mentor_id == viewer_id else relationship.mentor
    return {
        "id": relationship.id,
        "mentor_id": relationship.mentor_id,
        "mentee_id": relationship.mentee_id,
        "status": relationship.status,
        "created_at": relationship.created_at.isoformat() if relationship.created_at else None,
        "user": profile_summary(other)
    }


# ============================================================================
# ROUTES
# ============================================================================

@mentoring_bp.route("/mentoring/request/<int:mentor_id>", methods=["POST"])
@token_required
def send_mentor_request(current_user, mentor_id):
    try:
        relationship = request_mentor(current_user, mentor_id)
        db.session.commit()
        return success_response(
            "Mentor request sent",
            data=serialize_relationship(relationship, current_user.id)
        ), 201

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except IntegrityError:
        db.session.rollback()
        return error_response("Mentor request already pending", 409)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Mentor request error: {str(e)}")
        return error_response("Failed to send mentor request", 500)


@mentoring_bp.route("/mentoring/<int:relationship_id>/respond", methods=["POST"])
@token_required
@roles_required(*MENTOR_ROLES)
def respond_mentor_request(current_user, relationship_id):
    """Body: {"accept": true|false}"""
    try:
        data = request.get_json(silent=True) or {}
        if "accept" not in data:
            return error_response("accept is required")

        status = respond_mentoring(current_user, relationship_id, bool(data["accept"]))
        db.session.commit()
        return success_response(f"Mentorship {status}", data={"id": relationship_id, "status": status})

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Mentor respond error: {str(e)}")
        return error_response("Failed to respond to mentor request", 500)


@mentoring_bp.route("/mentoring/<int:relationship_id>", methods=["DELETE"])
@token_required
def delete_mentoring(current_user, relationship_id):
    try:
        end_mentoring(current_user, relationship_id)
        db.session.commit()
        return success_response("Mentoring relationship ended")

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"End mentoring error: {str(e)}")
        return error_response("Failed to end mentoring relationship", 500)


@mentoring_bp.route("/mentoring/mentees", methods=["GET"])
@token_required
@roles_required(*MENTOR_ROLES)
def list_mentees(current_user):
    """Mentor view; ?status=pending|active"""
    status = request.args.get("status")
    query = MentoringRelationship.query.filter_by(mentor_id=current_user.id)
    if status:
        query = query.filter_by(status=status)
    rows = query.order_by(MentoringRelationship.created_at.desc()).all()
    return jsonify({
        "status": "success",
        "data": {"mentees": [serialize_relationship(r, current_user.id) for r in rows]}
    })


@mentoring_bp.route("/mentoring/mentors", methods=["GET"])
@token_required
def list_mentors(current_user):
    """Mentee view of their mentors and outstanding requests"""
    rows = MentoringRelationship.query.filter(
        MentoringRelationship.mentee_id == current_user.id,
        MentoringRelationship.status != "rejected"
    ).order_by(MentoringRelationship.created_at.desc()).all()
    return jsonify({
        "status": "success",
        "data": {"mentors": [serialize_relationship(r, current_user.id) for r in rows]}
    })


@mentoring_bp.route("/mentoring/available", methods=["GET"])
@token_required
def available_mentors(current_user):
    """Mentors and teachers, same institution first"""
    mentors = User.query.filter(User.role.in_(MENTOR_ROLES), User.active.is_(True), User.id != current_user.id).all()
    institution_id = current_user.profile.institution_id if current_user.profile else None
    mentors.sort(key=lambda u: (u.profile is None or u.profile.institution_id != institution_id, u.name))
    return jsonify({
        "status": "success",
        "data": {"mentors": [profile_summary(u) for u in mentors]}
    })
