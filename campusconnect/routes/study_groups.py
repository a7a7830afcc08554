"""
CampusConnect - Study Groups
The creator is the first member (role "admin"). current_members mirrors the
membership rows and never exceeds max_members.
"""

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from campusconnect.models import StudyGroup, GroupMembership
from campusconnect.extensions import db
from .helpers import (
    ActionError, token_required, notify, profile_summary,
    success_response, error_response
)

study_groups_bp = Blueprint("study_groups", __name__)

DIFFICULTIES = ("beginner", "intermediate", "advanced")


def serialize_group(group, viewer_id):
    membership = GroupMembership.query.filter_by(group_id=group.id, user_id=viewer_id).first()
    return {
        "id": group.id,
        "name": group.name,
        "subject": group.subject,
        "description": group.description,
        "group_type": group.group_type,
        "difficulty": group.difficulty,
        "location": group.location,
        "meeting_schedule": group.meeting_schedule,
        "tags": group.tags or [],
        "max_members": group.max_members,
        "current_members": group.current_members,
        "is_full": group.current_members >= group.max_members,
        "my_role": membership.role if membership else None,
        "created_by": group.created_by
    }


def join_group(user, group):
    if not group.is_active:
        raise ActionError("This group is no longer active")
    if GroupMembership.query.filter_by(group_id=group.id, user_id=user.id).first():
        raise ActionError("You are already a member of this group", 409)

    seats = StudyGroup.query.filter(
        StudyGroup.id == group.id,
        StudyGroup.current_members < StudyGroup.max_members
    ).update({StudyGroup.current_members: StudyGroup.current_members + 1}, synchronize_session=False)
    if not seats:
        raise ActionError("This group is full", 409)

    db.session.add(GroupMembership(group_id=group.id, user_id=user.id, role="member"))
    notify(
        group.created_by, "group_join", "New group member",
        f"{user.name} joined {group.name}", created_by=user.id,
        action_type="study_group", action_id=group.id
    )


def leave_group(user, group):
    membership = GroupMembership.query.filter_by(group_id=group.id, user_id=user.id).first()
    if not membership:
        raise ActionError("You are not a member of this group", 404)
    if membership.role == "admin":
        raise ActionError("The group creator cannot leave; delete the group instead")

    db.session.delete(membership)
    StudyGroup.query.filter(StudyGroup.id == group.id, StudyGroup.current_members > 0).update(
        {StudyGroup.current_members: StudyGroup.current_members - 1}, synchronize_session=False
    )


@study_groups_bp.route("/study-groups", methods=["GET"])
@token_required
def list_groups(current_user):
    """Filters: subject, difficulty, search, mine=1"""
    query = StudyGroup.query.filter(StudyGroup.is_active.is_(True))
    institution_id = current_user.profile.institution_id
    if institution_id:
        query = query.filter(or_(StudyGroup.institution_id == institution_id, StudyGroup.institution_id.is_(None)))

    for param, column in (("subject", StudyGroup.subject), ("difficulty", StudyGroup.difficulty)):
        value = request.args.get(param, "").strip()
        if value:
            query = query.filter(column == value)
    search = request.args.get("search", "").strip()
    if search:
        query = query.filter(or_(StudyGroup.name.ilike(f"%{search}%"), StudyGroup.description.ilike(f"%{search}%")))
    if request.args.get("mine"):
        query = query.join(GroupMembership).filter(GroupMembership.user_id == current_user.id)

    groups = query.order_by(StudyGroup.created_at.desc()).all()
    return jsonify({"status": "success", "data": {"groups": [serialize_group(g, current_user.id) for g in groups]}})


@study_groups_bp.route("/study-groups", methods=["POST"])
@token_required
def create_group(current_user):
    """Body: {"name", "subject", "description"?, "difficulty"?, "max_members"?, "tags"?, ...}"""
    try:
        data = request.get_json(silent=True) or {}
        name = (data.get("name") or "").strip()
        subject = (data.get("subject") or "").strip()
        if not name or not subject:
            return error_response("Name and subject are required")

        difficulty = (data.get("difficulty") or "intermediate").strip().lower()
        if difficulty not in DIFFICULTIES:
            return error_response(f"Difficulty must be one of: {', '.join(DIFFICULTIES)}")

        try:
            max_members = int(data.get("max_members") or 10)
        except (TypeError, ValueError):
            return error_response("max_members must be a number")
        if max_members < 2:
            return error_response("A group needs room for at least 2 members")

        group = StudyGroup(
            institution_id=current_user.profile.institution_id,
            created_by=current_user.id,
            name=name,
            subject=subject,
            description=data.get("description"),
            group_type=data.get("group_type") or "study",
            difficulty=difficulty,
            location=data.get("location"),
            meeting_schedule=data.get("meeting_schedule"),
            tags=data.get("tags") or [],
            max_members=max_members,
            current_members=1
        )
        db.session.add(group)
        db.session.flush()
        db.session.add(GroupMembership(group_id=group.id, user_id=current_user.id, role="admin"))
        db.session.commit()

        return success_response("Study group created", data=serialize_group(group, current_user.id)), 201

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Create study group error: {str(e)}")
        return error_response("Failed to create study group", 500)


@study_groups_bp.route("/study-groups/<int:group_id>/join", methods=["POST"])
@token_required
def join(current_user, group_id):
    try:
        group = StudyGroup.query.get(group_id)
        if not group:
            return error_response("Study group not found", 404)

        join_group(current_user, group)
        db.session.commit()
        db.session.refresh(group)
        return success_response(f"Joined {group.name}", data=serialize_group(group, current_user.id))

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except IntegrityError:
        db.session.rollback()
        return error_response("You are already a member of this group", 409)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Join study group error: {str(e)}")
        return error_response("Failed to join group", 500)


@study_groups_bp.route("/study-groups/<int:group_id>/leave", methods=["POST"])
@token_required
def leave(current_user, group_id):
    try:
        group = StudyGroup.query.get(group_id)
        if not group:
            return error_response("Study group not found", 404)

        leave_group(current_user, group)
        db.session.commit()
        return success_response(f"Left {group.name}")

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Leave study group error: {str(e)}")
        return error_response("Failed to leave group", 500)


@study_groups_bp.route("/study-groups/<int:group_id>/members", methods=["GET"])
@token_required
def members(current_user, group_id):
    group = StudyGroup.query.get(group_id)
    if not group:
        return error_response("Study group not found", 404)

    rows = []
    for membership in group.memberships.order_by(GroupMembership.joined_at).all():
        row = profile_summary(membership.user)
        row["group_role"] = membership.role
        rows.append(row)
    return jsonify({"status": "success", "data": {"members": rows}})


@study_groups_bp.route("/study-groups/<int:group_id>", methods=["DELETE"])
@token_required
def delete_group(current_user, group_id):
    try:
        group = StudyGroup.query.get(group_id)
        if not group:
            return error_response("Study group not found", 404)
        if group.created_by != current_user.id:
            return error_response("Only the group creator can delete it", 403)

        db.session.delete(group)
        db.session.commit()
        return success_response("Study group deleted")

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Delete study group error: {str(e)}")
        return error_response("Failed to delete group", 500)
