"""
CampusConnect - Authority Tools
Approval requests, announcements, user management and the audit trail.
Every privileged change an authority makes is written to authority_audit_log.
"""

from flask import Blueprint, request, jsonify, current_app, send_file
from sqlalchemy import or_
import datetime
import io
import secrets

from campusconnect.models import (
    ROLES, User, Profile, Institution, ApprovalRequest, Announcement, AuthorityAuditLog
)
from campusconnect.extensions import db
from campusconnect.spreadsheets import user_export
from .schedules import XLSX_MIMETYPE, institution_of
from .helpers import (
    ActionError, token_required, roles_required, notify, profile_summary,
    success_response, error_response
)

authority_bp = Blueprint("authority", __name__)

APPROVAL_DECISIONS = ("approved", "rejected")
PRIORITIES = ("low", "medium", "high")
ANNOUNCEMENT_AUDIENCES = ("all",) + ROLES
MANAGEABLE_FIELDS = ("department", "course", "section", "branch")


# ============================================================================
# AUDIT LOG
# ============================================================================

def log_authority_action(authority, action_type, target_user_id=None, details=None):
    """Append an audit row on the current session (committed with the action)"""
    entry = AuthorityAuditLog(
        authority_user_id=authority.id,
        action_type=action_type,
        target_user_id=target_user_id,
        details=details or {},
        ip_address=request.remote_addr if request else None
    )
    db.session.add(entry)
    current_app.logger.info(f"Authority {authority.id} {action_type} target={target_user_id}")
    return entry


def managed_users(authority):
    """Users an authority can manage: same institution, or everyone without one"""
    query = User.query.join(Profile)
    institution_id = institution_of(authority)
    if institution_id:
        query = query.filter(Profile.institution_id == institution_id)
    return query


def scoped_approvals(authority):
    """Approval requests raised by members of the authority's institution"""
    query = ApprovalRequest.query
    institution_id = institution_of(authority)
    if institution_id:
        query = query.join(Profile, Profile.user_id == ApprovalRequest.requested_by).filter(
            Profile.institution_id == institution_id
        )
    return query


def scoped_audit_log(authority):
    """Audit entries written by authorities of the same institution"""
    query = AuthorityAuditLog.query
    institution_id = institution_of(authority)
    if institution_id:
        query = query.join(Profile, Profile.user_id == AuthorityAuditLog.authority_user_id).filter(
            Profile.institution_id == institution_id
        )
    return query


def filtered_users(authority, args):
    query = managed_users(authority)
    role = args.get("role", "").strip()
    if role:
        query = query.filter(User.role == role)
    year = args.get("year", type=int)
    if year is not None:
        query = query.filter(Profile.year_of_study == year)
    for param, column in (("section", Profile.section), ("branch", Profile.branch),
                          ("course", Profile.course), ("department", Profile.department)):
        value = args.get(param, "").strip()
        if value:
            query = query.filter(column == value)
    search = args.get("search", "").strip()
    if search:
        query = query.filter(or_(
            Profile.full_name.ilike(f"%{search}%"),
            Profile.email.ilike(f"%{search}%"),
            Profile.institution_roll_number.ilike(f"%{search}%")
        ))
    return query.order_by(Profile.full_name)


# ============================================================================
# APPROVAL REQUESTS
# ============================================================================

@authority_bp.route("/approvals", methods=["POST"])
@token_required
def create_approval_request(current_user):
    """Body: {"request_type", "title", "description"?, "priority"?}"""
    try:
        data = request.get_json(silent=True) or {}
        request_type = (data.get("request_type") or "").strip()
        title = (data.get("title") or "").strip()
        priority = (data.get("priority") or "medium").strip().lower()

        if not request_type or not title:
            return error_response("Request type and title are required")
        if priority not in PRIORITIES:
            return error_response(f"Priority must be one of: {', '.join(PRIORITIES)}")

        approval = ApprovalRequest(
            requested_by=current_user.id,
            request_type=request_type,
            title=title,
            description=data.get("description"),
            priority=priority
        )
        db.session.add(approval)
        db.session.commit()

        return success_response("Request submitted", data={"id": approval.id, "status": approval.status}), 201

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Create approval error: {str(e)}")
        return error_response("Failed to submit request", 500)


@authority_bp.route("/approvals", methods=["GET"])
@token_required
def list_approval_requests(current_user):
    """Authorities see their institution's requests (?status= filter); others see their own"""
    if current_user.role == "authority":
        query = scoped_approvals(current_user)
    else:
        query = ApprovalRequest.query.filter(ApprovalRequest.requested_by == current_user.id)
    status = request.args.get("status")
    if status:
        query = query.filter(ApprovalRequest.status == status)

    approvals = query.order_by(ApprovalRequest.created_at.desc()).all()
    return jsonify({
        "status": "success",
        "data": {
            "requests": [
                {
                    "id": a.id,
                    "request_type": a.request_type,
                    "title": a.title,
                    "description": a.description,
                    "priority": a.priority,
                    "status": a.status,
                    "requested_by": profile_summary(a.requester),
                    "created_at": a.created_at.isoformat() if a.created_at else None,
                    "reviewed_at": a.reviewed_at.isoformat() if a.reviewed_at else None
                }
                for a in approvals
            ]
        }
    })


@authority_bp.route("/approvals/<int:approval_id>/decision", methods=["POST"])
@token_required
@roles_required("authority")
def decide_approval_request(current_user, approval_id):
    """Body: {"status": "approved" | "rejected"}"""
    try:
        data = request.get_json(silent=True) or {}
        decision = (data.get("status") or "").strip().lower()
        if decision not in APPROVAL_DECISIONS:
            return error_response("Status must be 'approved' or 'rejected'")

        approval = scoped_approvals(current_user).filter(ApprovalRequest.id == approval_id).first()
        if not approval:
            return error_response("Request not found", 404)
        if approval.status != "pending":
            return error_response("Request already decided", 409)

        approval.status = decision
        approval.reviewed_by = current_user.id
        approval.reviewed_at = datetime.datetime.utcnow()

        notify(
            approval.requested_by, "approval_decision", f"Request {decision}",
            f'Your request "{approval.title}" was {decision}',
            created_by=current_user.id, action_type="approval_request", action_id=approval.id
        )
        log_authority_action(current_user, f"approval_{decision}", approval.requested_by, {"approval_id": approval.id})
        db.session.commit()

        return success_response(f"Request {decision}", data={"id": approval.id, "status": decision})

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Approval decision error: {str(e)}")
        return error_response("Failed to update request", 500)


# ============================================================================
# ANNOUNCEMENTS
# ============================================================================

@authority_bp.route("/announcements", methods=["POST"])
@token_required
@roles_required("authority")
def create_announcement(current_user):
    """Body: {"title", "content", "announcement_type"?, "audience"?: ["all"|role, ...]}"""
    try:
        data = request.get_json(silent=True) or {}
        title = (data.get("title") or "").strip()
        content = (data.get("content") or "").strip()
        if not title or not content:
            return error_response("Title and content are required")

        audience = data.get("audience") or ["all"]
        if not isinstance(audience, list) or any(a not in ANNOUNCEMENT_AUDIENCES for a in audience):
            return error_response(f"Audience entries must be one of: {', '.join(ANNOUNCEMENT_AUDIENCES)}")

        announcement = Announcement(
            created_by=current_user.id,
            institution_id=current_user.profile.institution_id,
            title=title,
            content=content,
            announcement_type=data.get("announcement_type") or "general",
            audience=audience
        )
        db.session.add(announcement)
        log_authority_action(current_user, "announcement", None, {"title": title, "audience": audience})
        db.session.commit()

        return success_response("Announcement published", data={"id": announcement.id}), 201

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Create announcement error: {str(e)}")
        return error_response("Failed to publish announcement", 500)


@authority_bp.route("/announcements", methods=["GET"])
@token_required
def list_announcements(current_user):
    """Announcements addressed to 'all' or the caller's role"""
    limit = min(request.args.get("limit", 20, type=int), 100)
    query = Announcement.query
    institution_id = current_user.profile.institution_id if current_user.profile else None
    if institution_id:
        query = query.filter(or_(Announcement.institution_id == institution_id, Announcement.institution_id.is_(None)))

    visible = [
        a for a in query.order_by(Announcement.created_at.desc()).all()
        if "all" in (a.audience or []) or current_user.role in (a.audience or [])
    ][:limit]

    return jsonify({
        "status": "success",
        "data": {
            "announcements": [
                {
                    "id": a.id,
                    "title": a.title,
                    "content": a.content,
                    "announcement_type": a.announcement_type,
                    "audience": a.audience,
                    "created_by": a.created_by,
                    "created_at": a.created_at.isoformat() if a.created_at else None
                }
                for a in visible
            ]
        }
    })


# ============================================================================
# USER MANAGEMENT
# ============================================================================

@authority_bp.route("/authority/institutions", methods=["POST"])
@token_required
@roles_required("authority")
def create_institution(current_user):
    """Body: {"name", "code"?, "contact_email"?}; the creator joins it"""
    try:
        data = request.get_json(silent=True) or {}
        name = (data.get("name") or "").strip()
        if not name:
            return error_response("Institution name is required")

        code = (data.get("code") or secrets.token_hex(3)).strip().upper()
        if Institution.query.filter_by(code=code).first():
            return error_response("Institution code already in use", 409)

        institution = Institution(name=name, code=code, contact_email=data.get("contact_email"))
        db.session.add(institution)
        db.session.flush()
        current_user.profile.institution_id = institution.id
        log_authority_action(current_user, "create_institution", None, {"institution_id": institution.id, "code": code})
        db.session.commit()

        return success_response("Institution created", data={"id": institution.id, "code": code}), 201

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Create institution error: {str(e)}")
        return error_response("Failed to create institution", 500)


@authority_bp.route("/authority/users", methods=["GET"])
@token_required
@roles_required("authority")
def list_users(current_user):
    """Filters: role, year, section, branch, course, department, search"""
    users = filtered_users(current_user, request.args).all()
    data = []
    for user in users:
        row = profile_summary(user)
        row.update({
            "email": user.email,
            "active": user.active,
            "section": user.profile.section,
            "branch": user.profile.branch,
            "course": user.profile.course,
            "daily_streak": user.profile.daily_streak,
            "connections_count": user.profile.connections_count
        })
        data.append(row)
    return jsonify({"status": "success", "data": {"users": data, "total": len(data)}})


@authority_bp.route("/authority/users/<int:user_id>", methods=["PATCH"])
@token_required
@roles_required("authority")
def update_user(current_user, user_id):
    """Body may contain role, department, course, section, branch, year_of_study"""
    try:
        user = managed_users(current_user).filter(User.id == user_id).first()
        if not user:
            return error_response("User not found", 404)

        data = request.get_json(silent=True) or {}
        changes = {}

        if "role" in data:
            if data["role"] not in ROLES:
                raise ActionError(f"Role must be one of: {', '.join(ROLES)}")
            if user.id == current_user.id and data["role"] != "authority":
                raise ActionError("You cannot change your own role")
            changes["role"] = [user.role, data["role"]]
            user.role = data["role"]

        for field in MANAGEABLE_FIELDS:
            if field in data:
                changes[field] = [getattr(user.profile, field), data[field]]
                setattr(user.profile, field, data[field] or None)
        if not user.profile.department:
            user.profile.department = "General"

        if "year_of_study" in data:
            try:
                year = int(data["year_of_study"]) if data["year_of_study"] not in (None, "") else None
            except (TypeError, ValueError):
                raise ActionError("Invalid year of study")
            changes["year_of_study"] = [user.profile.year_of_study, year]
            user.profile.year_of_study = year

        if not changes:
            return error_response("Nothing to update")

        log_authority_action(current_user, "update_user", user.id, {"changes": changes})
        db.session.commit()
        return success_response("User updated", data=profile_summary(user))

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Update user error: {str(e)}")
        return error_response("Failed to update user", 500)


@authority_bp.route("/authority/users/<int:user_id>/deactivate", methods=["POST"])
@token_required
@roles_required("authority")
def deactivate_user(current_user, user_id):
    try:
        if user_id == current_user.id:
            return error_response("You cannot deactivate yourself")
        user = managed_users(current_user).filter(User.id == user_id).first()
        if not user:
            return error_response("User not found", 404)

        user.active = False
        log_authority_action(current_user, "deactivate_user", user.id, {
            "user_name": user.profile.full_name,
            "user_email": user.email
        })
        db.session.commit()
        return success_response("User deactivated")

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Deactivate user error: {str(e)}")
        return error_response("Failed to deactivate user", 500)


@authority_bp.route("/authority/users/export", methods=["GET"])
@token_required
@roles_required("authority")
def export_users(current_user):
    """Filtered user list as an xlsx download"""
    try:
        users = filtered_users(current_user, request.args).all()
        content = user_export([u.profile for u in users])

        filters = {k: v for k, v in request.args.items() if v}
        log_authority_action(current_user, "export", None, {"count": len(users), "filters": filters})
        db.session.commit()

        return send_file(
            io.BytesIO(content),
            mimetype=XLSX_MIMETYPE,
            as_attachment=True,
            download_name=f"users_export_{datetime.date.today().isoformat()}.xlsx"
        )

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Export users error: {str(e)}")
        return error_response("Failed to export users", 500)


@authority_bp.route("/authority/audit-log", methods=["GET"])
@token_required
@roles_required("authority")
def audit_log(current_user):
    """Most recent audit entries; ?action_type= filter"""
    limit = min(request.args.get("limit", 50, type=int), 500)
    query = scoped_audit_log(current_user)
    action_type = request.args.get("action_type")
    if action_type:
        query = query.filter(AuthorityAuditLog.action_type == action_type)

    entries = query.order_by(AuthorityAuditLog.created_at.desc(), AuthorityAuditLog.id.desc()).limit(limit).all()
    return jsonify({
        "status": "success",
        "data": {
            "entries": [
                {
                    "id": e.id,
                    "authority_user_id": e.authority_user_id,
                    "action_type": e.action_type,
                    "target_user_id": e.target_user_id,
                    "details": e.details,
                    "ip_address": e.ip_address,
                    "created_at": e.created_at.isoformat() if e.created_at else None
                }
                for e in entries
            ]
        }
    })
