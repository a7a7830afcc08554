"""
CampusConnect - Portfolio
Certificates a user collects and work assigned by mentors/teachers.
"""

from flask import Blueprint, request, jsonify, current_app
import os

from campusconnect.models import User, Certificate, WorkAssignment
from campusconnect.extensions import db
from .helpers import (
    ActionError, token_required, roles_required, save_file, notify, parse_date,
    get_json_body, profile_summary, success_response, error_response,
    ALLOWED_DOCUMENT_EXT, ALLOWED_IMAGE_EXT
)

portfolio_bp = Blueprint("portfolio", __name__)

ASSIGNER_ROLES = ("mentor", "teacher")
ASSIGNMENT_STATUSES = ("pending", "in_progress", "completed")
PRIORITIES = ("low", "medium", "high")


# ============================================================================
# CERTIFICATES
# ============================================================================

def serialize_certificate(cert):
    return {
        "id": cert.id,
        "title": cert.title,
        "issuer": cert.issuer,
        "issue_date": cert.issue_date.isoformat() if cert.issue_date else None,
        "expiry_date": cert.expiry_date.isoformat() if cert.expiry_date else None,
        "certificate_url": cert.certificate_url,
        "verification_id": cert.verification_id
    }


@portfolio_bp.route("/certificates", methods=["GET"])
@token_required
def list_certificates(current_user):
    """Own certificates, or another user's with ?user_id="""
    user_id = request.args.get("user_id", current_user.id, type=int)
    certificates = Certificate.query.filter_by(user_id=user_id).order_by(
        Certificate.issue_date.desc(), Certificate.id.desc()
    ).all()
    return jsonify({"status": "success", "data": {"certificates": [serialize_certificate(c) for c in certificates]}})


@portfolio_bp.route("/certificates", methods=["POST"])
@token_required
def add_certificate(current_user):
    """JSON or multipart: title, issuer, issue_date?, expiry_date?, verification_id?, file?"""
    try:
        data = get_json_body()
        title = (data.get("title") or "").strip()
        issuer = (data.get("issuer") or "").strip()
        if not title or not issuer:
            return error_response("Title and issuer are required")

        issue_date = parse_date(data["issue_date"], "issue_date") if data.get("issue_date") else None
        expiry_date = parse_date(data["expiry_date"], "expiry_date") if data.get("expiry_date") else None
        if issue_date and expiry_date and expiry_date < issue_date:
            raise ActionError("Expiry date cannot be before issue date")

        certificate = Certificate(
            user_id=current_user.id,
            title=title,
            issuer=issuer,
            issue_date=issue_date,
            expiry_date=expiry_date,
            verification_id=data.get("verification_id"),
            certificate_url=save_file(request.files.get("file"), "certificates",
                                      ALLOWED_DOCUMENT_EXT | ALLOWED_IMAGE_EXT) or data.get("certificate_url")
        )
        db.session.add(certificate)
        db.session.commit()

        return success_response("Certificate added", data=serialize_certificate(certificate)), 201

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Add certificate error: {str(e)}")
        return error_response("Failed to add certificate", 500)


@portfolio_bp.route("/certificates/<int:certificate_id>", methods=["DELETE"])
@token_required
def delete_certificate(current_user, certificate_id):
    try:
        certificate = Certificate.query.get(certificate_id)
        if not certificate or certificate.user_id != current_user.id:
            return error_response("Certificate not found", 404)

        stored = None
        if certificate.certificate_url and certificate.certificate_url.startswith("uploads/"):
            stored = os.path.join(current_app.config["UPLOAD_FOLDER"], certificate.certificate_url.split("/", 1)[1])

        db.session.delete(certificate)
        db.session.commit()

        if stored and os.path.exists(stored):
            os.remove(stored)
        return success_response("Certificate deleted")

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Delete certificate error: {str(e)}")
        return error_response("Failed to delete certificate", 500)


# ============================================================================
# WORK ASSIGNMENTS
# ============================================================================

def serialize_assignment(assignment):
    return {
        "id": assignment.id,
        "title": assignment.title,
        "description": assignment.description,
        "due_date": assignment.due_date.isoformat() if assignment.due_date else None,
        "priority": assignment.priority,
        "status": assignment.status,
        "assigned_by": profile_summary(User.query.get(assignment.assigned_by)),
        "assigned_to": profile_summary(User.query.get(assignment.assigned_to))
    }


@portfolio_bp.route("/assignments", methods=["POST"])
@token_required
@roles_required(*ASSIGNER_ROLES)
def create_assignment(current_user):
    """Body: {"assigned_to", "title", "description"?, "due_date"?, "priority"?}"""
    try:
        data = request.get_json(silent=True) or {}
        title = (data.get("title") or "").strip()
        if not title:
            return error_response("Title is required")

        assignee = User.query.get(data.get("assigned_to")) if data.get("assigned_to") else None
        if not assignee or assignee.role != "student":
            return error_response("Assignee must be an existing student", 404)

        priority = (data.get("priority") or "medium").lower()
        if priority not in PRIORITIES:
            return error_response(f"Priority must be one of: {', '.join(PRIORITIES)}")

        assignment = WorkAssignment(
            assigned_by=current_user.id,
            assigned_to=assignee.id,
            title=title,
            description=data.get("description"),
            due_date=parse_date(data["due_date"], "due_date") if data.get("due_date") else None,
            priority=priority
        )
        db.session.add(assignment)
        db.session.flush()
        notify(
            assignee.id, "work_assigned", "New work assigned",
            f"{current_user.name} assigned you: {title}", created_by=current_user.id,
            action_type="work_assignment", action_id=assignment.id
        )
        db.session.commit()

        return success_response("Work assigned", data=serialize_assignment(assignment)), 201

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Create assignment error: {str(e)}")
        return error_response("Failed to assign work", 500)


@portfolio_bp.route("/assignments", methods=["GET"])
@token_required
def list_assignments(current_user):
    """Assigners see what they handed out; everyone else sees what they received. ?status="""
    if current_user.role in ASSIGNER_ROLES:
        query = WorkAssignment.query.filter_by(assigned_by=current_user.id)
    else:
        query = WorkAssignment.query.filter_by(assigned_to=current_user.id)
    status = request.args.get("status")
    if status:
        query = query.filter_by(status=status)

    assignments = query.order_by(WorkAssignment.due_date.is_(None), WorkAssignment.due_date, WorkAssignment.id).all()
    return jsonify({"status": "success", "data": {"assignments": [serialize_assignment(a) for a in assignments]}})


@portfolio_bp.route("/assignments/<int:assignment_id>/status", methods=["PATCH"])
@token_required
def update_assignment_status(current_user, assignment_id):
    """Assignee moves the work along. Body: {"status": "in_progress" | "completed" | "pending"}"""
    try:
        assignment = WorkAssignment.query.get(assignment_id)
        if not assignment:
            return error_response("Assignment not found", 404)
        if assignment.assigned_to != current_user.id:
            return error_response("Only the assignee can update the status", 403)

        status = ((request.get_json(silent=True) or {}).get("status") or "").strip()
        if status not in ASSIGNMENT_STATUSES:
            return error_response(f"Status must be one of: {', '.join(ASSIGNMENT_STATUSES)}")

        assignment.status = status
        if status == "completed":
            notify(
                assignment.assigned_by, "work_completed", "Work completed",
                f"{current_user.name} completed: {assignment.title}", created_by=current_user.id,
                action_type="work_assignment", action_id=assignment.id
            )
        db.session.commit()
        return success_response("Status updated", data=serialize_assignment(assignment))

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Update assignment error: {str(e)}")
        return error_response("Failed to update assignment", 500)
