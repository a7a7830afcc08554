"""
CampusConnect - Study Resources
Multipart uploads stored under UPLOAD_FOLDER; downloads bump a counter.
"""

from flask import Blueprint, request, jsonify, current_app, send_from_directory
from sqlalchemy import or_
import os

from campusconnect.models import User, Resource
from campusconnect.extensions import db
from .helpers import (
    ActionError, token_required, save_file, profile_summary,
    success_response, error_response, ALLOWED_DOCUMENT_EXT, ALLOWED_IMAGE_EXT
)

resources_bp = Blueprint("resources", __name__)

RESOURCE_TYPES = ("notes", "slides", "assignment", "paper", "book", "other")


def serialize_resource(resource):
    return {
        "id": resource.id,
        "title": resource.title,
        "description": resource.description,
        "subject": resource.subject,
        "resource_type": resource.resource_type,
        "tags": resource.tags or [],
        "file_url": resource.file_url,
        "file_size": resource.file_size,
        "downloads_count": resource.downloads_count,
        "uploaded_by": profile_summary(User.query.get(resource.user_id)),
        "created_at": resource.created_at.isoformat() if resource.created_at else None
    }


@resources_bp.route("/resources", methods=["GET"])
@token_required
def list_resources(current_user):
    """Filters: subject, resource_type, search, mine=1"""
    query = Resource.query
    institution_id = current_user.profile.institution_id
    if institution_id:
        query = query.filter(or_(Resource.institution_id == institution_id, Resource.institution_id.is_(None)))

    subject = request.args.get("subject", "").strip()
    if subject:
        query = query.filter(Resource.subject == subject)
    resource_type = request.args.get("resource_type", "").strip()
    if resource_type:
        query = query.filter(Resource.resource_type == resource_type)
    search = request.args.get("search", "").strip()
    if search:
        query = query.filter(or_(Resource.title.ilike(f"%{search}%"), Resource.description.ilike(f"%{search}%")))
    if request.args.get("mine"):
        query = query.filter(Resource.user_id == current_user.id)

    resources = query.order_by(Resource.created_at.desc(), Resource.id.desc()).all()
    return jsonify({"status": "success", "data": {"resources": [serialize_resource(r) for r in resources]}})


@resources_bp.route("/resources", methods=["POST"])
@token_required
def upload_resource(current_user):
    """Multipart: file, title, subject, resource_type, description?, tags? (comma separated)"""
    try:
        upload = request.files.get("file")
        if not upload or not upload.filename:
            return error_response("No file uploaded")

        title = (request.form.get("title") or "").strip()
        subject = (request.form.get("subject") or "").strip()
        resource_type = (request.form.get("resource_type") or "other").strip().lower()
        if not title or not subject:
            return error_response("Title and subject are required")
        if resource_type not in RESOURCE_TYPES:
            return error_response(f"Resource type must be one of: {', '.join(RESOURCE_TYPES)}")

        file_url = save_file(upload, "resources", ALLOWED_DOCUMENT_EXT | ALLOWED_IMAGE_EXT)
        stored = os.path.join(current_app.config["UPLOAD_FOLDER"], file_url.split("/", 1)[1])

        tags = [t.strip() for t in (request.form.get("tags") or "").split(",") if t.strip()]
        resource = Resource(
            user_id=current_user.id,
            institution_id=current_user.profile.institution_id,
            title=title,
            description=request.form.get("description"),
            subject=subject,
            resource_type=resource_type,
            tags=tags,
            file_url=file_url,
            file_size=os.path.getsize(stored)
        )
        db.session.add(resource)
        db.session.commit()

        current_app.logger.info(f"User {current_user.id} uploaded resource {resource.id}")
        return success_response("Resource uploaded", data=serialize_resource(resource)), 201

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Upload resource error: {str(e)}")
        return error_response("Failed to upload resource", 500)


@resources_bp.route("/resources/<int:resource_id>/download", methods=["GET"])
@token_required
def download_resource(current_user, resource_id):
    resource = Resource.query.get(resource_id)
    if not resource:
        return error_response("Resource not found", 404)

    try:
        Resource.query.filter(Resource.id == resource.id).update(
            {Resource.downloads_count: Resource.downloads_count + 1}, synchronize_session=False
        )
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Download counter error: {str(e)}")

    relative = resource.file_url.split("/", 1)[1]
    return send_from_directory(current_app.config["UPLOAD_FOLDER"], relative, as_attachment=True)


@resources_bp.route("/resources/<int:resource_id>", methods=["DELETE"])
@token_required
def delete_resource(current_user, resource_id):
    try:
        resource = Resource.query.get(resource_id)
        if not resource:
            return error_response("Resource not found", 404)
        if resource.user_id != current_user.id and current_user.role != "authority":
            return error_response("You can only delete your own resources", 403)

        stored = os.path.join(current_app.config["UPLOAD_FOLDER"], resource.file_url.split("/", 1)[1])
        db.session.delete(resource)
        db.session.commit()

        if os.path.exists(stored):
            os.remove(stored)
        return success_response("Resource deleted")

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Delete resource error: {str(e)}")
        return error_response("Failed to delete resource", 500)
