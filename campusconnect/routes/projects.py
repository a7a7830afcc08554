"""
CampusConnect - Collaborate
Portfolio projects; owners can open them up for collaborators.
"""

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from campusconnect.models import Project, ProjectMember
from campusconnect.extensions import db
from .helpers import (
    ActionError, token_required, notify, parse_date, profile_summary,
    success_response, error_response
)

projects_bp = Blueprint("projects", __name__)

PROJECT_STATUSES = ("planning", "in_progress", "completed", "on_hold")


def serialize_project(project, viewer_id=None):
    members = project.members.count()
    return {
        "id": project.id,
        "title": project.title,
        "description": project.description,
        "technologies": project.technologies or [],
        "status": project.status,
        "github_url": project.github_url,
        "demo_url": project.demo_url,
        "seeking_collaborators": project.seeking_collaborators,
        "max_collaborators": project.max_collaborators,
        "collaborators": members,
        "is_member": viewer_id is not None and project.members.filter_by(user_id=viewer_id).first() is not None,
        "owner": profile_summary(project.owner),
        "start_date": project.start_date.isoformat() if project.start_date else None,
        "end_date": project.end_date.isoformat() if project.end_date else None
    }


def join_project(user, project):
    if project.user_id == user.id:
        raise ActionError("You own this project")
    if not project.seeking_collaborators:
        raise ActionError("This project is not looking for collaborators")
    if project.members.filter_by(user_id=user.id).first():
        raise ActionError("You are already collaborating on this project", 409)
    if project.members.count() >= project.max_collaborators:
        raise ActionError("This project has no open spots", 409)

    db.session.add(ProjectMember(project_id=project.id, user_id=user.id))
    notify(
        project.user_id, "project_join", "New collaborator",
        f"{user.name} joined {project.title}", created_by=user.id,
        action_type="project", action_id=project.id
    )


@projects_bp.route("/projects", methods=["GET"])
@token_required
def list_projects(current_user):
    """Open projects by default; ?mine=1 for own and joined; ?technology= filter"""
    if request.args.get("mine"):
        joined = [m.project_id for m in ProjectMember.query.filter_by(user_id=current_user.id).all()]
        query = Project.query.filter(or_(Project.user_id == current_user.id, Project.id.in_(joined)))
    else:
        query = Project.query.filter(Project.seeking_collaborators.is_(True))

    projects = query.order_by(Project.created_at.desc()).all()
    technology = request.args.get("technology", "").strip().lower()
    if technology:
        projects = [p for p in projects if technology in [t.lower() for t in (p.technologies or [])]]

    return jsonify({
        "status": "success",
        "data": {"projects": [serialize_project(p, current_user.id) for p in projects]}
    })


@projects_bp.route("/projects", methods=["POST"])
@token_required
def create_project(current_user):
    """Body: {"title", "description", "technologies"?, "status"?, "seeking_collaborators"?, "max_collaborators"?}"""
    try:
        data = request.get_json(silent=True) or {}
        title = (data.get("title") or "").strip()
        description = (data.get("description") or "").strip()
        if not title or not description:
            return error_response("Title and description are required")

        status = data.get("status") or "in_progress"
        if status not in PROJECT_STATUSES:
            return error_response(f"Status must be one of: {', '.join(PROJECT_STATUSES)}")

        technologies = data.get("technologies") or []
        if not isinstance(technologies, list):
            return error_response("Technologies must be a list")

        try:
            max_collaborators = int(data.get("max_collaborators") or 5)
        except (TypeError, ValueError):
            return error_response("max_collaborators must be a number")

        project = Project(
            user_id=current_user.id,
            title=title,
            description=description,
            technologies=technologies,
            status=status,
            github_url=data.get("github_url"),
            demo_url=data.get("demo_url"),
            seeking_collaborators=bool(data.get("seeking_collaborators")),
            max_collaborators=max(max_collaborators, 1),
            start_date=parse_date(data["start_date"], "start_date") if data.get("start_date") else None,
            end_date=parse_date(data["end_date"], "end_date") if data.get("end_date") else None
        )
        db.session.add(project)
        db.session.commit()

        return success_response("Project created", data=serialize_project(project, current_user.id)), 201

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Create project error: {str(e)}")
        return error_response("Failed to create project", 500)


@projects_bp.route("/projects/<int:project_id>/join", methods=["POST"])
@token_required
def join(current_user, project_id):
    try:
        project = Project.query.get(project_id)
        if not project:
            return error_response("Project not found", 404)

        join_project(current_user, project)
        db.session.commit()
        return success_response(f"You joined {project.title}", data=serialize_project(project, current_user.id))

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except IntegrityError:
        db.session.rollback()
        return error_response("You are already collaborating on this project", 409)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Join project error: {str(e)}")
        return error_response("Failed to join project", 500)


@projects_bp.route("/projects/<int:project_id>/members", methods=["GET"])
@token_required
def project_members(current_user, project_id):
    project = Project.query.get(project_id)
    if not project:
        return error_response("Project not found", 404)

    owner = profile_summary(project.owner)
    owner["project_role"] = "owner"
    rows = [owner]
    for member in project.members.order_by(ProjectMember.joined_at).all():
        row = profile_summary(member.user)
        row["project_role"] = member.role
        rows.append(row)
    return jsonify({"status": "success", "data": {"members": rows}})


@projects_bp.route("/projects/<int:project_id>", methods=["PATCH"])
@token_required
def update_project(current_user, project_id):
    try:
        project = Project.query.get(project_id)
        if not project:
            return error_response("Project not found", 404)
        if project.user_id != current_user.id:
            return error_response("Only the owner can edit this project", 403)

        data = request.get_json(silent=True) or {}
        if "status" in data:
            if data["status"] not in PROJECT_STATUSES:
                return error_response(f"Status must be one of: {', '.join(PROJECT_STATUSES)}")
            project.status = data["status"]
        for field in ("title", "description", "github_url", "demo_url"):
            if field in data:
                setattr(project, field, data[field])
        if "technologies" in data:
            project.technologies = list(data["technologies"] or [])
        if "seeking_collaborators" in data:
            project.seeking_collaborators = bool(data["seeking_collaborators"])

        db.session.commit()
        return success_response("Project updated", data=serialize_project(project, current_user.id))

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Update project error: {str(e)}")
        return error_response("Failed to update project", 500)


@projects_bp.route("/projects/<int:project_id>", methods=["DELETE"])
@token_required
def delete_project(current_user, project_id):
    try:
        project = Project.query.get(project_id)
        if not project:
            return error_response("Project not found", 404)
        if project.user_id != current_user.id:
            return error_response("Only the owner can delete this project", 403)

        db.session.delete(project)
        db.session.commit()
        return success_response("Project deleted")

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Delete project error: {str(e)}")
        return error_response("Failed to delete project", 500)
