"""
CampusConnect - Dashboards
One endpoint; the caller's role picks the view builder.
"""

from flask import Blueprint, jsonify, current_app
from sqlalchemy import or_, func
import datetime

from campusconnect.models import (
    User, Profile, ConnectionRequest, MentoringRelationship, Notification, Schedule,
    Attendance, ApprovalRequest, AuthorityAuditLog, WorkAssignment, CampusEvent, Message,
    Conversation
)
from campusconnect.utils import today
from .attendance import attendance_summary
from .authority import scoped_approvals, scoped_audit_log
from .schedules import scoped_schedules
from .helpers import token_required, profile_summary, error_response

dashboard_bp = Blueprint("dashboard", __name__)


def _weekday(day):
    """Schedule weekday (0 = Sunday) for a date"""
    return (day.weekday() + 1) % 7


def _common(user):
    profile = user.profile
    unread_notifications = Notification.query.filter_by(user_id=user.id, read=False).count()
    pending_connections = ConnectionRequest.query.filter_by(receiver_id=user.id, status="pending").count()
    unread_messages = Message.query.join(Conversation).filter(
        or_(Conversation.participant1_id == user.id, Conversation.participant2_id == user.id),
        Message.sender_id != user.id,
        Message.read_at.is_(None)
    ).count()
    upcoming_events = CampusEvent.query.filter(
        CampusEvent.is_active.is_(True),
        CampusEvent.event_date >= datetime.datetime.utcnow()
    ).order_by(CampusEvent.event_date).limit(3).all()

    return {
        "profile": profile_summary(user),
        "daily_streak": profile.daily_streak,
        "connections_count": profile.connections_count,
        "pending_connection_requests": pending_connections,
        "unread_notifications": unread_notifications,
        "unread_messages": unread_messages,
        "upcoming_events": [
            {"id": e.id, "title": e.title, "event_date": e.event_date.isoformat(), "location": e.location}
            for e in upcoming_events
        ]
    }


def _todays_classes(query):
    return [s.to_dict() for s in query.filter(Schedule.day_of_week == _weekday(today()))
            .order_by(Schedule.start_time).all()]


def student_dashboard(user):
    profile = user.profile
    query = scoped_schedules(user)
    if profile.year_of_study is not None:
        query = query.filter(or_(Schedule.target_year.is_(None), Schedule.target_year == profile.year_of_study))
    if profile.section:
        query = query.filter(or_(Schedule.target_section.is_(None), Schedule.target_section == profile.section))

    mentors = MentoringRelationship.query.filter_by(mentee_id=user.id, status="active").count()
    open_assignments = WorkAssignment.query.filter(
        WorkAssignment.assigned_to == user.id,
        WorkAssignment.status != "completed"
    ).count()

    return {
        "todays_classes": _todays_classes(query),
        "attendance": attendance_summary(user.id),
        "active_mentors": mentors,
        "open_assignments": open_assignments
    }


def mentor_dashboard(user):
    relationships = MentoringRelationship.query.filter_by(mentor_id=user.id)
    assigned = WorkAssignment.query.filter_by(assigned_by=user.id)
    return {
        "active_mentees": relationships.filter_by(status="active").count(),
        "pending_mentee_requests": relationships.filter_by(status="pending").count(),
        "assignments_given": assigned.count(),
        "assignments_completed": assigned.filter_by(status="completed").count()
    }


def teacher_dashboard(user):
    teaching = scoped_schedules(user).filter(Schedule.teacher_name == user.profile.full_name)
    marked_today = Attendance.query.filter_by(marked_by=user.id, attendance_date=today()).count()
    data = mentor_dashboard(user)
    data.update({
        "todays_classes": _todays_classes(teaching),
        "weekly_classes": teaching.count(),
        "attendance_marked_today": marked_today
    })
    return data


def authority_dashboard(user):
    institution_id = user.profile.institution_id
    users = User.query.join(Profile)
    if institution_id:
        users = users.filter(Profile.institution_id == institution_id)

    by_role = {}
    for role, count in users.with_entities(User.role, func.count(User.id)).group_by(User.role).all():
        by_role[role] = count

    recent = scoped_audit_log(user).order_by(AuthorityAuditLog.created_at.desc()).limit(5).all()
    return {
        "users_by_role": by_role,
        "total_users": sum(by_role.values()),
        "inactive_users": users.filter(User.active.is_(False)).count(),
        "pending_approvals": scoped_approvals(user).filter(ApprovalRequest.status == "pending").count(),
        "schedules": scoped_schedules(user).count(),
        "recent_actions": [
            {"action_type": a.action_type, "target_user_id": a.target_user_id,
             "created_at": a.created_at.isoformat() if a.created_at else None}
            for a in recent
        ]
    }


DASHBOARD_BUILDERS = {
    "student": student_dashboard,
    "mentor": mentor_dashboard,
    "teacher": teacher_dashboard,
    "authority": authority_dashboard,
}


@dashboard_bp.route("/dashboard", methods=["GET"])
@token_required
def get_dashboard(current_user):
    builder = DASHBOARD_BUILDERS.get(current_user.role)
    if not builder:
        return error_response(f"No dashboard for role '{current_user.role}'", 403)

    try:
        data = _common(current_user)
        data.update(builder(current_user))
        data["role"] = current_user.role
        return jsonify({"status": "success", "data": data})

    except Exception as e:
        current_app.logger.error(f"Dashboard error for user {current_user.id}: {str(e)}")
        return error_response("Failed to load dashboard", 500)
