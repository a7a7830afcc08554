"""
CampusConnect - Notifications
"""

from flask import Blueprint, request, jsonify, current_app

from campusconnect.models import Notification
from campusconnect.extensions import db
from .helpers import token_required, success_response, error_response

notifications_bp = Blueprint("notifications", __name__)


@notifications_bp.route("/notifications", methods=["GET"])
@token_required
def list_notifications(current_user):
    """Newest first; ?unread=1 for unread only"""
    limit = min(request.args.get("limit", 30, type=int), 100)
    query = Notification.query.filter_by(user_id=current_user.id)
    if request.args.get("unread"):
        query = query.filter_by(read=False)

    notifications = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
    return jsonify({
        "status": "success",
        "data": {
            "notifications": [
                {
                    "id": n.id,
                    "type": n.notification_type,
                    "title": n.title,
                    "description": n.description,
                    "action_type": n.action_type,
                    "action_id": n.action_id,
                    "read": n.read,
                    "created_at": n.created_at.isoformat() if n.created_at else None
                }
                for n in notifications
            ],
            "unread_count": Notification.query.filter_by(user_id=current_user.id, read=False).count()
        }
    })


@notifications_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
@token_required
def mark_read(current_user, notification_id):
    try:
        notification = Notification.query.get(notification_id)
        if not notification or notification.user_id != current_user.id:
            return error_response("Notification not found", 404)

        notification.read = True
        db.session.commit()
        return success_response("Notification marked as read")

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Mark notification error: {str(e)}")
        return error_response("Failed to update notification", 500)


@notifications_bp.route("/notifications/read-all", methods=["POST"])
@token_required
def mark_all_read(current_user):
    try:
        updated = Notification.query.filter_by(user_id=current_user.id, read=False).update(
            {Notification.read: True}, synchronize_session=False
        )
        db.session.commit()
        return success_response(f"{updated} notifications marked as read", data={"updated": updated})

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Mark all notifications error: {str(e)}")
        return error_response("Failed to update notifications", 500)
