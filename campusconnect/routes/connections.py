"""
CampusConnect - Connection Request System
pending → accepted / rejected, or cancelled (deleted) by the sender.
Accepted requests are the connections themselves.
"""

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
import datetime

from campusconnect.models import User, Profile, ConnectionRequest
from campusconnect.extensions import db
from .helpers import (
    ActionError, token_required, notify, profile_summary,
    success_response, error_response
)

connections_bp = Blueprint("connections", __name__)

ACTIVE_STATUSES = ("pending", "accepted")


# ============================================================================
# STATE MACHINE
# ============================================================================

def find_pair_request(user_a_id, user_b_id):
    """The single request row for an unordered pair, whichever way it was sent"""
    return ConnectionRequest.query.filter_by(
        pair_key=ConnectionRequest.key_for(user_a_id, user_b_id)
    ).first()


def adjust_connection_counts(user_ids, delta):
    """Bump connections_count for both ends in SQL, never below zero"""
    query = Profile.query.filter(Profile.user_id.in_(user_ids))
    if delta < 0:
        query = query.filter(Profile.connections_count > 0)
    query.update(
        {Profile.connections_count: Profile.connections_count + delta},
        synchronize_session=False
    )


def send_request(sender, receiver_id, message=None):
    """
    Create a pending request from sender to receiver.

    A rejected row for the pair is reused so the pair keeps a single row;
    the unique pair_key turns a concurrent double submit into an IntegrityError.
    """
    if receiver_id == sender.id:
        raise ActionError("Cannot connect with yourself")

    receiver = User.query.get(receiver_id)
    if not receiver or not receiver.is_active:
        raise ActionError("User not found", 404)

    existing = find_pair_request(sender.id, receiver_id)
    if existing:
        if existing.status == "accepted":
            raise ActionError("Already connected", 409)
        if existing.status == "pending":
            raise ActionError("Connection request already pending", 409)

        existing.sender_id = sender.id
        existing.receiver_id = receiver_id
        existing.status = "pending"
        existing.message = message
        existing.created_at = datetime.datetime.utcnow()
        connection_request = existing
    else:
        connection_request = ConnectionRequest(
            sender_id=sender.id,
            receiver_id=receiver_id,
            pair_key=ConnectionRequest.key_for(sender.id, receiver_id),
            status="pending",
            message=message
        )
        db.session.add(connection_request)

    db.session.flush()
    notify(
        receiver_id, "connection_request", "New Connection Request",
        f"{sender.name} wants to connect with you",
        created_by=sender.id, action_type="connection_request", action_id=connection_request.id
    )
    return connection_request


def respond_to_request(user, request_id, accept):
    """
    Receiver accepts or rejects a pending request.

    The status flip is a conditional UPDATE on status='pending', so a second
    accept finds no row to change and never bumps the counters again.
    """
    connection_request = ConnectionRequest.query.get(request_id)
    if not connection_request:
        raise ActionError("Connection request not found", 404)
    if connection_request.receiver_id != user.id:
        raise ActionError("Not authorized to respond to this request", 403)

    new_status = "accepted" if accept else "rejected"
    changed = ConnectionRequest.query.filter_by(id=request_id, status="pending").update(
        {"status": new_status}, synchronize_session=False
    )
    if not changed:
        raise ActionError("Request is not pending", 409)

    if accept:
        adjust_connection_counts([connection_request.sender_id, connection_request.receiver_id], 1)
        notify(
            connection_request.sender_id, "connection_accepted", "Connection Accepted",
            f"{user.name} accepted your connection request",
            created_by=user.id, action_type="user", action_id=user.id
        )

    return new_status


def cancel_request(user, request_id):
    """Sender withdraws a pending request"""
    connection_request = ConnectionRequest.query.get(request_id)
    if not connection_request:
        raise ActionError("Connection request not found", 404)
    if connection_request.sender_id != user.id:
        raise ActionError("Not authorized to cancel this request", 403)
    if connection_request.status != "pending":
        raise ActionError("Request is not pending", 409)

    db.session.delete(connection_request)


def remove_connection(user, other_user_id):
    """Disconnect two users and decrement both counters"""
    connection_request = find_pair_request(user.id, other_user_id)
    if not connection_request or connection_request.status != "accepted":
        raise ActionError("Connection not found", 404)

    db.session.delete(connection_request)
    adjust_connection_counts([user.id, other_user_id], -1)


def connection_status(user, other_user_id):
    """none / sent / received / connected / rejected / self"""
    if other_user_id == user.id:
        return {"status": "self", "request_id": None}

    connection_request = find_pair_request(user.id, other_user_id)
    if not connection_request:
        return {"status": "none", "request_id": None}

    if connection_request.status == "accepted":
        status = "connected"
    elif connection_request.status == "pending":
        status = "sent" if connection_request.sender_id == user.id else "received"
    else:
        status = "rejected"

    return {"status": status, "request_id": connection_request.id}


def connected_user_ids(user_id):
    rows = ConnectionRequest.query.filter(
        or_(ConnectionRequest.sender_id == user_id, ConnectionRequest.receiver_id == user_id),
        ConnectionRequest.status == "accepted"
    ).all()
    return {row.other_party(user_id) for row in rows}


def are_connected(user_a_id, user_b_id):
    connection_request = find_pair_request(user_a_id, user_b_id)
    return bool(connection_request and connection_request.status == "accepted")


def serialize_request(connection_request, viewer_id):
    other = connection_request.receiver if connection_request.sender_id == viewer_id else connection_request.sender
    return {
        "request_id": connection_request.id,
        "sender_id": connection_request.sender_id,
        "receiver_id": connection_request.receiver_id,
        "status": connection_request.status,
        "message": connection_request.message,
        "created_at": connection_request.created_at.isoformat() if connection_request.created_at else None,
        "user": profile_summary(other)
    }


# ============================================================================
# CONNECTION REQUESTS
# ============================================================================

@connections_bp.route("/connections/request/<int:user_id>", methods=["POST"])
@token_required
def send_connection_request(current_user, user_id):
    """
    Send connection request to another user

    Body (optional): {"message": "Hi! Let's connect"}
    """
    try:
        data = request.get_json(silent=True) or {}
        message = (data.get("message") or "").strip() or None

        connection_request = send_request(current_user, user_id, message)
        db.session.commit()

        return success_response(
            "Connection request sent",
            data=serialize_request(connection_request, current_user.id)
        ), 201

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except IntegrityError:
        db.session.rollback()
        return error_response("Connection request already pending", 409)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Send connection request error: {str(e)}")
        return error_response("Failed to send connection request", 500)


@connections_bp.route("/connections/<int:request_id>/accept", methods=["POST"])
@token_required
def accept_connection(current_user, request_id):
    try:
        respond_to_request(current_user, request_id, accept=True)
        db.session.commit()
        return success_response("Connection accepted", data={"request_id": request_id, "status": "accepted"})

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Accept connection error: {str(e)}")
        return error_response("Failed to accept connection", 500)


@connections_bp.route("/connections/<int:request_id>/reject", methods=["POST"])
@token_required
def reject_connection(current_user, request_id):
    try:
        respond_to_request(current_user, request_id, accept=False)
        db.session.commit()
        return success_response("Connection request declined", data={"request_id": request_id, "status": "rejected"})

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Reject connection error: {str(e)}")
        return error_response("Failed to reject connection", 500)


@connections_bp.route("/connections/<int:request_id>", methods=["DELETE"])
@token_required
def cancel_connection_request(current_user, request_id):
    """Cancel a pending connection request you sent"""
    try:
        cancel_request(current_user, request_id)
        db.session.commit()
        return success_response("Connection request cancelled")

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Cancel connection error: {str(e)}")
        return error_response("Failed to cancel connection request", 500)


@connections_bp.route("/connections/remove/<int:user_id>", methods=["DELETE"])
@token_required
def remove_existing_connection(current_user, user_id):
    try:
        remove_connection(current_user, user_id)
        db.session.commit()
        return success_response("Connection removed")

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Remove connection error: {str(e)}")
        return error_response("Failed to remove connection", 500)


# ============================================================================
# VIEW CONNECTIONS
# ============================================================================

@connections_bp.route("/connections", methods=["GET"])
@token_required
def list_connections(current_user):
    """
    Get all accepted connections

    Query params:
    - search: Search by name
    - role: Filter by role
    """
    try:
        ids = connected_user_ids(current_user.id)
        query = User.query.join(Profile).filter(User.id.in_(ids))

        search = request.args.get("search", "").strip()
        if search:
            query = query.filter(Profile.full_name.ilike(f"%{search}%"))

        role = request.args.get("role", "").strip()
        if role:
            query = query.filter(User.role == role)

        users = query.order_by(Profile.full_name).all()

        return jsonify({
            "status": "success",
            "data": {
                "connections": [profile_summary(u) for u in users],
                "total": len(users)
            }
        })

    except Exception as e:
        current_app.logger.error(f"List connections error: {str(e)}")
        return error_response("Failed to load connections", 500)


@connections_bp.route("/connections/pending", methods=["GET"])
@token_required
def pending_requests(current_user):
    """Pending requests you sent and pending requests you received"""
    try:
        sent = ConnectionRequest.query.filter_by(
            sender_id=current_user.id, status="pending"
        ).order_by(ConnectionRequest.created_at.desc()).all()

        received = ConnectionRequest.query.filter_by(
            receiver_id=current_user.id, status="pending"
        ).order_by(ConnectionRequest.created_at.desc()).all()

        return jsonify({
            "status": "success",
            "data": {
                "sent": [serialize_request(r, current_user.id) for r in sent],
                "received": [serialize_request(r, current_user.id) for r in received],
                "total_sent": len(sent),
                "total_received": len(received)
            }
        })

    except Exception as e:
        current_app.logger.error(f"Pending requests error: {str(e)}")
        return error_response("Failed to load pending requests", 500)


@connections_bp.route("/connections/status/<int:user_id>", methods=["GET"])
@token_required
def get_connection_status(current_user, user_id):
    return jsonify({"status": "success", "data": connection_status(current_user, user_id)})


@connections_bp.route("/connections/suggestions", methods=["GET"])
@token_required
def connection_suggestions(current_user):
    """
    People you may know: same institution first, then same department.
    Anyone you already share a request row with is excluded.
    """
    try:
        profile = current_user.profile
        limit = min(request.args.get("limit", 10, type=int), 50)

        rows = ConnectionRequest.query.filter(
            or_(ConnectionRequest.sender_id == current_user.id,
                ConnectionRequest.receiver_id == current_user.id)
        ).all()
        excluded_ids = {current_user.id} | {row.other_party(current_user.id) for row in rows}

        candidates = User.query.join(Profile).filter(
            User.id.notin_(excluded_ids),
            User.active.is_(True)
        ).all()

        suggestions = []
        for user in candidates:
            score = 0
            reasons = []
            if profile and profile.institution_id and user.profile.institution_id == profile.institution_id:
                score += 50
                reasons.append("Same institution")
            if profile and user.profile.department == profile.department:
                score += 30
                reasons.append("Same department")
            if profile and profile.year_of_study and user.profile.year_of_study == profile.year_of_study:
                score += 10
                reasons.append("Same year")
            if profile and profile.skills and user.profile.skills:
                common = {s.lower() for s in profile.skills} & {s.lower() for s in user.profile.skills}
                score += len(common) * 5
            if score:
                suggestions.append({
                    "user": profile_summary(user),
                    "match_score": min(score, 100),
                    "reasons": reasons
                })

        suggestions.sort(key=lambda s: s["match_score"], reverse=True)

        return jsonify({
            "status": "success",
            "data": {"suggestions": suggestions[:limit], "total": len(suggestions)}
        })

    except Exception as e:
        current_app.logger.error(f"Connection suggestions error: {str(e)}")
        return error_response("Failed to load suggestions", 500)


@connections_bp.route("/connections/mutual/<int:user_id>", methods=["GET"])
@token_required
def mutual_connections(current_user, user_id):
    try:
        mutual_ids = connected_user_ids(current_user.id) & connected_user_ids(user_id)
        users = User.query.filter(User.id.in_(mutual_ids)).all() if mutual_ids else []

        return jsonify({
            "status": "success",
            "data": {
                "mutual_connections": [profile_summary(u) for u in users],
                "count": len(users)
            }
        })

    except Exception as e:
        current_app.logger.error(f"Mutual connections error: {str(e)}")
        return error_response("Failed to find mutual connections", 500)
