"""
CampusConnect - Messaging
One-to-one conversations between connected users.
New messages are pushed to both participants over Socket.IO; the
`since` parameter on the message list covers clients that poll instead.
"""

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
import datetime

from campusconnect.models import User, Conversation, Message
from campusconnect.extensions import db
from campusconnect.sockets import push_to_user
from .connections import are_connected
from .helpers import (
    ActionError, token_required, profile_summary, parse_datetime,
    success_response, error_response
)

messages_bp = Blueprint("messages", __name__)

MAX_MESSAGE_LENGTH = 5000


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def get_or_create_conversation(user, partner_id):
    """Conversation rows store the lower user id as participant1"""
    if partner_id == user.id:
        raise ActionError("Cannot message yourself")
    partner = User.query.get(partner_id)
    if not partner:
        raise ActionError("User not found", 404)
    if not are_connected(user.id, partner_id):
        raise ActionError("You must be connected to message this user", 403)

    low, high = sorted([user.id, partner_id])
    conversation = Conversation.query.filter_by(participant1_id=low, participant2_id=high).first()
    created = False
    if not conversation:
        conversation = Conversation(
            participant1_id=low,
            participant2_id=high,
            institution_id=user.profile.institution_id if user.profile else None
        )
        db.session.add(conversation)
        db.session.flush()
        created = True
    return conversation, created


def load_conversation(user, conversation_id):
    conversation = Conversation.query.get(conversation_id)
    if not conversation:
        raise ActionError("Conversation not found", 404)
    if not conversation.includes(user.id):
        raise ActionError("Not a participant in this conversation", 403)
    return conversation


def send_message(user, conversation, content, message_type="text"):
    if content is not None and not isinstance(content, str):
        raise ActionError("Message content must be text")
    if not are_connected(user.id, conversation.partner_of(user.id)):
        raise ActionError("You must be connected to message this user", 403)

    content = (content or "").strip()
    if not content:
        raise ActionError("Message cannot be empty")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ActionError(f"Message too long (maximum {MAX_MESSAGE_LENGTH} characters)")

    message = Message(
        conversation_id=conversation.id,
        sender_id=user.id,
        content=content,
        message_type=message_type
    )
    db.session.add(message)
    conversation.last_message_at = datetime.datetime.utcnow()
    db.session.flush()
    return message


def serialize_conversation(conversation, viewer_id):
    partner = User.query.get(conversation.partner_of(viewer_id))
    last_message = conversation.messages.order_by(Message.created_at.desc(), Message.id.desc()).first()
    unread = conversation.messages.filter(
        Message.sender_id != viewer_id,
        Message.read_at.is_(None)
    ).count()
    return {
        "id": conversation.id,
        "partner": profile_summary(partner) if partner else None,
        "last_message": {
            "id": last_message.id,
            "preview": last_message.content[:100],
            "created_at": last_message.created_at.isoformat(),
            "from_me": last_message.sender_id == viewer_id
        } if last_message else None,
        "last_message_at": conversation.last_message_at.isoformat() if conversation.last_message_at else None,
        "unread_count": unread
    }


# ============================================================================
# CONVERSATIONS
# ============================================================================

@messages_bp.route("/messages/conversations", methods=["GET"])
@token_required
def list_conversations(current_user):
    """All conversations, most recent activity first"""
    try:
        conversations = Conversation.query.filter(
            or_(Conversation.participant1_id == current_user.id,
                Conversation.participant2_id == current_user.id)
        ).all()
        conversations.sort(key=lambda c: c.last_message_at or c.created_at, reverse=True)

        data = [serialize_conversation(c, current_user.id) for c in conversations]
        return jsonify({
            "status": "success",
            "data": {
                "conversations": data,
                "total_unread": sum(c["unread_count"] for c in data)
            }
        })

    except Exception as e:
        current_app.logger.error(f"Get conversations error: {str(e)}")
        return error_response("Failed to load conversations", 500)


@messages_bp.route("/messages/conversations/with/<int:partner_id>", methods=["POST"])
@token_required
def start_conversation(current_user, partner_id):
    """Open (or return the existing) conversation with a connected user"""
    try:
        conversation, created = get_or_create_conversation(current_user, partner_id)
        db.session.commit()
        return success_response(
            "Conversation started" if created else "Conversation found",
            data=serialize_conversation(conversation, current_user.id)
        ), 201 if created else 200

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except IntegrityError:
        db.session.rollback()
        return error_response("Conversation already exists, retry", 409)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Start conversation error: {str(e)}")
        return error_response("Failed to start conversation", 500)


@messages_bp.route("/messages/conversations/<int:conversation_id>/messages", methods=["GET"])
@token_required
def get_messages(current_user, conversation_id):
    """
    Messages in a conversation, oldest first

    Query params:
    - since: ISO timestamp, only newer messages (polling)
    - limit: max messages (default 50, max 200)

    Marks the partner's messages as read.
    """
    try:
        conversation = load_conversation(current_user, conversation_id)
        limit = min(request.args.get("limit", 50, type=int), 200)

        query = conversation.messages
        since = request.args.get("since")
        if since:
            query = query.filter(Message.created_at > parse_datetime(since, "since"))

        messages = query.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit).all()
        messages.reverse()

        conversation.messages.filter(
            Message.sender_id != current_user.id,
            Message.read_at.is_(None)
        ).update({"read_at": datetime.datetime.utcnow()}, synchronize_session=False)
        db.session.commit()

        return jsonify({
            "status": "success",
            "data": {
                "conversation_id": conversation.id,
                "messages": [m.to_dict() for m in messages]
            }
        })

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Get messages error: {str(e)}")
        return error_response("Failed to load messages", 500)


@messages_bp.route("/messages/conversations/<int:conversation_id>/messages", methods=["POST"])
@token_required
def post_message(current_user, conversation_id):
    """Body: {"content": "...", "message_type": "text"}"""
    try:
        conversation = load_conversation(current_user, conversation_id)
        data = request.get_json(silent=True) or {}

        message = send_message(current_user, conversation, data.get("content"), data.get("message_type") or "text")
        db.session.commit()

        payload = message.to_dict()
        push_to_user(conversation.participant1_id, "new_message", payload)
        push_to_user(conversation.participant2_id, "new_message", payload)

        return success_response("Message sent", data=payload), 201

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Send message error: {str(e)}")
        return error_response("Failed to send message", 500)


@messages_bp.route("/messages/unread-count", methods=["GET"])
@token_required
def unread_count(current_user):
    count = Message.query.join(Conversation).filter(
        or_(Conversation.participant1_id == current_user.id,
            Conversation.participant2_id == current_user.id),
        Message.sender_id != current_user.id,
        Message.read_at.is_(None)
    ).count()
    return jsonify({"status": "success", "data": {"unread_count": count}})
