# sockets.py
# Socket.IO push channel - each authenticated client joins the room "user:<id>"
import logging

from flask import request
from flask_socketio import join_room, emit

from campusconnect.extensions import socketio

logger = logging.getLogger(__name__)


def user_room(user_id):
    return f"user:{user_id}"


def push_to_user(user_id, event, payload):
    """Best-effort server push; a delivery failure never fails the request"""
    try:
        socketio.emit(event, payload, to=user_room(user_id))
    except Exception as e:
        logger.warning(f"Push {event} to user {user_id} failed: {e}")


@socketio.on("connect")
def handle_connect(auth=None):
    """Client connects with {"token": <access token>} or ?token=<access token>"""
    from campusconnect.routes.helpers import user_from_token

    token = (auth or {}).get("token") if isinstance(auth, dict) else None
    token = token or request.args.get("token")
    user = user_from_token(token) if token else None
    if not user:
        logger.info("Rejected socket connection without a valid token")
        return False

    join_room(user_room(user.id))
    emit("connected", {"ok": True, "user_id": user.id})
