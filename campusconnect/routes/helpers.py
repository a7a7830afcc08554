# routes/helpers.py
# Shared helper functions used across the API routes

from flask import request, jsonify, current_app
from werkzeug.utils import secure_filename
from functools import wraps
from flask_login import current_user
import jwt
import datetime
import os
import secrets

from campusconnect.models import User, Notification
from campusconnect.extensions import db

# File upload settings
ALLOWED_IMAGE_EXT = {"png", "jpg", "jpeg"}
ALLOWED_DOCUMENT_EXT = {"pdf", "doc", "docx", "txt", "ppt", "pptx", "xlsx", "zip"}


class ActionError(Exception):
    """A rejected action; the message is shown to the user verbatim"""

    def __init__(self, message, status_code=400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def generate_tokens_for_user(user):
    """Generate JWT access and refresh tokens"""
    secret = current_app.config["SECRET_KEY"]
    now = datetime.datetime.utcnow()

    access_payload = {
        "user_id": user.id,
        "email": user.email,
        "role": user.role,
        "type": "access",
        "exp": now + datetime.timedelta(minutes=current_app.config.get("ACCESS_TOKEN_MINUTES", 30))
    }

    refresh_payload = {
        "user_id": user.id,
        "email": user.email,
        "type": "refresh",
        "exp": now + datetime.timedelta(days=current_app.config.get("REFRESH_TOKEN_DAYS", 7))
    }

    access_token = jwt.encode(access_payload, secret, algorithm="HS256")
    refresh_token = jwt.encode(refresh_payload, secret, algorithm="HS256")

    return access_token, refresh_token


def decode_token(token):
    """Decode JWT token"""
    secret = current_app.config["SECRET_KEY"]
    return jwt.decode(token, secret, algorithms=["HS256"])


def user_from_token(token, expected_type="access"):
    """Resolve an active user from a token, or None"""
    try:
        payload = decode_token(token)
    except jwt.InvalidTokenError:
        return None
    if payload.get("type") != expected_type:
        return None
    user = User.query.get(payload.get("user_id"))
    if not user or not user.is_active:
        return None
    return user


def token_required(f):
    """Authentication decorator - passes the current user as first argument"""
    @wraps(f)
    def decorated(*args, **kwargs):
        # Try session-based authentication first
        if current_user and getattr(current_user, "is_authenticated", False):
            return f(current_user._get_current_object(), *args, **kwargs)

        # Try token-based authentication
        auth_header = request.headers.get("Authorization")
        token = None

        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.split(" ", 1)[1]

        if not token:
            token = request.cookies.get("access_token")

        if not token:
            return error_response("Authentication required. Please login.", 401)

        try:
            payload = decode_token(token)
        except jwt.ExpiredSignatureError:
            return error_response("Token expired. Please refresh your session.", 401)
        except jwt.InvalidTokenError:
            return error_response("Invalid token.", 401)

        if payload.get("type") != "access":
            return error_response("Invalid token.", 401)

        user = User.query.get(payload.get("user_id"))
        if not user:
            return error_response("User not found.", 401)
        if not user.is_active:
            return error_response("Account is deactivated.", 403)

        return f(user, *args, **kwargs)
    return decorated


def roles_required(*roles):
    """Restrict an endpoint to the given roles (use below @token_required)"""
    def wrapper(f):
        @wraps(f)
        def decorated(user, *args, **kwargs):
            if user.role not in roles:
                return error_response("Access denied for your role.", 403)
            return f(user, *args, **kwargs)
        return decorated
    return wrapper


def save_file(file, folder, allowed_extensions):
    """Securely save uploaded file with unique name"""
    if not file or not file.filename:
        return None

    ext = file.filename.rsplit(".", 1)[-1].lower()
    if ext not in allowed_extensions:
        raise ActionError(f"File type .{ext} not allowed")

    upload_folder = os.path.join(current_app.config.get("UPLOAD_FOLDER", "static/uploads"), folder)
    os.makedirs(upload_folder, exist_ok=True)

    unique_id = secrets.token_hex(8)
    safe_filename = secure_filename(file.filename)
    final_name = f"{unique_id}_{safe_filename}"

    file_path = os.path.join(upload_folder, final_name)
    file.save(file_path)

    return f"uploads/{folder}/{final_name}"


def notify(user_id, notification_type, title, description, created_by=None, action_type=None, action_id=None):
    """Queue an in-app notification on the current session"""
    notification = Notification(
        user_id=user_id,
        notification_type=notification_type,
        title=title,
        description=description,
        created_by=created_by,
        action_type=action_type,
        action_id=action_id
    )
    db.session.add(notification)
    return notification


def get_json_body():
    """JSON body or form fields as a plain dict"""
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def parse_date(value, field="date"):
    """YYYY-MM-DD string to date"""
    if isinstance(value, datetime.date):
        return value
    try:
        return datetime.date.fromisoformat(str(value).strip())
    except (TypeError, ValueError):
        raise ActionError(f"Invalid {field}, expected YYYY-MM-DD")


def parse_datetime(value, field="datetime"):
    try:
        return datetime.datetime.fromisoformat(str(value).strip().replace("Z", "+00:00")).replace(tzinfo=None)
    except (TypeError, ValueError):
        raise ActionError(f"Invalid {field}, expected ISO format")


def profile_summary(user):
    """Compact public view of a user for list responses"""
    profile = user.profile
    return {
        "id": user.id,
        "full_name": profile.full_name if profile else None,
        "role": user.role,
        "department": profile.department if profile else None,
        "year_of_study": profile.year_of_study if profile else None,
        "profile_picture_url": profile.profile_picture_url if profile else None,
        "institution_id": profile.institution_id if profile else None
    }


def success_response(message, data=None, redirect_url=None):
    """Standard success response format"""
    response = {"status": "success", "message": message}
    if data is not None:
        response["data"] = data
    if redirect_url:
        response["redirect"] = redirect_url
    return jsonify(response)


def error_response(message, status_code=400, errors=None):
    """Standard error response format"""
    response = {"status": "error", "message": message}
    if errors:
        response["errors"] = errors
    return jsonify(response), status_code
