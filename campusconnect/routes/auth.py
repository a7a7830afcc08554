# routes/auth.py
from flask import Blueprint, request, current_app, make_response
from werkzeug.security import generate_password_hash, check_password_hash
from flask_login import login_user, logout_user
import datetime
import re

from campusconnect.models import User, Profile, Institution
from campusconnect.extensions import db
from campusconnect.utils import send_welcome_email
from .helpers import (
    generate_tokens_for_user, user_from_token, token_required,
    success_response, error_response
)

auth_bp = Blueprint("auth", __name__)

# ============================================================================
# CONSTANTS
# ============================================================================
SELF_REGISTER_ROLES = ["student", "mentor", "teacher"]
EMAIL_PATTERN = r'^[^\s@]+@[^\s@]+\.[^\s@]+$'


def serialize_session(user):
    profile = user.profile
    return {
        "id": user.id,
        "email": user.email,
        "role": user.role,
        "full_name": profile.full_name if profile else None,
        "institution_id": profile.institution_id if profile else None
    }


# ============================================================================
# REGISTER
# ============================================================================
@auth_bp.route("/auth/register", methods=["POST"])
def register():
    """
    Create account + profile

    Body: {
        "email", "password", "full_name", "role", "department",
        "year_of_study"?, "section"?, "branch"?, "institution_code"?
    }
    """
    try:
        data = request.get_json(silent=True)
        if not data:
            return error_response("No data provided")

        email = data.get("email", "").strip().lower()
        password = data.get("password", "")
        full_name = data.get("full_name", "").strip()
        role = data.get("role", "student").strip().lower()
        department = data.get("department", "").strip() or "General"

        if not all([email, password, full_name]):
            return error_response("Email, password and full name are required")
        if not re.match(EMAIL_PATTERN, email):
            return error_response("Invalid email format")
        if len(password) < 6:
            return error_response("Password must be at least 6 characters")
        if role not in SELF_REGISTER_ROLES:
            return error_response("Invalid role")

        if User.query.filter_by(email=email).first():
            return error_response("Email already registered", 409)

        institution_id = None
        institution_code = (data.get("institution_code") or "").strip().upper()
        if institution_code:
            institution = Institution.query.filter_by(code=institution_code).first()
            if not institution:
                return error_response("Invalid institution code", 404)
            institution_id = institution.id

        year = data.get("year_of_study")
        try:
            year = int(year) if year not in (None, "") else None
        except (TypeError, ValueError):
            return error_response("Invalid year of study")

        new_user = User(
            email=email,
            password_hash=generate_password_hash(password),
            role=role
        )
        db.session.add(new_user)
        db.session.flush()

        profile = Profile(
            user_id=new_user.id,
            full_name=full_name,
            email=email,
            department=department,
            year_of_study=year,
            section=data.get("section") or None,
            branch=data.get("branch") or None,
            course=data.get("course") or None,
            institution_id=institution_id
        )
        db.session.add(profile)
        db.session.commit()

        send_welcome_email(email, full_name)

        return success_response(
            "Registration complete!",
            data={"user": serialize_session(new_user)}
        ), 201

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Registration error: {str(e)}")
        return error_response("Registration failed", 500)


# ============================================================================
# LOGIN
# ============================================================================
@auth_bp.route("/auth/login", methods=["POST"])
def login():
    """Exchange credentials for access/refresh tokens and a session"""
    try:
        data = request.get_json(silent=True)
        if not data:
            return error_response("No data provided")

        email = data.get("email", "").strip().lower()
        password = data.get("password", "")

        if not email or not password:
            return error_response("Email and password required")

        user = User.query.filter_by(email=email).first()

        if not user or not check_password_hash(user.password_hash, password):
            return error_response("Invalid credentials", 401)
        if not user.is_active:
            return error_response("Account is deactivated", 403)

        user.last_login = datetime.datetime.utcnow()
        db.session.commit()

        access_token, refresh_token = generate_tokens_for_user(user)
        login_user(user)

        response = make_response(success_response(
            f"Welcome back, {user.name}!",
            data={
                "user": serialize_session(user),
                "access_token": access_token,
                "refresh_token": refresh_token
            }
        ))

        access_minutes = current_app.config.get("ACCESS_TOKEN_MINUTES", 30)
        refresh_days = current_app.config.get("REFRESH_TOKEN_DAYS", 7)
        response.set_cookie("access_token", access_token, httponly=True,
                            secure=False, samesite="Lax", max_age=access_minutes * 60)
        response.set_cookie("refresh_token", refresh_token, httponly=True,
                            secure=False, samesite="Lax", max_age=refresh_days * 24 * 60 * 60)

        return response

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Login error: {str(e)}")
        return error_response("Login failed", 500)


@auth_bp.route("/auth/refresh", methods=["POST"])
def refresh():
    """Issue a fresh token pair from a refresh token"""
    data = request.get_json(silent=True) or {}
    token = data.get("refresh_token") or request.cookies.get("refresh_token")
    if not token:
        return error_response("Refresh token required", 401)

    user = user_from_token(token, expected_type="refresh")
    if not user:
        return error_response("Invalid or expired refresh token", 401)

    access_token, refresh_token = generate_tokens_for_user(user)
    return success_response(
        "Token refreshed",
        data={"access_token": access_token, "refresh_token": refresh_token}
    )


@auth_bp.route("/auth/me", methods=["GET"])
@token_required
def me(current_user):
    return success_response("Current session", data={"user": serialize_session(current_user)})


# ============================================================================
# LOGOUT
# ============================================================================
@auth_bp.route("/auth/logout", methods=["POST"])
def logout():
    """Logout user"""
    logout_user()
    response = make_response(success_response("Logged out successfully"))
    response.set_cookie("access_token", "", max_age=0)
    response.set_cookie("refresh_token", "", max_age=0)
    return response
