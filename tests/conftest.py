"""
CampusConnect - Test Configuration and Fixtures

Each test gets a fresh app on an in-memory SQLite database. Setup and
assertions that touch the database run inside `with app.app_context():`
so every request sees its own session.
"""
import io

import pytest
from openpyxl import Workbook
from werkzeug.security import generate_password_hash

from campusconnect import create_app
from campusconnect.extensions import db
from campusconnect.models import User, Profile, Institution
from campusconnect.routes.helpers import generate_tokens_for_user

PASSWORD = "secret123"


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret-key-for-testing-only",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "UPLOAD_FOLDER": str(tmp_path / "uploads"),
        "MAIL_SUPPRESS_SEND": True,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    """Create a user + profile and return its id"""
    counter = {"n": 0}

    def _make(role="student", full_name=None, email=None, **profile_fields):
        counter["n"] += 1
        email = email or f"{role}{counter['n']}@college.test"
        with app.app_context():
            user = User(email=email, password_hash=generate_password_hash(PASSWORD), role=role)
            db.session.add(user)
            db.session.flush()
            profile_fields.setdefault("department", "General")
            db.session.add(Profile(
                user_id=user.id,
                full_name=full_name or f"{role.title()} {counter['n']}",
                email=email,
                **profile_fields
            ))
            db.session.commit()
            return user.id

    return _make


@pytest.fixture
def headers_for(app):
    """Bearer auth headers for a user id"""
    def _headers(user_id):
        with app.app_context():
            access_token, _ = generate_tokens_for_user(User.query.get(user_id))
        return {"Authorization": f"Bearer {access_token}"}

    return _headers


@pytest.fixture
def institution(app):
    with app.app_context():
        inst = Institution(name="Test College", code="TC01")
        db.session.add(inst)
        db.session.commit()
        return inst.id


def build_xlsx(header, rows):
    """In-memory workbook bytes for upload tests"""
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(header)
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    buffer.seek(0)
    return buffer


@pytest.fixture
def xlsx():
    return build_xlsx


@pytest.fixture
def make_institution(app):
    """Create an institution and return its id"""
    def _make(name, code):
        with app.app_context():
            inst = Institution(name=name, code=code)
            db.session.add(inst)
            db.session.commit()
            return inst.id

    return _make
