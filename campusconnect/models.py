"""
CampusConnect - Database Models
MutableDict / MutableList keep JSON columns change-tracked
"""

import datetime
from flask_login import UserMixin
from sqlalchemy.ext.mutable import MutableDict, MutableList
from campusconnect.extensions import db


ROLES = ("student", "mentor", "teacher", "authority")

# ============================================================================
# CORE USER MODELS
# ============================================================================

class User(UserMixin, db.Model):
    """Login account - authentication and role"""
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    # Auth
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)

    # Role & status
    role = db.Column(db.String(20), default="student", nullable=False, index=True)
    active = db.Column(db.Boolean, default=True, nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    last_login = db.Column(db.DateTime)

    profile = db.relationship("Profile", backref="user", uselist=False, cascade="all, delete-orphan")

    @property
    def is_active(self):
        return bool(self.active)

    @property
    def name(self):
        return self.profile.full_name if self.profile else self.email

    def __repr__(self):
        return f"<User {self.email} [{self.role}]>"


class Institution(db.Model):
    """College joined through an institution code"""
    __tablename__ = "institutions"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    code = db.Column(db.String(30), unique=True, nullable=False, index=True)
    contact_email = db.Column(db.String(120))
    address = db.Column(db.String(300))

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)

    def __repr__(self):
        return f"<Institution {self.code}: {self.name}>"


class Profile(db.Model):
    """Public profile - the entity nearly every feature joins against"""
    __tablename__ = "profiles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True)

    # Identity
    full_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), nullable=False)
    phone_number = db.Column(db.String(30))
    bio = db.Column(db.String(500))
    profile_picture_url = db.Column(db.String(255))
    links = db.Column(MutableList.as_mutable(db.JSON), default=list)
    skills = db.Column(MutableList.as_mutable(db.JSON), default=list)

    # Academic info
    institution_id = db.Column(db.Integer, db.ForeignKey("institutions.id"), nullable=True, index=True)
    department = db.Column(db.String(100), nullable=False, default="General", index=True)
    course = db.Column(db.String(100))
    year_of_study = db.Column(db.Integer, index=True)
    section = db.Column(db.String(20), index=True)
    branch = db.Column(db.String(50), index=True)
    student_number = db.Column(db.String(50))
    institution_roll_number = db.Column(db.String(50), index=True)

    # Denormalized counters
    connections_count = db.Column(db.Integer, default=0, nullable=False)
    daily_streak = db.Column(db.Integer, default=0, nullable=False, index=True)
    last_activity_date = db.Column(db.Date)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    institution = db.relationship("Institution", backref=db.backref("profiles", lazy="dynamic"))

    def __repr__(self):
        return f"<Profile {self.full_name} - {self.department}>"


class EducationDetails(db.Model):
    """Degree record shown on the profile; at most one per user"""
    __tablename__ = "education_details"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True)

    degree = db.Column(db.String(120), nullable=False)
    major = db.Column(db.String(120), nullable=False)
    minor = db.Column(db.String(120))
    graduation_year = db.Column(db.Integer, nullable=False)
    gpa = db.Column(db.Float)
    achievements = db.Column(MutableList.as_mutable(db.JSON), default=list)
    certifications = db.Column(MutableList.as_mutable(db.JSON), default=list)

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "degree": self.degree,
            "major": self.major,
            "minor": self.minor,
            "graduation_year": self.graduation_year,
            "gpa": self.gpa,
            "achievements": self.achievements or [],
            "certifications": self.certifications or []
        }

    def __repr__(self):
        return f"<EducationDetails {self.user_id}: {self.degree} {self.major}>"


class Experience(db.Model):
    __tablename__ = "experience"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(200), nullable=False)
    company = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)
    is_current = db.Column(db.Boolean, default=False)

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "company": self.company,
            "description": self.description,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "is_current": bool(self.is_current)
        }

    def __repr__(self):
        return f"<Experience {self.id}: {self.title} at {self.company}>"


# ============================================================================
# SOCIAL GRAPH
# ============================================================================

class ConnectionRequest(db.Model):
    """Connection request between two users - accepted rows are the connections"""
    __tablename__ = "connection_requests"

    id = db.Column(db.Integer, primary_key=True)
    sender_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    receiver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # "<low id>:<high id>" - one row per unordered pair
    pair_key = db.Column(db.String(50), nullable=False, unique=True)

    status = db.Column(db.String(20), default="pending", nullable=False, index=True)
    message = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    sender = db.relationship("User", foreign_keys=[sender_id])
    receiver = db.relationship("User", foreign_keys=[receiver_id])

    __table_args__ = (
        db.CheckConstraint("sender_id != receiver_id", name="no_self_connection"),
    )

    @staticmethod
    def key_for(user_a, user_b):
        low, high = sorted([user_a, user_b])
        return f"{low}:{high}"

    def other_party(self, user_id):
        return self.receiver_id if self.sender_id == user_id else self.sender_id

    def __repr__(self):
        return f"<ConnectionRequest: {self.sender_id} → {self.receiver_id} [{self.status}]>"


class MentoringRelationship(db.Model):
    """Directed mentor → mentee link, independent of connections"""
    __tablename__ = "mentoring_relationships"

    id = db.Column(db.Integer, primary_key=True)
    mentor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    mentee_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(20), default="pending", nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    mentor = db.relationship("User", foreign_keys=[mentor_id])
    mentee = db.relationship("User", foreign_keys=[mentee_id])

    __table_args__ = (
        db.UniqueConstraint("mentor_id", "mentee_id", name="unique_mentoring_pair"),
        db.CheckConstraint("mentor_id != mentee_id", name="no_self_mentoring"),
    )

    def __repr__(self):
        return f"<Mentoring: {self.mentor_id} → {self.mentee_id} [{self.status}]>"


# ============================================================================
# MESSAGING
# ============================================================================

class Conversation(db.Model):
    """One-to-one chat - participant1_id is always the lower user id"""
    __tablename__ = "conversations"

    id = db.Column(db.Integer, primary_key=True)
    participant1_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    participant2_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    institution_id = db.Column(db.Integer, db.ForeignKey("institutions.id"), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    last_message_at = db.Column(db.DateTime, index=True)

    messages = db.relationship("Message", backref="conversation", lazy="dynamic", cascade="all, delete-orphan")

    __table_args__ = (
        db.UniqueConstraint("participant1_id", "participant2_id", name="unique_conversation"),
    )

    def includes(self, user_id):
        return user_id in (self.participant1_id, self.participant2_id)

    def partner_of(self, user_id):
        return self.participant2_id if self.participant1_id == user_id else self.participant1_id

    def __repr__(self):
        return f"<Conversation {self.id}: {self.participant1_id} ↔ {self.participant2_id}>"


class Message(db.Model):
    """Chat message inside a conversation"""
    __tablename__ = "messages"

    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.Integer, db.ForeignKey("conversations.id"), nullable=False, index=True)
    sender_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    content = db.Column(db.Text, nullable=False)
    message_type = db.Column(db.String(20), default="text")

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, index=True)
    read_at = db.Column(db.DateTime)

    def to_dict(self):
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "sender_id": self.sender_id,
            "content": self.content,
            "message_type": self.message_type,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "read_at": self.read_at.isoformat() if self.read_at else None
        }

    def __repr__(self):
        return f"<Message {self.id} in Conversation {self.conversation_id}>"


class Notification(db.Model):
    """In-app notifications"""
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    notification_type = db.Column(db.String(50), index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)

    action_type = db.Column(db.String(30))
    action_id = db.Column(db.Integer)

    read = db.Column(db.Boolean, default=False, index=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"))

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, index=True)

    def __repr__(self):
        return f"<Notification {self.id}: {self.notification_type} for User {self.user_id}>"


# ============================================================================
# ERP - SCHEDULES & ATTENDANCE
# ============================================================================

class Schedule(db.Model):
    """Weekly class slot"""
    __tablename__ = "schedules"

    id = db.Column(db.Integer, primary_key=True)
    institution_id = db.Column(db.Integer, db.ForeignKey("institutions.id"), nullable=True, index=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    title = db.Column(db.String(200), nullable=False)
    subject = db.Column(db.String(100), nullable=False, index=True)
    teacher_name = db.Column(db.String(120), index=True)

    day_of_week = db.Column(db.Integer, nullable=False, index=True)  # 0 = Sunday
    start_time = db.Column(db.String(5), nullable=False)  # HH:MM
    end_time = db.Column(db.String(5), nullable=False)
    room_location = db.Column(db.String(100))

    # Audience
    target_year = db.Column(db.Integer)
    target_section = db.Column(db.String(20))
    target_branch = db.Column(db.String(50))
    target_department = db.Column(db.String(100))

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    attendance = db.relationship("Attendance", backref="schedule", lazy="dynamic", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "subject": self.subject,
            "teacher_name": self.teacher_name,
            "day_of_week": self.day_of_week,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "room_location": self.room_location,
            "target_year": self.target_year,
            "target_section": self.target_section,
            "target_branch": self.target_branch,
            "target_department": self.target_department,
            "institution_id": self.institution_id,
            "created_by": self.created_by
        }

    def __repr__(self):
        return f"<Schedule {self.id}: {self.title} day {self.day_of_week} {self.start_time}>"


class Attendance(db.Model):
    """One student's status for one schedule slot on one date"""
    __tablename__ = "attendance"

    id = db.Column(db.Integer, primary_key=True)
    schedule_id = db.Column(db.Integer, db.ForeignKey("schedules.id"), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    attendance_date = db.Column(db.Date, nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default="absent")
    marked_by = db.Column(db.Integer, db.ForeignKey("users.id"))

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("schedule_id", "student_id", "attendance_date", name="unique_attendance_mark"),
    )

    def __repr__(self):
        return f"<Attendance: Student {self.student_id} {self.attendance_date} [{self.status}]>"


# ============================================================================
# FEED
# ============================================================================

class Post(db.Model):
    """Feed post"""
    __tablename__ = "posts"

    id = db.Column(db.Integer, primary_key=True)
    author_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    institution_id = db.Column(db.Integer, db.ForeignKey("institutions.id"), nullable=True, index=True)

    content = db.Column(db.Text, nullable=False)
    image_url = db.Column(db.String(255))
    audience = db.Column(MutableList.as_mutable(db.JSON), default=list)

    likes_count = db.Column(db.Integer, default=0)
    comments_count = db.Column(db.Integer, default=0)

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    author = db.relationship("User")
    likes = db.relationship("PostLike", backref="post", lazy="dynamic", cascade="all, delete-orphan")
    comments = db.relationship("PostComment", backref="post", lazy="dynamic", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Post {self.id} by User {self.author_id}>"


class PostLike(db.Model):
    __tablename__ = "post_likes"

    id = db.Column(db.Integer, primary_key=True)
    post_id = db.Column(db.Integer, db.ForeignKey("posts.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)

    __table_args__ = (db.UniqueConstraint("post_id", "user_id", name="unique_post_like"),)

    def __repr__(self):
        return f"<PostLike: User {self.user_id} → Post {self.post_id}>"


class PostComment(db.Model):
    __tablename__ = "post_comments"

    id = db.Column(db.Integer, primary_key=True)
    post_id = db.Column(db.Integer, db.ForeignKey("posts.id"), nullable=False, index=True)
    author_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    content = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    author = db.relationship("User")

    def __repr__(self):
        return f"<PostComment {self.id} on Post {self.post_id}>"


# ============================================================================
# CAMPUS CONTENT
# ============================================================================

class CampusEvent(db.Model):
    """Campus event with optional capacity"""
    __tablename__ = "campus_events"

    id = db.Column(db.Integer, primary_key=True)
    institution_id = db.Column(db.Integer, db.ForeignKey("institutions.id"), nullable=True, index=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(50), index=True)
    location = db.Column(db.String(200), nullable=False)
    image_url = db.Column(db.String(255))

    event_date = db.Column(db.DateTime, nullable=False, index=True)
    max_participants = db.Column(db.Integer)
    current_participants = db.Column(db.Integer, default=0)
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    registrations = db.relationship("EventRegistration", backref="event", lazy="dynamic", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<CampusEvent {self.id}: {self.title}>"


class EventRegistration(db.Model):
    __tablename__ = "event_registrations"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("campus_events.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    registered_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)

    user = db.relationship("User")

    __table_args__ = (db.UniqueConstraint("event_id", "user_id", name="unique_event_registration"),)


class Resource(db.Model):
    """Shared study material"""
    __tablename__ = "resources"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    institution_id = db.Column(db.Integer, db.ForeignKey("institutions.id"), nullable=True, index=True)

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    subject = db.Column(db.String(100), nullable=False, index=True)
    resource_type = db.Column(db.String(50), nullable=False, index=True)
    tags = db.Column(MutableList.as_mutable(db.JSON), default=list)

    file_url = db.Column(db.String(255), nullable=False)
    file_size = db.Column(db.Integer)
    downloads_count = db.Column(db.Integer, default=0)

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    def __repr__(self):
        return f"<Resource {self.id}: {self.title} [{self.resource_type}]>"


class MarketplaceListing(db.Model):
    """Item for sale between students"""
    __tablename__ = "marketplace_listings"

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    institution_id = db.Column(db.Integer, db.ForeignKey("institutions.id"), nullable=True, index=True)

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    category = db.Column(db.String(50), nullable=False, index=True)
    condition = db.Column(db.String(30))
    location = db.Column(db.String(200))
    image_url = db.Column(db.String(255))

    is_sold = db.Column(db.Boolean, default=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    seller = db.relationship("User")

    def __repr__(self):
        return f"<Listing {self.id}: {self.title}>"


class StudyGroup(db.Model):
    """Study group with capacity"""
    __tablename__ = "study_groups"

    id = db.Column(db.Integer, primary_key=True)
    institution_id = db.Column(db.Integer, db.ForeignKey("institutions.id"), nullable=True, index=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    name = db.Column(db.String(200), nullable=False)
    subject = db.Column(db.String(100), nullable=False, index=True)
    description = db.Column(db.Text)
    group_type = db.Column(db.String(30), default="study")
    difficulty = db.Column(db.String(30), default="intermediate")
    location = db.Column(db.String(200))
    meeting_schedule = db.Column(db.String(200))
    tags = db.Column(MutableList.as_mutable(db.JSON), default=list)

    max_members = db.Column(db.Integer, default=10)
    current_members = db.Column(db.Integer, default=1)
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    memberships = db.relationship("GroupMembership", backref="group", lazy="dynamic", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<StudyGroup {self.id}: {self.name}>"


class GroupMembership(db.Model):
    __tablename__ = "group_memberships"

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey("study_groups.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    role = db.Column(db.String(20), default="member")
    joined_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)

    user = db.relationship("User")

    __table_args__ = (db.UniqueConstraint("group_id", "user_id", name="unique_group_member"),)


class Project(db.Model):
    """Portfolio project, optionally open for collaborators"""
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    technologies = db.Column(MutableList.as_mutable(db.JSON), default=list)
    status = db.Column(db.String(30), default="in_progress")
    github_url = db.Column(db.String(255))
    demo_url = db.Column(db.String(255))

    seeking_collaborators = db.Column(db.Boolean, default=False, index=True)
    max_collaborators = db.Column(db.Integer, default=5)

    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)
    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    owner = db.relationship("User")
    members = db.relationship("ProjectMember", backref="project", lazy="dynamic", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Project {self.id}: {self.title}>"


class ProjectMember(db.Model):
    __tablename__ = "project_members"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    role = db.Column(db.String(50), default="collaborator")
    joined_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)

    user = db.relationship("User")

    __table_args__ = (db.UniqueConstraint("project_id", "user_id", name="unique_project_member"),)


class Certificate(db.Model):
    __tablename__ = "certificates"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(200), nullable=False)
    issuer = db.Column(db.String(200), nullable=False)
    issue_date = db.Column(db.Date)
    expiry_date = db.Column(db.Date)
    certificate_url = db.Column(db.String(255))
    verification_id = db.Column(db.String(100))

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)

    def __repr__(self):
        return f"<Certificate {self.id}: {self.title}>"


class WorkAssignment(db.Model):
    """Task handed from a mentor/teacher to a student"""
    __tablename__ = "work_assignments"

    id = db.Column(db.Integer, primary_key=True)
    assigned_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    assigned_to = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    due_date = db.Column(db.Date)
    priority = db.Column(db.String(20), default="medium")
    status = db.Column(db.String(20), default="pending", index=True)

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    def __repr__(self):
        return f"<WorkAssignment {self.id}: {self.title} [{self.status}]>"


# ============================================================================
# AUTHORITY
# ============================================================================

class ApprovalRequest(db.Model):
    __tablename__ = "approval_requests"

    id = db.Column(db.Integer, primary_key=True)
    requested_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    assigned_to = db.Column(db.Integer, db.ForeignKey("users.id"))
    reviewed_by = db.Column(db.Integer, db.ForeignKey("users.id"))

    request_type = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    priority = db.Column(db.String(20), default="medium")
    status = db.Column(db.String(20), default="pending", index=True)

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    reviewed_at = db.Column(db.DateTime)

    requester = db.relationship("User", foreign_keys=[requested_by])

    def __repr__(self):
        return f"<ApprovalRequest {self.id}: {self.request_type} [{self.status}]>"


class Announcement(db.Model):
    __tablename__ = "announcements"

    id = db.Column(db.Integer, primary_key=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    institution_id = db.Column(db.Integer, db.ForeignKey("institutions.id"), nullable=True, index=True)

    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    announcement_type = db.Column(db.String(50), default="general")
    audience = db.Column(MutableList.as_mutable(db.JSON), default=lambda: ["all"])

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, index=True)

    def __repr__(self):
        return f"<Announcement {self.id}: {self.title}>"


class AuthorityAuditLog(db.Model):
    """Record of every privileged action an authority performs"""
    __tablename__ = "authority_audit_log"

    id = db.Column(db.Integer, primary_key=True)
    authority_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    target_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    action_type = db.Column(db.String(50), nullable=False, index=True)
    details = db.Column(MutableDict.as_mutable(db.JSON), default=dict)
    ip_address = db.Column(db.String(50))

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, index=True)

    def __repr__(self):
        return f"<AuditLog: {self.authority_user_id} {self.action_type}>"


# END OF MODELS
