"""
CampusConnect - API Routes Package
Combines all feature sub-blueprints into the main API blueprint

Structure:
- Auth: Registration, login, token refresh
- Profile: View/edit profile, daily check-in, streak leaderboard
- Connections: Connection requests and the connection graph
- Mentoring: Mentor/mentee relationships
- Dashboard: Role-specific overview
- Messages: Conversations and chat
- Schedules / Attendance: ERP module
- Authority: Approvals, announcements, user management, audit log
- Feed, Events, Resources, Marketplace, Study Groups, Projects, Portfolio
- Notifications: In-app notification inbox
"""

from flask import Blueprint

# ============================================================================
# CREATE MAIN API BLUEPRINT
# ============================================================================

api_bp = Blueprint("api", __name__, url_prefix="/api")


# ============================================================================
# IMPORT ALL SUB-BLUEPRINTS
# ============================================================================

from .auth import auth_bp
from .profile import profile_bp
from .connections import connections_bp
from .mentoring import mentoring_bp
from .dashboard import dashboard_bp
from .messages import messages_bp
from .schedules import schedules_bp
from .attendance import attendance_bp
from .authority import authority_bp
from .feed import feed_bp
from .events import events_bp
from .resources import resources_bp
from .marketplace import marketplace_bp
from .study_groups import study_groups_bp
from .projects import projects_bp
from .portfolio import portfolio_bp
from .notifications import notifications_bp


# ============================================================================
# REGISTER ALL SUB-BLUEPRINTS
# ============================================================================

# Core features
api_bp.register_blueprint(auth_bp)
api_bp.register_blueprint(profile_bp)
api_bp.register_blueprint(dashboard_bp)
api_bp.register_blueprint(notifications_bp)

# Social features
api_bp.register_blueprint(connections_bp)
api_bp.register_blueprint(mentoring_bp)
api_bp.register_blueprint(messages_bp)

# ERP
api_bp.register_blueprint(schedules_bp)
api_bp.register_blueprint(attendance_bp)
api_bp.register_blueprint(authority_bp)

# Content
api_bp.register_blueprint(feed_bp)
api_bp.register_blueprint(events_bp)
api_bp.register_blueprint(resources_bp)
api_bp.register_blueprint(marketplace_bp)
api_bp.register_blueprint(study_groups_bp)
api_bp.register_blueprint(projects_bp)
api_bp.register_blueprint(portfolio_bp)
