"""
CampusConnect - college networking API

Connections and mentoring, chat, feed, events, resources, marketplace,
study groups, projects and an ERP module for schedules and attendance.
"""

from campusconnect.app import create_app

__all__ = ["create_app"]
