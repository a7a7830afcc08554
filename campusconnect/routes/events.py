"""
CampusConnect - Campus Events
Create and browse events; registration respects max_participants.
"""

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
import datetime

from campusconnect.models import CampusEvent, EventRegistration
from campusconnect.extensions import db
from .helpers import (
    ActionError, token_required, roles_required, save_file, parse_datetime, get_json_body,
    profile_summary, success_response, error_response, ALLOWED_IMAGE_EXT
)

events_bp = Blueprint("events", __name__)

EVENT_ORGANIZERS = ("mentor", "teacher", "authority")


def serialize_event(event, viewer_id):
    return {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "category": event.category,
        "location": event.location,
        "image_url": event.image_url,
        "event_date": event.event_date.isoformat(),
        "max_participants": event.max_participants,
        "current_participants": event.current_participants,
        "is_full": event.max_participants is not None and event.current_participants >= event.max_participants,
        "registered": EventRegistration.query.filter_by(event_id=event.id, user_id=viewer_id).first() is not None,
        "created_by": event.created_by
    }


def register_for_event(user, event):
    """Claim a seat; the capacity check and increment are a single UPDATE"""
    if not event.is_active:
        raise ActionError("Event is no longer active")
    if event.event_date < datetime.datetime.utcnow():
        raise ActionError("Event has already taken place")
    if EventRegistration.query.filter_by(event_id=event.id, user_id=user.id).first():
        raise ActionError("You are already registered for this event", 409)

    seats = CampusEvent.query.filter(
        CampusEvent.id == event.id,
        or_(CampusEvent.max_participants.is_(None),
            CampusEvent.current_participants < CampusEvent.max_participants)
    ).update({CampusEvent.current_participants: CampusEvent.current_participants + 1}, synchronize_session=False)
    if not seats:
        raise ActionError("Event is full", 409)

    db.session.add(EventRegistration(event_id=event.id, user_id=user.id))


def unregister_from_event(user, event):
    registration = EventRegistration.query.filter_by(event_id=event.id, user_id=user.id).first()
    if not registration:
        raise ActionError("You are not registered for this event", 404)

    db.session.delete(registration)
    CampusEvent.query.filter(CampusEvent.id == event.id, CampusEvent.current_participants > 0).update(
        {CampusEvent.current_participants: CampusEvent.current_participants - 1}, synchronize_session=False
    )


@events_bp.route("/events", methods=["GET"])
@token_required
def list_events(current_user):
    """Upcoming active events, soonest first. ?category=, ?include_past=1"""
    query = CampusEvent.query.filter(CampusEvent.is_active.is_(True))
    institution_id = current_user.profile.institution_id
    if institution_id:
        query = query.filter(or_(CampusEvent.institution_id == institution_id, CampusEvent.institution_id.is_(None)))
    if not request.args.get("include_past"):
        query = query.filter(CampusEvent.event_date >= datetime.datetime.utcnow())
    category = request.args.get("category", "").strip()
    if category:
        query = query.filter(CampusEvent.category == category)

    events = query.order_by(CampusEvent.event_date.asc()).all()
    return jsonify({"status": "success", "data": {"events": [serialize_event(e, current_user.id) for e in events]}})


@events_bp.route("/events", methods=["POST"])
@token_required
@roles_required(*EVENT_ORGANIZERS)
def create_event(current_user):
    """Fields: title, description, location, event_date (ISO), category?, max_participants?, image?"""
    try:
        data = get_json_body()
        title = (data.get("title") or "").strip()
        description = (data.get("description") or "").strip()
        location = (data.get("location") or "").strip()
        if not title or not description or not location:
            return error_response("Title, description and location are required")

        event_date = parse_datetime(data.get("event_date"), "event_date")
        max_participants = data.get("max_participants")
        if max_participants not in (None, ""):
            try:
                max_participants = int(max_participants)
            except (TypeError, ValueError):
                raise ActionError("max_participants must be a number")
            if max_participants < 1:
                raise ActionError("max_participants must be at least 1")
        else:
            max_participants = None

        event = CampusEvent(
            institution_id=current_user.profile.institution_id,
            created_by=current_user.id,
            title=title,
            description=description,
            location=location,
            category=data.get("category") or "general",
            event_date=event_date,
            max_participants=max_participants,
            current_participants=0,
            image_url=save_file(request.files.get("image"), "events", ALLOWED_IMAGE_EXT)
        )
        db.session.add(event)
        db.session.commit()

        return success_response("Event created", data=serialize_event(event, current_user.id)), 201

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Create event error: {str(e)}")
        return error_response("Failed to create event", 500)


@events_bp.route("/events/<int:event_id>/register", methods=["POST"])
@token_required
def register(current_user, event_id):
    try:
        event = CampusEvent.query.get(event_id)
        if not event:
            return error_response("Event not found", 404)

        register_for_event(current_user, event)
        db.session.commit()
        db.session.refresh(event)
        return success_response("Registered for event", data={"current_participants": event.current_participants}), 201

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except IntegrityError:
        db.session.rollback()
        return error_response("You are already registered for this event", 409)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Event registration error: {str(e)}")
        return error_response("Failed to register", 500)


@events_bp.route("/events/<int:event_id>/register", methods=["DELETE"])
@token_required
def unregister(current_user, event_id):
    try:
        event = CampusEvent.query.get(event_id)
        if not event:
            return error_response("Event not found", 404)

        unregister_from_event(current_user, event)
        db.session.commit()
        db.session.refresh(event)
        return success_response("Registration cancelled", data={"current_participants": event.current_participants})

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Event unregister error: {str(e)}")
        return error_response("Failed to cancel registration", 500)


@events_bp.route("/events/<int:event_id>/participants", methods=["GET"])
@token_required
def participants(current_user, event_id):
    event = CampusEvent.query.get(event_id)
    if not event:
        return error_response("Event not found", 404)
    if event.created_by != current_user.id and current_user.role != "authority":
        return error_response("Only the organizer can view participants", 403)

    registrations = event.registrations.order_by(EventRegistration.registered_at).all()
    return jsonify({
        "status": "success",
        "data": {"participants": [profile_summary(r.user) for r in registrations]}
    })


@events_bp.route("/events/<int:event_id>", methods=["DELETE"])
@token_required
def cancel_event(current_user, event_id):
    """Organizer deactivates the event; registrants are kept for the record"""
    try:
        event = CampusEvent.query.get(event_id)
        if not event:
            return error_response("Event not found", 404)
        if event.created_by != current_user.id and current_user.role != "authority":
            return error_response("Only the organizer can cancel this event", 403)

        event.is_active = False
        db.session.commit()
        return success_response("Event cancelled")

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Cancel event error: {str(e)}")
        return error_response("Failed to cancel event", 500)
