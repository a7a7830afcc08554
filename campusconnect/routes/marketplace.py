"""
CampusConnect - Marketplace
Students list items for sale inside their institution.
"""

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import or_
from decimal import Decimal, InvalidOperation

from campusconnect.models import MarketplaceListing
from campusconnect.extensions import db
from .helpers import (
    ActionError, token_required, save_file, get_json_body, profile_summary,
    success_response, error_response, ALLOWED_IMAGE_EXT
)

marketplace_bp = Blueprint("marketplace", __name__)

CATEGORIES = ("books", "electronics", "furniture", "clothing", "stationery", "other")
CONDITIONS = ("new", "like_new", "good", "fair")


def parse_price(value):
    try:
        price = Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, TypeError, ValueError):
        raise ActionError("Price must be a number")
    if price < 0:
        raise ActionError("Price cannot be negative")
    return price


def serialize_listing(listing):
    return {
        "id": listing.id,
        "title": listing.title,
        "description": listing.description,
        "price": str(listing.price),
        "category": listing.category,
        "condition": listing.condition,
        "location": listing.location,
        "image_url": listing.image_url,
        "is_sold": listing.is_sold,
        "seller": profile_summary(listing.seller),
        "created_at": listing.created_at.isoformat() if listing.created_at else None
    }


def own_listing(user, listing_id):
    listing = MarketplaceListing.query.get(listing_id)
    if not listing:
        raise ActionError("Listing not found", 404)
    if listing.seller_id != user.id:
        raise ActionError("You can only manage your own listings", 403)
    return listing


@marketplace_bp.route("/marketplace", methods=["GET"])
@token_required
def list_listings(current_user):
    """Unsold listings by default. Filters: category, search, min_price, max_price, include_sold"""
    query = MarketplaceListing.query
    institution_id = current_user.profile.institution_id
    if institution_id:
        query = query.filter(or_(MarketplaceListing.institution_id == institution_id,
                                 MarketplaceListing.institution_id.is_(None)))
    if not request.args.get("include_sold"):
        query = query.filter(MarketplaceListing.is_sold.is_(False))

    category = request.args.get("category", "").strip()
    if category:
        query = query.filter(MarketplaceListing.category == category)
    search = request.args.get("search", "").strip()
    if search:
        query = query.filter(or_(MarketplaceListing.title.ilike(f"%{search}%"),
                                 MarketplaceListing.description.ilike(f"%{search}%")))
    try:
        if request.args.get("min_price"):
            query = query.filter(MarketplaceListing.price >= parse_price(request.args["min_price"]))
        if request.args.get("max_price"):
            query = query.filter(MarketplaceListing.price <= parse_price(request.args["max_price"]))
    except ActionError as e:
        return error_response(e.message, e.status_code)

    listings = query.order_by(MarketplaceListing.created_at.desc(), MarketplaceListing.id.desc()).all()
    return jsonify({"status": "success", "data": {"listings": [serialize_listing(l) for l in listings]}})


@marketplace_bp.route("/marketplace", methods=["POST"])
@token_required
def create_listing(current_user):
    """Fields: title, price, category, description?, condition?, location?, image?"""
    try:
        data = get_json_body()
        title = (data.get("title") or "").strip()
        if not title:
            return error_response("Title is required")
        if data.get("price") in (None, ""):
            return error_response("Price is required")

        category = (data.get("category") or "other").strip().lower()
        if category not in CATEGORIES:
            return error_response(f"Category must be one of: {', '.join(CATEGORIES)}")
        condition = data.get("condition")
        if condition and condition not in CONDITIONS:
            return error_response(f"Condition must be one of: {', '.join(CONDITIONS)}")

        listing = MarketplaceListing(
            seller_id=current_user.id,
            institution_id=current_user.profile.institution_id,
            title=title,
            description=data.get("description"),
            price=parse_price(data.get("price")),
            category=category,
            condition=condition,
            location=data.get("location"),
            image_url=save_file(request.files.get("image"), "marketplace", ALLOWED_IMAGE_EXT)
        )
        db.session.add(listing)
        db.session.commit()

        return success_response("Listing created", data=serialize_listing(listing)), 201

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Create listing error: {str(e)}")
        return error_response("Failed to create listing", 500)


@marketplace_bp.route("/marketplace/<int:listing_id>/sold", methods=["POST"])
@token_required
def mark_sold(current_user, listing_id):
    try:
        listing = own_listing(current_user, listing_id)
        listing.is_sold = True
        db.session.commit()
        return success_response("Listing marked as sold", data=serialize_listing(listing))

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Mark sold error: {str(e)}")
        return error_response("Failed to update listing", 500)


@marketplace_bp.route("/marketplace/<int:listing_id>", methods=["DELETE"])
@token_required
def delete_listing(current_user, listing_id):
    try:
        listing = own_listing(current_user, listing_id)
        db.session.delete(listing)
        db.session.commit()
        return success_response("Listing deleted")

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Delete listing error: {str(e)}")
        return error_response("Failed to delete listing", 500)
