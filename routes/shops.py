from flask import Blueprint, request, jsonify, g

from models import db
from models.shop import Shop
from routes.booking import booking_json, status_filter
from services import booking_lifecycle
from utils.auth_context import login_required
from utils.audit import log_event
from utils.parsing import json_body, parse_amount, parse_date
from utils.seed import get_or_create_role

shop_bp = Blueprint("shop", __name__, url_prefix="/shops")


def shop_json(s) -> dict:
    return {
        "id": s.id,
        "ownerId": s.owner_user_id,
        "name": s.name,
        "location": s.location,
        "description": s.description,
        "defaultPrice": float(s.default_price) if s.default_price is not None else None,
        "currentQueueLength": s.current_queue_length,
        "estimatedWaitTime": s.estimated_wait_time,
        "isActive": s.is_active,
        "createdAt": s.created_at.isoformat(),
    }


@shop_bp.post("")
@login_required
def register_shop():
    data = json_body()
    name = (data.get("name") or "").strip()
    location = (data.get("location") or "").strip()
    description = (data.get("description") or "").strip() or None

    if not name or not location:
        return jsonify(error="name and location are required"), 400
    if len(name) > 120 or len(location) > 160:
        return jsonify(error="name or location too long"), 400

    default_price = parse_amount(data.get("defaultPrice", data.get("default_price")), "defaultPrice")

    shop = Shop(
        owner_user_id=g.user.id,
        name=name,
        location=location,
        description=description,
        default_price=default_price if default_price is not None else 0,
    )
    db.session.add(shop)

    owner_role = get_or_create_role("SHOP_OWNER")
    if owner_role not in g.user.roles:
        g.user.roles.append(owner_role)
    db.session.commit()

    log_event("SHOP_REGISTER", user_id=g.user.id, entity="shop", entity_id=shop.id)
    return jsonify(shop_json(shop)), 201


@shop_bp.get("")
def list_shops():
    name_query = (request.args.get("name") or "").strip()
    location_query = (request.args.get("location") or "").strip()

    q = Shop.query.filter(Shop.is_active.is_(True))
    if name_query:
        q = q.filter(Shop.name.ilike(f"%{name_query}%"))
    if location_query:
        q = q.filter(Shop.location.ilike(f"%{location_query}%"))

    rows = q.order_by(Shop.created_at.desc()).limit(200).all()
    return jsonify([shop_json(s) for s in rows]), 200


@shop_bp.get("/me")
@login_required
def my_shops():
    shops = (
        Shop.query
        .filter_by(owner_user_id=g.user.id)
        .order_by(Shop.created_at.desc())
        .all()
    )
    return jsonify([shop_json(s) for s in shops]), 200


@shop_bp.get("/<int:shop_id>")
def get_shop(shop_id: int):
    shop = Shop.query.get(shop_id)
    if not shop or not shop.is_active:
        return jsonify(error="Shop not found"), 404
    return jsonify(shop_json(shop)), 200


# ---------- SHOP OWNERS: edit profile ----------
@shop_bp.patch("/<int:shop_id>")
@login_required
def update_shop(shop_id: int):
    shop = Shop.query.get(shop_id)
    if not shop:
        return jsonify(error="Shop not found"), 404
    if not booking_lifecycle.is_shop_owner(shop, g.user):
        return jsonify(error="Only the shop owner can edit this shop"), 403

    data = json_body()
    changed = []
    for key, limit in (("name", 120), ("location", 160)):
        if key in data:
            value = data.get(key)
            if not isinstance(value, str) or not value.strip() or len(value.strip()) > limit:
                return jsonify(error=f"Invalid {key}"), 400
            setattr(shop, key, value.strip())
            changed.append(key)
    if "description" in data:
        description = data.get("description")
        if description is not None and not isinstance(description, str):
            return jsonify(error="Invalid description"), 400
        shop.description = (description or "").strip() or None
        changed.append("description")
    if "defaultPrice" in data:
        default_price = parse_amount(data.get("defaultPrice"), "defaultPrice")
        shop.default_price = default_price if default_price is not None else 0
        changed.append("defaultPrice")
    if "isActive" in data:
        if not isinstance(data.get("isActive"), bool):
            return jsonify(error="isActive must be true or false"), 400
        shop.is_active = data["isActive"]
        changed.append("isActive")

    # queue counters are owned by the booking lifecycle and never edited here
    db.session.commit()

    log_event("SHOP_UPDATE", user_id=g.user.id, entity="shop", entity_id=shop.id, metadata={"fields": changed})
    return jsonify(shop_json(shop)), 200


# ---------- SHOP OWNERS: incoming bookings ----------
@shop_bp.get("/<int:shop_id>/bookings")
@login_required
def shop_bookings(shop_id: int):
    date_str = request.args.get("date")  # YYYY-MM-DD
    rows = booking_lifecycle.list_shop_bookings(
        shop_id,
        g.user,
        status=status_filter(),
        booking_date=parse_date(date_str, "date") if date_str else None,
    )
    return jsonify([booking_json(b) for b in rows]), 200
