from flask import Blueprint, request, jsonify, current_app, g

from models import db
from models.user import User
from security.password import hash_password, verify_password
from security.session import create_session, revoke_session
from utils.audit import log_event
from utils.auth_context import login_required
from utils.parsing import json_body
from utils.seed import get_or_create_role


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

MIN_PASSWORD_LENGTH = 8


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and "@" in email and len(email) <= 255


@auth_bp.post("/register")
def register():
    data = json_body()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    full_name = (data.get("fullName") or data.get("full_name") or "").strip() or None
    phone_number = (data.get("phoneNumber") or data.get("phone_number") or "").strip() or None

    if not _is_valid_email(email):
        return jsonify(error="Invalid email"), 400
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        return jsonify(error=f"Password must be at least {MIN_PASSWORD_LENGTH} characters"), 400
    if full_name and len(full_name) > 120:
        return jsonify(error="Invalid fullName"), 400
    if phone_number and len(phone_number) > 30:
        return jsonify(error="Invalid phoneNumber"), 400

    if User.query.filter_by(email=email).first():
        log_event("REGISTER_FAIL_EMAIL_EXISTS", metadata={"email": email})
        return jsonify(error="Email already registered"), 409

    user = User(
        email=email,
        password_hash=hash_password(password, rounds=current_app.config.get("BCRYPT_ROUNDS", 12)),
        full_name=full_name,
        phone_number=phone_number,
    )
    db.session.add(user)
    db.session.flush()

    user.roles.append(get_or_create_role("CUSTOMER"))

    db.session.commit()
    log_event("REGISTER_SUCCESS", user_id=user.id)

    return jsonify(message="Registered successfully", id=user.id), 201


@auth_bp.post("/login")
def login():
    data = json_body()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not email or not password:
        return jsonify(error="email and password are required"), 400

    user = User.query.filter_by(email=email).first()
    if not user or not verify_password(password, user.password_hash):
        log_event("LOGIN_FAIL", user_id=user.id if user else None, metadata={"email": email})
        return jsonify(error="Invalid credentials"), 401

    raw_token = create_session(user.id)

    log_event("LOGIN_SUCCESS", user_id=user.id)
    return jsonify(
        token=raw_token,
        token_type="Bearer",
        expires_in=current_app.config.get("SESSION_LIFETIME_SECONDS", 8 * 60 * 60),
    ), 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(
        id=g.user.id,
        email=g.user.email,
        roles=sorted(r.name for r in g.user.roles),
        fullName=g.user.full_name,
        phoneNumber=g.user.phone_number,
    ), 200


@auth_bp.patch("/me")
@login_required
def update_me():
    data = json_body()
    if "fullName" in data:
        full_name = data.get("fullName")
        if not isinstance(full_name, str) or not full_name.strip() or len(full_name.strip()) > 120:
            return jsonify(error="Invalid fullName"), 400
        g.user.full_name = full_name.strip()
    if "phoneNumber" in data:
        phone_number = data.get("phoneNumber")
        if phone_number is not None and (not isinstance(phone_number, str) or len(phone_number.strip()) > 30):
            return jsonify(error="Invalid phoneNumber"), 400
        # null or "" clears the number
        g.user.phone_number = (phone_number or "").strip() or None

    db.session.commit()
    log_event("PROFILE_UPDATE", user_id=g.user.id, metadata={"fields": sorted(k for k in ("fullName", "phoneNumber") if k in data)})
    return me()


@auth_bp.post("/logout")
@login_required
def logout():
    revoke_session(g.token)
    log_event("LOGOUT", user_id=g.user.id)
    return jsonify(message="Logged out"), 200
