import re

from flask import Blueprint, request, jsonify, current_app, g

from security.credentials import RegistrationError
from security.errors import AuthError, AccountSuspended, OriginBlocked
from utils.audit import log_event
from utils.auth_context import login_required
from utils.request_info import client_ip, user_agent


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and len(email) <= 255 and bool(_EMAIL_RE.match(email))


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _user_payload(user) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "created_at": user.created_at.isoformat(),
    }


@auth_bp.post("/register")
def register():
    data = _json_body()
    email = data.get("email") or ""
    username = data.get("username") or ""
    password = data.get("password") or ""

    if not all(isinstance(v, str) for v in (email, username, password)):
        return jsonify(error="Email, username and password must be strings"), 400
    email = email.strip().lower()
    username = username.strip()

    if not _is_valid_email(email):
        return jsonify(error="Invalid email format"), 400
    if len(username) < 3 or len(username) > 80:
        return jsonify(error="Username must be at least 3 characters"), 400
    if len(password) < 6:
        return jsonify(error="Password must be at least 6 characters"), 400

    credentials = current_app.extensions["credential_service"]
    try:
        user = credentials.register(email, username, password)
    except RegistrationError as exc:
        log_event("REGISTER_FAIL_EXISTS", metadata={"email": email, "username": username})
        return jsonify(error=str(exc)), 400

    log_event("REGISTER_SUCCESS", user_id=user.id)
    return jsonify(message="User registered successfully", user=_user_payload(user)), 201


@auth_bp.post("/login")
def login():
    data = _json_body()
    # login_indentity is the field name older clients send
    identity = data.get("identity") or data.get("login_indentity") or ""
    password = data.get("password") or ""

    if not isinstance(identity, str) or not isinstance(password, str):
        return jsonify(error="Identity and password must be strings"), 400
    identity = identity.strip()

    if not identity or not password:
        return jsonify(error="Identity and password are required"), 400

    ip = client_ip()
    gate = current_app.extensions["auth_gate"]
    try:
        result = gate.login(identity, password, ip, user_agent=user_agent())
    except OriginBlocked as exc:
        log_event("LOGIN_BLOCKED_ORIGIN", metadata={"identity": identity})
        return jsonify(error=exc.message), exc.status_code
    except AccountSuspended as exc:
        log_event("LOGIN_SUSPENDED", metadata={"identity": identity, "status": exc.status_code})
        return jsonify(error=exc.message), exc.status_code
    except AuthError as exc:
        log_event("LOGIN_FAIL", metadata={"identity": identity, "status": exc.status_code})
        return jsonify(error=exc.message), exc.status_code

    log_event("LOGIN_SUCCESS", user_id=result["account_id"])
    return jsonify(
        message="Login successful",
        token=result["token"],
        expires_at=result["expires_at"].isoformat(),
    ), 200


@auth_bp.post("/logout")
@login_required
def logout():
    sessions = current_app.extensions["session_service"]
    sessions.revoke_session(g.auth_token)
    log_event("LOGOUT", user_id=g.user.id)
    return jsonify(message="Logout successful"), 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(
        id=g.user.id,
        email=g.user.email,
        username=g.user.username,
        full_name=g.user.full_name,
        roles=[r.name for r in g.user.roles],
        is_active=g.user.is_active,
        created_at=g.user.created_at.isoformat(),
    ), 200
