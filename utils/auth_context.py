from functools import wraps
from flask import current_app, g, jsonify, request
from models import db
from models.user import User

def _bearer_token():
    header = request.headers.get("Authorization") or ""
    if not header.startswith("Bearer "):
        return None
    return header[len("Bearer "):].strip() or None

def load_current_user():
    """
    Resolves the bearer token into g.user / g.session.
    g.auth_error carries the reason when no user could be loaded.
    """
    g.user = None
    g.session = None
    g.auth_token = _bearer_token()

    if g.auth_token is None:
        g.auth_error = "Authorization header required"
        return

    sessions = current_app.extensions["session_service"]
    sess = sessions.get_session(g.auth_token)
    if not sess:
        g.auth_error = "Invalid or expired session"
        return

    user = db.session.get(User, sess.user_id)
    if not user:
        g.auth_error = "User not found"
        return
    if not user.is_active:
        g.auth_error = "Account is inactive"
        return

    g.auth_error = None
    g.session = sess
    g.user = user

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error=getattr(g, "auth_error", None) or "Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
