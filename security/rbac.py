from functools import wraps
from flask import g, jsonify

def require_roles(*role_names: str):
    """
    Usage: @require_roles("ADMIN")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error=getattr(g, "auth_error", None) or "Authentication required"), 401

            user_roles = {r.name for r in user.roles}
            if not user_roles.intersection(set(role_names)):
                return jsonify(error="Admin access required" if "ADMIN" in role_names else "Forbidden"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator
