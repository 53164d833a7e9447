from flask import Blueprint, jsonify, g, current_app

from models.user import User
from security.errors import StoreUnavailable
from security.rbac import require_roles
from utils.audit import log_event

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


def _iso(value):
    return value.isoformat() if value else None


@admin_bp.get("/users")
@require_roles("ADMIN")
def list_users():
    users = User.query.order_by(User.created_at.desc()).all()
    return jsonify(
        message="Users retrieved successfully",
        users=[
            {
                "id": u.id,
                "email": u.email,
                "username": u.username,
                "full_name": u.full_name,
                "roles": [r.name for r in u.roles],
                "is_active": u.is_active,
                "created_at": _iso(u.created_at),
            }
            for u in users
        ],
    ), 200


@admin_bp.get("/anomalies")
@require_roles("ADMIN")
def list_anomalies():
    ledger = current_app.extensions["block_ledger"]
    try:
        rows = ledger.list_all()
    except StoreUnavailable:
        current_app.logger.exception("Failed to retrieve anomalies")
        return jsonify(error="Failed to retrieve anomalies"), 500

    log_event("ADMIN_ANOMALIES_VIEW", user_id=g.user.id)
    return jsonify(
        message="Anomalies retrieved successfully",
        anomalies=[
            {
                "id": a.id,
                "anomaly_type": a.anomaly_type,
                "scope": a.scope,
                "user_id": a.user_id,
                "ip_address": a.ip_address,
                "reason": a.reason,
                "created_at": _iso(a.created_at),
                "updated_at": _iso(a.updated_at),
            }
            for a in rows
        ],
    ), 200


@admin_bp.get("/anomaly-stats")
@require_roles("ADMIN")
def anomaly_stats():
    ledger = current_app.extensions["block_ledger"]
    window = current_app.config.get("ANOMALY_STATS_WINDOW_SECONDS", 15 * 60)
    try:
        stats = ledger.stats(window)
    except StoreUnavailable:
        current_app.logger.exception("Failed to retrieve anomaly stats")
        return jsonify(error="Failed to retrieve anomaly stats"), 500

    return jsonify(message="Anomaly stats retrieved successfully", stats=stats), 200
