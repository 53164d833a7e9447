import logging
from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.anomaly import (
    Anomaly,
    IP_RATELIMITED,
    USER_LOGIN_RATELIMITED,
    SCOPE_ACCOUNT,
    SCOPE_ORIGIN,
)
from security.errors import StoreUnavailable

logger = logging.getLogger(__name__)


def _permanent_block_query(ip_address: str):
    return Anomaly.query.filter(
        Anomaly.anomaly_type == IP_RATELIMITED,
        Anomaly.user_id.is_(None),
        Anomaly.ip_address == ip_address,
    )


class BlockLedger:
    """
    Durable record of origin blocks and account suspensions (anomalies table).

    Survives cache eviction and restarts, unlike the event store.
    SQLAlchemy failures roll back the session and surface as StoreUnavailable.
    """

    def record_block(self, scope: str, scope_id: str, reason: str = None, ip_address: str = None) -> Anomaly:
        """
        Origin scope: idempotent. Returns the existing permanent block for the
        address if there is one. Two racing requests can both miss the lookup
        and insert; the address is blocked either way, so duplicates are
        tolerated rather than locked against.

        Account scope: appends a suspension row (user id + origin address).
        """
        try:
            if scope == SCOPE_ORIGIN:
                existing = _permanent_block_query(scope_id).order_by(Anomaly.created_at.asc()).first()
                if existing:
                    return existing
                row = Anomaly(anomaly_type=IP_RATELIMITED, ip_address=scope_id, reason=reason)
            elif scope == SCOPE_ACCOUNT:
                row = Anomaly(
                    anomaly_type=USER_LOGIN_RATELIMITED,
                    user_id=scope_id,
                    ip_address=ip_address,
                    reason=reason,
                )
            else:
                raise ValueError(f"Unknown scope: {scope!r}")

            db.session.add(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreUnavailable(f"block ledger write failed: {exc}") from exc

        logger.info("Recorded %s for %s %s", row.anomaly_type, scope, scope_id)
        return row

    def is_permanently_blocked(self, ip_address: str) -> bool:
        try:
            return _permanent_block_query(ip_address).first() is not None
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreUnavailable(f"block ledger read failed: {exc}") from exc

    def list_all(self) -> list:
        try:
            return Anomaly.query.order_by(Anomaly.created_at.desc()).all()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreUnavailable(f"block ledger read failed: {exc}") from exc

    def stats(self, window_seconds: int) -> dict:
        """
        Aggregates over rows created in the last `window_seconds`.
        """
        cutoff = datetime.utcnow() - timedelta(seconds=window_seconds)
        recent = Anomaly.query.filter(Anomaly.created_at >= cutoff)
        try:
            total = recent.count()
            users = (
                recent.filter(Anomaly.user_id.isnot(None))
                .with_entities(func.count(func.distinct(Anomaly.user_id)))
                .scalar()
            )
            ips = (
                recent.filter(Anomaly.ip_address.isnot(None))
                .with_entities(func.count(func.distinct(Anomaly.ip_address)))
                .scalar()
            )
            blocked = recent.filter(
                Anomaly.anomaly_type == IP_RATELIMITED,
                Anomaly.user_id.is_(None),
            ).count()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreUnavailable(f"block ledger read failed: {exc}") from exc

        return {
            "total_recent_attempts": total,
            "unique_users_affected": users or 0,
            "unique_ips_involved": ips or 0,
            "blocked_ips": blocked or 0,
            "time_window_minutes": window_seconds // 60,
        }
