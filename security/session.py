import hashlib
import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.session import Session
from security.errors import SessionCreationFailed

logger = logging.getLogger(__name__)

def _hash_token(token: str) -> str:
    # SHA-256 is fine for hashing random session tokens
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SessionService:
    """
    Opaque bearer tokens. Only the hash is stored; the raw token is returned
    once, from create_session.
    """

    def __init__(self, lifetime_seconds: int = 24 * 60 * 60, idle_timeout_seconds: int = 2 * 60 * 60):
        self.lifetime_seconds = lifetime_seconds
        self.idle_timeout_seconds = idle_timeout_seconds

    def create_session(self, account_id: str, ip: str = None, user_agent: str = None) -> dict:
        raw_token = secrets.token_urlsafe(32)
        expires_at = datetime.utcnow() + timedelta(seconds=self.lifetime_seconds)

        row = Session(
            user_id=account_id,
            token_hash=_hash_token(raw_token),
            expires_at=expires_at,
            ip=ip,
            user_agent=(user_agent or "")[:255] or None,
        )
        try:
            db.session.add(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Session creation failed for account %s", account_id)
            raise SessionCreationFailed() from exc

        return {"token": raw_token, "expires_at": expires_at}

    def get_session(self, raw_token: str):
        if not raw_token:
            return None

        now = datetime.utcnow()
        sess = (
            Session.query
            .filter_by(token_hash=_hash_token(raw_token), revoked=False)
            .first()
        )
        if not sess:
            return None

        # Absolute expiry
        if sess.expires_at <= now:
            return None

        # Idle timeout
        last_seen = sess.last_seen_at or sess.created_at
        if (last_seen + timedelta(seconds=self.idle_timeout_seconds)) <= now:
            return None

        # Update activity timestamp (touch)
        sess.last_seen_at = now
        db.session.commit()

        return sess

    def revoke_session(self, raw_token: str) -> bool:
        if not raw_token:
            return False
        sess = Session.query.filter_by(token_hash=_hash_token(raw_token), revoked=False).first()
        if not sess:
            return False
        sess.revoked = True
        db.session.commit()
        return True
