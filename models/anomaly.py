import uuid
from datetime import datetime
from models.db import db

IP_RATELIMITED = "ip_ratelimited"
USER_LOGIN_RATELIMITED = "user_login_ratelimited"

SCOPE_ORIGIN = "origin"
SCOPE_ACCOUNT = "account"

class Anomaly(db.Model):
    """One block or suspension decision.

    A permanent origin block is ``anomaly_type == ip_ratelimited`` with no
    ``user_id``. Rows are append-only; nothing in the login path updates or
    deletes them.
    """

    __tablename__ = "anomalies"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    anomaly_type = db.Column(db.String(32), nullable=False, index=True)

    # free-form identifiers, no foreign keys
    user_id = db.Column(db.String(36), nullable=True, index=True)
    ip_address = db.Column(db.String(64), nullable=True, index=True)
    reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def scope(self) -> str:
        if self.anomaly_type == IP_RATELIMITED and self.user_id is None:
            return SCOPE_ORIGIN
        return SCOPE_ACCOUNT

    @property
    def scope_id(self):
        return self.ip_address if self.scope == SCOPE_ORIGIN else self.user_id
