import json
import logging

from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.audit_log import AuditLog
from utils.request_info import client_ip, user_agent

logger = logging.getLogger(__name__)

def log_event(action: str, user_id=None, metadata=None):
    row = AuditLog(
        user_id=user_id,
        action=action,
        ip=client_ip(),
        user_agent=user_agent() or None,
        metadata_json=json.dumps(metadata, default=str) if metadata else None
    )
    try:
        db.session.add(row)
        db.session.commit()
    except SQLAlchemyError:
        # auditing must not turn a login decision into a 500
        db.session.rollback()
        logger.exception("Failed to write audit event %s", action)
