from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.anomaly import Anomaly, IP_RATELIMITED, USER_LOGIN_RATELIMITED
from security.block_ledger import BlockLedger
from security.errors import StoreUnavailable


@pytest.fixture
def ledger(app):
    return BlockLedger()


def test_origin_block_is_idempotent(ledger):
    first = ledger.record_block("origin", "5.5.5.5", reason="threshold")
    again = ledger.record_block("origin", "5.5.5.5", reason="threshold")
    third = ledger.record_block("origin", "5.5.5.5")

    assert first.id == again.id == third.id
    assert Anomaly.query.filter_by(ip_address="5.5.5.5").count() == 1
    assert first.anomaly_type == IP_RATELIMITED
    assert first.user_id is None
    assert first.scope == "origin"
    assert first.scope_id == "5.5.5.5"


def test_is_permanently_blocked(ledger):
    assert ledger.is_permanently_blocked("5.5.5.5") is False
    ledger.record_block("origin", "5.5.5.5")
    assert ledger.is_permanently_blocked("5.5.5.5") is True
    assert ledger.is_permanently_blocked("6.6.6.6") is False


def test_account_rows_append_and_do_not_block_origin(ledger):
    ledger.record_block("account", "user-1", reason="5 failures", ip_address="7.7.7.7")
    ledger.record_block("account", "user-1", reason="6 failures", ip_address="7.7.7.7")

    rows = Anomaly.query.filter_by(user_id="user-1").all()
    assert len(rows) == 2
    assert all(r.anomaly_type == USER_LOGIN_RATELIMITED for r in rows)
    assert rows[0].scope == "account"
    assert rows[0].scope_id == "user-1"
    assert ledger.is_permanently_blocked("7.7.7.7") is False


def test_unknown_scope(ledger):
    with pytest.raises(ValueError):
        ledger.record_block("tenant", "x")


def test_list_all_newest_first(ledger):
    now = datetime.utcnow()
    db.session.add_all([
        Anomaly(anomaly_type=IP_RATELIMITED, ip_address="1.1.1.1", created_at=now - timedelta(minutes=5)),
        Anomaly(anomaly_type=IP_RATELIMITED, ip_address="2.2.2.2", created_at=now),
    ])
    db.session.commit()

    rows = ledger.list_all()
    assert [r.ip_address for r in rows] == ["2.2.2.2", "1.1.1.1"]


def test_stats_only_counts_rows_inside_window(ledger):
    now = datetime.utcnow()
    db.session.add_all([
        Anomaly(anomaly_type=IP_RATELIMITED, ip_address="1.1.1.1", created_at=now),
        Anomaly(anomaly_type=USER_LOGIN_RATELIMITED, user_id="u1", ip_address="1.1.1.1", created_at=now),
        Anomaly(anomaly_type=USER_LOGIN_RATELIMITED, user_id="u2", ip_address="3.3.3.3", created_at=now),
        Anomaly(anomaly_type=USER_LOGIN_RATELIMITED, user_id="u1", ip_address="3.3.3.3", created_at=now),
        # outside the window
        Anomaly(anomaly_type=IP_RATELIMITED, ip_address="9.9.9.9", created_at=now - timedelta(hours=2)),
        Anomaly(anomaly_type=USER_LOGIN_RATELIMITED, user_id="u9", ip_address="9.9.9.9", created_at=now - timedelta(hours=2)),
    ])
    db.session.commit()

    stats = ledger.stats(15 * 60)
    assert stats == {
        "total_recent_attempts": 4,
        "unique_users_affected": 2,
        "unique_ips_involved": 2,
        "blocked_ips": 1,
        "time_window_minutes": 15,
    }


def test_write_failure_raises_store_unavailable(ledger):
    with patch.object(db.session, "commit", side_effect=SQLAlchemyError("database is locked")):
        with pytest.raises(StoreUnavailable):
            ledger.record_block("origin", "5.5.5.5")

    assert ledger.is_permanently_blocked("5.5.5.5") is False
