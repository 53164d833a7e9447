"""
Brute-force decision engine.

Counts failed logins per origin address and per account in rolling windows,
writes durable blocks when an origin crosses its threshold, and answers
"is this blocked / suspended" for the login flow.

States per scope, derived rather than stored:

    origin:  CLEAR -> WARNING -> BLOCKED   (permanent, ledger-backed)
    account: CLEAR -> WARNING -> SUSPENDED (reverts as attempts age out)

Infrastructure errors never deny a login here: every check fails open and
the error is logged.
"""
import logging
from dataclasses import dataclass

from models.anomaly import SCOPE_ACCOUNT, SCOPE_ORIGIN
from security.block_ledger import BlockLedger
from security.errors import StoreUnavailable
from security.event_store import EventStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Thresholds:
    origin_attempts: int = 100
    account_attempts: int = 5
    origin_window_seconds: int = 15 * 60
    account_window_seconds: int = 15 * 60

    @classmethod
    def from_config(cls, config) -> "Thresholds":
        return cls(
            origin_attempts=int(config.get("ORIGIN_ATTEMPT_THRESHOLD", cls.origin_attempts)),
            account_attempts=int(config.get("ACCOUNT_ATTEMPT_THRESHOLD", cls.account_attempts)),
            origin_window_seconds=int(config.get("ORIGIN_WINDOW_SECONDS", cls.origin_window_seconds)),
            account_window_seconds=int(config.get("ACCOUNT_WINDOW_SECONDS", cls.account_window_seconds)),
        )


@dataclass(frozen=True)
class AttemptOutcome:
    account_suspended: bool = False
    origin_blocked: bool = False


class AnomalyEngine:
    def __init__(self, events: EventStore, ledger: BlockLedger, thresholds: Thresholds = None):
        self.events = events
        self.ledger = ledger
        self.thresholds = thresholds or Thresholds()

    # ---- counting -------------------------------------------------------

    def _origin_count(self, origin: str) -> int:
        return self.events.count(SCOPE_ORIGIN, origin)

    def _account_count(self, account_id: str) -> int:
        return self.events.count(SCOPE_ACCOUNT, account_id)

    def get_account_failure_count(self, account_id: str) -> int:
        try:
            return self._account_count(account_id)
        except StoreUnavailable:
            logger.exception("Could not read failure count for account %s", account_id)
            return 0

    # ---- recording ------------------------------------------------------

    def record_failed_attempt(self, origin: str, account_id: str = None) -> AttemptOutcome:
        """
        Record one failed login. The origin is always charged; the account
        only when the identity resolved to a real user, so unknown identities
        never produce account-level signal.
        """
        t = self.thresholds

        # each scope is written and evaluated on its own: a failed account
        # write must not skip the origin check
        origin_recorded = self._record_event(SCOPE_ORIGIN, origin, t.origin_window_seconds)
        account_recorded = bool(account_id) and self._record_event(
            SCOPE_ACCOUNT, account_id, t.account_window_seconds
        )

        account_suspended = False
        if account_recorded:
            account_suspended = self._evaluate_account(origin, account_id)
        origin_blocked = False
        if origin_recorded:
            origin_blocked = self._evaluate_origin(origin)

        logger.info(
            "Failed login attempt recorded. account=%s origin=%s suspended=%s blocked=%s",
            account_id or "unknown", origin, account_suspended, origin_blocked,
        )
        return AttemptOutcome(account_suspended=account_suspended, origin_blocked=origin_blocked)

    def _record_event(self, scope: str, scope_id: str, window_seconds: int) -> bool:
        try:
            self.events.record(scope, scope_id, window_seconds)
        except StoreUnavailable:
            logger.exception("Failed to record login failure (%s=%s)", scope, scope_id)
            return False
        return True

    def _evaluate_account(self, origin: str, account_id: str) -> bool:
        t = self.thresholds
        try:
            count = self._account_count(account_id)
        except StoreUnavailable:
            logger.exception("Could not evaluate suspension for account %s", account_id)
            return False

        if count < t.account_attempts:
            return False

        # one audit row per qualifying failure; suspension itself is still count-derived
        try:
            self.ledger.record_block(
                SCOPE_ACCOUNT,
                account_id,
                reason=f"{count} failed logins within {t.account_window_seconds}s",
                ip_address=origin,
            )
        except StoreUnavailable:
            logger.exception("Could not persist suspension for account %s", account_id)
        return True

    def _evaluate_origin(self, origin: str) -> bool:
        t = self.thresholds
        try:
            count = self._origin_count(origin)
        except StoreUnavailable:
            logger.exception("Could not evaluate block for origin %s", origin)
            return False

        if count < t.origin_attempts:
            return False

        try:
            self.ledger.record_block(
                SCOPE_ORIGIN,
                origin,
                reason=f"{count} failed logins within {t.origin_window_seconds}s",
            )
        except StoreUnavailable:
            # the rolling count still blocks the origin until it ages out
            logger.exception("Could not persist permanent block for origin %s", origin)
        return True

    # ---- queries --------------------------------------------------------

    def is_origin_blocked(self, origin: str) -> bool:
        try:
            if self.ledger.is_permanently_blocked(origin):
                return True
        except StoreUnavailable:
            logger.exception("Block ledger unavailable while checking origin %s", origin)

        try:
            count = self._origin_count(origin)
        except StoreUnavailable:
            logger.exception("Event store unavailable while checking origin %s", origin)
            return False

        blocked = count >= self.thresholds.origin_attempts
        if blocked:
            logger.warning("Origin %s is blocked. Failed attempts: %d", origin, count)
        return blocked

    def is_account_suspended(self, account_id: str) -> bool:
        try:
            count = self._account_count(account_id)
        except StoreUnavailable:
            logger.exception("Event store unavailable while checking account %s", account_id)
            return False

        suspended = count >= self.thresholds.account_attempts
        if suspended:
            logger.warning("Account %s is suspended. Failed attempts: %d", account_id, count)
        return suspended
