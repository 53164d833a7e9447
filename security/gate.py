import logging

from security.errors import (
    AccountSuspended,
    InvalidCredentials,
    OriginBlocked,
    SuspendedLoginRefused,
    UnknownIdentity,
)

logger = logging.getLogger(__name__)


class AuthenticationGate:
    """
    Login orchestration around the anomaly engine.

    Order matters:
      1. blocked origins are refused before any password hashing
      2. failures are recorded before the response is chosen
      3. a correct password never bypasses an active suspension
      4. only then is a session issued

    Raises AuthError subclasses; the route maps them to responses.
    """

    def __init__(self, engine, credentials, sessions):
        self.engine = engine
        self.credentials = credentials
        self.sessions = sessions

    def login(self, identity: str, password: str, origin: str, user_agent: str = None) -> dict:
        if self.engine.is_origin_blocked(origin):
            logger.warning("Refused login from blocked origin %s", origin)
            raise OriginBlocked()

        try:
            account_id = self.credentials.verify_credentials(identity, password)
        except InvalidCredentials:
            raise self._record_failure(identity, origin) from None

        if self.engine.is_account_suspended(account_id):
            logger.warning("Refused correct-password login for suspended account %s", account_id)
            raise SuspendedLoginRefused()

        session = self.sessions.create_session(account_id, ip=origin, user_agent=user_agent)
        logger.info("Session issued for account %s", account_id)
        return {
            "account_id": account_id,
            "token": session["token"],
            "expires_at": session["expires_at"],
        }

    def _record_failure(self, identity: str, origin: str):
        """Charge the failure and return the error the client should see."""
        try:
            account_id = self.credentials.resolve_identity(identity)
        except UnknownIdentity:
            account_id = None

        # read before recording: the Nth failure still reports invalid
        # credentials, later ones report the suspension
        prior = self.engine.get_account_failure_count(account_id) if account_id else 0
        self.engine.record_failed_attempt(origin, account_id)

        if account_id and prior >= self.engine.thresholds.account_attempts:
            return AccountSuspended()
        return InvalidCredentials()
