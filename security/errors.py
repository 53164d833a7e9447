class AuthError(Exception):
    """
    Login failure that is shown to the client as {"error": message}.
    """
    message = "Authentication failed"
    status_code = 401

    def __init__(self, message: str = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class InvalidCredentials(AuthError):
    message = "Invalid credentials"
    status_code = 401


class UnknownIdentity(InvalidCredentials):
    # internal only: routes never tell it apart from a wrong password
    message = "Invalid credentials"


class AccountSuspended(AuthError):
    message = "Account Suspended!"
    status_code = 401


class SuspendedLoginRefused(AccountSuspended):
    # correct password, but the account is still inside its suspension window
    message = "User temporarily suspended due to too many failed login attempts"
    status_code = 429


class OriginBlocked(AuthError):
    message = "IP address is blocked due to excessive failed login attempts"
    status_code = 403


class SessionCreationFailed(AuthError):
    message = "Failed to create session"
    status_code = 500


class StoreUnavailable(Exception):
    """
    The event store or block ledger could not be reached.
    Never shown to clients; the anomaly engine fails open on it.
    """
