import logging

from sqlalchemy import func, or_

from models import db
from models.user import User, Role
from security.errors import InvalidCredentials, UnknownIdentity
from security.password import hash_password, verify_password

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "USER"


class RegistrationError(Exception):
    pass


def normalize_identity(value: str) -> str:
    return (value or "").strip().lower()


class CredentialService:
    """
    User lookup and password verification against the users table.
    """

    def __init__(self, bcrypt_rounds: int = 12):
        self.bcrypt_rounds = bcrypt_rounds

    def _find(self, identity: str):
        ident = normalize_identity(identity)
        if not ident:
            return None
        return User.query.filter(
            or_(func.lower(User.email) == ident, func.lower(User.username) == ident)
        ).first()

    def resolve_identity(self, identity: str) -> str:
        user = self._find(identity)
        if not user:
            raise UnknownIdentity()
        return user.id

    def verify_credentials(self, identity: str, password: str) -> str:
        user = self._find(identity)
        if not user:
            logger.info("Login attempt for non-existent identity")
            raise InvalidCredentials()
        if not user.is_active:
            logger.info("Login attempt for inactive account %s", user.id)
            raise InvalidCredentials()
        if not verify_password(password, user.password_hash):
            logger.info("Invalid password for account %s", user.id)
            raise InvalidCredentials()
        return user.id

    def register(self, email: str, username: str, password: str) -> User:
        email = normalize_identity(email)
        username = (username or "").strip()

        taken = User.query.filter(
            or_(func.lower(User.email) == email, func.lower(User.username) == username.lower())
        ).first()
        if taken:
            raise RegistrationError("User already exists")

        user = User(
            email=email,
            username=username,
            password_hash=hash_password(password, rounds=self.bcrypt_rounds),
        )
        db.session.add(user)
        db.session.flush()

        role = Role.query.filter_by(name=DEFAULT_ROLE).first()
        if role:
            user.roles.append(role)

        db.session.commit()
        logger.info("User registered: %s", user.id)
        return user
