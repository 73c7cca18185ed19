"""Credential issuing and bearer-token verification.

Tokens are HS256 JWTs carrying only ``{"userId": <id>}``. They have no expiry
and there is no revocation list: a token stays valid for as long as the
signing secret does. Logging out is purely a client-side deletion.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from prometheus_client import Counter
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .config import settings
from .database import get_db
from .errors import Conflict, InternalError, InvalidCredentials, Unauthorized
from .models.user import User
from .roles import Role

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

LOGIN_COUNTER = Counter(
    "login_attempts_total", "Login attempts by outcome", ["outcome"]
)


def _encode(password: str) -> bytes:
    # bcrypt only reads the first 72 bytes and newer releases reject longer input
    return password.encode("utf-8")[:72]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt(settings.bcrypt_rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Compare a plaintext password with a bcrypt hash; malformed hashes never match."""
    try:
        return bcrypt.checkpw(_encode(password), password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Checked against when the email is unknown so both failure paths cost one bcrypt round.
_DUMMY_HASH = hash_password("postboard-timing-dummy")


@dataclass(frozen=True)
class Verified:
    user_id: str


@dataclass(frozen=True)
class Unverified:
    pass


Verification = Union[Verified, Unverified]


def create_token(user_id: str) -> str:
    return jwt.encode({"userId": user_id}, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: Optional[str]) -> Verification:
    """Decode a bearer token.

    A missing token, a bad signature, a malformed token and a payload without
    a ``userId`` string all yield ``Unverified``.
    """
    if not token:
        return Unverified()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError:
        return Unverified()
    user_id = payload.get("userId")
    if not isinstance(user_id, str) or not user_id:
        return Unverified()
    return Verified(user_id)


def issue(db: Session, email: Optional[str], password: Optional[str]) -> Tuple[User, str]:
    """Verify an email/password pair and sign a token for the matching user.

    Unknown email and wrong password raise the same ``InvalidCredentials``.
    """
    if not isinstance(email, str) or not email or not isinstance(password, str) or not password:
        raise InternalError()
    try:
        user = db.query(User).filter(User.email == email).first()
    except SQLAlchemyError as exc:
        logger.exception("user lookup failed", exc_info=exc)
        raise InternalError() from exc

    if user is None:
        verify_password(password, _DUMMY_HASH)
        LOGIN_COUNTER.labels(outcome="failure").inc()
        logger.info("login failed for unknown email")
        raise InvalidCredentials()
    if not verify_password(password, user.password_hash):
        LOGIN_COUNTER.labels(outcome="failure").inc()
        logger.info("login failed for user %s", user.id)
        raise InvalidCredentials()

    LOGIN_COUNTER.labels(outcome="success").inc()
    logger.info("user %s logged in", user.id)
    return user, create_token(user.id)


def register(db: Session, email: str, password: str, name: str) -> Tuple[User, str]:
    """Create a student account and sign a token for it."""
    try:
        if db.query(User).filter(User.email == email).first():
            raise Conflict("Email already registered")
        user = User(
            email=email,
            name=name,
            password_hash=hash_password(password),
            role=Role.STUDENT.value,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Email already registered") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("registration failed", exc_info=exc)
        raise InternalError() from exc
    logger.info("registered user %s", user.id)
    return user, create_token(user.id)


def get_verification(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Verification:
    if credentials is None:
        return Unverified()
    return verify_token(credentials.credentials)


def require_user(
    verification: Verification = Depends(get_verification),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the verified token to its user or fail with ``Unauthorized``."""
    if not isinstance(verification, Verified):
        raise Unauthorized()
    try:
        user = db.get(User, verification.user_id)
    except SQLAlchemyError as exc:
        logger.exception("user lookup failed", exc_info=exc)
        raise InternalError() from exc
    if user is None:
        raise Unauthorized()
    return user
