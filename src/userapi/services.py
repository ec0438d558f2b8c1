"""Service layer for user registration, login and record management."""

import logging
from functools import lru_cache
from typing import List, NoReturn

from prometheus_client import Counter
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import ConflictError, InternalError, NotFoundError, UnauthorizedError
from .models.user import User
from .passwords import BCRYPT_ROUNDS, hash_password, verify_password

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "invalid credentials"
EMAIL_TAKEN = "email already registered"
USER_NOT_FOUND = "user not found"

REGISTRATION_COUNTER = Counter(
    "user_registrations_total", "Total users registered"
)
LOGIN_COUNTER = Counter(
    "user_logins_total", "Total login attempts", ["outcome"]
)


@lru_cache(maxsize=None)
def _dummy_hash(rounds: int) -> str:
    # compared against when the email is unknown so both failures cost one bcrypt check
    return hash_password("not-a-real-password", rounds=rounds)


def normalize_email(email: str) -> str:
    """Emails are compared and stored lower-cased."""
    return email.strip().lower()


def _handle_service_error(session: Session, exc: Exception) -> NoReturn:
    """Rollback transaction and raise the matching service error."""
    session.rollback()
    if isinstance(exc, IntegrityError):
        logger.warning("integrity error: %s", exc.orig)
        raise ConflictError(EMAIL_TAKEN) from exc
    logger.exception("service layer error", exc_info=exc)
    if isinstance(exc, SQLAlchemyError):
        raise InternalError("database error") from exc
    raise exc


def get_user_by_email(session: Session, email: str) -> User | None:
    try:
        return session.query(User).filter(User.email == normalize_email(email)).first()
    except SQLAlchemyError as exc:
        _handle_service_error(session, exc)


def get_user(session: Session, user_id: int) -> User:
    """Return the user with ``user_id`` or raise :class:`NotFoundError`."""
    try:
        user = session.get(User, user_id)
    except SQLAlchemyError as exc:
        _handle_service_error(session, exc)
    if user is None:
        raise NotFoundError(USER_NOT_FOUND)
    return user


def list_users(session: Session, skip: int = 0, limit: int | None = None) -> List[User]:
    """Return users ordered by id, optionally paginated."""
    try:
        query = session.query(User).order_by(User.id).offset(skip)
        if limit is not None:
            query = query.limit(limit)
        return query.all()
    except SQLAlchemyError as exc:
        _handle_service_error(session, exc)


def register_user(
    session: Session,
    email: str,
    password: str,
    name: str,
    rounds: int = BCRYPT_ROUNDS,
) -> User:
    """Create a new user with role ``user``.

    The prior lookup gives the common case a clean error; the unique
    constraint on ``users.email`` settles concurrent registrations.
    """
    email = normalize_email(email)
    if get_user_by_email(session, email) is not None:
        raise ConflictError(EMAIL_TAKEN)

    user = User(
        email=email,
        password_hash=hash_password(password, rounds=rounds),
        name=name,
        role="user",
        is_active=True,
    )
    try:
        session.add(user)
        session.commit()
        session.refresh(user)
    except SQLAlchemyError as exc:
        _handle_service_error(session, exc)

    REGISTRATION_COUNTER.inc()
    logger.info("registered user %s", user.id)
    return user


def authenticate(
    session: Session, email: str, password: str, rounds: int = BCRYPT_ROUNDS
) -> User:
    """Return the user for valid credentials.

    Unknown email, wrong password and inactive account all raise the same
    :class:`UnauthorizedError`.
    """
    user = get_user_by_email(session, email)
    if user is None:
        verify_password(password, _dummy_hash(rounds))
        LOGIN_COUNTER.labels(outcome="failure").inc()
        raise UnauthorizedError(INVALID_CREDENTIALS)
    if not verify_password(password, user.password_hash) or not user.is_active:
        LOGIN_COUNTER.labels(outcome="failure").inc()
        raise UnauthorizedError(INVALID_CREDENTIALS)

    LOGIN_COUNTER.labels(outcome="success").inc()
    return user


def update_user(
    session: Session,
    user_id: int,
    name: str | None = None,
    email: str | None = None,
) -> User:
    """Overwrite name and/or email; empty values leave the field untouched."""
    user = get_user(session, user_id)
    if name:
        user.name = name
    if email:
        user.email = normalize_email(email)
    try:
        session.commit()
        session.refresh(user)
    except SQLAlchemyError as exc:
        _handle_service_error(session, exc)
    logger.info("updated user %s", user.id)
    return user


def delete_user(session: Session, user_id: int) -> None:
    """Permanently remove a user."""
    user = get_user(session, user_id)
    try:
        session.delete(user)
        session.commit()
    except SQLAlchemyError as exc:
        _handle_service_error(session, exc)
    logger.info("deleted user %s", user_id)
