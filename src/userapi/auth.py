"""Bearer token issuing and the authorization gate for protected routes."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

import jwt
from fastapi import Request

from .config import Settings
from .errors import UnauthorizedError
from .models.user import User

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "
TOKEN_TYPE = "access"


@dataclass(frozen=True)
class Identity:
    """Caller admitted by the gate. ``user_id`` is ``None`` when the strategy
    cannot tell who the caller is."""

    user_id: int | None
    email: str | None = None
    role: str | None = None

    @property
    def anonymous(self) -> bool:
        return self.user_id is None


class TokenVerifier(Protocol):
    def verify(self, authorization: str | None) -> Identity:
        """Return the caller identity or raise :class:`UnauthorizedError`."""


def extract_bearer_token(authorization: str | None) -> str:
    """Strip the ``Bearer `` prefix, rejecting absent or malformed headers."""
    if not authorization:
        raise UnauthorizedError("authorization header required")
    if not authorization.startswith(BEARER_PREFIX):
        raise UnauthorizedError("invalid authorization header format")
    return authorization[len(BEARER_PREFIX):]


def create_access_token(user: User, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "type": TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(minutes=settings.access_token_expire_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


class JWTVerifier:
    """Checks signature, expiry and token type of a JWT access token."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self._secret = secret
        self._algorithm = algorithm

    def verify(self, authorization: str | None) -> Identity:
        token = extract_bearer_token(authorization)
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.PyJWTError as exc:
            logger.info("rejected token: %s", exc)
            raise UnauthorizedError("invalid or expired token") from exc

        if payload.get("type") != TOKEN_TYPE:
            raise UnauthorizedError("invalid or expired token")
        try:
            user_id = int(payload["sub"])
        except (TypeError, ValueError) as exc:
            raise UnauthorizedError("invalid or expired token") from exc
        return Identity(user_id=user_id, email=payload.get("email"), role=payload.get("role"))


class HeaderShapeVerifier:
    """Legacy gate that only checks the ``Bearer <token>`` shape.

    Any string of the right shape is admitted and no identity is recovered.
    Insecure; kept for clients of the old API.
    """

    def __init__(self):
        logger.warning("header-shape authentication enabled: tokens are not verified")

    def verify(self, authorization: str | None) -> Identity:
        extract_bearer_token(authorization)
        return Identity(user_id=None)


def build_verifier(settings: Settings) -> TokenVerifier:
    if settings.auth_mode == "header-shape":
        return HeaderShapeVerifier()
    return JWTVerifier(settings.jwt_secret, settings.jwt_algorithm)


def require_identity(request: Request) -> Identity:
    """Dependency guarding protected routes."""
    verifier: TokenVerifier = request.app.state.verifier
    identity = verifier.verify(request.headers.get("Authorization"))
    request.state.identity = identity
    return identity
