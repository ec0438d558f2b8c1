"""FastAPI application exposing registration, login and user management endpoints."""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

import logging
from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest
from pydantic import BaseModel, ConfigDict, EmailStr, constr, field_validator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import Identity, build_verifier, create_access_token, require_identity
from .config import Settings, settings as default_settings
from .database import Database, get_db
from .errors import NotFoundError, ServiceError
from .services import (
    USER_NOT_FOUND,
    authenticate,
    delete_user,
    get_user,
    list_users,
    register_user,
    update_user,
)

logger = logging.getLogger(__name__)

# largest value a signed 64-bit integer column can hold
MAX_USER_ID = 2**63 - 1

PLACEHOLDER_PROFILE = {
    "id": 1,
    "email": "user@example.com",
    "name": "Example User",
    "role": "user",
}

# Prometheus counter to track API requests by method, endpoint and status code
REQUEST_COUNTER = Counter(
    "api_requests_total",
    "Total API requests",
    ["method", "endpoint", "status"],
)


async def log_requests(request: Request, call_next):
    """Log incoming requests and their outcomes while updating metrics.

    Also the last line of defence: anything that escapes the exception
    handlers becomes a generic 500 response.
    """
    logger.info("request %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
    except Exception:
        REQUEST_COUNTER.labels(
            method=request.method,
            endpoint=request.url.path,
            status="500",
        ).inc()
        logger.exception(
            "error handling %s %s", request.method, request.url.path
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "internal server error"},
        )
    REQUEST_COUNTER.labels(
        method=request.method,
        endpoint=request.url.path,
        status=str(response.status_code),
    ).inc()
    logger.info(
        "response %s %s status %s",
        request.method,
        request.url.path,
        response.status_code,
    )
    return response


class RegisterRequest(BaseModel):
    """Request body for registering a new user."""

    email: EmailStr
    password: constr(min_length=6)
    name: constr(strip_whitespace=True, min_length=1)


class LoginRequest(BaseModel):
    """Request body for user login."""

    email: EmailStr
    password: constr(min_length=1)


class UserUpdate(BaseModel):
    """Request body for updating a user. Blank fields are ignored."""

    name: Optional[str] = None
    email: Optional[EmailStr] = None

    @field_validator("name", "email", mode="before")
    @classmethod
    def blank_as_missing(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value


class UserSummary(BaseModel):
    """Public view of a user."""

    id: int
    email: str
    name: str
    role: str

    model_config = ConfigDict(from_attributes=True)


class UserResponse(UserSummary):
    """Serialized user record without credentials."""

    is_active: bool
    created_at: datetime
    updated_at: datetime


class RegisterResponse(BaseModel):
    message: str
    user: UserSummary


class LoginResponse(BaseModel):
    """Signed access token and the authenticated user."""

    message: str
    token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserSummary


class UserUpdateResponse(BaseModel):
    message: str
    user: UserResponse


class ProfileResponse(BaseModel):
    message: str
    profile: UserSummary


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
    message: str
    version: str


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def parse_user_id(user_id: str) -> int:
    """Path ids that are not integers cannot match any record."""
    if not (user_id.isascii() and user_id.isdigit()) or int(user_id) > MAX_USER_ID:
        raise NotFoundError(USER_NOT_FOUND)
    return int(user_id)


public_router = APIRouter()
protected_router = APIRouter(dependencies=[Depends(require_identity)])


@public_router.get("/health", response_model=HealthResponse, tags=["health"])
def health(config: Settings = Depends(get_settings)):
    """Report that the API is up."""

    return HealthResponse(status="ok", message="API is running", version=config.api_version)


def build_auth_router(limiter: Limiter, rate_limit: str) -> APIRouter:
    """Register and login routes, throttled by the app's own limiter."""

    router = APIRouter(tags=["auth"])

    @router.post(
        "/auth/register",
        response_model=RegisterResponse,
        status_code=status.HTTP_201_CREATED,
    )
    @limiter.limit(rate_limit)
    def register(
        request: Request,
        payload: RegisterRequest,
        db: Session = Depends(get_db),
        config: Settings = Depends(get_settings),
    ):
        """Create a new account with role ``user``."""

        user = register_user(
            db,
            email=payload.email,
            password=payload.password,
            name=payload.name,
            rounds=config.bcrypt_rounds,
        )
        return {"message": "user created", "user": user}

    @router.post("/auth/login", response_model=LoginResponse)
    @limiter.limit(rate_limit)
    def login(
        request: Request,
        payload: LoginRequest,
        db: Session = Depends(get_db),
        config: Settings = Depends(get_settings),
    ):
        """Exchange email and password for a bearer token."""

        user = authenticate(db, payload.email, payload.password, rounds=config.bcrypt_rounds)
        return {
            "message": "login successful",
            "token": create_access_token(user, config),
            "token_type": "bearer",
            "expires_in": config.access_token_expire_minutes * 60,
            "user": user,
        }

    return router


@protected_router.get("/users", response_model=List[UserResponse], tags=["users"])
def get_users(
    skip: int = Query(0, ge=0),
    limit: int | None = Query(None, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    """Return all users, optionally paginated."""

    return list_users(db, skip=skip, limit=limit)


@protected_router.get("/users/{user_id}", response_model=UserResponse, tags=["users"])
def get_user_endpoint(user_id: str, db: Session = Depends(get_db)):
    """Return a single user."""

    return get_user(db, parse_user_id(user_id))


@protected_router.put("/users/{user_id}", response_model=UserUpdateResponse, tags=["users"])
def put_user(user_id: str, payload: UserUpdate, db: Session = Depends(get_db)):
    """Update a user's name and/or email."""

    user = update_user(
        db, parse_user_id(user_id), name=payload.name, email=payload.email
    )
    return {"message": "user updated", "user": user}


@protected_router.delete("/users/{user_id}", response_model=MessageResponse, tags=["users"])
def delete_user_endpoint(user_id: str, db: Session = Depends(get_db)):
    """Permanently delete a user."""

    delete_user(db, parse_user_id(user_id))
    return MessageResponse(message="user deleted")


@protected_router.get("/profile", response_model=ProfileResponse, tags=["profile"])
def get_profile(
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_db),
):
    """Return the authenticated caller's own record."""

    if identity.anonymous:
        return {"message": "user profile", "profile": PLACEHOLDER_PROFILE}
    return {"message": "user profile", "profile": get_user(db, identity.user_id)}


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code, content={"error": exc.message}, headers=headers
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = "invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


async def http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    # a known path with the wrong method is reported like an unknown path
    if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={
                "error": "route not found",
                "message": "the requested route does not exist",
                "path": request.url.path,
            },
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


def create_app(settings: Settings | None = None, database: Database | None = None) -> FastAPI:
    """Build the application with its own database handle and token verifier."""

    settings = settings or default_settings
    owns_database = database is None
    database = database or Database(settings.sqlalchemy_url, echo=settings.database_echo)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.init_db()
        yield
        if owns_database:
            database.dispose()

    app = FastAPI(title=settings.api_title, version=settings.api_version, lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.verifier = build_verifier(settings)

    limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    origins = settings.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"],
        allow_headers=["Origin", "Content-Length", "Content-Type", "Authorization"],
        expose_headers=["Content-Length"],
        max_age=12 * 60 * 60,
    )
    app.middleware("http")(log_requests)

    app.include_router(public_router, prefix=settings.api_prefix)
    app.include_router(
        build_auth_router(limiter, settings.auth_rate_limit), prefix=settings.api_prefix
    )
    app.include_router(protected_router, prefix=settings.api_prefix)

    @app.get("/", include_in_schema=False)
    def root():
        return {
            "message": f"Welcome to {settings.api_title}",
            "version": settings.api_version,
            "docs": app.docs_url,
        }

    @app.get("/metrics", include_in_schema=False)
    def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()
