"""FastAPI application exposing login and post endpoints."""

import logging
from typing import List, Type

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import issue, register, require_user
from .config import settings
from .database import get_db, init_db
from .errors import ApiError, InternalError, InvalidAction, MethodNotSupported
from .models.user import User
from .schemas import (
    AuthRequest,
    AuthResponse,
    LikeResponse,
    PostCreate,
    PostOut,
    PostUpdate,
    RegisterRequest,
    TagOut,
    UserOut,
)
from . import services


limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)
app = FastAPI(title=settings.api_title)
app.state.limiter = limiter
init_db()

logger = logging.getLogger(__name__)

# Prometheus counter to track API requests by method, endpoint and status code
REQUEST_COUNTER = Counter(
    "api_requests_total",
    "Total API requests",
    ["method", "endpoint", "status"],
)


def _message(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log incoming requests and their outcomes while updating metrics."""
    logger.info("request %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
    except Exception:
        logger.exception(
            "error handling %s %s", request.method, request.url.path
        )
        response = _message(InternalError.status_code, InternalError.message)
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


@app.exception_handler(ApiError)
async def handle_api_error(request: Request, exc: ApiError):
    return _message(exc.status_code, exc.message)


@app.exception_handler(RateLimitExceeded)
async def handle_rate_limit(request: Request, exc: RateLimitExceeded):
    response = _message(429, f"Rate limit exceeded: {exc.detail}")
    return request.app.state.limiter._inject_headers(response, request.state.view_rate_limit)


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException):
    if exc.status_code == MethodNotSupported.status_code:
        return _message(exc.status_code, MethodNotSupported.message)
    return _message(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    logger.info("rejected %s %s: %s", request.method, request.url.path, exc.errors())
    return _message(400, "Invalid request body")


def write_body(schema: Type[BaseModel]):
    """Parse a write route's JSON body once the caller is authenticated.

    FastAPI decodes declared body parameters before any dependency runs, so a
    garbled body would otherwise answer 400 to an anonymous caller.
    """

    async def parse(request: Request, user: User = Depends(require_user)):
        try:
            data = await request.json()
        except ValueError:
            raise RequestValidationError([{"type": "json_invalid", "loc": ("body",), "msg": "Invalid JSON"}])
        try:
            return schema.model_validate(data)
        except ValidationError as exc:
            raise RequestValidationError(exc.errors(include_url=False))

    return parse


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.post("/auth", response_model=AuthResponse)
@limiter.limit(settings.auth_rate_limit)
def login(request: Request, payload: AuthRequest, db: Session = Depends(get_db)):
    """Exchange an email and password for a signed token."""
    if payload.action != "login":
        raise InvalidAction()
    user, token = issue(db, payload.email, payload.password)
    return AuthResponse(token=token, user=UserOut.model_validate(user))


@app.post("/auth/register", response_model=AuthResponse, status_code=201)
@limiter.limit(settings.auth_rate_limit)
def register_user(request: Request, payload: RegisterRequest, db: Session = Depends(get_db)):
    user, token = register(db, payload.email, payload.password, payload.name)
    return AuthResponse(token=token, user=UserOut.model_validate(user))


@app.get("/posts", response_model=List[PostOut])
def list_posts(db: Session = Depends(get_db)):
    """Return every post, newest first. No token required."""
    return services.list_posts(db)


@app.post("/posts", response_model=PostOut, status_code=201)
def create_post(
    payload: PostCreate = Depends(write_body(PostCreate)),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Create a post authored by the token's user."""
    return services.create_post(db, user, payload)


@app.get("/posts/{post_id}", response_model=PostOut)
def get_post(post_id: str, db: Session = Depends(get_db)):
    return services.get_post(db, post_id)


@app.put("/posts/{post_id}", response_model=PostOut)
def update_post(
    post_id: str,
    payload: PostUpdate = Depends(write_body(PostUpdate)),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    return services.update_post(db, user, post_id, payload)


@app.delete("/posts/{post_id}", status_code=204)
def delete_post(
    post_id: str,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    services.delete_post(db, user, post_id)
    return Response(status_code=204)


@app.post("/posts/{post_id}/like", response_model=LikeResponse)
def like_post(
    post_id: str,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    return LikeResponse(likes=services.like_post(db, post_id))


@app.get("/tags", response_model=List[TagOut])
def list_tags(db: Session = Depends(get_db)):
    return services.list_tags(db)
