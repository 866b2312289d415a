from typing import Iterable, Optional
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
import jwt
import structlog

from app.core.config import settings
from app.core.exceptions import AuthenticationError

logger = structlog.get_logger()


def decode_access_token(token: str) -> dict:
    """Verify a bearer token and return its claims"""
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise AuthenticationError(f"Invalid token: {str(e)}")
    return payload


class BearerTokenMiddleware(BaseHTTPMiddleware):
    """
    Middleware to identify the caller from an ``Authorization: Bearer`` token.

    Requests without a valid token continue unauthenticated; endpoints that
    need a user reject them through ``get_current_user``.
    """

    def __init__(self, app, exclude_paths: Optional[Iterable[str]] = None):
        super().__init__(app)
        self.exclude_paths = list(exclude_paths or [
            "/health",
            "/docs",
            "/redoc",
            "/openapi.json",
            "/metrics",
        ])

    async def dispatch(self, request: Request, call_next):
        request.state.is_authenticated = False
        request.state.user_id = None
        request.state.auth_payload = {}

        if self._should_skip_auth(request):
            return await call_next(request)

        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            try:
                payload = decode_access_token(auth_header.split(" ", 1)[1])

                request.state.user_id = payload["sub"]
                request.state.is_authenticated = True
                request.state.auth_payload = payload

                structlog.contextvars.bind_contextvars(user_id=payload["sub"])
            except AuthenticationError as e:
                logger.warning(
                    "Authentication failed",
                    path=request.url.path,
                    error=str(e)
                )

        try:
            return await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("user_id")

    def _should_skip_auth(self, request: Request) -> bool:
        """Check if the request path should skip authentication"""
        path = request.url.path
        if path == "/":
            return True
        return any(path.startswith(exclude_path) for exclude_path in self.exclude_paths)
