from collections import defaultdict, deque
from typing import Deque, Dict
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from fastapi import Request
import structlog

from app.core.config import settings
from app.core.exceptions import RateLimitError

logger = structlog.get_logger()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-process sliding window rate limit, keyed by caller (user or client IP)
    """

    def __init__(self, app, requests_limit: int = None, time_window: int = None):
        super().__init__(app)
        self.requests_limit = requests_limit or settings.RATE_LIMIT_REQUESTS
        self.time_window = time_window or settings.RATE_LIMIT_PERIOD
        self.hits: Dict[str, Deque[float]] = defaultdict(deque)

    async def dispatch(self, request: Request, call_next):
        if not settings.RATE_LIMIT_ENABLED:
            return await call_next(request)

        client_id = self._get_client_id(request)
        now = time.time()
        window = self.hits[client_id]

        while window and now - window[0] > self.time_window:
            window.popleft()

        if len(window) >= self.requests_limit:
            retry_after = int(self.time_window - (now - window[0])) + 1
            logger.warning(
                "Rate limit exceeded",
                client_id=client_id,
                path=request.url.path
            )
            # Raised exceptions do not reach the exception handlers from here
            error = RateLimitError(retry_after=retry_after)
            return JSONResponse(
                status_code=error.status_code,
                content={"detail": error.detail},
                headers=error.headers,
            )

        window.append(now)
        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(self.requests_limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.requests_limit - len(window)))
        return response

    def _get_client_id(self, request: Request) -> str:
        """Get unique client identifier"""
        if getattr(request.state, "user_id", None):
            return f"user:{request.state.user_id}"

        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            client_ip = forwarded_for.split(",")[0].strip()
        else:
            client_ip = request.client.host if request.client else "unknown"

        return f"ip:{client_ip}"
