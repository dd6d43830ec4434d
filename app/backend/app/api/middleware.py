"""
HTTP middleware: request context logging, per-wallet rate limiting and
response headers.
"""

import time
import uuid
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Optional, Tuple

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.responses import JSONResponse

import structlog

from app.core.config import settings
from app.models.base import utcnow
from app.utils.validation import EvmValidator


logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Payment writes get their own, tighter bucket; status polling stays in the general one
PAYMENT_WRITE_PATHS = ("/payments/intents", "/payments/submit")


def wallet_from_request(request: Request) -> Optional[str]:
    """Lower-cased wallet from a valid Bearer header, else None."""
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not EvmValidator.is_valid_address(token):
        return None
    return token.lower()


def error_body(error_code: str, message: str) -> dict:
    return {
        "success": False,
        "error_code": error_code,
        "message": message,
        "timestamp": utcnow().isoformat(),
    }


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds request id and wallet to the log context for the whole request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:16]
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            wallet=wallet_from_request(request),
        )

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "Unhandled error",
                method=request.method,
                path=request.url.path,
                error=str(e),
            )
            response = JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=error_body("INTERNAL_SERVER_ERROR", "An internal server error occurred"),
            )

        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info(
            "Request handled",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = str(elapsed_ms)
        structlog.contextvars.clear_contextvars()
        return response


class SlidingWindow:
    """Timestamps of recent hits per key; idle keys are swept once per window."""

    def __init__(self, limit: int, window_seconds: int):
        self.limit = limit
        self.window_seconds = window_seconds
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._last_sweep = 0.0

    def __len__(self) -> int:
        return len(self._hits)

    def hit(self, key: str, now: Optional[float] = None) -> Tuple[bool, int]:
        """Record a hit unless over the limit. Returns (allowed, remaining)."""
        now = time.monotonic() if now is None else now
        if now - self._last_sweep >= self.window_seconds:
            self._sweep(now)

        hits = self._hits[key]
        while hits and hits[0] <= now - self.window_seconds:
            hits.popleft()

        if len(hits) >= self.limit:
            return False, 0
        hits.append(now)
        return True, self.limit - len(hits)

    def _sweep(self, now: float) -> None:
        cutoff = now - self.window_seconds
        idle = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in idle:
            del self._hits[key]
        self._last_sweep = now


class RateLimitingMiddleware(BaseHTTPMiddleware):
    """In-memory limits keyed by wallet, falling back to client IP."""

    def __init__(
        self,
        app: FastAPI,
        max_requests: int = 100,
        window_seconds: int = 60,
        payment_requests: int = 10,
    ):
        super().__init__(app)
        self.window_seconds = window_seconds
        self.general = SlidingWindow(max_requests, window_seconds)
        self.payments = SlidingWindow(payment_requests, window_seconds)

    @staticmethod
    def client_key(request: Request) -> str:
        wallet = wallet_from_request(request)
        if wallet:
            return f"wallet:{wallet}"
        return f"ip:{request.client.host if request.client else 'unknown'}"

    def bucket_for(self, request: Request) -> SlidingWindow:
        if request.method == "POST" and request.url.path.endswith(PAYMENT_WRITE_PATHS):
            return self.payments
        return self.general

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        key = self.client_key(request)
        bucket = self.bucket_for(request)
        allowed, remaining = bucket.hit(key)

        if not allowed:
            logger.warning("Rate limit exceeded", client_key=key, path=request.url.path)
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content=error_body(
                    "RATE_LIMIT_EXCEEDED",
                    f"Rate limit exceeded. Max {bucket.limit} requests per {self.window_seconds} seconds",
                ),
                headers={
                    "X-RateLimit-Limit": str(bucket.limit),
                    "Retry-After": str(self.window_seconds),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(bucket.limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers.update({
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "Referrer-Policy": "strict-origin-when-cross-origin",
            "X-API-Version": settings.app_version,
        })
        return response


def add_middleware(app: FastAPI) -> None:
    """Install middleware; the last one added is the outermost."""
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=[REQUEST_ID_HEADER],
        )

    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(SecurityHeadersMiddleware)

    if settings.rate_limit_enabled:
        app.add_middleware(
            RateLimitingMiddleware,
            max_requests=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window,
            payment_requests=settings.rate_limit_payment_requests,
        )

    app.add_middleware(RequestContextMiddleware)
