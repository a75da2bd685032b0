"""
Transport envelope checks for webhook requests.

These run before any payload is looked at and never touch the database.
Each check raises an EnvelopeError (or ConfigurationError) on rejection.
"""
import hmac
import json
import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .exceptions import ConfigurationError, EnvelopeError, ErrorCode
from .validation import parse_iso_timestamp

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "
JSON_CONTENT_TYPE = "application/json"


class FixedWindowRateLimiter:
    """
    Best-effort per-client request counter over fixed time windows.

    State is per process, so several workers each apply their own limit.
    """

    def __init__(self, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._last_cleanup = clock()

    def allow(self, key: str) -> bool:
        """Count one request for key; False once the window's budget is spent."""
        now = self._clock()
        with self._lock:
            self._cleanup(now)
            started, count = self._windows.get(key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0
            if count >= self.max_requests:
                return False
            self._windows[key] = (started, count + 1)
            return True

    def _cleanup(self, now: float) -> None:
        if now - self._last_cleanup < self.window_seconds:
            return
        expired = [k for k, (started, _) in self._windows.items() if now - started >= self.window_seconds]
        for key in expired:
            del self._windows[key]
        self._last_cleanup = now

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        return len(self._windows)


def get_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup that works for plain dicts and Starlette headers."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def client_ip(headers: Mapping[str, str], peer: Optional[str] = None) -> str:
    """Best guess at the caller's address: first X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = get_header(headers, "x-forwarded-for")
    if forwarded and forwarded.split(",")[0].strip():
        return forwarded.split(",")[0].strip()
    real_ip = get_header(headers, "x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return peer or "unknown"


def check_configuration(webhook_secret: str) -> None:
    if not webhook_secret:
        logger.error("Webhook secret is not configured")
        raise ConfigurationError()


def check_payload_size(headers: Mapping[str, str], body: bytes, max_bytes: int) -> None:
    """Reject on either the declared Content-Length or the bytes actually received."""
    declared = get_header(headers, "content-length")
    if declared is not None and declared.strip().isdigit() and int(declared) > max_bytes:
        raise EnvelopeError("Request payload too large", ErrorCode.PAYLOAD_TOO_LARGE, 413)
    if len(body) > max_bytes:
        raise EnvelopeError("Request payload too large", ErrorCode.PAYLOAD_TOO_LARGE, 413)


def check_rate_limit(rate_limiter: Optional[FixedWindowRateLimiter], ip: str) -> None:
    if rate_limiter is not None and not rate_limiter.allow(ip):
        logger.warning(f"Rate limit exceeded for {ip}")
        raise EnvelopeError("Too many requests", ErrorCode.RATE_LIMITED, 429)


def parse_request_timestamp(raw: str) -> datetime:
    """X-Timestamp as ISO-8601 or as integer epoch seconds."""
    text = raw.strip()
    if text.isdigit():
        return datetime.fromtimestamp(int(text), tz=timezone.utc)
    return parse_iso_timestamp(text)


def check_request_timestamp(
    headers: Mapping[str, str],
    max_age: timedelta,
    now: Optional[datetime] = None,
) -> None:
    """Reject requests whose optional X-Timestamp header is older than max_age."""
    raw = get_header(headers, "x-timestamp")
    if raw is None:
        return
    try:
        sent_at = parse_request_timestamp(raw)
    except (ValueError, OverflowError, OSError):
        raise EnvelopeError("Invalid request timestamp", ErrorCode.STALE_REQUEST, 400) from None

    now = now or datetime.now(timezone.utc)
    if now - sent_at > max_age:
        raise EnvelopeError("Request timestamp too old", ErrorCode.STALE_REQUEST, 400)


def check_authorization(headers: Mapping[str, str], webhook_secret: str) -> None:
    """Require 'Authorization: Bearer <secret>'."""
    auth_header = get_header(headers, "authorization")
    if not auth_header or not auth_header.startswith(BEARER_PREFIX):
        raise EnvelopeError("Missing or invalid authorization header", ErrorCode.UNAUTHORIZED, 401)

    token = auth_header[len(BEARER_PREFIX):]
    if not hmac.compare_digest(token.encode("utf-8"), webhook_secret.encode("utf-8")):
        raise EnvelopeError("Invalid webhook token", ErrorCode.UNAUTHORIZED, 401)


def check_content_type(headers: Mapping[str, str]) -> None:
    content_type = get_header(headers, "content-type")
    if not content_type or JSON_CONTENT_TYPE not in content_type.lower():
        raise EnvelopeError(
            "Content-Type must be application/json", ErrorCode.UNSUPPORTED_CONTENT_TYPE, 400
        )


def decode_json(body: bytes) -> Any:
    try:
        return json.loads(body)
    except ValueError:
        raise EnvelopeError("Invalid JSON payload", ErrorCode.INVALID_JSON, 400) from None


def validate_envelope(
    headers: Mapping[str, str],
    body: bytes,
    ip: str,
    *,
    webhook_secret: str,
    max_payload_bytes: int,
    max_request_age: timedelta,
    rate_limiter: Optional[FixedWindowRateLimiter] = None,
    now: Optional[datetime] = None,
) -> Any:
    """
    Run every envelope check in order and return the decoded JSON body.

    Order: configuration, size, rate limit, freshness, auth, content type, JSON.
    """
    check_configuration(webhook_secret)
    check_payload_size(headers, body, max_payload_bytes)
    check_rate_limit(rate_limiter, ip)
    check_request_timestamp(headers, max_request_age, now)
    check_authorization(headers, webhook_secret)
    check_content_type(headers)
    return decode_json(body)
