"""
Admin authentication: session guard, credential check and login throttling.
"""

from __future__ import annotations

import hmac
import logging
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request

from noor_qa.storage import KeyValueStore

logger = logging.getLogger(__name__)

AUTH_REQUIRED_MESSAGE = "Authentication required. Please log in first."


def require_admin(request: Request):
    """Dependency that lets a request through only for an authenticated session."""
    session = getattr(request.state, "session", None)
    if session is None or not session.authenticated:
        raise HTTPException(status_code=401, detail=AUTH_REQUIRED_MESSAGE)
    return session


def credentials_match(submitted: str, expected: str) -> bool:
    """Constant-time comparison; different lengths never match."""
    submitted_bytes = submitted.encode("utf-8")
    expected_bytes = expected.encode("utf-8")
    if len(submitted_bytes) != len(expected_bytes):
        return False
    return hmac.compare_digest(submitted_bytes, expected_bytes)


def client_address(request: Request) -> str:
    """
    The peer address used as the rate-limit key.

    Forwarded headers are never read here; uvicorn rewrites the peer from
    them only for proxies listed in ``FORWARDED_ALLOW_IPS``.
    """
    if request.client:
        return request.client.host
    return "unknown"


@dataclass
class LoginRateLimiter:
    """
    Fixed-window attempt counter per client address.

    Counters live in the key-value store so limits hold across stateless
    invocations. Like every other write here, concurrent increments can race.
    """

    store: KeyValueStore
    limit: int = 10
    window_seconds: int = 15 * 60
    prefix: str = "ratelimit:login:"

    async def hit(self, identifier: str, now: Optional[float] = None) -> bool:
        """Record one attempt; return False once the limit is exceeded."""
        now = time.time() if now is None else now
        key = f"{self.prefix}{identifier}"
        entry = await self.store.get(key)
        if not isinstance(entry, dict) or entry.get("reset_at", 0) <= now:
            entry = {"count": 0, "reset_at": now + self.window_seconds}
        entry["count"] += 1
        remaining = max(1, int(entry["reset_at"] - now))
        await self.store.set(key, entry, ttl=remaining)
        return entry["count"] <= self.limit

    async def check(self, request: Request) -> None:
        address = client_address(request)
        if not await self.hit(address):
            logger.warning("Login rate limit exceeded for %s", address)
            raise HTTPException(
                status_code=429,
                detail="Too many login attempts, please try again later.",
            )
