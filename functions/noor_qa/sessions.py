"""
Server-side login sessions kept in the key-value store.

The browser only holds a signed session id cookie; the session record itself
lives under ``sess:<id>`` so it survives stateless invocations.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

from itsdangerous import BadSignature, TimestampSigner
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from noor_qa.storage import KeyValueStore

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "sess:"
# Used when a session record carries no cookie max-age.
DEFAULT_SESSION_TTL = 60 * 60 * 24


class SessionStore(Protocol):
    """The three operations a session backend must provide."""

    async def get(self, session_id: str) -> Optional[dict]:
        ...

    async def set(self, session_id: str, session: dict) -> None:
        ...

    async def destroy(self, session_id: str) -> None:
        ...


@dataclass
class KeyValueSessionStore:
    """SessionStore on top of a KeyValueStore, with TTL from the cookie max-age."""

    store: KeyValueStore
    prefix: str = SESSION_KEY_PREFIX

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}{session_id}"

    @staticmethod
    def ttl_for(session: dict) -> int:
        max_age = (session.get("cookie") or {}).get("maxAge")
        if not max_age:
            return DEFAULT_SESSION_TTL
        return max(1, int(max_age))

    async def get(self, session_id: str) -> Optional[dict]:
        data = await self.store.get(self._key(session_id))
        if not isinstance(data, dict):
            return None
        return data

    async def set(self, session_id: str, session: dict) -> None:
        await self.store.set(self._key(session_id), session, ttl=self.ttl_for(session))

    async def destroy(self, session_id: str) -> None:
        await self.store.delete(self._key(session_id))


@dataclass(frozen=True)
class CookieOptions:
    name: str = "noor_session"
    max_age: int = 60 * 60 * 8
    secure: bool = True
    http_only: bool = True
    same_site: str = "lax"

    def metadata(self) -> dict:
        expires = datetime.now(timezone.utc) + timedelta(seconds=self.max_age)
        return {
            "maxAge": self.max_age,
            "expires": expires.isoformat(),
            "secure": self.secure,
            "httpOnly": self.http_only,
            "sameSite": self.same_site,
        }


class Session:
    """Per-request view of one session record."""

    def __init__(
        self,
        store: SessionStore,
        cookie: CookieOptions,
        session_id: Optional[str] = None,
        data: Optional[dict] = None,
    ):
        self.store = store
        self.cookie = cookie
        self.session_id = session_id
        self.data = dict(data or {})
        self.modified = False
        self.persisted = False
        self.destroyed = False

    @property
    def authenticated(self) -> bool:
        return self.data.get("authenticated") is True

    @authenticated.setter
    def authenticated(self, value: bool) -> None:
        self.data["authenticated"] = bool(value)
        self.modified = True

    async def regenerate(self) -> None:
        """Drop the current record and continue under a fresh id."""
        if self.session_id:
            await self.store.destroy(self.session_id)
        self.session_id = secrets.token_urlsafe(32)
        self.data = {}
        self.modified = True
        self.destroyed = False

    async def save(self) -> None:
        if not self.session_id:
            self.session_id = secrets.token_urlsafe(32)
        self.data["cookie"] = self.cookie.metadata()
        await self.store.set(self.session_id, self.data)
        self.modified = False
        self.persisted = True

    async def destroy(self) -> None:
        if self.session_id:
            await self.store.destroy(self.session_id)
        self.session_id = None
        self.data = {}
        self.modified = False
        self.destroyed = True


class ServerSessionMiddleware(BaseHTTPMiddleware):
    """
    Attach ``request.state.session`` and keep the session cookie in sync.

    The session store is read from ``app.state.session_store`` so it follows
    the application lifespan.
    """

    def __init__(self, app, secret_key: str, cookie: CookieOptions):
        super().__init__(app)
        self.signer = TimestampSigner(secret_key)
        self.cookie = cookie

    def _unsign(self, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        try:
            return self.signer.unsign(value, max_age=self.cookie.max_age).decode("utf-8")
        except BadSignature:
            logger.info("Ignoring session cookie with a bad signature")
            return None

    async def dispatch(self, request: Request, call_next):
        store: SessionStore = request.app.state.session_store
        session_id = self._unsign(request.cookies.get(self.cookie.name))
        data = await store.get(session_id) if session_id else None
        if data is None:
            session_id = None
        session = Session(store, self.cookie, session_id=session_id, data=data)
        request.state.session = session

        response = await call_next(request)

        if session.modified:
            await session.save()
        if session.destroyed:
            response.delete_cookie(
                self.cookie.name,
                path="/",
                secure=self.cookie.secure,
                httponly=self.cookie.http_only,
                samesite=self.cookie.same_site,
            )
        elif session.persisted and session.session_id:
            response.set_cookie(
                self.cookie.name,
                self.signer.sign(session.session_id).decode("utf-8"),
                max_age=self.cookie.max_age,
                path="/",
                secure=self.cookie.secure,
                httponly=self.cookie.http_only,
                samesite=self.cookie.same_site,
            )
        return response
