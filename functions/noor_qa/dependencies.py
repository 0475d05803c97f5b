"""
Dependency wiring for the FastAPI app.

Handles are created once per application by ``create_app`` and kept on
``app.state``; nothing here holds module-level state.
"""

from __future__ import annotations

from fastapi import Request

from noor_qa.config import Settings
from noor_qa.repository import QuestionRepository
from noor_qa.security import LoginRateLimiter


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_question_repository(request: Request) -> QuestionRepository:
    return request.app.state.questions


def get_login_limiter(request: Request) -> LoginRateLimiter:
    return request.app.state.login_limiter


async def enforce_login_rate_limit(request: Request) -> None:
    await get_login_limiter(request).check(request)
