"""
HTTP routes: the public submission/archive endpoints and the admin console.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Request

from noor_qa.config import Settings
from noor_qa.dependencies import (
    enforce_login_rate_limit,
    get_app_settings,
    get_question_repository,
)
from noor_qa.repository import QuestionRepository
from noor_qa.schemas import (
    HealthResponse,
    LoginRequest,
    MessageResponse,
    Question,
    QuestionPayload,
    QuestionResponse,
    QuestionSubmission,
    StatusResponse,
    SubmissionResponse,
)
from noor_qa.security import credentials_match, require_admin
from noor_qa.sessions import Session

logger = logging.getLogger(__name__)

public_router = APIRouter()
admin_router = APIRouter(prefix="/admin")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def _clean_source(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


def _clean_tags(values: Optional[list[str]]) -> list[str]:
    tags: list[str] = []
    for value in values or []:
        tag = value.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def _clean_answer(value: Optional[str]) -> str:
    if not value or not value.strip():
        return ""
    return value


def _require_question_text(payload: QuestionPayload) -> str:
    text = payload.question.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Question text is required.")
    return text


def _find_index(questions: list[Question], question_id: str) -> int:
    for index, question in enumerate(questions):
        if question.id == question_id:
            return index
    raise HTTPException(status_code=404, detail="Question not found.")


def answered_questions(questions: list[Question]) -> list[Question]:
    """Answered records, most recently answered first."""
    answered = [q for q in questions if q.answer]
    return sorted(answered, key=lambda q: q.answered_date or q.date, reverse=True)


@public_router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


@public_router.post("/questions", response_model=SubmissionResponse, status_code=201)
async def submit_question(
    payload: QuestionSubmission,
    settings: Settings = Depends(get_app_settings),
    repo: QuestionRepository = Depends(get_question_repository),
):
    """
    Store a visitor's question at the head of the collection.

    Only an acknowledgment and the new id are returned.
    """
    text = payload.question.strip()
    if len(text) < settings.min_question_length:
        raise HTTPException(
            status_code=400,
            detail=(
                f"Question must be at least {settings.min_question_length} "
                "characters long."
            ),
        )
    questions = await repo.load_all()
    record = Question(id=str(uuid4()), question=text, date=_now())
    questions.insert(0, record)
    await repo.save_all(questions)
    return SubmissionResponse(message="Question received.", id=record.id)


@public_router.get("/answered", response_model=list[dict])
async def list_answered(repo: QuestionRepository = Depends(get_question_repository)):
    questions = await repo.load_all()
    return [q.to_record() for q in answered_questions(questions)]


@admin_router.post(
    "/login",
    response_model=MessageResponse,
    dependencies=[Depends(enforce_login_rate_limit)],
)
async def login(
    payload: LoginRequest,
    request: Request,
    settings: Settings = Depends(get_app_settings),
):
    password = payload.password.strip()
    if not password:
        raise HTTPException(status_code=400, detail="Password is required.")

    matched = credentials_match(
        password, settings.admin_password.get_secret_value().strip()
    )
    if settings.admin_username:
        # Check both so the response time does not say which one failed.
        username_ok = credentials_match(
            (payload.username or "").strip(), settings.admin_username
        )
        matched = matched and username_ok
    if not matched:
        logger.warning("Failed admin login attempt")
        raise HTTPException(status_code=401, detail="Invalid credentials.")

    session: Session = request.state.session
    await session.regenerate()
    session.authenticated = True
    await session.save()
    logger.info("Admin logged in")
    return MessageResponse(message="Logged in successfully.")


@admin_router.post("/logout", response_model=MessageResponse)
async def logout(session: Session = Depends(require_admin)):
    await session.destroy()
    logger.info("Admin logged out")
    return MessageResponse(message="Logged out.")


@admin_router.get("/status", response_model=StatusResponse)
def status(session: Session = Depends(require_admin)):
    return StatusResponse(authenticated=session.authenticated)


@admin_router.get(
    "/questions", response_model=list[dict], dependencies=[Depends(require_admin)]
)
async def list_questions(repo: QuestionRepository = Depends(get_question_repository)):
    questions = await repo.load_all()
    return [q.to_record() for q in questions]


@admin_router.post(
    "/question",
    response_model=QuestionResponse,
    status_code=201,
    dependencies=[Depends(require_admin)],
)
async def create_question(
    payload: QuestionPayload,
    repo: QuestionRepository = Depends(get_question_repository),
):
    text = _require_question_text(payload)
    answer = _clean_answer(payload.answer)
    now = _now()
    record = Question(
        id=str(uuid4()),
        question=text,
        answer=answer,
        source=_clean_source(payload.source),
        tags=_clean_tags(payload.tags),
        date=now,
        answered_date=now if answer else None,
    )
    questions = await repo.load_all()
    questions.insert(0, record)
    await repo.save_all(questions)
    return QuestionResponse(question=record.to_record())


@admin_router.put(
    "/question/{question_id}",
    response_model=QuestionResponse,
    dependencies=[Depends(require_admin)],
)
async def update_question(
    question_id: str,
    payload: QuestionPayload,
    repo: QuestionRepository = Depends(get_question_repository),
):
    """
    Replace question, answer and source; tags only when given.

    ``answeredDate`` is stamped the first time an answer appears and kept
    afterwards, even if the answer is later rewritten or cleared.
    """
    text = _require_question_text(payload)
    questions = await repo.load_all()
    index = _find_index(questions, question_id)
    record = questions[index]

    now = _now()
    record.question = text
    record.answer = _clean_answer(payload.answer)
    record.source = _clean_source(payload.source)
    if payload.tags is not None:
        record.tags = _clean_tags(payload.tags)
    record.last_modified = now
    if record.answer and not record.answered_date:
        record.answered_date = now

    await repo.save_all(questions)
    return QuestionResponse(question=record.to_record())


@admin_router.delete(
    "/question/{question_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_admin)],
)
async def delete_question(
    question_id: str,
    repo: QuestionRepository = Depends(get_question_repository),
):
    questions = await repo.load_all()
    index = _find_index(questions, question_id)
    questions.pop(index)
    await repo.save_all(questions)
    return MessageResponse(message="Question deleted.")
