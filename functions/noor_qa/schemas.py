"""
Pydantic schemas for the Q&A API and the stored question records.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Question(BaseModel):
    """One stored question record; wire and storage names are camelCase."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    question: str
    answer: str = ""
    source: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    date: str
    answered_date: Optional[str] = Field(default=None, alias="answeredDate")
    last_modified: Optional[str] = Field(default=None, alias="lastModified")

    @field_validator("id", "date", "answered_date", "last_modified", mode="before")
    @classmethod
    def _coerce_str(cls, value):
        # Older records used numeric timestamps for ids and dates.
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("answer", mode="before")
    @classmethod
    def _coerce_answer(cls, value):
        return value or ""

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value):
        return value or []

    def to_record(self) -> dict:
        record = self.model_dump(by_alias=True)
        for name in ("answeredDate", "lastModified"):
            if record.get(name) is None:
                record.pop(name, None)
        return record


class QuestionSubmission(BaseModel):
    question: str = ""


class QuestionPayload(BaseModel):
    question: str = ""
    answer: Optional[str] = None
    source: Optional[str] = None
    tags: Optional[list[str]] = None


class LoginRequest(BaseModel):
    password: str = ""
    username: Optional[str] = None


class MessageResponse(BaseModel):
    success: Literal[True] = True
    message: str


class SubmissionResponse(MessageResponse):
    id: str


class StatusResponse(BaseModel):
    success: Literal[True] = True
    authenticated: bool


class QuestionResponse(BaseModel):
    success: Literal[True] = True
    question: dict


class HealthResponse(BaseModel):
    status: Literal["ok"]
