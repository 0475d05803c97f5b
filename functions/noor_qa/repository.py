"""
Question persistence: the whole collection is one JSON array under one key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pydantic import ValidationError

from noor_qa.schemas import Question
from noor_qa.storage import KeyValueStore

logger = logging.getLogger(__name__)

QUESTIONS_KEY = "all_questions"


class DataRetrievalError(RuntimeError):
    """The question collection could not be read."""


class DataWriteError(RuntimeError):
    """The question collection could not be written."""


@dataclass
class QuestionRepository:
    """
    Loads and saves the full question list.

    Every call moves the entire document; there is no per-record access and
    writes are last-writer-wins.
    """

    store: KeyValueStore
    key: str = QUESTIONS_KEY

    async def load_all(self) -> list[Question]:
        try:
            data = await self.store.get(self.key)
        except Exception as exc:
            logger.exception("Failed to read %s from store", self.key)
            raise DataRetrievalError("Failed to load questions") from exc

        if data is None:
            return []
        if not isinstance(data, list):
            logger.error("Stored %s is %s, expected a list", self.key, type(data).__name__)
            raise DataRetrievalError("Stored questions document is malformed")
        try:
            return [Question.model_validate(item) for item in data]
        except ValidationError as exc:
            logger.exception("Stored %s contains an invalid record", self.key)
            raise DataRetrievalError("Stored questions document is malformed") from exc

    async def save_all(self, questions: list[Question]) -> None:
        payload = [question.to_record() for question in questions]
        try:
            await self.store.set(self.key, payload)
        except Exception as exc:
            logger.exception("Failed to write %s to store", self.key)
            raise DataWriteError("Failed to save questions") from exc
