"""
Learning Platform Client

HTTP implementation of ProgressStore and QuestionSource against the learning platform
backend.

Timeouts, connection errors and 5xx responses are retried with exponential backoff
(1s, 2s, 4s) and surface as TransientError once retries run out. 4xx responses are not
retried and raise CollaboratorError; a 404 on lookups means "not found" and returns
None instead.

Usage:
    async with PlatformClient.from_settings() as client:
        approved = await client.get_approved_unit_ids(user_id, curriculum_id)
"""

from __future__ import annotations

import asyncio
from collections.abc import Hashable
from typing import Any

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from skilltree.collaborators import AttemptHandle, ResumableAttempt
from skilltree.config import Settings, get_settings
from skilltree.content.schemas import Identifier, QuestionSchema
from skilltree.errors import CollaboratorError, TransientError
from skilltree.models import AnswerRecord, AttemptKind, AttemptResult, AttemptTarget, HeartsBalance, Question


class ApiConfig(BaseModel):
    """Connection settings for the platform API."""

    base_url: str = "http://localhost:3000"
    api_key: str | None = None
    timeout_seconds: float = 30.0
    retry_attempts: int = 3


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class AttemptPayload(_Payload):
    test_attempt_id: Identifier
    questions: list[QuestionSchema] = Field(default_factory=list)
    passing_score: int | None = None
    base_experience: int | None = None
    is_first_attempt: bool = True


class PreviousAnswerPayload(_Payload):
    question_id: Identifier
    user_answer: Any = None
    is_correct: bool
    time_spent: int = 0


class ResumePayload(AttemptPayload):
    user_id: Identifier
    kind: AttemptKind = AttemptKind.UNIT
    curriculum_id: Identifier
    unit_id: Identifier | None = None
    previous_answers: list[PreviousAnswerPayload] = Field(default_factory=list)
    wrong_question_ids: list[Identifier] = Field(default_factory=list)


def _wire_id(attempt_id: str) -> Identifier:
    """Attempt ids travel as strings locally; numeric ones go back to the API as ints."""
    return int(attempt_id) if attempt_id.isdigit() else attempt_id


class PlatformClient:
    """
    HTTP client for the learning platform API.

    Implements both collaborator protocols so a TestSession can run against a live
    backend.
    """

    def __init__(self, config: ApiConfig, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> PlatformClient:
        settings = settings or get_settings()
        return cls(ApiConfig(**settings.get_api_config()))

    async def __aenter__(self) -> "PlatformClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.config.api_key:
                headers["X-API-Key"] = self.config.api_key

            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers=headers,
                timeout=self.config.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # =========================================================================
    # Transport
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        *,
        allow_not_found: bool = False,
        **kwargs: Any,
    ) -> dict[str, Any] | None:
        """
        Send a request with retry logic.

        Returns:
            Decoded JSON body, or None for a 404 when ``allow_not_found``

        Raises:
            TransientError: Retries exhausted on timeouts, connection errors or 5xx
            CollaboratorError: 4xx responses
        """
        client = await self._ensure_client()
        last_error: Exception | None = None

        for attempt in range(self.config.retry_attempts):
            try:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
                if not response.content:
                    return {}
                return response.json()

            except httpx.TimeoutException as e:
                last_error = e
                wait_time = 2 ** attempt  # Exponential backoff: 1s, 2s, 4s
                logger.warning(
                    f"{operation} timed out on attempt {attempt + 1}/{self.config.retry_attempts}. "
                    f"Retrying in {wait_time}s..."
                )
                if attempt < self.config.retry_attempts - 1:
                    await asyncio.sleep(wait_time)

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status >= 500:
                    last_error = e
                    wait_time = 2 ** attempt
                    logger.warning(
                        f"{operation} server error {status} on attempt "
                        f"{attempt + 1}/{self.config.retry_attempts}. Retrying in {wait_time}s..."
                    )
                    if attempt < self.config.retry_attempts - 1:
                        await asyncio.sleep(wait_time)
                elif status == 404 and allow_not_found:
                    return None
                else:
                    # Don't retry on 4xx client errors
                    logger.error(f"{operation} rejected: {status}")
                    raise CollaboratorError(f"{operation} rejected with status {status}") from e

            except httpx.RequestError as e:
                last_error = e
                wait_time = 2 ** attempt
                logger.warning(
                    f"{operation} request error on attempt {attempt + 1}/{self.config.retry_attempts}: {e}. "
                    f"Retrying in {wait_time}s..."
                )
                if attempt < self.config.retry_attempts - 1:
                    await asyncio.sleep(wait_time)

        logger.error(f"{operation} failed after {self.config.retry_attempts} attempts: {last_error}")
        raise TransientError(f"{operation} failed: {last_error}", operation=operation) from last_error

    # =========================================================================
    # ProgressStore
    # =========================================================================

    async def get_approved_unit_ids(self, user_id: Hashable, curriculum_id: Hashable) -> set[Hashable]:
        data = await self._request(
            "GET",
            f"/api/users/{user_id}/completed-units",
            "get_approved_unit_ids",
            params={"curriculumId": curriculum_id},
        )
        return set(data.get("unitIds", []))

    async def get_hearts(self, user_id: Hashable) -> HeartsBalance:
        data = await self._request("GET", f"/api/users/{user_id}/hearts", "get_hearts")
        return HeartsBalance(balance=int(data.get("hearts", 0)), unlimited=bool(data.get("unlimited", False)))

    async def debit_hearts(self, user_id: Hashable, amount: int) -> int:
        data = await self._request(
            "POST", f"/api/users/{user_id}/hearts/debit", "debit_hearts", json={"amount": amount}
        )
        return int(data.get("hearts", 0))

    async def credit_hearts(self, user_id: Hashable, amount: int) -> int:
        data = await self._request(
            "POST", f"/api/users/{user_id}/hearts/credit", "credit_hearts", json={"amount": amount}
        )
        return int(data.get("hearts", 0))

    async def purchase_heart(self, user_id: Hashable) -> int:
        data = await self._request("POST", f"/api/users/{user_id}/hearts/purchase", "purchase_heart")
        return int(data.get("hearts", 0))

    async def record_attempt_result(self, attempt_id: str, result: AttemptResult) -> None:
        await self._request(
            "POST",
            "/api/test/complete",
            "record_attempt_result",
            json={
                "testAttemptId": _wire_id(attempt_id),
                "score": result.score,
                "passed": result.passed,
                "correctAnswers": result.correct_answers,
                "totalQuestions": result.total_questions,
                "experienceGained": result.experience_gained,
                "timeElapsed": result.time_elapsed_seconds,
            },
        )

    async def has_passed_final_test(self, user_id: Hashable, curriculum_id: Hashable) -> bool:
        data = await self._request(
            "GET",
            f"/api/users/{user_id}/final-test",
            "has_passed_final_test",
            params={"curriculumId": curriculum_id},
        )
        return bool(data.get("passed", False))

    # =========================================================================
    # QuestionSource
    # =========================================================================

    def _handle(self, target: AttemptTarget, data: dict[str, Any]) -> AttemptHandle:
        try:
            payload = AttemptPayload.model_validate(data)
        except ValidationError as e:
            raise CollaboratorError(f"Malformed attempt payload: {e}") from e
        return AttemptHandle(
            attempt_id=str(payload.test_attempt_id),
            target=target,
            questions=[q.to_domain() for q in payload.questions],
            passing_score=payload.passing_score,
            base_experience=payload.base_experience,
            is_first_attempt=payload.is_first_attempt,
        )

    async def start_attempt(self, user_id: Hashable, target: AttemptTarget) -> AttemptHandle:
        if target.kind is AttemptKind.FINAL_TEST:
            data = await self._request(
                "POST",
                "/api/final-test/start",
                "start_attempt",
                json={"userId": user_id, "curriculumId": target.curriculum_id},
            )
        elif target.kind is AttemptKind.UNIT:
            data = await self._request(
                "POST",
                "/api/test/start",
                "start_attempt",
                json={"userId": user_id, "unitId": target.unit_id, "practice": target.practice},
            )
        else:
            raise CollaboratorError("review attempts are started with start_review_attempt")
        return self._handle(target, data)

    async def grade_answer(self, question: Question, answer: Any) -> bool:
        data = await self._request(
            "POST", f"/api/questions/{question.id}/grade", "grade_answer", json={"userAnswer": answer}
        )
        return bool(data.get("isCorrect", False))

    async def record_answer(self, attempt_id: str, record: AnswerRecord) -> None:
        await self._request(
            "POST",
            "/api/test/submit-answer",
            "record_answer",
            json={
                "testAttemptId": _wire_id(attempt_id),
                "questionId": record.question_id,
                "userAnswer": record.answer,
                "isCorrect": record.is_correct,
                "timeSpent": record.time_spent_seconds,
            },
        )

    async def load_attempt(self, attempt_id: str) -> ResumableAttempt | None:
        data = await self._request(
            "GET",
            "/api/test/resume",
            "load_attempt",
            allow_not_found=True,
            params={"testAttemptId": attempt_id},
        )
        if data is None:
            return None
        try:
            payload = ResumePayload.model_validate(data)
        except ValidationError as e:
            logger.warning("Malformed resume payload for {}: {}", attempt_id, e)
            return None

        target = AttemptTarget(kind=payload.kind, curriculum_id=payload.curriculum_id, unit_id=payload.unit_id)
        return ResumableAttempt(
            attempt_id=str(payload.test_attempt_id),
            user_id=payload.user_id,
            target=target,
            questions=[q.to_domain() for q in payload.questions],
            answers={
                a.question_id: AnswerRecord(
                    question_id=a.question_id,
                    answer=a.user_answer,
                    is_correct=a.is_correct,
                    time_spent_seconds=a.time_spent,
                )
                for a in payload.previous_answers
            },
            wrong_question_ids=set(payload.wrong_question_ids),
            passing_score=payload.passing_score,
            base_experience=payload.base_experience,
            is_first_attempt=payload.is_first_attempt,
        )

    async def start_review_attempt(self, user_id: Hashable, curriculum_id: Hashable) -> AttemptHandle | None:
        data = await self._request(
            "POST",
            "/api/test/start-review",
            "start_review_attempt",
            allow_not_found=True,
            json={"userId": user_id, "curriculumId": curriculum_id},
        )
        if data is None:
            return None
        return self._handle(AttemptTarget.for_review(curriculum_id), data)
