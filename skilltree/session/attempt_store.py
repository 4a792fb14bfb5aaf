"""
Attempt snapshot persistence.

Keeps in-progress attempts on disk so a learner can close the app and pick up where
they left off. Snapshots are JSON files named ``{attempt_id}.json`` and go stale after
``expiry_hours`` without a save.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Hashable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from skilltree.models import AnswerRecord, AttemptKind, AttemptTarget


def new_attempt_id() -> str:
    return str(uuid.uuid4())[:8]


@dataclass
class AttemptSnapshot:
    """Serializable state of an in-progress attempt."""

    attempt_id: str
    user_id: Any
    curriculum_id: Any
    kind: str
    question_ids: list[Any]
    unit_id: Any = None
    practice: bool = False
    started_at: str = field(default_factory=lambda: datetime.now().isoformat())
    last_saved_at: str = field(default_factory=lambda: datetime.now().isoformat())

    # Latest answer per question, in answer order
    answers: list[dict[str, Any]] = field(default_factory=list)
    wrong_question_ids: list[Any] = field(default_factory=list)
    completed: bool = False

    passing_score: Optional[int] = None
    base_experience: Optional[int] = None
    is_first_attempt: bool = True

    # Expiry - snapshots older than this are not resumable
    expiry_hours: int = 24

    @classmethod
    def for_target(
        cls,
        user_id: Hashable,
        target: AttemptTarget,
        question_ids: list[Hashable],
        attempt_id: str | None = None,
        **kwargs: Any,
    ) -> "AttemptSnapshot":
        return cls(
            attempt_id=attempt_id or new_attempt_id(),
            user_id=user_id,
            curriculum_id=target.curriculum_id,
            kind=target.kind.value,
            unit_id=target.unit_id,
            practice=target.practice,
            question_ids=list(question_ids),
            **kwargs,
        )

    @property
    def target(self) -> AttemptTarget:
        return AttemptTarget(
            kind=AttemptKind(self.kind),
            curriculum_id=self.curriculum_id,
            unit_id=self.unit_id,
            practice=self.practice,
        )

    def is_expired(self) -> bool:
        """Check if the snapshot has expired."""
        last_saved = datetime.fromisoformat(self.last_saved_at)
        return datetime.now() - last_saved > timedelta(hours=self.expiry_hours)

    def record_answer(self, record: AnswerRecord) -> None:
        """Upsert the answer for one question."""
        self.answers = [a for a in self.answers if a["question_id"] != record.question_id]
        self.answers.append(
            {
                "question_id": record.question_id,
                "answer": record.answer,
                "is_correct": record.is_correct,
                "time_spent_seconds": record.time_spent_seconds,
            }
        )
        if not record.is_correct and record.question_id not in self.wrong_question_ids:
            self.wrong_question_ids.append(record.question_id)

    def answer_records(self) -> dict[Hashable, AnswerRecord]:
        return {
            a["question_id"]: AnswerRecord(
                question_id=a["question_id"],
                answer=a["answer"],
                is_correct=bool(a["is_correct"]),
                time_spent_seconds=int(a.get("time_spent_seconds", 0)),
            )
            for a in self.answers
        }

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AttemptSnapshot":
        """Create from dictionary."""
        return cls(**data)


class AttemptStore:
    """
    Manages attempt snapshot persistence.

    Snapshots are stored as JSON files with naming: {attempt_id}.json
    """

    def __init__(self, session_dir: Optional[Path] = None, expiry_hours: int = 24):
        if session_dir is None:
            from skilltree.config import get_settings

            settings = get_settings()
            session_dir = settings.session_dir
            expiry_hours = settings.attempt_expiry_hours
        self.session_dir = Path(session_dir).expanduser()
        self.session_dir.mkdir(parents=True, exist_ok=True)
        self.expiry_hours = expiry_hours

    def _path(self, attempt_id: str) -> Path:
        return self.session_dir / f"{attempt_id}.json"

    def save(self, snapshot: AttemptSnapshot) -> Path:
        """Save a snapshot to disk."""
        snapshot.last_saved_at = datetime.now().isoformat()
        snapshot.expiry_hours = self.expiry_hours
        filepath = self._path(snapshot.attempt_id)

        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(snapshot.to_dict(), f, indent=2)

        return filepath

    def _read(self, filepath: Path) -> Optional[AttemptSnapshot]:
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                data = json.load(f)
            return AttemptSnapshot.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            logger.warning("Unreadable attempt snapshot {}: {}", filepath.name, e)
            return None

    def load(self, attempt_id: str) -> Optional[AttemptSnapshot]:
        """Load a snapshot by attempt id; None if missing or unreadable."""
        filepath = self._path(attempt_id)
        if not filepath.exists():
            return None
        return self._read(filepath)

    def list_attempts(self, user_id: Hashable | None = None) -> list[AttemptSnapshot]:
        """Resumable (unfinished, non-expired) snapshots, newest first."""
        snapshots = []
        for filepath in self.session_dir.glob("*.json"):
            snapshot = self._read(filepath)
            if snapshot is None or snapshot.completed or snapshot.is_expired():
                continue
            if user_id is not None and snapshot.user_id != user_id:
                continue
            snapshots.append(snapshot)
        snapshots.sort(key=lambda s: s.last_saved_at, reverse=True)
        return snapshots

    def get_latest(self, user_id: Hashable | None = None) -> Optional[AttemptSnapshot]:
        """Get the most recent resumable snapshot."""
        snapshots = self.list_attempts(user_id)
        return snapshots[0] if snapshots else None

    def delete(self, attempt_id: str) -> bool:
        """Delete a snapshot file."""
        filepath = self._path(attempt_id)
        if filepath.exists():
            filepath.unlink()
            return True
        return False

    def cleanup_expired(self) -> int:
        """Remove expired, finished and corrupted snapshot files."""
        removed = 0
        for filepath in self.session_dir.glob("*.json"):
            snapshot = self._read(filepath)
            if snapshot is None or snapshot.completed or snapshot.is_expired():
                filepath.unlink()
                removed += 1
        if removed:
            logger.info("Removed {} stale attempt snapshots", removed)
        return removed
