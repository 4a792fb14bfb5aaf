"""
Unit tests for attempt snapshot persistence.
"""

import json
from datetime import datetime, timedelta

import pytest

from skilltree.models import AnswerRecord, AttemptKind, AttemptTarget
from skilltree.session import AttemptSnapshot, AttemptStore


@pytest.fixture
def store(tmp_path):
    return AttemptStore(tmp_path / "attempts", expiry_hours=24)


@pytest.fixture
def snapshot():
    return AttemptSnapshot.for_target("ana", AttemptTarget.for_unit(3, "spanish"), ["q1", "q2", "q3"])


class TestAttemptSnapshot:
    def test_target_round_trip(self, snapshot):
        assert snapshot.target == AttemptTarget(kind=AttemptKind.UNIT, curriculum_id="spanish", unit_id=3)
        assert len(snapshot.attempt_id) == 8

    def test_answers_are_upserted(self, snapshot):
        snapshot.record_answer(AnswerRecord("q1", "b", False, 4))
        snapshot.record_answer(AnswerRecord("q1", "a", True, 2))

        records = snapshot.answer_records()
        assert list(records) == ["q1"]
        assert records["q1"].is_correct
        assert snapshot.wrong_question_ids == ["q1"]

    def test_expiry(self, snapshot):
        snapshot.last_saved_at = (datetime.now() - timedelta(hours=25)).isoformat()
        assert snapshot.is_expired()


class TestAttemptStore:
    def test_save_and_load(self, store, snapshot):
        snapshot.record_answer(AnswerRecord("q1", "a", True, 3))
        path = store.save(snapshot)

        loaded = store.load(snapshot.attempt_id)

        assert path.name == f"{snapshot.attempt_id}.json"
        assert loaded.answer_records()["q1"].time_spent_seconds == 3
        assert loaded.unit_id == 3

    def test_missing(self, store):
        assert store.load("nope") is None

    def test_corrupt_file(self, store, log_messages):
        (store.session_dir / "bad.json").write_text("{not json", encoding="utf-8")

        assert store.load("bad") is None
        assert any("Unreadable" in m for m in log_messages)

    def test_list_skips_completed_and_expired(self, store):
        live = AttemptSnapshot.for_target("ana", AttemptTarget.for_unit(1, "c"), ["q"])
        done = AttemptSnapshot.for_target("ana", AttemptTarget.for_unit(2, "c"), ["q"], completed=True)
        other = AttemptSnapshot.for_target("bob", AttemptTarget.for_unit(3, "c"), ["q"])
        for s in (live, done, other):
            store.save(s)

        assert [s.attempt_id for s in store.list_attempts("ana")] == [live.attempt_id]
        assert len(store.list_attempts()) == 2
        assert store.get_latest("bob").attempt_id == other.attempt_id

    def test_cleanup(self, store, snapshot):
        store.save(snapshot)
        path = store.session_dir / f"{snapshot.attempt_id}.json"
        data = json.loads(path.read_text(encoding="utf-8"))
        data["last_saved_at"] = (datetime.now() - timedelta(days=2)).isoformat()
        path.write_text(json.dumps(data), encoding="utf-8")
        (store.session_dir / "junk.json").write_text("[]", encoding="utf-8")

        assert store.cleanup_expired() == 2
        assert list(store.session_dir.glob("*.json")) == []

    def test_delete(self, store, snapshot):
        store.save(snapshot)
        assert store.delete(snapshot.attempt_id)
        assert not store.delete(snapshot.attempt_id)
