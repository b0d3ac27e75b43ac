"""Tests for checkpoint records and the file-backed store."""

import json
from unittest.mock import patch

import pytest

from waypoint.core.checkpoint import (
    COMPLETED,
    DONE,
    FAILED,
    PREREQUISITE_UNMET,
    RUNNING,
    SKIPPED_BY_USER,
    STEP_FAILED,
    Checkpoint,
    CheckpointStore,
    atomic_write_json,
)
from waypoint.core.errors import PersistenceError


@pytest.fixture
def store(tmp_path):
    return CheckpointStore(tmp_path / "tasks", write_attempts=3, write_backoff=0)


class TestCheckpoint:
    def test_defaults(self):
        cp = Checkpoint(task_id="t1")
        assert cp.last_step == 0
        assert cp.status == RUNNING
        assert cp.steps_status == {}
        assert cp.partial_outputs == {}
        assert cp.created_at > 0

    def test_record_advances_index(self):
        cp = Checkpoint(task_id="t1")
        cp.record("s0", DONE, 1, artifact_path="/tmp/out.txt")
        assert cp.last_step == 1
        assert cp.steps_status == {"s0": DONE}
        assert cp.partial_outputs == {"s0": "/tmp/out.txt"}

    def test_last_step_never_decreases(self):
        cp = Checkpoint(task_id="t1", last_step=3)
        cp.record("s1", SKIPPED_BY_USER, 2)
        assert cp.last_step == 3

    def test_done_is_never_overwritten(self):
        cp = Checkpoint(task_id="t1")
        cp.record("s0", DONE, 1)
        cp.record("s0", STEP_FAILED, 1, error="boom")
        assert cp.steps_status["s0"] == DONE

    def test_record_error(self):
        cp = Checkpoint(task_id="t1")
        cp.record("s0", STEP_FAILED, 1, error="timed out after 5s")
        assert cp.errors == {"s0": "timed out after 5s"}

    def test_is_finished(self):
        assert Checkpoint(task_id="t", status=COMPLETED).is_finished
        assert Checkpoint(task_id="t", status=FAILED, reason="step_failed").is_finished
        assert not Checkpoint(task_id="t", status=FAILED, reason=PREREQUISITE_UNMET).is_finished
        assert not Checkpoint(task_id="t", status=RUNNING).is_finished

    def test_to_dict_omits_unset_optional_fields(self):
        data = Checkpoint(task_id="t1").to_dict()
        assert set(data) == {
            "task_id",
            "last_step",
            "status",
            "steps_status",
            "partial_outputs",
            "created_at",
            "updated_at",
        }

    def test_from_dict_defaults_absent_fields(self):
        cp = Checkpoint.from_dict({}, task_id="t1")
        assert cp.task_id == "t1"
        assert cp.last_step == 0
        assert cp.status == RUNNING
        assert cp.reason is None

    def test_round_trip_preserves_all_fields(self):
        cp = Checkpoint(
            task_id="t1",
            last_step=2,
            status=FAILED,
            steps_status={"a": DONE, "b": STEP_FAILED},
            partial_outputs={"a": "/x"},
            created_at=1,
            updated_at=2,
            reason="step_failed",
            failed_step="b",
            fallback_task_id="t1__fallback",
            errors={"b": "boom"},
        )
        assert Checkpoint.from_dict(json.loads(json.dumps(cp.to_dict()))) == cp


class TestAtomicWrite:
    def test_writes_json(self, tmp_path):
        path = tmp_path / "sub" / "data.json"
        atomic_write_json(path, {"a": 1})
        assert json.loads(path.read_text()) == {"a": 1}

    def test_no_temp_files_left(self, tmp_path):
        path = tmp_path / "data.json"
        atomic_write_json(path, {"a": 1})
        atomic_write_json(path, {"a": 2})
        assert [p.name for p in tmp_path.iterdir()] == ["data.json"]

    def test_failed_rename_keeps_previous_content(self, tmp_path):
        path = tmp_path / "data.json"
        atomic_write_json(path, {"a": 1})
        with patch("pathlib.Path.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                atomic_write_json(path, {"a": 2})
        assert json.loads(path.read_text()) == {"a": 1}
        assert [p.name for p in tmp_path.iterdir()] == ["data.json"]

    def test_failed_serialization_leaves_no_temp_file(self, tmp_path):
        path = tmp_path / "data.json"
        atomic_write_json(path, {"a": 1})
        for _ in range(3):
            with pytest.raises(TypeError):
                atomic_write_json(path, {"a": object()})
        assert json.loads(path.read_text()) == {"a": 1}
        assert [p.name for p in tmp_path.iterdir()] == ["data.json"]


class TestCheckpointStore:
    def test_load_creates_and_persists(self, store):
        cp = store.load("t1")
        assert cp.task_id == "t1"
        assert cp.status == RUNNING
        assert store.exists("t1")

    def test_read_is_side_effect_free(self, store):
        assert store.read("t1") is None
        assert not store.exists("t1")

    def test_save_then_read(self, store):
        cp = store.load("t1")
        cp.record("s0", DONE, 1)
        store.save(cp)
        again = store.read("t1")
        assert again.last_step == 1
        assert again.steps_status == {"s0": DONE}

    def test_save_updates_timestamp(self, store):
        cp = Checkpoint(task_id="t1", updated_at=0)
        store.save(cp)
        assert cp.updated_at > 0

    def test_accepts_minimal_legacy_record(self, store):
        path = store.path_for("t1")
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"task_id": "t1", "last_step": 2}))
        cp = store.load("t1")
        assert cp.last_step == 2
        assert cp.status == RUNNING

    def test_corrupt_checkpoint_is_quarantined(self, store):
        path = store.path_for("t1")
        path.parent.mkdir(parents=True)
        path.write_text("{not json")
        cp = store.load("t1")
        assert cp.last_step == 0
        moved = [p.name for p in path.parent.iterdir() if ".corrupt-" in p.name]
        assert len(moved) == 1

    def test_read_corrupt_raises(self, store):
        path = store.path_for("t1")
        path.parent.mkdir(parents=True)
        path.write_text("[1, 2]")
        with pytest.raises(ValueError):
            store.read("t1")

    def test_save_retries_then_succeeds(self, store):
        real = atomic_write_json
        calls = []

        def flaky(path, data):
            calls.append(path)
            if len(calls) < 3:
                raise OSError("busy")
            real(path, data)

        with patch("waypoint.core.checkpoint.atomic_write_json", side_effect=flaky):
            store.save(Checkpoint(task_id="t1"))
        assert len(calls) == 3
        assert store.exists("t1")

    def test_save_raises_persistence_error(self, store):
        with patch("waypoint.core.checkpoint.atomic_write_json", side_effect=OSError("read-only")):
            with pytest.raises(PersistenceError, match="t1"):
                store.save(Checkpoint(task_id="t1"))

    def test_list_task_ids(self, store):
        assert store.list_task_ids() == []
        store.load("b")
        store.load("a")
        assert store.list_task_ids() == ["a", "b"]

    def test_plan_documents(self, store):
        assert store.load_plan("t1") is None
        store.save_plan("t1", {"task_id": "t1", "steps": []})
        assert store.load_plan("t1") == {"task_id": "t1", "steps": []}
