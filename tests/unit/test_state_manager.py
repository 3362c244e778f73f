"""Tests for workflow state persistence."""

import json
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from src.orchestration.errors import NotFoundError
from src.orchestration.registry import WorkflowRegistry
from src.orchestration.state_manager import InMemoryStateStore, PersistenceAdapter, PersistedState
from src.orchestration.workflow_engine import HistoryEntry, Step, WorkflowDefinition, WorkflowState


@pytest.fixture
def definition():
    return WorkflowDefinition(
        id="wf",
        name="Workflow",
        steps=[
            Step(id="a", screen="A"),
            Step(id="b", screen="B", dependencies={"a"}),
            Step(id="c", screen="C", dependencies={"b"}),
        ],
    )


@pytest.fixture
def adapter(definition):
    registry = WorkflowRegistry()
    registry.register(definition)
    return PersistenceAdapter(registry)


@pytest.fixture
def record():
    return {
        "workflowId": "wf",
        "currentStepId": "b",
        "paused": True,
        "completedStepIds": ["a"],
        "data": {"user": "alice", "attempts": 2},
        "history": [
            {
                "workflowId": "wf",
                "stepId": "a",
                "completedAt": "2024-05-01T12:00:00.123456+00:00",
                "data": {"user": "alice"},
            }
        ],
    }


class TestPersistenceAdapter:
    """Test serialize/deserialize."""

    def test_deserialize(self, adapter, record, definition):
        state = adapter.deserialize(record)

        assert state.definition is definition
        assert state.current_step_id == "b"
        assert state.paused is True
        assert state.step_completion == {"a": True, "b": False, "c": False}
        assert state.data == {"user": "alice", "attempts": 2}
        assert state.history == (
            HistoryEntry(
                workflow_id="wf",
                step_id="a",
                completed_at=datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc),
                data={"user": "alice"},
            ),
        )

    def test_round_trip(self, adapter, record):
        assert adapter.serialize(adapter.deserialize(record)) == record

    def test_json_round_trip(self, adapter, record):
        state = adapter.deserialize(record)
        payload = adapter.to_json(state)

        assert json.loads(payload) == record
        assert adapter.from_json(payload) == state

    def test_serialize_live_state(self, adapter, definition):
        stamp = datetime(2024, 1, 2, 3, 4, 5, 6, tzinfo=timezone.utc)
        state = WorkflowState(
            definition=definition,
            current_step_id="b",
            step_completion={"a": True, "b": False, "c": False},
            data={"k": "v"},
            history=(HistoryEntry(workflow_id="wf", step_id="a", completed_at=stamp),),
        )
        record = adapter.serialize(state)

        assert record["completedStepIds"] == ["a"]
        assert record["history"][0]["completedAt"] == "2024-01-02T03:04:05.000006+00:00"
        assert "data" not in record["history"][0]

    def test_serialize_idle_state(self, adapter):
        record = adapter.serialize(WorkflowState())

        assert record["workflowId"] is None
        assert "currentStepId" not in record
        assert adapter.deserialize(record) == WorkflowState()

    def test_round_trip_without_optional_keys(self, adapter, record):
        del record["currentStepId"]
        del record["history"][0]["data"]

        state = adapter.deserialize(record)

        assert state.current_step_id is None
        assert state.history[0].data is None
        assert adapter.serialize(state) == record

    def test_timestamps_normalized_to_utc(self, adapter, record):
        record["history"][0]["completedAt"] = "2024-05-01T14:00:00.123456+02:00"
        record["history"].append(
            {"workflowId": "wf", "stepId": "b", "completedAt": "2024-05-01T12:05:00.5Z"}
        )
        record["history"].append(
            {"workflowId": "wf", "stepId": "c", "completedAt": "2024-05-01T12:06:00"}
        )

        state = adapter.deserialize(record)
        stamps = [entry["completedAt"] for entry in adapter.serialize(state)["history"]]

        assert state.history[1].completed_at == datetime(2024, 5, 1, 12, 5, 0, 500000, tzinfo=timezone.utc)
        assert stamps == [
            "2024-05-01T12:00:00.123456+00:00",
            "2024-05-01T12:05:00.500000+00:00",
            "2024-05-01T12:06:00+00:00",
        ]
        assert adapter.deserialize(adapter.serialize(state)) == state

    def test_history_is_detached_from_record(self, adapter, record):
        state = adapter.deserialize(record)
        record["history"][0]["data"]["user"] = "mallory"
        record["data"]["user"] = "mallory"

        assert state.history[0].data == {"user": "alice"}
        assert state.data["user"] == "alice"

    def test_unknown_workflow(self, adapter, record):
        record["workflowId"] = "gone"
        with pytest.raises(NotFoundError):
            adapter.deserialize(record)

    def test_unknown_completed_steps_dropped(self, adapter, record, caplog):
        record["completedStepIds"] = ["a", "removed"]
        state = adapter.deserialize(record)

        assert state.completed_step_ids == ["a"]
        assert "removed" in caplog.text

    def test_unknown_current_step_cleared(self, adapter, record):
        record["currentStepId"] = "removed"
        assert adapter.deserialize(record).current_step_id is None

    def test_malformed_record(self, adapter):
        with pytest.raises(ValidationError):
            adapter.deserialize({"workflowId": "wf", "completedStepIds": "a"})

    def test_persisted_state_accepts_field_names(self):
        persisted = PersistedState(workflow_id="wf", completed_step_ids=["a"])
        assert persisted.model_dump(by_alias=True)["completedStepIds"] == ["a"]


class TestInMemoryStateStore:
    """Test the in-memory store."""

    def test_save_load_delete(self, record):
        store = InMemoryStateStore()

        assert store.save_state("user-1", record) is True
        assert store.load_state("user-1") == record
        assert store.list_states() == {"user-1": "wf"}
        assert store.delete_state("user-1") is True
        assert store.delete_state("user-1") is False
        assert store.load_state("user-1") is None

    def test_saved_copy_is_isolated(self, record):
        store = InMemoryStateStore()
        store.save_state("k", record)
        record["data"]["user"] = "mallory"

        assert store.load_state("k")["data"]["user"] == "alice"
