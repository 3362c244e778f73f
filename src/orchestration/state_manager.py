"""Workflow state persistence: record serialization and state stores."""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from threading import Lock
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializationInfo,
    SerializerFunctionWrapHandler,
    field_serializer,
    field_validator,
    model_serializer,
)

from .errors import NotFoundError
from .workflow_engine.steps import HistoryEntry, WorkflowState

if TYPE_CHECKING:
    from .registry import WorkflowRegistry

logger = logging.getLogger(__name__)


class PersistedHistoryEntry(BaseModel):
    """Serialized form of a HistoryEntry.

    ``completedAt`` accepts any ISO-8601 form (``Z`` or an offset; naive values
    are taken as UTC) and is always written back as UTC via
    ``datetime.isoformat()``, e.g. ``2024-05-01T12:00:00.123456+00:00``.
    ``data`` is left out of the record when the completion carried none.
    """

    model_config = ConfigDict(populate_by_name=True)

    workflow_id: str = Field(alias="workflowId")
    step_id: str = Field(alias="stepId")
    completed_at: datetime = Field(alias="completedAt")
    data: Optional[Dict[str, Any]] = None

    @field_validator("completed_at")
    @classmethod
    def as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @field_serializer("completed_at")
    def iso_timestamp(self, value: datetime) -> str:
        return value.isoformat()

    @model_serializer(mode="wrap")
    def omit_missing_data(self, handler: SerializerFunctionWrapHandler) -> Dict[str, Any]:
        dumped = handler(self)
        if self.data is None:
            dumped.pop("data", None)
        return dumped


class PersistedState(BaseModel):
    """Serialized workflow state record.

    Definitions are not part of the record: hooks and predicates are code and
    the definition is looked up again by ``workflowId`` on restore.
    ``workflowId`` is always written (null when idle); ``currentStepId`` only
    when a step is current.
    """

    model_config = ConfigDict(populate_by_name=True)

    workflow_id: Optional[str] = Field(default=None, alias="workflowId")
    current_step_id: Optional[str] = Field(default=None, alias="currentStepId")
    paused: bool = False
    completed_step_ids: List[str] = Field(default_factory=list, alias="completedStepIds")
    data: Dict[str, Any] = Field(default_factory=dict)
    history: List[PersistedHistoryEntry] = Field(default_factory=list)

    @model_serializer(mode="wrap")
    def omit_missing_step(
        self, handler: SerializerFunctionWrapHandler, info: SerializationInfo
    ) -> Dict[str, Any]:
        dumped = handler(self)
        if self.current_step_id is None:
            dumped.pop("currentStepId" if info.by_alias else "current_step_id", None)
        return dumped


class PersistenceAdapter:
    """Converts WorkflowState to and from its persisted record."""

    def __init__(self, registry: "WorkflowRegistry"):
        self.registry = registry

    def serialize(self, state: WorkflowState) -> Dict[str, Any]:
        """Serialize workflow state.

        Timestamps are written as UTC ISO-8601 strings, which sort
        chronologically. Optional keys without a value are left out.

        Args:
            state: State to serialize

        Returns:
            JSON-compatible record
        """
        record = PersistedState(
            workflow_id=state.workflow_id,
            current_step_id=state.current_step_id,
            paused=state.paused,
            completed_step_ids=state.completed_step_ids,
            data=dict(state.data),
            history=[
                PersistedHistoryEntry(
                    workflow_id=entry.workflow_id,
                    step_id=entry.step_id,
                    completed_at=entry.completed_at,
                    data=dict(entry.data) if entry.data is not None else None,
                )
                for entry in state.history
            ],
        )
        return record.model_dump(by_alias=True)

    def deserialize(self, record: Dict[str, Any]) -> WorkflowState:
        """Rebuild workflow state from a persisted record.

        Args:
            record: Record produced by :meth:`serialize`

        Returns:
            WorkflowState bound to the registered definition

        Raises:
            NotFoundError: If the record's workflow is not registered
            pydantic.ValidationError: If the record is malformed
        """
        persisted = PersistedState.model_validate(record)
        if persisted.workflow_id is None:
            return WorkflowState()

        definition = self.registry.get(persisted.workflow_id)
        if definition is None:
            raise NotFoundError(persisted.workflow_id)

        known = set(definition.step_ids)
        completed = set(persisted.completed_step_ids)
        dropped = completed - known
        if dropped:
            logger.warning(
                f"Ignoring completed steps no longer in {definition.id}: {sorted(dropped)}"
            )

        current = persisted.current_step_id
        if current is not None and current not in known:
            logger.warning(f"Persisted current step {current} not found in {definition.id}")
            current = None

        return WorkflowState(
            definition=definition,
            current_step_id=current,
            paused=persisted.paused,
            step_completion={step_id: step_id in completed for step_id in definition.step_ids},
            data=dict(persisted.data),
            history=tuple(
                HistoryEntry(
                    workflow_id=entry.workflow_id,
                    step_id=entry.step_id,
                    completed_at=entry.completed_at,
                    data=entry.data,
                )
                for entry in persisted.history
            ),
        )

    def to_json(self, state: WorkflowState, indent: Optional[int] = None) -> str:
        return json.dumps(self.serialize(state), indent=indent, ensure_ascii=False)

    def from_json(self, payload: str) -> WorkflowState:
        return self.deserialize(json.loads(payload))


class WorkflowStateStore(ABC):
    """Abstract base class for persisted state storage.

    Implementations own a storage medium; they receive and return the
    serialized record, never live WorkflowState objects.
    """

    @abstractmethod
    def save_state(self, key: str, record: Dict[str, Any]) -> bool:
        """Save a serialized state record.

        Args:
            key: Storage key, typically a user or session id
            record: Record produced by PersistenceAdapter.serialize

        Returns:
            True if successful
        """
        pass

    @abstractmethod
    def load_state(self, key: str) -> Optional[Dict[str, Any]]:
        """Load a serialized state record, or None if absent."""
        pass

    @abstractmethod
    def delete_state(self, key: str) -> bool:
        """Delete a serialized state record.

        Returns:
            True if a record was deleted
        """
        pass

    @abstractmethod
    def list_states(self) -> Dict[str, Optional[str]]:
        """List stored records.

        Returns:
            Dictionary of key to the record's workflow id
        """
        pass


class InMemoryStateStore(WorkflowStateStore):
    """In-memory state store for development/testing."""

    def __init__(self):
        self._records: Dict[str, str] = {}
        self._lock = Lock()

    def save_state(self, key: str, record: Dict[str, Any]) -> bool:
        # Stored as JSON so callers cannot mutate the saved copy.
        payload = json.dumps(record)
        with self._lock:
            self._records[key] = payload
        logger.debug(f"Saved workflow state {key} in memory")
        return True

    def load_state(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            payload = self._records.get(key)
        return json.loads(payload) if payload is not None else None

    def delete_state(self, key: str) -> bool:
        with self._lock:
            if key in self._records:
                del self._records[key]
                logger.debug(f"Deleted workflow state {key}")
                return True
            return False

    def list_states(self) -> Dict[str, Optional[str]]:
        with self._lock:
            items = list(self._records.items())
        return {key: json.loads(payload).get("workflowId") for key, payload in items}
