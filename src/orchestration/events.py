"""Fire-and-forget event bus for workflow lifecycle notifications."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    WORKFLOW_STARTED = "WORKFLOW_STARTED"
    WORKFLOW_COMPLETED = "WORKFLOW_COMPLETED"
    WORKFLOW_CANCELLED = "WORKFLOW_CANCELLED"
    WORKFLOW_PAUSED = "WORKFLOW_PAUSED"
    WORKFLOW_RESUMED = "WORKFLOW_RESUMED"
    STEP_STARTED = "STEP_STARTED"
    STEP_COMPLETED = "STEP_COMPLETED"
    STEP_SKIPPED = "STEP_SKIPPED"


@dataclass(frozen=True)
class WorkflowEvent:
    """Payload delivered to event listeners."""

    type: EventType
    workflow_id: str
    step_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "type": self.type.value,
            "workflowId": self.workflow_id,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.step_id is not None:
            out["stepId"] = self.step_id
        if self.data is not None:
            out["data"] = self.data
        return out


Listener = Callable[[WorkflowEvent], Any]


class EventBus:
    """Delivers events to subscribed listeners.

    Delivery is synchronous but isolated: a listener that raises is logged and
    the remaining listeners still run. Nothing propagates back to the emitter.
    """

    def __init__(self):
        self._listeners: List[Tuple[Listener, Optional[Set[EventType]]]] = []
        self._lock = Lock()

    def subscribe(
        self, listener: Listener, types: Optional[Iterable[EventType]] = None
    ) -> Callable[[], None]:
        """Register a listener.

        Args:
            listener: Callable receiving a WorkflowEvent
            types: Event types to receive (all types when None)

        Returns:
            Callable that removes the subscription
        """
        entry = (listener, set(types) if types is not None else None)
        with self._lock:
            self._listeners.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._listeners:
                    self._listeners.remove(entry)

        return unsubscribe

    def emit(self, event: WorkflowEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)

        logger.debug(f"Emitting {event.type.value} for {event.workflow_id} ({event.step_id})")
        for listener, types in listeners:
            if types is not None and event.type not in types:
                continue
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Event listener error for {event.type.value}: {e}")

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)
