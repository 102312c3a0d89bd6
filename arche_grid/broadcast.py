"""
State Broadcast Sink

Best-effort mirror of every grid for passive observers (the dashboard).
Snapshots lag the live grids and are never used to decide anything about
grid operations.

Observers are plain callables taking one message dict:
    {"event": "grid_states" | "grid_state_updated" | "grid_event" | "grid_removed",
     "data": ...}
They must not block; the websocket layer hands each message to a queue.
A new observer first receives the full snapshot set, then only new messages.
"""

import copy
import sys
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .utils import iso_timestamp


Observer = Callable[[Dict[str, Any]], None]

EVENT_TYPES = (
    "grid_created",
    "grid_updated",
    "grid_filtered",
    "grid_sorted",
    "grid_exported",
    "grid_destroyed",
)


@dataclass
class GridEvent:
    type: str
    grid_id: str
    timestamp: str = field(default_factory=iso_timestamp)
    data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {"type": self.type, "gridId": self.grid_id, "timestamp": self.timestamp}
        if self.data is not None:
            result["data"] = self.data
        return result


@dataclass
class BroadcastState:
    """Mirrored snapshot of one grid."""
    id: str
    config: Dict[str, Any] = field(default_factory=dict)
    data: List[Dict[str, Any]] = field(default_factory=list)
    filters: Optional[Dict[str, Any]] = None
    sorting: Optional[Any] = None
    created_at: str = field(default_factory=iso_timestamp)
    last_updated: str = field(default_factory=iso_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "config": self.config,
            "data": self.data,
            "createdAt": self.created_at,
            "lastUpdated": self.last_updated,
        }
        if self.filters is not None:
            result["filters"] = self.filters
        if self.sorting is not None:
            result["sorting"] = self.sorting
        return result


class BroadcastSink:
    """Per-grid snapshot store with fan-out to connected observers."""

    def __init__(self):
        self._states: Dict[str, BroadcastState] = {}
        self._observers: Dict[int, Observer] = {}
        self._next_token = 0
        # RLock: emits happen while the snapshot is being updated
        self._lock = threading.RLock()

    # ─── Observers ──────────────────────────────────────────────────

    def connect(self, observer: Observer) -> int:
        """Register an observer; it immediately receives all current snapshots."""
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._deliver(token, observer, {"event": "grid_states", "data": self.states()})
            self._observers[token] = observer
        print(f"[*] Observer {token} connected", file=sys.stderr)
        return token

    def disconnect(self, token: int):
        with self._lock:
            removed = self._observers.pop(token, None)
        if removed is not None:
            print(f"[*] Observer {token} disconnected", file=sys.stderr)

    @property
    def observer_count(self) -> int:
        with self._lock:
            return len(self._observers)

    def _deliver(self, token: int, observer: Observer, message: Dict[str, Any]) -> bool:
        try:
            observer(message)
            return True
        except Exception as e:
            print(f"[!] Observer {token} failed, dropping: {e}", file=sys.stderr)
            return False

    def _emit(self, event: str, data: Any):
        message = {"event": event, "data": data}
        with self._lock:
            dead = [token for token, obs in list(self._observers.items())
                    if not self._deliver(token, obs, message)]
            for token in dead:
                self._observers.pop(token, None)

    def _emit_event(self, event_type: str, grid_id: str, data: Optional[Dict[str, Any]] = None):
        self._emit("grid_event", GridEvent(event_type, grid_id, data=data).to_dict())

    # ─── Snapshots ──────────────────────────────────────────────────

    def states(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(state.to_dict()) for state in self._states.values()]

    def state(self, grid_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            state = self._states.get(grid_id)
            return copy.deepcopy(state.to_dict()) if state else None

    def _merge(self, grid_id: str, **updates) -> BroadcastState:
        """Insert-or-merge a snapshot and broadcast it."""
        with self._lock:
            state = self._states.get(grid_id) or BroadcastState(id=grid_id)
            for key, value in updates.items():
                setattr(state, key, copy.deepcopy(value))
            state.last_updated = iso_timestamp()
            self._states[grid_id] = state
            self._emit("grid_state_updated", copy.deepcopy(state.to_dict()))
            return state

    # ─── Notifications ──────────────────────────────────────────────

    def on_created(self, grid_id: str, config: Dict[str, Any], rows: List[Dict[str, Any]]):
        with self._lock:
            self._states.pop(grid_id, None)
            self._emit_event("grid_created", grid_id, {"config": config, "rowCount": len(rows)})
            self._merge(grid_id, config=config, data=rows)

    def on_data_updated(self, grid_id: str, rows: List[Dict[str, Any]]):
        with self._lock:
            self._merge(grid_id, data=rows)
            self._emit_event("grid_updated", grid_id, {"rowCount": len(rows)})

    def on_filtered(self, grid_id: str, filter_model: Optional[Dict[str, Any]], displayed_count: int):
        with self._lock:
            self._merge(grid_id, filters=filter_model or {})
            self._emit_event("grid_filtered", grid_id,
                             {"filterModel": filter_model, "displayedRows": displayed_count})

    def on_sorted(self, grid_id: str, sort_model: Any):
        with self._lock:
            self._merge(grid_id, sorting=sort_model)
            self._emit_event("grid_sorted", grid_id, {"sortModel": sort_model})

    def on_exported(self, grid_id: str, fmt: str, filename: str):
        self._emit_event("grid_exported", grid_id, {"format": fmt, "filename": filename})

    def on_destroyed(self, grid_id: str):
        with self._lock:
            self._states.pop(grid_id, None)
            self._emit("grid_removed", grid_id)
            self._emit_event("grid_destroyed", grid_id)
