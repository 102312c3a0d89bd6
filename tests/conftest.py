"""
In-memory stand-ins for Chrome: a fake host that hands out fake grid
surfaces which filter, sort and select rows the way the grid page does.
"""

import copy
import csv
import io
import itertools
import threading

import pytest

from arche_grid.broadcast import BroadcastSink
from arche_grid.controller import GridController
from arche_grid.errors import NotInitializedError, SurfaceError


def _matches(value, spec):
    kind = spec.get("filterType")
    if kind == "set":
        return value in spec.get("values", [])
    if kind == "number":
        op, target = spec.get("type", "equals"), spec.get("filter")
        if value is None:
            return False
        return {
            "equals": value == target,
            "notEqual": value != target,
            "greaterThan": value > target,
            "lessThan": value < target,
        }[op]
    if kind == "text":
        op, target = spec.get("type", "contains"), str(spec.get("filter", "")).lower()
        text = str(value or "").lower()
        return {
            "contains": target in text,
            "equals": text == target,
            "startsWith": text.startswith(target),
        }[op]
    return True


class FakeSurface:
    """Grid API double: rows, filter model, column state and selection."""

    _ids = itertools.count(1)

    def __init__(self):
        self.target_id = f"target-{next(self._ids)}"
        self.column_defs = []
        self.rows = []
        self.filters = {}
        self.columns = []
        self.selected = []
        self.mounted = False
        self.closed = False
        self.destroy_calls = 0
        self.close_calls = 0
        self.calls = []
        self.fail = set()

    # lifecycle
    def mount(self, config):
        self._check("mount")
        self.column_defs = copy.deepcopy(config["columnDefs"])
        self.rows = copy.deepcopy(config["rowData"])
        self.columns = [
            {"colId": col["field"], "width": col.get("width", 200), "hide": False,
             "sort": None, "sortIndex": None}
            for col in self.column_defs
        ]
        self.mounted = True
        return self

    def destroy(self):
        self.destroy_calls += 1
        self._check("destroy")
        self.mounted = False

    def close(self):
        self.close_calls += 1
        self.closed = True

    def _check(self, name):
        self.calls.append(name)
        if self.closed:
            raise SurfaceError("Grid surface is not mounted")
        if name in self.fail:
            raise SurfaceError(f"{name} failed")

    # grid behaviour
    def _displayed(self):
        rows = [r for r in self.rows
                if all(_matches(r.get(f), spec) for f, spec in self.filters.items())]
        active = sorted((c for c in self.columns if c["sort"]), key=lambda c: c["sortIndex"] or 0)
        for col in reversed(active):
            rows.sort(key=lambda r: (r.get(col["colId"]) is None, r.get(col["colId"])),
                      reverse=col["sort"] == "desc")
        return rows

    def _apply_column_state(self, params):
        default = (params or {}).get("defaultState") or {}
        if "sort" in default:
            for col in self.columns:
                col["sort"], col["sortIndex"] = default["sort"], None
        by_id = {c["colId"]: c for c in self.columns}
        for entry in (params or {}).get("state", []):
            col = by_id.get(entry["colId"])
            if col is not None:
                col.update({k: v for k, v in entry.items() if k != "colId"})
        return True

    def call(self, method, args=None):
        self._check(method)
        args = list(args or [])
        handlers = {
            "setFilterModel": lambda m=None: self.filters.clear() or self.filters.update(m or {}),
            "getFilterModel": lambda: copy.deepcopy(self.filters),
            "applyColumnState": self._apply_column_state,
            "getColumnState": lambda: copy.deepcopy(self.columns),
            "getSelectedRows": lambda: [copy.deepcopy(r) for r in self.selected],
            "selectAll": lambda: self.selected.extend(self._displayed()),
            "deselectAll": lambda: self.selected.clear(),
            "getDisplayedRowCount": lambda: len(self._displayed()),
            "getDataAsCsv": self._csv,
            "destroy": self.destroy,
        }
        if method not in handlers:
            raise SurfaceError(f"Error: Method '{method}' not found on grid API")
        return handlers[method](*args)

    def _csv(self):
        buf = io.StringIO()
        fields = [c["field"] for c in self.column_defs]
        writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\r\n")
        writer.writerow([c.get("headerName") or c["field"] for c in self.column_defs])
        for row in self._displayed():
            writer.writerow(["" if row.get(f) is None else row.get(f) for f in fields])
        return buf.getvalue().rstrip("\r\n")

    def set_row_data(self, rows):
        self._check("set_row_data")
        self.rows = copy.deepcopy(rows)

    def column_state(self):
        return self.call("getColumnState")

    def filter_model(self):
        return self.call("getFilterModel")

    def selected_rows(self):
        return self.call("getSelectedRows")

    def displayed_row_count(self):
        return self.call("getDisplayedRowCount")

    def row_count(self):
        self._check("row_count")
        return len(self.rows)

    def displayed_rows(self):
        self._check("displayed_rows")
        return copy.deepcopy(self._displayed())

    def data_as_csv(self):
        return self.call("getDataAsCsv")


class FakeHost:
    """ResourceHost double."""

    def __init__(self):
        self.initialized = False
        self.surfaces = []
        self.fail_mount = False
        self.close_error = None
        self.closed = False
        self._lock = threading.Lock()

    def initialize(self):
        self.initialized = True
        return self

    def open_surface(self):
        if not self.initialized:
            raise NotInitializedError("Resource host not initialized. Call initialize() first.")
        surface = FakeSurface()
        with self._lock:
            self.surfaces.append(surface)
        return surface

    def mount(self, surface, config):
        if self.fail_mount:
            raise SurfaceError("Grid page not ready within 10.0s")
        return surface.mount(config.to_dict())

    def close(self):
        self.closed = True
        self.initialized = False
        if self.close_error:
            raise self.close_error

    def status(self):
        return {"initialized": self.initialized}


class RecordingObserver:
    def __init__(self):
        self.messages = []

    def __call__(self, message):
        self.messages.append(message)

    def events(self, name=None):
        return [m for m in self.messages if name is None or m["event"] == name]

    def grid_event_types(self):
        return [m["data"]["type"] for m in self.messages if m["event"] == "grid_event"]


COLUMNS = [
    {"field": "order", "headerName": "Order"},
    {"field": "status", "headerName": "Status"},
    {"field": "amount", "headerName": "Amount", "width": 140},
]

ROWS = [
    {"order": "A-1", "status": "completed", "amount": 120},
    {"order": "A-2", "status": "pending", "amount": 80},
    {"order": "A-3", "status": "completed", "amount": 45},
    {"order": "A-4", "status": "cancelled", "amount": None},
]


@pytest.fixture
def host():
    return FakeHost().initialize()


@pytest.fixture
def sink():
    return BroadcastSink()


@pytest.fixture
def controller(host, sink):
    return GridController(host=host, sink=sink)


@pytest.fixture
def bare_controller(host):
    """Controller with no broadcast sink attached."""
    return GridController(host=host)


@pytest.fixture
def grid_id(controller):
    return controller.create(COLUMNS, ROWS)
