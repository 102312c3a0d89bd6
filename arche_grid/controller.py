"""
Grid Controller

The caller-facing grid manager: create, replace data, invoke any grid API
method, read live state, export, summarize, destroy and shut down. Every
operation resolves its grid through the registry, runs against the grid's
surface while holding that grid's lock, and reports the change to the
broadcast sink when one is attached.

Usage:
    controller = GridController()
    controller.initialize()
    grid_id = controller.create([{"field": "price"}], [{"price": 10}])
    controller.invoke_method(grid_id, "setFilterModel", [{"price": {...}}])
    print(controller.read_state(grid_id).displayed_row_count)
    controller.shutdown()
"""

import sys
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from .errors import (
    DestroyFailedError,
    DestroyedError,
    ExportFailedError,
    GridError,
    InvalidFormatError,
    MethodExecutionError,
    NotInitializedError,
    StateReadError,
    UpdateFailedError,
)
from .export import FORMATS, encode_xlsx_base64, export_filename
from .host import HostOptions, ResourceHost
from .models import ExportResult, GridConfig, GridInstance, GridState, derive_sort_state, validate_row_data
from .registry import GridRegistry
from .stats import GridSummary, StatisticsReader
from .utils import truncate


FILTER_METHOD = "setFilterModel"
COLUMN_STATE_METHOD = "applyColumnState"


@dataclass
class MethodOutcome:
    """Tagged result of a pass-through method call."""
    ok: bool
    value: Any = None
    error: Optional[MethodExecutionError] = None


class GridController:
    """Pool of browser-backed grids."""

    def __init__(self, host=None, sink=None, options: Optional[HostOptions] = None):
        self.host = host or ResourceHost(options)
        self.registry = GridRegistry(self.host)
        self.stats = StatisticsReader(self.registry)
        self.sink = sink

    def set_broadcast_sink(self, sink):
        """Attach the dashboard mirror. Optional; never affects results."""
        self.sink = sink

    # ─── Lifecycle ──────────────────────────────────────────────────

    def initialize(self) -> "GridController":
        self.host.initialize()
        return self

    @property
    def initialized(self) -> bool:
        return self.host.initialized

    def shutdown(self):
        """
        Destroy every grid, then release the engine.

        Per-grid failures are logged and skipped; only a failure closing the
        engine itself is raised.
        """
        print("[*] Shutting down grid controller...", file=sys.stderr)
        for grid_id in self.registry.list():
            try:
                self.destroy(grid_id)
            except GridError as e:
                print(f"[!] Error destroying grid {grid_id}: {e}", file=sys.stderr)
        self.host.close()
        print("[*] Shutdown complete", file=sys.stderr)

    # ─── Internals ──────────────────────────────────────────────────

    @contextmanager
    def _session(self, grid_id: str) -> Iterator[GridInstance]:
        """Resolve a grid and hold its lock for the operation."""
        instance = self.registry.resolve(grid_id)
        with instance.lock:
            if instance.destroyed:
                raise DestroyedError(f"Grid with ID {grid_id} has been destroyed", grid_id)
            yield instance

    def _notify(self, hook: str, *args):
        if self.sink is None:
            return
        try:
            getattr(self.sink, hook)(*args)
        except Exception as e:
            print(f"[!] Broadcast {hook} failed for grid {args[0]}: {e}", file=sys.stderr)

    # ─── Operations ─────────────────────────────────────────────────

    def create(self, column_defs: List[Dict[str, Any]], row_data: List[Dict[str, Any]],
               grid_options: Optional[Dict[str, Any]] = None) -> str:
        """Validate, open a tab, mount the grid. Returns the new grid id."""
        if not self.host.initialized:
            raise NotInitializedError("GridController not initialized. Call initialize() first.")

        config = GridConfig.parse(column_defs, row_data, grid_options)
        instance = self.registry.create(config)

        self._notify("on_created", instance.id, config.to_dict(), config.row_data)
        print(f"[*] Grid created: {instance.id} ({len(config.column_defs)} columns, "
              f"{len(config.row_data)} rows)", file=sys.stderr)
        return instance.id

    def replace_data(self, grid_id: str, row_data: List[Dict[str, Any]]):
        """Replace all rows of a grid."""
        with self._session(grid_id) as instance:
            rows = validate_row_data(row_data)
            try:
                instance.surface.set_row_data(rows)
            except Exception as e:
                raise UpdateFailedError("Failed to update grid data", grid_id, e) from e
            instance.config.row_data = rows
            instance.touch()

        self._notify("on_data_updated", grid_id, rows)
        print(f"[*] Grid {grid_id} data replaced ({len(rows)} rows)", file=sys.stderr)

    def invoke_method(self, grid_id: str, method: str, args: Optional[List[Any]] = None) -> Any:
        """Call any grid API method and return its value."""
        args = list(args or [])
        with self._session(grid_id) as instance:
            try:
                result = instance.surface.call(method, args)
            except Exception as e:
                raise MethodExecutionError(f"Failed to execute grid method: {method}", grid_id, e) from e

            if self.sink is not None:
                if method == FILTER_METHOD:
                    self._after_filter(instance, args[0] if args else None)
                elif method == COLUMN_STATE_METHOD:
                    self._after_column_state(instance)

        print(f"[*] Executed {method}({truncate(str(args), 60)}) on grid {grid_id}", file=sys.stderr)
        return result

    def try_invoke(self, grid_id: str, method: str, args: Optional[List[Any]] = None) -> MethodOutcome:
        """invoke_method as a tagged result: execution failures become ok=False."""
        try:
            return MethodOutcome(ok=True, value=self.invoke_method(grid_id, method, args))
        except MethodExecutionError as e:
            return MethodOutcome(ok=False, error=e)

    def _after_filter(self, instance: GridInstance, filter_model: Optional[Dict[str, Any]]):
        try:
            displayed = instance.surface.displayed_row_count()
        except Exception as e:
            print(f"[!] Filter notification skipped for grid {instance.id}: {e}", file=sys.stderr)
            return
        self._notify("on_filtered", instance.id, filter_model, displayed)

    def _after_column_state(self, instance: GridInstance):
        try:
            sort_model = derive_sort_state(instance.surface.column_state())
        except Exception as e:
            print(f"[!] Sort notification skipped for grid {instance.id}: {e}", file=sys.stderr)
            return
        self._notify("on_sorted", instance.id, sort_model)

    def read_state(self, grid_id: str) -> GridState:
        """Fresh read of layout, filter, sort, selection and row counts."""
        with self._session(grid_id) as instance:
            surface = instance.surface
            try:
                column_state = surface.column_state()
                state = GridState(
                    column_state=column_state,
                    filter_state=surface.filter_model(),
                    sort_state=derive_sort_state(column_state),
                    selected_rows=surface.selected_rows(),
                    row_count=surface.row_count(),
                    displayed_row_count=surface.displayed_row_count(),
                )
            except Exception as e:
                raise StateReadError("Failed to get grid state", grid_id, e) from e
        return state

    def export(self, grid_id: str, fmt: str, filename: Optional[str] = None) -> ExportResult:
        """Serialize the displayed rows as csv text or a base64 xlsx workbook."""
        self.registry.resolve(grid_id)
        if fmt not in FORMATS:
            raise InvalidFormatError(
                f"Invalid export format: {fmt!r} (expected one of {', '.join(FORMATS)})", grid_id
            )

        with self._session(grid_id) as instance:
            try:
                if fmt == "csv":
                    result = ExportResult(data=instance.surface.data_as_csv(), format=fmt,
                                          filename=export_filename(grid_id, fmt, base=filename))
                else:
                    rows = instance.surface.displayed_rows()
                    result = ExportResult(data=encode_xlsx_base64(instance.config.column_defs, rows),
                                          format=fmt, encoding="base64",
                                          filename=export_filename(grid_id, fmt, base=filename))
            except Exception as e:
                raise ExportFailedError(f"Failed to export grid data as {fmt}", grid_id, e) from e

        self._notify("on_exported", grid_id, fmt, result.filename)
        print(f"[*] Exported grid {grid_id} as {fmt}", file=sys.stderr)
        return result

    def summarize(self, grid_id: str) -> GridSummary:
        """Column statistics over the grid's current rows."""
        return self.stats.summarize(grid_id)

    def list_active(self) -> List[str]:
        return self.registry.list()

    def get_info(self, grid_id: str) -> Dict[str, Any]:
        """Stored config and timestamps (no tab round-trip)."""
        return self.registry.resolve(grid_id).info()

    def destroy(self, grid_id: str):
        """Destroy a grid. A second destroy of the same id raises DestroyedError."""
        try:
            self.registry.destroy(grid_id)
        except DestroyFailedError:
            self._notify("on_destroyed", grid_id)
            raise
        self._notify("on_destroyed", grid_id)
        print(f"[*] Grid destroyed: {grid_id}", file=sys.stderr)
