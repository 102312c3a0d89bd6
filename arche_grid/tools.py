"""
MCP Tool and Resource Definitions

All grid tools in one place. Controller calls block on tab round-trips, so
each tool runs them on a worker thread; grids never wait on each other.
"""

import functools
import json
from typing import Any, Callable, Dict, List, Optional

import anyio

from .response import failure, ok
from .utils import iso_timestamp


RESOURCE_URIS = {
    "list": "grid://list",
    "schema": "grid://schema/{grid_id}",
    "data": "grid://data/{grid_id}",
    "summary": "grid://summary/{grid_id}",
}

SAMPLE_ROWS = 10

COMMON_GRID_METHODS = [
    "selectAll",
    "deselectAll",
    "sizeColumnsToFit",
    "autoSizeAllColumns",
    "resetColumnState",
    "setFilterModel",
    "applyColumnState",
    "getDisplayedRowCount",
    "getSelectedRows",
    "refreshCells",
    "redrawRows",
]


async def _blocking(fn: Callable, *args, **kwargs) -> Any:
    return await anyio.to_thread.run_sync(functools.partial(fn, *args, **kwargs))


def sort_column_state(sort_model: List[Dict[str, Any]]) -> Dict[str, Any]:
    """applyColumnState payload for an ordered [{colId, sort}] list; clears other sorts."""
    return {
        "state": [
            {"colId": entry["colId"], "sort": entry.get("sort", "asc"), "sortIndex": idx}
            for idx, entry in enumerate(sort_model)
        ],
        "defaultState": {"sort": None},
    }


def register_grid_tools(mcp, get_controller, grid_url_for: Optional[Callable[[str], Dict[str, str]]] = None):
    """
    Register grid tools and resources.

    Args:
        mcp: FastMCP instance
        get_controller: Function returning the initialized GridController
        grid_url_for: Optional function mapping a grid id to dashboard URLs
    """

    # ═══════════════════════════════════════════════════════════════
    # GRID LIFECYCLE
    # ═══════════════════════════════════════════════════════════════

    @mcp.tool()
    async def create_grid(column_defs: List[Dict[str, Any]], row_data: List[Dict[str, Any]],
                          grid_options: Optional[Dict[str, Any]] = None) -> str:
        """Create a grid from column definitions (field, headerName, width, sortable, filter, resizable) and row objects. Returns gridId."""
        try:
            c = get_controller()
            grid_id = await _blocking(c.create, column_defs, row_data, grid_options)
            return ok(f"Grid created successfully with ID: {grid_id}", {
                "gridId": grid_id,
                "columns": len(column_defs),
                "rows": len(row_data),
                "columnFields": [col.get("field") for col in column_defs],
            })
        except Exception as e:
            return failure("Failed to create grid", e)

    @mcp.tool()
    async def update_grid_data(grid_id: str, row_data: List[Dict[str, Any]]) -> str:
        """Replace all rows of a grid."""
        try:
            await _blocking(get_controller().replace_data, grid_id, row_data)
            return ok(f"Grid data updated successfully for grid: {grid_id}", {
                "gridId": grid_id,
                "newRowCount": len(row_data),
                "updatedAt": iso_timestamp(),
            })
        except Exception as e:
            return failure(f"Failed to update grid data for grid: {grid_id}", e)

    @mcp.tool()
    async def destroy_grid(grid_id: str) -> str:
        """Destroy a grid and close its browser tab."""
        try:
            await _blocking(get_controller().destroy, grid_id)
            return ok(f"Grid destroyed: {grid_id}", {"gridId": grid_id})
        except Exception as e:
            return failure(f"Failed to destroy grid: {grid_id}", e)

    @mcp.tool()
    async def list_grids() -> str:
        """List active grids with row/column counts."""
        try:
            return ok("Active grids", {"grids": _grid_list(get_controller())})
        except Exception as e:
            return failure("Failed to list grids", e)

    # ═══════════════════════════════════════════════════════════════
    # FILTER / SORT / METHODS
    # ═══════════════════════════════════════════════════════════════

    @mcp.tool()
    async def apply_grid_filter(grid_id: str, filter_model: Dict[str, Any]) -> str:
        """Apply a filter model, e.g. {"price": {"filterType": "number", "type": "greaterThan", "filter": 100}}. Empty {} clears."""
        try:
            c = get_controller()
            await _blocking(c.invoke_method, grid_id, "setFilterModel", [filter_model])
            state = await _blocking(c.read_state, grid_id)
            return ok(f"Filters applied successfully to grid: {grid_id}", {
                "gridId": grid_id,
                "filterModel": filter_model,
                "displayedRows": state.displayed_row_count,
                "totalRows": state.row_count,
            })
        except Exception as e:
            return failure(f"Failed to apply filters to grid: {grid_id}", e)

    @mcp.tool()
    async def apply_grid_sort(grid_id: str, sort_model: List[Dict[str, Any]]) -> str:
        """Sort by columns in priority order: [{"colId": "price", "sort": "desc"}]. Empty [] clears."""
        try:
            c = get_controller()
            await _blocking(c.invoke_method, grid_id, "applyColumnState", [sort_column_state(sort_model)])
            state = await _blocking(c.read_state, grid_id)
            return ok(f"Sorting applied successfully to grid: {grid_id}", {
                "gridId": grid_id,
                "sortState": state.sort_state,
            })
        except Exception as e:
            return failure(f"Failed to apply sorting to grid: {grid_id}", e)

    @mcp.tool()
    async def execute_grid_method(grid_id: str, method: str, params: Optional[List[Any]] = None) -> str:
        """Call any grid API method, e.g. selectAll, sizeColumnsToFit, getDisplayedRowCount."""
        try:
            outcome = await _blocking(get_controller().try_invoke, grid_id, method, params)
        except Exception as e:
            return failure(f"Failed to execute method '{method}' on grid: {grid_id}", e)
        if not outcome.ok:
            return failure(f"Failed to execute method '{method}' on grid: {grid_id}", outcome.error)
        return ok(f"Method '{method}' executed successfully on grid: {grid_id}", {
            "gridId": grid_id,
            "method": method,
            "params": params,
            "result": outcome.value,
            "executedAt": iso_timestamp(),
        })

    # ═══════════════════════════════════════════════════════════════
    # STATE / EXPORT
    # ═══════════════════════════════════════════════════════════════

    @mcp.tool()
    async def get_grid_stats(grid_id: str) -> str:
        """Grid state: row counts, filters, sorting, selection, columns."""
        try:
            c = get_controller()
            state = await _blocking(c.read_state, grid_id)
            info = c.get_info(grid_id)
            config = info["config"]
            return ok(f"Grid statistics retrieved for grid: {grid_id}", {
                "gridId": grid_id,
                "createdAt": info["createdAt"],
                "lastUpdated": info["lastUpdated"],
                "totalRows": state.row_count,
                "displayedRows": state.displayed_row_count,
                "selectedRowsCount": len(state.selected_rows),
                "hasFilters": state.has_filters,
                "hasSorting": state.has_sorting,
                "columnCount": len(config["columnDefs"]),
                "filterState": state.filter_state,
                "sortState": state.sort_state,
                "columnState": [
                    {k: col.get(k) for k in ("colId", "width", "sort", "sortIndex")}
                    for col in state.column_state
                ],
                "selectedRows": state.selected_rows,
                "columnFields": [col["field"] for col in config["columnDefs"]],
                "gridOptions": list((config.get("gridOptions") or {}).keys()),
            })
        except Exception as e:
            return failure(f"Failed to get grid statistics for grid: {grid_id}", e)

    @mcp.tool()
    async def export_grid(grid_id: str, format: str = "csv", filename: Optional[str] = None) -> str:
        """Export displayed rows: csv (text) or excel (base64 .xlsx). Optional filename without extension."""
        try:
            result = await _blocking(get_controller().export, grid_id, format, filename)
            return ok(f"Grid exported successfully as {format.upper()}", {
                "gridId": grid_id,
                "dataLength": len(result.data),
                "exportedAt": iso_timestamp(),
                **result.to_dict(),
            })
        except Exception as e:
            return failure(f"Failed to export grid: {grid_id}", e)

    if grid_url_for is not None:
        @mcp.tool()
        async def get_grid_url(grid_id: str) -> str:
            """Dashboard URLs for watching a grid live."""
            try:
                get_controller().get_info(grid_id)
                urls = grid_url_for(grid_id)
                return ok("Grid viewer URL generated successfully", {"gridId": grid_id, **urls})
            except Exception as e:
                return failure(f"Failed to get grid URL for grid: {grid_id}", e)

    # ═══════════════════════════════════════════════════════════════
    # RESOURCES
    # ═══════════════════════════════════════════════════════════════

    @mcp.resource(RESOURCE_URIS["list"], name="Active Grids List", mime_type="application/json")
    async def grid_list() -> str:
        try:
            grids = _grid_list(get_controller())
        except Exception as e:
            return _json({"error": "Failed to retrieve grid list", "message": str(e),
                          "generatedAt": iso_timestamp()})
        return _json({"totalGrids": len(grids), "grids": grids, "generatedAt": iso_timestamp()})

    @mcp.resource(RESOURCE_URIS["schema"], name="Grid Schema", mime_type="application/json")
    async def grid_schema(grid_id: str) -> str:
        try:
            c = get_controller()
            info = c.get_info(grid_id)
            state = await _blocking(c.read_state, grid_id)
            columns = info["config"]["columnDefs"]
            return _json({
                "gridId": grid_id,
                "columnDefinitions": [_describe_column(col) for col in columns],
                "columnCount": len(columns),
                "currentState": {
                    "hasFilters": state.has_filters,
                    "hasSorting": state.has_sorting,
                    "filterModel": state.filter_state,
                    "sortModel": state.sort_state,
                },
                "generatedAt": iso_timestamp(),
            })
        except Exception as e:
            return _resource_error(grid_id, "Failed to retrieve grid schema", e)

    @mcp.resource(RESOURCE_URIS["data"], name="Grid Data Sample", mime_type="application/json")
    async def grid_data(grid_id: str) -> str:
        try:
            c = get_controller()
            info = c.get_info(grid_id)
            state = await _blocking(c.read_state, grid_id)
            instance = c.registry.resolve(grid_id)
            rows, source = await _blocking(c.stats.current_rows, instance)
            sample = rows[:SAMPLE_ROWS]
            return _json({
                "gridId": grid_id,
                "sampleSize": len(sample),
                "totalRows": state.row_count,
                "displayedRows": state.displayed_row_count,
                "isFiltered": state.has_filters,
                "isSorted": state.has_sorting,
                "columnFields": [col["field"] for col in info["config"]["columnDefs"]],
                "sampleData": sample,
                "source": source,
                "note": ("Showing all available data" if len(sample) < SAMPLE_ROWS
                         else f"Showing first {SAMPLE_ROWS} rows of displayed data"),
                "generatedAt": iso_timestamp(),
            })
        except Exception as e:
            return _resource_error(grid_id, "Failed to retrieve grid data sample", e)

    @mcp.resource(RESOURCE_URIS["summary"], name="Grid Statistical Summary", mime_type="application/json")
    async def grid_summary(grid_id: str) -> str:
        try:
            summary = await _blocking(get_controller().summarize, grid_id)
            return _json(summary.to_dict())
        except Exception as e:
            return _resource_error(grid_id, "Failed to generate grid summary", e)


def _grid_list(controller) -> List[Dict[str, Any]]:
    grids = []
    for grid_id in controller.list_active():
        try:
            info = controller.get_info(grid_id)
        except Exception as e:
            grids.append({"gridId": grid_id, "error": "Failed to retrieve grid information",
                          "errorMessage": str(e)})
            continue
        columns = info["config"]["columnDefs"]
        grids.append({
            "gridId": grid_id,
            "createdAt": info["createdAt"],
            "lastUpdated": info["lastUpdated"],
            "columnCount": len(columns),
            "rowCount": len(info["config"]["rowData"]),
            "columnFields": [col["field"] for col in columns],
        })
    return grids


def _describe_column(col: Dict[str, Any]) -> Dict[str, Any]:
    described = {
        "field": col["field"],
        "headerName": col.get("headerName") or col["field"],
        "type": col.get("type") or "text",
        "width": col.get("width"),
        "minWidth": col.get("minWidth"),
        "maxWidth": col.get("maxWidth"),
        "sortable": col.get("sortable") is not False,
        "filter": col.get("filter") is not False,
        "resizable": col.get("resizable") is not False,
    }
    described.update({k: v for k, v in col.items() if k not in described})
    return described


def _json(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, indent=2, default=str)


def _resource_error(grid_id: str, message: str, error: BaseException) -> str:
    return _json({
        "gridId": grid_id,
        "error": message,
        "message": str(error),
        "generatedAt": iso_timestamp(),
    })
