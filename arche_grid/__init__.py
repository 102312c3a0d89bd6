"""
Arche Grid - MCP Server for Browser-Backed Data Grids

Each grid lives in its own headless Chrome tab. An AI agent creates, filters,
sorts, inspects, summarizes and exports grids through MCP tools while a
dashboard watches every change over a websocket.

Quick Start:
    # Run MCP server (SSE on :8080, dashboard API on :3000)
    arche-grid

    # For MCP clients over stdio
    arche-grid --stdio

    # As Python library
    from arche_grid import GridController

    controller = GridController().initialize()
    grid_id = controller.create(
        [{"field": "item"}, {"field": "price"}],
        [{"item": "a", "price": 10}, {"item": "b", "price": 30}],
    )
    print(controller.summarize(grid_id).to_dict())
    controller.shutdown()
"""

from .errors import (
    GridError,
    ResourceInitError,
    NotInitializedError,
    InvalidConfigError,
    GridCreationError,
    NotFoundError,
    DestroyedError,
    UpdateFailedError,
    MethodExecutionError,
    StateReadError,
    InvalidFormatError,
    ExportFailedError,
    SummaryGenerationError,
    DestroyFailedError,
)
from .models import GridConfig, GridInstance, GridState, ExportResult
from .chrome import Chrome, find_chrome
from .cdp import CDP
from .surface import GridSurface
from .host import ResourceHost, HostOptions
from .registry import GridRegistry
from .controller import GridController, MethodOutcome
from .broadcast import BroadcastSink, BroadcastState, GridEvent
from .stats import StatisticsReader, GridSummary, ColumnStats
from .server import create_server, run

__version__ = "1.0.0"
__all__ = [
    # Core
    "GridController",
    "MethodOutcome",
    "GridRegistry",
    "ResourceHost",
    "HostOptions",
    "GridSurface",
    "Chrome",
    "find_chrome",
    "CDP",
    # Model
    "GridConfig",
    "GridInstance",
    "GridState",
    "ExportResult",
    # Broadcast
    "BroadcastSink",
    "BroadcastState",
    "GridEvent",
    # Statistics
    "StatisticsReader",
    "GridSummary",
    "ColumnStats",
    # Server
    "create_server",
    "run",
    # Errors
    "GridError",
    "ResourceInitError",
    "NotInitializedError",
    "InvalidConfigError",
    "GridCreationError",
    "NotFoundError",
    "DestroyedError",
    "UpdateFailedError",
    "MethodExecutionError",
    "StateReadError",
    "InvalidFormatError",
    "ExportFailedError",
    "SummaryGenerationError",
    "DestroyFailedError",
]
