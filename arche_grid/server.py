"""
MCP Server for browser-backed data grids.

Wires one GridController (and its Chrome engine), the broadcast sink and the
optional dashboard into a FastMCP server.
"""

import atexit
import sys
import threading
from typing import Dict, Optional

from .broadcast import BroadcastSink
from .controller import GridController
from .errors import ResourceInitError
from .host import HostOptions


# ══════════════════════════════════════════════════════════════════════════════
# Global state with thread safety
# ══════════════════════════════════════════════════════════════════════════════
_lock = threading.Lock()
_options = HostOptions()
_controller: Optional[GridController] = None
_sink = BroadcastSink()
_web_base: Optional[str] = None
_init_error: Optional[ResourceInitError] = None


def get_controller() -> GridController:
    """
    Get the initialized controller, starting Chrome on first use (thread-safe).

    A failed engine start is fatal: it is remembered and re-raised on every
    later call without launching Chrome again.
    """
    global _controller, _init_error

    with _lock:
        if _init_error is not None:
            raise _init_error
        if _controller is None:
            _controller = GridController(options=_options, sink=_sink)
        if not _controller.initialized:
            try:
                _controller.initialize()
            except ResourceInitError as e:
                _init_error = e
                raise
            print("[*] Grid engine ready", file=sys.stderr)

    return _controller


def peek_controller() -> Optional[GridController]:
    """The controller if one exists, without starting the engine."""
    return _controller


def get_sink() -> BroadcastSink:
    return _sink


def grid_urls(grid_id: str) -> Dict[str, str]:
    return {
        "gridUrl": f"{_web_base}/api/grids/{grid_id}",
        "dataUrl": f"{_web_base}/api/grids/{grid_id}/data",
        "dashboardUrl": _web_base,
        "websocketUrl": _web_base.replace("http", "ws", 1) + "/ws",
    }


def cleanup():
    """Cleanup on exit. Never raises."""
    global _controller
    try:
        if _controller:
            _controller.shutdown()
    except Exception as e:
        print(f"[!] Error during shutdown: {e}", file=sys.stderr)
    finally:
        _controller = None


atexit.register(cleanup)


# ══════════════════════════════════════════════════════════════════════════════
# Dashboard
# ══════════════════════════════════════════════════════════════════════════════
def start_web_server(host: str, port: int) -> threading.Thread:
    """Run the dashboard API on a daemon thread."""
    global _web_base
    import uvicorn
    from .web import create_web_app

    app = create_web_app(get_controller, _sink, peek_controller)
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="warning"))
    thread = threading.Thread(target=server.run, name="arche-grid-web", daemon=True)
    thread.start()
    _web_base = f"http://{host}:{port}"
    print(f"[*] Dashboard API on {_web_base} (websocket {_web_base}/ws)", file=sys.stderr)
    return thread


# ══════════════════════════════════════════════════════════════════════════════
# Server creation
# ══════════════════════════════════════════════════════════════════════════════
def create_server(with_urls: bool = False):
    """Create MCP server with all grid tools and resources."""
    from mcp.server.fastmcp import FastMCP
    from mcp.server.transport_security import TransportSecuritySettings

    from .tools import register_grid_tools

    mcp = FastMCP(
        name="arche-grid",
        instructions=(
            "Interactive data grids rendered in headless Chrome. Create a grid, then filter, "
            "sort, inspect, summarize and export it by gridId."
        ),
        transport_security=TransportSecuritySettings(enable_dns_rebinding_protection=False),
    )
    register_grid_tools(mcp, get_controller, grid_urls if with_urls else None)
    return mcp


# ══════════════════════════════════════════════════════════════════════════════
# Server run
# ══════════════════════════════════════════════════════════════════════════════
def run(
    transport: str = "stdio",
    port: int = 8080,
    headless: bool = True,
    chrome_port: int = 9223,
    chrome_path: Optional[str] = None,
    web: bool = True,
    web_host: str = "localhost",
    web_port: int = 3000,
):
    """Run MCP server."""
    global _options

    _options = HostOptions(headless=headless, port=chrome_port, chrome_path=chrome_path)

    print(f"[*] Starting Chrome {'(headless)' if headless else '(visible)'}...", file=sys.stderr)
    try:
        get_controller()
    except ResourceInitError as e:
        print(f"[!] Chrome failed to start: {e}", file=sys.stderr)
        sys.exit(1)

    if web:
        start_web_server(web_host, web_port)

    mcp = create_server(with_urls=web)

    if transport == "sse":
        print("", file=sys.stderr)
        print("[*] Arche Grid MCP Server (SSE)", file=sys.stderr)
        print(f"[*] URL: http://localhost:{port}/sse", file=sys.stderr)
        mcp.settings.port = port
        mcp.run(transport="sse")
    else:
        print("[*] Arche Grid MCP Server (stdio)", file=sys.stderr)
        mcp.run()
