"""
Dashboard API

Read-only JSON endpoints plus a websocket that streams the broadcast sink
to dashboard observers.

    GET  /api/status
    GET  /api/grids
    GET  /api/grids/{grid_id}
    GET  /api/grids/{grid_id}/data
    WS   /ws        -> grid_states, grid_state_updated, grid_event, grid_removed
                       send {"type": "request_grid_data", "gridId": ...} for one snapshot
"""

import asyncio
import sys
from typing import Any, Dict

import anyio
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute
from starlette.websockets import WebSocket, WebSocketDisconnect

from .errors import DestroyedError, GridError, NotFoundError
from .utils import iso_timestamp


class QueueObserver:
    """Broadcast observer that hands messages to an asyncio queue on its own loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue):
        self.loop = loop
        self.queue = queue

    def __call__(self, message: Dict[str, Any]):
        # raises RuntimeError once the loop is closed; the sink then drops us
        self.loop.call_soon_threadsafe(self.queue.put_nowait, message)


def _error(e: Exception, status: int = 500) -> JSONResponse:
    if isinstance(e, (NotFoundError, DestroyedError)):
        status = 404
    body = {"success": False, "error": str(e)}
    if isinstance(e, GridError):
        body["code"] = e.code
    return JSONResponse(body, status_code=status)


def create_web_app(get_controller, sink, peek_controller=None) -> Starlette:
    """
    Starlette app over a controller getter and the broadcast sink.

    peek_controller returns the controller without starting the engine (or
    None); /api/status uses it so a status probe never launches Chrome.
    """

    async def status(request: Request):
        try:
            c = peek_controller() if peek_controller is not None else get_controller()
            running = c is not None and c.initialized
            return JSONResponse({
                "success": True,
                "status": "running",
                "timestamp": iso_timestamp(),
                "activeGrids": len(c.list_active()) if running else 0,
                "gridStates": len(sink.states()),
                "observers": sink.observer_count,
                "engine": c.host.status() if running else {"initialized": False},
            })
        except Exception as e:
            return _error(e)

    async def list_grids(request: Request):
        try:
            c = get_controller()
            grids = []
            for grid_id in c.list_active():
                try:
                    info = c.get_info(grid_id)
                except GridError:
                    continue
                grids.append({**info, "state": sink.state(grid_id), "url": f"/api/grids/{grid_id}"})
            return JSONResponse({"success": True, "grids": grids})
        except Exception as e:
            return _error(e)

    async def get_grid(request: Request):
        grid_id = request.path_params["grid_id"]
        try:
            c = get_controller()
            info = c.get_info(grid_id)
            state = await anyio.to_thread.run_sync(c.read_state, grid_id)
            return JSONResponse({
                "success": True,
                "grid": {
                    "id": grid_id,
                    "info": info,
                    "state": state.to_dict(),
                    "webState": sink.state(grid_id),
                },
            })
        except Exception as e:
            return _error(e)

    async def grid_data(request: Request):
        grid_id = request.path_params["grid_id"]
        try:
            info = get_controller().get_info(grid_id)
        except Exception as e:
            return _error(e)
        mirrored = sink.state(grid_id)
        if mirrored is None:
            return JSONResponse({"success": False, "error": "Grid data not found"}, status_code=404)
        return JSONResponse({
            "success": True,
            "data": {
                "columnDefs": info["config"]["columnDefs"],
                "rowData": mirrored["data"],
                "gridOptions": info["config"].get("gridOptions") or {},
            },
        })

    async def observe(websocket: WebSocket):
        await websocket.accept()
        queue: asyncio.Queue = asyncio.Queue()
        token = sink.connect(QueueObserver(asyncio.get_running_loop(), queue))

        async def pump():
            while True:
                await websocket.send_json(await queue.get())

        sender = asyncio.create_task(pump())
        try:
            while True:
                message = await websocket.receive_json()
                if isinstance(message, dict) and message.get("type") == "request_grid_data":
                    state = sink.state(message.get("gridId"))
                    if state is not None:
                        queue.put_nowait({"event": "grid_data", "data": state})
        except WebSocketDisconnect:
            pass
        except ValueError as e:
            print(f"[!] Observer {token} sent invalid message: {e}", file=sys.stderr)
        finally:
            sink.disconnect(token)
            sender.cancel()
            # CancelledError is not an Exception; only real send failures are reported
            (outcome,) = await asyncio.gather(sender, return_exceptions=True)
            if isinstance(outcome, Exception):
                print(f"[!] Observer {token} send failed: {outcome}", file=sys.stderr)

    routes = [
        Route("/api/status", endpoint=status, methods=["GET"]),
        Route("/api/grids", endpoint=list_grids, methods=["GET"]),
        Route("/api/grids/{grid_id}", endpoint=get_grid, methods=["GET"]),
        Route("/api/grids/{grid_id}/data", endpoint=grid_data, methods=["GET"]),
        WebSocketRoute("/ws", endpoint=observe),
    ]
    return Starlette(routes=routes)
