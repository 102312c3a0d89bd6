"""
Chrome DevTools Protocol transport.

One CDP connection per browser tab. Requests on a connection are strictly
one-at-a-time: the socket lock is held from send until the matching
response arrives.

Usage:
    cdp = CDP(target["webSocketDebuggerUrl"]).connect()
    cdp.send("Runtime.evaluate", {"expression": "1 + 1", "returnByValue": True})
    cdp.close()
"""

import json
import threading
from typing import Dict, Optional

import websocket

from .errors import SurfaceError


class CDP:
    """Chrome DevTools Protocol connection to a single target."""

    def __init__(self, ws_url: str, timeout: float = 60):
        self.ws_url = ws_url
        self.timeout = timeout
        self._ws: Optional[websocket.WebSocket] = None
        self._id = 0
        self._lock = threading.Lock()

    @property
    def connected(self) -> bool:
        return self._ws is not None

    def connect(self) -> "CDP":
        """Open the websocket to the target."""
        if self._ws:
            return self
        try:
            self._ws = websocket.create_connection(self.ws_url, timeout=self.timeout)
        except (websocket.WebSocketException, OSError) as e:
            raise SurfaceError(f"CDP connect failed: {e}") from e
        return self

    def send(self, method: str, params: Optional[Dict] = None,
             timeout: Optional[float] = None) -> Dict:
        """Send CDP command and return its result, skipping events seen meanwhile."""
        with self._lock:
            if not self._ws:
                raise SurfaceError("CDP connection is closed")

            self._id += 1
            msg_id = self._id
            msg = {"id": msg_id, "method": method}
            if params:
                msg["params"] = params

            self._ws.settimeout(timeout or self.timeout)
            try:
                self._ws.send(json.dumps(msg))
                while True:
                    result = json.loads(self._ws.recv())

                    # events (no "id") are not used by grid surfaces
                    if "method" in result:
                        continue

                    if result.get("id") == msg_id:
                        if "error" in result:
                            raise SurfaceError(f"CDP {method}: {result['error'].get('message', result['error'])}")
                        return result.get("result", {})
            except websocket.WebSocketTimeoutException as e:
                raise SurfaceError(f"CDP {method} timed out") from e
            except (websocket.WebSocketException, OSError, ValueError) as e:
                raise SurfaceError(f"CDP {method} failed: {e}") from e
            finally:
                if self._ws:
                    self._ws.settimeout(self.timeout)

    def close(self):
        """Close connection."""
        with self._lock:
            if self._ws:
                try:
                    self._ws.close()
                except (websocket.WebSocketException, OSError):
                    pass
                self._ws = None
