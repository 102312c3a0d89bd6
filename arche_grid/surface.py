"""
Grid rendering surface.

A GridSurface is the handle to one browser tab running one grid. Mounting
the grid returns a remote reference to its API object; every later call is
made against that reference (Runtime.callFunctionOn), so nothing is looked
up from page globals.
"""

import json
import time
from typing import Any, Callable, Dict, List, Optional

from .cdp import CDP
from .errors import SurfaceError


# Functions evaluated with `this` bound to the grid API object
_INVOKE = """function(name, args) {
    const fn = this[name];
    if (typeof fn !== 'function') {
        throw new Error(`Method '${name}' not found on grid API`);
    }
    return fn.apply(this, args || []);
}"""

_SET_ROWS = "function(rows) { this.setGridOption('rowData', rows); return true; }"

_ROW_COUNT = "function() { let n = 0; this.forEachNode(() => n++); return n; }"

_DISPLAYED_ROWS = """function() {
    const rows = [];
    this.forEachNodeAfterFilterAndSort(node => { if (node.data) rows.push(node.data); });
    return rows;
}"""

_READY = "typeof window.mountGrid === 'function' && typeof window.agGrid !== 'undefined'"


class GridSurface:
    """Live grid API inside one browser tab."""

    def __init__(self, cdp: CDP, target_id: str,
                 on_close: Optional[Callable[[str], None]] = None):
        self.cdp = cdp
        self.target_id = target_id
        self._on_close = on_close
        self._api_id: Optional[str] = None
        self._closed = False

    # ─── Lifecycle ──────────────────────────────────────────────────

    def mount(self, config: Dict[str, Any], html: str,
              viewport: Optional[Dict[str, int]] = None, timeout: float = 10.0) -> "GridSurface":
        """Load the grid page, wait until it is ready and create the grid."""
        self.cdp.connect()
        self.cdp.send("Page.enable")
        if viewport:
            self.cdp.send("Emulation.setDeviceMetricsOverride", {
                "width": viewport.get("width", 1920),
                "height": viewport.get("height", 1080),
                "deviceScaleFactor": 1,
                "mobile": False,
            })

        frame_id = self.cdp.send("Page.getFrameTree")["frameTree"]["frame"]["id"]
        self.cdp.send("Page.setDocumentContent", {"frameId": frame_id, "html": html})
        self._wait_ready(timeout)

        result = self._evaluate(f"window.mountGrid({json.dumps(config)})", by_value=False)
        api_id = result.get("objectId")
        if not api_id:
            raise SurfaceError("Grid page did not return an API handle")
        self._api_id = api_id
        return self

    def _wait_ready(self, timeout: float):
        """Wait for the grid library and the mount hook to be defined."""
        end = time.time() + timeout
        while time.time() < end:
            if self._evaluate(_READY).get("value") is True:
                return
            time.sleep(0.2)
        raise SurfaceError(f"Grid page not ready within {timeout}s")

    def destroy(self):
        """Destroy the grid inside the page."""
        if self._api_id:
            self.call("destroy")

    def close(self):
        """Release the API handle and close the tab. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        try:
            if self._api_id and self.cdp.connected:
                self.cdp.send("Runtime.releaseObject", {"objectId": self._api_id}, timeout=5)
        except SurfaceError:
            pass
        finally:
            self._api_id = None
            self.cdp.close()
            if self._on_close:
                self._on_close(self.target_id)

    @property
    def closed(self) -> bool:
        return self._closed

    # ─── Remote calls ───────────────────────────────────────────────

    def _evaluate(self, expression: str, by_value: bool = True) -> Dict:
        resp = self.cdp.send("Runtime.evaluate", {
            "expression": expression,
            "awaitPromise": True,
            "returnByValue": by_value,
        })
        self._raise_for_exception(resp)
        return resp.get("result", {})

    def _call_on_api(self, declaration: str, *args) -> Any:
        if self._closed or not self._api_id:
            raise SurfaceError("Grid surface is not mounted")
        resp = self.cdp.send("Runtime.callFunctionOn", {
            "objectId": self._api_id,
            "functionDeclaration": declaration,
            "arguments": [{"value": arg} for arg in args],
            "awaitPromise": True,
            "returnByValue": True,
        })
        self._raise_for_exception(resp)
        return resp.get("result", {}).get("value")

    @staticmethod
    def _raise_for_exception(resp: Dict):
        details = resp.get("exceptionDetails")
        if details:
            exc = details.get("exception", {})
            text = exc.get("description") or details.get("text") or "JavaScript exception"
            raise SurfaceError(text.splitlines()[0])

    def call(self, method: str, args: Optional[List[Any]] = None) -> Any:
        """Invoke any named grid API method with positional arguments."""
        return self._call_on_api(_INVOKE, method, list(args or []))

    def set_row_data(self, rows: List[Dict[str, Any]]):
        """Replace all rows."""
        self._call_on_api(_SET_ROWS, rows)

    def column_state(self) -> List[Dict[str, Any]]:
        return self.call("getColumnState") or []

    def filter_model(self) -> Dict[str, Any]:
        return self.call("getFilterModel") or {}

    def selected_rows(self) -> List[Dict[str, Any]]:
        return self.call("getSelectedRows") or []

    def displayed_row_count(self) -> int:
        return self.call("getDisplayedRowCount") or 0

    def row_count(self) -> int:
        return self._call_on_api(_ROW_COUNT) or 0

    def displayed_rows(self) -> List[Dict[str, Any]]:
        """Row records after filtering and sorting, in display order."""
        return self._call_on_api(_DISPLAYED_ROWS) or []

    def data_as_csv(self) -> str:
        return self.call("getDataAsCsv") or ""
