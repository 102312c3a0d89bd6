"""
Resource Host

Owns the one Chrome process that all grid tabs live in. Every grid surface
is created here, and the host is the root of all their lifetimes.
"""

import subprocess
import sys
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import requests

from .cdp import CDP
from .chrome import Chrome
from .errors import NotInitializedError, ResourceInitError, SurfaceError
from .models import GridConfig
from .surface import GridSurface


GRID_PAGE = Path(__file__).parent / "static" / "grid.html"


@dataclass
class HostOptions:
    """Engine configuration."""
    headless: bool = True
    port: int = Chrome.DEFAULT_PORT
    chrome_path: Optional[str] = None
    user_data_dir: Optional[Path] = None
    viewport: Dict[str, int] = field(default_factory=lambda: {"width": 1920, "height": 1080})
    ready_timeout: float = 10.0
    page_path: Path = GRID_PAGE


class ResourceHost:
    """
    Browser engine lifetime and tab factory.

    initialize() starts Chrome once; open_surface() hands out one new tab per
    call and is safe to call from many threads; close() releases the engine.
    """

    def __init__(self, options: Optional[HostOptions] = None):
        self.options = options or HostOptions()
        self._chrome: Optional[Chrome] = None
        self._html: Optional[str] = None
        self._lock = threading.Lock()
        self._tab_lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self._chrome is not None

    def initialize(self) -> "ResourceHost":
        """Start the engine. Repeated calls after success are no-ops."""
        with self._lock:
            if self._chrome is not None:
                return self
            try:
                html = Path(self.options.page_path).read_text(encoding="utf-8")
                chrome = Chrome(
                    port=self.options.port,
                    headless=self.options.headless,
                    user_data_dir=self.options.user_data_dir,
                    chrome_path=self.options.chrome_path,
                )
                chrome.start(timeout=self.options.ready_timeout)
            except (FileNotFoundError, TimeoutError, OSError, subprocess.SubprocessError) as e:
                raise ResourceInitError("Failed to initialize browser", cause=e) from e

            self._html = html
            self._chrome = chrome
            mode = "headless" if chrome.headless else "visible"
            print(f"[*] Chrome started on port {chrome.port} ({mode})", file=sys.stderr)
        return self

    def open_surface(self) -> GridSurface:
        """Open a fresh tab and connect to it."""
        chrome = self._chrome
        if chrome is None:
            raise NotInitializedError("Resource host not initialized. Call initialize() first.")

        # DevTools target creation is serialized across callers
        with self._tab_lock:
            try:
                resp = requests.put(f"http://{chrome.address}/json/new?about:blank", timeout=10)
                resp.raise_for_status()
                target = resp.json()
            except (requests.RequestException, ValueError) as e:
                raise SurfaceError(f"Failed to open tab: {e}") from e

        cdp = CDP(target["webSocketDebuggerUrl"], timeout=max(self.options.ready_timeout, 30))
        return GridSurface(cdp, target["id"], on_close=self._close_tab)

    def mount(self, surface: GridSurface, config: GridConfig) -> GridSurface:
        """Apply a configuration to a freshly opened surface."""
        return surface.mount(
            config.to_dict(),
            self._html,
            viewport=self.options.viewport,
            timeout=self.options.ready_timeout,
        )

    def _close_tab(self, target_id: str):
        chrome = self._chrome
        if chrome is None or not chrome.running:
            return
        try:
            requests.get(f"http://{chrome.address}/json/close/{target_id}", timeout=5)
        except requests.RequestException as e:
            print(f"[!] Failed to close tab {target_id}: {e}", file=sys.stderr)

    def close(self):
        """Release the engine. Safe to call when never initialized."""
        with self._lock:
            chrome, self._chrome = self._chrome, None
            self._html = None
        if chrome is not None:
            chrome.stop()
            print("[*] Chrome stopped", file=sys.stderr)

    def status(self) -> Dict[str, Any]:
        chrome = self._chrome
        if chrome is None:
            return {"initialized": False}
        return {"initialized": True, "port": chrome.port, **chrome.status()}
