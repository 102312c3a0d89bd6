"""
ResourceHost against a stubbed Chrome process and DevTools HTTP endpoint.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
import requests

from arche_grid import host as host_mod
from arche_grid.errors import NotInitializedError, SurfaceError
from arche_grid.host import HostOptions, ResourceHost
from arche_grid.models import GridConfig


class StubChrome:
    starts = 0

    def __init__(self, port, headless, user_data_dir, chrome_path):
        self.port = port
        self.headless = headless
        self.running = False

    @property
    def address(self):
        return f"127.0.0.1:{self.port}"

    def start(self, timeout=10.0):
        StubChrome.starts += 1
        self.running = True
        return self

    def stop(self):
        self.running = False

    def status(self):
        return {"running": self.running, "pid": 4242}


class StubResponse:
    def __init__(self, payload):
        self.payload = payload

    def raise_for_status(self):
        pass

    def json(self):
        return self.payload


class StubDevTools:
    """/json/new and /json/close; records overlap between tab creations."""

    RequestException = requests.RequestException

    def __init__(self):
        self.created = 0
        self.active = 0
        self.max_active = 0
        self.closed = []
        self.fail = False
        self._lock = threading.Lock()

    def put(self, url, timeout=None):
        if self.fail:
            raise requests.ConnectionError("DevTools gone")
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.created += 1
            n = self.created
        time.sleep(0.01)
        with self._lock:
            self.active -= 1
        return StubResponse({"id": f"T{n}",
                             "webSocketDebuggerUrl": f"ws://127.0.0.1:9223/devtools/page/T{n}"})

    def get(self, url, timeout=None):
        self.closed.append(url)
        return StubResponse({})


@pytest.fixture
def devtools(monkeypatch):
    StubChrome.starts = 0
    stub = StubDevTools()
    monkeypatch.setattr(host_mod, "Chrome", StubChrome)
    monkeypatch.setattr(host_mod, "requests", stub)
    return stub


@pytest.fixture
def engine(devtools):
    host = ResourceHost(HostOptions(chrome_path="/opt/chrome")).initialize()
    yield host
    host.close()


def test_initialize_is_idempotent(engine):
    engine.initialize()
    engine.initialize()
    assert StubChrome.starts == 1
    assert engine.status() == {"initialized": True, "port": 9223, "running": True, "pid": 4242}


def test_open_surface_requires_initialize(devtools):
    with pytest.raises(NotInitializedError):
        ResourceHost(HostOptions(chrome_path="/opt/chrome")).open_surface()


def test_parallel_tab_creation(engine, devtools):
    with ThreadPoolExecutor(max_workers=8) as pool:
        surfaces = list(pool.map(lambda _: engine.open_surface(), range(16)))

    assert len({s.target_id for s in surfaces}) == 16
    assert len({s.cdp.ws_url for s in surfaces}) == 16
    assert devtools.max_active == 1


def test_tab_creation_failure(engine, devtools):
    devtools.fail = True
    with pytest.raises(SurfaceError, match="Failed to open tab"):
        engine.open_surface()


def test_closing_surface_closes_tab(engine, devtools):
    surface = engine.open_surface()
    surface.close()
    surface.close()
    assert devtools.closed == [f"http://127.0.0.1:9223/json/close/{surface.target_id}"]


def test_mount_passes_page_and_viewport(engine):
    received = {}

    class RecordingSurface:
        def mount(self, config, html, viewport=None, timeout=None):
            received.update(config=config, html=html, viewport=viewport, timeout=timeout)
            return self

    config = GridConfig.parse([{"field": "a"}], [{"a": 1}])
    engine.mount(RecordingSurface(), config)

    assert received["config"] == config.to_dict()
    assert "window.mountGrid" in received["html"]
    assert received["viewport"] == {"width": 1920, "height": 1080}
    assert received["timeout"] == 10.0


def test_close_releases_engine(engine, devtools):
    surface = engine.open_surface()
    engine.close()
    assert not engine.initialized
    assert engine.status() == {"initialized": False}
    # tab close after the engine is gone is a no-op
    surface.close()
    assert devtools.closed == []
    engine.close()
