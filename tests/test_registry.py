"""
Registry lifecycle against the fake host.
"""

import threading

import pytest

from arche_grid.errors import (
    DestroyFailedError,
    DestroyedError,
    GridCreationError,
    NotFoundError,
    NotInitializedError,
)
from arche_grid.models import GridConfig
from arche_grid.registry import GridRegistry

from conftest import COLUMNS, ROWS, FakeHost


@pytest.fixture
def registry(host):
    return GridRegistry(host)


def config():
    return GridConfig.parse(COLUMNS, ROWS)


def test_create_registers_mounted_instance(registry, host):
    instance = registry.create(config())
    assert instance.id.startswith("grid_")
    assert registry.resolve(instance.id) is instance
    assert registry.list() == [instance.id]
    assert host.surfaces[0].mounted


def test_unknown_and_destroyed_ids_are_distinct(registry):
    with pytest.raises(NotFoundError):
        registry.resolve("grid_missing")

    instance = registry.create(config())
    registry.destroy(instance.id)

    with pytest.raises(DestroyedError):
        registry.resolve(instance.id)
    with pytest.raises(DestroyedError):
        registry.destroy(instance.id)
    with pytest.raises(NotFoundError):
        registry.destroy("grid_missing")


def test_destroy_releases_surface_once(registry):
    instance = registry.create(config())
    registry.destroy(instance.id)
    with pytest.raises(DestroyedError):
        registry.destroy(instance.id)

    assert instance.destroyed
    assert instance.surface.destroy_calls == 1
    assert instance.surface.close_calls == 1
    assert instance.id not in registry
    assert len(registry) == 0


def test_failed_mount_registers_nothing(registry, host):
    host.fail_mount = True
    with pytest.raises(GridCreationError) as excinfo:
        registry.create(config())

    assert "not ready" in str(excinfo.value)
    assert registry.list() == []
    assert host.surfaces[0].closed


def test_uninitialized_host():
    registry = GridRegistry(FakeHost())
    with pytest.raises(NotInitializedError):
        registry.create(config())


def test_failing_destroy_still_removes(registry):
    instance = registry.create(config())
    instance.surface.fail.add("destroy")

    with pytest.raises(DestroyFailedError):
        registry.destroy(instance.id)

    assert instance.surface.closed
    assert registry.list() == []
    with pytest.raises(DestroyedError):
        registry.resolve(instance.id)


def test_concurrent_destroy_releases_once(registry):
    instance = registry.create(config())
    outcomes = []
    lock = threading.Lock()

    def worker():
        try:
            registry.destroy(instance.id)
            result = "ok"
        except DestroyedError:
            result = "destroyed"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["destroyed"] * 7 + ["ok"]
    assert instance.surface.close_calls == 1


def test_ids_never_reissued(registry):
    ids = set()
    for _ in range(20):
        instance = registry.create(config())
        ids.add(instance.id)
        registry.destroy(instance.id)
    assert len(ids) == 20
