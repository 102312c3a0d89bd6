"""
Grid Registry

Maps grid ids to live instances and is the only authority on whether a grid
exists. Structural changes happen under one lock; tab round-trips never run
while holding it.
"""

import sys
import threading
from typing import Dict, List, Set

from .errors import (
    DestroyFailedError,
    DestroyedError,
    GridCreationError,
    NotFoundError,
    NotInitializedError,
    SurfaceError,
)
from .models import GridConfig, GridInstance
from .utils import new_grid_id


class GridRegistry:
    """Live grid instances keyed by id."""

    def __init__(self, host):
        self.host = host
        self._grids: Dict[str, GridInstance] = {}
        self._destroyed: Set[str] = set()
        self._issued: Set[str] = set()
        self._lock = threading.Lock()

    def _mint_id(self) -> str:
        with self._lock:
            grid_id = new_grid_id()
            while grid_id in self._issued:
                grid_id = new_grid_id()
            self._issued.add(grid_id)
        return grid_id

    def create(self, config: GridConfig) -> GridInstance:
        """
        Open a surface, mount the config on it and register the instance.

        The config must already be validated. If any setup step fails the
        surface is closed and nothing is registered.
        """
        grid_id = self._mint_id()
        surface = None
        try:
            surface = self.host.open_surface()
            self.host.mount(surface, config)
        except NotInitializedError:
            raise
        except Exception as e:
            if surface is not None:
                self._release(grid_id, surface)
            raise GridCreationError("Failed to create grid", grid_id, e) from e

        instance = GridInstance(id=grid_id, surface=surface, config=config)
        with self._lock:
            self._grids[grid_id] = instance
        return instance

    def resolve(self, grid_id: str) -> GridInstance:
        """Live instance for an id, or NotFoundError / DestroyedError."""
        with self._lock:
            instance = self._grids.get(grid_id)
            if instance is None:
                if grid_id in self._destroyed:
                    raise DestroyedError(f"Grid with ID {grid_id} has been destroyed", grid_id)
                raise NotFoundError(f"Grid with ID {grid_id} not found", grid_id)
        if instance.destroyed:
            raise DestroyedError(f"Grid with ID {grid_id} has been destroyed", grid_id)
        return instance

    def list(self) -> List[str]:
        """Ids of live grids in creation order."""
        with self._lock:
            return [gid for gid, inst in self._grids.items() if not inst.destroyed]

    def __contains__(self, grid_id: str) -> bool:
        with self._lock:
            return grid_id in self._grids

    def __len__(self) -> int:
        with self._lock:
            return len(self._grids)

    def destroy(self, grid_id: str) -> GridInstance:
        """
        Tear down a grid and remove it.

        The record is unregistered first so a concurrent destroy sees
        DestroyedError instead of releasing the surface twice. A failing
        destroy call inside the page still closes the tab and is reported as
        DestroyFailedError afterwards.
        """
        with self._lock:
            instance = self._grids.get(grid_id)
            if instance is None:
                if grid_id in self._destroyed:
                    raise DestroyedError(f"Grid with ID {grid_id} has been destroyed", grid_id)
                raise NotFoundError(f"Grid with ID {grid_id} not found", grid_id)
            del self._grids[grid_id]
            self._destroyed.add(grid_id)

        failure = None
        # Wait for in-flight operations on this grid
        with instance.lock:
            instance.destroyed = True
            try:
                instance.surface.destroy()
            except Exception as e:
                failure = e
            finally:
                self._release(grid_id, instance.surface)

        if failure is not None:
            raise DestroyFailedError("Failed to destroy grid", grid_id, failure) from failure
        return instance

    def _release(self, grid_id: str, surface):
        try:
            surface.close()
        except SurfaceError as e:
            print(f"[!] Failed to close surface for grid {grid_id}: {e}", file=sys.stderr)
