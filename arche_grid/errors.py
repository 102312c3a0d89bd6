"""
Grid Errors

Every failure a caller can see is a GridError subclass carrying a stable
code, the grid id it concerns (if any) and the underlying cause.
"""

from typing import Any, Dict, Optional


class GridError(Exception):
    """Base class for all grid manager failures."""

    code = "GRID_ERROR"

    def __init__(self, message: str, grid_id: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.grid_id = grid_id
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "gridId": self.grid_id,
            "cause": str(self.cause) if self.cause is not None else None,
        }

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message


class ResourceInitError(GridError):
    """Browser engine could not be started."""
    code = "BROWSER_INIT_FAILED"


class NotInitializedError(GridError):
    """Operation attempted before initialize() succeeded."""
    code = "NOT_INITIALIZED"


class InvalidConfigError(GridError):
    code = "INVALID_CONFIG"


class GridCreationError(GridError):
    code = "GRID_CREATION_FAILED"


class NotFoundError(GridError):
    code = "GRID_NOT_FOUND"


class DestroyedError(GridError):
    code = "GRID_DESTROYED"


class UpdateFailedError(GridError):
    code = "UPDATE_DATA_FAILED"


class MethodExecutionError(GridError):
    code = "METHOD_EXECUTION_FAILED"


class StateReadError(GridError):
    code = "GET_STATE_FAILED"


class InvalidFormatError(GridError):
    code = "INVALID_EXPORT_FORMAT"


class ExportFailedError(GridError):
    code = "EXPORT_FAILED"


class SummaryGenerationError(GridError):
    code = "SUMMARY_GENERATION_FAILED"


class DestroyFailedError(GridError):
    code = "DESTROY_FAILED"


class SurfaceError(RuntimeError):
    """Raised by the DevTools layer when a tab call fails or times out.

    Never leaves the controller: it is always wrapped in a GridError.
    """
