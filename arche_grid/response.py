"""
Tool Response Envelope

Every MCP tool answers with the same JSON shape:

    {"success": true,  "message": "...", "data": {...}}
    {"success": false, "message": "...", "error": "...",
     "data": {"code": ..., "gridId": ..., "cause": ...}}
"""

import json
from typing import Any, Dict, Optional

from .errors import GridError


class Response:
    """Builder for tool results."""

    def __init__(self, message: str = ""):
        self._message = message
        self._data: Dict[str, Any] = {}
        self._error: Optional[BaseException] = None

    def update(self, values: Dict[str, Any]) -> "Response":
        self._data.update(values)
        return self

    def set_error(self, error: BaseException) -> "Response":
        self._error = error
        return self

    def to_dict(self) -> Dict[str, Any]:
        if self._error is not None:
            if isinstance(self._error, GridError):
                details = self._error.to_dict()
                error_text = details.pop("message")
            else:
                details = {"message": str(self._error)}
                error_text = str(self._error) or type(self._error).__name__
            return {
                "success": False,
                "message": self._message,
                "error": error_text,
                "data": details,
            }

        result: Dict[str, Any] = {"success": True, "message": self._message}
        if self._data:
            result["data"] = self._data
        return result

    def format(self) -> str:
        """Pretty JSON text for the tool result."""
        return json.dumps(self.to_dict(), indent=2, default=str)


def ok(message: str, data: Optional[Dict[str, Any]] = None) -> str:
    return Response(message).update(data or {}).format()


def failure(message: str, error: BaseException) -> str:
    return Response(message).set_error(error).format()
