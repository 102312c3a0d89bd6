"""
Tool envelopes, error payloads and shared helpers.
"""

import json
import re

from arche_grid.errors import NotFoundError, SurfaceError, UpdateFailedError
from arche_grid.response import Response, failure, ok
from arche_grid.utils import iso_timestamp, new_grid_id, truncate


def test_ok_envelope():
    payload = json.loads(ok("done", {"gridId": "grid_1"}))
    assert payload == {"success": True, "message": "done", "data": {"gridId": "grid_1"}}
    assert json.loads(ok("empty")) == {"success": True, "message": "empty"}


def test_grid_error_envelope():
    error = UpdateFailedError("Failed to update grid data", "grid_1", SurfaceError("tab crashed"))
    payload = json.loads(failure("Failed to update", error))
    assert payload["success"] is False
    assert payload["error"] == "Failed to update grid data"
    assert payload["data"] == {"code": "UPDATE_DATA_FAILED", "gridId": "grid_1", "cause": "tab crashed"}


def test_plain_exception_envelope():
    payload = Response("Failed").set_error(ValueError()).to_dict()
    assert payload["error"] == "ValueError"
    assert Response("x").set_error(KeyError("k")).to_dict()["success"] is False


def test_error_to_dict_and_str():
    error = NotFoundError("Grid with ID grid_9 not found", "grid_9")
    assert error.to_dict() == {"code": "GRID_NOT_FOUND", "message": "Grid with ID grid_9 not found",
                               "gridId": "grid_9", "cause": None}
    wrapped = UpdateFailedError("Failed", "grid_9", OSError("socket"))
    assert str(wrapped) == "Failed: socket"
    assert isinstance(wrapped.__cause__, OSError)


def test_utils():
    assert re.fullmatch(r"grid_\d+_[0-9a-f]{12}", new_grid_id())
    assert new_grid_id() != new_grid_id()
    assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{3}Z", iso_timestamp())
    assert truncate("abcdef", 5) == "ab..."
    assert truncate(None) == ""
