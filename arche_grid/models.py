"""
Grid data model.

Column descriptors and row records stay plain dicts so that any extra grid
property passes through untouched; the dataclasses here add validation,
timestamps and the derived state shape returned to callers.
"""

import copy
import numbers
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .errors import InvalidConfigError
from .utils import iso_timestamp, utcnow


# Known column keys and the types they must carry (None is always allowed)
COLUMN_FIELD_TYPES = {
    "headerName": (str,),
    "width": (numbers.Real,),
    "minWidth": (numbers.Real,),
    "maxWidth": (numbers.Real,),
    "sortable": (bool,),
    "filter": (bool, str),
    "resizable": (bool,),
    "type": (str, list),
}

WIDTH_KEYS = ("width", "minWidth", "maxWidth")


def validate_column_defs(column_defs: Any) -> List[Dict[str, Any]]:
    """Check the ordered column list; returns a deep copy."""
    if not isinstance(column_defs, list) or not column_defs:
        raise InvalidConfigError("columnDefs must be a non-empty list")

    seen = set()
    for idx, col in enumerate(column_defs):
        if not isinstance(col, dict):
            raise InvalidConfigError(f"columnDefs[{idx}] must be an object")
        name = col.get("field")
        if not isinstance(name, str) or not name:
            raise InvalidConfigError(f"columnDefs[{idx}].field must be a non-empty string")
        if name in seen:
            raise InvalidConfigError(f"Duplicate column field: {name}")
        seen.add(name)

        for key, types in COLUMN_FIELD_TYPES.items():
            value = col.get(key)
            if value is None:
                continue
            # bool is an int subclass; widths must be real numbers only
            if key in WIDTH_KEYS and isinstance(value, bool):
                raise InvalidConfigError(f"columnDefs[{idx}].{key} must be a number")
            if not isinstance(value, types):
                raise InvalidConfigError(
                    f"columnDefs[{idx}].{key} has invalid type {type(value).__name__}"
                )
            if key in WIDTH_KEYS and value <= 0:
                raise InvalidConfigError(f"columnDefs[{idx}].{key} must be positive")

        min_w, max_w = col.get("minWidth"), col.get("maxWidth")
        if min_w is not None and max_w is not None and min_w > max_w:
            raise InvalidConfigError(f"columnDefs[{idx}] has minWidth > maxWidth")

    return copy.deepcopy(column_defs)


def validate_row_data(row_data: Any) -> List[Dict[str, Any]]:
    """Rows are loosely typed records: any list of objects is accepted."""
    if not isinstance(row_data, list):
        raise InvalidConfigError("rowData must be a list")
    for idx, row in enumerate(row_data):
        if not isinstance(row, dict):
            raise InvalidConfigError(f"rowData[{idx}] must be an object")
    return copy.deepcopy(row_data)


@dataclass
class GridConfig:
    """Validated grid configuration."""
    column_defs: List[Dict[str, Any]]
    row_data: List[Dict[str, Any]] = field(default_factory=list)
    grid_options: Optional[Dict[str, Any]] = None

    @classmethod
    def parse(cls, column_defs: Any, row_data: Any,
              grid_options: Any = None) -> "GridConfig":
        """Validate raw caller input. Raises InvalidConfigError."""
        if grid_options is not None and not isinstance(grid_options, dict):
            raise InvalidConfigError("gridOptions must be an object")
        return cls(
            column_defs=validate_column_defs(column_defs),
            row_data=validate_row_data(row_data),
            grid_options=copy.deepcopy(grid_options),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GridConfig":
        if not isinstance(data, dict):
            raise InvalidConfigError("Grid configuration must be an object")
        return cls.parse(data.get("columnDefs"), data.get("rowData", []),
                         data.get("gridOptions"))

    @property
    def fields(self) -> List[str]:
        return [col["field"] for col in self.column_defs]

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "columnDefs": copy.deepcopy(self.column_defs),
            "rowData": copy.deepcopy(self.row_data),
        }
        if self.grid_options is not None:
            result["gridOptions"] = copy.deepcopy(self.grid_options)
        return result


@dataclass
class GridInstance:
    """
    One live browser-backed grid.

    Owned by the registry. The surface handle is released exactly once, by
    the registry's destroy path.
    """
    id: str
    surface: Any
    config: GridConfig
    created_at: datetime = field(default_factory=utcnow)
    last_updated: datetime = field(default_factory=utcnow)
    destroyed: bool = False
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def touch(self):
        self.last_updated = utcnow()

    def info(self) -> Dict[str, Any]:
        return {
            "gridId": self.id,
            "config": self.config.to_dict(),
            "createdAt": iso_timestamp(self.created_at),
            "lastUpdated": iso_timestamp(self.last_updated),
            "isDestroyed": self.destroyed,
        }


def derive_sort_state(column_state: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Active sort order from a column layout.

    Keeps columns whose sort is set, ordered by sortIndex ascending (missing
    index counts as 0); sorted() is stable so ties keep layout order.
    """
    active = [
        {"colId": col.get("colId"), "sort": col.get("sort"), "sortIndex": col.get("sortIndex")}
        for col in column_state or []
        if col.get("sort") is not None
    ]
    return sorted(active, key=lambda entry: entry["sortIndex"] or 0)


@dataclass
class GridState:
    """Fresh read of a grid's live state. Never cached."""
    column_state: List[Dict[str, Any]] = field(default_factory=list)
    filter_state: Dict[str, Any] = field(default_factory=dict)
    sort_state: List[Dict[str, Any]] = field(default_factory=list)
    selected_rows: List[Dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    displayed_row_count: int = 0

    @property
    def has_filters(self) -> bool:
        return bool(self.filter_state)

    @property
    def has_sorting(self) -> bool:
        return bool(self.sort_state)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columnState": self.column_state,
            "filterState": self.filter_state,
            "sortState": self.sort_state,
            "selectedRows": self.selected_rows,
            "rowCount": self.row_count,
            "displayedRowCount": self.displayed_row_count,
            "hasFilters": self.has_filters,
            "hasSorting": self.has_sorting,
        }


@dataclass
class ExportResult:
    """Serialized grid export."""
    data: str
    format: str
    filename: str
    encoding: str = "utf-8"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "format": self.format,
            "filename": self.filename,
            "encoding": self.encoding,
        }
