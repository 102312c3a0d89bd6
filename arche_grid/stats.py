"""
Derived-Statistics Reader

Column profiling over a grid's current rows. Read-only: it borrows the
registry's instance and never mutates the grid.
"""

import math
import statistics
import sys
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional

from .errors import DestroyedError, GridError, NotFoundError, SummaryGenerationError
from .utils import iso_timestamp


TYPE_SAMPLE_SIZE = 10
TYPE_THRESHOLD = 0.8
SAMPLE_VALUES = 5


@dataclass
class ColumnStats:
    field: str
    type: str
    null_count: int
    unique_count: int
    sample_values: List[Any] = field(default_factory=list)
    # number columns
    min: Optional[float] = None
    max: Optional[float] = None
    mean: Optional[float] = None
    median: Optional[float] = None
    # text columns
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    avg_length: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "field": self.field,
            "type": self.type,
            "nullCount": self.null_count,
            "uniqueCount": self.unique_count,
            "sampleValues": self.sample_values,
        }
        optional = {
            "min": self.min,
            "max": self.max,
            "mean": self.mean,
            "median": self.median,
            "minLength": self.min_length,
            "maxLength": self.max_length,
            "avgLength": self.avg_length,
        }
        result.update({k: v for k, v in optional.items() if v is not None})
        return result


@dataclass
class GridSummary:
    grid_id: str
    total_rows: int
    total_columns: int
    column_stats: List[ColumnStats]
    data_types: Dict[str, int]
    completeness: float
    source: str = "live"
    generated_at: str = field(default_factory=iso_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gridId": self.grid_id,
            "totalRows": self.total_rows,
            "totalColumns": self.total_columns,
            "columnStats": [stat.to_dict() for stat in self.column_stats],
            "dataTypes": self.data_types,
            "completeness": self.completeness,
            "source": self.source,
            "generatedAt": self.generated_at,
        }


def is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, (int, float)) and not math.isnan(value)


def is_date(value: Any) -> bool:
    """datetime objects, or strings in ISO 8601 / RFC 2822 form."""
    if isinstance(value, datetime):
        return True
    if not isinstance(value, str) or not value.strip():
        return False
    text = value.strip()
    try:
        datetime.fromisoformat(text.replace("Z", "+00:00"))
        return True
    except ValueError:
        pass
    try:
        parsedate_to_datetime(text)
        return True
    except (TypeError, ValueError, IndexError):
        return False


def infer_type(values: List[Any]) -> str:
    """Classify a column from its first non-null values."""
    if not values:
        return "unknown"
    sample = values[:TYPE_SAMPLE_SIZE]
    total = len(sample)

    if sum(1 for v in sample if is_number(v)) / total >= TYPE_THRESHOLD:
        return "number"
    if sum(1 for v in sample if isinstance(v, bool)) / total >= TYPE_THRESHOLD:
        return "boolean"
    if sum(1 for v in sample if is_date(v)) / total >= TYPE_THRESHOLD:
        return "date"
    return "text"


def _distinct(values: List[Any]) -> List[Any]:
    """Distinct values in first-seen order; unhashable values compare by repr."""
    seen = set()
    out = []
    for value in values:
        key = (type(value).__name__, repr(value))
        if key not in seen:
            seen.add(key)
            out.append(value)
    return out


def analyze_column(rows: List[Dict[str, Any]], field_name: str) -> ColumnStats:
    values = [row.get(field_name) for row in rows]
    present = [v for v in values if v is not None and not (isinstance(v, float) and math.isnan(v))]
    unique = _distinct(present)

    stats = ColumnStats(
        field=field_name,
        type=infer_type(present),
        null_count=len(values) - len(present),
        unique_count=len(unique),
        sample_values=unique[:SAMPLE_VALUES],
    )

    if stats.type == "number":
        numbers = [v for v in present if is_number(v)]
        if numbers:
            stats.min = min(numbers)
            stats.max = max(numbers)
            stats.mean = statistics.fmean(numbers)
            stats.median = statistics.median(numbers)

    elif stats.type == "text":
        lengths = [len(v) for v in present if isinstance(v, str)]
        if lengths:
            stats.min_length = min(lengths)
            stats.max_length = max(lengths)
            stats.avg_length = sum(lengths) / len(lengths)

    return stats


def summarize_rows(grid_id: str, column_defs: List[Dict[str, Any]],
                   rows: List[Dict[str, Any]], source: str = "live") -> GridSummary:
    """Profile every declared column over a row snapshot."""
    column_stats = [analyze_column(rows, col["field"]) for col in column_defs]

    data_types: Dict[str, int] = {}
    for stat in column_stats:
        data_types[stat.type] = data_types.get(stat.type, 0) + 1

    total_cells = len(rows) * len(column_stats)
    null_cells = sum(stat.null_count for stat in column_stats)
    completeness = (1 - null_cells / total_cells) * 100 if total_cells else 0.0

    return GridSummary(
        grid_id=grid_id,
        total_rows=len(rows),
        total_columns=len(column_stats),
        column_stats=column_stats,
        data_types=data_types,
        completeness=round(completeness, 2),
        source=source,
    )


class StatisticsReader:
    """Summaries of live grids, read through the registry."""

    def __init__(self, registry):
        self.registry = registry

    def current_rows(self, instance) -> tuple:
        """
        Best available rows: the live post-filter view, else the stored rows.

        Returns (rows, source).
        """
        try:
            return instance.surface.displayed_rows(), "live"
        except Exception as e:
            print(f"[!] Live rows unavailable for grid {instance.id}, using stored data: {e}",
                  file=sys.stderr)
            return list(instance.config.row_data), "stored"

    def summarize(self, grid_id: str) -> GridSummary:
        instance = self.registry.resolve(grid_id)
        try:
            with instance.lock:
                if instance.destroyed:
                    raise DestroyedError(f"Grid with ID {grid_id} has been destroyed", grid_id)
                rows, source = self.current_rows(instance)
                column_defs = list(instance.config.column_defs)
            return summarize_rows(grid_id, column_defs, rows, source)
        except (NotFoundError, DestroyedError):
            raise
        except GridError as e:
            raise SummaryGenerationError("Failed to generate grid summary", grid_id, e.cause or e) from e
        except Exception as e:
            raise SummaryGenerationError("Failed to generate grid summary", grid_id, e) from e
