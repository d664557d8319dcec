"""
Export Functionality for CastSight

Provides export formats for analysis results:
- JSON: the full orchestrator result, with export metadata
- CSV: ranked spell rows or attempt listings
- pandas DataFrames for notebook use and CSV writing
"""

import json
import logging
from collections.abc import Iterable
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from castsight import __version__
from castsight.domains.attempts import Attempt
from castsight.domains.spell_metrics import SpellMetricRow

logger = logging.getLogger(__name__)

ATTEMPT_COLUMNS = [
    "id",
    "ability_id",
    "correlation_id",
    "grouping",
    "start_time",
    "end_time",
    "observed_end_time",
    "window_ms",
    "event_count",
    "has_intent",
    "resolved_outcome",
    "observed_outcomes",
    "source_attempts",
]

SPELL_ROW_COLUMNS = [
    "ability_id",
    "display_name",
    "value",
    "share_pct",
    "total_attempts",
    "succeeded",
    "failed",
    "interrupted",
    "avg_per_cast",
]


# ============================================================================
# Data Conversion Utilities
# ============================================================================


def dataclass_to_dict(obj: Any) -> Any:
    """Convert a dataclass (or nested dataclasses) to JSON-friendly values."""
    if is_dataclass(obj) and not isinstance(obj, type):
        return {key: dataclass_to_dict(value) for key, value in asdict(obj).items()}
    elif isinstance(obj, dict):
        return {k: dataclass_to_dict(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [dataclass_to_dict(item) for item in obj]
    elif isinstance(obj, (set, frozenset)):
        return sorted(dataclass_to_dict(item) for item in obj)
    elif isinstance(obj, Enum):
        return obj.name if isinstance(obj.value, int) else obj.value
    elif isinstance(obj, Path):
        return str(obj)
    else:
        return obj


def attempts_to_dataframe(attempts: Iterable[Attempt]) -> pd.DataFrame:
    """One row per attempt, ordered as given."""
    records = [
        {
            "id": attempt.id,
            "ability_id": attempt.ability_id,
            "correlation_id": attempt.correlation_id,
            "grouping": attempt.grouping.value,
            "start_time": attempt.start_time,
            "end_time": attempt.end_time,
            "observed_end_time": attempt.observed_end_time,
            "window_ms": attempt.window_ms,
            "event_count": len(attempt.member_events),
            "has_intent": attempt.has_intent_signal,
            "resolved_outcome": (
                attempt.resolved_outcome.name if attempt.resolved_outcome else None
            ),
            "observed_outcomes": ";".join(
                sorted(outcome.name for outcome in attempt.observed_outcomes)
            ),
            "source_attempts": len(attempt.source_attempt_ids),
        }
        for attempt in attempts
    ]
    return pd.DataFrame.from_records(records, columns=ATTEMPT_COLUMNS)


def spell_rows_to_dataframe(rows: Iterable[SpellMetricRow | dict]) -> pd.DataFrame:
    """Ranked spell rows as a DataFrame; a missing per-cast average becomes NaN."""
    records = [row if isinstance(row, dict) else asdict(row) for row in rows]
    df = pd.DataFrame.from_records(
        [{column: record.get(column) for column in SPELL_ROW_COLUMNS} for record in records],
        columns=SPELL_ROW_COLUMNS,
    )
    df["avg_per_cast"] = pd.to_numeric(df["avg_per_cast"], errors="coerce").astype(np.float64)
    return df


# ============================================================================
# JSON Export
# ============================================================================


def export_to_json(
    data: dict[str, Any],
    output_path: Path | None = None,
    indent: int = 2,
    include_metadata: bool = True,
) -> str:
    """
    Export analysis results to JSON format.

    Args:
        data: Analysis results dictionary
        output_path: Optional path to write the file
        indent: JSON indentation level
        include_metadata: Whether to include export metadata

    Returns:
        JSON string
    """
    export_data = dataclass_to_dict(data)

    if include_metadata:
        export_data = {
            "_metadata": {
                "exported_at": datetime.now().isoformat(),
                "format": "castsight_json",
                "version": __version__,
            },
            **export_data,
        }

    json_str = json.dumps(export_data, indent=indent, default=str)

    if output_path:
        Path(output_path).write_text(json_str, encoding="utf-8")
        logger.info(f"Exported JSON to: {output_path}")

    return json_str


# ============================================================================
# CSV Export
# ============================================================================


def export_rows_to_csv(
    rows: pd.DataFrame | Iterable[SpellMetricRow | dict],
    output_path: Path | None = None,
    delimiter: str = ",",
    include_header: bool = True,
) -> str:
    """
    Export ranked rows (or any DataFrame) to CSV format.

    Args:
        rows: A DataFrame, or spell rows to convert with spell_rows_to_dataframe
        output_path: Optional path to write the file
        delimiter: CSV delimiter character
        include_header: Whether to include column headers

    Returns:
        CSV string ("" when there are no rows)
    """
    df = rows if isinstance(rows, pd.DataFrame) else spell_rows_to_dataframe(rows)
    if df.empty:
        return ""

    csv_str = df.to_csv(index=False, sep=delimiter, header=include_header)

    if output_path:
        Path(output_path).write_text(csv_str, encoding="utf-8")
        logger.info(f"Exported {len(df)} rows to CSV: {output_path}")

    return csv_str
