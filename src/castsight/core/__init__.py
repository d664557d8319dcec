"""
CastSight Core - Foundation modules for telemetry correlation.

This module contains the fundamental components:
- constants: Event kinds, outcomes, and correlation windows
- config: Application configuration management
- utils: Numeric coercion and timing helpers
- schemas: Raw payload shapes handed over by the match loader
"""

from castsight.core.constants import (
    CORRELATION_WINDOW_MS,
    FALLBACK_WINDOW_MS,
    INTERRUPT_TRACKING_VERSION,
    KICK_COLLAPSE_WINDOW_SECONDS,
    UNRESOLVED_TIMEOUT_MS,
    EventKind,
    GroupingMode,
    MetricType,
    Outcome,
)
from castsight.core.schemas import (
    CanonicalEventRecord,
    CastRecord,
    MatchPlayerRecord,
    MatchRecord,
    SpellMetaRecord,
    SpellTotalsRecord,
    TimelineEventV2,
)

__all__ = [
    # Enums
    "EventKind",
    "GroupingMode",
    "MetricType",
    "Outcome",
    # Constants
    "CORRELATION_WINDOW_MS",
    "FALLBACK_WINDOW_MS",
    "INTERRUPT_TRACKING_VERSION",
    "KICK_COLLAPSE_WINDOW_SECONDS",
    "UNRESOLVED_TIMEOUT_MS",
    # Schemas
    "CanonicalEventRecord",
    "CastRecord",
    "MatchPlayerRecord",
    "MatchRecord",
    "SpellMetaRecord",
    "SpellTotalsRecord",
    "TimelineEventV2",
]
