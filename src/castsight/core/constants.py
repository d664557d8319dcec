"""
CastSight Combat Telemetry - Constants

Defines event kinds, outcomes, grouping modes and the empirically tuned
windows used when correlating per-match ability events into attempts.
"""

from enum import Enum, StrEnum


class EventKind(StrEnum):
    """
    Ability event kinds emitted by the in-game telemetry recorder.

    Values match the recorder's upper-case spelling.
    """

    SENT = "SENT"  # Cast request sent to the server
    START = "START"  # Cast bar started
    STOP = "STOP"  # Cast bar stopped (timeline only)
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    FAILED_QUIET = "FAILED_QUIET"  # Failed without an error message (e.g. immune)
    INTERRUPTED = "INTERRUPTED"
    CHANNEL_START = "CHANNEL_START"  # timeline only
    CHANNEL_STOP = "CHANNEL_STOP"  # timeline only


class Outcome(int, Enum):
    """
    Resolved attempt outcome.

    Higher value wins when an attempt observes conflicting outcomes,
    regardless of arrival order.
    """

    FAILED = 1
    INTERRUPTED = 2
    SUCCEEDED = 3


class GroupingMode(StrEnum):
    """How the events of an attempt were grouped together."""

    BY_CORRELATION_ID = "by_correlation_id"
    BY_FALLBACK_WINDOW = "by_fallback_window"


class MetricType(StrEnum):
    """Metric selector for spell/actor aggregation."""

    DAMAGE = "damage"
    HEALING = "healing"
    INTERRUPTS = "interrupts"


# Kinds that take part in intent accounting
INTENT_EVENT_KINDS = frozenset(
    {
        EventKind.SENT,
        EventKind.START,
        EventKind.SUCCEEDED,
        EventKind.FAILED,
        EventKind.FAILED_QUIET,
        EventKind.INTERRUPTED,
    }
)

# Kinds retained only for timeline visualization
TIMELINE_ONLY_EVENT_KINDS = frozenset(
    {EventKind.STOP, EventKind.CHANNEL_START, EventKind.CHANNEL_STOP}
)

# Kinds that witness an attempted action (as opposed to an outcome echo)
INTENT_SIGNAL_KINDS = frozenset({EventKind.SENT, EventKind.START})

OUTCOME_BY_EVENT_KIND = {
    EventKind.SUCCEEDED: Outcome.SUCCEEDED,
    EventKind.FAILED: Outcome.FAILED,
    EventKind.FAILED_QUIET: Outcome.FAILED,
    EventKind.INTERRUPTED: Outcome.INTERRUPTED,
}

# Grouping windows. Empirically chosen; overridable through ResolverConfig.
CORRELATION_WINDOW_MS = 800.0
FALLBACK_WINDOW_MS = 250.0

# Unresolved attempts are drawn out to this horizon on the timeline
UNRESOLVED_TIMEOUT_MS = 1500.0

# Max gap between same-ability kick attempts that are treated as one action
KICK_COLLAPSE_WINDOW_SECONDS = 0.35

# Correlation ids end in a 10 hex digit tail; the 5th digit varies between
# retried signals of one cast.
CORRELATION_TAIL_LENGTH = 10
CORRELATION_MASKED_TAIL_INDEX = 4

# First telemetry schema version that tracks interrupt intent events
INTERRUPT_TRACKING_VERSION = 3

# Source bucket used when totals are not keyed by actor
UNKNOWN_SOURCE_KEY = "unknown"

# Spell metadata cache layout version
SPELL_META_SCHEMA_VERSION = 2
