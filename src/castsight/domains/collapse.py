"""
Attempt Collapsing for CastSight

The recorder sometimes emits duplicate near-simultaneous signals for one
human-meaningful action (e.g. retried network signals for a single kick).
Adjacent same-ability attempts are merged when either:
- their correlation ids match once the varying tail digit is masked, or
- the later attempt starts within the collapse window of the earlier one's
  end time, on either side of it (aggressive mode only)

Merging is adjacency-only: no transitive merging across non-adjacent
attempts.
"""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from castsight.core.constants import (
    CORRELATION_MASKED_TAIL_INDEX,
    CORRELATION_TAIL_LENGTH,
    KICK_COLLAPSE_WINDOW_SECONDS,
    Outcome,
)
from castsight.domains.attempts import Attempt

logger = logging.getLogger(__name__)

_CORRELATION_TAIL_RE = re.compile(rf"^(.*-)([0-9a-fA-F]{{{CORRELATION_TAIL_LENGTH}}})$")


@dataclass
class CollapseResult:
    """Collapsed attempts plus the mapping back from their sources."""

    attempts: list[Attempt] = field(default_factory=list)
    # input attempt id -> id of the collapsed attempt that absorbed it
    source_to_collapsed: dict[str, str] = field(default_factory=dict)

    @property
    def intent_attempts(self) -> list[Attempt]:
        return [attempt for attempt in self.attempts if attempt.has_intent_signal]

    @property
    def outcome_only_attempts(self) -> list[Attempt]:
        """Pure outcome echoes with no witnessed intent."""
        return [attempt for attempt in self.attempts if not attempt.has_intent_signal]


def correlation_collapse_key(correlation_id: str | None) -> str | None:
    """
    Fuzzy comparison key for a correlation id.

    "Cast-3-4170-2444-4-1766-ABCDE1234F" -> "Cast-3-4170-2444-4-1766-ABCD1234F"
    Ids without a 10 hex digit tail compare exactly.
    """
    if not correlation_id:
        return None
    match = _CORRELATION_TAIL_RE.match(correlation_id)
    if not match:
        return correlation_id
    prefix, tail = match.groups()
    masked = CORRELATION_MASKED_TAIL_INDEX
    return f"{prefix}{tail[:masked]}{tail[masked + 1:]}"


def has_intent_signal(attempt: Attempt) -> bool:
    """True if any member event is SENT or START."""
    return attempt.has_intent_signal


def merge_outcomes(left: Outcome | None, right: Outcome | None) -> Outcome | None:
    """SUCCEEDED if either side succeeded, else INTERRUPTED, else whichever is set."""
    if Outcome.SUCCEEDED in (left, right):
        return Outcome.SUCCEEDED
    if Outcome.INTERRUPTED in (left, right):
        return Outcome.INTERRUPTED
    return left if left is not None else right


def merge_attempts(active: Attempt, incoming: Attempt) -> Attempt:
    """Fold `incoming` into a new attempt based on `active`; inputs are untouched."""
    members = sorted(
        [*active.member_events, *incoming.member_events], key=lambda e: e.sort_key
    )
    return replace(
        active,
        start_time=min(active.start_time, incoming.start_time),
        end_time=max(active.end_time, incoming.end_time),
        window_ms=max(active.window_ms, incoming.window_ms),
        member_events=members,
        observed_outcomes=active.observed_outcomes | incoming.observed_outcomes,
        resolved_outcome=merge_outcomes(active.resolved_outcome, incoming.resolved_outcome),
        source_attempt_ids=active.source_attempt_ids + incoming.source_attempt_ids,
    )


def should_merge(
    active: Attempt,
    incoming: Attempt,
    window_seconds: float = KICK_COLLAPSE_WINDOW_SECONDS,
    aggressive: bool = True,
) -> bool:
    """Decide whether two adjacent attempts are one logical action."""
    if active.ability_id != incoming.ability_id:
        return False

    active_key = correlation_collapse_key(active.correlation_id)
    incoming_key = correlation_collapse_key(incoming.correlation_id)
    if active_key is not None and active_key == incoming_key:
        return True

    if not aggressive:
        return False
    # end_time includes the unresolved timeout horizon
    gap = abs(incoming.start_time - active.end_time)
    return gap <= window_seconds


def collapse_attempts(
    attempts: Iterable[Attempt],
    window_seconds: float = KICK_COLLAPSE_WINDOW_SECONDS,
    aggressive: bool = True,
) -> CollapseResult:
    """
    Collapse adjacent duplicate attempts.

    Args:
        attempts: Attempts to collapse (not mutated)
        window_seconds: Max gap for merging by time (aggressive mode)
        aggressive: Merge by time gap as well as by fuzzy correlation id

    Returns:
        CollapseResult ordered by (start_time, id)
    """
    ordered = sorted(attempts, key=lambda a: (a.start_time, a.id))
    result = CollapseResult()
    active: Attempt | None = None

    def flush(attempt: Attempt) -> None:
        result.attempts.append(attempt)
        for source_id in attempt.source_attempt_ids:
            result.source_to_collapsed[source_id] = attempt.id

    for attempt in ordered:
        if active is None:
            active = attempt
            continue
        if should_merge(active, attempt, window_seconds=window_seconds, aggressive=aggressive):
            active = merge_attempts(active, attempt)
            continue
        flush(active)
        active = attempt

    if active is not None:
        flush(active)

    merged = len(ordered) - len(result.attempts)
    if merged:
        logger.debug(f"Collapsed {len(ordered)} attempts into {len(result.attempts)}")
    return result
