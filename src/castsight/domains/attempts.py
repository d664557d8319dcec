"""
Intent Attempt Resolution for CastSight

Groups canonical ability events into attempts, one per logical cast:
- By correlation id (castGUID) when the event carries one (800ms window)
- By ability id otherwise (250ms fallback window)

Each attempt's outcome is resolved by fixed priority
(SUCCEEDED > INTERRUPTED > FAILED), never by arrival order. Attempts that
never see an outcome are marked unresolved and drawn out to a timeout horizon.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from castsight.core.config import ResolverConfig
from castsight.core.constants import GroupingMode, Outcome
from castsight.domains.events import CanonicalEvent, NormalizedTimeline, normalize_events

logger = logging.getLogger(__name__)


@dataclass
class Attempt:
    """A correlated group of events believed to be one action invocation."""

    id: str
    ability_id: int
    correlation_id: str | None
    start_time: float
    end_time: float
    grouping: GroupingMode
    window_ms: float
    member_events: list[CanonicalEvent] = field(default_factory=list)
    observed_outcomes: set[Outcome] = field(default_factory=set)
    resolved_outcome: Outcome | None = None
    # Resolver attempts folded into this one by the collapsing step
    source_attempt_ids: tuple[str, ...] = ()

    def __post_init__(self):
        if not self.source_attempt_ids:
            self.source_attempt_ids = (self.id,)

    @property
    def is_resolved(self) -> bool:
        return self.resolved_outcome is not None

    @property
    def observed_end_time(self) -> float:
        """Latest member event time, ignoring the unresolved timeout horizon."""
        if not self.member_events:
            return self.start_time
        return max(event.time_seconds for event in self.member_events)

    @property
    def observed_span(self) -> tuple[float, float]:
        return (self.start_time, self.observed_end_time)

    @property
    def has_intent_signal(self) -> bool:
        """True if a SENT or START event witnessed the attempt."""
        return any(event.is_intent_signal for event in self.member_events)

    def add_event(self, event: CanonicalEvent) -> None:
        """Append a member event and fold its outcome into the resolution."""
        self.member_events.append(event)
        self.end_time = max(self.end_time, event.time_seconds)

        outcome = event.outcome
        if outcome is None:
            return
        self.observed_outcomes.add(outcome)
        # Strictly higher priority only; ties keep the earlier resolution
        if self.resolved_outcome is None or outcome > self.resolved_outcome:
            self.resolved_outcome = outcome


@dataclass
class IntentResolution:
    """Output of resolve_intent_attempts."""

    events: list[CanonicalEvent]
    attempts: list[Attempt]
    resolved_attempts: list[Attempt]
    unresolved_attempts: list[Attempt]
    # sequence_index -> attempt id, total over `events`
    event_to_attempt_id: dict[int, str]
    timeline_only: list[CanonicalEvent] = field(default_factory=list)

    def attempts_for(self, ability_ids: Iterable[int]) -> list[Attempt]:
        """Attempts restricted to the given ability ids, in creation order."""
        wanted = set(ability_ids)
        return [attempt for attempt in self.attempts if attempt.ability_id in wanted]


def _make_attempt_id(event: CanonicalEvent, position: int) -> str:
    prefix = event.correlation_id or "ability"
    return f"{prefix}-{event.ability_id}-{event.time_seconds}-{position}"


class IntentAttemptResolver:
    """
    Resolves sorted canonical events into attempts.

    Usage:
        resolver = IntentAttemptResolver(ResolverConfig())
        resolution = resolver.resolve(normalize_events(timeline))
    """

    def __init__(self, config: ResolverConfig | None = None):
        self.config = config or ResolverConfig()

    def resolve(self, events: Iterable[CanonicalEvent]) -> IntentResolution:
        """
        Group events into attempts and resolve their outcomes.

        Args:
            events: Canonical events; re-sorted by (time, index)

        Returns:
            IntentResolution
        """
        ordered = sorted(events, key=lambda e: e.sort_key)

        attempts: list[Attempt] = []
        open_by_correlation: dict[str, Attempt] = {}
        open_by_ability: dict[int, Attempt] = {}
        event_to_attempt_id: dict[int, str] = {}

        for position, event in enumerate(ordered):
            if event.correlation_id:
                index: dict[Any, Attempt] = open_by_correlation
                key: Any = event.correlation_id
                grouping = GroupingMode.BY_CORRELATION_ID
                window_ms = self.config.correlation_window_ms
            else:
                index = open_by_ability
                key = event.ability_id
                grouping = GroupingMode.BY_FALLBACK_WINDOW
                window_ms = self.config.fallback_window_ms

            attempt = index.get(key)
            if attempt is None or (
                event.time_seconds - attempt.start_time > attempt.window_ms / 1000
            ):
                attempt = Attempt(
                    id=_make_attempt_id(event, position),
                    ability_id=event.ability_id,
                    correlation_id=event.correlation_id,
                    start_time=event.time_seconds,
                    end_time=event.time_seconds,
                    grouping=grouping,
                    window_ms=window_ms,
                )
                attempts.append(attempt)
                index[key] = attempt

            attempt.add_event(event)
            event_to_attempt_id[event.sequence_index] = attempt.id

        timeout_seconds = self.config.unresolved_timeout_ms / 1000
        for attempt in attempts:
            if not attempt.is_resolved:
                attempt.end_time = max(attempt.end_time, attempt.start_time + timeout_seconds)

        resolved = [attempt for attempt in attempts if attempt.is_resolved]
        unresolved = [attempt for attempt in attempts if not attempt.is_resolved]

        logger.debug(
            f"Resolved {len(ordered)} events into {len(attempts)} attempts "
            f"({len(resolved)} resolved, {len(unresolved)} unresolved)"
        )

        return IntentResolution(
            events=ordered,
            attempts=attempts,
            resolved_attempts=resolved,
            unresolved_attempts=unresolved,
            event_to_attempt_id=event_to_attempt_id,
        )


def resolve_intent_attempts(
    timeline: NormalizedTimeline | Iterable[Any] | None,
    config: ResolverConfig | None = None,
) -> IntentResolution:
    """
    Convenience function to resolve a match timeline into attempts.

    Args:
        timeline: A NormalizedTimeline, or raw records to normalize first
        config: Grouping windows (defaults when omitted)

    Returns:
        IntentResolution
    """
    if not isinstance(timeline, NormalizedTimeline):
        timeline = normalize_events(timeline)

    resolution = IntentAttemptResolver(config).resolve(timeline.events)
    resolution.timeline_only = list(timeline.timeline_only)
    return resolution
