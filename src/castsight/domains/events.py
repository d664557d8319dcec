"""
Event Normalization for CastSight

Maps every raw timeline record shape the recorder has produced over its
schema versions into one ordered CanonicalEvent type:
- v2 timeline entries ({t, event, spellID, castGUID})
- canonical records ({time, eventKind, abilityId, correlationId})
- v2 cast records ({castGUID, spellID, events: [{t, event}]})

Malformed records are dropped, never raised. Downstream modules must not
branch on schema version.
"""

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from castsight.core.constants import (
    INTENT_SIGNAL_KINDS,
    OUTCOME_BY_EVENT_KIND,
    TIMELINE_ONLY_EVENT_KINDS,
    EventKind,
    Outcome,
)
from castsight.core.utils import as_ability_id, as_finite_number, timed

logger = logging.getLogger(__name__)


def _kind_key(value: str) -> str:
    return value.upper().replace("_", "").replace("-", "").replace(" ", "")


# "FAILEDQUIET" -> EventKind.FAILED_QUIET, etc.
_KIND_LOOKUP = {_kind_key(kind.value): kind for kind in EventKind}


@dataclass(frozen=True)
class CanonicalEvent:
    """A validated ability event."""

    sequence_index: int  # position in the raw input (after cast record expansion)
    time_seconds: float
    ability_id: int
    kind: EventKind
    correlation_id: str | None = None

    @property
    def sort_key(self) -> tuple[float, int]:
        return (self.time_seconds, self.sequence_index)

    @property
    def outcome(self) -> Outcome | None:
        """Outcome carried by this event, if any."""
        return OUTCOME_BY_EVENT_KIND.get(self.kind)

    @property
    def is_intent_signal(self) -> bool:
        """True for SENT/START: the player attempted the action."""
        return self.kind in INTENT_SIGNAL_KINDS


@dataclass
class NormalizedTimeline:
    """Result of normalizing one match's raw records."""

    # Intent accounting events, sorted by (time, index)
    events: list[CanonicalEvent] = field(default_factory=list)
    # STOP / CHANNEL_* events, sorted; visualization only
    timeline_only: list[CanonicalEvent] = field(default_factory=list)
    dropped: int = 0

    @property
    def ability_ids(self) -> list[int]:
        """Distinct ability ids seen in intent events, ascending."""
        return sorted({event.ability_id for event in self.events})


def parse_event_kind(value: Any) -> EventKind | None:
    """Match an event kind case-insensitively; None if unknown."""
    if isinstance(value, EventKind):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    return _KIND_LOOKUP.get(_kind_key(value.strip()))


def _first_present(record: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in record and record[key] is not None:
            return record[key]
    return None


def _correlation_id(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _expand_records(raw_records: Iterable[Any]) -> Iterator[Any]:
    """Flatten cast records into one record per sub-event; pass others through."""
    for record in raw_records:
        if isinstance(record, Mapping) and isinstance(record.get("events"), list):
            parent_guid = record.get("castGUID", record.get("correlationId"))
            parent_ability = _first_present(record, "spellID", "abilityId")
            for sub_event in record["events"]:
                if not isinstance(sub_event, Mapping):
                    yield sub_event
                    continue
                yield {
                    **sub_event,
                    "spellID": _first_present(sub_event, "spellID", "abilityId")
                    or parent_ability,
                    "castGUID": _first_present(sub_event, "castGUID", "correlationId")
                    or parent_guid,
                }
        else:
            yield record


def canonicalize_record(record: Any, index: int) -> CanonicalEvent | None:
    """
    Convert a single raw record into a CanonicalEvent.

    Args:
        record: Raw record in any supported shape
        index: Position of the record in the raw input

    Returns:
        CanonicalEvent, or None if the record is malformed
    """
    if not isinstance(record, Mapping):
        return None

    ability_id = as_ability_id(_first_present(record, "abilityId", "spellID", "spellId"))
    if ability_id is None:
        return None

    kind = parse_event_kind(_first_present(record, "eventKind", "event"))
    if kind is None:
        return None

    time_seconds = as_finite_number(_first_present(record, "time", "t"))
    if time_seconds is None:
        return None

    correlation_id = _correlation_id(
        _first_present(record, "correlationId", "castGUID", "castGuid")
    )
    return CanonicalEvent(
        sequence_index=index,
        time_seconds=time_seconds,
        ability_id=ability_id,
        kind=kind,
        correlation_id=correlation_id,
    )


@timed
def normalize_events(raw_records: Iterable[Any] | None) -> NormalizedTimeline:
    """
    Normalize a match's raw timeline records.

    Args:
        raw_records: Raw records in any mix of supported shapes (None is empty)

    Returns:
        NormalizedTimeline with intent events and timeline-only events,
        each sorted by (time_seconds, sequence_index)
    """
    result = NormalizedTimeline()
    if raw_records is None:
        return result

    for index, record in enumerate(_expand_records(raw_records)):
        event = canonicalize_record(record, index)
        if event is None:
            result.dropped += 1
        elif event.kind in TIMELINE_ONLY_EVENT_KINDS:
            result.timeline_only.append(event)
        else:
            result.events.append(event)

    result.events.sort(key=lambda e: e.sort_key)
    result.timeline_only.sort(key=lambda e: e.sort_key)

    if result.dropped:
        logger.debug(f"Dropped {result.dropped} malformed timeline records")
    logger.debug(
        f"Normalized {len(result.events)} intent events, "
        f"{len(result.timeline_only)} timeline-only events"
    )
    return result
