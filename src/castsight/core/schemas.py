"""
CastSight Data Contracts

Raw payload shapes that cross the boundary between the external match loader
and this engine. The loader hands over plain dicts; these TypedDicts document
what the engine reads from them. Every field is treated as untrusted and is
validated by the normalizers in castsight.domains.

Producers: the save-data loader (external)
Consumers: domains/events.py, domains/telemetry.py, domains/spell_metrics.py,
           pipeline/orchestrator.py
"""

from __future__ import annotations

from typing import NotRequired, TypedDict

# ============================================================
# TIMELINE RECORDS: three shapes, one canonical event
# ============================================================


class TimelineEventV2(TypedDict):
    """A telemetry v2 timeline entry."""

    t: float  # seconds since match start
    event: str  # "SENT", "START", "SUCCEEDED", ...
    spellID: NotRequired[int]
    castGUID: NotRequired[str]
    hp: NotRequired[float]
    power: NotRequired[float]


class CanonicalEventRecord(TypedDict):
    """Already-canonical record shape (e.g. re-exported attempts)."""

    time: float
    eventKind: str
    abilityId: int
    correlationId: NotRequired[str]


class CastRecordEvent(TypedDict):
    """One event inside a cast record."""

    t: float
    event: str


class CastRecord(TypedDict):
    """A telemetry v2 cast record: all events of one castGUID."""

    castGUID: str
    spellID: NotRequired[int]
    startEvent: NotRequired[str]
    startTime: NotRequired[float]
    lastEvent: NotRequired[str]
    lastTime: NotRequired[float]
    events: list[CastRecordEvent]


# ============================================================
# PLAYERS
# ============================================================


class MatchPlayerRecord(TypedDict, total=False):
    """A scoreboard player entry (v1 or v2)."""

    name: str
    realm: str
    guid: str
    isOwner: bool
    damage: float
    damageDone: float  # scoreboard snapshot spelling
    healing: float
    healingDone: float
    # [issued, succeeded] as an array, or a Lua table serialized as a dict
    interrupts: list[int] | dict[str, int]
    interruptions: list[int] | dict[str, int]


# ============================================================
# SPELL TOTALS
# ============================================================


class SpellTotalsRecord(TypedDict, total=False):
    """Per-spell totals as written by the recorder."""

    damage: float
    healing: float
    damageDone: float
    healingDone: float
    overheal: float
    absorbed: float
    hits: int
    crits: int
    targets: dict[str, float]
    interrupts: int
    dispels: int


# ============================================================
# SPELL METADATA
# ============================================================


class SpellMetaRecord(TypedDict):
    """A spell metadata entry as returned by the metadata service."""

    _id: int
    name: NotRequired[str | None]
    description: NotRequired[str | None]
    media: NotRequired[str | None]


# ============================================================
# MATCH: the top-level loader output consumed by the orchestrator
# ============================================================


class MatchRecord(TypedDict, total=False):
    """One loaded match."""

    id: str
    matchKey: str
    telemetryVersion: int
    dataVersion: int
    players: list[MatchPlayerRecord]
    timeline: list[TimelineEventV2 | CanonicalEventRecord]
    castRecords: list[CastRecord]
    soloShuffle: dict
    interruptSpellIds: list[int] | dict[str, int]
    spellTotals: dict[str, SpellTotalsRecord]
    spellTotalsBySource: dict[str, dict[str, SpellTotalsRecord]]
    interruptSpellsBySource: dict[str, dict[str, int]]
