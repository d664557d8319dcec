"""Tests for spell metric aggregation (ranking, shares, fallback, compare mode)."""

import pytest

from castsight.core.constants import MetricType, Outcome
from castsight.domains.attempts import resolve_intent_attempts
from castsight.domains.spell_meta import SpellMetaEntry, SpellMetaTable
from castsight.domains.spell_metrics import (
    AttemptCounts,
    build_attempt_counts,
    build_compare_model,
    build_personal_model,
    build_spell_metric_rows,
    collect_spell_ids_for_fetch,
    find_owner_player,
    impact_label,
    metric_label,
    parse_interrupt_spells_by_source,
    parse_metric,
    parse_spell_totals,
    parse_spell_totals_by_source,
    player_key,
)

OWNER = "player-1-aaaa"
RIVAL = "player-1-bbbb"


def _meta(**names):
    """SpellMetaTable from id=name keyword pairs (keys like s10=...)."""
    return SpellMetaTable(
        {int(key[1:]): SpellMetaEntry(id=int(key[1:]), name=name) for key, name in names.items()}
    )


def _totals(damage=0.0, healing=0.0, **extra):
    return {"damage": damage, "healing": healing, **extra}


class TestParsers:
    """Tests for the boundary parsers."""

    def test_parse_spell_totals(self):
        parsed = parse_spell_totals(
            {
                "10": _totals(500, 0, hits=4, targets={"a": 300, "b": "x"}),
                "20": {"damageDone": 100, "healingDone": 50},
                "abc": _totals(1, 1),
                "-3": _totals(1, 1),
                "30": {"damage": 5},
                "40": "not a dict",
            }
        )
        assert set(parsed) == {10, 20}
        assert parsed[10].damage == 500
        assert parsed[10].hits == 4
        assert parsed[10].targets == {"a": 300}
        assert parsed[20].healing == 50

    def test_by_source_flat_root(self):
        parsed = parse_spell_totals_by_source({"10": _totals(5, 0)})
        assert list(parsed) == ["unknown"]
        assert parsed["unknown"][10].damage == 5

    def test_by_source_guid_keys_normalized(self):
        parsed = parse_spell_totals_by_source(
            {"  Player-1-AAAA ": {"10": _totals(5, 0)}, "   ": {"10": _totals(1, 0)}, "p2": {}}
        )
        assert list(parsed) == [OWNER]

    def test_interrupts_by_source(self):
        parsed = parse_interrupt_spells_by_source(
            {OWNER: {"1766": 3, "2139": 0}, RIVAL: {"47528": "2"}, "p3": "bad"}
        )
        assert parsed == {OWNER: {1766: 3}, RIVAL: {47528: 2}}

    def test_interrupts_flat_root(self):
        assert parse_interrupt_spells_by_source({"1766": 2}) == {"unknown": {1766: 2}}

    def test_non_mapping(self):
        assert parse_spell_totals(None) == {}
        assert parse_spell_totals_by_source([1, 2]) == {}
        assert parse_interrupt_spells_by_source("x") == {}

    def test_parse_metric(self):
        assert parse_metric("Damage") == MetricType.DAMAGE
        assert parse_metric(MetricType.INTERRUPTS) == MetricType.INTERRUPTS
        with pytest.raises(ValueError, match="Unknown metric"):
            parse_metric("dps")


class TestAttemptCounts:
    """Tests for per-ability attempt outcome counts."""

    def test_counts_resolved_only(self):
        resolution = resolve_intent_attempts(
            [
                {"t": 1.0, "event": "SENT", "spellID": 10, "castGUID": "a"},
                {"t": 1.1, "event": "SUCCEEDED", "spellID": 10, "castGUID": "a"},
                {"t": 2.0, "event": "SENT", "spellID": 10, "castGUID": "b"},
                {"t": 2.1, "event": "FAILED", "spellID": 10, "castGUID": "b"},
                {"t": 3.0, "event": "SENT", "spellID": 10, "castGUID": "c"},
                {"t": 4.0, "event": "INTERRUPTED", "spellID": 20},
            ]
        )
        counts = build_attempt_counts(resolution.attempts)
        assert counts[10] == AttemptCounts(ability_id=10, succeeded=1, failed=1, interrupted=0)
        assert counts[10].total == 2
        assert counts[20].interrupted == 1

    def test_collect_spell_ids(self):
        ids = collect_spell_ids_for_fetch(
            {5: AttemptCounts(5)},
            parse_spell_totals({"10": _totals(1, 1)}),
            {OWNER: parse_spell_totals({"20": _totals(1, 1)})},
            {OWNER: {10: 1, 30: 2}},
        )
        assert ids == [5, 10, 20, 30]


class TestSpellMetricRows:
    """Tests for row ranking and shares."""

    def test_scenario_c_equal_values_split_evenly(self):
        """Two equal values share 50% each, ordered by name."""
        rows = build_spell_metric_rows(
            {10: 500.0, 20: 500.0}, {}, _meta(s10="Zap", s20="Arcane Shot")
        )
        assert [r.display_name for r in rows] == ["Arcane Shot", "Zap"]
        assert [r.share_pct for r in rows] == [pytest.approx(50.0), pytest.approx(50.0)]

    def test_order_value_then_name_then_id(self):
        rows = build_spell_metric_rows(
            {1: 10.0, 2: 30.0, 3: 10.0, 4: 10.0},
            {},
            _meta(s1="beta", s2="Zeta", s3="Alpha", s4="alpha"),
        )
        assert [r.ability_id for r in rows] == [2, 3, 4, 1]

    def test_drops_non_positive_and_unrenderable(self):
        meta = SpellMetaTable(
            {
                1: SpellMetaEntry(1, "Shown"),
                2: SpellMetaEntry(2, "Zero"),
                3: SpellMetaEntry(3, "   "),
                4: None,
            }
        )
        rows = build_spell_metric_rows({1: 5.0, 2: 0.0, 3: 5.0, 4: 5.0, 5: 5.0}, {}, meta)
        assert [r.ability_id for r in rows] == [1]
        assert rows[0].share_pct == pytest.approx(100.0)

    def test_shares_sum_to_100(self):
        values = {i: float(i * 37 % 101 + 1) for i in range(1, 30)}
        meta = SpellMetaTable({i: SpellMetaEntry(i, f"Spell {i}") for i in values})
        rows = build_spell_metric_rows(values, {}, meta)
        assert sum(r.share_pct for r in rows) == pytest.approx(100.0)

    def test_avg_per_cast(self):
        counts = {10: AttemptCounts(10, succeeded=3, failed=1)}
        rows = build_spell_metric_rows({10: 400.0, 20: 100.0}, counts, _meta(s10="A", s20="B"))
        by_id = {r.ability_id: r for r in rows}
        assert by_id[10].total_attempts == 4
        assert by_id[10].avg_per_cast == pytest.approx(100.0)
        assert by_id[20].avg_per_cast is None

    def test_metadata_carried(self):
        meta = SpellMetaTable({10: SpellMetaEntry(10, "Kick", "Interrupts a cast", "icon_kick")})
        row = build_spell_metric_rows({10: 1.0}, {}, meta)[0]
        assert row.icon == "icon_kick"
        assert row.description == "Interrupts a cast"

    def test_empty(self):
        assert build_spell_metric_rows({}, {}, SpellMetaTable()) == []


class TestPersonalModel:
    """Tests for the owner's ranked rows and the fallback policy."""

    @pytest.fixture
    def meta(self):
        return _meta(s10="Fireball", s20="Frostbolt", s1766="Kick")

    def test_source_scoped_damage(self, meta):
        model = build_personal_model(
            "damage",
            OWNER,
            {},
            meta,
            parse_spell_totals({"10": _totals(999, 0)}),
            {OWNER: parse_spell_totals({"10": _totals(300, 0), "20": _totals(100, 0)})},
            {},
        )
        assert not model.is_fallback_to_match_totals
        assert [r.ability_id for r in model.rows] == [10, 20]
        assert model.max_value == 300

    def test_damage_falls_back_to_match_totals(self, meta):
        model = build_personal_model(
            MetricType.DAMAGE,
            OWNER,
            {},
            meta,
            parse_spell_totals({"10": _totals(999, 0), "20": _totals(0, 5)}),
            {RIVAL: parse_spell_totals({"20": _totals(300, 0)})},
            {},
        )
        assert model.is_fallback_to_match_totals
        assert [r.ability_id for r in model.rows] == [10]
        assert model.max_value == 999

    def test_healing_falls_back_when_owner_unknown(self, meta):
        model = build_personal_model(
            "healing", None, {}, meta, parse_spell_totals({"20": _totals(0, 50)}), {}, {}
        )
        assert model.is_fallback_to_match_totals
        assert model.rows[0].value == 50

    def test_interrupts_never_fall_back(self, meta):
        model = build_personal_model(
            "interrupts",
            OWNER,
            {},
            meta,
            parse_spell_totals({"1766": _totals(0, 0, interrupts=4)}),
            {},
            {RIVAL: {1766: 2}},
        )
        assert not model.is_fallback_to_match_totals
        assert model.rows == []
        assert model.max_value == 1

    def test_interrupts_from_source(self, meta):
        model = build_personal_model("interrupts", OWNER, {}, meta, {}, {}, {OWNER: {1766: 3}})
        assert [(r.ability_id, r.value) for r in model.rows] == [(1766, 3)]

    def test_owner_guid_normalized(self, meta):
        model = build_personal_model(
            "damage",
            "  PLAYER-1-AAAA ",
            {},
            meta,
            {},
            {OWNER: parse_spell_totals({"10": _totals(10, 0)})},
            {},
        )
        assert not model.is_fallback_to_match_totals

    def test_unknown_metric_raises(self, meta):
        with pytest.raises(ValueError):
            build_personal_model("threat", OWNER, {}, meta, {}, {}, {})


class TestCompareModel:
    """Tests for per-actor comparison rows."""

    @pytest.fixture
    def players(self):
        return [
            {
                "name": "Alice",
                "realm": "Silvermoon",
                "guid": "Player-1-AAAA",
                "damage": 600,
                "class": "Mage",
            },
            {"name": "bob", "realm": "Draenor", "guid": RIVAL, "damageDone": 600},
            {"name": "Carl", "realm": "Kazzak", "damage": 0, "interrupts": [4, 2]},
            {"name": "Dana", "realm": "Ravencrest", "damage": 300},
        ]

    def test_rows_ordered_and_shared(self, players):
        model = build_compare_model(
            "damage",
            players,
            {},
            _meta(s10="Fireball"),
            {OWNER: parse_spell_totals({"10": _totals(600, 0)})},
            {},
        )
        assert [r.name for r in model.rows] == ["Alice", "bob", "Dana"]
        assert [r.share_pct for r in model.rows] == [
            pytest.approx(40.0),
            pytest.approx(40.0),
            pytest.approx(20.0),
        ]
        assert model.max_value == 600
        assert [s.ability_id for s in model.rows[0].spells] == [10]
        assert model.rows[1].spells == []
        assert model.rows[0].class_name == "Mage"

    def test_actor_keys(self, players):
        model = build_compare_model("damage", players, {}, SpellMetaTable(), {}, {})
        assert [r.key for r in model.rows] == [OWNER, RIVAL, "dana-ravencrest"]

    def test_interrupts_prefer_source_map(self, players):
        model = build_compare_model(
            "interrupts",
            players,
            {},
            _meta(s1766="Kick"),
            {},
            {OWNER: {1766: 3, 2139: 2}},
        )
        values = {r.name: r.value for r in model.rows}
        assert values == {"Alice": 5, "Carl": 4}
        assert sum(r.share_pct for r in model.rows) == pytest.approx(100.0)
        alice = next(r for r in model.rows if r.name == "Alice")
        assert [s.ability_id for s in alice.spells] == [1766]

    def test_empty(self):
        model = build_compare_model("healing", [], {}, SpellMetaTable(), {}, {})
        assert model.rows == []
        assert model.max_value == 1


class TestPlayerHelpers:
    """Tests for owner lookup, actor keys and labels."""

    def test_find_owner(self):
        players = [{"name": "a"}, {"name": "b", "isOwner": True}]
        assert find_owner_player(players)["name"] == "b"
        assert find_owner_player([{"name": "a"}])["name"] == "a"
        assert find_owner_player([]) is None

    def test_player_key_fallbacks(self):
        assert player_key({"guid": " G-1 "}, 0) == "g-1"
        assert player_key({"name": "Ann"}, 0) == "ann"
        assert player_key({}, 3) == "player-3"

    def test_labels(self):
        assert metric_label("damage") == "Damage"
        assert metric_label("interrupts") == "Interrupts"
        assert impact_label("healing") == "Total Healing"
        assert impact_label(MetricType.INTERRUPTS) == "Times Interrupted"

    def test_outcome_enum_priority(self):
        assert Outcome.SUCCEEDED > Outcome.INTERRUPTED > Outcome.FAILED
