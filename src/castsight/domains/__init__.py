"""
CastSight Domains - Telemetry correlation and metrics modules.

This module contains:
- events: Raw record normalization into canonical events
- attempts: Grouping events into attempts and resolving outcomes
- collapse: Merging near-duplicate attempts
- telemetry: Kick telemetry snapshot and reconciliation
- spell_metrics: Ranked per-ability and per-actor metrics
- spell_meta: Spell display metadata and its cache
"""

__all__: list[str] = []
