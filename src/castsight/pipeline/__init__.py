"""
CastSight Pipeline - Match analysis orchestration.

This module handles the complete per-match pipeline:
- Timeline gathering and normalization
- Attempt resolution and collapsing
- Telemetry snapshot and spell metrics
- Result serialization against the output contract
"""

from castsight.pipeline.orchestrator import MatchOrchestrator, analyze_match

__all__ = ["MatchOrchestrator", "analyze_match"]
