"""
CastSight - Combat Telemetry Correlation Engine

Turns a match's raw, possibly out-of-order ability event stream into
attempts with resolved outcomes, collapses duplicate attempts, reconciles
interrupt ("kick") telemetry against scoreboard counters, and ranks
per-ability and per-actor metrics.

Usage:
    from castsight import analyze_match

    result = analyze_match(match, metric="damage")
    for row in result["spells"]["rows"]:
        print(f"{row['display_name']}: {row['share_pct']:.1f}%")
"""

__version__ = "0.1.0"
__author__ = "CastSight Contributors"


def __getattr__(name):
    """Lazy import for the pipeline modules."""
    if name == "normalize_events":
        from castsight.domains.events import normalize_events
        return normalize_events
    elif name == "resolve_intent_attempts":
        from castsight.domains.attempts import resolve_intent_attempts
        return resolve_intent_attempts
    elif name == "collapse_attempts":
        from castsight.domains.collapse import collapse_attempts
        return collapse_attempts
    elif name == "build_telemetry_snapshot":
        from castsight.domains.telemetry import build_telemetry_snapshot
        return build_telemetry_snapshot
    elif name == "build_personal_model":
        from castsight.domains.spell_metrics import build_personal_model
        return build_personal_model
    elif name == "build_compare_model":
        from castsight.domains.spell_metrics import build_compare_model
        return build_compare_model
    elif name == "MatchOrchestrator":
        from castsight.pipeline.orchestrator import MatchOrchestrator
        return MatchOrchestrator
    elif name == "analyze_match":
        from castsight.pipeline.orchestrator import analyze_match
        return analyze_match
    raise AttributeError(f"module 'castsight' has no attribute '{name}'")


__all__ = [
    # Version
    "__version__",
    # Core engine
    "normalize_events",
    "resolve_intent_attempts",
    "collapse_attempts",
    "build_telemetry_snapshot",
    "build_personal_model",
    "build_compare_model",
    # Pipeline
    "MatchOrchestrator",
    "analyze_match",
]
