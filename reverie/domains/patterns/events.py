"""Pattern analysis event catalog."""

from __future__ import annotations

PATTERNS_ANALYSIS_GENERATED = "patterns.analysis.generated"

EVENT_CATALOG = {
    PATTERNS_ANALYSIS_GENERATED: {
        "version": "v1",
        "payload": {
            "aggregate_id": "int",
            "user_id": "int",
            "schema_version": "int",
            "entries_covered": "int",
            "language": "str",
        },
    },
}

__all__ = ["EVENT_CATALOG", "PATTERNS_ANALYSIS_GENERATED"]
