from reverie.domains.patterns.models.aggregate_analysis import (
    AggregateAnalysis,
    CurrentAggregateAnalysis,
)

__all__ = ["AggregateAnalysis", "CurrentAggregateAnalysis"]
