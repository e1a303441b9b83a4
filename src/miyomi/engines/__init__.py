"""Processing engines for the Miyomi pipeline."""

from miyomi.engines.aggregation import aggregate, by_category, deduplicate, importance, title_key, trending
from miyomi.engines.opportunity_scoring import OpportunityScorer, ScoringWeights
from miyomi.engines.picking import MarketPicker, PickerConfig

__all__ = [
    "aggregate",
    "by_category",
    "deduplicate",
    "importance",
    "title_key",
    "trending",
    "OpportunityScorer",
    "ScoringWeights",
    "MarketPicker",
    "PickerConfig",
]
