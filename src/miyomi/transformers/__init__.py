"""Data transformation modules for Miyomi."""

from miyomi.transformers.market_normalizer import MarketNormalizer, NormalizationConfig, parse_timestamp

__all__ = [
    "MarketNormalizer",
    "NormalizationConfig",
    "parse_timestamp",
]
