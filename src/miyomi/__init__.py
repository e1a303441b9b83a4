"""
Miyomi - a contrarian prediction market persona.

This package:
1. Fetches open markets from Polymarket and Kalshi
2. Merges and deduplicates them across sources
3. Scores each market for crowd overconfidence and cultural relevance
4. Picks one contrarian position a day
5. Writes it up with Claude and publishes it to Farcaster
"""

__version__ = "0.1.0"

from miyomi.core.config import Settings
from miyomi.core.logging import get_logger

__all__ = [
    "Settings",
    "get_logger",
    "__version__",
]
