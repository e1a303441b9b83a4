"""Social content generation for Miyomi picks."""

from miyomi.content.generator import (
    ContentConfig,
    ContentGenerator,
    ContentOutput,
    ContentStyle,
    Mood,
    PerformanceUpdate,
    select_mood,
    select_style,
)

__all__ = [
    "ContentConfig",
    "ContentGenerator",
    "ContentOutput",
    "ContentStyle",
    "Mood",
    "PerformanceUpdate",
    "select_mood",
    "select_style",
]
