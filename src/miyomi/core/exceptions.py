"""Error types raised inside the Miyomi pipeline.

None of these are fatal to the host process: connectors turn
``SourceUnavailableError`` into an empty contribution, the normalizer turns
``ValidationFailure`` into a dropped record, and the orchestrator logs
``DownstreamFailureError`` after the pick has already been made.
"""

from typing import Optional


class MiyomiError(Exception):
    """Base class for Miyomi errors."""


class SourceUnavailableError(MiyomiError):
    """A market data source could not be reached or returned garbage."""
    
    def __init__(self, source: str, reason: str, status_code: Optional[int] = None):
        self.source = source
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"{source} unavailable: {reason}")


class ValidationFailure(MiyomiError):
    """A single raw market payload failed normalization."""
    
    def __init__(self, field: str, reason: str, record_id: Optional[str] = None):
        self.field = field
        self.record_id = record_id
        super().__init__(f"{field}: {reason}")


class DownstreamFailureError(MiyomiError):
    """Content generation or publishing failed after a pick was made."""
    
    def __init__(self, stage: str, reason: str):
        self.stage = stage
        super().__init__(f"{stage} failed: {reason}")
