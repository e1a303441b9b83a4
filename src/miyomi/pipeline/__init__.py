"""Pipeline orchestration for Miyomi."""

from miyomi.pipeline.orchestrator import (
    MiyomiPipeline,
    PipelineConfig,
    PipelineExecution,
    PipelineStage,
    PipelineStatus,
    StageMetrics,
)

__all__ = [
    "MiyomiPipeline",
    "PipelineConfig",
    "PipelineExecution",
    "PipelineStage",
    "PipelineStatus",
    "StageMetrics",
]
