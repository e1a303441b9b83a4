"""
Pipeline Orchestrator - Runs the daily pick end to end

Stages: extraction → aggregation → scoring → picking → storage → content →
publishing. The scoring core never raises for bad data; a day with no
actionable market ends with status ``no_opportunity``. Content and publishing
failures end with status ``downstream_failed`` and the pick already stored.

The performance update looks the picked market up directly, re-prices it and
posts a follow-up; a market the source no longer knows ends with status
``market_not_found``.
"""

import asyncio
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence
from datetime import datetime, timezone
from dataclasses import dataclass
from enum import Enum

from pydantic import Field

from miyomi.content.generator import ContentGenerator, ContentOutput, PerformanceUpdate
from miyomi.core.config import settings
from miyomi.core.exceptions import DownstreamFailureError
from miyomi.core.logging import LoggerMixin
from miyomi.engines.aggregation import aggregate
from miyomi.engines.opportunity_scoring import OpportunityScorer
from miyomi.engines.picking import MarketPicker
from miyomi.extractors import BaseExtractor, build_sources, fetch_all_sources
from miyomi.models.base import BaseModel
from miyomi.models.market import MarketRecord, Opportunity, Pick
from miyomi.publishing.farcaster import FarcasterPublisher, PublishResult
from miyomi.storage.pick_ledger import PickLedger
from miyomi.storage.shortlinks import Shortlink, ShortlinkTracker
from miyomi.storage.state_store import MemoryStateStore, StateStore


class PipelineStage(str, Enum):
    """Pipeline execution stages."""
    EXTRACTION = "extraction"
    AGGREGATION = "aggregation"
    SCORING = "scoring"
    PICKING = "picking"
    STORAGE = "storage"
    CONTENT = "content"
    PUBLISHING = "publishing"
    PERFORMANCE = "performance"


class PipelineStatus(str, Enum):
    """Pipeline execution status."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    NO_OPPORTUNITY = "no_opportunity"
    MARKET_NOT_FOUND = "market_not_found"
    DOWNSTREAM_FAILED = "downstream_failed"
    FAILED = "failed"


@dataclass
class PipelineConfig:
    """Configuration for pipeline execution."""
    aggregate_limit: int = 50
    source_timeout_seconds: float = 10.0
    
    # Downstream behavior
    publish: bool = True
    create_shortlinks: bool = True
    fail_on_stage_error: bool = False
    
    @classmethod
    def from_settings(cls) -> "PipelineConfig":
        return cls(
            aggregate_limit=settings.aggregate_limit,
            source_timeout_seconds=settings.source_timeout_seconds,
        )


class StageMetrics(BaseModel):
    """Metrics for a pipeline stage."""
    stage: PipelineStage
    input_count: int
    output_count: int
    error_count: int = 0
    processing_time_seconds: float


class PipelineExecution(BaseModel):
    """Record of one pipeline run."""
    execution_id: str
    status: PipelineStatus
    stage_metrics: List[StageMetrics] = Field(default_factory=list)
    
    # Timing
    started_at: datetime
    completed_at: Optional[datetime] = None
    total_duration_seconds: Optional[float] = None
    
    # Results
    markets_fetched: int = 0
    markets_aggregated: int = 0
    opportunities_found: int = 0
    pick: Optional[Pick] = None
    content: Optional[ContentOutput] = None
    shortlink: Optional[Shortlink] = None
    publish_result: Optional[PublishResult] = None
    performance: Optional[Dict[str, Any]] = None
    performance_update: Optional[PerformanceUpdate] = None
    error_messages: List[str] = Field(default_factory=list)
    
    def stage(self, stage: PipelineStage) -> Optional[StageMetrics]:
        for metrics in self.stage_metrics:
            if metrics.stage == stage:
                return metrics
        return None


class MiyomiPipeline(LoggerMixin):
    """
    Coordinates market sources, the scoring core and the downstream
    collaborators for the daily pick and the performance update.
    """
    
    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        sources: Optional[Sequence[BaseExtractor]] = None,
        store: Optional[StateStore] = None,
        scorer: Optional[OpportunityScorer] = None,
        picker: Optional[MarketPicker] = None,
        content_generator: Optional[ContentGenerator] = None,
        publisher: Optional[FarcasterPublisher] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or PipelineConfig.from_settings()
        self.sources = list(sources) if sources is not None else build_sources()
        self.store = store or MemoryStateStore()
        self.scorer = scorer or OpportunityScorer()
        self.picker = picker or MarketPicker()
        self.content_generator = content_generator or ContentGenerator()
        self.publisher = publisher or FarcasterPublisher()
        self.ledger = PickLedger(self.store)
        self.shortlinks = ShortlinkTracker(self.store, settings.shortlink_base_url)
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.execution_history: List[PipelineExecution] = []
    
    async def close(self) -> None:
        for source in self.sources:
            await source.close()
        await self.publisher.close()
    
    # Core stages, usable on their own
    
    async def fetch_markets(self) -> List[List[MarketRecord]]:
        """Fetch every source; one list per source in priority order."""
        return await fetch_all_sources(self.sources, timeout=self.config.source_timeout_seconds)
    
    async def collect_markets(self) -> List[MarketRecord]:
        return aggregate(await self.fetch_markets(), limit=self.config.aggregate_limit)
    
    async def find_opportunities(self, now: Optional[datetime] = None) -> List[Opportunity]:
        now = now or self.clock()
        return self.scorer.rank(await self.collect_markets(), now)
    
    # Runs
    
    async def run_daily_pick(self, execution_id: Optional[str] = None) -> PipelineExecution:
        """Select, store, write up and publish today's pick."""
        now = self.clock()
        execution = PipelineExecution(
            execution_id=execution_id or str(uuid.uuid4()),
            status=PipelineStatus.RUNNING,
            started_at=datetime.now(timezone.utc),
        )
        self.logger.info("Starting daily pick", execution_id=execution.execution_id)
        
        try:
            source_lists = await self._run_stage(PipelineStage.EXTRACTION, execution, self.fetch_markets)
            execution.markets_fetched = sum(len(records) for records in source_lists)
            
            markets = await self._run_stage(
                PipelineStage.AGGREGATION, execution, self._aggregate, source_lists
            )
            execution.markets_aggregated = len(markets)
            
            opportunities = await self._run_stage(
                PipelineStage.SCORING, execution, self._rank, markets, now
            )
            execution.opportunities_found = len(opportunities)
            
            pick = await self._run_stage(
                PipelineStage.PICKING, execution, self._pick, opportunities, now
            )
            if pick is None:
                execution.status = PipelineStatus.NO_OPPORTUNITY
                self.logger.info("No opportunity today", execution_id=execution.execution_id)
                return self._finish(execution)
            execution.pick = pick
            
            await self._run_stage(PipelineStage.STORAGE, execution, self._store_pick, execution)
            
            execution.content = await self._run_stage(
                PipelineStage.CONTENT, execution, self.content_generator.generate, pick
            )
            
            if self.config.publish:
                execution.publish_result = await self._run_stage(
                    PipelineStage.PUBLISHING, execution, self._publish, execution
                )
            
            execution.status = PipelineStatus.COMPLETED
            
        except DownstreamFailureError as e:
            execution.status = PipelineStatus.DOWNSTREAM_FAILED
            execution.error_messages.append(str(e))
            self.logger.error(
                "Downstream failure after pick",
                execution_id=execution.execution_id,
                stage=e.stage,
                error=str(e)
            )
            
        except Exception as e:
            execution.status = PipelineStatus.FAILED
            execution.error_messages.append(str(e))
            self.logger.error(f"Pipeline execution failed: {e}", execution_id=execution.execution_id)
            if self.config.fail_on_stage_error:
                self._finish(execution)
                raise
        
        return self._finish(execution)
    
    async def update_performance(self, execution_id: Optional[str] = None) -> PipelineExecution:
        """Re-price the current pick, then write up and publish how it is doing."""
        now = self.clock()
        execution = PipelineExecution(
            execution_id=execution_id or str(uuid.uuid4()),
            status=PipelineStatus.RUNNING,
            started_at=datetime.now(timezone.utc),
        )
        
        try:
            record = await self.ledger.current_pick()
            if record is None:
                execution.status = PipelineStatus.NO_OPPORTUNITY
                self.logger.info("No pick to update")
                return self._finish(execution)
            
            execution.performance = await self._run_stage(
                PipelineStage.PERFORMANCE, execution, self._reprice, record, now
            )
            if execution.performance is None:
                execution.status = PipelineStatus.MARKET_NOT_FOUND
                self.logger.warning(
                    "Picked market not found",
                    pick_id=record["id"],
                    market_source=record["market_source"],
                    market_id=record["market_id"]
                )
                return self._finish(execution)
            
            execution.performance_update = await self._run_stage(
                PipelineStage.CONTENT, execution, self._write_performance_update, record, execution.performance, now
            )
            
            if self.config.publish:
                execution.publish_result = await self._run_stage(
                    PipelineStage.PUBLISHING, execution, self._publish_performance_update, record, execution, now
                )
            
            execution.status = PipelineStatus.COMPLETED
            
        except DownstreamFailureError as e:
            execution.status = PipelineStatus.DOWNSTREAM_FAILED
            execution.error_messages.append(str(e))
            self.logger.error(
                "Downstream failure after performance update",
                execution_id=execution.execution_id,
                stage=e.stage,
                error=str(e)
            )
            
        except Exception as e:
            execution.status = PipelineStatus.FAILED
            execution.error_messages.append(str(e))
            self.logger.error(f"Performance update failed: {e}", execution_id=execution.execution_id)
            if self.config.fail_on_stage_error:
                self._finish(execution)
                raise
        
        return self._finish(execution)
    
    # Stage implementations
    
    async def _aggregate(self, source_lists: List[List[MarketRecord]]) -> List[MarketRecord]:
        return aggregate(source_lists, limit=self.config.aggregate_limit)
    
    async def _rank(self, markets: List[MarketRecord], now: datetime) -> List[Opportunity]:
        return self.scorer.rank(markets, now)
    
    async def _pick(self, opportunities: List[Opportunity], now: datetime) -> Optional[Pick]:
        return self.picker.pick(opportunities, now)
    
    async def _store_pick(self, execution: PipelineExecution) -> Dict[str, Any]:
        pick = execution.pick
        record = await self.ledger.record_pick(pick)
        if self.config.create_shortlinks:
            execution.shortlink = await self.shortlinks.create(pick, now=pick.timestamp)
        return record
    
    async def _publish(self, execution: PipelineExecution) -> PublishResult:
        shortlink = execution.shortlink
        shortlink_url = self.shortlinks.url_for(shortlink.id) if shortlink else None
        
        result = await self.publisher.publish(execution.content.post, shortlink_url, now=execution.pick.timestamp)
        
        await self.ledger.annotate(
            execution.pick.id,
            post=result.text,
            cast_hash=result.cast_hash,
            dry_run=result.dry_run,
            shortlink_id=shortlink.id if shortlink else None,
        )
        if shortlink and result.cast_hash:
            execution.shortlink = await self.shortlinks.attach_cast(shortlink.id, result.cast_hash)
        return result
    
    async def _reprice(self, record: Dict[str, Any], now: datetime) -> Optional[Dict[str, Any]]:
        """Look the picked market up directly, open or not, and store its performance."""
        source = next((s for s in self.sources if s.name == record["market_source"]), None)
        if source is None:
            self.logger.warning("No source configured for picked market", market_source=record["market_source"])
            return None
        
        market = await asyncio.wait_for(
            source.fetch_market(record["market_id"]),
            timeout=self.config.source_timeout_seconds
        )
        if market is None:
            return None
        
        performance = await self.ledger.update_performance(record["id"], market.yes_price, now)
        shortlink_id = record.get("shortlink_id")
        if shortlink_id and performance:
            await self.shortlinks.update_pnl(shortlink_id, record["entry_price"], performance["current_price"])
        return performance
    
    async def _write_performance_update(
        self,
        record: Dict[str, Any],
        performance: Dict[str, Any],
        now: datetime
    ) -> PerformanceUpdate:
        win_rate = await self.ledger.win_rate()
        recent = await self.ledger.recent_picks(days=7, now=now)
        return await self.content_generator.generate_performance_update(record, performance, win_rate, recent)
    
    async def _publish_performance_update(
        self,
        record: Dict[str, Any],
        execution: PipelineExecution,
        now: datetime
    ) -> PublishResult:
        update = execution.performance_update
        shortlink_id = record.get("shortlink_id")
        shortlink_url = self.shortlinks.url_for(shortlink_id) if shortlink_id else None
        
        result = await self.publisher.publish(update.text, shortlink_url, now=now)
        
        await self.ledger.annotate(
            record["id"],
            performance_post=result.text,
            performance_cast_hash=result.cast_hash,
            mood=update.mood,
        )
        return result
    
    async def _run_stage(
        self,
        stage: PipelineStage,
        execution: PipelineExecution,
        stage_func: Callable[..., Awaitable[Any]],
        *args: Any
    ) -> Any:
        """Execute a pipeline stage with metrics collection."""
        start_time = datetime.now(timezone.utc)
        input_count = len(args[0]) if args and isinstance(args[0], (list, tuple)) else 0
        
        self.logger.debug(f"Starting stage: {stage.value}", input_count=input_count)
        
        try:
            result = await stage_func(*args)
        except Exception as e:
            execution.stage_metrics.append(StageMetrics(
                stage=stage,
                input_count=input_count,
                output_count=0,
                error_count=1,
                processing_time_seconds=(datetime.now(timezone.utc) - start_time).total_seconds(),
            ))
            self.logger.error(f"Stage failed: {stage.value}", error=str(e))
            raise
        
        if isinstance(result, (list, tuple)):
            output_count = len(result)
        else:
            output_count = 0 if result is None else 1
        
        processing_time = (datetime.now(timezone.utc) - start_time).total_seconds()
        execution.stage_metrics.append(StageMetrics(
            stage=stage,
            input_count=input_count,
            output_count=output_count,
            processing_time_seconds=processing_time,
        ))
        self.logger.info(
            f"Stage completed: {stage.value}",
            input_count=input_count,
            output_count=output_count,
            processing_time_seconds=processing_time
        )
        return result
    
    def _finish(self, execution: PipelineExecution) -> PipelineExecution:
        execution.completed_at = datetime.now(timezone.utc)
        execution.total_duration_seconds = (execution.completed_at - execution.started_at).total_seconds()
        self.execution_history.append(execution)
        
        self.logger.info(
            "Pipeline execution finished",
            execution_id=execution.execution_id,
            status=execution.status,
            duration_seconds=execution.total_duration_seconds,
            opportunities_found=execution.opportunities_found
        )
        return execution
