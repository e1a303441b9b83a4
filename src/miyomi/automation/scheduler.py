"""
Automation Scheduler - Wall-clock jobs for the daily pick cycle

Wraps a ``schedule.Scheduler`` in an asyncio loop. Due jobs are queued by
``schedule`` and awaited one at a time, so a pick run and a performance
update never overlap. A failing job is logged and recorded; the loop keeps
going.
"""

import asyncio
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional
from datetime import datetime, timezone
from enum import Enum

import schedule

from miyomi.core.config import settings
from miyomi.core.logging import LoggerMixin
from miyomi.models.base import BaseModel
from miyomi.pipeline.orchestrator import MiyomiPipeline


class JobStatus(str, Enum):
    """Job execution status."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class JobExecution(BaseModel):
    """Job execution record."""
    execution_id: str
    job_name: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    status: JobStatus
    result: Optional[str] = None
    error_message: Optional[str] = None
    duration_seconds: Optional[float] = None


class MiyomiScheduler(LoggerMixin):
    """Runs the daily pick, performance update and weekly prune on schedule."""
    
    def __init__(
        self,
        pipeline: MiyomiPipeline,
        daily_pick_time: Optional[str] = None,
        performance_update_time: Optional[str] = None,
        poll_seconds: float = 30.0,
        history_days: int = 30,
    ):
        self.pipeline = pipeline
        self.daily_pick_time = daily_pick_time or settings.daily_pick_time
        self.performance_update_time = performance_update_time or settings.performance_update_time
        self.poll_seconds = poll_seconds
        self.history_days = history_days
        
        self.scheduler = schedule.Scheduler()
        self.job_functions: Dict[str, Callable[[], Awaitable[Any]]] = {}
        self.execution_history: List[JobExecution] = []
        self._due: List[str] = []
        
        self.is_running = False
        self.scheduler_task: Optional[asyncio.Task] = None
        
        self._initialize_default_jobs()
    
    def _initialize_default_jobs(self) -> None:
        self.register_job("daily_pick", self._daily_pick, self.scheduler.every().day.at(self.daily_pick_time))
        self.register_job(
            "performance_update",
            self._performance_update,
            self.scheduler.every().day.at(self.performance_update_time)
        )
        self.register_job("prune_history", self._prune_history, self.scheduler.every().sunday.at("03:00"))
    
    def register_job(self, name: str, function: Callable[[], Awaitable[Any]], when: schedule.Job) -> schedule.Job:
        """Bind an async job function to a ``schedule`` trigger."""
        self.job_functions[name] = function
        job = when.do(self._due.append, name).tag(name)
        self.logger.info("Job scheduled", job=name, next_run=str(job.next_run))
        return job
    
    def list_jobs(self) -> List[Dict[str, Any]]:
        return [
            {"name": next(iter(job.tags)), "next_run": job.next_run, "last_run": job.last_run}
            for job in self.scheduler.get_jobs()
        ]
    
    # Job bodies
    
    async def _daily_pick(self) -> str:
        execution = await self.pipeline.run_daily_pick()
        return execution.status
    
    async def _performance_update(self) -> str:
        execution = await self.pipeline.update_performance()
        return execution.status
    
    async def _prune_history(self) -> str:
        removed = await self.pipeline.ledger.prune(self.history_days)
        return f"removed {removed}"
    
    # Execution
    
    async def execute_job(self, name: str) -> JobExecution:
        """Run one job now and record the outcome."""
        if name not in self.job_functions:
            raise KeyError(f"Unknown job: {name}")
        
        execution = JobExecution(
            execution_id=str(uuid.uuid4()),
            job_name=name,
            started_at=datetime.now(timezone.utc),
            status=JobStatus.RUNNING,
        )
        self.logger.info("Job started", job=name, execution_id=execution.execution_id)
        
        try:
            result = await self.job_functions[name]()
            execution.result = None if result is None else str(result)
            execution.status = JobStatus.COMPLETED
        except Exception as e:
            execution.status = JobStatus.FAILED
            execution.error_message = str(e)
            self.logger.error(f"Job failed: {name}", error=str(e), execution_id=execution.execution_id)
        
        execution.completed_at = datetime.now(timezone.utc)
        execution.duration_seconds = (execution.completed_at - execution.started_at).total_seconds()
        self.execution_history.append(execution)
        
        self.logger.info(
            "Job finished",
            job=name,
            status=execution.status,
            duration_seconds=execution.duration_seconds
        )
        return execution
    
    async def run_pending(self) -> List[JobExecution]:
        """Run every job that is due."""
        self.scheduler.run_pending()
        executions = []
        while self._due:
            executions.append(await self.execute_job(self._due.pop(0)))
        return executions
    
    async def start(self) -> None:
        """Start the scheduler loop."""
        if self.is_running:
            return
        self.is_running = True
        self.scheduler_task = asyncio.create_task(self._scheduler_loop())
        self.logger.info("Scheduler started", jobs=len(self.job_functions))
    
    async def stop(self) -> None:
        """Stop the scheduler loop."""
        if not self.is_running:
            return
        self.is_running = False
        
        if self.scheduler_task and not self.scheduler_task.done():
            self.scheduler_task.cancel()
            try:
                await self.scheduler_task
            except asyncio.CancelledError:
                pass
        
        self.logger.info("Scheduler stopped")
    
    async def run_forever(self) -> None:
        await self.start()
        try:
            await self.scheduler_task
        finally:
            await self.stop()
    
    async def _scheduler_loop(self) -> None:
        while self.is_running:
            await self.run_pending()
            await asyncio.sleep(self.poll_seconds)
    
    def get_scheduler_stats(self) -> Dict[str, Any]:
        completed = sum(1 for e in self.execution_history if e.status == JobStatus.COMPLETED)
        return {
            "is_running": self.is_running,
            "jobs": len(self.job_functions),
            "total_executions": len(self.execution_history),
            "successful_executions": completed,
            "failed_executions": len(self.execution_history) - completed,
        }
