"""Automation and scheduling for Miyomi."""

from miyomi.automation.scheduler import JobExecution, JobStatus, MiyomiScheduler

__all__ = [
    "JobExecution",
    "JobStatus",
    "MiyomiScheduler",
]
