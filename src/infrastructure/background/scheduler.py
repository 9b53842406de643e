# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scheduler that triggers the metric refresh tiers.

Uses APScheduler interval jobs that enqueue the tier actors on Dramatiq.
Each job runs with max_instances=1 and coalesce=True so a tier never
overlaps itself and missed ticks collapse into one run.

Example:
    from src.infrastructure.background.scheduler import start_scheduler

    # Registers fast/medium/slow tier jobs from settings
    scheduler = await start_scheduler()

    scheduler.get_stats()
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable
from uuid import uuid4

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.core.config import get_settings
from src.domains.metrics.kinds import Tier, build_tier_specs
from src.utils.datetime import utc_now
from src.utils.logging import setup_logging

if TYPE_CHECKING:
    from src.core.config.settings import MetricsSettings

logger = logging.getLogger(__name__)

TIER_ACTOR_NAMES: dict[Tier, str] = {
    Tier.FAST: "refresh_fast_tier_metrics",
    Tier.MEDIUM: "refresh_medium_tier_metrics",
    Tier.SLOW: "refresh_slow_tier_metrics",
}


@dataclass
class ScheduledTask:
    """Configuration for a scheduled Dramatiq task.

    Attributes:
        id: Unique task identifier.
        name: Human-readable task name.
        actor_name: Name of the Dramatiq actor to call.
        interval_minutes: Minutes between runs.
        args: Positional arguments for the actor.
        kwargs: Keyword arguments for the actor.
        enabled: Whether the task is enabled.
        last_run: Last run timestamp.
        run_count: Total number of runs.
        error_count: Number of failed runs.
    """

    name: str
    actor_name: str
    interval_minutes: int
    args: tuple = field(default_factory=tuple)
    kwargs: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid4()))
    enabled: bool = True
    last_run: datetime | None = None
    run_count: int = 0
    error_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "actor_name": self.actor_name,
            "interval_minutes": self.interval_minutes,
            "enabled": self.enabled,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "run_count": self.run_count,
            "error_count": self.error_count,
        }


class MetricsScheduler:
    """Interval scheduler for metric refresh tiers.

    Attributes:
        _scheduler: APScheduler instance.
        _tasks: Dictionary of scheduled tasks.
        _running: Whether scheduler is running.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        """Initialize the scheduler."""
        self._scheduler: AsyncIOScheduler | None = None
        self._tasks: dict[str, ScheduledTask] = {}
        self._running = False
        self._clock = clock

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running

    def _get_actor(self, actor_name: str) -> Any:
        """Get a Dramatiq actor by name, or None."""
        from src.infrastructure.background import tasks

        return getattr(tasks, actor_name, None)

    def add_interval_task(
        self,
        name: str,
        actor_name: str,
        minutes: int,
        args: tuple = (),
        kwargs: dict[str, Any] | None = None,
        enabled: bool = True,
        start_immediately: bool = False,
    ) -> ScheduledTask:
        """Add an interval-scheduled task.

        Args:
            name: Task name.
            actor_name: Dramatiq actor to call.
            minutes: Interval minutes.
            args: Actor arguments.
            kwargs: Actor keyword arguments.
            enabled: Whether task is enabled.
            start_immediately: Run immediately on start.

        Returns:
            Created ScheduledTask.
        """
        task = ScheduledTask(
            name=name,
            actor_name=actor_name,
            interval_minutes=minutes,
            args=args,
            kwargs=kwargs or {},
            enabled=enabled,
        )
        self._tasks[task.id] = task

        if self._scheduler and enabled:
            self._add_job(task, start_immediately)

        logger.info("Added interval task: %s (every %dm)", name, minutes)
        return task

    def _add_job(self, task: ScheduledTask, start_immediately: bool = False) -> None:
        """Create the APScheduler job of a task."""
        job_kwargs: dict[str, Any] = {}
        # An explicit next_run_time=None would add the job paused
        if start_immediately:
            job_kwargs["next_run_time"] = self._clock()

        self._scheduler.add_job(
            self._execute_task,
            trigger=IntervalTrigger(minutes=task.interval_minutes),
            args=[task.id],
            id=task.id,
            name=task.name,
            max_instances=1,
            coalesce=True,
            **job_kwargs,
        )

    def register_tier_jobs(self, settings: "MetricsSettings") -> list[ScheduledTask]:
        """Register one interval job per refresh tier.

        Args:
            settings: Metrics settings with tier cadences.

        Returns:
            The registered tasks, fast tier first.
        """
        specs = build_tier_specs(settings)
        return [
            self.add_interval_task(
                name=f"Refresh {tier.value} tier metrics",
                actor_name=TIER_ACTOR_NAMES[tier],
                minutes=specs[tier].cadence_minutes,
            )
            for tier in (Tier.FAST, Tier.MEDIUM, Tier.SLOW)
        ]

    async def _execute_task(self, task_id: str) -> None:
        """Enqueue the actor of a scheduled task.

        Args:
            task_id: ID of the task to execute.
        """
        task = self._tasks.get(task_id)
        if not task or not task.enabled:
            return

        logger.debug("Executing scheduled task: %s", task.name)

        try:
            actor = self._get_actor(task.actor_name)
            if actor is None:
                raise ValueError(f"Actor not found: {task.actor_name}")

            actor.send(*task.args, **task.kwargs)

            task.last_run = self._clock()
            task.run_count += 1
            logger.debug("Scheduled task %s sent to queue", task.name)

        except Exception as e:
            task.error_count += 1
            logger.error("Scheduled task %s failed: %s", task.name, str(e))

    def remove_task(self, task_id: str) -> bool:
        """Remove a scheduled task.

        Returns:
            True if removed.
        """
        if task_id not in self._tasks:
            return False

        if self._scheduler:
            try:
                self._scheduler.remove_job(task_id)
            except JobLookupError:
                logger.debug("No scheduler job for task %s", task_id)

        del self._tasks[task_id]
        logger.info("Removed scheduled task: %s", task_id)
        return True

    def get_task(self, task_id: str) -> ScheduledTask | None:
        """Get a scheduled task by ID."""
        return self._tasks.get(task_id)

    def get_job(self, task_id: str) -> Any:
        """Get the APScheduler job of a task, or None."""
        if self._scheduler is None:
            return None
        return self._scheduler.get_job(task_id)

    def list_tasks(self) -> list[ScheduledTask]:
        """List all scheduled tasks."""
        return list(self._tasks.values())

    async def start(self) -> None:
        """Start the scheduler."""
        if self._running:
            return

        self._scheduler = AsyncIOScheduler(timezone="UTC")
        for task in self._tasks.values():
            if task.enabled:
                self._add_job(task)
        self._scheduler.start()
        self._running = True

        logger.info("Metrics scheduler started")

    async def stop(self) -> None:
        """Stop the scheduler."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        self._running = False
        logger.info("Metrics scheduler stopped")

    def get_stats(self) -> dict[str, Any]:
        """Get scheduler statistics.

        Returns:
            Statistics dictionary.
        """
        return {
            "is_running": self._running,
            "task_count": len(self._tasks),
            "enabled_count": sum(1 for t in self._tasks.values() if t.enabled),
            "total_runs": sum(t.run_count for t in self._tasks.values()),
            "total_errors": sum(t.error_count for t in self._tasks.values()),
            "tasks": [t.to_dict() for t in self._tasks.values()],
        }


# Singleton instance
_scheduler: MetricsScheduler | None = None


def get_scheduler() -> MetricsScheduler:
    """Get the singleton scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = MetricsScheduler()
    return _scheduler


async def start_scheduler() -> MetricsScheduler:
    """Start the scheduler and register the tier jobs.

    Returns:
        Started scheduler instance.
    """
    scheduler = get_scheduler()
    await scheduler.start()

    if not scheduler.list_tasks():
        scheduler.register_tier_jobs(get_settings().metrics)
        logger.info("Registered %d metric refresh jobs", len(scheduler.list_tasks()))

    return scheduler


async def stop_scheduler() -> None:
    """Stop the scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None


async def run_scheduler() -> None:
    """Run the scheduler process until cancelled."""
    setup_logging(get_settings())
    await start_scheduler()
    try:
        await asyncio.Event().wait()
    finally:
        await stop_scheduler()


def main() -> None:
    """Console entry point for the scheduler process."""
    try:
        asyncio.run(run_scheduler())
    except KeyboardInterrupt:
        logger.info("Metrics scheduler interrupted")


if __name__ == "__main__":
    main()
