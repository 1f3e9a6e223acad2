"""
Engagement Check Scheduler

Daily batch that evaluates every student for a retention nudge. Students
are processed by a bounded pool of concurrent workers; one student's
failure is logged and counted without stopping the batch.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Awaitable, Callable, List, Optional
import logging

from config.settings import settings
from services.activity_repository import ActivityRepository
from services.metrics import MetricsSink, NullMetricsSink

# Returns True when a nudge was sent for the student
StudentCheck = Callable[[str], Awaitable[bool]]


@dataclass
class BatchReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    students_checked: int = 0
    nudges_sent: int = 0
    failures: int = 0
    failed_student_ids: List[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()


class EngagementCheckScheduler:
    """Runs the engagement check over all students, once a day"""

    def __init__(
        self,
        repository: ActivityRepository,
        check_student: StudentCheck,
        pool_size: Optional[int] = None,
        run_hour: Optional[int] = None,
        metrics: Optional[MetricsSink] = None,
    ):
        self.repository = repository
        self.check_student = check_student
        self.pool_size = pool_size or settings.ENGAGEMENT_WORKER_POOL_SIZE
        self.run_hour = settings.ENGAGEMENT_CHECK_HOUR if run_hour is None else run_hour
        self.metrics = metrics or NullMetricsSink()
        self.task: Optional[asyncio.Task] = None
        self.is_running = False
        self.last_report: Optional[BatchReport] = None
        self.logger = logging.getLogger("EngagementCheckScheduler")

    async def run_once(self) -> BatchReport:
        """
        Check every student once.

        Returns:
            BatchReport with per-batch counts
        """
        report = BatchReport(started_at=datetime.utcnow())
        student_ids = await self.repository.list_student_ids()
        semaphore = asyncio.Semaphore(self.pool_size)

        async def worker(student_id: str):
            async with semaphore:
                try:
                    sent = await self.check_student(student_id)
                except Exception as e:
                    self.logger.error(f"Engagement check failed for student {student_id}: {e}", exc_info=True)
                    report.failures += 1
                    report.failed_student_ids.append(student_id)
                    return
                report.students_checked += 1
                if sent:
                    report.nudges_sent += 1

        self.logger.info(f"🔍 Checking engagement for {len(student_ids)} students")
        await asyncio.gather(*(worker(student_id) for student_id in student_ids))

        report.finished_at = datetime.utcnow()
        self.last_report = report

        self.metrics.increment("engagement_batch.students", report.students_checked)
        self.metrics.increment("engagement_batch.failures", report.failures)
        self.metrics.observe("engagement_batch.duration_seconds", report.duration_seconds)
        self.logger.info(
            f"✅ Engagement batch done: checked={report.students_checked} "
            f"nudged={report.nudges_sent} failed={report.failures} "
            f"in {report.duration_seconds:.1f}s"
        )
        return report

    def seconds_until_next_run(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now()
        target = datetime.combine(now.date(), time(self.run_hour, 0))
        if now >= target:
            target += timedelta(days=1)
        return (target - now).total_seconds()

    async def start(self):
        if self.is_running:
            self.logger.warning("Engagement scheduler already running")
            return

        self.is_running = True
        self.task = asyncio.create_task(self._daily_loop())
        self.logger.info(f"⏰ Engagement scheduler started (daily at {self.run_hour:02d}:00)")

    async def stop(self):
        self.is_running = False
        if self.task:
            self.task.cancel()
            await asyncio.gather(self.task, return_exceptions=True)
            self.task = None
        self.logger.info("🛑 Engagement scheduler stopped")

    async def _daily_loop(self):
        while self.is_running:
            try:
                wait_seconds = self.seconds_until_next_run()
                self.logger.info(f"⏰ Next engagement check in {wait_seconds / 3600:.1f} hours")
                await asyncio.sleep(wait_seconds)
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Error in engagement scheduler: {e}", exc_info=True)
                # Wait 1 hour before retrying
                await asyncio.sleep(3600)
