"""
Periodic full-population evaluation.

Key patterns:
- Structured concurrency with asyncio.TaskGroup
- Bounded parallelism with a semaphore (max_concurrent_patients)
- Per-patient timeouts; a slow or failing patient never blocks the batch
- Interval scheduling that compensates for pass duration
"""

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog

from vitals_engine.config import SchedulerConfig
from vitals_engine.domain.models import PassReport, PatientPassReport
from vitals_engine.domain.protocols import PatientDirectory
from vitals_engine.services.engine import RulesEngine
from vitals_engine.services.result import Result

logger = structlog.get_logger(__name__)


class EvaluationScheduler:
    """
    Runs the per-patient pass for every patient once per interval.

    Design principles:
    - Graceful degradation (partial failures are reported, not raised)
    - Observable (one structured log line per pass)
    - Resource-aware (bounded concurrency, timeouts)
    """

    def __init__(
        self,
        engine: RulesEngine,
        directory: PatientDirectory,
        config: SchedulerConfig | None = None,
    ) -> None:
        self.engine = engine
        self.directory = directory
        self.config = config or engine.config.scheduler
        self.logger = logger.bind(component="evaluation_scheduler")
        self._is_running: bool = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    @asynccontextmanager
    async def scheduling_session(self) -> AsyncIterator["EvaluationScheduler"]:
        """Mark the scheduler running for the duration of the block."""
        self.logger.info("evaluation_scheduler_session_started")
        self._is_running = True

        try:
            yield self
        finally:
            self._is_running = False
            self.logger.info("evaluation_scheduler_session_ended")

    async def run_pass(self) -> PassReport:
        """
        Evaluate every patient in the directory once.

        Raises:
            Exception: whatever the patient directory raised; no patient was evaluated
        """
        started_at = self.engine.clock()
        start_time = time.perf_counter()

        patient_ids = await self.directory.list_patient_ids()
        semaphore = asyncio.Semaphore(self.config.max_concurrent_patients)

        async with asyncio.TaskGroup() as task_group:
            tasks = [
                task_group.create_task(self._evaluate_patient(patient_id, semaphore))
                for patient_id in patient_ids
            ]

        report = PassReport(started_at=started_at)
        for patient_id, task in zip(patient_ids, tasks, strict=True):
            result = task.result()
            if result.is_ok():
                report.patients.append(result.unwrap())
            else:
                report.failed_patients[patient_id] = str(result.unwrap_err())

        report.duration_seconds = time.perf_counter() - start_time
        self.logger.info(
            "evaluation_pass_completed",
            total_patients=len(patient_ids),
            evaluated_patients=report.evaluated_count,
            failed_patients=len(report.failed_patients),
            actions_dispatched=report.dispatched_count,
            duration_seconds=round(report.duration_seconds, 3),
        )
        return report

    async def _evaluate_patient(
        self, patient_id: str, semaphore: asyncio.Semaphore
    ) -> Result[PatientPassReport, Exception]:
        async with semaphore:
            try:
                async with asyncio.timeout(self.config.patient_timeout_seconds):
                    return Result.ok(await self.engine.evaluate_for_patient(patient_id))
            except TimeoutError:
                self.logger.warning(
                    "patient_pass_timeout",
                    patient_id=patient_id,
                    timeout_seconds=self.config.patient_timeout_seconds,
                )
                return Result.err(
                    TimeoutError(f"timed out after {self.config.patient_timeout_seconds}s")
                )
            except Exception as e:
                self.logger.exception("patient_pass_failed", patient_id=patient_id, error=str(e))
                return Result.err(e)

    async def run_continuously(self) -> AsyncIterator[PassReport]:
        """
        Run passes at the configured interval until stop() is called.

        Yields pass reports as they complete.
        """
        if not self._is_running:
            raise RuntimeError("Scheduler not running - use scheduling_session()")

        self.logger.info("evaluation_scheduler_started", interval_seconds=self.config.interval_seconds)

        try:
            while self._is_running:
                pass_start = time.perf_counter()

                try:
                    report = await self.run_pass()
                except Exception as e:
                    self.logger.exception("evaluation_pass_failed", error=str(e))
                    await asyncio.sleep(self.config.error_backoff_seconds)
                    continue

                yield report

                elapsed = time.perf_counter() - pass_start
                sleep_time = max(0.0, self.config.interval_seconds - elapsed)
                if sleep_time > 0:
                    await asyncio.sleep(sleep_time)
                else:
                    self.logger.warning(
                        "evaluation_pass_slower_than_interval",
                        elapsed_seconds=round(elapsed, 3),
                        interval_seconds=self.config.interval_seconds,
                    )

        except asyncio.CancelledError:
            self.logger.info("evaluation_scheduler_cancelled")
            raise

    async def stop(self) -> None:
        """Let the current pass finish, then end run_continuously()."""
        self.logger.info("stopping_evaluation_scheduler")
        self._is_running = False
