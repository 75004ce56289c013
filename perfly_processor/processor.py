"""
Background processor that runs pending performance tests.

The processor polls the job store for PENDING jobs, claims each one by moving
it to RUNNING, runs the analysis and records the outcome as COMPLETED or
FAILED. Each job runs as its own task; the poll loop never waits for them.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol

from perfly_analysis.pagespeed import PageSpeedClient
from perfly_common.config import DEFAULT_BATCH_SIZE, DEFAULT_POLL_INTERVAL
from perfly_common.models import COMPLETED, FAILED, PENDING, RUNNING, AnalysisResult, Job
from perfly_common.repository import JobRepository

logger = logging.getLogger(__name__)

IDLE = "IDLE"

# Not applied: a job that fails once is terminal and a re-test is a new job.
MAX_RETRIES = 3


class AnalysisClient(Protocol):
    async def analyze(self, url: str, strategy: str = "mobile") -> AnalysisResult: ...


def _error_message(error: BaseException) -> str:
    return str(error) or "Unknown error"


class JobProcessor:
    """
    Polls the job store and processes pending jobs.

    Only jobs this processor successfully claims (PENDING -> RUNNING) are
    analyzed, so several processors over one store never run a job twice.
    Dispatched job tasks are tracked and can be awaited with drain().
    """

    def __init__(
        self,
        repository: JobRepository,
        client_factory: Callable[[], AnalysisClient] = PageSpeedClient.from_env,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        batch_size: int = DEFAULT_BATCH_SIZE,
        strategy: str = "mobile",
    ):
        """
        Initialize the job processor.

        Args:
            repository: Job repository for reading and persisting state
            client_factory: Builds the analysis client on first use
            poll_interval: Seconds between poll passes
            batch_size: Maximum number of jobs picked up per pass
            strategy: Device profile passed to the analysis client
        """
        self.repository = repository
        self.client_factory = client_factory
        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self.strategy = strategy

        self._client: AnalysisClient | None = None
        self._running = False
        self._task: asyncio.Task | None = None
        self._job_tasks: set[asyncio.Task] = set()
        self._in_flight: set[str] = set()  # job ids with a live task

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def state(self) -> str:
        return RUNNING if self._running else IDLE

    @property
    def in_flight(self) -> frozenset[str]:
        """IDs of jobs currently being processed by this instance."""
        return frozenset(self._in_flight)

    async def start(self) -> None:
        """
        Start polling for pending jobs.

        Runs one pass immediately, then keeps polling every poll_interval
        seconds until stop() is called. Calling start() on a running
        processor does nothing.
        """
        if self._running:
            logger.info("Job processor already running")
            return

        self._running = True
        logger.info("Starting job processor...")

        await self.process_pending_once()

        if self._running:
            self._task = asyncio.create_task(self._run_loop())

    async def stop(self) -> None:
        """
        Stop polling.

        Jobs already dispatched keep running to completion; use drain() to
        wait for them.
        """
        if not self._running:
            return

        logger.info("Stopping job processor...")
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Job processor stopped")

    async def drain(self) -> None:
        """Wait until every dispatched job task has finished."""
        while self._job_tasks:
            await asyncio.gather(*list(self._job_tasks), return_exceptions=True)

    async def _run_loop(self) -> None:
        """Poll loop: sleep, then run a pass, while the processor is running."""
        while self._running:
            await asyncio.sleep(self.poll_interval)
            if not self._running:
                break
            try:
                await self.process_pending_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error processing pending jobs: {e}", exc_info=True)

    async def process_pending_once(self) -> list[str]:
        """
        Perform one poll pass.

        Fetches up to batch_size PENDING jobs, oldest first, and dispatches a
        task for each one not already in flight here.

        Returns:
            IDs of the jobs dispatched in this pass
        """
        try:
            pending = await self.repository.list_jobs_by_status(
                PENDING, self.batch_size
            )
        except Exception as e:
            logger.error(f"Error fetching pending jobs: {e}", exc_info=True)
            return []

        logger.debug(f"Poll pass: found {len(pending)} pending jobs")

        dispatched = []
        for job in pending:
            if job.id in self._in_flight:
                continue
            self._dispatch(job)
            dispatched.append(job.id)

        return dispatched

    def _dispatch(self, job: Job) -> None:
        self._in_flight.add(job.id)
        task = asyncio.create_task(self.process_job(job), name=f"perfly-job-{job.id}")
        self._job_tasks.add(task)
        task.add_done_callback(lambda t, job_id=job.id: self._on_job_done(job_id, t))

    def _on_job_done(self, job_id: str, task: asyncio.Task) -> None:
        self._job_tasks.discard(task)
        self._in_flight.discard(job_id)
        if task.cancelled():
            logger.warning(f"Processing of job {job_id} was cancelled")
        elif task.exception() is not None:
            logger.error(
                f"Error processing job {job_id}: {task.exception()}",
                exc_info=task.exception(),
            )

    def _get_client(self) -> AnalysisClient:
        if self._client is None:
            self._client = self.client_factory()
        return self._client

    async def process_job(self, job: Job) -> None:
        """
        Run a single PENDING job through its lifecycle.

        Never raises: every failure ends up either recorded on the job as
        FAILED or, if even that write fails, in the log.

        Args:
            job: The pending job to process
        """
        job_id = job.id

        try:
            claimed = await self.repository.update_job_status(job_id, RUNNING)
        except Exception as e:
            logger.error(f"Failed to start job {job_id}: {e}", exc_info=True)
            await self._mark_job_failed(job_id, e)
            return

        if not claimed:
            logger.debug(f"Job {job_id} is no longer pending, skipping")
            return

        logger.info(f"Starting job {job_id} for {job.url}")
        started = datetime.now(UTC)

        try:
            result = await self._get_client().analyze(job.url, self.strategy)
        except Exception as e:
            logger.error(f"Analysis of job {job_id} failed: {e}")
            await self._mark_job_failed(job_id, e)
            return

        await self._save_job_results(job_id, result, started)

    async def _save_job_results(
        self, job_id: str, result: AnalysisResult, started: datetime
    ) -> None:
        """Record a successful analysis, falling back to FAILED if the write fails."""
        try:
            completed_at = datetime.now(UTC)
            updated = await self.repository.update_job_status(
                job_id,
                COMPLETED,
                results=result.to_json(),
                completed_at=completed_at,
            )
            if not updated:
                logger.warning(f"Job {job_id} left RUNNING before results were saved")
                return
            duration = (completed_at - started).total_seconds()
            logger.info(
                f"Job {job_id} completed successfully in {duration:.1f}s "
                f"(score={result.summary.score}, grade={result.summary.grade})"
            )
        except Exception as e:
            logger.error(f"Failed to save results for job {job_id}: {e}", exc_info=True)
            await self._mark_job_failed(job_id, e)

    async def _mark_job_failed(self, job_id: str, error: BaseException) -> None:
        """
        Mark a job as FAILED with the error's message.

        If the write itself fails the job is left in its last persisted state.
        """
        message = _error_message(error)
        try:
            await self.repository.update_job_status(job_id, FAILED, error=message)
            logger.info(f"Job {job_id} marked as failed: {message}")
        except Exception as e:
            logger.error(f"Failed to mark job {job_id} as failed: {e}", exc_info=True)
