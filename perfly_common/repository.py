"""
Abstract repository interface for job persistence.

This module defines the contract that any database implementation must follow,
allowing easy swapping between SQLite, PostgreSQL, MySQL, etc.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from .models import ALLOWED_TRANSITIONS, COMPLETED, FAILED, Job


class JobRepository(ABC):
    """
    Abstract base class for job storage operations.

    Every operation is atomic at the row level. Implementations handle their
    own connection management and must be safe to call from concurrent tasks.
    """

    @abstractmethod
    async def create_job(self, job: Job) -> None:
        """
        Create a new job in the database.

        Args:
            job: Job object to persist

        Raises:
            Exception: If job with same ID already exists
        """
        pass

    @abstractmethod
    async def get_job(self, job_id: str) -> Job | None:
        """
        Retrieve a job by its ID.

        Args:
            job_id: ID of the job to retrieve

        Returns:
            Job object if found, None otherwise
        """
        pass

    @abstractmethod
    async def update_job_status(
        self,
        job_id: str,
        status: str,
        *,
        results: str | None = None,
        error: str | None = None,
        completed_at: datetime | None = None,
    ) -> bool:
        """
        Move a job forward to a new status, refreshing its updated_at.

        The write only applies when the job is currently in one of the allowed
        source states for ``status`` (see ``models.ALLOWED_TRANSITIONS``), so
        the PENDING -> RUNNING update doubles as the claim on a job.

        Args:
            job_id: ID of the job to update
            status: Target status ("RUNNING", "COMPLETED" or "FAILED")
            results: Serialized results, only with "COMPLETED"
            error: Failure reason, only with "FAILED"
            completed_at: Completion timestamp, only with "COMPLETED"

        Returns:
            True if the row was updated, False if it was missing or not in an
            allowed source state

        Raises:
            ValueError: If the status or field combination is invalid
        """
        pass

    @abstractmethod
    async def list_jobs_by_status(self, status: str, limit: int) -> list[Job]:
        """
        List jobs in a given status, oldest first.

        This is the processor's pickup order; listings for display use
        list_jobs(status=...) instead.

        Args:
            status: Status to filter on
            limit: Maximum number of jobs to return

        Returns:
            Up to ``limit`` jobs ordered by creation time ascending
        """
        pass

    @abstractmethod
    async def list_jobs(
        self,
        user_id: str | None = None,
        status: str | None = None,
        limit: int = 50,
    ) -> list[Job]:
        """
        List recent jobs, newest first.

        Args:
            user_id: Only return jobs owned by this user, if given
            status: Only return jobs in this status, if given
            limit: Maximum number of jobs to return

        Returns:
            List of Job objects
        """
        pass

    @abstractmethod
    async def initialize(self) -> None:
        """
        Initialize the database (create tables, etc.).

        Called once at application startup.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Close database connections and cleanup resources.

        Called at application shutdown.
        """
        pass


def validate_transition(
    status: str,
    results: str | None,
    error: str | None,
    completed_at: datetime | None,
) -> None:
    """
    Check that a status update carries only the fields its target state allows.

    Raises:
        ValueError: If the target status or field combination is invalid
    """
    if status not in ALLOWED_TRANSITIONS:
        raise ValueError(f"Cannot transition a job to status {status!r}")
    if results is not None and status != COMPLETED:
        raise ValueError("results can only be set when completing a job")
    if completed_at is not None and status != COMPLETED:
        raise ValueError("completed_at can only be set when completing a job")
    if error is not None and status != FAILED:
        raise ValueError("error can only be set when failing a job")
    if status == COMPLETED and results is None:
        raise ValueError("results are required when completing a job")
    if status == FAILED and error is None:
        raise ValueError("error is required when failing a job")
