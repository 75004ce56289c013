"""
SQLite implementation of the job repository.

Uses aiosqlite for async operations and provides thread-safe access.
Can be easily replaced with PostgreSQL/MySQL implementations.
"""

from datetime import UTC, datetime

import aiosqlite

from perfly_common.models import ALLOWED_TRANSITIONS, COMPLETED, Job
from perfly_common.repository import JobRepository, validate_transition

JOB_COLUMNS = (
    "id, user_id, url, status, results, error, created_at, updated_at, completed_at"
)


def _parse_timestamp(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_job(row: tuple) -> Job:
    (
        job_id,
        user_id,
        url,
        status,
        results,
        error,
        created_at_str,
        updated_at_str,
        completed_at_str,
    ) = row
    return Job(
        id=job_id,
        user_id=user_id,
        url=url,
        status=status,
        results=results,
        error=error,
        created_at=datetime.fromisoformat(created_at_str),
        updated_at=datetime.fromisoformat(updated_at_str),
        completed_at=_parse_timestamp(completed_at_str),
    )


class SQLiteJobRepository(JobRepository):
    """
    SQLite-based job storage implementation.

    Uses a single database file with one table:
    - tests: One row per performance test job, results stored as JSON text
    """

    def __init__(self, db_path: str = "perfly.db"):
        """
        Initialize the SQLite repository.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._connection is None:
            self._connection = await aiosqlite.connect(self.db_path)
        return self._connection

    async def initialize(self) -> None:
        """
        Create database tables if they don't exist.

        Schema:
        - tests table: Job metadata, status, serialized results and error
        """
        conn = await self._get_connection()

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS tests (
                id TEXT PRIMARY KEY,
                user_id TEXT,
                url TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'PENDING',
                results TEXT,
                error TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                completed_at TEXT
            )
        """)

        # The processor polls by status in creation order
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_tests_status_created_at
            ON tests(status, created_at)
        """)

        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_tests_user_id
            ON tests(user_id)
        """)

        await conn.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def create_job(self, job: Job) -> None:
        """
        Create a new job in the database.

        Args:
            job: Job object to persist
        """
        conn = await self._get_connection()

        await conn.execute(
            f"""
            INSERT INTO tests ({JOB_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                job.id,
                job.user_id,
                job.url,
                job.status,
                job.results,
                job.error,
                job.created_at.isoformat(),
                job.updated_at.isoformat(),
                job.completed_at.isoformat() if job.completed_at else None,
            ),
        )
        await conn.commit()

    async def get_job(self, job_id: str) -> Job | None:
        """
        Retrieve a job by its ID.

        Args:
            job_id: ID of the job to retrieve

        Returns:
            Job object if found, None otherwise
        """
        conn = await self._get_connection()

        cursor = await conn.execute(
            f"SELECT {JOB_COLUMNS} FROM tests WHERE id = ?",
            (job_id,),
        )
        row = await cursor.fetchone()

        if row is None:
            return None

        return _row_to_job(row)

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
        Move a job forward to a new status.

        The UPDATE is guarded by the job's current status, so a job that has
        already moved on (or was claimed by another processor) is left as is.

        Args:
            job_id: ID of the job to update
            status: Target status
            results: Serialized results (COMPLETED only)
            error: Failure reason (FAILED only)
            completed_at: Completion timestamp (COMPLETED only)

        Returns:
            True if the row was updated
        """
        validate_transition(status, results, error, completed_at)
        if status == COMPLETED and completed_at is None:
            completed_at = datetime.now(UTC)

        conn = await self._get_connection()

        # Build dynamic SQL based on what's being updated
        updates = ["status = ?", "updated_at = ?"]
        params: list = [status, datetime.now(UTC).isoformat()]

        if results is not None:
            updates.append("results = ?")
            params.append(results)

        if error is not None:
            updates.append("error = ?")
            params.append(error)

        if completed_at is not None:
            updates.append("completed_at = ?")
            params.append(completed_at.isoformat())

        sources = ALLOWED_TRANSITIONS[status]
        placeholders = ", ".join("?" for _ in sources)
        params.append(job_id)  # WHERE clause parameters
        params.extend(sources)

        sql = (
            f"UPDATE tests SET {', '.join(updates)} "
            f"WHERE id = ? AND status IN ({placeholders})"
        )
        cursor = await conn.execute(sql, params)
        await conn.commit()

        return cursor.rowcount > 0

    async def list_jobs_by_status(self, status: str, limit: int) -> list[Job]:
        """
        List jobs in a given status, oldest first.

        This is the processor's pickup order; listings for display use
        list_jobs(status=...) instead.

        Args:
            status: Status to filter on
            limit: Maximum number of jobs to return

        Returns:
            List of Job objects ordered by creation time (then insertion order)
        """
        conn = await self._get_connection()

        cursor = await conn.execute(
            f"""
            SELECT {JOB_COLUMNS}
            FROM tests
            WHERE status = ?
            ORDER BY created_at ASC, rowid ASC
            LIMIT ?
            """,
            (status, limit),
        )

        rows = await cursor.fetchall()
        return [_row_to_job(row) for row in rows]

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
        conn = await self._get_connection()

        # Build dynamic WHERE clause based on the filters given
        conditions = []
        params: list = []

        if user_id is not None:
            conditions.append("user_id = ?")
            params.append(user_id)

        if status is not None:
            conditions.append("status = ?")
            params.append(status)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        params.append(limit)

        cursor = await conn.execute(
            f"""
            SELECT {JOB_COLUMNS}
            FROM tests
            {where}
            ORDER BY created_at DESC, rowid DESC
            LIMIT ?
            """,
            params,
        )

        rows = await cursor.fetchall()
        return [_row_to_job(row) for row in rows]
