import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel

from perfly_analysis.gemini import GeminiSummarizer
from perfly_analysis.insights import Summarizer, analyze_results
from perfly_common.config import (
    auto_start_processor,
    get_batch_size,
    get_database_path,
    get_poll_interval,
    get_strategy,
)
from perfly_common.models import STATUSES, Job
from perfly_common.repository import JobRepository
from perfly_persistence.sqlite_repository import SQLiteJobRepository
from perfly_processor.processor import JobProcessor

from .urls import URLValidationError, normalize_url

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Global instances (initialized at startup by the lifespan handler)
repository: JobRepository | None = None
processor: JobProcessor | None = None
summarizer: Summarizer | None = None


class RunTestRequest(BaseModel):
    url: str | None = None


class AnalyzeRequest(BaseModel):
    testResults: dict[str, Any] | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI app.

    Handles startup and shutdown events:
    - Startup: Open the database, build the job processor and, when a Gemini
      API key is configured, the AI summarizer. The processor is started here
      when AUTO_START_PROCESSOR=true, otherwise on the first submission.
    - Shutdown: Stop polling, let in-flight jobs finish, close the database.
    """
    global repository, processor, summarizer

    repository = SQLiteJobRepository(get_database_path())
    await repository.initialize()

    processor = JobProcessor(
        repository=repository,
        poll_interval=get_poll_interval(),
        batch_size=get_batch_size(),
        strategy=get_strategy(),
    )

    summarizer = GeminiSummarizer.from_env()
    if summarizer is None:
        logger.info("No GEMINI_API_KEY set, AI analysis will use the fallback")

    if auto_start_processor():
        logger.info("Auto-starting job processor...")
        await processor.start()

    yield

    await processor.stop()
    await processor.drain()
    await repository.close()


app = FastAPI(lifespan=lifespan)


def get_repository() -> JobRepository:
    """
    Get the global repository instance.

    Returns:
        The initialized JobRepository

    Raises:
        RuntimeError: If repository is not initialized
    """
    if repository is None:
        raise RuntimeError("Repository not initialized")
    return repository


def get_processor() -> JobProcessor:
    """
    Get the job processor owned by this server process.

    Raises:
        RuntimeError: If the processor is not initialized
    """
    if processor is None:
        raise RuntimeError("Job processor not initialized")
    return processor


def get_summarizer() -> Summarizer | None:
    """
    Get the AI summarizer built at startup.

    Returns:
        The configured Summarizer, or None when no GEMINI_API_KEY is set (the
        analyze endpoint then returns the fallback analysis)
    """
    return summarizer


@app.post("/api/tests/run")
async def run_test(
    body: RunTestRequest,
    repo: JobRepository = Depends(get_repository),
    job_processor: JobProcessor = Depends(get_processor),
) -> dict[str, str]:
    """
    Queue a performance test for a URL.

    The URL is validated and normalized (https is assumed when no scheme is
    given), a PENDING job is stored and the processor is started if it is not
    running yet.

    Returns:
        Dictionary with the new testId

    Raises:
        HTTPException: 400 if the URL is missing or malformed
    """
    try:
        url = normalize_url(body.url)
    except URLValidationError as e:
        logger.warning(f"Test creation failed for {body.url!r}: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    job = Job(id=str(uuid.uuid4()), url=url)
    await repo.create_job(job)
    logger.info(f"Created test {job.id} for {url}")

    # A processor that fails to start is not fatal: the job stays PENDING and
    # is picked up by the next pass of any running processor.
    try:
        await job_processor.start()
    except Exception as e:
        logger.warning(f"Failed to start job processor: {e}", exc_info=True)

    return {
        "testId": job.id,
        "message": "Test queued successfully",
        "estimatedTime": "2-5 minutes",
    }


@app.get("/api/tests")
async def list_tests(
    status: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    repo: JobRepository = Depends(get_repository),
) -> list[dict[str, Any]]:
    """
    List recent tests, newest first.

    Args:
        status: Only include tests in this status
        limit: Maximum number of tests to return

    Raises:
        HTTPException: 400 if status is not a known status
    """
    if status is not None and status not in STATUSES:
        raise HTTPException(status_code=400, detail=f"Unknown status: {status}")

    jobs = await repo.list_jobs(status=status, limit=limit)
    return [job.to_summary_dict() for job in jobs]


@app.get("/api/tests/{test_id}")
async def get_test(
    test_id: str,
    repo: JobRepository = Depends(get_repository),
) -> dict[str, Any]:
    """
    Get a test's status and, once completed, its normalized results.

    Returns:
        Dictionary with id, url, status, results (or null), error (or null)
        and createdAt

    Raises:
        HTTPException: 404 if the test is not found
    """
    job = await repo.get_job(test_id)

    if job is None:
        raise HTTPException(status_code=404, detail="Test not found")

    return job.to_dict()


@app.post("/api/ai/analyze")
async def analyze_test_results(
    body: AnalyzeRequest,
    ai: Summarizer | None = Depends(get_summarizer),
) -> dict[str, Any]:
    """
    Produce optimization recommendations for normalized test results.

    Raises:
        HTTPException: 400 if testResults is missing
        HTTPException: 502 if the summarizer fails
    """
    if not body.testResults:
        raise HTTPException(status_code=400, detail="Test results are required")

    try:
        analysis = await analyze_results(body.testResults, ai)
    except Exception as e:
        logger.error(f"AI analysis failed: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail="Failed to analyze test results")

    return {"analysis": analysis}


@app.get("/health")
async def health_check() -> dict[str, str]:
    """
    Health check endpoint.

    Returns:
        Dictionary with status="ok" if server is running
    """
    return {"status": "ok"}
