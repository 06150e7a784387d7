"""Admin API endpoints for manual operations."""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marquee.database import get_db
from marquee.models import ScraperRun
from marquee.schemas import (
    MergeResponse,
    ScrapeRequest,
    ScrapeResponse,
    ScraperRunResponse,
    VenueResultResponse,
)
from marquee.scrapers import get_scraper_config
from marquee.services.film_merger import DuplicateFilmMerger
from marquee.tasks.orchestrator import RunnerOptions, run_scraper
from marquee.tasks.scrape_job import run_scrape_all

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/admin/scrape", response_model=ScrapeResponse)
async def trigger_scrape(request: ScrapeRequest) -> ScrapeResponse:
    """
    Manually run one registered scraper.

    This endpoint:
    1. Runs health checks and scrapes with retries
    2. Resolves every screening to a film and stores it
    3. Writes a scraper run row per venue

    Note: This is a synchronous operation that may take minutes for chains.
    """
    config = get_scraper_config(request.scraper)
    if config is None:
        raise HTTPException(status_code=404, detail=f"No scraper registered as {request.scraper!r}")

    options = RunnerOptions(venue_ids=request.venue_ids)
    if request.retry_attempts is not None:
        options.retry_attempts = request.retry_attempts

    logger.info(f"Manual scrape of {request.scraper} requested")
    result = await run_scraper(config, options)

    return ScrapeResponse(
        scraper=request.scraper,
        success=result.success,
        duration_ms=result.duration_ms,
        screenings_found=result.screenings_found,
        screenings_added=result.screenings_added,
        screenings_updated=result.screenings_updated,
        venues=[VenueResultResponse.model_validate(v) for v in result.venue_results],
    )


@router.post("/admin/scrape-all")
async def trigger_scrape_all(background_tasks: BackgroundTasks) -> dict[str, str]:
    """Trigger a run of every registered scraper as a background task.

    Returns immediately; the scrape runs asynchronously.
    """
    background_tasks.add_task(run_scrape_all)
    return {"status": "started"}


@router.post("/admin/films/merge-duplicates", response_model=MergeResponse)
async def merge_duplicate_films(
    execute: bool = Query(False, description="Apply the merges; otherwise only report them"),
    db: AsyncSession = Depends(get_db),
) -> MergeResponse:
    """Find duplicate films and optionally merge each cluster into its best record."""
    merger = DuplicateFilmMerger(db)
    report = await merger.run(dry_run=not execute)
    return MergeResponse.model_validate(report)


@router.get("/admin/scraper-runs", response_model=list[ScraperRunResponse])
async def list_scraper_runs(
    cinema_id: str | None = None,
    status: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> list[ScraperRunResponse]:
    """Most recent scraper runs, newest first."""
    stmt = select(ScraperRun).order_by(ScraperRun.started_at.desc()).limit(limit)
    if cinema_id:
        stmt = stmt.where(ScraperRun.cinema_id == cinema_id)
    if status:
        stmt = stmt.where(ScraperRun.status == status)

    result = await db.execute(stmt)
    return [ScraperRunResponse.model_validate(run) for run in result.scalars().all()]
