"""Scraper run orchestration: health checks, retries, anomaly detection and run logging."""

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marquee.config import settings
from marquee.database import AsyncSessionLocal
from marquee.models.scraper_run import CinemaBaseline, ScraperRun
from marquee.scrapers.base import BaseScraper
from marquee.scrapers.models import (
    ChainConfig,
    MultiVenueConfig,
    RawScreening,
    ScraperRunnerConfig,
    SingleVenueConfig,
    VenueDefinition,
)
from marquee.services.pipeline import IngestionRun
from marquee.utils.log import log_event

logger = logging.getLogger(__name__)

T = TypeVar("T")

BLOCKED_REASON = "scrape_blocked_by_diff_check"
MAX_CONCURRENT_RUN_WRITES = 5


class ScraperHealthError(Exception):
    """Raised when a scraper's health check reports the site unreachable."""


class VenueStatus(str, Enum):
    PENDING = "pending"
    HEALTH_CHECKING = "health_checking"
    SCRAPING = "scraping"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    BLOCKED = "blocked"
    FAILED = "failed"


@dataclass
class RunnerOptions:
    retry_attempts: int = field(default_factory=lambda: settings.scrape_max_retries)
    continue_on_error: bool = True
    venue_ids: list[str] = field(default_factory=list)
    retry_base_delay: float = field(default_factory=lambda: settings.retry_base_delay)
    inter_venue_delay: float = field(default_factory=lambda: settings.inter_venue_delay)
    timeout: float = field(default_factory=lambda: float(settings.scrape_timeout))


@dataclass
class VenueResult:
    venue_id: str
    venue_name: str
    status: VenueStatus = VenueStatus.PENDING
    screenings_found: int = 0
    added: int = 0
    updated: int = 0
    failed: int = 0
    stale_deleted: int = 0
    duration_ms: int = 0
    retry_count: int = 0
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status == VenueStatus.SUCCEEDED


@dataclass
class RunnerResult:
    started_at: datetime
    completed_at: datetime | None = None
    venue_results: list[VenueResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(r.success for r in self.venue_results)

    @property
    def duration_ms(self) -> int:
        if self.completed_at is None:
            return 0
        return int((self.completed_at - self.started_at).total_seconds() * 1000)

    @property
    def venues_succeeded(self) -> int:
        return sum(1 for r in self.venue_results if r.success)

    @property
    def venues_failed(self) -> int:
        return sum(1 for r in self.venue_results if not r.success)

    @property
    def screenings_found(self) -> int:
        return sum(r.screenings_found for r in self.venue_results)

    @property
    def screenings_added(self) -> int:
        return sum(r.added for r in self.venue_results)

    @property
    def screenings_updated(self) -> int:
        return sum(r.updated for r in self.venue_results)


# ----------------------------------------------------------------------------
# Baselines and anomalies
# ----------------------------------------------------------------------------


@dataclass(frozen=True)
class Baseline:
    count: float
    tolerance_percent: float


@dataclass(frozen=True)
class Anomaly:
    anomaly_type: str  # "zero_results", "low_count" or "high_count"
    details: dict[str, Any]


def detect_anomaly(screening_count: int, baseline: Baseline | None) -> Anomaly | None:
    """
    Compare a successful scrape's screening count with the venue's baseline.

    The deviation is ``|count - baseline| / baseline * 100``; anything
    beyond the baseline's tolerance is an anomaly. A zero baseline never
    flags.
    """
    if baseline is None or baseline.count <= 0:
        return None

    deviation = abs(screening_count - baseline.count) / baseline.count * 100
    if deviation <= baseline.tolerance_percent:
        return None

    if screening_count == 0:
        anomaly_type = "zero_results"
    elif screening_count < baseline.count:
        anomaly_type = "low_count"
    else:
        anomaly_type = "high_count"

    tolerance = baseline.tolerance_percent / 100
    return Anomaly(
        anomaly_type=anomaly_type,
        details={
            "expected_range": {
                "min": round(baseline.count * (1 - tolerance)),
                "max": round(baseline.count * (1 + tolerance)),
            },
            "percent_change": round(deviation),
        },
    )


async def get_baseline(db: AsyncSession, cinema_id: str, at: datetime) -> Baseline | None:
    """Weekend (Sat/Sun) or weekday baseline for a cinema, or None when there is none."""
    result = await db.execute(select(CinemaBaseline).where(CinemaBaseline.cinema_id == cinema_id))
    baseline = result.scalar_one_or_none()
    if baseline is None:
        return None

    count = baseline.weekend_avg if at.weekday() >= 5 else baseline.weekday_avg
    if count is None:
        return None
    return Baseline(count=count, tolerance_percent=baseline.tolerance_percent)


# ----------------------------------------------------------------------------
# Run log
# ----------------------------------------------------------------------------


class RunRecorder:
    """
    Appends ScraperRun rows in background tasks.

    ``record`` returns immediately; ``flush`` awaits all outstanding writes
    up to a timeout and must be called before the process exits. Write
    failures are logged and never raised.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        flush_timeout: float | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.flush_timeout = flush_timeout if flush_timeout is not None else settings.run_log_flush_timeout
        self._pending: set[asyncio.Task] = set()
        self._semaphore = asyncio.Semaphore(MAX_CONCURRENT_RUN_WRITES)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def record(
        self,
        cinema_id: str,
        started_at: datetime,
        status: str,
        screening_count: int,
        duration_ms: int,
        retry_count: int = 0,
        error: str | None = None,
    ) -> None:
        task = asyncio.create_task(
            self._write(cinema_id, started_at, status, screening_count, duration_ms, retry_count, error)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(
        self,
        cinema_id: str,
        started_at: datetime,
        status: str,
        screening_count: int,
        duration_ms: int,
        retry_count: int,
        error: str | None,
    ) -> None:
        async with self._semaphore:
            try:
                async with self.session_factory() as db:
                    baseline = await get_baseline(db, cinema_id, started_at)
                    anomaly_type = None
                    anomaly_details = None

                    if status == "success":
                        anomaly = detect_anomaly(screening_count, baseline)
                        if anomaly:
                            status = "anomaly"
                            anomaly_type = anomaly.anomaly_type
                            anomaly_details = anomaly.details
                            log_event(
                                logger,
                                logging.WARNING,
                                "venue_anomaly",
                                venue_id=cinema_id,
                                anomaly_type=anomaly_type,
                                screening_count=screening_count,
                                baseline=baseline.count if baseline else None,
                                **anomaly.details,
                            )
                    elif status == "failed" and error:
                        anomaly_type = "error"
                        anomaly_details = {"error_message": error}

                    db.add(
                        ScraperRun(
                            cinema_id=cinema_id,
                            started_at=started_at,
                            completed_at=datetime.now(timezone.utc),
                            status=status,
                            screening_count=screening_count,
                            baseline_count=baseline.count if baseline else None,
                            anomaly_type=anomaly_type,
                            anomaly_details=anomaly_details,
                            run_metadata={"duration_ms": duration_ms, "retry_count": retry_count},
                        )
                    )
                    await db.commit()
            except SQLAlchemyError as e:
                log_event(logger, logging.WARNING, "record_run_failed", venue_id=cinema_id, error=str(e))

    async def flush(self) -> None:
        if not self._pending:
            return
        _, still_pending = await asyncio.wait(set(self._pending), timeout=self.flush_timeout)
        if still_pending:
            logger.warning(f"{len(still_pending)} scraper run record(s) still pending after flush timeout")


# ----------------------------------------------------------------------------
# Orchestrator
# ----------------------------------------------------------------------------


class ScraperOrchestrator:
    """
    Runs a scraper configuration venue by venue.

    Each venue goes health check → scrape → ingest, retried with jittered
    exponential backoff on any error. A blocked ingestion verdict fails the
    venue immediately. Venue failures never stop sibling venues unless
    ``continue_on_error`` is off.
    """

    def __init__(
        self,
        ingestion: IngestionRun,
        recorder: RunRecorder | None = None,
        options: RunnerOptions | None = None,
    ) -> None:
        self.ingestion = ingestion
        self.recorder = recorder or RunRecorder()
        self.options = options or RunnerOptions()

    async def run(self, config: ScraperRunnerConfig) -> RunnerResult:
        result = RunnerResult(started_at=datetime.now(timezone.utc))
        log_event(
            logger,
            logging.INFO,
            "runner_started",
            type=config.type,
            **({"chain": config.chain_name} if isinstance(config, ChainConfig) else {}),
        )

        try:
            if isinstance(config, SingleVenueConfig):
                await self._run_venues([config.venue], lambda _: config.create_scraper(), result)
            elif isinstance(config, MultiVenueConfig):
                await self._run_venues(self._select(config.venues), config.create_scraper, result)
            elif isinstance(config, ChainConfig):
                await self._run_chain(config, result)
            else:
                raise TypeError(f"Unknown scraper configuration: {config!r}")
        finally:
            result.completed_at = datetime.now(timezone.utc)
            log_event(
                logger,
                logging.INFO if result.success else logging.WARNING,
                "runner_completed",
                success=result.success,
                duration_ms=result.duration_ms,
                venues_succeeded=result.venues_succeeded,
                venues_failed=result.venues_failed,
                screenings_found=result.screenings_found,
                screenings_added=result.screenings_added,
                screenings_updated=result.screenings_updated,
            )
            await self.recorder.flush()

        return result

    def _select(self, venues: list[VenueDefinition]) -> list[VenueDefinition]:
        if not self.options.venue_ids:
            return venues
        return [v for v in venues if v.id in self.options.venue_ids]

    def backoff_delay(self, retry: int) -> float:
        """Delay before retry number ``retry`` (1-based), with ±50% jitter."""
        return self.options.retry_base_delay * (2 ** (retry - 1)) * (0.5 + random.random())

    async def _retrying(self, label: str, operation: Callable[[], Awaitable[T]]) -> tuple[T | None, Exception | None, int]:
        """
        Run ``operation`` up to ``retry_attempts + 1`` times.

        Returns (value, last error, retries used); value is None when every
        attempt raised.
        """
        retries = 0
        last_error: Exception | None = None
        while retries <= self.options.retry_attempts:
            try:
                return await operation(), None, retries
            except Exception as e:
                last_error = e
                if retries >= self.options.retry_attempts:
                    break
                retries += 1
                log_event(
                    logger,
                    logging.WARNING,
                    "venue_retry",
                    venue_id=label,
                    attempt=retries,
                    max_attempts=self.options.retry_attempts,
                    error=str(e) or type(e).__name__,
                )
                await asyncio.sleep(self.backoff_delay(retries))
        return None, last_error, retries

    async def _prepare(self, venue: VenueDefinition, chain: str | None, result: RunnerResult) -> bool:
        try:
            await self.ingestion.ensure_cinema_exists(venue, chain)
        except SQLAlchemyError as e:
            log_event(logger, logging.ERROR, "venue_setup_failed", venue_id=venue.id, error=str(e))
            result.venue_results.append(
                VenueResult(venue.id, venue.name, status=VenueStatus.FAILED, error=str(e))
            )
            return False
        return True

    async def _run_venues(
        self,
        venues: list[VenueDefinition],
        create_scraper: Callable[[str], BaseScraper],
        result: RunnerResult,
    ) -> None:
        for index, venue in enumerate(venues):
            if index > 0 and self.options.inter_venue_delay:
                await asyncio.sleep(self.options.inter_venue_delay)

            if await self._prepare(venue, None, result):
                venue_result = await self._run_single_venue(venue, create_scraper(venue.id))
                result.venue_results.append(venue_result)

            if not result.venue_results[-1].success and not self.options.continue_on_error:
                break

    async def _run_single_venue(self, venue: VenueDefinition, scraper: BaseScraper) -> VenueResult:
        started_at = datetime.now(timezone.utc)
        started = time.monotonic()
        venue_result = VenueResult(venue.id, venue.name)

        async def attempt() -> VenueResult:
            venue_result.status = VenueStatus.HEALTH_CHECKING
            healthy = await asyncio.wait_for(scraper.health_check(), self.options.timeout)
            if not healthy:
                raise ScraperHealthError("Health check failed - site not accessible")

            venue_result.status = VenueStatus.SCRAPING
            log_event(logger, logging.INFO, "scrape_started", venue_id=venue.id, venue_name=venue.name)
            screenings = await asyncio.wait_for(scraper.scrape(), self.options.timeout)
            log_event(logger, logging.INFO, "scrape_completed", venue_id=venue.id, screenings_found=len(screenings))
            return await self._process_venue(venue_result, screenings, started_at)

        outcome, error, retries = await self._retrying(venue.id, attempt)
        venue_result.retry_count = retries
        venue_result.duration_ms = int((time.monotonic() - started) * 1000)

        if outcome is None:
            self._fail(venue_result, error, started_at)
        else:
            self._finish(venue_result, started_at)
        return venue_result

    async def _run_chain(self, config: ChainConfig, result: RunnerResult) -> None:
        if self.options.venue_ids:
            active_ids = list(self.options.venue_ids)
        elif config.active_venue_ids is not None:
            active_ids = config.active_venue_ids()
        else:
            active_ids = [v.id for v in config.venues]
        venues = [v for v in config.venues if v.id in active_ids]

        prepared = [v for v in venues if await self._prepare(v, config.chain_name, result)]
        if not prepared:
            return

        scraper = config.create_scraper()
        started_at = datetime.now(timezone.utc)
        started = time.monotonic()

        async def fetch() -> dict[str, list[RawScreening]]:
            healthy = await asyncio.wait_for(scraper.health_check(), self.options.timeout)
            if not healthy:
                raise ScraperHealthError("Health check failed - site not accessible")
            return await asyncio.wait_for(
                scraper.scrape_venues([v.id for v in prepared]),
                self.options.timeout,
            )

        by_venue, error, retries = await self._retrying(config.chain_name, fetch)

        if by_venue is None:
            log_event(
                logger,
                logging.ERROR,
                "chain_scrape_failed",
                chain=config.chain_name,
                error=str(error),
            )
            for venue in prepared:
                venue_result = VenueResult(
                    venue.id,
                    venue.name,
                    retry_count=retries,
                    duration_ms=int((time.monotonic() - started) * 1000),
                )
                self._fail(venue_result, error, started_at)
                result.venue_results.append(venue_result)
            return

        for index, venue in enumerate(prepared):
            if index > 0 and self.options.inter_venue_delay:
                await asyncio.sleep(self.options.inter_venue_delay)

            venue_started_at = datetime.now(timezone.utc)
            venue_started = time.monotonic()
            venue_result = VenueResult(venue.id, venue.name, retry_count=retries)
            try:
                await self._process_venue(venue_result, by_venue.get(venue.id, []), venue_started_at)
            except Exception as e:
                venue_result.duration_ms = int((time.monotonic() - venue_started) * 1000)
                self._fail(venue_result, e, venue_started_at)
            else:
                venue_result.duration_ms = int((time.monotonic() - venue_started) * 1000)
                self._finish(venue_result, venue_started_at)
            result.venue_results.append(venue_result)

            if not venue_result.success and not self.options.continue_on_error:
                break

    async def _process_venue(
        self,
        venue_result: VenueResult,
        screenings: list[RawScreening],
        started_at: datetime,
    ) -> VenueResult:
        """Run the ingestion pipeline for one venue and fill in its result."""
        venue_result.status = VenueStatus.PROCESSING
        venue_result.screenings_found = len(screenings)

        if not screenings:
            venue_result.status = VenueStatus.SUCCEEDED
            return venue_result

        pipeline = await self.ingestion.process_screenings(venue_result.venue_id, screenings, started_at)
        venue_result.failed = pipeline.failed

        if pipeline.blocked:
            venue_result.status = VenueStatus.BLOCKED
            venue_result.error = BLOCKED_REASON
            return venue_result

        venue_result.added = pipeline.added
        venue_result.updated = pipeline.updated
        venue_result.stale_deleted = pipeline.stale_deleted
        venue_result.status = VenueStatus.SUCCEEDED
        return venue_result

    def _finish(self, venue_result: VenueResult, started_at: datetime) -> None:
        """Log and record a venue that completed, successfully or blocked."""
        if venue_result.status == VenueStatus.BLOCKED:
            log_event(
                logger,
                logging.WARNING,
                "venue_blocked",
                venue_id=venue_result.venue_id,
                screenings_found=venue_result.screenings_found,
                duration_ms=venue_result.duration_ms,
            )
            self.recorder.record(
                venue_result.venue_id,
                started_at,
                "failed",
                venue_result.screenings_found,
                venue_result.duration_ms,
                venue_result.retry_count,
                error=BLOCKED_REASON,
            )
            return

        log_event(
            logger,
            logging.INFO,
            "venue_completed",
            venue_id=venue_result.venue_id,
            screenings_found=venue_result.screenings_found,
            added=venue_result.added,
            updated=venue_result.updated,
            failed=venue_result.failed,
            stale_deleted=venue_result.stale_deleted,
            duration_ms=venue_result.duration_ms,
            retry_count=venue_result.retry_count,
        )
        self.recorder.record(
            venue_result.venue_id,
            started_at,
            "success",
            venue_result.screenings_found,
            venue_result.duration_ms,
            venue_result.retry_count,
        )

    def _fail(self, venue_result: VenueResult, error: Exception | None, started_at: datetime) -> None:
        message = (str(error) or type(error).__name__) if error else "unknown error"
        venue_result.status = VenueStatus.FAILED
        venue_result.error = message
        log_event(
            logger,
            logging.ERROR,
            "venue_failed",
            venue_id=venue_result.venue_id,
            error=message,
            retry_count=venue_result.retry_count,
            duration_ms=venue_result.duration_ms,
        )
        self.recorder.record(
            venue_result.venue_id,
            started_at,
            "failed",
            0,
            venue_result.duration_ms,
            venue_result.retry_count,
            error=message,
        )


async def run_scraper(
    config: ScraperRunnerConfig,
    options: RunnerOptions | None = None,
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
) -> RunnerResult:
    """Run one scraper configuration in its own ingestion run and session."""
    async with session_factory() as db:
        ingestion = IngestionRun(db)
        await ingestion.start()
        orchestrator = ScraperOrchestrator(
            ingestion,
            RunRecorder(session_factory),
            options,
        )
        try:
            return await orchestrator.run(config)
        finally:
            await ingestion.finish()


def parse_venue_args(args: list[str], prefix: str | None = None) -> list[str]:
    """
    Expand CLI venue arguments, allowing shorthand ids.

    With prefix "curzon-", "soho" becomes "curzon-soho"; already
    prefixed ids are left alone.
    """
    if not prefix:
        return list(args)
    return [arg if arg.startswith(prefix) else f"{prefix}{arg}" for arg in args]
