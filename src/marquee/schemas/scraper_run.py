"""Pydantic schemas for scraper runs."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class ScraperRunResponse(BaseModel):
    """One row of the scraper run log."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    cinema_id: str
    started_at: datetime
    completed_at: datetime
    status: str
    screening_count: int
    baseline_count: float | None = None
    anomaly_type: str | None = None
    anomaly_details: dict[str, Any] | None = None
    run_metadata: dict[str, Any] | None = None


class VenueResultResponse(BaseModel):
    """Outcome of one venue in an orchestrator run."""

    model_config = ConfigDict(from_attributes=True)

    venue_id: str
    venue_name: str
    status: str
    success: bool
    screenings_found: int
    added: int
    updated: int
    failed: int
    stale_deleted: int
    retry_count: int
    duration_ms: int
    error: str | None = None


class ScrapeRequest(BaseModel):
    """Request model for triggering a scrape."""

    scraper: str
    venue_ids: list[str] = []
    retry_attempts: int | None = None


class ScrapeResponse(BaseModel):
    """Response for a scrape operation."""

    scraper: str
    success: bool
    duration_ms: int
    screenings_found: int
    screenings_added: int
    screenings_updated: int
    venues: list[VenueResultResponse]
