"""Pydantic schemas for film data and duplicate merges."""

from pydantic import BaseModel, ConfigDict


class FilmSummary(BaseModel):
    """The ranking fields of a film within a duplicate cluster."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    year: int | None = None
    tmdb_id: int | None = None
    screening_count: int = 0


class DuplicateClusterResponse(BaseModel):
    """A group of films judged to be the same film."""

    model_config = ConfigDict(from_attributes=True)

    reason: str
    primary: FilmSummary
    duplicates: list[FilmSummary]


class MergeResponse(BaseModel):
    """Result of a duplicate merge run."""

    model_config = ConfigDict(from_attributes=True)

    dry_run: bool
    merged: int
    films_deleted: int
    failed: int
    clusters: list[DuplicateClusterResponse]
