"""Batch detection and merging of duplicate Film records."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Literal

from sqlalchemy import delete, func, select, tuple_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marquee.config import settings
from marquee.models.film import Film
from marquee.models.screening import Screening
from marquee.models.season import SeasonFilm
from marquee.models.user_film_status import UserFilmStatus
from marquee.utils.text import normalise_title, set_similarity, trigrams

logger = logging.getLogger(__name__)

# Columns a survivor takes from a duplicate when its own value is empty
ABSORBED_FIELDS = (
    "year",
    "imdb_id",
    "directors",
    "cast",
    "countries",
    "genres",
    "overview",
    "poster_url",
    "runtime",
)


@dataclass(frozen=True)
class ScoreWeights:
    external_id: float = 100
    poster: float = 50
    synopsis: float = 20
    runtime: float = 10
    directors: float = 10
    match_confidence: float = 10
    screening: float = 1


@dataclass
class FilmCandidate:
    """The fields of a Film the merger needs to cluster and rank it."""

    id: str
    title: str
    year: int | None = None
    tmdb_id: int | None = None
    has_poster: bool = False
    has_synopsis: bool = False
    has_runtime: bool = False
    has_directors: bool = False
    match_confidence: float | None = None
    screening_count: int = 0

    def score(self, weights: ScoreWeights = ScoreWeights()) -> float:
        return (
            weights.external_id * (self.tmdb_id is not None)
            + weights.poster * self.has_poster
            + weights.synopsis * self.has_synopsis
            + weights.runtime * self.has_runtime
            + weights.directors * self.has_directors
            + weights.match_confidence * (self.match_confidence or 0)
            + weights.screening * self.screening_count
        )


@dataclass
class DuplicateCluster:
    reason: Literal["external_id", "similarity"]
    primary: FilmCandidate
    duplicates: list[FilmCandidate]


@dataclass
class MergeReport:
    dry_run: bool
    clusters: list[DuplicateCluster] = field(default_factory=list)
    merged: int = 0
    films_deleted: int = 0
    failed: int = 0


class UnionFind:
    """
    Disjoint sets over string keys with path compression.

    Each root carries the TMDb ids and years of its members. ``union``
    refuses to join two sets that hold different TMDb ids or different
    years, so a film with neither cannot bridge two distinct films.
    """

    def __init__(self) -> None:
        self.parent: dict[str, str] = {}
        self.tmdb_ids: dict[str, set[int]] = {}
        self.years: dict[str, set[int]] = {}

    def add(self, x: str, tmdb_id: int | None = None, year: int | None = None) -> None:
        if x in self.parent:
            return
        self.parent[x] = x
        self.tmdb_ids[x] = {tmdb_id} if tmdb_id is not None else set()
        self.years[x] = {year} if year is not None else set()

    def find(self, x: str) -> str:
        self.add(x)
        root = x
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[x] != root:
            self.parent[x], x = root, self.parent[x]
        return root

    def union(self, a: str, b: str) -> bool:
        """Join the sets of ``a`` and ``b``. Returns False when they conflict."""
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return True
        if _conflicts(self.tmdb_ids[root_a], self.tmdb_ids[root_b]) or _conflicts(
            self.years[root_a], self.years[root_b]
        ):
            return False
        self.parent[root_b] = root_a
        self.tmdb_ids[root_a] |= self.tmdb_ids.pop(root_b)
        self.years[root_a] |= self.years.pop(root_b)
        return True

    def groups(self) -> list[list[str]]:
        members: dict[str, list[str]] = defaultdict(list)
        for x in self.parent:
            members[self.find(x)].append(x)
        return list(members.values())


def _conflicts(left: set[int], right: set[int]) -> bool:
    return bool(left) and bool(right) and left != right


def _years_compatible(a: FilmCandidate, b: FilmCandidate) -> bool:
    return a.year is None or b.year is None or a.year == b.year


def _make_cluster(
    reason: Literal["external_id", "similarity"],
    members: list[FilmCandidate],
    weights: ScoreWeights,
) -> DuplicateCluster:
    ranked = sorted(members, key=lambda f: (-f.score(weights), f.id))
    return DuplicateCluster(reason=reason, primary=ranked[0], duplicates=ranked[1:])


def find_duplicate_clusters(
    films: list[FilmCandidate],
    threshold: float = 0.5,
    weights: ScoreWeights = ScoreWeights(),
) -> list[DuplicateCluster]:
    """
    Group films that are the same real film.

    Pass 1 groups films sharing a TMDb id. Pass 2 compares the remaining
    films pairwise by trigram similarity of their normalized titles,
    keeping pairs at or above ``threshold`` whose years match or are
    missing. Pairs are joined strongest first, and two sets holding
    different TMDb ids or different years are never joined, even through
    a film that has neither. In each cluster the highest scoring film is
    the primary; ties go to the smallest id.
    """
    clusters: list[DuplicateCluster] = []

    by_tmdb_id: dict[int, list[FilmCandidate]] = defaultdict(list)
    for film in films:
        if film.tmdb_id is not None:
            by_tmdb_id[film.tmdb_id].append(film)

    covered: set[str] = set()
    for members in by_tmdb_id.values():
        if len(members) > 1:
            clusters.append(_make_cluster("external_id", members, weights))
            covered.update(f.id for f in members)

    remaining = [f for f in films if f.id not in covered]
    grams = {f.id: trigrams(normalise_title(f.title)) for f in remaining}
    by_id = {f.id: f for f in remaining}

    pairs: list[tuple[float, str, str]] = []
    for i, a in enumerate(remaining):
        if not grams[a.id]:
            continue
        for b in remaining[i + 1 :]:
            if not grams[b.id] or not _years_compatible(a, b):
                continue
            # Two different TMDb ids are two different films
            if a.tmdb_id is not None and b.tmdb_id is not None:
                continue
            score = set_similarity(grams[a.id], grams[b.id])
            if score >= threshold:
                pairs.append((score, a.id, b.id))

    uf = UnionFind()
    for film in remaining:
        uf.add(film.id, film.tmdb_id, film.year)
    # Strongest pairs first, so a weak link cannot claim a film a closer match holds
    for score, a_id, b_id in sorted(pairs, key=lambda p: (-p[0], p[1], p[2])):
        if not uf.union(a_id, b_id):
            logger.debug(f"Not joining {a_id!r} and {b_id!r} ({score:.2f}): conflicting TMDb id or year")

    for group in uf.groups():
        if len(group) > 1:
            clusters.append(_make_cluster("similarity", [by_id[i] for i in group], weights))

    return clusters


class DuplicateFilmMerger:
    """
    Finds and merges duplicate films across the whole Film table.

    Each cluster is merged in its own transaction: the survivor absorbs
    missing metadata, dependent rows are re-pointed (rows that would clash
    with the survivor's are dropped), and the duplicates are deleted.
    """

    def __init__(
        self,
        db: AsyncSession,
        threshold: float | None = None,
        weights: ScoreWeights | None = None,
    ) -> None:
        self.db = db
        self.threshold = threshold if threshold is not None else settings.merge_similarity_threshold
        self.weights = weights or ScoreWeights()

    async def load_candidates(self) -> list[FilmCandidate]:
        screening_counts = (
            select(Screening.film_id, func.count(Screening.id).label("n"))
            .group_by(Screening.film_id)
            .subquery()
        )
        result = await self.db.execute(
            select(Film, func.coalesce(screening_counts.c.n, 0))
            .outerjoin(screening_counts, screening_counts.c.film_id == Film.id)
            .order_by(Film.id)
        )
        return [
            FilmCandidate(
                id=film.id,
                title=film.title,
                year=film.year,
                tmdb_id=film.tmdb_id,
                has_poster=bool(film.poster_url),
                has_synopsis=bool(film.overview),
                has_runtime=bool(film.runtime),
                has_directors=bool(film.directors),
                match_confidence=film.match_confidence,
                screening_count=count,
            )
            for film, count in result.all()
        ]

    async def run(self, dry_run: bool = True) -> MergeReport:
        tag = "[DRY RUN] " if dry_run else ""
        candidates = await self.load_candidates()
        clusters = find_duplicate_clusters(candidates, self.threshold, self.weights)
        report = MergeReport(dry_run=dry_run, clusters=clusters)
        logger.info(f"Found {len(clusters)} duplicate cluster(s) among {len(candidates)} films")

        for cluster in clusters:
            ids = ", ".join(repr(d.id) for d in cluster.duplicates)
            logger.info(f"  {tag}MERGE  {ids} → {cluster.primary.id!r}  ({cluster.reason})")
            if dry_run:
                continue

            try:
                await self.merge_cluster(cluster)
                await self.db.commit()
            except (SQLAlchemyError, LookupError) as e:
                await self.db.rollback()
                logger.error(f"Failed to merge into {cluster.primary.id!r}: {e}", exc_info=True)
                report.failed += 1
                continue

            report.merged += 1
            report.films_deleted += len(cluster.duplicates)

        logger.info(
            f"{tag}Merged {report.merged} cluster(s), deleted {report.films_deleted} film(s), "
            f"{report.failed} failed"
        )
        return report

    async def merge_cluster(self, cluster: DuplicateCluster) -> None:
        """Merge one cluster into its primary. Does not commit."""
        primary = await self.db.get(Film, cluster.primary.id)
        if primary is None:
            raise LookupError(f"Primary film {cluster.primary.id!r} no longer exists")

        for candidate in cluster.duplicates:
            duplicate = await self.db.get(Film, candidate.id)
            if duplicate is None:
                continue
            await self._absorb(primary, duplicate)
            await self._repoint(duplicate.id, primary.id)
            await self.db.execute(delete(Film).where(Film.id == duplicate.id))

        await self.db.flush()

    async def _absorb(self, primary: Film, duplicate: Film) -> None:
        for name in ABSORBED_FIELDS:
            if not getattr(primary, name) and getattr(duplicate, name):
                setattr(primary, name, getattr(duplicate, name))

        if primary.tmdb_id is None and duplicate.tmdb_id is not None:
            tmdb_id = duplicate.tmdb_id
            # Release the unique TMDb id before handing it over
            duplicate.tmdb_id = None
            await self.db.flush()
            primary.tmdb_id = tmdb_id
            primary.match_confidence = duplicate.match_confidence
            primary.match_strategy = duplicate.match_strategy

    async def _repoint(self, duplicate_id: str, primary_id: str) -> None:
        """Move dependent rows to the primary, dropping those the primary already has."""
        primary_slots = select(Screening.cinema_id, Screening.start_time).where(
            Screening.film_id == primary_id
        )
        await self.db.execute(
            delete(Screening)
            .where(
                Screening.film_id == duplicate_id,
                tuple_(Screening.cinema_id, Screening.start_time).in_(primary_slots),
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            update(Screening)
            .where(Screening.film_id == duplicate_id)
            .values(film_id=primary_id)
            .execution_options(synchronize_session=False)
        )

        primary_seasons = select(SeasonFilm.season_id).where(SeasonFilm.film_id == primary_id)
        await self.db.execute(
            delete(SeasonFilm)
            .where(SeasonFilm.film_id == duplicate_id, SeasonFilm.season_id.in_(primary_seasons))
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            update(SeasonFilm)
            .where(SeasonFilm.film_id == duplicate_id)
            .values(film_id=primary_id)
            .execution_options(synchronize_session=False)
        )

        primary_users = select(UserFilmStatus.user_id).where(UserFilmStatus.film_id == primary_id)
        await self.db.execute(
            delete(UserFilmStatus)
            .where(UserFilmStatus.film_id == duplicate_id, UserFilmStatus.user_id.in_(primary_users))
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            update(UserFilmStatus)
            .where(UserFilmStatus.film_id == duplicate_id)
            .values(film_id=primary_id)
            .execution_options(synchronize_session=False)
        )
