"""Match cinema film titles to TMDb entries."""

import logging
import re
from dataclasses import dataclass
from typing import Any

from rapidfuzz import fuzz

from marquee.services.tmdb_client import TMDbClient, release_year

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetadataMatch:
    tmdb_id: int
    title: str
    year: int | None
    confidence: float
    poster_path: str | None = None


def _comparable(title: str) -> str:
    """Looser normalization than the identity one: also drops subtitles and parentheticals."""
    title = title.lower().strip()
    title = re.sub(r"^the\s+", "", title)
    title = re.sub(r"\s*\([^)]*\)\s*$", "", title)
    title = re.sub(r"\s*:\s*.*$", "", title)
    title = title.replace("’", "'").replace("–", "-").replace("—", "-")
    title = re.sub(r"[^\w\s'-]", "", title)
    return re.sub(r"\s+", " ", title).strip()


def title_similarity(a: str, b: str) -> float:
    """Similarity of two film titles in [0, 1]."""
    left, right = _comparable(a), _comparable(b)
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    if left in right or right in left:
        shorter, longer = sorted((len(left), len(right)))
        return 0.8 + (shorter / longer) * 0.2
    return fuzz.ratio(left, right) / 100


class MetadataMatcher:
    """
    Finds the best TMDb candidate for a title.

    Each of the top results is scored as
    ``0.7 * title_similarity + year_bonus + popularity_bonus`` where the
    year bonus is 0.2 for an exact year and 0.1 for off-by-one, and the
    popularity bonus is capped at 0.1. A candidate needs a title
    similarity of at least MIN_TITLE_SIMILARITY, and the winner a
    confidence of at least MIN_CONFIDENCE.
    """

    MAX_CANDIDATES = 10
    MIN_TITLE_SIMILARITY = 0.6
    MIN_CONFIDENCE = 0.6
    DIRECTOR_MATCH_THRESHOLD = 80
    DIRECTOR_MISMATCH_PENALTY = 0.8

    def __init__(self, tmdb_client: TMDbClient | None = None) -> None:
        self.tmdb_client = tmdb_client or TMDbClient()

    async def match(
        self,
        title: str,
        year: int | None = None,
        director: str | None = None,
    ) -> MetadataMatch | None:
        """
        Match a title to TMDb.

        Searches with the year hint first and retries without it when that
        returns nothing. A director hint that contradicts the winner's
        credits lowers its confidence.

        Returns:
            Best match, or None if nothing is confident enough
        """
        results = await self.tmdb_client.search_films(title, year)
        if not results and year:
            results = await self.tmdb_client.search_films(title)
        if not results:
            return None

        best = self.find_best_match(title, results, year)
        if best is None:
            return None

        if director:
            best = await self._verify_director(best, director)

        if best.confidence < self.MIN_CONFIDENCE:
            logger.info(f"Rejected TMDb match for '{title}': {best.title} ({best.confidence:.2f})")
            return None
        return best

    def find_best_match(
        self,
        title: str,
        results: list[dict[str, Any]],
        year: int | None = None,
    ) -> MetadataMatch | None:
        best: MetadataMatch | None = None
        best_score = 0.0

        for result in results[: self.MAX_CANDIDATES]:
            similarity = max(
                title_similarity(title, result.get("title") or ""),
                title_similarity(title, result.get("original_title") or ""),
            )
            if similarity < self.MIN_TITLE_SIMILARITY:
                continue

            result_year = release_year(result.get("release_date"))
            year_bonus = 0.0
            if year and result_year:
                if result_year == year:
                    year_bonus = 0.2
                elif abs(result_year - year) == 1:
                    year_bonus = 0.1

            popularity_bonus = min((result.get("popularity") or 0) / 1000, 0.1)
            score = similarity * 0.7 + year_bonus + popularity_bonus

            if score > best_score:
                best_score = score
                best = MetadataMatch(
                    tmdb_id=result["id"],
                    title=result.get("title") or title,
                    year=result_year,
                    confidence=min(score, 1.0),
                    poster_path=result.get("poster_path"),
                )

        if best and best.confidence >= self.MIN_CONFIDENCE:
            return best
        return None

    async def _verify_director(self, match: MetadataMatch, director: str) -> MetadataMatch:
        details = await self.tmdb_client.get_film_details(match.tmdb_id)
        if not details:
            return match

        directors = self.tmdb_client.extract_directors(details.get("credits", {}))
        if not directors:
            return match

        if any(
            fuzz.token_set_ratio(director.lower(), name.lower()) >= self.DIRECTOR_MATCH_THRESHOLD
            for name in directors
        ):
            return match

        logger.info(
            f"Director mismatch for TMDb {match.tmdb_id}: expected '{director}', got {directors}"
        )
        return MetadataMatch(
            tmdb_id=match.tmdb_id,
            title=match.title,
            year=match.year,
            confidence=match.confidence * self.DIRECTOR_MISMATCH_PENALTY,
            poster_path=match.poster_path,
        )
