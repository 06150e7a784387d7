"""Event, format and accessibility classification of screening titles."""

import logging
import re
from dataclasses import dataclass, field
from typing import Protocol

import httpx
from pydantic import BaseModel, ValidationError

from marquee.config import settings
from marquee.scrapers.models import RawScreening

logger = logging.getLogger(__name__)

VALID_EVENT_TYPES = (
    "q_and_a",
    "intro",
    "discussion",
    "double_bill",
    "marathon",
    "singalong",
    "quote_along",
    "preview",
    "premiere",
    "restoration_premiere",
    "anniversary",
    "members_only",
    "relaxed",
    "special_event",
)

VALID_FORMATS = (
    "35mm",
    "70mm",
    "70mm_imax",
    "dcp",
    "dcp_4k",
    "imax",
    "imax_laser",
    "dolby_cinema",
    "4dx",
    "screenx",
)

# Cheap pre-filter: only titles matching one of these go to a classifier
_NEEDS_CLASSIFICATION = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\+",
        r"\bpresents?\b",
        r"\bq\s*&\s*a\b",
        r"\bpreview\b",
        r"\bpremiere\b",
        r"\bsing[\s-]*a[\s-]*long",
        r"\bsingalong\b",
        r"\bquote[\s-]*a[\s-]*long",
        r"\bdouble\s*bill\b",
        r"\bmarathon\b",
        r"\b35mm\b",
        r"\b70mm\b",
        r"\bimax\b",
        r"\b4k\b",
        r"\b3d\b",
        r"\brelaxed\b",
        r"\bsubtitle",
        r"\baudio\s*descri",
        r"\bintro\b",
        r"\bdiscussion\b",
        r"\banniversary\b",
        r"\brestoration\b",
        r"\bseason\b",
        r"\bretrospective\b",
        r"\b(?:lsff|lff|bfi\s+flare)\b",
        r"\bdrink\s*(?:&|and)\s*dine\b",
        r"\bdine\s*&\s*drink\b",
        r"\bmembers?\b",
    )
]


def likely_needs_classification(title: str) -> bool:
    """Quick heuristic check: does this title look like it carries event markers?"""
    return any(pattern.search(title) for pattern in _NEEDS_CLASSIFICATION)


@dataclass
class EventClassification:
    """Structured classification of one listing title."""

    event_types: list[str] = field(default_factory=list)
    event_description: str | None = None
    is_special_event: bool = False
    format: str | None = None
    is_3d: bool = False
    has_subtitles: bool = False
    subtitle_language: str | None = None
    has_audio_description: bool = False
    is_relaxed_screening: bool = False
    season: str | None = None


@dataclass
class ScreeningMetadata:
    """Resolved screening metadata after classification."""

    event_type: str | None = None
    event_description: str | None = None
    format: str | None = None
    is_special_event: bool = False
    is_3d: bool = False
    has_subtitles: bool = False
    subtitle_language: str | None = None
    has_audio_description: bool = False
    is_relaxed_screening: bool = False
    season: str | None = None


class EventClassifier(Protocol):
    async def classify(self, title: str, description: str | None = None) -> EventClassification: ...


# (pattern, event type) in priority order; the first match becomes event_type
_EVENT_RULES = [
    (re.compile(r"\b(?:drink\s*(?:&|and)\s*dine|dine\s*&\s*drink|festive\s+feast)\b", re.I), "special_event"),
    (re.compile(r"\brestoration\s+premiere\b", re.I), "restoration_premiere"),
    (re.compile(r"\b(?:uk|world|london|european)?\s*premiere\b", re.I), "premiere"),
    (re.compile(r"\b(?:sneak\s+)?preview\b", re.I), "preview"),
    (re.compile(r"\bq\s*&\s*a\b", re.I), "q_and_a"),
    (re.compile(r"\bintro(?:duc(?:ed|tion))?\b", re.I), "intro"),
    (re.compile(r"\b(?:discussion|panel|in\s+conversation)\b", re.I), "discussion"),
    (re.compile(r"\bdouble[\s-]*(?:bill|feature)\b", re.I), "double_bill"),
    (re.compile(r"\bmarathon\b", re.I), "marathon"),
    (re.compile(r"\bsing[\s-]*a[\s-]*long|\bsingalong\b", re.I), "singalong"),
    (re.compile(r"\bquote[\s-]*a[\s-]*long\b", re.I), "quote_along"),
    (re.compile(r"\b\d+(?:st|nd|rd|th)?\s+anniversary\b", re.I), "anniversary"),
    (re.compile(r"\bmembers?(?:'|’)?\s*(?:only|screening)\b", re.I), "members_only"),
    (re.compile(r"\brelaxed\b", re.I), "relaxed"),
]

_FORMAT_RULES = [
    (re.compile(r"\b70\s*mm\s+imax\b", re.I), "70mm_imax"),
    (re.compile(r"\bimax\s+(?:with\s+)?laser\b", re.I), "imax_laser"),
    (re.compile(r"\b35\s*mm\b", re.I), "35mm"),
    (re.compile(r"\b70\s*mm\b", re.I), "70mm"),
    (re.compile(r"\bimax\b", re.I), "imax"),
    (re.compile(r"\bdolby\s+cinema\b", re.I), "dolby_cinema"),
    (re.compile(r"\b4dx\b", re.I), "4dx"),
    (re.compile(r"\bscreenx\b", re.I), "screenx"),
    (re.compile(r"\b4k\b", re.I), "dcp_4k"),
]

_THREE_D = re.compile(r"\b3-?d\b", re.I)
_SUBTITLED = re.compile(r"\b(?:subtitled|subtitles|subs)\b", re.I)
_SUBTITLE_LANGUAGE = re.compile(r"\b(english|french|german|spanish|italian|japanese)\s+subtitles\b", re.I)
_AUDIO_DESCRIPTION = re.compile(r"\baudio[\s-]*descri(?:bed|ption)\b|\(AD\)", re.I)
_SEASON = re.compile(r"^(.+?\b(?:season|retrospective))\s*:", re.I)

_LANGUAGE_CODES = {
    "english": "en",
    "french": "fr",
    "german": "de",
    "spanish": "es",
    "italian": "it",
    "japanese": "ja",
}


class PatternEventClassifier:
    """
    Deterministic regex classifier.

    Results are cached per instance keyed on (title, description).
    """

    def __init__(self) -> None:
        self._cache: dict[tuple[str, str], EventClassification] = {}

    async def classify(self, title: str, description: str | None = None) -> EventClassification:
        key = (title, description or "")
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        result = self._classify(title, description)
        self._cache[key] = result
        return result

    def _classify(self, title: str, description: str | None) -> EventClassification:
        text = f"{title} {description}" if description else title

        event_types = [event for pattern, event in _EVENT_RULES if pattern.search(text)]
        fmt = next((name for pattern, name in _FORMAT_RULES if pattern.search(text)), None)
        language = _SUBTITLE_LANGUAGE.search(text)
        season = _SEASON.match(title)

        return EventClassification(
            event_types=event_types,
            is_special_event=bool(event_types),
            format=fmt,
            is_3d=bool(_THREE_D.search(text)),
            has_subtitles=bool(_SUBTITLED.search(text)),
            subtitle_language=_LANGUAGE_CODES[language.group(1).lower()] if language else None,
            has_audio_description=bool(_AUDIO_DESCRIPTION.search(text)),
            is_relaxed_screening="relaxed" in event_types,
            season=season.group(1).strip() if season else None,
        )

    def clear_cache(self) -> None:
        self._cache.clear()


class _RemoteClassification(BaseModel):
    """Response body of the remote classification service."""

    is_special_event: bool = False
    event_types: list[str] = []
    event_description: str | None = None
    format: str | None = None
    is_3d: bool = False
    has_subtitles: bool = False
    subtitle_language: str | None = None
    has_audio_description: bool = False
    is_relaxed_screening: bool = False
    season: str | None = None


class RemoteEventClassifier:
    """Classifier backed by an HTTP classification service."""

    def __init__(self, url: str | None = None) -> None:
        self.url = url or settings.classifier_url
        self._cache: dict[tuple[str, str], EventClassification] = {}

    async def classify(self, title: str, description: str | None = None) -> EventClassification:
        """
        Classify a title via the remote service.

        Unknown event types and formats in the response are dropped.

        Raises:
            httpx.HTTPError: On transport or status errors
            pydantic.ValidationError: On a malformed response
        """
        key = (title, description or "")
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        async with httpx.AsyncClient(timeout=settings.metadata_timeout) as client:
            response = await client.post(
                self.url,
                json={"title": title, "description": description},
            )
            response.raise_for_status()
            body = _RemoteClassification.model_validate(response.json())

        event_types = [t for t in body.event_types if t in VALID_EVENT_TYPES]
        result = EventClassification(
            event_types=event_types,
            event_description=body.event_description,
            is_special_event=body.is_special_event or bool(event_types),
            format=body.format if body.format in VALID_FORMATS else None,
            is_3d=body.is_3d,
            has_subtitles=body.has_subtitles,
            subtitle_language=body.subtitle_language,
            has_audio_description=body.has_audio_description,
            is_relaxed_screening=body.is_relaxed_screening,
            season=body.season,
        )
        self._cache[key] = result
        return result


def get_event_classifier() -> EventClassifier:
    """Return the remote classifier when a service URL is configured, else the pattern one."""
    if settings.classifier_url:
        return RemoteEventClassifier(settings.classifier_url)
    return PatternEventClassifier()


async def classify_screening(raw: RawScreening, classifier: EventClassifier) -> ScreeningMetadata:
    """
    Classify a screening's event type, format and accessibility flags.

    Scraper-supplied event type or format is authoritative: the classifier
    is only consulted when neither is set and the title looks like it
    carries event markers. Classifier failures are logged and the
    scraper's values are returned.
    """
    metadata = ScreeningMetadata(
        event_type=raw.event_type,
        event_description=raw.event_description,
        format=raw.format,
    )

    if raw.event_type or raw.format or not likely_needs_classification(raw.film_title):
        return metadata

    try:
        classification = await classifier.classify(raw.film_title, raw.event_description)
    except (httpx.HTTPError, ValidationError, ValueError) as e:
        logger.warning(f"Event classification failed for '{raw.film_title}': {e}")
        return metadata

    if classification.event_types or classification.format:
        logger.debug(
            f"Classified '{raw.film_title}' -> "
            f"{', '.join(classification.event_types) or classification.format}"
        )

    types = classification.event_types
    if len(types) > 1:
        description = f"Also: {', '.join(types[1:])}"
    else:
        description = classification.event_description or raw.event_description

    return ScreeningMetadata(
        event_type=types[0] if types else None,
        event_description=description,
        format=classification.format or raw.format,
        is_special_event=classification.is_special_event,
        is_3d=classification.is_3d,
        has_subtitles=classification.has_subtitles,
        subtitle_language=classification.subtitle_language,
        has_audio_description=classification.has_audio_description,
        is_relaxed_screening=classification.is_relaxed_screening,
        season=classification.season,
    )
