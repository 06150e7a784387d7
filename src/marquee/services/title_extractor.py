"""Pattern-based extraction of film titles from event-wrapped listings.

Cinemas often wrap the film title in event branding:

    "Saturday Morning Picture Club: Song of the Sea" → "Song of the Sea"
    "When Harry Met Sally + Intro"                   → "When Harry Met Sally"
    "Inland Empire (4K Restoration)"                 → "Inland Empire"

The extractor is synchronous and makes no network calls.
"""

import html
import re
from dataclasses import dataclass

# Event prefixes wrapping the film title as "PREFIX: Title". Add new
# event-series names here as they appear.
EVENT_PREFIXES = [
    # Dining/drinking events
    "DRINK & DINE",
    "Drink and Dine",
    "DINE & DRINK",
    "A FESTIVE FEAST",
    # Cinema clubs and series
    "Saturday Morning Picture Club",
    "Classic Matinee",
    "Arabic Cinema Club",
    "Varda Film Club",
    "Films For Workers",
    "Sonic Cinema",
    "The Liberated Film Club",
    "Underscore Cinema",
    "Carers & Babies",
    "Carers and Babies",
    "Parent & Baby",
    "Baby Cinema",
    "Film Club",
    "Dochouse",
    "Doc House",
    "Queer Horror Nights",
    # Special screenings
    "UK PREMIERE",
    "Preview",
    "Sneak Preview",
    "Special Screening",
    "Member Screening",
    "Relaxed Screening",
    "Relaxed",
    "Dementia Friendly",
    "Autism Friendly",
    "Silver Screen",
    # Live broadcasts
    "Met Opera Live",
    "Met Opera Encore",
    "National Theatre Live",
    "NT Live",
    "Royal Opera House",
    "ROH Live",
    "ROH",
    "Royal Ballet",
    "Bolshoi Ballet",
    # Documentaries and exhibitions
    "Exhibition on Screen",
    "Doc 'N Roll",
    "Doc N Roll",
    # Festival screenings (often compilations)
    "LSFF",
    "LFF",
    "BFI Flare",
    # Format-based
    "35mm",
    "70mm",
    "4K",
    "IMAX",
]

FESTIVAL_PREFIXES = {"LSFF", "LFF", "BFI FLARE"}
LIVE_BROADCAST_KEYWORDS = ("opera", "theatre", "ballet", "nt live", "roh")

_PREFIX_PATTERNS = [
    (prefix, re.compile(rf"^{re.escape(prefix)}\s*:\s*", re.IGNORECASE))
    for prefix in EVENT_PREFIXES
]

TITLE_SUFFIXES = [
    # Q&A and intro
    re.compile(r"\s*\+\s*Q\s*&\s*A.*$", re.IGNORECASE),
    re.compile(r"\s*\+\s*Intro.*$", re.IGNORECASE),
    re.compile(r"\s*\+\s*Panel.*$", re.IGNORECASE),
    re.compile(r"\s*\+\s*Discussion.*$", re.IGNORECASE),
    re.compile(r"\s*with\s+Q\s*&\s*A.*$", re.IGNORECASE),
    # Special events
    re.compile(r"\s*with\s+Shadow\s+Cast.*$", re.IGNORECASE),
    re.compile(r"\s*with\s+Live\s+.*$", re.IGNORECASE),
    re.compile(r"\s*\+\s*(?:PJ|Pajama)\s+Party.*$", re.IGNORECASE),
    re.compile(r"\s*\+\s*(?:Prosecco|Mulled\s+Wine).*$", re.IGNORECASE),
    # Format and restoration markers
    re.compile(r"\s*\(4K\s+(?:Restoration|Remaster(?:ed)?|Re-?release)\)$", re.IGNORECASE),
    re.compile(r"\s*\((?:Restored|Digital\s+Restoration)\)$", re.IGNORECASE),
    re.compile(r"\s*\((?:Director'?s?|Extended|Original|Theatrical)\s+(?:Cut|Edition)\)$", re.IGNORECASE),
    re.compile(r"\s*\((?:35mm|70mm)\)$", re.IGNORECASE),
    re.compile(r"\s*\[[^\]]+\]$"),
    re.compile(r"\s+4K$", re.IGNORECASE),
    # Anniversary editions
    re.compile(r"\s*[-•]\s*\d+(?:th|st|nd|rd)?\s+Anniversary.*$", re.IGNORECASE),
    re.compile(r"\s*\(\d+(?:th|st|nd|rd)?\s+Anniversary\)$", re.IGNORECASE),
    # Previews and encores
    re.compile(r"\s*-\s*Preview$", re.IGNORECASE),
    re.compile(r"\s*\(Preview\)$", re.IGNORECASE),
    re.compile(r"\s*\(\d{4}\s+Encore\)$", re.IGNORECASE),
    # Double bills
    re.compile(r"\s*Double[- ]?Bill$", re.IGNORECASE),
    # BBFC certificates
    re.compile(r"\s*\((?:U|PG|12A?|15|18)\*?\)$", re.IGNORECASE),
    # Sing-along suffix
    re.compile(r"\s+Sing-?A?-?Long!?$", re.IGNORECASE),
    re.compile(r"\s+TBC$", re.IGNORECASE),
]

# Titles that describe events rather than films
NON_FILM_PATTERNS = [
    re.compile(r"\bQuiz\b", re.IGNORECASE),
    re.compile(r"\bReading\s+Group\b", re.IGNORECASE),
    re.compile(r"\bCaf[ée]s?\s+Philo\b", re.IGNORECASE),
    re.compile(r"\bCompetition\b", re.IGNORECASE),
    re.compile(r"\bStory\s+Time\b", re.IGNORECASE),
    re.compile(r"\bIn\s+conversation\s+with\b", re.IGNORECASE),
    re.compile(r"\bCome\s+and\s+Sing\b", re.IGNORECASE),
    re.compile(r"\bMarathon$", re.IGNORECASE),
    re.compile(r"\bComedy:", re.IGNORECASE),
    re.compile(r"\bAnimated\s+Shorts\s+for\b", re.IGNORECASE),
]

PRESENTS_PATTERN = re.compile(r"^.+\s+presents?\s+[\"“](.+)[\"”]$", re.IGNORECASE)
SINGALONG_PATTERN = re.compile(r"^Sing-?A-?Long-?A?\s+(.+)$", re.IGNORECASE)
DOUBLE_FEATURE_PATTERN = re.compile(r"^(.+?)\s*\+\s*.+$")
_SURROUNDING_QUOTES = re.compile(r"^[\"'“”‘’]+|[\"'“”‘’]+$")


@dataclass(frozen=True)
class TitleExtraction:
    """Result of extracting a film title from a listing title."""

    original_title: str
    film_title: str
    method: str = "none"
    confidence: float = 1.0
    is_non_film: bool = False
    is_compilation: bool = False
    is_live_broadcast: bool = False

    @property
    def should_match_metadata(self) -> bool:
        """Whether the title is worth looking up in external film databases."""
        return not (self.is_non_film or self.is_compilation or self.is_live_broadcast)


def _add_method(method: str, step: str) -> str:
    return step if method == "none" else f"{method}+{step}"


def extract_film_title(title: str) -> TitleExtraction:
    """
    Extract the underlying film title from an event-wrapped listing title.

    Args:
        title: Title as it appears on the cinema website

    Returns:
        TitleExtraction with the cleaned title, the steps applied and a
        confidence in [0, 1]. Non-film events are returned unchanged with
        ``is_non_film`` set and confidence 0.
    """
    original = title
    extracted = title.strip()

    for pattern in NON_FILM_PATTERNS:
        if pattern.search(extracted):
            return TitleExtraction(
                original_title=original,
                film_title=extracted,
                method="non_film_detected",
                confidence=0.0,
                is_non_film=True,
            )

    extracted = html.unescape(extracted)
    method = "none"
    confidence = 1.0
    is_compilation = False
    is_live_broadcast = False

    presents = PRESENTS_PATTERN.match(extracted)
    if presents:
        extracted = presents.group(1)
        method = "presents_pattern"
        confidence = 0.95

    singalong = SINGALONG_PATTERN.match(extracted)
    if singalong:
        extracted = singalong.group(1)
        method = _add_method(method, "singalong_pattern")
        confidence = min(confidence, 0.9)

    for prefix, pattern in _PREFIX_PATTERNS:
        if not pattern.match(extracted):
            continue
        if prefix.upper() in FESTIVAL_PREFIXES:
            is_compilation = True
            confidence = 0.3
        if any(keyword in prefix.lower() for keyword in LIVE_BROADCAST_KEYWORDS):
            is_live_broadcast = True
        extracted = pattern.sub("", extracted, count=1)
        method = _add_method(method, "prefix_removal")
        if not is_compilation:
            confidence = min(confidence, 0.9)
        # Only one prefix is stripped
        break

    for pattern in TITLE_SUFFIXES:
        if pattern.search(extracted):
            extracted = pattern.sub("", extracted).strip()
            method = _add_method(method, "suffix_removal")
            confidence = min(confidence, 0.85)

    if " + " in extracted and "suffix" not in method:
        double = DOUBLE_FEATURE_PATTERN.match(extracted)
        if double:
            extracted = double.group(1).strip()
            method = _add_method(method, "double_feature")
            confidence = min(confidence, 0.7)

    extracted = re.sub(r"\s+", " ", extracted)
    extracted = _SURROUNDING_QUOTES.sub("", extracted).strip()

    if not extracted or extracted == original:
        return TitleExtraction(original_title=original, film_title=original)

    return TitleExtraction(
        original_title=original,
        film_title=extracted,
        method=method,
        confidence=confidence,
        is_compilation=is_compilation,
        is_live_broadcast=is_live_broadcast,
    )
