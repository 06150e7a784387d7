"""Text normalization utilities for film title matching."""

import re

_LEADING_THE = re.compile(r"^the\s+")
_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_WORD = re.compile(r"[^\W_]+")


def normalise_title(title: str) -> str:
    """
    Normalize a film title for identity comparison.

    The same function is used by the film cache, the resolver, the screening
    deduplicator and the duplicate merger, so two titles are "the same film
    title" exactly when this returns equal strings.

    Steps:
    - Lowercase
    - Strip a leading "the "
    - Remove punctuation: "Spider-Man: Homecoming" → "spiderman homecoming"
    - Collapse whitespace and trim

    Args:
        title: Raw film title

    Returns:
        Normalized title (may be empty for punctuation-only input)
    """
    title = title.lower().strip()
    title = _LEADING_THE.sub("", title)
    title = _PUNCTUATION.sub("", title)
    title = _WHITESPACE.sub(" ", title)
    return title.strip()


def trigrams(text: str) -> set[str]:
    """Word trigrams in the style of PostgreSQL pg_trgm (two leading spaces, one trailing)."""
    grams: set[str] = set()
    for word in _WORD.findall(text.lower()):
        padded = f"  {word} "
        for i in range(len(padded) - 2):
            grams.add(padded[i : i + 3])
    return grams


def trigram_similarity(a: str, b: str) -> float:
    """
    Trigram similarity between two strings, in [0, 1].

    Matches pg_trgm's ``similarity()``: shared trigrams divided by the
    union of both trigram sets.

    Examples:
        trigram_similarity("amelie", "amelie") → 1.0
        trigram_similarity("", "anything") → 0.0
    """
    return set_similarity(trigrams(a), trigrams(b))


def set_similarity(left: set[str], right: set[str]) -> float:
    """Shared trigrams over the union; for callers that precompute ``trigrams``."""
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


def slugify(text: str) -> str:
    """
    Convert text to a URL-safe slug.

    Args:
        text: Text to slugify

    Returns:
        Lowercase slug with hyphens
    """
    # Convert to lowercase
    text = text.lower()

    # Replace spaces and underscores with hyphens
    text = re.sub(r"[\s_]+", "-", text)

    # Remove non-alphanumeric characters (except hyphens)
    text = re.sub(r"[^a-z0-9-]", "", text)

    # Remove multiple consecutive hyphens
    text = re.sub(r"-+", "-", text)

    # Strip leading/trailing hyphens
    text = text.strip("-")

    return text
