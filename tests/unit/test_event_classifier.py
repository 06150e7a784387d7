"""Unit tests for screening event classification."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from marquee.scrapers.models import RawScreening
from marquee.services.event_classifier import (
    EventClassification,
    PatternEventClassifier,
    RemoteEventClassifier,
    classify_screening,
    likely_needs_classification,
)

START = datetime(2026, 11, 6, 19, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_raw(title: str, **kwargs) -> RawScreening:
    return RawScreening(
        film_title=title,
        start_time=START,
        booking_url="https://example.com/book/1",
        **kwargs,
    )


def make_async_client_ctx(json_data: dict) -> AsyncMock:
    """Return an async context manager whose .post() returns *json_data*."""
    response = MagicMock()
    response.json.return_value = json_data
    response.raise_for_status = MagicMock()
    inner = AsyncMock()
    inner.post = AsyncMock(return_value=response)
    ctx = AsyncMock()
    ctx.__aenter__ = AsyncMock(return_value=inner)
    ctx.__aexit__ = AsyncMock(return_value=False)
    return ctx


# ---------------------------------------------------------------------------
# likely_needs_classification
# ---------------------------------------------------------------------------


class TestLikelyNeedsClassification:
    def test_plain_title_does_not(self) -> None:
        assert likely_needs_classification("Nosferatu") is False

    def test_plus_marker(self) -> None:
        assert likely_needs_classification("Alien + Q&A") is True

    def test_drink_and_dine(self) -> None:
        assert likely_needs_classification("DRINK & DINE: Casablanca") is True

    def test_format_marker(self) -> None:
        assert likely_needs_classification("Vertigo in 70mm") is True


# ---------------------------------------------------------------------------
# PatternEventClassifier
# ---------------------------------------------------------------------------


class TestPatternEventClassifier:
    def setup_method(self) -> None:
        self.classifier = PatternEventClassifier()

    async def test_drink_and_dine_is_special_event(self) -> None:
        result = await self.classifier.classify("DRINK & DINE: When Harry Met Sally...")
        assert result.event_types == ["special_event"]
        assert result.is_special_event is True

    async def test_multiple_event_types_in_priority_order(self) -> None:
        result = await self.classifier.classify("Preview: Bugonia + Q&A")
        assert result.event_types == ["preview", "q_and_a"]

    async def test_format_detection(self) -> None:
        result = await self.classifier.classify("Lawrence of Arabia (70mm)")
        assert result.format == "70mm"

    async def test_70mm_imax_wins_over_70mm(self) -> None:
        result = await self.classifier.classify("Oppenheimer 70mm IMAX")
        assert result.format == "70mm_imax"

    async def test_accessibility_flags(self) -> None:
        result = await self.classifier.classify("Wicked (Relaxed Screening) with English subtitles (AD)")
        assert result.is_relaxed_screening is True
        assert result.has_subtitles is True
        assert result.subtitle_language == "en"
        assert result.has_audio_description is True

    async def test_season_label(self) -> None:
        result = await self.classifier.classify("Kubrick Season: Barry Lyndon")
        assert result.season == "Kubrick Season"

    async def test_3d(self) -> None:
        result = await self.classifier.classify("Avatar 3D")
        assert result.is_3d is True

    async def test_plain_title_has_no_event(self) -> None:
        result = await self.classifier.classify("Nosferatu")
        assert result == EventClassification()

    async def test_results_are_cached(self) -> None:
        first = await self.classifier.classify("Alien + Q&A")
        second = await self.classifier.classify("Alien + Q&A")
        assert first is second

    async def test_clear_cache(self) -> None:
        first = await self.classifier.classify("Alien + Q&A")
        self.classifier.clear_cache()
        second = await self.classifier.classify("Alien + Q&A")
        assert first is not second
        assert first == second


# ---------------------------------------------------------------------------
# RemoteEventClassifier
# ---------------------------------------------------------------------------


class TestRemoteEventClassifier:
    async def test_drops_unknown_event_types_and_formats(self) -> None:
        classifier = RemoteEventClassifier(url="http://classifier.test/classify")
        ctx = make_async_client_ctx(
            {"event_types": ["q_and_a", "karaoke"], "format": "holographic", "is_3d": True}
        )
        with patch("httpx.AsyncClient", return_value=ctx):
            result = await classifier.classify("Alien + Q&A")

        assert result.event_types == ["q_and_a"]
        assert result.format is None
        assert result.is_special_event is True
        assert result.is_3d is True

    async def test_posts_title_and_description(self) -> None:
        classifier = RemoteEventClassifier(url="http://classifier.test/classify")
        ctx = make_async_client_ctx({})
        with patch("httpx.AsyncClient", return_value=ctx):
            await classifier.classify("Alien", "With director Q&A")

        call = ctx.__aenter__.return_value.post.call_args
        assert call.args[0] == "http://classifier.test/classify"
        assert call.kwargs["json"] == {"title": "Alien", "description": "With director Q&A"}

    async def test_repeated_titles_hit_cache(self) -> None:
        classifier = RemoteEventClassifier(url="http://classifier.test/classify")
        ctx = make_async_client_ctx({"event_types": ["intro"]})
        with patch("httpx.AsyncClient", return_value=ctx):
            await classifier.classify("Alien + Intro")
            await classifier.classify("Alien + Intro")

        assert ctx.__aenter__.return_value.post.await_count == 1


# ---------------------------------------------------------------------------
# classify_screening
# ---------------------------------------------------------------------------


class TestClassifyScreening:
    async def test_drink_and_dine_example(self) -> None:
        raw = make_raw("DRINK & DINE: When Harry Met Sally...")
        metadata = await classify_screening(raw, PatternEventClassifier())
        assert metadata.event_type == "special_event"
        assert metadata.is_special_event is True

    async def test_extra_event_types_go_to_description(self) -> None:
        raw = make_raw("Preview: Bugonia + Q&A + Intro")
        metadata = await classify_screening(raw, PatternEventClassifier())
        assert metadata.event_type == "preview"
        assert metadata.event_description == "Also: q_and_a, intro"

    async def test_scraper_event_type_is_authoritative(self) -> None:
        classifier = AsyncMock()
        raw = make_raw("Alien + Q&A", event_type="intro")
        metadata = await classify_screening(raw, classifier)
        assert metadata.event_type == "intro"
        classifier.classify.assert_not_awaited()

    async def test_scraper_format_skips_classifier(self) -> None:
        classifier = AsyncMock()
        raw = make_raw("Vertigo 70mm", format="35mm")
        metadata = await classify_screening(raw, classifier)
        assert metadata.format == "35mm"
        classifier.classify.assert_not_awaited()

    async def test_plain_title_skips_classifier(self) -> None:
        classifier = AsyncMock()
        metadata = await classify_screening(make_raw("Nosferatu"), classifier)
        assert metadata.event_type is None
        classifier.classify.assert_not_awaited()

    async def test_classifier_failure_falls_back_to_scraper_values(self) -> None:
        classifier = AsyncMock()
        classifier.classify = AsyncMock(side_effect=httpx.ConnectError("refused"))
        raw = make_raw("Alien + Q&A", event_description="Director in person")
        metadata = await classify_screening(raw, classifier)
        assert metadata.event_type is None
        assert metadata.event_description == "Director in person"
