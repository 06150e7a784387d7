"""Unit tests for text normalisation utilities."""

import pytest

from marquee.utils.text import normalise_title, slugify, trigram_similarity


class TestNormaliseTitle:
    def test_lowercases(self) -> None:
        assert normalise_title("Nosferatu") == "nosferatu"

    def test_strips_leading_the(self) -> None:
        assert normalise_title("The Godfather") == "godfather"

    def test_keeps_the_inside_title(self) -> None:
        assert normalise_title("Enter the Void") == "enter the void"

    def test_removes_punctuation(self) -> None:
        assert normalise_title("Spider-Man: Homecoming") == "spiderman homecoming"

    def test_collapses_extra_whitespace(self) -> None:
        assert normalise_title("The   Film  ") == "film"

    def test_strips_leading_and_trailing_whitespace(self) -> None:
        assert normalise_title("  Alien  ") == "alien"

    def test_returns_empty_string_unchanged(self) -> None:
        assert normalise_title("") == ""

    def test_punctuation_only_normalises_to_empty(self) -> None:
        assert normalise_title("?!") == ""

    def test_differently_punctuated_titles_are_equal(self) -> None:
        assert normalise_title("Amélie!") == normalise_title("amélie")

    def test_is_idempotent(self) -> None:
        once = normalise_title("The Grand Budapest Hotel: Redux")
        assert normalise_title(once) == once


class TestTrigramSimilarity:
    def test_identical_strings_score_one(self) -> None:
        assert trigram_similarity("nosferatu", "nosferatu") == 1.0

    def test_empty_string_scores_zero(self) -> None:
        assert trigram_similarity("", "anything") == 0.0

    def test_unrelated_titles_score_zero(self) -> None:
        assert trigram_similarity("alien", "heat") == 0.0

    def test_extra_word_still_scores_high(self) -> None:
        assert trigram_similarity("the godfather", "godfather") == pytest.approx(10 / 13)

    def test_is_symmetric(self) -> None:
        a, b = "paris texas", "paris, texas (1984)"
        assert trigram_similarity(a, b) == trigram_similarity(b, a)

    def test_is_case_insensitive(self) -> None:
        assert trigram_similarity("ALIEN", "alien") == 1.0


class TestSlugify:
    def test_lowercases_input(self) -> None:
        assert slugify("Nosferatu") == "nosferatu"

    def test_replaces_spaces_with_hyphens(self) -> None:
        assert slugify("The Grand Budapest Hotel") == "the-grand-budapest-hotel"

    def test_removes_special_characters(self) -> None:
        assert slugify("Mission: Impossible") == "mission-impossible"

    def test_collapses_multiple_hyphens(self) -> None:
        assert slugify("word  word") == "word-word"

    def test_strips_leading_and_trailing_hyphens(self) -> None:
        assert slugify(":test:") == "test"

    def test_preserves_numbers(self) -> None:
        assert slugify("nosferatu 2024") == "nosferatu-2024"

    def test_converts_underscores_to_hyphens(self) -> None:
        assert slugify("some_title") == "some-title"

    def test_returns_empty_string_unchanged(self) -> None:
        assert slugify("") == ""
