"""Unit tests for the page-range format in printengine/pagination.py."""

import pytest

from printengine.pagination import is_letter_size, letter_fit, pages_to_range_string, parse_page_ranges


class TestParsePageRanges:
    """Tests for "1-3, 5, 7-9" → page numbers."""

    def test_mixed_ranges(self) -> None:
        assert parse_page_ranges("1-3, 5, 7-9", 10) == [1, 2, 3, 5, 7, 8, 9]

    def test_sorted_and_deduplicated(self) -> None:
        assert parse_page_ranges("5, 1-3, 2, 5", 10) == [1, 2, 3, 5]

    def test_clipped_to_document(self) -> None:
        """Test ranges are clipped and out-of-range pages dropped."""
        assert parse_page_ranges("0-2, 8-15, 20", 9) == [1, 2, 8, 9]

    def test_malformed_parts_ignored(self) -> None:
        assert parse_page_ranges("a, 2-b, , 4", 10) == [4]

    def test_open_start_counts_from_first_page(self) -> None:
        assert parse_page_ranges("-3, 9", 10) == [1, 2, 3, 9]

    def test_open_end_selects_nothing(self) -> None:
        assert parse_page_ranges("8-, 2", 10) == [2]

    def test_extra_bounds_ignored(self) -> None:
        assert parse_page_ranges("2-4-9", 10) == [2, 3, 4]

    def test_empty_string(self) -> None:
        assert parse_page_ranges("", 10) == []


class TestPagesToRangeString:
    """Tests for page numbers → compact ranges."""

    def test_compacts_runs(self) -> None:
        assert pages_to_range_string([1, 2, 3, 5, 7, 8, 9]) == "1-3, 5, 7-9"

    def test_unordered_input(self) -> None:
        assert pages_to_range_string([9, 1, 2, 1]) == "1-2, 9"

    def test_empty(self) -> None:
        assert pages_to_range_string([]) == ""

    @pytest.mark.parametrize(
        "text",
        ["1-3, 5, 7-9", "4", "1-10", "2, 4, 6, 8", "3-1, 7", "1,2,3", " 9 - 10 ,1"],
    )
    def test_round_trip_is_stable(self, text: str) -> None:
        """Test format(parse(s)) is a fixed point of parse → format."""
        canonical = pages_to_range_string(parse_page_ranges(text, 10))
        assert pages_to_range_string(parse_page_ranges(canonical, 10)) == canonical


class TestLetterFit:
    """Tests for the letter-size scale and offset math."""

    def test_letter_detected_within_tolerance(self) -> None:
        assert is_letter_size(612, 792)
        assert is_letter_size(612.5, 791.6)
        assert not is_letter_size(595.28, 841.89)  # A4

    def test_a4_scaled_by_height(self) -> None:
        scale, rect = letter_fit(595.28, 841.89)
        assert scale == pytest.approx(792 / 841.89)
        assert rect.height == pytest.approx(792)
        assert rect.x0 == pytest.approx((612 - 595.28 * scale) / 2)
        assert rect.y0 == pytest.approx(0)

    def test_landscape_page_centered_vertically(self) -> None:
        """Test a landscape tabloid page is fit by width and centered."""
        scale, rect = letter_fit(1224, 792)
        assert scale == pytest.approx(0.5)
        assert rect.width == pytest.approx(612)
        assert rect.y0 == pytest.approx((792 - 396) / 2)
        assert rect.y1 == pytest.approx(792 - (792 - 396) / 2)
