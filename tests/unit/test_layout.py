"""Unit tests for printengine/layout.py."""

import pytest

from printengine.catalog import CATALOG
from printengine.layout import calculate_poster_dimensions, calculate_transform, generate_sheet_positions, place_sheets
from printengine.validation import CropResult


class TestCalculateTransform:
    """Tests for scale/crop transforms."""

    def test_fill_crops_wide_source(self) -> None:
        """Test a 2:1 source filling a square target is cropped evenly on both sides."""
        transform = calculate_transform(2000, 1000, 300, 300, "fill")
        assert transform["scale_factor"] == pytest.approx(0.3)
        assert transform["crop_rect_px"] == {"x": 500, "y": 0, "width": 1000, "height": 1000}

    def test_fill_crops_tall_source(self) -> None:
        transform = calculate_transform(1000, 3000, 600, 900, "fill")
        rect = transform["crop_rect_px"]
        assert rect["width"] == 1000
        assert rect["height"] == 1500
        assert rect["y"] == 750

    def test_fill_same_aspect_keeps_everything(self) -> None:
        transform = calculate_transform(1200, 1800, 600, 900, "fill")
        assert transform["crop_rect_px"] == {"x": 0, "y": 0, "width": 1200, "height": 1800}

    def test_fit_never_crops(self) -> None:
        """Test that fit mode keeps the whole source and scales by the tighter axis."""
        transform = calculate_transform(2000, 1000, 300, 300, "fit")
        assert transform["scale_factor"] == pytest.approx(0.15)
        assert transform["crop_rect_px"] == {"x": 0, "y": 0, "width": 2000, "height": 1000}

    def test_unknown_mode_raises(self) -> None:
        with pytest.raises(ValueError, match="Unsupported scaling mode"):
            calculate_transform(100, 100, 10, 10, "stretch")


class TestPlaceSheets:
    """Tests for pairing packed sheets with layout slots."""

    def test_empty_slots_skipped(self) -> None:
        layout = CATALOG.get("2x-4x6")
        placed = place_sheets([["a", "a"], ["b", None]], layout)

        assert [len(sheet) for sheet in placed] == [2, 1]
        first, second = placed[0]
        assert (first.x, first.y, first.width, first.height) == (0.25, 2.375, 4, 6)
        assert (second.x, second.y) == (4.25, 2.375)
        assert placed[1][0].image_ref == "b"

    def test_crops_attached_by_image_ref(self) -> None:
        crop = CropResult(x=10, y=0, width=400, height=600, confidence=0.9, method="face")
        placed = place_sheets([["a", "b"]], CATALOG.get("2x-4x6"), crops={"a": crop})

        assert placed[0][0].crop == crop
        assert placed[0][1].crop is None

    def test_wrong_sheet_length_raises(self) -> None:
        with pytest.raises(ValueError, match="has 2 slots"):
            place_sheets([["a"]], CATALOG.get("2x-4x6"))


class TestPosterGeometry:
    """Tests for poster size and tile positions."""

    def test_dimensions_with_overlap(self) -> None:
        """Test that inner edges overlap by 0.5" for gluing."""
        dims = calculate_poster_dimensions(2, 3, 8.5, 11)
        assert dims["total_width_in"] == pytest.approx((8.5 - 0.5) * 3 + 0.5)
        assert dims["total_height_in"] == pytest.approx((11 - 0.5) * 2 + 0.5)

    def test_single_sheet_is_sheet_size(self) -> None:
        dims = calculate_poster_dimensions(1, 1, 8.5, 11, overlap_in=0.5)
        assert (dims["total_width_in"], dims["total_height_in"]) == (8.5, 11)

    def test_sheet_positions(self) -> None:
        positions = generate_sheet_positions(2, 2)

        assert [p["id"] for p in positions] == ["0-0", "0-1", "1-0", "1-1"]
        top_left, _, _, bottom_right = positions
        assert top_left["x"] == 0 and top_left["width"] == 0.5
        assert not top_left["has_top_marker"] and not top_left["has_left_marker"]
        assert top_left["has_right_marker"] and top_left["has_bottom_marker"]
        assert bottom_right["x"] == 0.5 and bottom_right["y"] == 0.5
        assert not bottom_right["has_right_marker"] and not bottom_right["has_bottom_marker"]
