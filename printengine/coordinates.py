"""Coordinate transformation and unit conversion utilities.

This module handles:
- Unit conversions (inches ↔ PDF points ↔ CSS pixels ↔ image pixels)
- Coordinate system transforms (top-left inches → ReportLab bottom-left points)
- Slot geometry scaled into output units
"""

from printengine.config import LETTER_HEIGHT_IN, PIXELS_PER_INCH, POINTS_PER_INCH


def in_to_pt(inches: float) -> float:
    """Convert inches to PDF points (1pt = 1/72 inch)."""
    return inches * POINTS_PER_INCH


def pt_to_in(points: float) -> float:
    """Convert PDF points to inches."""
    return points / POINTS_PER_INCH


def in_to_px(inches: float, dpi: float = PIXELS_PER_INCH) -> float:
    """Convert inches to pixels.

    Args:
        inches: Size in inches
        dpi: Pixels per inch. Defaults to the 96 DPI CSS reference pixel.

    Returns:
        Size in pixels
    """
    return inches * dpi


def px_to_in(px: float, dpi: float = PIXELS_PER_INCH) -> float:
    """Convert pixels to inches at the given resolution."""
    return px / dpi


def in_to_pdf_coords(
    x_in: float, y_in: float, height_in: float, page_height_in: float = LETTER_HEIGHT_IN
) -> tuple[float, float]:
    """Convert a top-left inch rectangle origin to ReportLab bottom-left points.

    Args:
        x_in: X coordinate of the rectangle's left edge, from the sheet's left
        y_in: Y coordinate of the rectangle's top edge, from the sheet's top
        height_in: Rectangle height in inches
        page_height_in: Total page height in inches

    Returns:
        Tuple of (x_pt, y_pt) for the rectangle's bottom-left corner

    Note:
        ReportLab uses a bottom-left origin, so the Y axis is flipped and the
        rectangle's own height is subtracted to land on its lower edge.
    """
    x_pt = in_to_pt(x_in)
    y_pt = in_to_pt(page_height_in - y_in - height_in)
    return x_pt, y_pt


def rect_to_px(x_in: float, y_in: float, width_in: float, height_in: float) -> dict[str, float]:
    """Scale an inch rectangle to 96 DPI pixels, rounded to 1/1000 px."""
    return {
        "x": round(in_to_px(x_in), 3),
        "y": round(in_to_px(y_in), 3),
        "width": round(in_to_px(width_in), 3),
        "height": round(in_to_px(height_in), 3),
    }
