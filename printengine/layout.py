"""Image-to-slot mapping and scale/crop transforms.

This module handles:
- Turning packed sheets into positioned images (slot rectangles in inches)
- Calculating scale/crop transforms to fit a source image into a slot
"""

from typing import TypedDict

from printengine.config import POSTER_OVERLAP_IN
from printengine.validation import CropResult, Layout, Placement, SheetAssignment


class Transform(TypedDict):
    """Image transform specification."""

    scale_factor: float
    crop_rect_px: dict[str, int]  # {x, y, width, height}


def calculate_transform(
    source_width_px: int,
    source_height_px: int,
    target_width_px: float,
    target_height_px: float,
    mode: str = "fill",
) -> Transform:
    """Calculate scale and crop transform to fit source into target.

    Args:
        source_width_px: Source image width in pixels
        source_height_px: Source image height in pixels
        target_width_px: Target slot width in pixels
        target_height_px: Target slot height in pixels
        mode: Scaling mode: "fill" | "fit"

    Returns:
        Transform with scale_factor and crop_rect_px

    Note:
        - "fill": Scale to cover target, cropping the excess evenly (no white borders)
        - "fit": Scale to fit within target (may have borders, never crops)
    """
    scale_x = target_width_px / source_width_px
    scale_y = target_height_px / source_height_px

    if mode == "fill":
        scale_factor = max(scale_x, scale_y)  # Use larger to cover

        # Crop rect is in source image coordinates (before scaling)
        crop_width = min(source_width_px, max(1, round(target_width_px / scale_factor)))
        crop_height = min(source_height_px, max(1, round(target_height_px / scale_factor)))
        crop_x = (source_width_px - crop_width) // 2
        crop_y = (source_height_px - crop_height) // 2

        return Transform(
            scale_factor=scale_factor,
            crop_rect_px={"x": crop_x, "y": crop_y, "width": crop_width, "height": crop_height},
        )
    elif mode == "fit":
        scale_factor = min(scale_x, scale_y)  # Use smaller to fit

        return Transform(
            scale_factor=scale_factor,
            crop_rect_px={"x": 0, "y": 0, "width": source_width_px, "height": source_height_px},
        )
    else:
        raise ValueError(f"Unsupported scaling mode: {mode}")


def place_sheets(
    sheets: list[SheetAssignment],
    layout: Layout,
    crops: dict[str, CropResult] | None = None,
) -> list[list[Placement]]:
    """Pair every filled slot of every sheet with its layout rectangle.

    Args:
        sheets: Output of packing.pack for this layout
        layout: Layout the sheets were packed with
        crops: Optional crop chosen per image ref (e.g. by CropSelector)

    Returns:
        One list of placements per sheet. Empty slots are skipped, so the
        last sheet may hold fewer placements than the layout has slots.
    """
    crops = crops or {}
    placed: list[list[Placement]] = []

    for sheet in sheets:
        if len(sheet) != layout.photos_per_sheet:
            raise ValueError(
                f"Sheet has {len(sheet)} entries, layout {layout.id} has "
                f"{layout.photos_per_sheet} slots"
            )
        placements = [
            Placement(
                image_ref=image_ref,
                x=slot.x,
                y=slot.y,
                width=slot.width,
                height=slot.height,
                crop=crops.get(image_ref),
            )
            for image_ref, slot in zip(sheet, layout.positions)
            if image_ref is not None
        ]
        placed.append(placements)

    return placed


class PosterDimensions(TypedDict):
    """Assembled poster size; neighbouring sheets overlap for gluing."""

    total_width_in: float
    total_height_in: float
    sheet_width_in: float
    sheet_height_in: float
    overlap_in: float


class SheetPosition(TypedDict):
    """One poster tile, as a fraction (0-1) of the whole poster."""

    id: str
    row: int
    col: int
    x: float
    y: float
    width: float
    height: float
    has_top_marker: bool
    has_bottom_marker: bool
    has_left_marker: bool
    has_right_marker: bool


def calculate_poster_dimensions(
    rows: int,
    cols: int,
    sheet_width_in: float,
    sheet_height_in: float,
    overlap_in: float = POSTER_OVERLAP_IN,
) -> PosterDimensions:
    """Total poster size when sheets overlap by ``overlap_in`` on inner edges."""
    return PosterDimensions(
        total_width_in=(sheet_width_in - overlap_in) * cols + overlap_in,
        total_height_in=(sheet_height_in - overlap_in) * rows + overlap_in,
        sheet_width_in=sheet_width_in,
        sheet_height_in=sheet_height_in,
        overlap_in=overlap_in,
    )


def generate_sheet_positions(rows: int, cols: int) -> list[SheetPosition]:
    """Tiles row by row; alignment markers sit on interior edges only."""
    tile_w = 1 / cols
    tile_h = 1 / rows
    return [
        SheetPosition(
            id=f"{row}-{col}",
            row=row,
            col=col,
            x=col * tile_w,
            y=row * tile_h,
            width=tile_w,
            height=tile_h,
            has_top_marker=row > 0,
            has_bottom_marker=row < rows - 1,
            has_left_marker=col > 0,
            has_right_marker=col < cols - 1,
        )
        for row in range(rows)
        for col in range(cols)
    ]
