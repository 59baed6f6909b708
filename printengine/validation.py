"""Schema validation using Pydantic models.

This module defines:
- Pydantic models for catalog entries, requests and results
- Validation functions for slot rectangles (safe print area, overlap)
- IoU (Intersection over Union) calculation for overlap detection
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from printengine.config import (
    DPI_ACCEPTABLE,
    PRINTABLE_END_X_IN,
    PRINTABLE_END_Y_IN,
    PRINTABLE_START_X_IN,
    PRINTABLE_START_Y_IN,
)

# Slack for float comparisons on inch values from the layout tables
GEOMETRY_EPSILON = 1e-9

CropMethod = Literal["face", "saliency", "center"]
QualityLevel = Literal["excellent", "acceptable", "poor"]

# One sheet: image refs in slot order, None for an empty slot
SheetAssignment = list[str | None]


class Slot(BaseModel):
    """Placement rectangle in inches (top-left origin of a letter sheet)."""

    model_config = ConfigDict(frozen=True)

    x: float = Field(ge=0, description="X coordinate from top-left (in)")
    y: float = Field(ge=0, description="Y coordinate from top-left (in)")
    width: float = Field(gt=0, description="Width in inches")
    height: float = Field(gt=0, description="Height in inches")

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height


class PixelSize(BaseModel):
    model_config = ConfigDict(frozen=True)

    w: int = Field(gt=0)
    h: int = Field(gt=0)


class PrintSize(BaseModel):
    """Named physical print size used for quality scoring."""

    model_config = ConfigDict(frozen=True)

    name: str
    width_in: float = Field(gt=0)
    height_in: float = Field(gt=0)
    optimal_px: PixelSize
    min_px: PixelSize

    @property
    def aspect(self) -> float:
        return self.width_in / self.height_in


class PhotoSize(BaseModel):
    """Photo size a layout packs, with the most that fit on one sheet."""

    model_config = ConfigDict(frozen=True)

    name: str
    display_name: str
    width_in: float = Field(gt=0)
    height_in: float = Field(gt=0)
    max_per_sheet: int = Field(ge=1)


class Layout(BaseModel):
    """Static catalog entry mapping a photo size to slots on one letter sheet."""

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    description: str = ""
    photo_size: str
    photo_width_in: float = Field(gt=0)
    photo_height_in: float = Field(gt=0)
    photos_per_sheet: int = Field(ge=1)
    allows_repeat: bool = True
    allows_different: bool = True
    positions: tuple[Slot, ...]
    compatible_papers: tuple[str, ...] = ()
    is_active: bool = True
    sort_order: int = 0

    @model_validator(mode="after")
    def check_slot_count(self) -> "Layout":
        """Validate there is exactly one slot per photo on the sheet."""
        if len(self.positions) != self.photos_per_sheet:
            raise ValueError(
                f"Layout {self.id}: {len(self.positions)} positions for "
                f"{self.photos_per_sheet} photos per sheet"
            )
        return self


class PhotoRequest(BaseModel):
    """One uploaded image and the number of printed copies wanted."""

    image_ref: str = Field(min_length=1)
    copies: int = Field(ge=1)


class Region(BaseModel):
    """Pixel rectangle in source-image space, as reported by detectors."""

    x: float
    y: float
    width: float = Field(ge=0)
    height: float = Field(ge=0)


class CropResult(BaseModel):
    """Crop rectangle in source-image pixels, always inside the image."""

    x: int = Field(ge=0)
    y: int = Field(ge=0)
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    confidence: float = Field(ge=0, le=1)
    method: CropMethod


class QualityReport(BaseModel):
    """Derived print quality of an image at one size. Never persisted."""

    dpi: float = Field(ge=0)
    quality: QualityLevel
    recommended_size: str
    size: str
    max_recommended_size: str | None = None
    message: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_valid(self) -> bool:
        return self.dpi >= DPI_ACCEPTABLE


class Placement(BaseModel):
    """Image positioned on a sheet, in inches, ready for rendering."""

    image_ref: str
    x: float = Field(ge=0)
    y: float = Field(ge=0)
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    crop: CropResult | None = None


def calculate_iou(a: Slot, b: Slot) -> float:
    """Calculate Intersection over Union (IoU) between two slots.

    Returns:
        IoU score between 0 and 1, where:
        - 0 = no overlap (touching edges included)
        - 1 = perfect overlap
    """
    intersection_area = intersection_area_of(a, b)
    if intersection_area <= 0:
        return 0.0

    union_area = a.width * a.height + b.width * b.height - intersection_area
    return intersection_area / union_area if union_area > 0 else 0.0


def intersection_area_of(a: Slot, b: Slot) -> float:
    """Area shared by two slots, 0 when they are disjoint or only touch."""
    x1 = max(a.x, b.x)
    y1 = max(a.y, b.y)
    x2 = min(a.right, b.right)
    y2 = min(a.bottom, b.bottom)

    if x2 - x1 <= GEOMETRY_EPSILON or y2 - y1 <= GEOMETRY_EPSILON:
        return 0.0
    return (x2 - x1) * (y2 - y1)


def check_slot_within_safe_area(slot: Slot) -> bool:
    """Check the slot lies inside [0.25, 8.25] x [0.25, 10.5] inches."""
    return (
        slot.x >= PRINTABLE_START_X_IN - GEOMETRY_EPSILON
        and slot.y >= PRINTABLE_START_Y_IN - GEOMETRY_EPSILON
        and slot.right <= PRINTABLE_END_X_IN + GEOMETRY_EPSILON
        and slot.bottom <= PRINTABLE_END_Y_IN + GEOMETRY_EPSILON
    )


def check_slots_overlap(slots: tuple[Slot, ...] | list[Slot]) -> bool:
    """Check that no two slots share any area.

    Returns:
        True if the slots are pairwise disjoint, False otherwise
    """
    for i, first in enumerate(slots):
        for second in slots[i + 1 :]:
            if intersection_area_of(first, second) > 0:
                return False
    return True


def validate_layout_geometry(layout: Layout) -> list[str]:
    """List geometry problems of a layout; empty when it is printable."""
    problems = [
        f"slot {i} of {layout.id} leaves the safe print area"
        for i, slot in enumerate(layout.positions)
        if not check_slot_within_safe_area(slot)
    ]
    if not check_slots_overlap(layout.positions):
        problems.append(f"slots of {layout.id} overlap")
    return problems
