"""Expand per-image copy counts into ordered letter sheets.

Packing is sequential, not bin-packing: each image is repeated ``copies``
times in upload order, then the sequence is cut into sheets of
``photos_per_sheet``. A customer's first photo always fills sheets before
later ones, and the last sheet is padded with empty slots.
"""

import logging
import math
from typing import TypedDict

from printengine.validation import Layout, PhotoRequest, SheetAssignment

logger = logging.getLogger(__name__)


class PackingSummary(TypedDict):
    """Counts shown to the customer before the order is placed."""

    layout_id: str
    total_copies: int
    photos_per_sheet: int
    sheets_needed: int
    empty_slots_on_last_sheet: int


def sheets_needed(total_copies: int, photos_per_sheet: int) -> int:
    """Number of sheets for a copy count: ceil(total / per sheet)."""
    if photos_per_sheet < 1:
        raise ValueError(f"photos_per_sheet must be at least 1, got {photos_per_sheet}")
    return math.ceil(total_copies / photos_per_sheet)


def empty_slots_on_last_sheet(total_copies: int, photos_per_sheet: int) -> int:
    return sheets_needed(total_copies, photos_per_sheet) * photos_per_sheet - total_copies


def expand_copies(requests: list[PhotoRequest]) -> list[str]:
    """Flatten requests into one image ref per printed copy, in input order."""
    return [request.image_ref for request in requests for _ in range(request.copies)]


def check_sheet_rules(sheet: SheetAssignment, layout: Layout) -> None:
    """Enforce the layout's repeat/mix rules on one packed sheet.

    Raises:
        ValueError: If the sheet repeats a photo on a no-repeat layout, or
            mixes photos on a single-photo layout
    """
    refs = [ref for ref in sheet if ref is not None]
    if not layout.allows_repeat and len(set(refs)) < len(refs):
        raise ValueError(f"Layout {layout.id} does not allow the same photo twice on a sheet")
    if not layout.allows_different and len(set(refs)) > 1:
        raise ValueError(f"Layout {layout.id} does not allow different photos on a sheet")


def pack(requests: list[PhotoRequest], layout: Layout) -> list[SheetAssignment]:
    """Distribute photo copies over sheets of a layout.

    Args:
        requests: Images with copy counts; copy limits are enforced upstream
        layout: Catalog layout giving the number of slots per sheet

    Returns:
        One list per sheet, exactly ``photos_per_sheet`` long. Trailing
        entries of the last sheet are None when copies run out. No requests
        means no sheets.

    Raises:
        ValueError: If a sheet breaks the layout's repeat/mix rules
    """
    copies = expand_copies(requests)
    per_sheet = layout.photos_per_sheet

    sheets: list[SheetAssignment] = []
    for start in range(0, len(copies), per_sheet):
        sheet: SheetAssignment = list(copies[start : start + per_sheet])
        sheet.extend([None] * (per_sheet - len(sheet)))
        check_sheet_rules(sheet, layout)
        sheets.append(sheet)

    logger.debug(
        f"Packed {len(copies)} copies of {len(requests)} images into "
        f"{len(sheets)} sheets with layout {layout.id}"
    )
    return sheets


def summarize(requests: list[PhotoRequest], layout: Layout) -> PackingSummary:
    total = sum(request.copies for request in requests)
    return PackingSummary(
        layout_id=layout.id,
        total_copies=total,
        photos_per_sheet=layout.photos_per_sheet,
        sheets_needed=sheets_needed(total, layout.photos_per_sheet),
        empty_slots_on_last_sheet=empty_slots_on_last_sheet(total, layout.photos_per_sheet),
    )
