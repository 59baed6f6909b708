"""Document page extraction and letter-size normalization using PyMuPDF.

This module handles:
- Page counting with encrypted-source detection
- Extracting a caller-chosen subset of pages (1-indexed)
- Rescaling and centering every page onto 8.5" x 11" (612 x 792 pt)
- The page-range mini format used by page selection ("1-3, 5, 7-9")
"""

import logging
from collections.abc import Iterable

import fitz  # type: ignore[import-untyped]  # PyMuPDF lacks type stubs

from printengine.config import LETTER_FIT_TOLERANCE_PT, LETTER_HEIGHT_PT, LETTER_WIDTH_PT
from printengine.errors import (
    DecodeFailed,
    EncryptedSource,
    PageExtractionFailed,
    PrintEngineError,
    ScalingFailed,
)

logger = logging.getLogger(__name__)


def open_pdf(pdf_bytes: bytes) -> fitz.Document:
    """Open a PDF from memory.

    Raises:
        DecodeFailed: If the bytes are not a PDF
        EncryptedSource: If the PDF requires a password
    """
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except (RuntimeError, ValueError) as e:
        raise DecodeFailed(details={"reason": str(e)}) from e

    if doc.needs_pass:
        doc.close()
        raise EncryptedSource()
    return doc


def page_count(pdf_bytes: bytes) -> int:
    """Number of pages in a PDF.

    Raises:
        EncryptedSource: If the PDF requires a password
        DecodeFailed: If the bytes are not a PDF
    """
    doc = open_pdf(pdf_bytes)
    try:
        return doc.page_count
    finally:
        doc.close()


def extract(pdf_bytes: bytes, page_numbers: Iterable[int]) -> bytes:
    """Copy selected pages into a new PDF, in the order requested.

    Args:
        pdf_bytes: Source PDF
        page_numbers: 1-indexed page numbers; out-of-range numbers are dropped

    Returns:
        New PDF containing only the valid selected pages

    Raises:
        PageExtractionFailed: If no requested page exists in the source
        EncryptedSource: If the source requires a password
    """
    doc = open_pdf(pdf_bytes)
    try:
        total = doc.page_count
        valid_indices = [n - 1 for n in page_numbers if 1 <= n <= total]
        if not valid_indices:
            raise PageExtractionFailed(
                "No hay paginas validas para extraer", {"page_count": total}
            )

        out = fitz.open()
        try:
            for index in valid_indices:
                out.insert_pdf(doc, from_page=index, to_page=index)
            result = out.tobytes(garbage=3, deflate=True)
        finally:
            out.close()
    except PrintEngineError:
        raise
    except (RuntimeError, ValueError) as e:
        raise PageExtractionFailed(details={"reason": str(e)}) from e
    finally:
        doc.close()

    logger.info(f"Extracted {len(valid_indices)} of {total} pages")
    return result


def is_letter_size(width_pt: float, height_pt: float) -> bool:
    return (
        abs(width_pt - LETTER_WIDTH_PT) < LETTER_FIT_TOLERANCE_PT
        and abs(height_pt - LETTER_HEIGHT_PT) < LETTER_FIT_TOLERANCE_PT
    )


def letter_fit(width_pt: float, height_pt: float) -> tuple[float, fitz.Rect]:
    """Uniform scale and target rectangle that center a page on letter paper.

    The scale fits the whole page (never crops); the offset splits the
    leftover space evenly on both sides.
    """
    scale = min(LETTER_WIDTH_PT / width_pt, LETTER_HEIGHT_PT / height_pt)
    scaled_w = width_pt * scale
    scaled_h = height_pt * scale
    offset_x = (LETTER_WIDTH_PT - scaled_w) / 2
    offset_y = (LETTER_HEIGHT_PT - scaled_h) / 2
    return scale, fitz.Rect(offset_x, offset_y, offset_x + scaled_w, offset_y + scaled_h)


def fit_to_letter(pdf_bytes: bytes) -> bytes:
    """Scale and center every page onto a 612 x 792 pt page.

    Pages already within 1pt of letter size are copied unchanged, which
    makes the operation idempotent.

    Raises:
        ScalingFailed: If a page cannot be normalized
        EncryptedSource: If the source requires a password
    """
    doc = open_pdf(pdf_bytes)
    try:
        out = fitz.open()
        try:
            for index, page in enumerate(doc):
                width, height = page.rect.width, page.rect.height
                if is_letter_size(width, height):
                    out.insert_pdf(doc, from_page=index, to_page=index)
                    continue

                scale, target = letter_fit(width, height)
                logger.debug(
                    f"Page {index + 1}: {width:.1f}x{height:.1f}pt scaled by {scale:.4f}"
                )
                letter_page = out.new_page(width=LETTER_WIDTH_PT, height=LETTER_HEIGHT_PT)
                letter_page.show_pdf_page(target, doc, index)

            result = out.tobytes(garbage=3, deflate=True)
        finally:
            out.close()
    except PrintEngineError:
        raise
    except (RuntimeError, ValueError) as e:
        raise ScalingFailed(details={"reason": str(e)}) from e
    finally:
        doc.close()

    return result


def process(pdf_bytes: bytes, page_numbers: Iterable[int]) -> bytes:
    """Extract the selected pages, then fit them to letter size."""
    return fit_to_letter(extract(pdf_bytes, page_numbers))


def parse_page_ranges(text: str, max_pages: int) -> list[int]:
    """Parse "1-5, 8, 10-12" into sorted unique page numbers in [1, max_pages].

    Malformed parts are ignored and ranges are clipped to the document.
    An open start ("-3") counts from page 1; an open end ("5-") selects
    nothing. Only the first two bounds of "1-2-3" are read.
    """
    selected: set[int] = set()
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            start_text, end_text = part.split("-")[:2]
            try:
                start = int(start_text) if start_text.strip() else 1
                end = int(end_text) if end_text.strip() else 0
            except ValueError:
                continue
            selected.update(range(max(1, start), min(end, max_pages) + 1))
        else:
            try:
                page = int(part)
            except ValueError:
                continue
            if 1 <= page <= max_pages:
                selected.add(page)
    return sorted(selected)


def pages_to_range_string(pages: Iterable[int]) -> str:
    """Compact page numbers into ranges: [1, 2, 3, 5, 7, 8, 9] → "1-3, 5, 7-9"."""
    ordered = sorted(set(pages))
    if not ordered:
        return ""

    ranges: list[str] = []
    start = end = ordered[0]
    for page in ordered[1:]:
        if page == end + 1:
            end = page
            continue
        ranges.append(str(start) if start == end else f"{start}-{end}")
        start = end = page
    ranges.append(str(start) if start == end else f"{start}-{end}")
    return ", ".join(ranges)
