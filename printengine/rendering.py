"""Print rendering from positioned sheets.

This module handles:
- Server mode: print-ready PDFs with ReportLab, one 612 x 792 pt page per sheet
- Single-image PDFs extended into a bleed with corner crop marks
- Poster tiles split across several sheets
- Client mode: an isolated HTML print surface in 96 DPI pixels (Jinja2)

Sheet positions are inches from the top-left of a letter sheet; they are
converted to points (x72) for PDF output and to pixels (x96) for the
browser, never left as inch units in markup.
"""

import io
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape
from PIL import Image
from pydantic import BaseModel
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from printengine.catalog import PosterConfig
from printengine.config import (
    BLEED_IN,
    CROP_MARK_OFFSET_PT,
    LETTER_HEIGHT_IN,
    LETTER_HEIGHT_PT,
    LETTER_HEIGHT_PX,
    LETTER_WIDTH_PT,
    LETTER_WIDTH_PX,
    PDF_PRODUCER,
    PRINT_DPI,
    PRINT_READY_TIMEOUT_MS,
)
from printengine.coordinates import in_to_pdf_coords, in_to_pt, rect_to_px
from printengine.detection import apply_crop, decode_image
from printengine.errors import ImageLoadFailed, PrintEngineError
from printengine.layout import calculate_transform
from printengine.validation import Placement, PrintSize

logger = logging.getLogger(__name__)

# Path where Jinja2 looks for the print surface template
_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

ImageLoader = Callable[[str], bytes]


class PrintSurface(BaseModel):
    """Self-contained print document for the browser's print dialog."""

    html: str
    order_code: str
    sheet_count: int
    image_count: int
    sheet_width_px: int = LETTER_WIDTH_PX
    sheet_height_px: int = LETTER_HEIGHT_PX
    ready_timeout_ms: int = PRINT_READY_TIMEOUT_MS


def _load_one(loader: ImageLoader, image_ref: str) -> Image.Image:
    try:
        data = loader(image_ref)
    except PrintEngineError:
        raise
    except Exception as e:
        raise ImageLoadFailed(details={"image_ref": image_ref, "reason": str(e)}) from e
    return decode_image(data)


def load_images(
    image_refs: list[str],
    loader: ImageLoader,
    timeout_ms: int = PRINT_READY_TIMEOUT_MS,
) -> dict[str, Image.Image]:
    """Fetch and decode images concurrently, waiting at most ``timeout_ms``.

    Every image is required: the first failure, in ref order, is raised.

    Raises:
        DecodeFailed: If an image's bytes are not a readable image
        ImageLoadFailed: If the loader fails or an image is still loading
            when the timeout fires
    """
    unique_refs = list(dict.fromkeys(image_refs))
    if not unique_refs:
        return {}

    executor = ThreadPoolExecutor(max_workers=min(8, len(unique_refs)))
    futures = {ref: executor.submit(_load_one, loader, ref) for ref in unique_refs}
    _, not_done = wait(futures.values(), timeout=timeout_ms / 1000)
    executor.shutdown(wait=False, cancel_futures=True)

    images: dict[str, Image.Image] = {}
    for ref, future in futures.items():
        if future in not_done:
            logger.error(f"Image {ref} timed out after {timeout_ms}ms")
            raise ImageLoadFailed(details={"image_ref": ref, "timeout_ms": timeout_ms})
        try:
            images[ref] = future.result()
        except PrintEngineError as e:
            logger.error(f"Image {ref} could not be loaded: {e}")
            raise

    return images


def fit_image_to_slot(image: Image.Image, placement: Placement, grayscale: bool = False) -> Image.Image:
    """Crop and downsample an image to exactly cover its slot.

    An explicit crop on the placement is applied first; the remaining
    aspect mismatch is center-cropped, never stretched.
    """
    if placement.crop is not None:
        image = apply_crop(image, placement.crop)

    target_w_px = placement.width * PRINT_DPI
    target_h_px = placement.height * PRINT_DPI
    transform = calculate_transform(image.width, image.height, target_w_px, target_h_px, "fill")
    rect = transform["crop_rect_px"]
    fitted = image.crop((rect["x"], rect["y"], rect["x"] + rect["width"], rect["y"] + rect["height"]))

    if fitted.width > target_w_px:
        fitted = fitted.resize((round(target_w_px), round(target_h_px)), Image.Resampling.LANCZOS)

    return fitted.convert("L" if grayscale else "RGB")


def render_sheets_pdf(
    sheets: list[list[Placement]],
    loader: ImageLoader,
    color: bool = True,
    title: str | None = None,
    timeout_ms: int = PRINT_READY_TIMEOUT_MS,
) -> bytes:
    """Generate a PDF with one letter page per sheet.

    Args:
        sheets: Placements per sheet (see layout.place_sheets)
        loader: Returns encoded image bytes for an image ref
        color: False renders every photo in grayscale
        title: Optional document title
        timeout_ms: Upper bound on waiting for images

    Returns:
        PDF bytes; every page is exactly 612 x 792 pt

    Raises:
        ValueError: If there are no sheets
        DecodeFailed: If a photo cannot be decoded
        ImageLoadFailed: If a photo cannot be fetched within ``timeout_ms``
    """
    if not sheets:
        raise ValueError("No sheets to render")

    refs = [placement.image_ref for sheet in sheets for placement in sheet]
    images = load_images(refs, loader, timeout_ms)

    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=(LETTER_WIDTH_PT, LETTER_HEIGHT_PT))
    c.setCreator(PDF_PRODUCER)
    if title:
        c.setTitle(title)

    for sheet_num, sheet in enumerate(sheets, start=1):
        for placement in sheet:
            fitted = fit_image_to_slot(images[placement.image_ref], placement, grayscale=not color)
            x_pt, y_pt = in_to_pdf_coords(placement.x, placement.y, placement.height, LETTER_HEIGHT_IN)
            c.drawImage(
                ImageReader(fitted),
                x_pt,
                y_pt,
                width=in_to_pt(placement.width),
                height=in_to_pt(placement.height),
                preserveAspectRatio=False,  # Aspect ratio already handled by the fill crop
            )
        logger.debug(f"Rendered sheet {sheet_num} with {len(sheet)} photos")
        c.showPage()

    c.save()
    logger.info(f"Rendered {len(sheets)} sheets to PDF")
    return buffer.getvalue()


def draw_crop_marks(c: canvas.Canvas, width_pt: float, height_pt: float, bleed_pt: float) -> None:
    """Draw trim marks at the four corners, outside the trim box."""
    c.setStrokeColorRGB(0, 0, 0)
    c.setLineWidth(0.5)
    mark_end = bleed_pt - CROP_MARK_OFFSET_PT

    for trim_x, outer_x, inner_x in ((bleed_pt, 0, mark_end), (width_pt - bleed_pt, width_pt, width_pt - mark_end)):
        for trim_y, outer_y, inner_y in ((bleed_pt, 0, mark_end), (height_pt - bleed_pt, height_pt, height_pt - mark_end)):
            c.line(outer_x, trim_y, inner_x, trim_y)  # horizontal
            c.line(trim_x, outer_y, trim_x, inner_y)  # vertical


def _cover_image(image: Image.Image, width_pt: float, height_pt: float) -> Image.Image:
    """Center-crop an image to the aspect of a page area."""
    transform = calculate_transform(image.width, image.height, width_pt, height_pt, "fill")
    rect = transform["crop_rect_px"]
    return image.crop((rect["x"], rect["y"], rect["x"] + rect["width"], rect["y"] + rect["height"])).convert("RGB")


def render_print_ready_pdf(
    image_bytes: bytes, size: PrintSize, title: str | None = None, grayscale: bool = False
) -> bytes:
    """Single-image PDF at trim size plus bleed, with crop marks.

    The image covers the whole page including the 0.125" bleed so no white
    edge remains after trimming. ``grayscale`` is for black and white paper.

    Raises:
        DecodeFailed: If the image cannot be decoded
    """
    image = decode_image(image_bytes)
    bleed_pt = in_to_pt(BLEED_IN)
    width_pt = in_to_pt(size.width_in) + bleed_pt * 2
    height_pt = in_to_pt(size.height_in) + bleed_pt * 2

    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=(width_pt, height_pt))
    c.setCreator(PDF_PRODUCER)
    c.setSubject(f"Impresion {size.name}")
    if title:
        c.setTitle(title)

    cover = _cover_image(image, width_pt, height_pt)
    if grayscale:
        cover = cover.convert("L")
    c.drawImage(ImageReader(cover), 0, 0, width=width_pt, height=height_pt)
    draw_crop_marks(c, width_pt, height_pt, bleed_pt)
    c.showPage()
    c.save()
    return buffer.getvalue()


def render_poster_pdf(
    image_bytes: bytes, size: PrintSize, poster: PosterConfig, title: str | None = None
) -> bytes:
    """Split one image across ``rows x cols`` pages of a print size.

    Each page is the print size plus bleed and shows its tile of the
    poster, with crop marks and a "row-col" label for assembly.
    """
    image = decode_image(image_bytes)
    bleed_pt = in_to_pt(BLEED_IN)
    tile_w = in_to_pt(size.width_in)
    tile_h = in_to_pt(size.height_in)
    page_w = tile_w + bleed_pt * 2
    page_h = tile_h + bleed_pt * 2
    total_w = tile_w * poster.cols
    total_h = tile_h * poster.rows

    reader = ImageReader(_cover_image(image, total_w, total_h))

    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=(page_w, page_h))
    c.setCreator(PDF_PRODUCER)
    c.setSubject("Poster multi-hoja")
    c.setTitle(title or f"Poster {poster.id}")

    for row in range(poster.rows):
        for col in range(poster.cols):
            # PDF origin is bottom-left, rows count from the top
            offset_x = -(col * tile_w) + bleed_pt
            offset_y = -(total_h - (row + 1) * tile_h) + bleed_pt
            c.drawImage(reader, offset_x, offset_y, width=total_w, height=total_h)
            draw_crop_marks(c, page_w, page_h, bleed_pt)

            c.setFont("Helvetica", 8)
            c.setFillColorRGB(0.5, 0.5, 0.5)
            c.drawString(page_w - 30, 10, f"{row + 1}-{col + 1}")
            c.showPage()

    c.save()
    logger.info(f"Rendered poster {poster.id} on {poster.sheets} sheets of {size.name}")
    return buffer.getvalue()


def build_print_surface(
    sheets: list[list[Placement]],
    order_code: str,
    image_url: Callable[[str], str] | None = None,
    ready_timeout_ms: int = PRINT_READY_TIMEOUT_MS,
) -> PrintSurface:
    """Render the isolated HTML document used for in-browser printing.

    Sheets are 816 x 1056 px (letter at 96 DPI) and every position is
    emitted in pixels, because print CSS inches are interpreted
    inconsistently across mobile browsers. Every sheet except the last
    forces a page break. The embedded script waits for every image to load
    or fail, capped at ``ready_timeout_ms``, before opening the print dialog.

    Args:
        sheets: Placements per sheet
        order_code: Shown as the document title
        image_url: Maps an image ref to a URL; refs are used as-is by default
        ready_timeout_ms: Safety timeout before printing anyway
    """
    resolve = image_url or (lambda ref: ref)
    sheet_photos = [
        [
            {"src": resolve(placement.image_ref), **rect_to_px(placement.x, placement.y, placement.width, placement.height)}
            for placement in sheet
        ]
        for sheet in sheets
    ]

    env = Environment(
        loader=FileSystemLoader(str(_TEMPLATE_DIR)),
        autoescape=select_autoescape(["html", "j2"]),
    )
    template = env.get_template("print_surface.html.j2")
    html = template.render(
        sheets=sheet_photos,
        order_code=order_code,
        sheet_width_px=LETTER_WIDTH_PX,
        sheet_height_px=LETTER_HEIGHT_PX,
        ready_timeout_ms=ready_timeout_ms,
    )

    return PrintSurface(
        html=html,
        order_code=order_code,
        sheet_count=len(sheets),
        image_count=sum(len(sheet) for sheet in sheet_photos),
        ready_timeout_ms=ready_timeout_ms,
    )
