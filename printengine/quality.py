"""Print quality estimation from pixel dimensions.

DPI is the image resolution divided by the physical print size, after
matching the portrait/landscape sense of image and print. Size
recommendation prefers a sharp print over a perfect aspect-ratio match:
a slightly cropped but sharp photo beats a well framed but blurry one.
"""

import io
import logging

from PIL import Image, UnidentifiedImageError

from printengine.catalog import PRINT_SIZES
from printengine.config import DPI_ACCEPTABLE, DPI_EXCELLENT, DPI_SHARP
from printengine.errors import DecodeFailed
from printengine.validation import PrintSize, QualityLevel, QualityReport

logger = logging.getLogger(__name__)

QUALITY_MESSAGES: dict[QualityLevel, str] = {
    "excellent": "Calidad excelente para impresion",
    "acceptable": "Calidad aceptable para este tamano",
    "poor": "Resolucion baja para este tamano",
}


def calculate_dpi(image_w: int, image_h: int, print_w_in: float, print_h_in: float) -> float:
    """Effective DPI of an image printed at a physical size.

    The print size is rotated when its orientation differs from the
    image's, then the smaller of the two axis resolutions wins.
    """
    image_portrait = image_h > image_w
    print_portrait = print_h_in > print_w_in

    if image_portrait == print_portrait:
        dpi_w = image_w / print_w_in
        dpi_h = image_h / print_h_in
    else:
        dpi_w = image_w / print_h_in
        dpi_h = image_h / print_w_in

    return min(dpi_w, dpi_h)


def quality_for_dpi(dpi: float) -> QualityLevel:
    if dpi >= DPI_EXCELLENT:
        return "excellent"
    if dpi >= DPI_ACCEPTABLE:
        return "acceptable"
    return "poor"


def aspect_match(image_aspect: float, size_aspect: float) -> float:
    """1.0 for identical aspect ratios, falling towards 0 as they diverge."""
    return 1 - abs(image_aspect - size_aspect) / max(image_aspect, size_aspect)


def score_size(image_w: int, image_h: int, size: PrintSize) -> float:
    """Recommendation score of one print size for an image.

    The print size is oriented like the image before comparing aspects.
    """
    portrait = image_h > image_w
    short_side = min(size.width_in, size.height_in)
    long_side = max(size.width_in, size.height_in)
    print_w, print_h = (short_side, long_side) if portrait else (long_side, short_side)

    dpi = calculate_dpi(image_w, image_h, print_w, print_h)
    match = aspect_match(image_w / image_h, print_w / print_h)

    if dpi >= DPI_SHARP:
        return 100 + 50 * match
    if dpi >= DPI_EXCELLENT:
        return 75 + 40 * match
    if dpi >= DPI_ACCEPTABLE:
        return 50 + 30 * match
    return 20 * match


def recommend_size(
    image_w: int, image_h: int, sizes: dict[str, PrintSize] = PRINT_SIZES
) -> PrintSize:
    """Highest scoring size for an image; ties keep catalog order."""
    return max(sizes.values(), key=lambda size: score_size(image_w, image_h, size))


def max_recommended_size(
    image_w: int, image_h: int, sizes: dict[str, PrintSize] = PRINT_SIZES
) -> PrintSize | None:
    """Last catalog size (sizes grow in catalog order) still printable at >= 150 DPI."""
    best: PrintSize | None = None
    for size in sizes.values():
        if calculate_dpi(image_w, image_h, size.width_in, size.height_in) >= DPI_ACCEPTABLE:
            best = size
    return best


def estimate(image_w: int, image_h: int, size: PrintSize) -> QualityReport:
    """Quality report for an image at one print size.

    Args:
        image_w: Image width in pixels
        image_h: Image height in pixels
        size: Candidate print size

    Returns:
        QualityReport with DPI, quality tier and the recommended size
    """
    if image_w <= 0 or image_h <= 0:
        raise ValueError(f"Image dimensions must be positive, got {image_w}x{image_h}")

    dpi = calculate_dpi(image_w, image_h, size.width_in, size.height_in)
    quality = quality_for_dpi(dpi)
    largest = max_recommended_size(image_w, image_h)

    return QualityReport(
        dpi=dpi,
        quality=quality,
        size=size.name,
        recommended_size=recommend_size(image_w, image_h).name,
        max_recommended_size=largest.name if largest else None,
        message=QUALITY_MESSAGES[quality],
    )


def image_dimensions(image_bytes: bytes) -> tuple[int, int]:
    """Pixel size of an encoded image, read from its header.

    Raises:
        DecodeFailed: If Pillow cannot identify the bytes as an image
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            return img.size
    except (UnidentifiedImageError, OSError) as e:
        raise DecodeFailed(details={"reason": str(e)}) from e


def validate_image(image_bytes: bytes, size: PrintSize | None = None) -> QualityReport:
    """Quality of an uploaded image at a size, or at its largest printable size.

    An image too small for every size is reported against the smallest one,
    which yields a "poor" report.
    """
    width, height = image_dimensions(image_bytes)
    if size is None:
        size = max_recommended_size(width, height) or next(iter(PRINT_SIZES.values()))

    report = estimate(width, height, size)
    logger.info(f"Image {width}x{height}px at {size.name}: {report.dpi:.0f} DPI ({report.quality})")
    return report
