"""Shared fixtures: PDFs and images generated on the fly.

PDFs are drawn with ReportLab and images with Pillow so no binary
fixtures need to be checked in.
"""

import io
from collections.abc import Callable

import pytest
from PIL import Image
from reportlab.lib.pagesizes import A4, letter
from reportlab.pdfgen import canvas

PdfFactory = Callable[..., bytes]
ImageFactory = Callable[..., bytes]


def build_pdf(page_sizes: list[tuple[float, float]], encrypt: str | None = None) -> bytes:
    """PDF with one page per (width_pt, height_pt), each labelled with its number."""
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=page_sizes[0], encrypt=encrypt)
    for number, (width, height) in enumerate(page_sizes, start=1):
        c.setPageSize((width, height))
        c.setFillColorRGB(0.9, 0.9, 0.9)
        c.rect(10, 10, width - 20, height - 20, stroke=1, fill=1)
        c.setFillColorRGB(0, 0, 0)
        c.setFont("Helvetica", 12)
        c.drawString(20, height - 30, f"Page {number}")
        c.showPage()
    c.save()
    return buffer.getvalue()


def build_image(width: int, height: int, fmt: str = "JPEG", color: tuple[int, int, int] = (200, 120, 60)) -> bytes:
    """Solid image with a darker square in the middle (gives saliency something to find)."""
    image = Image.new("RGB", (width, height), color)
    inner = Image.new("RGB", (max(1, width // 4), max(1, height // 4)), (20, 20, 20))
    image.paste(inner, (width // 2 - inner.width // 2, height // 2 - inner.height // 2))
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def make_pdf() -> PdfFactory:
    return build_pdf


@pytest.fixture
def make_image() -> ImageFactory:
    return build_image


@pytest.fixture
def pdf_10_pages() -> bytes:
    return build_pdf([letter] * 10)


@pytest.fixture
def a4_pdf() -> bytes:
    return build_pdf([A4, A4])


@pytest.fixture
def mixed_size_pdf() -> bytes:
    """Letter, A4, landscape tabloid and a small receipt page."""
    return build_pdf([letter, A4, (1224, 792), (226, 600)])


@pytest.fixture
def encrypted_pdf() -> bytes:
    return build_pdf([letter], encrypt="secret")


@pytest.fixture
def photo_jpeg() -> bytes:
    return build_image(1200, 1800)


@pytest.fixture
def landscape_png() -> bytes:
    return build_image(1600, 900, fmt="PNG", color=(40, 160, 220))
