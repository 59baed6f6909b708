"""Command-line interface for the print production engine.

Usage:
    # Catalog and packing
    python cli.py layouts --photo-size=wallet
    python cli.py pack 4x-wallet beach.jpg:3 dog.jpg:2

    # Photo checks
    python cli.py quality beach.jpg --size=5x7
    python cli.py crop beach.jpg --aspect=0.6667 --output=beach_crop.jpg

    # Documents
    python cli.py pages thesis.pdf
    python cli.py paginate thesis.pdf out.pdf --pages="1-3, 5"

    # Sheets
    python cli.py render-sheets 4x-wallet beach.jpg:3 dog.jpg:2 --output=sheets.pdf
    python cli.py print-surface 4x-wallet beach.jpg:3 --output=print.html

    # Full production job for one order
    python cli.py produce thesis.pdf --order-id=ord_123 --code=IMP-0042 --pages="1-10"
"""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path

import click

from printengine import pagination
from printengine.catalog import CATALOG, PRINT_SIZES, get_print_size
from printengine.config import EngineSettings
from printengine.detection import CropSelector, apply_crop, decode_image
from printengine.errors import PrintEngineError
from printengine.layout import place_sheets
from printengine.packing import pack as pack_requests
from printengine.packing import summarize
from printengine.production import (
    InMemoryOrderRepository,
    LocalObjectStore,
    ProductionOrder,
    ProductionQueue,
)
from printengine.quality import validate_image
from printengine.rendering import build_print_surface, render_sheets_pdf
from printengine.validation import Layout, PhotoRequest, Placement

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Configure root logger
logging.basicConfig(
    level=logging.INFO,
    format=LOG_FORMAT,
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


def parse_request(value: str) -> PhotoRequest:
    """Parse "path.jpg:3" (or just "path.jpg" for one copy)."""
    image_ref, sep, copies = value.rpartition(":")
    if not sep or not copies.isdigit():
        return PhotoRequest(image_ref=value, copies=1)
    return PhotoRequest(image_ref=image_ref, copies=int(copies))


def _read_file(ref: str) -> bytes:
    return Path(ref).read_bytes()


def _sheet_placements(
    layout_id: str, requests: tuple[str, ...], auto_crop: bool
) -> tuple[Layout, list[list[Placement]]]:
    layout = CATALOG.get(layout_id)
    photo_requests = [parse_request(value) for value in requests]
    sheets = pack_requests(photo_requests, layout)

    crops = {}
    if auto_crop:
        selector = CropSelector.with_opencv(enable_faces=EngineSettings().enable_face_detection)
        aspect = layout.photo_width_in / layout.photo_height_in
        for request in photo_requests:
            if request.image_ref not in crops:
                crops[request.image_ref] = selector.select(_read_file(request.image_ref), target_aspect_ratio=aspect)

    return layout, place_sheets(sheets, layout, crops)


@click.group()
@click.option("--log-level", default=None, help="Override PRINTENGINE_LOG_LEVEL")
def cli(log_level: str | None) -> None:
    """Print engine - letter sheet layouts, documents and print PDFs."""
    level = log_level or EngineSettings().log_level
    logging.getLogger().setLevel(level.upper())


@cli.command()
@click.option("--photo-size", default=None, help="Only layouts for this photo size")
def layouts(photo_size: str | None) -> None:
    """List active letter layouts."""
    entries = CATALOG.list_by_photo_size(photo_size) if photo_size else CATALOG.list_active()
    if not entries:
        raise click.ClickException(f"No layouts for photo size {photo_size}")

    for layout in entries:
        papers = ", ".join(layout.compatible_papers)
        click.echo(f"{layout.id:<12} {layout.display_name:<28} {layout.photos_per_sheet:>3}/hoja  [{papers}]")
    if photo_size:
        click.echo(f"Best for {photo_size}: {CATALOG.best_for(photo_size).id}")


@cli.command()
@click.argument("layout_id")
@click.argument("requests", nargs=-1, required=True)
def pack(layout_id: str, requests: tuple[str, ...]) -> None:
    """Pack IMAGE[:COPIES] requests onto sheets of a layout.

    Prints the sheet assignment and copy counts as JSON.
    """
    try:
        layout = CATALOG.get(layout_id)
    except PrintEngineError as e:
        raise click.ClickException(e.message)

    photo_requests = [parse_request(value) for value in requests]
    result = {
        "summary": summarize(photo_requests, layout),
        "sheets": pack_requests(photo_requests, layout),
    }
    click.echo(json.dumps(result, indent=2))


@cli.command()
@click.argument("image_path", type=click.Path(exists=True))
@click.option("--size", default=None, type=click.Choice(list(PRINT_SIZES)), help="Print size to check")
def quality(image_path: str, size: str | None) -> None:
    """Estimate print quality of an image."""
    try:
        report = validate_image(_read_file(image_path), get_print_size(size) if size else None)
    except PrintEngineError as e:
        raise click.ClickException(e.message)

    click.echo(json.dumps(report.model_dump(), indent=2))


@cli.command()
@click.argument("image_path", type=click.Path(exists=True))
@click.option("--aspect", default=None, type=float, help="Target width / height")
@click.option("--size", "target_size", default=None, help="Target size in pixels, WIDTHxHEIGHT")
@click.option("--no-faces", is_flag=True, help="Skip face detection")
@click.option("--output", default=None, type=click.Path(), help="Write the cropped image here")
def crop(image_path: str, aspect: float | None, target_size: str | None, no_faces: bool, output: str | None) -> None:
    """Choose an automatic crop (face → saliency → center)."""
    parsed_size = None
    if target_size:
        width, _, height = target_size.lower().partition("x")
        if not (width.isdigit() and height.isdigit()):
            raise click.BadParameter("expected WIDTHxHEIGHT", param_hint="--size")
        parsed_size = (int(width), int(height))

    try:
        image = decode_image(_read_file(image_path))
    except PrintEngineError as e:
        raise click.ClickException(e.message)

    selector = CropSelector.with_opencv(enable_faces=EngineSettings().enable_face_detection)
    result = selector.select(image, target_aspect_ratio=aspect, target_size=parsed_size, detect_faces=not no_faces)
    click.echo(json.dumps(result.model_dump(), indent=2))

    if output:
        apply_crop(image, result).convert("RGB").save(output)
        click.echo(f"✓ Cropped image saved to: {output}")


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True))
def pages(pdf_path: str) -> None:
    """Print the page count of a PDF."""
    try:
        click.echo(pagination.page_count(_read_file(pdf_path)))
    except PrintEngineError as e:
        raise click.ClickException(e.message)


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True))
@click.argument("output_path", type=click.Path())
@click.option("--pages", "page_ranges", default=None, help='Pages to keep, e.g. "1-3, 5"; default all')
def paginate(pdf_path: str, output_path: str, page_ranges: str | None) -> None:
    """Extract pages and fit them to letter size."""
    source = _read_file(pdf_path)
    try:
        if page_ranges:
            selected = pagination.parse_page_ranges(page_ranges, pagination.page_count(source))
            click.echo(f"📄 Pages: {pagination.pages_to_range_string(selected) or '(none)'}")
            result = pagination.process(source, selected)
        else:
            result = pagination.fit_to_letter(source)
    except PrintEngineError as e:
        raise click.ClickException(e.message)

    Path(output_path).write_bytes(result)
    click.echo(f"✓ Letter-size PDF saved to: {output_path}")


@cli.command("render-sheets")
@click.argument("layout_id")
@click.argument("requests", nargs=-1, required=True)
@click.option("--output", default="sheets.pdf", type=click.Path(), help="Output PDF path")
@click.option("--grayscale", is_flag=True, help="Render for black and white paper")
@click.option("--auto-crop", is_flag=True, help="Crop each photo with face/saliency detection")
def render_sheets(layout_id: str, requests: tuple[str, ...], output: str, grayscale: bool, auto_crop: bool) -> None:
    """Render IMAGE[:COPIES] requests as a letter-sheet PDF."""
    settings = EngineSettings()
    try:
        layout, sheets = _sheet_placements(layout_id, requests, auto_crop)
        pdf = render_sheets_pdf(
            sheets, _read_file, color=not grayscale, title=layout.display_name,
            timeout_ms=settings.print_ready_timeout_ms,
        )
    except PrintEngineError as e:
        raise click.ClickException(e.message)

    Path(output).write_bytes(pdf)
    click.echo(f"✓ Rendered {len(sheets)} sheets ({layout.id})")
    click.echo(f"📁 PDF saved to: {output}")


@cli.command("print-surface")
@click.argument("layout_id")
@click.argument("requests", nargs=-1, required=True)
@click.option("--output", default="print.html", type=click.Path(), help="Output HTML path")
@click.option("--code", default="preview", help="Order code shown as the page title")
def print_surface(layout_id: str, requests: tuple[str, ...], output: str, code: str) -> None:
    """Write the browser print document for IMAGE[:COPIES] requests."""
    settings = EngineSettings()
    try:
        _, sheets = _sheet_placements(layout_id, requests, auto_crop=False)
    except PrintEngineError as e:
        raise click.ClickException(e.message)

    surface = build_print_surface(
        sheets, code,
        image_url=lambda ref: Path(ref).resolve().as_uri(),
        ready_timeout_ms=settings.print_ready_timeout_ms,
    )
    Path(output).write_text(surface.html, encoding="utf-8")
    click.echo(f"✓ {surface.sheet_count} sheets, {surface.image_count} photos")
    click.echo(f"📁 Print surface saved to: {output}")


@cli.command()
@click.argument("source_path", type=click.Path(exists=True))
@click.option("--order-id", required=True, help="Order identifier")
@click.option("--code", required=True, help="Order code used in the output file name")
@click.option("--kind", default="document", type=click.Choice(["document", "photo"]), help="Product kind")
@click.option("--pages", "page_ranges", default=None, help='Document pages, e.g. "1-3, 5"; default all')
@click.option("--size", default=None, type=click.Choice(list(PRINT_SIZES)), help="Print size for photo orders")
def produce(
    source_path: str,
    order_id: str,
    code: str,
    kind: str,
    page_ranges: str | None,
    size: str | None,
) -> None:
    """Run the production job for one order against local storage.

    Output:
        - Source copy: <storage_dir>/<source_bucket>/<order_id>/<file name>
        - PDF: <storage_dir>/<output_bucket>/<code>-<id>.pdf
        - Log file: logs/<order_id>/produce_<timestamp>.log
    """
    settings = EngineSettings()

    # Setup file logging
    log_dir = Path(f"logs/{order_id}")
    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"produce_{timestamp}.log"

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(file_handler)

    if kind == "photo" and size is None:
        raise click.BadParameter("photo orders need --size", param_hint="--size")

    source = _read_file(source_path)
    page_numbers: list[int] = []
    try:
        if kind == "document" and page_ranges:
            page_numbers = pagination.parse_page_ranges(page_ranges, pagination.page_count(source))
    except PrintEngineError as e:
        raise click.ClickException(e.message)

    store = LocalObjectStore(settings.storage_dir)
    source_key = f"{order_id}/{Path(source_path).name}"
    source_file = store.root / settings.source_bucket / source_key
    if not source_file.exists():
        store.upload(settings.source_bucket, source_key, source)

    repository = InMemoryOrderRepository()
    repository.add_order(
        ProductionOrder(
            order_id=order_id,
            code=code,
            kind=kind,
            source_path=source_key,
            page_numbers=page_numbers,
            print_size=size,
        )
    )

    logger.info(f"Producing order {order_id} ({kind}) from {source_path}")
    click.echo(f"🖨️  Producing {code}...")

    with ProductionQueue(repository, store, settings) as queue:
        future = queue.enqueue(order_id)
        try:
            job = future.result()
        except PrintEngineError as e:
            click.echo(f"❌ Production failed: {e.message}", err=True)
            logger.error(f"Production failed: {e}", exc_info=True)
            sys.exit(1)

    output_file = settings.storage_dir / settings.output_bucket / job.output_ref
    click.echo(f"✓ Status: {job.status.value}")
    click.echo(f"📁 PDF saved to: {output_file}")
    click.echo(f"📄 Log file: {log_file}")


if __name__ == "__main__":
    cli()
