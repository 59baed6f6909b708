"""Centralized configuration constants for the print production engine."""

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Unit systems
POINTS_PER_INCH = 72  # PDF user space
PIXELS_PER_INCH = 96  # CSS reference pixel, used for browser print surfaces

# Letter sheet (8.5" x 11")
LETTER_WIDTH_IN = 8.5
LETTER_HEIGHT_IN = 11.0
LETTER_WIDTH_PT = LETTER_WIDTH_IN * POINTS_PER_INCH  # 612
LETTER_HEIGHT_PT = LETTER_HEIGHT_IN * POINTS_PER_INCH  # 792
LETTER_WIDTH_PX = int(LETTER_WIDTH_IN * PIXELS_PER_INCH)  # 816
LETTER_HEIGHT_PX = int(LETTER_HEIGHT_IN * PIXELS_PER_INCH)  # 1056

# Safe printing zone. The bottom edge needs more room for the feed mechanism.
SAFE_MARGIN_TOP_IN = 0.25
SAFE_MARGIN_LEFT_IN = 0.25
SAFE_MARGIN_RIGHT_IN = 0.25
SAFE_MARGIN_BOTTOM_IN = 0.5

PRINTABLE_START_X_IN = SAFE_MARGIN_LEFT_IN  # 0.25
PRINTABLE_START_Y_IN = SAFE_MARGIN_TOP_IN  # 0.25
PRINTABLE_END_X_IN = LETTER_WIDTH_IN - SAFE_MARGIN_RIGHT_IN  # 8.25
PRINTABLE_END_Y_IN = LETTER_HEIGHT_IN - SAFE_MARGIN_BOTTOM_IN  # 10.5

PHOTO_GAP_IN = 0.125  # Minimum gap between photos on a sheet
BLEED_IN = 0.125  # Standard bleed for trimmed photo output
CROP_MARK_OFFSET_PT = 3  # Gap between a crop mark and the trim corner
POSTER_OVERLAP_IN = 0.5

# A page within this many points of letter size is left untouched
LETTER_FIT_TOLERANCE_PT = 1.0

# Quality thresholds (DPI)
DPI_EXCELLENT = 200
DPI_ACCEPTABLE = 150
DPI_SHARP = 300  # Top scoring tier for size recommendation
PRINT_DPI = 300  # Images are downsampled to at most this resolution in PDFs

# Crop confidence per method
FACE_CROP_CONFIDENCE = 0.9
SALIENCY_CROP_CONFIDENCE = 0.7
CENTER_CROP_CONFIDENCE = 0.5

# Face detection (OpenCV Haar cascade)
FACE_CASCADE_FILE = "haarcascade_frontalface_default.xml"
FACE_SCALE_FACTOR = 1.1
FACE_MIN_NEIGHBORS = 5
FACE_MIN_SIZE_PX = 30

# Saliency maps are computed on a downscaled copy of the image
SALIENCY_MAX_SIDE_PX = 256

# Print surface waits at most this long for images before printing
PRINT_READY_TIMEOUT_MS = 10_000

# Production job
DEFAULT_MAX_ATTEMPTS = 3
PDF_CONTENT_TYPE = "application/pdf"
PDF_PRODUCER = "printengine"

# Paper types (all letter size)
PAPER_TYPES = {
    "bond_normal": {
        "display_name": "Bond Normal",
        "products": ["document", "photo"],
        "recommended": False,
    },
    "opalina": {
        "display_name": "Opalina",
        "products": ["document", "photo"],
        "recommended": False,
    },
    "cartulina_lino": {
        "display_name": "Cartulina Lino",
        "products": ["document"],
        "recommended": False,
    },
    "sticker_semigloss": {
        "display_name": "Sticker Semi-gloss",
        "products": ["photo"],
        "recommended": False,
    },
    "fotografico": {
        "display_name": "Fotografico",
        "products": ["photo"],
        "recommended": True,
    },
}


class EngineSettings(BaseSettings):
    """Deployment settings, read from ``PRINTENGINE_*`` environment variables."""

    storage_dir: Path = Path("./storage")
    source_bucket: str = "processed"
    output_bucket: str = "pdfs"
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_backoff_seconds: float = 1.0
    worker_threads: int = 4
    enable_face_detection: bool = True
    print_ready_timeout_ms: int = PRINT_READY_TIMEOUT_MS
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PRINTENGINE_",
        env_file_encoding="utf-8",
    )

    @field_validator("max_attempts", "worker_threads")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("retry_backoff_seconds")
    @classmethod
    def backoff_not_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("retry_backoff_seconds must not be negative")
        return v

    @field_validator("print_ready_timeout_ms")
    @classmethod
    def timeout_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("print_ready_timeout_ms must be positive")
        return v
