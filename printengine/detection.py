"""Automatic crop selection with face detection and saliency.

This module provides:
- Abstract detector interfaces for pluggable face/saliency backends
- DetectorModelHandle, a load-once cell shared by every caller
- OpenCV implementations (Haar cascade faces, spectral residual saliency)
- CropSelector: face → saliency → center priority chain

Detector failures are never fatal: they are logged and the chain moves
on to the next stage. Only an undecodable source image is an error.
"""

import io
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, TypeVar

import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from printengine.config import (
    CENTER_CROP_CONFIDENCE,
    FACE_CASCADE_FILE,
    FACE_CROP_CONFIDENCE,
    FACE_MIN_NEIGHBORS,
    FACE_MIN_SIZE_PX,
    FACE_SCALE_FACTOR,
    SALIENCY_CROP_CONFIDENCE,
    SALIENCY_MAX_SIDE_PX,
)
from printengine.errors import DecodeFailed
from printengine.validation import CropResult, Region

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


class DetectorModelHandle(Generic[ModelT]):
    """Lazily loaded detector model, loaded at most once per handle.

    The first ``get()`` runs the loader; concurrent callers block on the
    lock until it finishes instead of loading again. A failed load is not
    cached, so a later call retries it. Once loaded the model is shared
    read-only.
    """

    def __init__(self, loader: Callable[[], ModelT], name: str = "detector") -> None:
        self.name = name
        self._loader = loader
        self._lock = threading.Lock()
        self._model: ModelT | None = None
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    def get(self) -> ModelT:
        if not self._loaded:
            with self._lock:
                if not self._loaded:
                    logger.info(f"Loading {self.name} model")
                    self._model = self._loader()
                    self._loaded = True
        return self._model  # type: ignore[return-value]

    def preload(self) -> bool:
        """Load ahead of the first request. Returns False if loading failed."""
        try:
            self.get()
        except Exception as e:
            logger.warning(f"Could not preload {self.name} model: {e}")
            return False
        return True


class FaceDetector(ABC):
    """Abstract base class for face detection."""

    @abstractmethod
    def detect(self, image: Image.Image) -> list[Region]:
        """Detect faces in an image.

        Args:
            image: Decoded source image

        Returns:
            Face rectangles in source pixel coordinates (may be empty)
        """
        raise NotImplementedError


class SaliencyCropper(ABC):
    """Abstract base class for saliency-driven cropping."""

    @abstractmethod
    def crop(self, image: Image.Image, target_width: int, target_height: int) -> Region:
        """Choose the most salient target-sized window of the image.

        Args:
            image: Decoded source image
            target_width: Crop width in source pixels
            target_height: Crop height in source pixels

        Returns:
            Crop rectangle in source pixel coordinates
        """
        raise NotImplementedError


def _load_face_cascade() -> cv2.CascadeClassifier:
    cascade_path = cv2.data.haarcascades + FACE_CASCADE_FILE
    cascade = cv2.CascadeClassifier(cascade_path)
    if cascade.empty():
        raise RuntimeError(f"Face cascade could not be loaded from {cascade_path}")
    return cascade


def _load_spectral_residual() -> Any:
    return cv2.saliency.StaticSaliencySpectralResidual_create()


# Process-wide default handles; pass your own handle to isolate a detector
FACE_MODEL = DetectorModelHandle(_load_face_cascade, name="haar face cascade")
SALIENCY_MODEL = DetectorModelHandle(_load_spectral_residual, name="spectral residual saliency")


def _to_bgr(image: Image.Image) -> np.ndarray:
    return cv2.cvtColor(np.asarray(image.convert("RGB")), cv2.COLOR_RGB2BGR)


class HaarFaceDetector(FaceDetector):
    """Face detector using OpenCV's frontal face Haar cascade."""

    def __init__(self, model: DetectorModelHandle[cv2.CascadeClassifier] = FACE_MODEL) -> None:
        self.model = model

    def detect(self, image: Image.Image) -> list[Region]:
        cascade = self.model.get()
        gray = cv2.cvtColor(_to_bgr(image), cv2.COLOR_BGR2GRAY)
        faces = cascade.detectMultiScale(
            gray,
            scaleFactor=FACE_SCALE_FACTOR,
            minNeighbors=FACE_MIN_NEIGHBORS,
            minSize=(FACE_MIN_SIZE_PX, FACE_MIN_SIZE_PX),
        )
        return [Region(x=int(x), y=int(y), width=int(w), height=int(h)) for (x, y, w, h) in faces]


class SpectralResidualSaliency(SaliencyCropper):
    """Saliency cropper: densest window of the spectral residual saliency map.

    The map is computed on a downscaled copy; window sums come from an
    integral image, so every candidate position is scored at once.
    """

    def __init__(self, model: DetectorModelHandle = SALIENCY_MODEL) -> None:
        self.model = model

    def crop(self, image: Image.Image, target_width: int, target_height: int) -> Region:
        width, height = image.size
        scale = min(1.0, SALIENCY_MAX_SIDE_PX / max(width, height))
        small = image.resize((max(1, round(width * scale)), max(1, round(height * scale))))

        success, saliency_map = self.model.get().computeSaliency(_to_bgr(small))
        if not success:
            raise RuntimeError("Saliency computation failed")

        saliency_map = np.asarray(saliency_map, dtype=np.float64)
        map_h, map_w = saliency_map.shape[:2]
        win_w = min(map_w, max(1, round(target_width * scale)))
        win_h = min(map_h, max(1, round(target_height * scale)))

        integral = np.pad(saliency_map.cumsum(axis=0).cumsum(axis=1), ((1, 0), (1, 0)))
        window_sums = (
            integral[win_h:, win_w:]
            - integral[:-win_h, win_w:]
            - integral[win_h:, :-win_w]
            + integral[:-win_h, :-win_w]
        )
        row, col = np.unravel_index(int(np.argmax(window_sums)), window_sums.shape)

        return Region(x=col / scale, y=row / scale, width=target_width, height=target_height)


def decode_image(data: bytes) -> Image.Image:
    """Decode image bytes and apply EXIF orientation.

    Raises:
        DecodeFailed: If the bytes are not a readable image
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise DecodeFailed(details={"reason": str(e)}) from e
    return ImageOps.exif_transpose(image)


def fit_aspect(image_w: int, image_h: int, aspect: float) -> tuple[int, int]:
    """Largest (width, height) with the given aspect that fits in the image."""
    if aspect <= 0:
        raise ValueError(f"Aspect ratio must be positive, got {aspect}")

    if image_w / image_h > aspect:
        # Image wider than target: height is the binding constraint
        crop_h = image_h
        crop_w = min(image_w, max(1, round(crop_h * aspect)))
    else:
        crop_w = image_w
        crop_h = min(image_h, max(1, round(crop_w / aspect)))
    return crop_w, crop_h


def _clamp(value: float, low: int, high: int) -> int:
    return max(low, min(high, round(value)))


def center_crop(image_w: int, image_h: int, aspect: float) -> CropResult:
    crop_w, crop_h = fit_aspect(image_w, image_h, aspect)
    return CropResult(
        x=(image_w - crop_w) // 2,
        y=(image_h - crop_h) // 2,
        width=crop_w,
        height=crop_h,
        confidence=CENTER_CROP_CONFIDENCE,
        method="center",
    )


def faces_center(faces: list[Region]) -> tuple[float, float]:
    """Center of the bounding box that encloses every face."""
    min_x = min(face.x for face in faces)
    min_y = min(face.y for face in faces)
    max_x = max(face.x + face.width for face in faces)
    max_y = max(face.y + face.height for face in faces)
    return (min_x + max_x) / 2, (min_y + max_y) / 2


def face_crop(image_w: int, image_h: int, faces: list[Region], aspect: float) -> CropResult:
    """Largest crop of the aspect centered on the faces, shifted inside the image."""
    crop_w, crop_h = fit_aspect(image_w, image_h, aspect)
    center_x, center_y = faces_center(faces)
    return CropResult(
        x=_clamp(center_x - crop_w / 2, 0, image_w - crop_w),
        y=_clamp(center_y - crop_h / 2, 0, image_h - crop_h),
        width=crop_w,
        height=crop_h,
        confidence=FACE_CROP_CONFIDENCE,
        method="face",
    )


def region_to_crop(region: Region, image_w: int, image_h: int) -> CropResult:
    """Saliency crop from a detector region, forced inside the image."""
    crop_w = _clamp(region.width, 1, image_w)
    crop_h = _clamp(region.height, 1, image_h)
    return CropResult(
        x=_clamp(region.x, 0, image_w - crop_w),
        y=_clamp(region.y, 0, image_h - crop_h),
        width=crop_w,
        height=crop_h,
        confidence=SALIENCY_CROP_CONFIDENCE,
        method="saliency",
    )


def apply_crop(image: Image.Image, crop: CropResult) -> Image.Image:
    return image.crop((crop.x, crop.y, crop.x + crop.width, crop.y + crop.height))


class CropSelector:
    """Choose a crop rectangle for a target aspect ratio.

    Stages run in order, each at most once:
        1. face: center on all detected faces (confidence 0.9)
        2. saliency: delegate to the saliency cropper (confidence 0.7)
        3. center: centered fallback, always succeeds (confidence 0.5)

    A stage whose capability is None is skipped.
    """

    def __init__(
        self,
        face_detector: FaceDetector | None = None,
        saliency: SaliencyCropper | None = None,
    ) -> None:
        self.face_detector = face_detector
        self.saliency = saliency

    @classmethod
    def with_opencv(cls, enable_faces: bool = True) -> "CropSelector":
        """Selector backed by the shared OpenCV models."""
        return cls(
            face_detector=HaarFaceDetector() if enable_faces else None,
            saliency=SpectralResidualSaliency(),
        )

    def select(
        self,
        image: bytes | Image.Image,
        target_aspect_ratio: float | None = None,
        target_size: tuple[int, int] | None = None,
        detect_faces: bool = True,
    ) -> CropResult:
        """Pick the crop for an image.

        Args:
            image: Encoded image bytes or an already decoded image
            target_aspect_ratio: Width / height of the printed slot
            target_size: Explicit (width, height); its aspect wins over
                target_aspect_ratio. With neither, the image's own aspect is used.
            detect_faces: Set False to skip the face stage for this call

        Returns:
            CropResult fully inside the source image

        Raises:
            DecodeFailed: If image bytes cannot be decoded
        """
        if isinstance(image, bytes):
            image = decode_image(image)

        image_w, image_h = image.size
        if target_size is not None:
            aspect = target_size[0] / target_size[1]
        elif target_aspect_ratio is not None:
            aspect = target_aspect_ratio
        else:
            aspect = image_w / image_h

        if detect_faces and self.face_detector is not None:
            try:
                faces = self.face_detector.detect(image)
            except Exception as e:
                logger.warning(f"Face detection failed, falling back to saliency: {e}")
                faces = []
            if faces:
                logger.debug(f"Found {len(faces)} faces, centering crop on them")
                return face_crop(image_w, image_h, faces, aspect)

        if self.saliency is not None:
            crop_w, crop_h = fit_aspect(image_w, image_h, aspect)
            try:
                region = self.saliency.crop(image, crop_w, crop_h)
                return region_to_crop(region, image_w, image_h)
            except Exception as e:
                logger.warning(f"Saliency crop failed, falling back to center: {e}")

        return center_crop(image_w, image_h, aspect)
