"""
Typed errors raised by the print production engine.

Exception Hierarchy:
    PrintEngineError (base)
    ├── LayoutNotFound        - layout id missing from the catalog
    ├── EncryptedSource       - PDF requires a password
    ├── PageExtractionFailed  - page selection resolves to zero pages
    ├── ScalingFailed         - page could not be normalized to letter size
    ├── DecodeFailed          - bytes are not a valid image or PDF
    ├── ImageLoadFailed       - image could not be fetched in time for a sheet
    ├── StorageError          - object store download/upload failed
    └── JobFailed             - production job gave up on a step

Every error carries a user-facing ``message``. Codec errors are never
leaked verbatim; the original exception is chained with ``raise ... from``.
Detector failures are not part of this taxonomy, the crop chain recovers
from them internally.
"""

from typing import Any


class PrintEngineError(Exception):
    """Base exception for all engine errors."""

    default_message = "No se pudo procesar la impresion."

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the calling layer (JSON responses, job records)."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class LayoutNotFound(PrintEngineError):
    """Referenced layout id is not in the catalog. Never substituted."""

    def __init__(self, layout_id: str):
        super().__init__(
            f"El layout '{layout_id}' no existe. Selecciona otro layout.",
            {"layout_id": layout_id},
        )
        self.layout_id = layout_id


class EncryptedSource(PrintEngineError):
    default_message = "Este PDF esta protegido con contrasena. Por favor usa un PDF sin proteccion."


class PageExtractionFailed(PrintEngineError):
    default_message = "Error al extraer las paginas seleccionadas. Intenta con otro PDF."


class ScalingFailed(PrintEngineError):
    default_message = "Error al ajustar el documento al tamano carta. Intenta con otro PDF."


class DecodeFailed(PrintEngineError):
    default_message = "El archivo esta corrupto o no es una imagen o PDF valido."


class ImageLoadFailed(PrintEngineError):
    default_message = "No se pudo cargar una de las fotos del pedido. Intenta de nuevo."


class StorageError(PrintEngineError):
    default_message = "Error de almacenamiento."


class JobFailed(PrintEngineError):
    """Production job gave up on a step.

    A typed cause keeps its own user-facing message; the cause itself is
    serialized under ``details["cause"]``.
    """

    def __init__(self, order_id: str, step: str, attempts: int, cause: BaseException):
        if isinstance(cause, PrintEngineError):
            message = cause.message
            cause_info = cause.to_dict()
        else:
            message = f"No se pudo generar el PDF del pedido {order_id}."
            cause_info = {"error_type": type(cause).__name__, "message": str(cause), "details": {}}

        super().__init__(
            message,
            {"order_id": order_id, "step": step, "attempts": attempts, "cause": cause_info},
        )
        self.order_id = order_id
        self.step = step
        self.attempts = attempts
        self.cause = cause
