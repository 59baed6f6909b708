"""Background production of print PDFs for placed orders.

This module provides:
- PrintJob: per-order status record, moving only forward
  (queued → rendering → uploaded, or → failed)
- OrderRepository / ObjectStore: abstract collaborators, with in-memory
  and local filesystem implementations
- ProductionJob: the step pipeline with retries and memoised step outputs
- ProductionQueue: thread pool front-end, ``enqueue`` returns at once

Steps (each one can run more than once, so each is safe to repeat):
    fetch-order → mark-rendering → download-source → render → upload → mark-uploaded

A run that fails on any step is retried from the top. Each step gets up
to ``max_attempts`` tries of its own; steps that already succeeded
return their stored output instead of running again. Errors in the
source content (encrypted, unreadable, no valid pages) fail the job at
once. The upload step picks a new file name on every try, so a
partially written file never collides with a retry.
"""

import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from printengine import pagination
from printengine.catalog import get_print_size
from printengine.config import PDF_CONTENT_TYPE, EngineSettings
from printengine.errors import (
    DecodeFailed,
    EncryptedSource,
    JobFailed,
    LayoutNotFound,
    PageExtractionFailed,
    ScalingFailed,
    StorageError,
)
from printengine.rendering import render_print_ready_pdf

logger = logging.getLogger(__name__)

ProductKind = Literal["document", "photo"]

STEPS = ("fetch-order", "mark-rendering", "download-source", "render", "upload", "mark-uploaded")

# Problems with the source itself; another try gives the same result
FATAL_ERRORS = (LayoutNotFound, EncryptedSource, PageExtractionFailed, ScalingFailed, DecodeFailed)


class JobStatus(str, Enum):
    QUEUED = "queued"
    RENDERING = "rendering"
    UPLOADED = "uploaded"
    FAILED = "failed"


# Allowed next states; repeating the current state is a no-op
_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.QUEUED: {JobStatus.RENDERING, JobStatus.FAILED},
    JobStatus.RENDERING: {JobStatus.UPLOADED, JobStatus.FAILED},
    JobStatus.UPLOADED: set(),
    JobStatus.FAILED: set(),
}


class PrintJob(BaseModel):
    """Production status of one order."""

    model_config = ConfigDict(frozen=True)

    order_id: str
    status: JobStatus = JobStatus.QUEUED
    output_ref: str | None = None
    error: dict[str, Any] | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.UPLOADED, JobStatus.FAILED)

    def advance(self, status: JobStatus, **changes: Any) -> "PrintJob":
        """Return the job moved to ``status``.

        Raises:
            ValueError: If the move would go backwards or leave a terminal state
        """
        if status == self.status:
            return self
        if status not in _TRANSITIONS[self.status]:
            raise ValueError(
                f"Job {self.order_id} cannot move from {self.status.value} to {status.value}"
            )
        return self.model_copy(update={"status": status, **changes})


class ProductionOrder(BaseModel):
    """What the job needs to know about an order."""

    model_config = ConfigDict(frozen=True)

    order_id: str = Field(min_length=1)
    code: str = Field(min_length=1, description="Human-facing order code, used in file names")
    kind: ProductKind = "document"
    source_path: str = Field(min_length=1, description="Path of the processed source in the source bucket")
    page_numbers: list[int] = Field(default_factory=list, description="1-indexed; empty means every page")
    print_size: str | None = Field(default=None, description="Print size name for photo orders")
    paper_is_color: bool = True


class OrderRepository(ABC):
    """Abstract store for orders and their print jobs."""

    @abstractmethod
    def get_order(self, order_id: str) -> ProductionOrder:
        raise NotImplementedError

    @abstractmethod
    def get_job(self, order_id: str) -> PrintJob:
        raise NotImplementedError

    @abstractmethod
    def save_job(self, job: PrintJob) -> None:
        raise NotImplementedError


class InMemoryOrderRepository(OrderRepository):
    """Thread-safe repository kept in process memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._orders: dict[str, ProductionOrder] = {}
        self._jobs: dict[str, PrintJob] = {}

    def add_order(self, order: ProductionOrder) -> PrintJob:
        """Register an order with a fresh queued job."""
        job = PrintJob(order_id=order.order_id)
        with self._lock:
            self._orders[order.order_id] = order
            self._jobs[order.order_id] = job
        return job

    def get_order(self, order_id: str) -> ProductionOrder:
        with self._lock:
            order = self._orders.get(order_id)
        if order is None:
            raise StorageError(f"El pedido {order_id} no existe.", {"order_id": order_id})
        return order

    def get_job(self, order_id: str) -> PrintJob:
        with self._lock:
            job = self._jobs.get(order_id)
        if job is None:
            raise StorageError(f"El pedido {order_id} no tiene trabajo de impresion.", {"order_id": order_id})
        return job

    def save_job(self, job: PrintJob) -> None:
        with self._lock:
            self._jobs[job.order_id] = job


class ObjectStore(ABC):
    """Abstract bucket/path object storage."""

    @abstractmethod
    def download(self, bucket: str, path: str) -> bytes:
        raise NotImplementedError

    @abstractmethod
    def upload(self, bucket: str, path: str, data: bytes, content_type: str = PDF_CONTENT_TYPE) -> str:
        """Store ``data`` under a new path and return its reference.

        Raises:
            StorageError: If the path already exists (no overwrite)
        """
        raise NotImplementedError


class LocalObjectStore(ObjectStore):
    """Object store on the local filesystem: ``<root>/<bucket>/<path>``."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _resolve(self, bucket: str, path: str) -> Path:
        target = (self.root / bucket / path).resolve()
        if not target.is_relative_to((self.root / bucket).resolve()):
            raise StorageError("Ruta de almacenamiento invalida.", {"bucket": bucket, "path": path})
        return target

    def download(self, bucket: str, path: str) -> bytes:
        target = self._resolve(bucket, path)
        try:
            return target.read_bytes()
        except OSError as e:
            raise StorageError(
                "Error al descargar el archivo.", {"bucket": bucket, "path": path, "reason": str(e)}
            ) from e

    def upload(self, bucket: str, path: str, data: bytes, content_type: str = PDF_CONTENT_TYPE) -> str:
        target = self._resolve(bucket, path)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(target, "xb") as f:
                f.write(data)
        except FileExistsError as e:
            raise StorageError(
                "El archivo ya existe en el almacenamiento.", {"bucket": bucket, "path": path}
            ) from e
        except OSError as e:
            raise StorageError(
                "Error al subir el archivo.", {"bucket": bucket, "path": path, "reason": str(e)}
            ) from e

        logger.debug(f"Stored {len(data)} bytes ({content_type}) at {bucket}/{path}")
        return path


def output_filename(code: str) -> str:
    """Unique PDF name for an order; a new one on every call."""
    return f"{code}-{uuid.uuid4().hex[:12]}.pdf"


class ProductionJob:
    """Render and store the print PDF of one order.

    Step outputs are memoised on the instance, so calling ``run`` again
    after a failure skips the steps that already completed.
    """

    def __init__(
        self,
        order_id: str,
        repository: OrderRepository,
        store: ObjectStore,
        settings: EngineSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.order_id = order_id
        self.repository = repository
        self.store = store
        self.settings = settings or EngineSettings()
        self._sleep = sleep
        self._completed: dict[str, Any] = {}
        self.step_attempts: dict[str, int] = {}
        self.attempts = 0

    def _step(self, name: str, fn: Callable[[], Any]) -> Any:
        if name in self._completed:
            logger.debug(f"[{self.order_id}] {name}: reusing stored result")
            return self._completed[name]
        self.step_attempts[name] = self.step_attempts.get(name, 0) + 1
        result = fn()
        self._completed[name] = result
        return result

    def _set_status(self, status: JobStatus, **changes: Any) -> PrintJob:
        job = self.repository.get_job(self.order_id).advance(status, **changes)
        self.repository.save_job(job)
        return job

    def _start(self) -> PrintJob:
        job = self.repository.get_job(self.order_id)
        if job.is_terminal:
            return job
        job = job.advance(JobStatus.RENDERING)
        self.repository.save_job(job)
        return job

    def _render(self, order: ProductionOrder, source: bytes) -> bytes:
        if order.kind == "document":
            if order.page_numbers:
                return pagination.process(source, order.page_numbers)
            return pagination.fit_to_letter(source)

        if order.print_size is None:
            raise ValueError(f"Photo order {order.order_id} has no print size")
        return render_print_ready_pdf(
            source, get_print_size(order.print_size), title=order.code, grayscale=not order.paper_is_color
        )

    def _upload(self, order: ProductionOrder, pdf: bytes) -> str:
        filename = output_filename(order.code)
        return self.store.upload(self.settings.output_bucket, filename, pdf, PDF_CONTENT_TYPE)

    def _run_steps(self) -> PrintJob:
        order: ProductionOrder = self._step("fetch-order", lambda: self.repository.get_order(self.order_id))
        started: PrintJob = self._step("mark-rendering", self._start)
        if started.is_terminal:
            logger.info(f"[{self.order_id}] Job already {started.status.value}, nothing to do")
            return started
        source: bytes = self._step(
            "download-source", lambda: self.store.download(self.settings.source_bucket, order.source_path)
        )
        pdf: bytes = self._step("render", lambda: self._render(order, source))
        output_ref: str = self._step("upload", lambda: self._upload(order, pdf))
        return self._step(
            "mark-uploaded", lambda: self._set_status(JobStatus.UPLOADED, output_ref=output_ref)
        )

    def _current_step(self) -> str:
        for name in STEPS:
            if name not in self._completed:
                return name
        return "done"

    def run(self) -> PrintJob:
        """Run the pipeline with retries.

        Each step gets up to ``max_attempts`` tries. Errors in the source
        content (encrypted, unreadable, no valid pages) are not retried.
        A job that is already terminal is returned as it stands.

        Returns:
            The job in ``uploaded`` state, with ``output_ref`` set

        Raises:
            JobFailed: When a step failed for good; the job is marked ``failed``
        """
        max_attempts = self.settings.max_attempts

        while True:
            self.attempts += 1
            try:
                job = self._run_steps()
            except Exception as e:
                step = self._current_step()
                tries = self.step_attempts.get(step, 0)
                if isinstance(e, FATAL_ERRORS) or tries >= max_attempts:
                    failure = JobFailed(self.order_id, step, tries, e)
                    self._on_failure(failure)
                    raise failure from e

                delay = self.settings.retry_backoff_seconds * 2 ** (tries - 1)
                logger.warning(
                    f"[{self.order_id}] {step} failed (attempt {tries}/{max_attempts}), "
                    f"retrying in {delay}s: {e}"
                )
                self._sleep(delay)
                continue

            if "mark-uploaded" in self._completed:
                logger.info(f"[{self.order_id}] PDF stored at {job.output_ref}")
            return job

    def _on_failure(self, failure: JobFailed) -> None:
        logger.error(f"[{self.order_id}] Giving up after {failure.attempts} attempts at {failure.step}")
        try:
            self._set_status(JobStatus.FAILED, error=failure.to_dict())
        except Exception as e:
            logger.error(f"[{self.order_id}] Could not mark job as failed: {e}")


class ProductionQueue:
    """Runs production jobs on a thread pool.

    Use as a context manager, or call ``shutdown`` when done.
    """

    def __init__(
        self,
        repository: OrderRepository,
        store: ObjectStore,
        settings: EngineSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.repository = repository
        self.store = store
        self.settings = settings or EngineSettings()
        self._sleep = sleep
        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.worker_threads, thread_name_prefix="production"
        )

    def enqueue(self, order_id: str) -> "Future[PrintJob]":
        """Schedule production for an order and return immediately.

        The future resolves to the uploaded job, or raises JobFailed.
        De-duplicating orders already in flight is up to the caller.
        """
        job = ProductionJob(order_id, self.repository, self.store, self.settings, self._sleep)
        logger.info(f"[{order_id}] Production job queued")
        return self._executor.submit(job.run)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "ProductionQueue":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()
