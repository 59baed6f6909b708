"""Integration tests for the production job: order → render → upload."""

from pathlib import Path

import fitz  # type: ignore[import-untyped]  # PyMuPDF
import pytest

from printengine.config import EngineSettings
from printengine.errors import EncryptedSource, JobFailed, StorageError
from printengine.production import (
    InMemoryOrderRepository,
    JobStatus,
    LocalObjectStore,
    PrintJob,
    ProductionJob,
    ProductionOrder,
    ProductionQueue,
    output_filename,
)


class FlakyStore(LocalObjectStore):
    """Local store whose first downloads fail and first uploads leave a partial file and fail."""

    def __init__(self, root: Path, failing_uploads: int = 1, failing_downloads: int = 0) -> None:
        super().__init__(root)
        self.failing_uploads = failing_uploads
        self.failing_downloads = failing_downloads
        self.upload_paths: list[str] = []
        self.downloads = 0

    def download(self, bucket: str, path: str) -> bytes:
        self.downloads += 1
        if self.downloads <= self.failing_downloads:
            raise StorageError("bucket timed out")
        return super().download(bucket, path)

    def upload(self, bucket: str, path: str, data: bytes, content_type: str = "application/pdf") -> str:
        self.upload_paths.append(path)
        if len(self.upload_paths) <= self.failing_uploads:
            super().upload(bucket, path, data[:10], content_type)
            raise StorageError("connection reset during upload")
        return super().upload(bucket, path, data, content_type)


class BrokenStore(LocalObjectStore):
    def download(self, bucket: str, path: str) -> bytes:
        raise StorageError("bucket unavailable")


@pytest.fixture
def settings(tmp_path: Path) -> EngineSettings:
    return EngineSettings(storage_dir=tmp_path / "storage", retry_backoff_seconds=1.0, worker_threads=2)


@pytest.fixture
def repository() -> InMemoryOrderRepository:
    return InMemoryOrderRepository()


def seed_source(store: LocalObjectStore, settings: EngineSettings, name: str, data: bytes) -> str:
    store.upload(settings.source_bucket, name, data)
    return name


def read_output(settings: EngineSettings, job: PrintJob) -> bytes:
    assert job.output_ref is not None
    return (settings.storage_dir / settings.output_bucket / job.output_ref).read_bytes()


class TestPrintJob:
    """Tests for forward-only status transitions."""

    def test_happy_path(self) -> None:
        job = PrintJob(order_id="o1")
        job = job.advance(JobStatus.RENDERING).advance(JobStatus.UPLOADED, output_ref="x.pdf")
        assert job.status == JobStatus.UPLOADED
        assert job.output_ref == "x.pdf"
        assert job.is_terminal

    def test_repeating_status_is_noop(self) -> None:
        job = PrintJob(order_id="o1").advance(JobStatus.RENDERING)
        assert job.advance(JobStatus.RENDERING) is job

    def test_cannot_go_backwards(self) -> None:
        job = PrintJob(order_id="o1").advance(JobStatus.RENDERING)
        with pytest.raises(ValueError, match="cannot move from rendering to queued"):
            job.advance(JobStatus.QUEUED)

    def test_terminal_states_are_final(self) -> None:
        failed = PrintJob(order_id="o1").advance(JobStatus.FAILED)
        with pytest.raises(ValueError):
            failed.advance(JobStatus.RENDERING)


class TestLocalObjectStore:
    """Tests for the filesystem object store."""

    def test_upload_and_download(self, tmp_path: Path) -> None:
        store = LocalObjectStore(tmp_path)
        assert store.upload("pdfs", "a/b.pdf", b"%PDF") == "a/b.pdf"
        assert store.download("pdfs", "a/b.pdf") == b"%PDF"

    def test_never_overwrites(self, tmp_path: Path) -> None:
        store = LocalObjectStore(tmp_path)
        store.upload("pdfs", "b.pdf", b"first")
        with pytest.raises(StorageError):
            store.upload("pdfs", "b.pdf", b"second")
        assert store.download("pdfs", "b.pdf") == b"first"

    def test_missing_object(self, tmp_path: Path) -> None:
        with pytest.raises(StorageError):
            LocalObjectStore(tmp_path).download("pdfs", "nope.pdf")

    def test_path_outside_bucket_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(StorageError):
            LocalObjectStore(tmp_path).upload("pdfs", "../processed/evil.pdf", b"x")

    def test_output_filenames_unique(self) -> None:
        names = {output_filename("IMP-7") for _ in range(50)}
        assert len(names) == 50
        assert all(name.startswith("IMP-7-") and name.endswith(".pdf") for name in names)


class TestProductionJob:
    """Tests for the retryable step pipeline."""

    def test_document_order(self, settings: EngineSettings, repository, pdf_10_pages: bytes) -> None:
        """Test fetch → render → upload for a document with a partial page selection."""
        store = LocalObjectStore(settings.storage_dir)
        source = seed_source(store, settings, "o1/thesis.pdf", pdf_10_pages)
        repository.add_order(
            ProductionOrder(order_id="o1", code="IMP-0001", source_path=source, page_numbers=[1, 5, 11])
        )

        job = ProductionJob("o1", repository, store, settings, sleep=lambda s: None).run()

        assert job.status == JobStatus.UPLOADED
        assert job.output_ref.startswith("IMP-0001-")
        assert repository.get_job("o1") == job
        with fitz.open(stream=read_output(settings, job), filetype="pdf") as doc:
            assert doc.page_count == 2
            assert (doc[0].rect.width, doc[0].rect.height) == (612, 792)

    def test_document_without_page_selection(self, settings: EngineSettings, repository, a4_pdf: bytes) -> None:
        store = LocalObjectStore(settings.storage_dir)
        source = seed_source(store, settings, "o2/a4.pdf", a4_pdf)
        repository.add_order(ProductionOrder(order_id="o2", code="IMP-0002", source_path=source))

        job = ProductionJob("o2", repository, store, settings, sleep=lambda s: None).run()

        with fitz.open(stream=read_output(settings, job), filetype="pdf") as doc:
            assert doc.page_count == 2
            assert all((page.rect.width, page.rect.height) == (612, 792) for page in doc)

    def test_photo_order(self, settings: EngineSettings, repository, photo_jpeg: bytes) -> None:
        store = LocalObjectStore(settings.storage_dir)
        source = seed_source(store, settings, "o3/photo.jpg", photo_jpeg)
        repository.add_order(
            ProductionOrder(order_id="o3", code="IMP-0003", kind="photo", source_path=source, print_size="4x6")
        )

        job = ProductionJob("o3", repository, store, settings, sleep=lambda s: None).run()

        with fitz.open(stream=read_output(settings, job), filetype="pdf") as doc:
            assert doc[0].rect.width == pytest.approx(4.25 * 72)

    def test_photo_order_on_mono_paper(self, settings: EngineSettings, repository, photo_jpeg: bytes) -> None:
        store = LocalObjectStore(settings.storage_dir)
        source = seed_source(store, settings, "o7/photo.jpg", photo_jpeg)
        repository.add_order(
            ProductionOrder(
                order_id="o7",
                code="IMP-0007",
                kind="photo",
                source_path=source,
                print_size="4x6",
                paper_is_color=False,
            )
        )

        job = ProductionJob("o7", repository, store, settings, sleep=lambda s: None).run()

        with fitz.open(stream=read_output(settings, job), filetype="pdf") as doc:
            pixmap = fitz.Pixmap(doc, doc[0].get_images()[0][0])
            assert pixmap.n - pixmap.alpha == 1

    def test_upload_retried_with_fresh_name(self, settings: EngineSettings, repository, pdf_10_pages: bytes) -> None:
        """Test a failed upload is retried under a new name and earlier steps are not repeated."""
        store = FlakyStore(settings.storage_dir, failing_uploads=1)
        seed_source(LocalObjectStore(settings.storage_dir), settings, "o4/doc.pdf", pdf_10_pages)
        repository.add_order(ProductionOrder(order_id="o4", code="IMP-0004", source_path="o4/doc.pdf"))
        sleeps: list[float] = []

        production = ProductionJob("o4", repository, store, settings, sleep=sleeps.append)
        job = production.run()

        assert job.status == JobStatus.UPLOADED
        assert production.attempts == 2
        assert len(store.upload_paths) == 2
        assert store.upload_paths[0] != store.upload_paths[1]
        assert job.output_ref == store.upload_paths[1]
        assert store.downloads == 1
        assert sleeps == [1.0]

    def test_gives_up_after_three_attempts(self, settings: EngineSettings, repository) -> None:
        store = BrokenStore(settings.storage_dir)
        repository.add_order(ProductionOrder(order_id="o5", code="IMP-0005", source_path="o5/doc.pdf"))
        sleeps: list[float] = []

        with pytest.raises(JobFailed) as exc_info:
            ProductionJob("o5", repository, store, settings, sleep=sleeps.append).run()

        failure = exc_info.value
        assert failure.step == "download-source"
        assert failure.attempts == 3
        assert sleeps == [1.0, 2.0]
        job = repository.get_job("o5")
        assert job.status == JobStatus.FAILED
        assert job.error["error_type"] == "JobFailed"

    def test_encrypted_source_fails_job_without_retry(
        self, settings: EngineSettings, repository, encrypted_pdf: bytes
    ) -> None:
        """Test a source problem fails at once and keeps its own user message."""
        store = LocalObjectStore(settings.storage_dir)
        seed_source(store, settings, "o6/locked.pdf", encrypted_pdf)
        repository.add_order(ProductionOrder(order_id="o6", code="IMP-0006", source_path="o6/locked.pdf"))
        sleeps: list[float] = []

        with pytest.raises(JobFailed) as exc_info:
            ProductionJob("o6", repository, store, settings, sleep=sleeps.append).run()

        failure = exc_info.value
        assert failure.step == "render"
        assert failure.attempts == 1
        assert sleeps == []
        assert failure.message == EncryptedSource.default_message
        assert isinstance(failure.__cause__, EncryptedSource)
        job = repository.get_job("o6")
        assert job.status == JobStatus.FAILED
        assert job.error["message"] == EncryptedSource.default_message
        assert job.error["details"]["cause"]["error_type"] == "EncryptedSource"

    def test_each_step_has_its_own_budget(self, settings: EngineSettings, repository, pdf_10_pages: bytes) -> None:
        """Test two failed downloads leave the upload step its full three attempts."""
        store = FlakyStore(settings.storage_dir, failing_uploads=2, failing_downloads=2)
        seed_source(LocalObjectStore(settings.storage_dir), settings, "o8/doc.pdf", pdf_10_pages)
        repository.add_order(ProductionOrder(order_id="o8", code="IMP-0008", source_path="o8/doc.pdf"))
        sleeps: list[float] = []

        production = ProductionJob("o8", repository, store, settings, sleep=sleeps.append)
        job = production.run()

        assert job.status == JobStatus.UPLOADED
        assert production.step_attempts["download-source"] == 3
        assert production.step_attempts["upload"] == 3
        assert sleeps == [1.0, 2.0, 1.0, 2.0]

    def test_rerun_of_uploaded_job_is_noop(self, settings: EngineSettings, repository, pdf_10_pages: bytes) -> None:
        store = LocalObjectStore(settings.storage_dir)
        seed_source(store, settings, "o9/doc.pdf", pdf_10_pages)
        repository.add_order(ProductionOrder(order_id="o9", code="IMP-0009", source_path="o9/doc.pdf"))
        first = ProductionJob("o9", repository, store, settings, sleep=lambda s: None).run()

        sleeps: list[float] = []
        again = ProductionJob("o9", repository, store, settings, sleep=sleeps.append)

        assert again.run() == first
        assert again.attempts == 1
        assert sleeps == []
        assert len(list((settings.storage_dir / settings.output_bucket).iterdir())) == 1

    def test_unknown_order(self, settings: EngineSettings, repository) -> None:
        store = LocalObjectStore(settings.storage_dir)
        with pytest.raises(JobFailed) as exc_info:
            ProductionJob("ghost", repository, store, settings, sleep=lambda s: None).run()
        assert exc_info.value.step == "fetch-order"


class TestProductionQueue:
    """Tests for background execution."""

    def test_enqueue_returns_future(self, settings: EngineSettings, repository, pdf_10_pages: bytes) -> None:
        store = LocalObjectStore(settings.storage_dir)
        for n in range(3):
            seed_source(store, settings, f"q{n}/doc.pdf", pdf_10_pages)
            repository.add_order(
                ProductionOrder(order_id=f"q{n}", code=f"IMP-10{n}", source_path=f"q{n}/doc.pdf", page_numbers=[n + 1])
            )

        with ProductionQueue(repository, store, settings, sleep=lambda s: None) as queue:
            futures = [queue.enqueue(f"q{n}") for n in range(3)]
            jobs = [future.result(timeout=30) for future in futures]

        assert [job.status for job in jobs] == [JobStatus.UPLOADED] * 3
        assert len({job.output_ref for job in jobs}) == 3

    def test_failure_surfaces_through_future(self, settings: EngineSettings, repository) -> None:
        repository.add_order(ProductionOrder(order_id="qx", code="IMP-999", source_path="qx/doc.pdf"))

        with ProductionQueue(repository, BrokenStore(settings.storage_dir), settings, sleep=lambda s: None) as queue:
            future = queue.enqueue("qx")
            with pytest.raises(JobFailed):
                future.result(timeout=30)

        assert repository.get_job("qx").status == JobStatus.FAILED
