"""
Pytest configuration and fixtures for the PDF tools tests.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path

import fitz  # PyMuPDF
import pytest
from PIL import Image

from pdftools.dispatcher import OperationDispatcher
from pdftools.job_manager import JobManager
from pdftools.models import NewFile
from pdftools.registry import FileRegistry, JobRegistry
from pdftools.server import create_app
from pdftools.storage import FileStorage, guess_mime_type


# ─── Sample Documents ─────────────────────────────────────────────────────────


@pytest.fixture
def make_pdf(tmp_path):
    """Factory: PDF whose pages carry the given texts (default "Page 1".."Page n")."""
    counter = {"n": 0}

    def _make(pages: int = 1, texts: list[str] | None = None, name: str | None = None) -> Path:
        counter["n"] += 1
        texts = texts or [f"Page {i}" for i in range(1, pages + 1)]
        path = tmp_path / (name or f"sample-{counter['n']}.pdf")
        with fitz.open() as doc:
            for text in texts:
                page = doc.new_page(width=612, height=792)
                page.insert_text((72, 100), text, fontsize=14)
            doc.save(str(path))
        return path

    return _make


@pytest.fixture
def sample_pdf(make_pdf) -> Path:
    return make_pdf(pages=2)


@pytest.fixture
def pdf_bytes(sample_pdf) -> bytes:
    return sample_pdf.read_bytes()


@pytest.fixture
def make_image(tmp_path):
    """Factory: small solid-colour image in the given Pillow format."""

    def _make(name: str = "photo.jpg", fmt: str = "JPEG", size=(120, 80)) -> Path:
        path = tmp_path / name
        Image.new("RGB", size, (200, 30, 30)).save(path, format=fmt)
        return path

    return _make


@pytest.fixture
def docx_file(tmp_path) -> Path:
    from docx import Document

    document = Document()
    document.add_heading("Quarterly Report", level=1)
    document.add_paragraph("Revenue grew in every region.")
    table = document.add_table(rows=2, cols=2)
    table.cell(0, 0).text = "Region"
    table.cell(0, 1).text = "Total"
    table.cell(1, 0).text = "North"
    table.cell(1, 1).text = "42"
    path = tmp_path / "report.docx"
    document.save(str(path))
    return path


@pytest.fixture
def xlsx_file(tmp_path) -> Path:
    from openpyxl import Workbook

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Sales"
    sheet.append(["Region", "Total"])
    sheet.append(["North", 42])
    sheet.append(["South", 17])
    path = tmp_path / "sales.xlsx"
    workbook.save(str(path))
    return path


@pytest.fixture
def pptx_file(tmp_path) -> Path:
    from pptx import Presentation
    from pptx.util import Inches

    prs = Presentation()
    slide = prs.slides.add_slide(prs.slide_layouts[6])
    box = slide.shapes.add_textbox(Inches(1), Inches(1), Inches(6), Inches(1))
    box.text_frame.text = "Roadmap overview"
    path = tmp_path / "deck.pptx"
    prs.save(str(path))
    return path


# ─── Services ─────────────────────────────────────────────────────────────────


@pytest.fixture
def storage(tmp_path) -> FileStorage:
    return FileStorage(tmp_path / "uploads", tmp_path / "outputs").init()


@pytest.fixture
def dispatcher(storage) -> OperationDispatcher:
    return OperationDispatcher(storage)


@pytest.fixture
def files(storage) -> FileRegistry:
    return FileRegistry(storage)


@pytest.fixture
def jobs() -> JobRegistry:
    return JobRegistry()


@pytest.fixture
def manager(files, jobs, dispatcher) -> JobManager:
    """Manager without a worker pool: tests call ``execute`` themselves."""
    return JobManager(files, jobs, dispatcher)


@pytest.fixture
def register(files, storage):
    """Factory: copy a local file into uploads and register it."""

    def _register(path: Path, name: str | None = None):
        name = name or path.name
        with open(path, "rb") as fh:
            stored_name, location, size = storage.save_upload(fh, name)
        return files.create(NewFile(
            original_name=name,
            stored_name=stored_name,
            mime_type=guess_mime_type(name),
            size_bytes=size,
            storage_location=location,
        ))

    return _register


# ─── Flask App ────────────────────────────────────────────────────────────────


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "UPLOAD_DIR": str(tmp_path / "app-uploads"),
        "OUTPUT_DIR": str(tmp_path / "app-outputs"),
        "WORKERS": 2,
        "SITE_URL": "https://pdf.example.com",
        "TESTING": True,
    })
    yield app
    app.extensions["pdftools"].pool.stop()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def svc(app):
    return app.extensions["pdftools"]


@pytest.fixture
def upload(client):
    """Factory: upload (name, bytes, content type) triples, return the response."""

    def _upload(*items):
        data = {
            "files": [(io.BytesIO(content), name, mime) for name, content, mime in items]
        }
        return client.post("/api/upload", data=data, content_type="multipart/form-data")

    return _upload


@pytest.fixture(autouse=True)
def _restore_package_logger():
    """CLI commands call setup_logging; drop their handlers after each test."""
    logger = logging.getLogger("pdftools")
    handlers, level = list(logger.handlers), logger.level
    yield
    for handler in logger.handlers[:]:
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)
