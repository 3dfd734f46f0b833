"""
Format Conversion Tests
=======================
PDF to and from images and Office documents.
"""

from __future__ import annotations

import fitz  # PyMuPDF
import pytest
from docx import Document
from openpyxl import Workbook, load_workbook
from PIL import Image
from pptx import Presentation

from pdftools.conversions import (
    MIME_DOCX,
    MIME_JPEG,
    MIME_PPTX,
    MIME_XLSX,
    NOTICE_PAGE_IMAGES,
    NOTICE_TEXT_ONLY,
)
from pdftools.models import ErrorKind


def _run(dispatcher, operation, paths, params=None):
    result = dispatcher.dispatch(operation, [str(p) for p in paths], params or {})
    assert result.success, result.error
    return result


def _pdf_text(path) -> str:
    with fitz.open(path) as doc:
        return " ".join(page.get_text() for page in doc)


# ═══════════════════════════════════════════════════════════════════════════════
# FROM PDF
# ═══════════════════════════════════════════════════════════════════════════════


class TestPdfToJpg:

    def test_one_jpeg_per_page(self, dispatcher, sample_pdf):
        result = _run(dispatcher, "pdf-to-jpg", [sample_pdf])
        assert len(result.output_files) == 2
        for output in result.output_files:
            assert output.mime_type == MIME_JPEG
            assert output.name.endswith(".jpg")
            with Image.open(output.path) as img:
                assert img.format == "JPEG"

    def test_dpi_controls_size(self, dispatcher, make_pdf):
        path = make_pdf(pages=1)
        result = _run(dispatcher, "pdf-to-jpg", [path], {"dpi": 72})
        with Image.open(result.output_files[0].path) as img:
            assert img.size == (612, 792)

    def test_dpi_out_of_range(self, dispatcher, sample_pdf):
        result = dispatcher.dispatch("pdf-to-jpg", [str(sample_pdf)], {"dpi": 5000})
        assert result.error_kind == ErrorKind.USAGE


class TestPdfToOffice:

    def test_word(self, dispatcher, sample_pdf):
        result = _run(dispatcher, "pdf-to-word", [sample_pdf])
        output = result.output_files[0]
        assert output.mime_type == MIME_DOCX
        paragraphs = [p.text for p in Document(output.path).paragraphs]
        assert "Page 1" in paragraphs
        assert "Page 2" in paragraphs
        assert result.notices == [NOTICE_TEXT_ONLY]

    def test_excel_sheet_per_page(self, dispatcher, sample_pdf):
        result = _run(dispatcher, "pdf-to-excel", [sample_pdf])
        output = result.output_files[0]
        assert output.mime_type == MIME_XLSX
        workbook = load_workbook(output.path)
        assert workbook.sheetnames == ["Page 1", "Page 2"]
        assert workbook["Page 2"]["A1"].value == "Page 2"

    def test_powerpoint_slide_per_page(self, dispatcher, sample_pdf):
        result = _run(dispatcher, "pdf-to-powerpoint", [sample_pdf])
        output = result.output_files[0]
        assert output.mime_type == MIME_PPTX
        prs = Presentation(output.path)
        assert len(prs.slides) == 2
        assert result.notices == [NOTICE_PAGE_IMAGES]


# ═══════════════════════════════════════════════════════════════════════════════
# TO PDF
# ═══════════════════════════════════════════════════════════════════════════════


class TestOfficeToPdf:

    def test_word(self, dispatcher, docx_file):
        result = _run(dispatcher, "word-to-pdf", [docx_file])
        text = _pdf_text(result.output_files[0].path)
        assert "Quarterly Report" in text
        assert "Revenue grew in every region." in text
        assert "North | 42" in text
        with fitz.open(result.output_files[0].path) as doc:
            assert (doc[0].rect.width, doc[0].rect.height) == (595, 842)

    def test_excel(self, dispatcher, xlsx_file):
        result = _run(dispatcher, "excel-to-pdf", [xlsx_file])
        with fitz.open(result.output_files[0].path) as doc:
            assert doc.page_count == 1
            assert (doc[0].rect.width, doc[0].rect.height) == (842, 595)
            text = doc[0].get_text()
        assert "Sheet: Sales" in text
        assert "North" in text
        assert "42" in text

    def test_powerpoint(self, dispatcher, pptx_file):
        result = _run(dispatcher, "powerpoint-to-pdf", [pptx_file])
        text = _pdf_text(result.output_files[0].path)
        assert "Slide 1" in text
        assert "Roadmap overview" in text

    def test_word_with_non_latin_text(self, dispatcher, tmp_path):
        document = Document()
        document.add_heading("Годовой отчёт", level=1)
        document.add_paragraph("季度收入 — €42")
        path = tmp_path / "отчёт.docx"
        document.save(str(path))

        result = _run(dispatcher, "word-to-pdf", [path])
        text = _pdf_text(result.output_files[0].path)
        assert "Годовой отчёт" in text
        assert "季度收入" in text
        assert "€42" in text

    def test_excel_with_non_latin_sheet(self, dispatcher, tmp_path):
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "Продажи"
        sheet.append(["Регион", "東京"])
        path = tmp_path / "sales-ru.xlsx"
        workbook.save(str(path))

        result = _run(dispatcher, "excel-to-pdf", [path])
        text = _pdf_text(result.output_files[0].path)
        assert "Sheet: Продажи" in text
        assert "Регион" in text
        assert "東京" in text

    @pytest.mark.parametrize("operation", ["word-to-pdf", "excel-to-pdf", "powerpoint-to-pdf"])
    def test_unreadable_office_file(self, dispatcher, tmp_path, operation):
        legacy = tmp_path / "legacy.doc"
        legacy.write_bytes(b"\xd0\xcf\x11\xe0 not a zip package")
        result = dispatcher.dispatch(operation, [str(legacy)])
        assert result.error_kind == ErrorKind.PROCESSING
        assert "supported" in result.error


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
