"""
Format Conversions
==================
Routines that move between PDF and images or Office formats.

    pdf-to-jpg          PyMuPDF rendering, JPEG encoding via Pillow
    pdf-to-word         text per page into a .docx (python-docx)
    pdf-to-excel        text lines per page into an .xlsx (openpyxl)
    pdf-to-powerpoint   one slide per rendered page (python-pptx)
    word-to-pdf         .docx paragraphs and tables as flowed text
    excel-to-pdf        first rows and columns of each sheet, landscape
    powerpoint-to-pdf   slide text, one page per slide

Office conversions carry text (or page images) only; layout is not kept.
Routines follow the signature documented in ``pdf_operations``.
"""

from __future__ import annotations

import io
import logging
import re
import zipfile
from html import escape
from pathlib import Path

from docx import Document
from docx.opc.exceptions import PackageNotFoundError as DocxPackageError
from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from PIL import Image
from pptx import Presentation
from pptx.exc import PackageNotFoundError as PptxPackageError
from pptx.util import Emu, Inches

from .errors import ProcessingError
from .models import NoParams, PdfToJpgParams
from .pdf_operations import open_pdf, render_html, save_pdf
from .storage import OutputSink

logger = logging.getLogger(__name__)

MIME_JPEG = "image/jpeg"
MIME_DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
MIME_XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
MIME_PPTX = "application/vnd.openxmlformats-officedocument.presentationml.presentation"

# A4 portrait / landscape, in points
A4 = (595, 842)
A4_LANDSCAPE = (842, 595)
# Letter landscape
PAGE_LANDSCAPE = (792, 612)

# excel-to-pdf grid limits
SHEET_MAX_ROWS = 50
SHEET_MAX_COLUMNS = 8
SHEET_CELL_CHARS = 15
SHEET_MARGIN = 30

NOTICE_TEXT_ONLY = (
    "Text-only conversion: formatting, layout and embedded images are not preserved."
)
NOTICE_PAGE_IMAGES = (
    "Slides contain page images; text on the slides is not editable."
)

_CELL_SPLIT = re.compile(r"\t+|\s{2,}")


# ─── From PDF ─────────────────────────────────────────────────────────────────


def pdf_to_jpg(inputs: list[Path], params: PdfToJpgParams, sink: OutputSink):
    with open_pdf(inputs[0]) as doc:
        for page in doc:
            pix = page.get_pixmap(dpi=params.dpi, alpha=False)
            image = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
            out = sink.new_path(f"page-{page.number + 1}", ".jpg")
            image.save(out, format="JPEG", quality=90)
            sink.add(out, MIME_JPEG)
    logger.info(f"Rendered {len(sink.outputs)} pages at {params.dpi} dpi")


def _page_texts(path: Path) -> list[str]:
    with open_pdf(path) as doc:
        return [page.get_text() for page in doc]


def pdf_to_word(inputs: list[Path], params: NoParams, sink: OutputSink):
    document = Document()
    for index, text in enumerate(_page_texts(inputs[0]), start=1):
        if index > 1:
            document.add_page_break()
        lines = [line for line in text.splitlines() if line.strip()]
        if not lines:
            document.add_paragraph("")
        for line in lines:
            document.add_paragraph(line)
    out = sink.new_path("converted", ".docx")
    document.save(str(out))
    sink.add(out, MIME_DOCX)
    sink.notice(NOTICE_TEXT_ONLY)


def pdf_to_excel(inputs: list[Path], params: NoParams, sink: OutputSink):
    """One worksheet per page; runs of two or more spaces separate cells."""
    workbook = Workbook()
    workbook.remove(workbook.active)
    for index, text in enumerate(_page_texts(inputs[0]), start=1):
        sheet = workbook.create_sheet(title=f"Page {index}")
        row = 1
        for line in text.splitlines():
            if not line.strip():
                continue
            for column, value in enumerate(_CELL_SPLIT.split(line.strip()), start=1):
                sheet.cell(row=row, column=column, value=value)
            row += 1
    out = sink.new_path("converted", ".xlsx")
    workbook.save(str(out))
    sink.add(out, MIME_XLSX)
    sink.notice(NOTICE_TEXT_ONLY)


def pdf_to_powerpoint(inputs: list[Path], params: NoParams, sink: OutputSink):
    prs = Presentation()
    blank = prs.slide_layouts[6]
    with open_pdf(inputs[0]) as doc:
        first = doc[0].rect
        prs.slide_width = Inches(10)
        prs.slide_height = Emu(int(Inches(10) * first.height / first.width))
        for page in doc:
            pix = page.get_pixmap(dpi=150, alpha=False)
            stream = io.BytesIO(pix.tobytes("png"))
            slide = prs.slides.add_slide(blank)
            slide.shapes.add_picture(
                stream, 0, 0, width=prs.slide_width, height=prs.slide_height
            )
    out = sink.new_path("converted", ".pptx")
    prs.save(str(out))
    sink.add(out, MIME_PPTX)
    sink.notice(NOTICE_PAGE_IMAGES)


# ─── To PDF ───────────────────────────────────────────────────────────────────


_HEADING_TAGS = {"Title": "h1", "Heading 1": "h1", "Heading 2": "h2", "Heading 3": "h3"}


def word_to_pdf(inputs: list[Path], params: NoParams, sink: OutputSink):
    try:
        document = Document(str(inputs[0]))
    except (DocxPackageError, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise ProcessingError(
            "Unable to read the Word document. Only .docx files are supported."
        ) from e

    parts = []
    for paragraph in document.paragraphs:
        style = paragraph.style.name if paragraph.style is not None else ""
        tag = _HEADING_TAGS.get(style, "p")
        parts.append(f"<{tag}>{escape(paragraph.text) or '&#160;'}</{tag}>")
    for table in document.tables:
        parts.append("<p>&#160;</p>")
        for row in table.rows:
            cells = " | ".join(cell.text.strip() for cell in row.cells)
            parts.append(f'<p class="row">{escape(cells)}</p>')

    with render_html(["".join(parts)], width=A4[0], height=A4[1]) as doc:
        out = sink.new_path("word-to-pdf")
        save_pdf(doc, out)
    sink.add(out)
    sink.notice(NOTICE_TEXT_ONLY)


def _sheet_html(sheet) -> str:
    rows = []
    for row in sheet.iter_rows(max_row=SHEET_MAX_ROWS, values_only=True):
        cells = "".join(
            f"<td>{escape(str(value)[:SHEET_CELL_CHARS]) if value is not None else ''}</td>"
            for value in row[:SHEET_MAX_COLUMNS]
        )
        rows.append(f"<tr>{cells}</tr>")
    return f"<h3>Sheet: {escape(sheet.title)}</h3><table>{''.join(rows)}</table>"


def excel_to_pdf(inputs: list[Path], params: NoParams, sink: OutputSink):
    """One landscape section per worksheet, limited to its first rows and columns."""
    try:
        workbook = load_workbook(str(inputs[0]), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise ProcessingError(
            "Unable to read the spreadsheet. Only .xlsx files are supported."
        ) from e

    try:
        sections = [_sheet_html(sheet) for sheet in workbook.worksheets]
    finally:
        workbook.close()

    width, height = A4_LANDSCAPE
    with render_html(sections, width=width, height=height, margin=SHEET_MARGIN) as doc:
        out = sink.new_path("excel-to-pdf")
        save_pdf(doc, out)
    sink.add(out)
    sink.notice(NOTICE_TEXT_ONLY)


def powerpoint_to_pdf(inputs: list[Path], params: NoParams, sink: OutputSink):
    try:
        prs = Presentation(str(inputs[0]))
    except (PptxPackageError, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise ProcessingError(
            "Unable to read the presentation. Only .pptx files are supported."
        ) from e

    sections = []
    for number, slide in enumerate(prs.slides, start=1):
        parts = [f"<h2>Slide {number}</h2>"]
        for shape in slide.shapes:
            if not shape.has_text_frame:
                continue
            for paragraph in shape.text_frame.paragraphs:
                text = "".join(run.text for run in paragraph.runs)
                if text.strip():
                    parts.append(f"<p>{escape(text)}</p>")
        sections.append("".join(parts))

    width, height = PAGE_LANDSCAPE
    with render_html(sections or [""], width=width, height=height) as doc:
        out = sink.new_path("powerpoint-to-pdf")
        save_pdf(doc, out)
    sink.add(out)
    sink.notice(NOTICE_TEXT_ONLY)
