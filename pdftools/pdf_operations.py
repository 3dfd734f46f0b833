"""
PDF Operations
==============
PyMuPDF routines behind the PDF-to-PDF tools.

Every routine has the same shape:

    routine(inputs: list[Path], params: <OperationParams>, sink: OutputSink) -> None

It reads its inputs without modifying them, writes each result to a path
obtained from ``sink.new_path``, declares it with ``sink.add`` and records
disclosed limitations with ``sink.notice``. Failures are raised as
``ProcessingError`` / ``OperationUsageError``.

Coordinates:
    API coordinates for redact, crop, sign, watermark and page numbers use
    PDF user space (origin bottom-left). PyMuPDF draws with a top-left
    origin, so ``y_fitz = page_height - y_pdf``. edit-pdf elements are
    given with a top-left origin already.
"""

from __future__ import annotations

import difflib
import io
import logging
import os
from datetime import datetime
from html import escape
from pathlib import Path
from typing import Optional

import fitz  # PyMuPDF
from PIL import Image, UnidentifiedImageError

from .errors import OperationUsageError, ProcessingError
from .models import (
    CropParams,
    EditParams,
    HtmlToPdfParams,
    NoParams,
    NumberPagesParams,
    OrganizeParams,
    ProtectParams,
    RedactParams,
    RotateParams,
    SignParams,
    UnlockParams,
    WatermarkParams,
)
from .storage import OutputSink

logger = logging.getLogger(__name__)

# Letter, in points
PAGE_WIDTH = 612
PAGE_HEIGHT = 792
PAGE_MARGIN = 50

BLACK = (0, 0, 0)
GREY = (0.5, 0.5, 0.5)

SUPPORTED_IMAGE_FORMATS = {"JPEG", "PNG"}

NOTICE_PROTECT = (
    "Password protection is not applied: the output is an unencrypted copy "
    "of the input."
)
NOTICE_UNLOCK = (
    "No decryption was performed: the input was not encrypted and has been "
    "re-saved unchanged."
)
NOTICE_REDACT = (
    "Visual-only redaction: the selected areas are covered with black boxes, "
    "but the underlying content remains in the file and can still be extracted."
)
NOTICE_OCR = (
    "No text recognition was performed: only an invisible placeholder text "
    "layer was added."
)
NOTICE_PDFA = (
    "PDF/A metadata was added, but the document was not validated against "
    "the PDF/A standard."
)
NOTICE_SIGN = (
    "The signature is a visual stamp, not a cryptographic digital signature."
)
NOTICE_COMPARE = (
    "Comparison covers page counts and extracted text only; layout and "
    "images are not compared."
)


# ─── Helpers ──────────────────────────────────────────────────────────────────


def open_pdf(path: Path) -> fitz.Document:
    """Open a PDF for reading; corrupt, empty and encrypted files are rejected."""
    if not os.path.getsize(path):
        raise ProcessingError("Input file is empty or corrupted")
    try:
        doc = fitz.open(str(path), filetype="pdf")
    except (RuntimeError, ValueError) as e:
        raise ProcessingError(
            "Invalid or corrupted PDF file. Please ensure the file is a valid PDF document."
        ) from e
    if doc.needs_pass:
        doc.close()
        raise ProcessingError(
            "This PDF is password protected and cannot be processed."
        )
    if doc.page_count == 0:
        doc.close()
        raise ProcessingError("PDF document contains no pages")
    return doc


def page_count(path: Path) -> int:
    with open_pdf(path) as doc:
        return doc.page_count


def save_pdf(doc: fitz.Document, path: Path, **options):
    opts = {"garbage": 3, "deflate": True}
    opts.update(options)
    doc.save(str(path), **opts)


def detect_image_format(path: Path) -> Optional[str]:
    """Pillow format name (``JPEG``, ``PNG``...) or None if not an image."""
    try:
        with Image.open(path) as img:
            return img.format
    except (UnidentifiedImageError, OSError):
        return None


def text_width(text: str, size: float, fontname: str = "helv") -> float:
    return fitz.get_text_length(text, fontname=fontname, fontsize=size)


BASE_CSS = """
body { font-family: sans-serif; font-size: 12pt; }
h1 { font-size: 18pt; }
h2 { font-size: 16pt; }
h3 { font-size: 14pt; }
p { margin: 0 0 4pt 0; }
.row { font-size: 10pt; }
.detail { font-size: 9pt; color: #808080; }
td { font-size: 10pt; padding: 1pt 6pt 1pt 0; }
"""

MAX_RENDERED_PAGES = 2000


def render_html(
    sections: list[str],
    width: float = PAGE_WIDTH,
    height: float = PAGE_HEIGHT,
    margin: float = PAGE_MARGIN,
    css: str = BASE_CSS,
) -> fitz.Document:
    """
    Lay out HTML with ``fitz.Story`` and return the resulting PDF, opened.

    Each entry of ``sections`` starts on a new page. MuPDF wraps and
    paginates the text, and draws characters missing from the base font
    with its bundled fallback fonts (Noto, including CJK).

    Used by html-to-pdf, the comparison report and the office conversions.
    """
    mediabox = fitz.Rect(0, 0, width, height)
    where = mediabox + (margin, margin, -margin, -margin)
    buffer = io.BytesIO()
    writer = fitz.DocumentWriter(buffer)
    pages = 0
    for html in sections:
        story = fitz.Story(html=html, user_css=css)
        more = True
        while more:
            pages += 1
            if pages > MAX_RENDERED_PAGES:
                raise ProcessingError(
                    f"Rendered document exceeds {MAX_RENDERED_PAGES} pages"
                )
            device = writer.begin_page(mediabox)
            more, _ = story.place(where)
            story.draw(device)
            writer.end_page()
    writer.close()
    return fitz.open("pdf", buffer.getvalue())


def _pdf_rect(page: fitz.Page, x: float, y: float, width: float, height: float) -> fitz.Rect:
    """Convert a bottom-left origin rectangle to PyMuPDF page coordinates."""
    page_height = page.rect.height
    return fitz.Rect(x, page_height - y - height, x + width, page_height - y)


# ─── Organize ─────────────────────────────────────────────────────────────────


def merge_pdf(inputs: list[Path], params: NoParams, sink: OutputSink):
    with fitz.open() as merged:
        for path in inputs:
            with open_pdf(path) as src:
                merged.insert_pdf(src)
        out = sink.new_path("merged")
        save_pdf(merged, out)
    logger.info(f"Merged {len(inputs)} PDFs into {out.name}")
    sink.add(out)


def split_pdf(inputs: list[Path], params: NoParams, sink: OutputSink):
    with open_pdf(inputs[0]) as src:
        for index in range(src.page_count):
            with fitz.open() as part:
                part.insert_pdf(src, from_page=index, to_page=index)
                out = sink.new_path(f"page-{index + 1}")
                save_pdf(part, out)
            sink.add(out)


def organize_pdf(inputs: list[Path], params: OrganizeParams, sink: OutputSink):
    with open_pdf(inputs[0]) as src:
        total = src.page_count
        order = params.page_order or list(range(total, 0, -1))
        valid = [n for n in order if 1 <= n <= total]
        if not valid:
            raise OperationUsageError("Invalid page order provided")
        with fitz.open() as organized:
            for n in valid:
                organized.insert_pdf(src, from_page=n - 1, to_page=n - 1)
            out = sink.new_path("organized")
            save_pdf(organized, out)
    sink.add(out)


def rotate_pdf(inputs: list[Path], params: RotateParams, sink: OutputSink):
    """Rotate every page relative to its current rotation."""
    with open_pdf(inputs[0]) as doc:
        for page in doc:
            page.set_rotation((page.rotation + params.degrees) % 360)
        out = sink.new_path("rotated")
        save_pdf(doc, out)
    sink.add(out)


# ─── Optimize ─────────────────────────────────────────────────────────────────


def compress_pdf(inputs: list[Path], params: NoParams, sink: OutputSink):
    source = inputs[0]
    with open_pdf(source) as doc:
        out = sink.new_path("compressed")
        save_pdf(
            doc, out,
            garbage=4,
            clean=True,
            deflate_images=True,
            deflate_fonts=True,
        )
    before = os.path.getsize(source)
    after = os.path.getsize(out)
    ratio = (1 - after / before) * 100 if before else 0.0
    logger.info(f"Compressed {source.name}: {before} -> {after} bytes ({ratio:.1f}% smaller)")
    sink.add(out)


def repair_pdf(inputs: list[Path], params: NoParams, sink: OutputSink):
    """Re-save through MuPDF, which rebuilds broken cross-reference tables on open."""
    try:
        doc = fitz.open(str(inputs[0]), filetype="pdf")
    except (RuntimeError, ValueError) as e:
        raise ProcessingError(
            "PDF is too damaged to repair. The file may be severely damaged or encrypted."
        ) from e
    with doc:
        if doc.needs_pass:
            raise ProcessingError("This PDF is password protected and cannot be repaired.")
        if doc.page_count == 0:
            raise ProcessingError("PDF document contains no pages")
        if doc.is_repaired:
            logger.info(f"{inputs[0].name}: cross-reference table was rebuilt")
        for page in doc:
            rect = page.rect
            if rect.width <= 0 or rect.height <= 0 or max(rect.width, rect.height) > 14400:
                logger.warning(
                    f"Page {page.number + 1} has invalid dimensions: "
                    f"{rect.width}x{rect.height}"
                )
        out = sink.new_path("repaired")
        save_pdf(doc, out, garbage=4, clean=True)
    sink.add(out)


# ─── Edit ─────────────────────────────────────────────────────────────────────


def watermark_pdf(inputs: list[Path], params: WatermarkParams, sink: OutputSink):
    with open_pdf(inputs[0]) as doc:
        width = text_width(params.text, params.font_size)
        for page in doc:
            rect = page.rect
            origin = fitz.Point(rect.width / 2 - width / 2, rect.height / 2)
            morph = None
            if params.position == "diagonal":
                # Rises from left to right around the page centre
                morph = (fitz.Point(rect.width / 2, rect.height / 2), fitz.Matrix(-45))
            page.insert_text(
                origin,
                params.text,
                fontsize=params.font_size,
                color=(0.7, 0.7, 0.7),
                fill_opacity=params.opacity,
                stroke_opacity=params.opacity,
                morph=morph,
                overlay=True,
            )
        out = sink.new_path("watermarked")
        save_pdf(doc, out)
    sink.add(out)


def number_pages(inputs: list[Path], params: NumberPagesParams, sink: OutputSink):
    with open_pdf(inputs[0]) as doc:
        total = doc.page_count
        for index, page in enumerate(doc):
            label = (
                params.label_format
                .replace("{n}", str(index + params.start_page))
                .replace("{total}", str(total))
            )
            width, height = page.rect.width, page.rect.height
            label_width = text_width(label, params.font_size)

            vertical, horizontal = params.position.split("-")
            if horizontal == "left":
                x = 50
            elif horizontal == "right":
                x = width - label_width - 50
            else:
                x = (width - label_width) / 2
            y_pdf = 30 if vertical == "bottom" else height - 50

            page.insert_text(
                (x, height - y_pdf), label,
                fontname="helv", fontsize=params.font_size, color=BLACK,
            )
        out = sink.new_path("numbered")
        save_pdf(doc, out)
    sink.add(out)


def edit_pdf(inputs: list[Path], params: EditParams, sink: OutputSink):
    with open_pdf(inputs[0]) as doc:
        if params.page > doc.page_count:
            raise OperationUsageError(
                f"Page {params.page} does not exist in the PDF (total pages: {doc.page_count})"
            )
        page = doc[params.page - 1]
        for element in params.text:
            page.insert_text(
                (element.x, element.y), element.content,
                fontname="helv", fontsize=element.size, color=BLACK,
            )
        for shape in params.shapes:
            box = fitz.Rect(shape.x, shape.y, shape.x + shape.width, shape.y + shape.height)
            if shape.type == "rectangle":
                page.draw_rect(box, color=BLACK, width=1)
            else:
                page.draw_circle(
                    fitz.Point((box.x0 + box.x1) / 2, (box.y0 + box.y1) / 2),
                    min(shape.width, shape.height) / 2,
                    color=BLACK, width=1,
                )
        out = sink.new_path("edited")
        save_pdf(doc, out)
    sink.add(out)


def sign_pdf(inputs: list[Path], params: SignParams, sink: OutputSink):
    with open_pdf(inputs[0]) as doc:
        if params.page > doc.page_count:
            raise OperationUsageError(
                f"Page {params.page} does not exist in the PDF (total pages: {doc.page_count})"
            )
        page = doc[params.page - 1]
        width, height = page.rect.width, page.rect.height
        x = params.position.x if params.position else width - 200
        y = params.position.y if params.position else 100

        # 180x50 field whose bottom-left corner sits at (x - 10, y - 30)
        page.draw_rect(
            _pdf_rect(page, x - 10, y - 30, 180, 50),
            color=(0.8, 0.8, 0.8), fill=(0.95, 0.95, 0.95), width=1,
        )
        page.insert_text(
            (x, height - y), params.signature_text,
            fontname="hebo", fontsize=12, color=BLACK,
        )
        page.insert_text(
            (x, height - y + 15), f"Date: {datetime.now():%Y-%m-%d %H:%M:%S}",
            fontname="helv", fontsize=8, color=GREY,
        )
        out = sink.new_path("signed")
        save_pdf(doc, out)
    sink.add(out)
    sink.notice(NOTICE_SIGN)


def crop_pdf(inputs: list[Path], params: CropParams, sink: OutputSink):
    with open_pdf(inputs[0]) as doc:
        targets = params.pages or list(range(1, doc.page_count + 1))
        targets = [n for n in targets if 1 <= n <= doc.page_count]
        if not targets:
            raise OperationUsageError("None of the requested pages exist in the PDF")
        for n in targets:
            page = doc[n - 1]
            media = page.mediabox
            w, h = media.width, media.height
            cx = params.x if params.x is not None else w * 0.1
            cy = params.y if params.y is not None else h * 0.1
            cw = params.width if params.width is not None else w * 0.8
            ch = params.height if params.height is not None else h * 0.8

            box = fitz.Rect(cx, h - cy - ch, cx + cw, h - cy) & media
            if box.is_empty:
                raise OperationUsageError(f"Crop area lies outside page {n}")
            page.set_cropbox(box)
        out = sink.new_path("cropped")
        save_pdf(doc, out)
    sink.add(out)


# ─── Security ─────────────────────────────────────────────────────────────────


def protect_pdf(inputs: list[Path], params: ProtectParams, sink: OutputSink):
    with open_pdf(inputs[0]) as doc:
        out = sink.new_path("protected")
        save_pdf(doc, out)
    logger.warning("protect-pdf produced an unencrypted copy")
    sink.add(out)
    sink.notice(NOTICE_PROTECT)


def unlock_pdf(inputs: list[Path], params: UnlockParams, sink: OutputSink):
    try:
        doc = fitz.open(str(inputs[0]), filetype="pdf")
    except (RuntimeError, ValueError) as e:
        raise ProcessingError(
            "Invalid or corrupted PDF file. Please ensure the file is a valid PDF document."
        ) from e
    with doc:
        if doc.needs_pass or doc.is_encrypted:
            raise ProcessingError(
                "This PDF is encrypted and cannot be processed: decryption of "
                "password-protected PDFs is not supported."
            )
        out = sink.new_path("unlocked")
        save_pdf(doc, out)
    sink.add(out)
    sink.notice(NOTICE_UNLOCK)


def redact_pdf(inputs: list[Path], params: RedactParams, sink: OutputSink):
    with open_pdf(inputs[0]) as doc:
        for area in params.areas:
            if area.page > doc.page_count:
                raise OperationUsageError(
                    f"Page {area.page} does not exist in the PDF (total pages: {doc.page_count})"
                )
        logger.warning("Visual redaction only: underlying content is not removed")
        for area in params.areas:
            page = doc[area.page - 1]
            box = _pdf_rect(page, area.x, area.y, area.width, area.height)
            page.draw_rect(box, color=None, fill=BLACK, width=0, overlay=True)
        out = sink.new_path("redacted")
        save_pdf(doc, out)
    sink.add(out)
    sink.notice(NOTICE_REDACT)


# ─── Advanced ─────────────────────────────────────────────────────────────────


def pdf_to_pdfa(inputs: list[Path], params: NoParams, sink: OutputSink):
    with open_pdf(inputs[0]) as doc:
        now = fitz.get_pdf_now()
        metadata = dict(doc.metadata or {})
        metadata.update({
            "title": metadata.get("title") or "PDF/A Document",
            "creator": "PDF Tools",
            "producer": "PDF Tools PDF/A Converter",
            "creationDate": now,
            "modDate": now,
        })
        doc.set_metadata({k: v for k, v in metadata.items() if k in _METADATA_KEYS})
        doc.set_xml_metadata(_PDFA_XMP.format(title=_xml_escape(metadata["title"])))
        out = sink.new_path("pdfa")
        save_pdf(doc, out, garbage=4, clean=True)
    sink.add(out)
    sink.notice(NOTICE_PDFA)


_METADATA_KEYS = {
    "author", "producer", "creator", "title", "format", "encryption",
    "creationDate", "modDate", "subject", "keywords", "trapped",
}

_PDFA_XMP = """<?xpacket begin="" id="W5M0MpCehiHzreSzNTczkc9d"?>
<x:xmpmeta xmlns:x="adobe:ns:meta/">
 <rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#">
  <rdf:Description rdf:about=""
    xmlns:pdfaid="http://www.aiim.org/pdfa/ns/id/"
    xmlns:dc="http://purl.org/dc/elements/1.1/">
   <pdfaid:part>1</pdfaid:part>
   <pdfaid:conformance>B</pdfaid:conformance>
   <dc:title><rdf:Alt><rdf:li xml:lang="x-default">{title}</rdf:li></rdf:Alt></dc:title>
  </rdf:Description>
 </rdf:RDF>
</x:xmpmeta>
<?xpacket end="w"?>"""


def _xml_escape(value: str) -> str:
    return (
        value.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
    )


def ocr_pdf(inputs: list[Path], params: NoParams, sink: OutputSink):
    with open_pdf(inputs[0]) as doc:
        for page in doc:
            # render_mode 3: invisible but searchable
            page.insert_text(
                (50, 50), f"OCR text layer page {page.number + 1}",
                fontname="helv", fontsize=1, render_mode=3,
            )
        out = sink.new_path("ocr")
        save_pdf(doc, out)
    sink.add(out)
    sink.notice(NOTICE_OCR)


def compare_pdf(inputs: list[Path], params: NoParams, sink: OutputSink):
    first, second = inputs
    with open_pdf(first) as doc_a, open_pdf(second) as doc_b:
        pages_a = [p.get_text().strip() for p in doc_a]
        pages_b = [p.get_text().strip() for p in doc_b]

    differences: list[tuple[str, list[str]]] = []
    if len(pages_a) != len(pages_b):
        differences.append(("Page counts differ.", []))
    for index in range(max(len(pages_a), len(pages_b))):
        if index >= len(pages_a):
            differences.append((f"Page {index + 1}: missing from Document A", []))
        elif index >= len(pages_b):
            differences.append((f"Page {index + 1}: missing from Document B", []))
        elif pages_a[index] != pages_b[index]:
            changed = [
                line for line in difflib.ndiff(
                    pages_a[index].splitlines(), pages_b[index].splitlines()
                )
                if line[:2] in ("- ", "+ ")
            ]
            differences.append((f"Page {index + 1}: text differs", changed[:10]))

    parts = [
        "<h1>PDF Comparison Report</h1>",
        f"<p>Document A: {escape(first.name)}</p>",
        f"<p>Document B: {escape(second.name)}</p>",
        f"<p>Pages in Document A: {len(pages_a)}</p>",
        f"<p>Pages in Document B: {len(pages_b)}</p>",
        "<h3>Differences</h3>",
    ]
    if not differences:
        parts.append("<p>No text differences detected.</p>")
    for heading, lines in differences:
        parts.append(f"<p><b>{escape(heading)}</b></p>")
        parts.extend(f'<p class="detail">{escape(line)}</p>' for line in lines)

    with render_html(["".join(parts)]) as report:
        out = sink.new_path("comparison")
        save_pdf(report, out)
    logger.info(f"Compared {first.name} and {second.name}: {len(differences)} differences")
    sink.add(out)
    sink.notice(NOTICE_COMPARE)


# ─── Images ───────────────────────────────────────────────────────────────────


def _image_page(doc: fitz.Document, path: Path):
    """Append one page sized to the image and draw the image over it."""
    with Image.open(path) as img:
        width, height = img.size
    page = doc.new_page(width=width, height=height)
    page.insert_image(page.rect, filename=str(path))


def jpg_to_pdf(inputs: list[Path], params: NoParams, sink: OutputSink):
    for path in inputs:
        if detect_image_format(path) not in SUPPORTED_IMAGE_FORMATS:
            raise ProcessingError(
                f"Unsupported image format: {path.name}. Only JPEG and PNG images are supported."
            )
    with fitz.open() as doc:
        for path in inputs:
            _image_page(doc, path)
        out = sink.new_path("images")
        save_pdf(doc, out)
    sink.add(out)


def scan_to_pdf(inputs: list[Path], params: NoParams, sink: OutputSink):
    """Like jpg-to-pdf, but unsupported inputs are skipped."""
    usable = []
    for path in inputs:
        if detect_image_format(path) in SUPPORTED_IMAGE_FORMATS:
            usable.append(path)
        else:
            logger.warning(f"Skipping unsupported scan input: {path.name}")
    if not usable:
        raise ProcessingError("No supported images (JPEG or PNG) were provided")
    with fitz.open() as doc:
        for path in usable:
            _image_page(doc, path)
        out = sink.new_path("scanned")
        save_pdf(doc, out)
    sink.add(out)


# ─── HTML ─────────────────────────────────────────────────────────────────────


def html_to_pdf(inputs: list[Path], params: HtmlToPdfParams, sink: OutputSink):
    """Render the markup with MuPDF's HTML engine; scripts and styles are not drawn."""
    if params.html_content is not None:
        markup = params.html_content
    else:
        markup = inputs[0].read_text(encoding="utf-8", errors="replace")

    with render_html([markup]) as doc:
        if not any(page.get_text().strip() for page in doc):
            raise ProcessingError("HTML content contains no text to render")
        out = sink.new_path("html")
        save_pdf(doc, out)
    sink.add(out)
