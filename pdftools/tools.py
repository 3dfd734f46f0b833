"""
Tool Catalog
============
Public names, URL slugs and categories of the tools, plus the sitemap and
robots.txt documents built from them.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Optional
from xml.sax.saxutils import escape

from .models import Operation


def slugify_title(title: str) -> str:
    """'PDF to PDF/A' -> 'pdf-to-pdf-a'"""
    slug = title.lower()
    slug = re.sub(r"\s+", "-", slug)
    slug = slug.replace("/", "-")
    return re.sub(r"[^\w-]", "", slug)


@dataclass(frozen=True)
class ToolInfo:
    title: str
    slug: str
    category: str
    operation: str

    def to_dict(self) -> dict:
        return asdict(self)


ORGANIZE = "Organize PDF"
OPTIMIZE = "Optimize PDF"
CONVERT = "Convert PDF"
EDIT = "Edit PDF"
SECURITY = "PDF Security"
ADVANCED = "Advanced"

_CATALOG: list[tuple[str, str, Operation]] = [
    ("Merge PDF", ORGANIZE, Operation.MERGE_PDF),
    ("Split PDF", ORGANIZE, Operation.SPLIT_PDF),
    ("Organize PDF", ORGANIZE, Operation.ORGANIZE_PDF),
    ("Rotate PDF", ORGANIZE, Operation.ROTATE_PDF),

    ("Compress PDF", OPTIMIZE, Operation.COMPRESS_PDF),
    ("Repair PDF", OPTIMIZE, Operation.REPAIR_PDF),

    ("PDF to Word", CONVERT, Operation.PDF_TO_WORD),
    ("PDF to PowerPoint", CONVERT, Operation.PDF_TO_POWERPOINT),
    ("PDF to Excel", CONVERT, Operation.PDF_TO_EXCEL),
    ("PDF to JPG", CONVERT, Operation.PDF_TO_JPG),
    ("Word to PDF", CONVERT, Operation.WORD_TO_PDF),
    ("PowerPoint to PDF", CONVERT, Operation.POWERPOINT_TO_PDF),
    ("Excel to PDF", CONVERT, Operation.EXCEL_TO_PDF),
    ("JPG to PDF", CONVERT, Operation.JPG_TO_PDF),
    ("HTML to PDF", CONVERT, Operation.HTML_TO_PDF),
    ("PDF to PDFA", CONVERT, Operation.PDF_TO_PDFA),

    ("Edit PDF", EDIT, Operation.EDIT_PDF),
    ("Sign PDF", EDIT, Operation.SIGN_PDF),
    ("Watermark", EDIT, Operation.WATERMARK_PDF),
    ("Number Pages", EDIT, Operation.NUMBER_PAGES),
    ("Crop PDF", EDIT, Operation.CROP_PDF),

    ("Protect PDF", SECURITY, Operation.PROTECT_PDF),
    ("Unlock PDF", SECURITY, Operation.UNLOCK_PDF),
    ("Redact PDF", SECURITY, Operation.REDACT_PDF),

    ("Scan to PDF", ADVANCED, Operation.SCAN_TO_PDF),
    ("OCR PDF", ADVANCED, Operation.OCR_PDF),
    ("Compare PDF", ADVANCED, Operation.COMPARE_PDF),
]

TOOLS: list[ToolInfo] = [
    ToolInfo(title=title, slug=slugify_title(title), category=category, operation=op.value)
    for title, category, op in _CATALOG
]

CATEGORIES: list[str] = list(dict.fromkeys(t.category for t in TOOLS))


def find_tool(slug: str) -> Optional[ToolInfo]:
    for tool in TOOLS:
        if tool.slug == slug:
            return tool
    return None


def tools_by_category() -> dict[str, list[ToolInfo]]:
    grouped: dict[str, list[ToolInfo]] = {c: [] for c in CATEGORIES}
    for tool in TOOLS:
        grouped[tool.category].append(tool)
    return grouped


# ─── Crawlers ─────────────────────────────────────────────────────────────────


def sitemap_xml(base_url: str) -> str:
    base = escape(base_url.rstrip("/"))
    entries = [
        (f"{base}/", "weekly", "1.0"),
        (f"{base}/faq", "monthly", "0.8"),
    ]
    entries.extend((f"{base}/{tool.slug}", "monthly", "0.7") for tool in TOOLS)

    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
    ]
    for loc, changefreq, priority in entries:
        lines.extend([
            "  <url>",
            f"    <loc>{loc}</loc>",
            f"    <changefreq>{changefreq}</changefreq>",
            f"    <priority>{priority}</priority>",
            "  </url>",
        ])
    lines.append("</urlset>")
    return "\n".join(lines)


def robots_txt(base_url: str) -> str:
    return f"User-agent: *\nAllow: /\n\nSitemap: {base_url.rstrip('/')}/sitemap.xml\n"
