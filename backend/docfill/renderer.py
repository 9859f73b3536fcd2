"""
Text-flow PDF rendering for substituted templates.

The layout is deliberately naive: paragraphs are stacked top to bottom, the
vertical advance of a text paragraph is estimated from its character count
rather than measured, and a page break is only considered between
paragraphs. Page-break positions depend on that estimate, so it must stay
as is.

Drawing is done with PyMuPDF; the finished document is passed through pypdf
to stamp the document information dictionary.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

import fitz  # PyMuPDF
from pypdf import PdfReader, PdfWriter

from .exceptions import RenderError
from .placeholders import find_image_markers, strip_image_markers

logger = logging.getLogger(__name__)

FONT_NAME = "helv"
PRODUCER = "docfill"


@dataclass(frozen=True)
class PageConfig:
    """Page geometry in PDF points. Defaults are A4 with one-inch margins."""

    width: float = 595.28
    height: float = 841.89
    margin_top: float = 72
    margin_bottom: float = 72
    margin_left: float = 72
    margin_right: float = 72
    font_size: float = 12
    line_height: float = 20
    paragraph_gap: float = 10
    image_width: float = 200
    image_height: float = 150
    image_advance: float = 160
    chars_per_line: int = 80

    @property
    def printable_height(self) -> float:
        return self.height - self.margin_top - self.margin_bottom

    @property
    def printable_width(self) -> float:
        return self.width - self.margin_left - self.margin_right


@dataclass
class RenderedDocument:
    pdf_bytes: bytes
    page_count: int
    paragraph_count: int
    images_embedded: int = 0
    image_fallbacks: int = 0


def split_paragraphs(text: str) -> List[str]:
    return [p for p in (text or "").split("\n") if p.strip()]


def estimate_text_advance(text: str, config: PageConfig) -> float:
    return config.line_height * math.ceil(len(text) / config.chars_per_line)


def decode_data_uri(value: Any) -> Optional[bytes]:
    """Return the decoded payload of a `data:image/...;base64,...` string, else None."""
    if not isinstance(value, str) or not value.startswith("data:image"):
        return None
    _, sep, payload = value.partition(",")
    if not sep:
        return None
    try:
        return base64.b64decode(re.sub(r"\s+", "", payload), validate=True)
    except (binascii.Error, ValueError):
        return None


def _wrap_text(text: str, width: float, font_size: float) -> List[str]:
    lines: List[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if current and fitz.get_text_length(candidate, fontname=FONT_NAME, fontsize=font_size) > width:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines


def _write_lines(page, lines: List[str], x: float, y: float, config: PageConfig) -> None:
    # insert_text positions the baseline, so drop by one font size from the cursor.
    page.insert_text(
        fitz.Point(x, y + config.font_size),
        lines,
        fontsize=config.font_size,
        fontname=FONT_NAME,
    )


def _embed_image(page, name: str, value: Any, x: float, y: float, config: PageConfig) -> bool:
    image_bytes = decode_data_uri(value)
    if image_bytes is None:
        if value:
            logger.warning("Value for image placeholder '%s' is not a base64 data URI", name)
        return False
    rect = fitz.Rect(x, y, x + config.image_width, y + config.image_height)
    try:
        page.insert_image(rect, stream=image_bytes, keep_proportion=False)
    except Exception as exc:
        logger.warning("Failed to embed image for placeholder '%s': %s", name, exc)
        return False
    return True


def _stamp_metadata(pdf_bytes: bytes, title: Optional[str]) -> bytes:
    reader = PdfReader(io.BytesIO(pdf_bytes), strict=False)
    try:
        writer = PdfWriter(clone_from=reader)
    except (TypeError, AttributeError):
        writer = PdfWriter()
        for page in reader.pages:
            writer.add_page(page)
    metadata = {"/Producer": PRODUCER, "/Creator": PRODUCER}
    if title:
        metadata["/Title"] = title
    writer.add_metadata(metadata)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def render_document(
    substituted_text: str,
    raw_values: Mapping[str, Any],
    page_config: Optional[PageConfig] = None,
    title: Optional[str] = None,
) -> RenderedDocument:
    """
    Lay out substituted template text on pages and return the finished PDF.

    Args:
        substituted_text: Output of `substitute_placeholders`, possibly containing
            `[IMAGE:name]` markers.
        raw_values: The submitted form values; image markers are resolved here.
        page_config: Page geometry, A4 by default.
        title: Optional document title written into the PDF metadata.

    Raises:
        RenderError: if the document cannot be serialised.
    """
    config = page_config or PageConfig()
    raw_values = raw_values or {}
    paragraphs = split_paragraphs(substituted_text)

    doc = fitz.open()
    try:
        page = doc.new_page(width=config.width, height=config.height)
        x = config.margin_left
        y = config.margin_top
        embedded = 0
        fallbacks = 0

        for paragraph in paragraphs:
            if y > config.printable_height:
                page = doc.new_page(width=config.width, height=config.height)
                y = config.margin_top

            image_names = find_image_markers(paragraph)
            if image_names:
                for name in image_names:
                    if _embed_image(page, name, raw_values.get(name), x, y, config):
                        embedded += 1
                        y += config.image_advance
                    else:
                        fallbacks += 1
                        _write_lines(page, [f"[Image: {name}]"], x, y, config)
                        y += config.line_height
            else:
                clean_text = strip_image_markers(paragraph).strip()
                if clean_text:
                    lines = _wrap_text(clean_text, config.printable_width, config.font_size)
                    _write_lines(page, lines, x, y, config)
                    y += estimate_text_advance(clean_text, config)

            y += config.paragraph_gap

        page_count = doc.page_count
        pdf_bytes = doc.tobytes(garbage=3, deflate=True)
    except Exception as exc:
        logger.error("Error rendering document: %s", exc, exc_info=True)
        raise RenderError(f"Failed to render PDF: {exc}") from exc
    finally:
        doc.close()

    try:
        pdf_bytes = _stamp_metadata(pdf_bytes, title)
    except Exception as exc:
        logger.error("Error finalising PDF: %s", exc, exc_info=True)
        raise RenderError(f"Failed to finalise PDF: {exc}") from exc

    logger.info(
        "Rendered %d paragraphs on %d page(s), %d image(s), %d image fallback(s)",
        len(paragraphs),
        page_count,
        embedded,
        fallbacks,
    )
    return RenderedDocument(
        pdf_bytes=pdf_bytes,
        page_count=page_count,
        paragraph_count=len(paragraphs),
        images_embedded=embedded,
        image_fallbacks=fallbacks,
    )
