"""
Word document intake: upload checks and raw text extraction.
"""

from __future__ import annotations

import io
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import mammoth

from .exceptions import UnsupportedDocumentError

logger = logging.getLogger(__name__)

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
DOC_MIME = "application/msword"
ALLOWED_MIME_TYPES = {DOCX_MIME, DOC_MIME}
ALLOWED_EXTENSIONS = {".docx", ".doc"}

DEFAULT_MAX_UPLOAD_MB = 10

_SECTION_GAP_RE = re.compile(r"\n\s*\n")


@dataclass
class ExtractedDocument:
    name: str
    filename: str
    text: str
    sections: int


def max_upload_bytes() -> int:
    return int(float(os.getenv("DOCFILL_MAX_UPLOAD_MB", str(DEFAULT_MAX_UPLOAD_MB))) * 1024 * 1024)


def strip_extension(filename: str) -> str:
    return re.sub(r"\.[^/.]+$", "", filename)


def count_sections(text: str) -> int:
    """Rough section count: blank-line gaps between paragraphs, at least one."""
    return max(1, len(_SECTION_GAP_RE.findall(text or "")))


def validate_upload(filename: str, content_type: Optional[str], size: int, max_bytes: Optional[int] = None) -> None:
    limit = max_upload_bytes() if max_bytes is None else max_bytes
    extension = Path(filename or "").suffix.lower()
    if content_type not in ALLOWED_MIME_TYPES and extension not in ALLOWED_EXTENSIONS:
        raise UnsupportedDocumentError("Only .docx and .doc files are allowed")
    if size <= 0:
        raise UnsupportedDocumentError("No file uploaded")
    if size > limit:
        raise UnsupportedDocumentError(
            f"File is too large ({size} bytes, limit {limit} bytes)", too_large=True
        )


def extract_document_text(data: bytes) -> str:
    try:
        result = mammoth.extract_raw_text(io.BytesIO(data))
    except Exception as exc:
        logger.warning("Could not read Word document: %s", exc)
        raise UnsupportedDocumentError("Could not read the Word document") from exc
    for message in getattr(result, "messages", []) or []:
        logger.debug("mammoth: %s", message)
    return result.value or ""


def read_word_document(
    filename: str,
    content_type: Optional[str],
    data: bytes,
    max_bytes: Optional[int] = None,
) -> ExtractedDocument:
    """Validate an upload and return its plain text with name and section count."""
    filename = Path(filename or "document.docx").name
    validate_upload(filename, content_type, len(data or b""), max_bytes=max_bytes)
    text = extract_document_text(data)
    return ExtractedDocument(
        name=strip_extension(filename),
        filename=filename,
        text=text,
        sections=count_sections(text),
    )
