"""
High-level service that exposes template filling to the FastAPI layer.

Responsibilities
----------------
* turn uploaded Word documents into templates with detected placeholders
* preview substituted template text for partially filled forms
* render filled templates to PDF and persist the binary plus a record
* keep a small TTL cache of recently generated PDFs
"""

from __future__ import annotations

import datetime as dt
import logging
import os
import re
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote, unquote

from cachetools import TTLCache

from .documents import read_word_document
from .exceptions import NotFoundError
from .form_values import to_raw_values, validate_form_data
from .models import DashboardStats, GeneratedPdf, Placeholder, Template
from .placeholders import extract_placeholders, substitute_placeholders
from .renderer import PageConfig, RenderedDocument, render_document
from .repository import GeneratedPdfRepository, TemplateRepository
from .storage import PdfStorage

logger = logging.getLogger(__name__)

PDF_URL_PREFIX = "/pdfs/"


def pdf_filename(template_name: str, when: Optional[dt.datetime] = None) -> str:
    """`{template}-{ISO timestamp}.pdf` with `:` and `.` of the timestamp turned into `-`."""
    when = when or dt.datetime.now(dt.timezone.utc)
    if when.tzinfo is not None:
        when = when.astimezone(dt.timezone.utc)
    timestamp = when.strftime("%Y-%m-%dT%H:%M:%S.") + f"{when.microsecond // 1000:03d}Z"
    safe_name = template_name.replace("/", "_").replace("\\", "_")
    return f"{safe_name}-{re.sub(r'[:.]', '-', timestamp)}.pdf"


def pdf_url_for(filename: str) -> str:
    return f"{PDF_URL_PREFIX}{quote(filename)}"


def filename_from_url(pdf_url: str) -> str:
    return unquote(pdf_url.rsplit("/", 1)[-1])


def describe_recent_activity(uploaded_at: str, now: Optional[dt.datetime] = None) -> str:
    now = now or dt.datetime.now(dt.timezone.utc)
    uploaded = dt.datetime.fromisoformat(uploaded_at)
    if uploaded.tzinfo is None:
        uploaded = uploaded.replace(tzinfo=dt.timezone.utc)
    hours = int((now - uploaded).total_seconds() // 3600)
    return "Less than an hour ago" if hours < 1 else f"{hours} hours ago"


class DocFillService:
    def __init__(
        self,
        base_dir: Optional[Path] = None,
        storage: Optional[PdfStorage] = None,
        templates: Optional[TemplateRepository] = None,
        generated_pdfs: Optional[GeneratedPdfRepository] = None,
        page_config: Optional[PageConfig] = None,
        cache_ttl: Optional[int] = None,
    ):
        self.base_dir = Path(base_dir or os.getenv("DOCFILL_BASE_DIR") or "docfill_data")
        self.base_dir.mkdir(parents=True, exist_ok=True)

        self.templates = templates or TemplateRepository(self.base_dir)
        self.generated_pdfs = generated_pdfs or GeneratedPdfRepository(self.base_dir)
        self.storage = storage or PdfStorage(self.base_dir)
        self.page_config = page_config or PageConfig()

        ttl = cache_ttl if cache_ttl is not None else int(os.getenv("DOCFILL_PDF_CACHE_TTL", "3600"))
        self._pdf_cache: TTLCache = TTLCache(maxsize=64, ttl=ttl)

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------
    def upload_template(
        self,
        filename: str,
        content_type: Optional[str],
        data: bytes,
        user_id: Optional[str] = None,
    ) -> Tuple[Template, int]:
        document = read_word_document(filename, content_type, data)
        placeholders = extract_placeholders(document.text)
        template = self.templates.create(
            Template(
                name=document.name,
                filename=document.filename,
                original_content=document.text,
                placeholders=placeholders,
                sections=document.sections,
                user_id=user_id,
            )
        )
        logger.info(
            "Uploaded template %s (%s) with %d placeholder(s)", template.id, template.filename, len(placeholders)
        )
        return template, len(placeholders)

    def list_templates(self, user_id: Optional[str] = None, search: Optional[str] = None) -> List[Template]:
        if search:
            return self.templates.search(search, user_id=user_id)
        return self.templates.list(user_id=user_id)

    def get_template(self, template_id: str, user_id: Optional[str] = None) -> Template:
        template = self.templates.get(template_id, user_id=user_id)
        if template is None:
            raise NotFoundError("Template", template_id)
        return template

    def delete_template(self, template_id: str, user_id: Optional[str] = None) -> None:
        if not self.templates.delete(template_id, user_id=user_id):
            raise NotFoundError("Template", template_id)
        logger.info("Deleted template %s", template_id)

    # ------------------------------------------------------------------
    # Preview / generation
    # ------------------------------------------------------------------
    def _prepare(
        self, template_id: str, form_data: Mapping[str, Any], user_id: Optional[str]
    ) -> Tuple[Template, Dict[str, Any], str]:
        template = self.get_template(template_id, user_id=user_id)
        values = to_raw_values(validate_form_data(template.placeholders, form_data))
        return template, values, substitute_placeholders(template.original_content, values)

    def preview(
        self, template_id: str, form_data: Mapping[str, Any], user_id: Optional[str] = None
    ) -> Tuple[str, List[Placeholder]]:
        template, _, content = self._prepare(template_id, form_data, user_id)
        return content, template.placeholders

    def render_pdf(
        self, template_id: str, form_data: Mapping[str, Any], user_id: Optional[str] = None
    ) -> Tuple[str, bytes]:
        """Render without persisting; returns a download file name and the PDF bytes."""
        template, values, content = self._prepare(template_id, form_data, user_id)
        rendered = render_document(content, values, self.page_config, title=template.name)
        download_name = re.sub(r"\s+", "_", template.name) + ".pdf"
        return download_name, rendered.pdf_bytes

    def generate_pdf(
        self,
        template_id: str,
        form_data: Mapping[str, Any],
        name: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> GeneratedPdf:
        template, values, content = self._prepare(template_id, form_data, user_id)
        rendered: RenderedDocument = render_document(content, values, self.page_config, title=template.name)

        filename = pdf_filename(template.name)
        self.storage.save(filename, rendered.pdf_bytes)
        record = GeneratedPdf(
            template_id=template.id,
            name=name or f"{template.name} - {dt.date.today().isoformat()}",
            form_data=dict(values),
            pdf_content=content,
            pdf_url=pdf_url_for(filename),
            user_id=user_id,
        )
        try:
            record = self.generated_pdfs.create(record)
        except Exception:
            logger.error("Failed to persist record for %s, removing stored PDF", filename, exc_info=True)
            self.storage.delete(filename)
            raise

        self._pdf_cache[filename] = rendered.pdf_bytes
        logger.info(
            "Generated PDF %s for template %s (%d page(s))", record.id, template.id, rendered.page_count
        )
        return record

    # ------------------------------------------------------------------
    # Generated PDFs
    # ------------------------------------------------------------------
    def list_generated_pdfs(self, user_id: Optional[str] = None) -> List[GeneratedPdf]:
        return self.generated_pdfs.list(user_id=user_id)

    def get_generated_pdf(self, pdf_id: str, user_id: Optional[str] = None) -> GeneratedPdf:
        record = self.generated_pdfs.get(pdf_id, user_id=user_id)
        if record is None:
            raise NotFoundError("Generated PDF", pdf_id)
        return record

    def delete_generated_pdf(self, pdf_id: str, user_id: Optional[str] = None) -> None:
        record = self.get_generated_pdf(pdf_id, user_id=user_id)
        if record.pdf_url:
            filename = filename_from_url(record.pdf_url)
            self._pdf_cache.pop(filename, None)
            self.storage.delete(filename)
        if not self.generated_pdfs.delete(pdf_id, user_id=user_id):
            raise NotFoundError("Generated PDF", pdf_id)
        logger.info("Deleted generated PDF %s", pdf_id)

    def load_pdf(self, filename: str) -> bytes:
        cached = self._pdf_cache.get(filename)
        if cached is not None:
            return cached
        pdf_bytes = self.storage.load(filename)
        if pdf_bytes is None:
            raise NotFoundError("PDF", filename)
        self._pdf_cache[filename] = pdf_bytes
        return pdf_bytes

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------
    def dashboard_stats(self, user_id: Optional[str] = None) -> DashboardStats:
        templates = self.templates.list(user_id=user_id)
        pdfs = self.generated_pdfs.list(user_id=user_id)

        most_used = None
        if pdfs:
            # Counter keeps first-seen order on ties, so the newest PDF wins.
            usage = Counter(p.template_id for p in pdfs)
            names = {t.id: t.name for t in templates}
            for template_id, _ in usage.most_common():
                if template_id in names:
                    most_used = names[template_id]
                    break

        recent = describe_recent_activity(templates[0].uploaded_at) if templates else None
        return DashboardStats(
            total_templates=len(templates),
            total_generated_pdfs=len(pdfs),
            recent_activity=recent,
            most_used_template=most_used,
        )
