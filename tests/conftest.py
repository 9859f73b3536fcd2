import base64
import io
import os
import tempfile

import pytest

# main.py builds its service at import time; keep that out of the working tree.
os.environ.setdefault("DOCFILL_BASE_DIR", tempfile.mkdtemp(prefix="docfill-tests-"))

import fitz  # noqa: E402
from docx import Document  # noqa: E402

from docfill import DocFillService  # noqa: E402
from docfill.documents import DOCX_MIME  # noqa: E402


@pytest.fixture
def service(tmp_path):
    return DocFillService(base_dir=tmp_path)


@pytest.fixture
def client(service, monkeypatch):
    from fastapi.testclient import TestClient

    import main

    monkeypatch.setattr(main, "docfill_service", service)
    return TestClient(main.app)


@pytest.fixture
def make_docx():
    def _make(*paragraphs):
        doc = Document()
        for text in paragraphs:
            doc.add_paragraph(text)
        buffer = io.BytesIO()
        doc.save(buffer)
        return buffer.getvalue()

    return _make


@pytest.fixture
def png_bytes():
    pix = fitz.Pixmap(fitz.csRGB, fitz.IRect(0, 0, 8, 6), False)
    pix.clear_with(180)
    return pix.tobytes("png")


@pytest.fixture
def png_data_uri(png_bytes):
    return "data:image/png;base64," + base64.b64encode(png_bytes).decode("ascii")


@pytest.fixture
def upload_template(service, make_docx):
    def _upload(*paragraphs, filename="invoice.docx", user_id="demo-user"):
        template, _ = service.upload_template(filename, DOCX_MIME, make_docx(*paragraphs), user_id=user_id)
        return template

    return _upload
