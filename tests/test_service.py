import datetime as dt
import re
import time

import fitz
import pytest

from docfill.exceptions import FormValidationError, NotFoundError, RenderError, UnsupportedDocumentError
from docfill.models import PlaceholderType
from docfill.service import describe_recent_activity, filename_from_url, pdf_filename, pdf_url_for


def test_upload_detects_placeholders(service, make_docx):
    template, detected = service.upload_template(
        "Invoice.docx",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        make_docx("{company_logo}", "Bill to {client_name} on {invoice_date}", "Total {total_amount} {client_name}"),
        user_id="u1",
    )
    assert detected == 4
    assert template.name == "Invoice"
    assert [(p.name, p.type) for p in template.placeholders] == [
        ("company_logo", PlaceholderType.IMAGE),
        ("client_name", PlaceholderType.TEXT),
        ("invoice_date", PlaceholderType.DATE),
        ("total_amount", PlaceholderType.NUMBER),
    ]
    assert service.get_template(template.id, user_id="u1") == template


def test_rejected_upload_creates_nothing(service):
    with pytest.raises(UnsupportedDocumentError):
        service.upload_template("notes.txt", "text/plain", b"{a}", user_id="u1")
    assert service.list_templates(user_id="u1") == []


def test_preview_substitutes_partial_form(service, upload_template):
    template = upload_template("Dear {client_name},", "Ref {invoice_id}", "{company_logo}")
    content, placeholders = service.preview(template.id, {"client_name": "Acme Corp", "invoice_id": ""}, user_id="demo-user")
    assert "Dear Acme Corp," in content
    assert "Ref [invoice_id]" in content
    assert "{company_logo}" in content
    assert placeholders == template.placeholders


def test_preview_rejects_invalid_values(service, upload_template):
    template = upload_template("{company_logo}")
    with pytest.raises(FormValidationError) as excinfo:
        service.preview(template.id, {"company_logo": "not an image"}, user_id="demo-user")
    assert list(excinfo.value.errors) == ["company_logo"]


def test_unknown_template(service):
    with pytest.raises(NotFoundError):
        service.preview("missing", {}, user_id="demo-user")
    with pytest.raises(NotFoundError):
        service.delete_template("missing", user_id="demo-user")


def test_generate_persists_binary_and_record(service, upload_template, png_data_uri):
    template = upload_template("{company_logo}", "Bill to {client_name}", filename="Invoice.docx")
    record = service.generate_pdf(
        template.id,
        {"client_name": "Acme Corp", "company_logo": png_data_uri},
        name="March invoice",
        user_id="demo-user",
    )

    assert record.id
    assert record.template_id == template.id
    assert record.name == "March invoice"
    assert record.form_data["client_name"] == "Acme Corp"
    assert "[IMAGE:company_logo]" in record.pdf_content
    assert "Bill to Acme Corp" in record.pdf_content
    assert "{" not in record.pdf_content
    assert re.fullmatch(r"/pdfs/Invoice-\d{4}-\d\d-\d\dT\d\d-\d\d-\d\d-\d{3}Z\.pdf", record.pdf_url)

    pdf_bytes = service.load_pdf(filename_from_url(record.pdf_url))
    with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
        assert len(doc[0].get_image_info()) == 1
        assert "Bill to Acme Corp" in doc[0].get_text()

    assert service.get_generated_pdf(record.id, user_id="demo-user") == record


def test_generate_default_name(service, upload_template):
    template = upload_template("Hi {name}", filename="Letter.docx")
    record = service.generate_pdf(template.id, {"name": "Ada"}, user_id="demo-user")
    assert record.name == f"Letter - {dt.date.today().isoformat()}"


def test_render_failure_persists_nothing(service, upload_template, monkeypatch):
    import docfill.service as service_module

    template = upload_template("Hi {name}")

    def fail(*args, **kwargs):
        raise RenderError("flush failed")

    monkeypatch.setattr(service_module, "render_document", fail)
    with pytest.raises(RenderError):
        service.generate_pdf(template.id, {"name": "Ada"}, user_id="demo-user")

    assert service.list_generated_pdfs(user_id="demo-user") == []
    assert list(service.storage.generated_dir.iterdir()) == []


def test_record_failure_removes_stored_binary(service, upload_template, monkeypatch):
    template = upload_template("Hi {name}")

    def fail(record):
        raise OSError("disk full")

    monkeypatch.setattr(service.generated_pdfs, "create", fail)
    with pytest.raises(OSError):
        service.generate_pdf(template.id, {"name": "Ada"}, user_id="demo-user")
    assert list(service.storage.generated_dir.iterdir()) == []


def test_render_pdf_does_not_persist(service, upload_template):
    template = upload_template("Hi {name}", filename="My Letter.docx")
    download_name, pdf_bytes = service.render_pdf(template.id, {"name": "Ada"}, user_id="demo-user")
    assert download_name == "My_Letter.pdf"
    assert pdf_bytes.startswith(b"%PDF")
    assert service.list_generated_pdfs(user_id="demo-user") == []


def test_delete_generated_pdf_tolerates_missing_binary(service, upload_template):
    template = upload_template("Hi {name}")
    record = service.generate_pdf(template.id, {"name": "Ada"}, user_id="demo-user")
    filename = filename_from_url(record.pdf_url)
    service.storage.delete(filename)

    service.delete_generated_pdf(record.id, user_id="demo-user")

    with pytest.raises(NotFoundError):
        service.get_generated_pdf(record.id, user_id="demo-user")
    with pytest.raises(NotFoundError):
        service.load_pdf(filename)
    with pytest.raises(NotFoundError):
        service.delete_generated_pdf(record.id, user_id="demo-user")


def test_generated_pdfs_survive_template_deletion(service, upload_template):
    template = upload_template("Hi {name}")
    record = service.generate_pdf(template.id, {"name": "Ada"}, user_id="demo-user")
    service.delete_template(template.id, user_id="demo-user")
    assert service.get_generated_pdf(record.id, user_id="demo-user").template_id == template.id


def test_dashboard_stats(service, upload_template):
    assert service.dashboard_stats(user_id="demo-user").to_dict() == {
        "total_templates": 0,
        "total_generated_pdfs": 0,
        "recent_activity": None,
        "most_used_template": None,
    }

    invoice = upload_template("{a}", filename="Invoice.docx")
    letter = upload_template("{a}", filename="Letter.docx")
    service.generate_pdf(letter.id, {"a": "1"}, user_id="demo-user")
    service.generate_pdf(invoice.id, {"a": "1"}, user_id="demo-user")
    service.generate_pdf(invoice.id, {"a": "2"}, user_id="demo-user")

    stats = service.dashboard_stats(user_id="demo-user")
    assert stats.total_templates == 2
    assert stats.total_generated_pdfs == 3
    assert stats.most_used_template == "Invoice"
    assert stats.recent_activity == "Less than an hour ago"


def test_describe_recent_activity():
    now = dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.timezone.utc)
    assert describe_recent_activity("2024-05-01T11:30:00+00:00", now=now) == "Less than an hour ago"
    assert describe_recent_activity("2024-05-01T02:59:00+00:00", now=now) == "9 hours ago"


def test_pdf_filename_format():
    when = dt.datetime(2024, 3, 5, 14, 7, 9, 123456, tzinfo=dt.timezone.utc)
    assert pdf_filename("Invoice", when) == "Invoice-2024-03-05T14-07-09-123Z.pdf"


def test_most_used_tie_goes_to_latest_pdf(service, upload_template):
    invoice = upload_template("{a}", filename="Invoice.docx")
    letter = upload_template("{a}", filename="Letter.docx")
    service.generate_pdf(invoice.id, {"a": "1"}, user_id="demo-user")
    # created_at is the ordering key; keep the two records apart
    time.sleep(0.01)
    service.generate_pdf(letter.id, {"a": "1"}, user_id="demo-user")

    assert service.dashboard_stats(user_id="demo-user").most_used_template == "Letter"


def test_pdf_url_round_trip_with_url_characters():
    filename = "Invoice #7?-2024-03-05T14-07-09-123Z.pdf"
    url = pdf_url_for(filename)
    assert url == "/pdfs/Invoice%20%237%3F-2024-03-05T14-07-09-123Z.pdf"
    assert filename_from_url(url) == filename
