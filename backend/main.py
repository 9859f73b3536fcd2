import logging

from dotenv import load_dotenv

load_dotenv(".env.local"); load_dotenv()  # also loads .env if present

import os  # noqa: E402
from typing import Optional  # noqa: E402

from fastapi import FastAPI, File, HTTPException, Query, Response, UploadFile  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from pydantic import BaseModel, Field  # noqa: E402

from docfill import (  # noqa: E402
    DocFillError,
    DocFillService,
    FormValidationError,
    NotFoundError,
    UnsupportedDocumentError,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="docfill", description="Fill Word templates and export PDFs")

_cors_origins = [
    o.strip()
    for o in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:8501,http://127.0.0.1:8501,http://localhost:5173,http://127.0.0.1:5173",
    ).split(",")
    if o.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

DEFAULT_USER = os.getenv("DOCFILL_DEFAULT_USER", "demo-user")

docfill_service = DocFillService()


def _owner(user_id: Optional[str]) -> str:
    return user_id or DEFAULT_USER


def _raise_http(exc: DocFillError, fallback: str):
    """Translate a service exception into the matching HTTP error."""
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if isinstance(exc, FormValidationError):
        raise HTTPException(status_code=400, detail={"message": str(exc), "errors": exc.errors}) from exc
    if isinstance(exc, UnsupportedDocumentError):
        raise HTTPException(status_code=413 if exc.too_large else 400, detail=str(exc)) from exc
    logger.error("%s: %s", fallback, exc, exc_info=True)
    raise HTTPException(status_code=500, detail=fallback) from exc


def _pdf_response(pdf_bytes: bytes, filename: str, download: bool) -> Response:
    disposition = "attachment" if download else "inline"
    # Header values must be latin-1; template names may not be.
    safe_name = filename.encode("ascii", "ignore").decode("ascii").replace('"', "") or "document.pdf"
    headers = {"Content-Disposition": f'{disposition}; filename="{safe_name}"'}
    return Response(content=pdf_bytes, media_type="application/pdf", headers=headers)


class PreviewRequest(BaseModel):
    template_id: str
    form_data: dict = Field(default_factory=dict)
    user_id: Optional[str] = None


class GeneratePdfRequest(BaseModel):
    template_id: str
    form_data: dict = Field(default_factory=dict)
    name: Optional[str] = None
    user_id: Optional[str] = None


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/dashboard/stats")
def dashboard_stats(user_id: Optional[str] = None):
    try:
        return docfill_service.dashboard_stats(user_id=_owner(user_id)).to_dict()
    except DocFillError as exc:
        _raise_http(exc, "Failed to fetch dashboard stats")


# --- Templates ----------------------------------------------------------------


@app.get("/templates")
def list_templates(search: Optional[str] = None, user_id: Optional[str] = None):
    templates = docfill_service.list_templates(user_id=_owner(user_id), search=search)
    return [t.to_dict() for t in templates]


@app.get("/templates/{template_id}")
def get_template(template_id: str, user_id: Optional[str] = None):
    try:
        return docfill_service.get_template(template_id, user_id=_owner(user_id)).to_dict()
    except DocFillError as exc:
        _raise_http(exc, "Failed to fetch template")


@app.post("/templates/upload")
def upload_template(document: UploadFile = File(...), user_id: Optional[str] = Query(default=None)):
    data = document.file.read()
    logger.info("Upload request received: %s (%s, %d bytes)", document.filename, document.content_type, len(data))
    try:
        template, detected = docfill_service.upload_template(
            document.filename or "document.docx",
            document.content_type,
            data,
            user_id=_owner(user_id),
        )
    except DocFillError as exc:
        _raise_http(exc, "Failed to upload template")
    return {"template": template.to_dict(), "placeholders_detected": detected}


@app.delete("/templates/{template_id}")
def delete_template(template_id: str, user_id: Optional[str] = None):
    try:
        docfill_service.delete_template(template_id, user_id=_owner(user_id))
    except DocFillError as exc:
        _raise_http(exc, "Failed to delete template")
    return {"message": "Template deleted successfully"}


# --- Preview + generation -----------------------------------------------------


@app.post("/preview")
def preview(req: PreviewRequest):
    try:
        content, placeholders = docfill_service.preview(
            req.template_id, req.form_data, user_id=_owner(req.user_id)
        )
    except DocFillError as exc:
        _raise_http(exc, "Failed to generate preview")
    return {"content": content, "placeholders": [p.to_dict() for p in placeholders]}


@app.post("/generate-pdf")
def generate_pdf(req: GeneratePdfRequest):
    try:
        record = docfill_service.generate_pdf(
            req.template_id,
            req.form_data,
            name=req.name,
            user_id=_owner(req.user_id),
        )
    except DocFillError as exc:
        _raise_http(exc, "Failed to generate PDF")
    except OSError as exc:
        logger.error("Storage error while generating PDF: %s", exc, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to generate PDF") from exc
    return record.to_dict()


@app.post("/generate-pdf-download")
def generate_pdf_download(req: GeneratePdfRequest):
    try:
        download_name, pdf_bytes = docfill_service.render_pdf(
            req.template_id, req.form_data, user_id=_owner(req.user_id)
        )
    except DocFillError as exc:
        _raise_http(exc, "Failed to generate PDF for download")
    return _pdf_response(pdf_bytes, download_name, download=True)


# --- Generated PDFs -----------------------------------------------------------


@app.get("/generated-pdfs")
def list_generated_pdfs(user_id: Optional[str] = None):
    return [p.to_dict() for p in docfill_service.list_generated_pdfs(user_id=_owner(user_id))]


@app.get("/generated-pdfs/{pdf_id}")
def get_generated_pdf(pdf_id: str, user_id: Optional[str] = None):
    try:
        return docfill_service.get_generated_pdf(pdf_id, user_id=_owner(user_id)).to_dict()
    except DocFillError as exc:
        _raise_http(exc, "Failed to fetch generated PDF")


@app.delete("/generated-pdfs/{pdf_id}")
def delete_generated_pdf(pdf_id: str, user_id: Optional[str] = None):
    try:
        docfill_service.delete_generated_pdf(pdf_id, user_id=_owner(user_id))
    except DocFillError as exc:
        _raise_http(exc, "Failed to delete generated PDF")
    return {"message": "Generated PDF deleted successfully"}


@app.get("/pdfs/{filename}")
def view_pdf(filename: str):
    try:
        pdf_bytes = docfill_service.load_pdf(filename)
    except DocFillError as exc:
        _raise_http(exc, "Failed to load PDF")
    return _pdf_response(pdf_bytes, filename, download=False)


@app.get("/pdfs/{filename}/download")
def download_pdf(filename: str):
    try:
        pdf_bytes = docfill_service.load_pdf(filename)
    except DocFillError as exc:
        _raise_http(exc, "Failed to load PDF")
    return _pdf_response(pdf_bytes, filename, download=True)

