"""
Word template to PDF generation for the docfill backend.

This package bundles:
  - placeholder detection, typing and substitution
  - Word document intake and validation of submitted form values
  - text-flow PDF rendering and storage of generated PDFs
"""

from .exceptions import (
    DocFillError,
    FormValidationError,
    NotFoundError,
    RenderError,
    UnsupportedDocumentError,
)
from .service import DocFillService

__all__ = [
    "DocFillService",
    "DocFillError",
    "FormValidationError",
    "NotFoundError",
    "RenderError",
    "UnsupportedDocumentError",
]
