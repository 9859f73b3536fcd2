"""
Exceptions raised by the docfill service layer.

The FastAPI layer maps these onto HTTP status codes; nothing below the API
knows about HTTP.
"""

from __future__ import annotations

from typing import Dict, Optional


class DocFillError(RuntimeError):
    """Domain-specific exception for service errors."""


class UnsupportedDocumentError(DocFillError):
    """Raised when an upload is not a readable Word document."""

    def __init__(self, message: str, too_large: bool = False):
        super().__init__(message)
        self.too_large = too_large


class FormValidationError(DocFillError):
    """Raised when submitted form values do not match their placeholder types."""

    def __init__(self, errors: Dict[str, str], message: str = "Invalid form data"):
        super().__init__(message)
        self.errors = dict(errors)


class NotFoundError(DocFillError):
    """Raised when a template, generated PDF or stored binary does not exist."""

    def __init__(self, kind: str, identifier: Optional[str] = None):
        message = f"{kind} not found" if identifier is None else f"{kind} '{identifier}' not found"
        super().__init__(message)
        self.kind = kind
        self.identifier = identifier


class RenderError(DocFillError):
    """Raised when a PDF cannot be produced or serialised."""
