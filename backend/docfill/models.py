"""
Records persisted by the docfill service.

Plain dataclasses, serialised to JSON with `to_dict` / `from_dict`.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PlaceholderType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    IMAGE = "image"


@dataclass(frozen=True)
class Placeholder:
    """A `{name}` token found in a template, with its inferred type."""

    name: str
    type: PlaceholderType
    label: str
    required: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "label": self.label,
            "required": self.required,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Placeholder":
        return cls(
            name=data["name"],
            type=PlaceholderType(data.get("type", PlaceholderType.TEXT.value)),
            label=data.get("label", data["name"]),
            required=bool(data.get("required", True)),
        )


@dataclass
class Template:
    """An uploaded Word document reduced to its text and placeholders."""

    name: str
    filename: str
    original_content: str
    placeholders: List[Placeholder] = field(default_factory=list)
    sections: int = 1
    user_id: Optional[str] = None
    id: Optional[str] = None
    uploaded_at: str = ""

    def __post_init__(self) -> None:
        if not self.uploaded_at:
            self.uploaded_at = utc_now_iso()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["placeholders"] = [p.to_dict() for p in self.placeholders]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Template":
        values = dict(data)
        values["placeholders"] = [Placeholder.from_dict(p) for p in data.get("placeholders", [])]
        return cls(**values)


@dataclass
class GeneratedPdf:
    """A PDF produced from a template and a snapshot of the form values used."""

    template_id: str
    name: str
    form_data: Dict[str, Any] = field(default_factory=dict)
    pdf_content: Optional[str] = None
    pdf_url: Optional[str] = None
    user_id: Optional[str] = None
    id: Optional[str] = None
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utc_now_iso()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GeneratedPdf":
        return cls(**data)


@dataclass
class DashboardStats:
    total_templates: int
    total_generated_pdfs: int
    recent_activity: Optional[str] = None
    most_used_template: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
