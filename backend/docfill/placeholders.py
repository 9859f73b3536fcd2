"""
Placeholder detection and substitution.

Templates mark fillable spots with `{name}` tokens. This module finds them in
the raw document text, guesses a field type from the name and replaces them
with submitted values. Image-like names are not substituted literally: they
become `[IMAGE:name]` markers that the renderer resolves against the raw form
values.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping

from .models import Placeholder, PlaceholderType

PLACEHOLDER_RE = re.compile(r"\{([^}]+)\}")
IMAGE_MARKER_RE = re.compile(r"\[IMAGE:([^\]]+)\]")

# Checked in order; first hit wins.
_TYPE_KEYWORDS = (
    (PlaceholderType.IMAGE, ("logo", "image", "photo")),
    (PlaceholderType.DATE, ("date", "time")),
    (PlaceholderType.NUMBER, ("id", "number", "amount", "count", "qty", "quantity")),
)


def infer_placeholder_type(name: str) -> PlaceholderType:
    lower_name = name.lower()
    for placeholder_type, keywords in _TYPE_KEYWORDS:
        if any(keyword in lower_name for keyword in keywords):
            return placeholder_type
    return PlaceholderType.TEXT


def is_image_name(name: str) -> bool:
    return infer_placeholder_type(name) is PlaceholderType.IMAGE


def format_label(name: str) -> str:
    """Turn `account_name` / `due-date` into `Account Name` / `Due Date`."""
    spaced = re.sub(r"[_-]", " ", name)
    return re.sub(r"(^|\s)(\S)", lambda m: m.group(1) + m.group(2).upper(), spaced)


def image_marker(name: str) -> str:
    return f"[IMAGE:{name}]"


def extract_placeholders(text: str) -> List[Placeholder]:
    """
    Collect the distinct placeholders of a document in order of first appearance.

    Names are trimmed and compared case-sensitively; blank names (`{  }`) are
    ignored.
    """
    placeholders: List[Placeholder] = []
    seen = set()
    for match in PLACEHOLDER_RE.finditer(text or ""):
        name = match.group(1).strip()
        if not name or name in seen:
            continue
        seen.add(name)
        placeholders.append(
            Placeholder(
                name=name,
                type=infer_placeholder_type(name),
                label=format_label(name),
                required=True,
            )
        )
    return placeholders


def _replacement_for(key: str, value: Any) -> str:
    if is_image_name(key):
        return image_marker(key)
    # Source truthiness: 0 and False fall back to the bracketed name as well.
    if value:
        return str(value)
    return f"[{key}]"


def substitute_placeholders(text: str, values: Mapping[str, Any]) -> str:
    """
    Replace `{key}` tokens for every key in `values`.

    Filled values are inserted as text, empty ones as `[key]`, image-like keys
    as `[IMAGE:key]`. Tokens whose name is not in `values` are left untouched.
    All keys are replaced in a single pass, so replacement text is never
    substituted again.
    """
    if not values:
        return text

    replacements: Dict[str, str] = {
        "{" + key + "}": _replacement_for(key, value) for key, value in values.items()
    }
    # Longest first so the alternation never stops at a shorter token.
    tokens = sorted(replacements, key=len, reverse=True)
    pattern = re.compile("|".join(re.escape(token) for token in tokens))
    return pattern.sub(lambda m: replacements[m.group(0)], text)


def find_image_markers(paragraph: str) -> List[str]:
    return IMAGE_MARKER_RE.findall(paragraph)


def strip_image_markers(paragraph: str) -> str:
    return IMAGE_MARKER_RE.sub("", paragraph)
