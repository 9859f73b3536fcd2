"""
Boundary validation of submitted form values.

Each value is wrapped in a tagged model keyed by the placeholder type it fills,
so malformed input is rejected with per-field messages before it reaches the
substitution and rendering code.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, Iterable, Literal, Mapping, Optional, Union

from pydantic import (
    BaseModel,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from .exceptions import FormValidationError
from .models import Placeholder, PlaceholderType
from .placeholders import infer_placeholder_type

ScalarValue = Optional[Union[StrictBool, StrictInt, StrictFloat, StrictStr]]


class TextValue(BaseModel):
    kind: Literal["text"] = "text"
    value: ScalarValue = None


class NumberValue(BaseModel):
    # Kept as submitted: names like `invoice_id` are classed as numbers but hold free text.
    kind: Literal["number"] = "number"
    value: ScalarValue = None


class DateValue(BaseModel):
    kind: Literal["date"] = "date"
    value: ScalarValue = None


class ImageValue(BaseModel):
    kind: Literal["image"] = "image"
    value: Optional[StrictStr] = None

    @field_validator("value")
    @classmethod
    def _must_be_image_data_uri(cls, value: Optional[str]) -> Optional[str]:
        if value and not value.startswith("data:image"):
            raise ValueError("must be a data:image/...;base64 URI")
        return value


FormValue = Annotated[
    Union[TextValue, NumberValue, DateValue, ImageValue],
    Field(discriminator="kind"),
]

_form_value_adapter = TypeAdapter(FormValue)


def _describe(exc: ValidationError) -> str:
    messages = []
    for error in exc.errors():
        msg = error.get("msg", "invalid value")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        messages.append(msg)
    return "; ".join(dict.fromkeys(messages)) or "invalid value"


def validate_form_data(
    placeholders: Iterable[Placeholder],
    form_data: Mapping[str, Any],
) -> Dict[str, FormValue]:
    """
    Validate every submitted value against its placeholder type.

    Keys that are not declared placeholders of the template are typed from
    their name, the same way extraction would have typed them.

    Raises:
        FormValidationError: with a `{field: message}` mapping of every failure.
    """
    declared = {p.name: p.type for p in placeholders}
    validated: Dict[str, FormValue] = {}
    errors: Dict[str, str] = {}

    for name, raw in (form_data or {}).items():
        kind: PlaceholderType = declared.get(name) or infer_placeholder_type(name)
        if isinstance(raw, (list, dict)):
            errors[name] = "must be a single value"
            continue
        try:
            validated[name] = _form_value_adapter.validate_python({"kind": kind.value, "value": raw})
        except ValidationError as exc:
            errors[name] = _describe(exc)

    if errors:
        raise FormValidationError(errors)
    return validated


def to_raw_values(validated: Mapping[str, FormValue]) -> Dict[str, Any]:
    return {name: item.value for name, item in validated.items()}
