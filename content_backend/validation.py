"""
Form validation driven by the entity schema descriptors.

Each content type gets two pydantic models built on the fly: one for
create requests (required text enforced) and one for partial updates.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Annotated, Any, Callable, Mapping, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, StringConstraints, create_model
from pydantic import ValidationError as PydanticValidationError

from content_backend.entities import EntitySchema, NumberField
from content_backend.errors import ValidationError
from content_backend.repository import format_timestamp

RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
OptionalText = Annotated[str, StringConstraints(strip_whitespace=True)]

MISSING_ERROR_TYPES = {"missing", "string_too_short"}


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def number_coercer(spec: NumberField) -> Callable[[Any], float | int]:
    """Coerce to a number, falling back to the default and clamping to range."""

    def coerce(value: Any) -> float | int:
        try:
            number = float(str(value).strip())
        except (TypeError, ValueError):
            number = spec.default
        if math.isnan(number) or math.isinf(number):
            number = spec.default
        number = min(max(number, spec.minimum), spec.maximum)
        return int(round(number)) if spec.integer else number

    return coerce


class _FormModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


def _build_models(schema: EntitySchema) -> tuple[type[BaseModel], type[BaseModel]]:
    create_fields: dict[str, Any] = {}
    update_fields: dict[str, Any] = {}

    for text_field in schema.text_fields:
        if text_field.required:
            create_fields[text_field.name] = (RequiredText, ...)
            update_fields[text_field.name] = (
                Annotated[Optional[RequiredText], BeforeValidator(_blank_to_none)],
                None,
            )
        else:
            create_fields[text_field.name] = (OptionalText, "")
            update_fields[text_field.name] = (Optional[OptionalText], None)

    for number_field in schema.number_fields:
        number_type = int if number_field.integer else float
        coerced = Annotated[number_type, BeforeValidator(number_coercer(number_field))]
        default = number_coercer(number_field)(number_field.default)
        create_fields[number_field.name] = (coerced, default)
        update_fields[number_field.name] = (Optional[coerced], None)

    for date_field in schema.date_fields:
        optional_date = Annotated[Optional[datetime], BeforeValidator(_blank_to_none)]
        create_fields[date_field.name] = (optional_date, None)
        update_fields[date_field.name] = (optional_date, None)

    create = create_model(f"{schema.name}CreateForm", __base__=_FormModel, **create_fields)
    update = create_model(f"{schema.name}UpdateForm", __base__=_FormModel, **update_fields)
    return create, update


class RequestValidator:
    """Checks form fields for one content type before any store or database call."""

    def __init__(self, schema: EntitySchema):
        self.schema = schema
        self._create_model, self._update_model = _build_models(schema)
        self._required = set(schema.required_text)

    def _parse(self, model: type[BaseModel], form: Mapping[str, Any]) -> BaseModel:
        try:
            return model.model_validate(dict(form))
        except PydanticValidationError as exc:
            raise self._translate(exc) from None

    def _translate(self, exc: PydanticValidationError) -> ValidationError:
        missing: list[str] = []
        invalid: list[str] = []
        for error in exc.errors():
            name = str(error["loc"][0]) if error.get("loc") else "form"
            if error["type"] in MISSING_ERROR_TYPES and name in self._required:
                missing.append(name)
            else:
                invalid.append(name)
        if missing:
            return ValidationError.missing(missing)
        return ValidationError(
            f"Invalid value for {', '.join(invalid)}",
            fields=invalid,
            details=exc.errors()[0].get("msg"),
        )

    def _dates_to_text(self, values: dict) -> dict:
        for date_field in self.schema.date_fields:
            value = values.get(date_field.name)
            if isinstance(value, datetime):
                values[date_field.name] = format_timestamp(value)
        return values

    def validate_create(self, form: Mapping[str, Any]) -> dict:
        parsed = self._parse(self._create_model, form)
        values = parsed.model_dump()
        # Unset dates stay out of the document entirely.
        for date_field in self.schema.date_fields:
            if values.get(date_field.name) is None:
                values.pop(date_field.name, None)
        return self._dates_to_text(values)

    def validate_update(self, form: Mapping[str, Any]) -> dict:
        parsed = self._parse(self._update_model, form)
        values = parsed.model_dump(exclude_unset=True)
        for name in self._required:
            if values.get(name) is None:
                values.pop(name, None)
        for number_field in self.schema.number_fields:
            if values.get(number_field.name) is None:
                values.pop(number_field.name, None)
        return self._dates_to_text(values)
