"""
Generation settings stored on each job.

The payload is validated once at enqueue time and serialized to JSON in
``jobs.payload_json``; the worker decodes it again when it claims the job.
"""

import json
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError

ASPECT_RATIOS = ("1:1", "2:3", "3:2", "3:4", "4:3", "4:5", "5:4", "9:16", "16:9", "21:9")

DEFAULT_MODEL = "both"
DEFAULT_OUTPUT_FORMAT = "png"
DEFAULT_IMAGE_SIZE = "1K"


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class GenerationSettings(BaseModel):
    """Settings for one generation request."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    model: Literal["google", "openai", "both"] = DEFAULT_MODEL
    count: int = Field(default=1, ge=1)
    output_format: Literal["png", "jpg", "webp", "ico"] = DEFAULT_OUTPUT_FORMAT
    image_size: Literal["1K", "2K", "4K"] = DEFAULT_IMAGE_SIZE
    aspect_ratio: Optional[str] = None
    adjustment: str = ""

    @field_validator("model", mode="before")
    @classmethod
    def normalize_model(cls, v):
        v = _blank_to_none(v)
        return DEFAULT_MODEL if v is None else str(v).lower()

    @field_validator("count", mode="before")
    @classmethod
    def default_count(cls, v):
        v = _blank_to_none(v)
        return 1 if v is None else v

    @field_validator("output_format", mode="before")
    @classmethod
    def normalize_output_format(cls, v):
        v = _blank_to_none(v)
        if v is None:
            return DEFAULT_OUTPUT_FORMAT
        v = str(v).lower().lstrip(".")
        return "jpg" if v == "jpeg" else v

    @field_validator("image_size", mode="before")
    @classmethod
    def normalize_image_size(cls, v):
        v = _blank_to_none(v)
        return DEFAULT_IMAGE_SIZE if v is None else str(v).upper()

    @field_validator("aspect_ratio", mode="before")
    @classmethod
    def check_aspect_ratio(cls, v):
        v = _blank_to_none(v)
        if v is not None and v not in ASPECT_RATIOS:
            raise ValueError(f"aspect ratio must be one of: {', '.join(ASPECT_RATIOS)}")
        return v

    @field_validator("adjustment", mode="before")
    @classmethod
    def strip_adjustment(cls, v):
        return (v or "").strip() if isinstance(v, str) or v is None else v

    @classmethod
    def from_input(cls, data: "GenerationSettings | Dict[str, Any] | None") -> "GenerationSettings":
        """
        Build settings from caller input, converting pydantic errors into
        the store's ValidationError.
        """
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(data or {})
        except PydanticValidationError as e:
            raise ValidationError(_describe(e)) from e

    @classmethod
    def from_payload(cls, payload_json: str) -> "GenerationSettings":
        """Decode the JSON stored in ``jobs.payload_json``."""
        try:
            return cls.model_validate_json(payload_json)
        except PydanticValidationError as e:
            raise ValidationError(f"stored job payload is invalid: {_describe(e)}") from e

    def to_payload(self) -> str:
        return json.dumps(self.model_dump(), sort_keys=True)


def _describe(error: PydanticValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ())) or "settings"
        parts.append(f"{location}: {item.get('msg')}")
    return "; ".join(parts)


def build_prompt_snapshot(prompt: str, adjustment: str = "") -> str:
    """Merge the work item's prompt with optional adjustment text."""
    snapshot = (prompt or "").strip()
    adjustment = (adjustment or "").strip()
    if adjustment:
        snapshot = f"{snapshot}\n\nAdjustments:\n{adjustment}"
    return snapshot
