from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from schemas.validators import ensure_utf8_encodable, normalize_optional_text


class CamelModel(BaseModel):
    """JSON bodies use camelCase keys (``originalText``, ``revisionNumber``...)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class TextRevisionResponse(CamelModel):
    id: str
    session_id: str
    revision_number: int
    selected_text: str
    transformed_text: str
    transform_prompt: str
    start_position: int
    end_position: int
    preset: Optional[str] = None
    created_at: Optional[datetime] = None


class TextSessionResponse(CamelModel):
    id: str
    user_id: str
    title: Optional[str] = None
    original_text: str
    final_text: Optional[str] = None
    prompt: str
    language: str
    temperature: float
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    revisions: List[TextRevisionResponse] = []


class TextSessionCreate(CamelModel):
    """
    Create request.

    ``originalText``, ``prompt`` and ``language`` are required, but missing
    values are reported by the route with a single 400 message.
    """

    original_text: Optional[str] = None
    final_text: Optional[str] = None
    prompt: Optional[str] = None
    language: Optional[str] = Field(default=None, max_length=10)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    title: Optional[str] = Field(default=None, max_length=200)

    @field_validator("original_text", "final_text", "prompt", mode="before")
    @classmethod
    def validate_text(cls, value):
        return ensure_utf8_encodable(value)

    @field_validator("language", "title", mode="before")
    @classmethod
    def normalize_short_text(cls, value):
        return normalize_optional_text(value, strip_invisible=True)


class TextSessionUpdate(CamelModel):
    title: Optional[str] = Field(default=None, max_length=200)

    @field_validator("title", mode="before")
    @classmethod
    def normalize_title(cls, value):
        return normalize_optional_text(value, strip_invisible=True)


class TextRevisionCreate(CamelModel):
    selected_text: Optional[str] = None
    transformed_text: Optional[str] = None
    transform_prompt: Optional[str] = None
    start_position: Optional[int] = Field(default=None, ge=0)
    end_position: Optional[int] = Field(default=None, ge=0)
    preset: Optional[str] = Field(default=None, max_length=50)

    @field_validator("selected_text", "transformed_text", "transform_prompt", mode="before")
    @classmethod
    def validate_text(cls, value):
        return ensure_utf8_encodable(value)


class TextRevisionUpdate(CamelModel):
    transform_prompt: Optional[str] = None
    preset: Optional[str] = Field(default=None, max_length=50)

    @field_validator("transform_prompt", "preset", mode="before")
    @classmethod
    def normalize_fields(cls, value):
        return normalize_optional_text(value)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


def dump(model: BaseModel) -> dict:
    """Serialize a response model with camelCase keys and ISO timestamps."""
    return model.model_dump(by_alias=True, mode="json")
