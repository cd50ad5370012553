from typing import List, Optional

from pydantic import BaseModel, Field

MAX_INPUT_CHARS = 10000
MAX_INSTRUCTION_CHARS = 500
DEFAULT_MAX_TOKENS = 1000
MAX_TOKENS_CAP = 2000
DEFAULT_TEMPERATURE = 0.7


class TransformRequestBody(BaseModel):
    """
    Body of POST /api/transform.

    Length and presence checks live in the route so they can answer with
    their own messages.
    """

    input_text: Optional[str] = None
    transformation_instruction: Optional[str] = None
    model_preference: Optional[str] = Field(default=None, max_length=100)
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    target_language: Optional[str] = Field(default=None, max_length=10)


class SelectionTransformBody(BaseModel):
    selected_text: Optional[str] = None
    full_text: Optional[str] = None
    transformation_preset: Optional[str] = Field(default=None, max_length=50)
    temperature: Optional[float] = None
    target_language: Optional[str] = Field(default=None, max_length=10)


class LanguageResponse(BaseModel):
    code: str
    name: str
    native_name: str


class LanguagesResponse(BaseModel):
    success: bool = True
    languages: List[LanguageResponse]
    total: int


def clamp_max_tokens(value: Optional[int]) -> int:
    return min(value or DEFAULT_MAX_TOKENS, MAX_TOKENS_CAP)


def clamp_temperature(value: Optional[float]) -> float:
    # 0 and missing both fall back to the default
    return max(0.0, min(value or DEFAULT_TEMPERATURE, 1.0))
