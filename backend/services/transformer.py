"""
Text transformation engine.

The bundled engine is a deterministic mock: it picks a rewrite from keywords
in the instruction, and marks the output as translated when the requested
target language differs from the detected one. It is constructed explicitly
and handed to routes through ``api.dependencies.get_transformer`` so tests
can swap it out.
"""

import asyncio
import logging
import math
import re
import time
from dataclasses import asdict, dataclass
from typing import Callable, List, Optional

from config import get_settings
from services.errors import ValidationError
from services.presets import get_preset

logger = logging.getLogger(__name__)

MOCK_MODEL_NAME = "mock-model-v1"
AUTO_LANGUAGE = "auto"


@dataclass(frozen=True)
class Language:
    code: str
    name: str
    native_name: str


SUPPORTED_LANGUAGES: List[Language] = [
    Language(code="auto", name="Auto-detect", native_name="Auto-detect"),
    Language(code="en", name="English", native_name="English"),
    Language(code="ru", name="Russian", native_name="Русский"),
    Language(code="uk", name="Ukrainian", native_name="Українська"),
    Language(code="de", name="German", native_name="Deutsch"),
    Language(code="zh", name="Chinese", native_name="中文"),
    Language(code="ja", name="Japanese", native_name="日本語"),
    Language(code="fr", name="French", native_name="Français"),
]

_LANGUAGES_BY_CODE = {language.code: language for language in SUPPORTED_LANGUAGES}


@dataclass
class TransformationRequest:
    input_text: str
    transformation_instruction: str
    model_preference: str = "default"
    max_tokens: int = 1000
    temperature: float = 0.7
    target_language: str = AUTO_LANGUAGE


@dataclass
class TransformationResponse:
    success: bool
    transformed_text: str
    model_used: str
    processing_time: int
    token_count: int
    detected_language: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass
class SelectionTransformRequest:
    selected_text: str
    full_text: str
    transformation_preset: str
    temperature: float = 0.7
    target_language: str = AUTO_LANGUAGE


@dataclass
class SelectionTransformResponse:
    success: bool
    transformed_selection: str
    model_used: str
    processing_time: int
    token_count: int
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {key: value for key, value in asdict(self).items() if value is not None}


# Character classes used by detect_language
_CYRILLIC = re.compile(r"[\u0400-\u04FF]")
_UKRAINIAN_ONLY = re.compile(r"[іїґєІЇҐЄ]")
_CJK_IDEOGRAPHS = re.compile(r"[\u4E00-\u9FFF]")
_KANA = re.compile(r"[\u3040-\u30FF\u3400-\u4DBF]")
_GERMAN = re.compile(r"[ÄäÖöÜüß]")
_FRENCH = re.compile(r"[àâçéêëîïôûüœ]")

_SENTENCE_SPLIT = re.compile(r"[.!?]+")

_PROFESSIONAL_SUBSTITUTIONS = [
    (re.compile(r"\bhi\b", re.IGNORECASE), "Hello"),
    (re.compile(r"\bhey\b", re.IGNORECASE), "Hello"),
    (re.compile(r"\bthanks\b", re.IGNORECASE), "Thank you"),
    (re.compile(r"\bokay\b", re.IGNORECASE), "Understood"),
    (re.compile(r"\bok\b", re.IGNORECASE), "Understood"),
    (re.compile(r"\byeah\b", re.IGNORECASE), "Yes"),
    (re.compile(r"\bnope\b", re.IGNORECASE), "No"),
    (re.compile(r"\bcan't\b", re.IGNORECASE), "cannot"),
    (re.compile(r"\bwon't\b", re.IGNORECASE), "will not"),
    (re.compile(r"\bdon't\b", re.IGNORECASE), "do not"),
]

_CASUAL_SUBSTITUTIONS = [
    (re.compile(r"\bHello\b", re.IGNORECASE), "Hey"),
    (re.compile(r"\bThank you\b", re.IGNORECASE), "Thanks"),
    (re.compile(r"\bUnderstood\b", re.IGNORECASE), "Got it"),
    (re.compile(r"\bcannot\b", re.IGNORECASE), "can't"),
    (re.compile(r"\bwill not\b", re.IGNORECASE), "won't"),
    (re.compile(r"\bdo not\b", re.IGNORECASE), "don't"),
]

# Whitespace and punctuation cleanup applied to Cyrillic text
_CYRILLIC_CLEANUP = [
    (re.compile(r"\s+"), " "),
    (re.compile(r"\s*:\s*"), ": "),
    (re.compile(r"\s*;\s*"), "; "),
    (re.compile(r"\s*,\s*"), ", "),
    (re.compile(r"\s*\.\s*"), ". "),
    (re.compile(r"(\w)\s*-\s*(\w)"), r"\1-\2"),
    (re.compile(r"\s+([.,:;!?])"), r"\1"),
]

EXPANSION_SUFFIX = (
    "This point is particularly important because it provides valuable context "
    "and helps readers understand the underlying concepts more thoroughly."
)


def supported_language_codes() -> List[str]:
    return [language.code for language in SUPPORTED_LANGUAGES]


def is_supported_language(code: str) -> bool:
    return code in _LANGUAGES_BY_CODE


def detect_language(text: str) -> str:
    """Best-effort language guess from the character classes present."""
    if _CYRILLIC.search(text):
        if _UKRAINIAN_ONLY.search(text):
            return "uk"
        return "ru"
    if _CJK_IDEOGRAPHS.search(text):
        return "zh"
    if _KANA.search(text):
        return "ja"
    if _GERMAN.search(text):
        return "de"
    if _FRENCH.search(text):
        return "fr"
    return "en"


def estimate_token_count(text: str) -> int:
    # ~4 characters per token
    return math.ceil(len(text) / 4)


def _sentences(text: str) -> List[str]:
    return [part.strip() for part in _SENTENCE_SPLIT.split(text) if part.strip()]


def _apply(substitutions, text: str) -> str:
    for pattern, replacement in substitutions:
        text = pattern.sub(replacement, text)
    return text


def make_professional(text: str, detected_language: str) -> str:
    if detected_language in ("ru", "uk"):
        return _apply(_CYRILLIC_CLEANUP, text).strip()
    return _apply(_PROFESSIONAL_SUBSTITUTIONS, text)


def make_casual(text: str) -> str:
    return _apply(_CASUAL_SUBSTITUTIONS, text) + "\n\nCheers!"


def make_bullet_points(text: str) -> str:
    return "\n".join(f"• {sentence}" for sentence in _sentences(text))


def make_summary(text: str) -> str:
    sentences = _sentences(text)
    key_points = sentences[: max(1, len(sentences) // 3)]
    return "Summary:\n\n" + ". ".join(key_points) + "."


def expand_text(text: str) -> str:
    return " ".join(f"{sentence}. {EXPANSION_SUFFIX}" for sentence in _sentences(text))


def generic_transformation(text: str, instruction: str) -> str:
    return (
        f'Transformed text based on instruction: "{instruction}"\n\n{text}\n\n'
        "[Note: This is a mock transformation. In production, this would be "
        "processed by advanced AI models.]"
    )


def mock_translate(text: str, target_language: str) -> str:
    language = _LANGUAGES_BY_CODE.get(target_language)
    name = language.name if language else target_language
    return (
        f"[{name} translation] {text}\n\n(Note: This is a mock translation. "
        f"In production, this would be properly translated to {name})"
    )


def rewrite(text: str, instruction: str, detected_language: str) -> str:
    """Pick a rewrite by keywords in ``instruction``."""
    lowered = instruction.lower()
    if any(key in lowered for key in ("professional", "formal", "техническ", "технічн")):
        return make_professional(text, detected_language)
    if "casual" in lowered or "friendly" in lowered:
        return make_casual(text)
    if "bullet" in lowered or "list" in lowered:
        return make_bullet_points(text)
    if "summary" in lowered or "summarize" in lowered:
        return make_summary(text)
    if "expand" in lowered or "detail" in lowered:
        return expand_text(text)
    return generic_transformation(text, instruction)


class TextTransformer:
    """Mock transformation engine."""

    model_name = MOCK_MODEL_NAME

    def __init__(
        self,
        delay_seconds: Optional[float] = None,
        timer: Callable[[], float] = time.perf_counter,
    ):
        if delay_seconds is None:
            delay_seconds = get_settings().MOCK_TRANSFORM_DELAY_SECONDS
        self.delay_seconds = delay_seconds
        self.timer = timer

    def supported_languages(self) -> List[Language]:
        return list(SUPPORTED_LANGUAGES)

    def _elapsed_ms(self, started: float) -> int:
        return int((self.timer() - started) * 1000)

    async def _render(self, text: str, instruction: str, target_language: str):
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

        detected = detect_language(text)
        target = detected if not target_language or target_language == AUTO_LANGUAGE else target_language

        output = rewrite(text, instruction, detected)
        if target != detected:
            output = mock_translate(output, target)
        return output, detected

    async def transform(self, request: TransformationRequest) -> TransformationResponse:
        started = self.timer()
        try:
            output, detected = await self._render(
                request.input_text,
                request.transformation_instruction,
                request.target_language,
            )
        except Exception as e:
            logger.error(f"Transformation failed: {e}", exc_info=True)
            return TransformationResponse(
                success=False,
                transformed_text="",
                model_used=self.model_name,
                processing_time=self._elapsed_ms(started),
                token_count=0,
                error=str(e) or "Unknown error occurred",
            )

        return TransformationResponse(
            success=True,
            transformed_text=output,
            model_used=self.model_name,
            processing_time=self._elapsed_ms(started),
            token_count=estimate_token_count(request.input_text + output),
            detected_language=detected,
        )

    async def transform_selection(
        self, request: SelectionTransformRequest
    ) -> SelectionTransformResponse:
        """
        Rewrite only the selected span using a preset's instruction.

        Raises:
            ValidationError: if the preset id is unknown.
        """
        preset = get_preset(request.transformation_preset)
        if preset is None:
            raise ValidationError(
                f"Unknown transformation preset: {request.transformation_preset}"
            )

        started = self.timer()
        output, _ = await self._render(
            request.selected_text,
            preset.instruction_template,
            request.target_language,
        )
        return SelectionTransformResponse(
            success=True,
            transformed_selection=output,
            model_used=self.model_name,
            processing_time=self._elapsed_ms(started),
            token_count=estimate_token_count(request.selected_text + output),
        )
