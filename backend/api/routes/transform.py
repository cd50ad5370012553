import logging
from typing import Optional
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import (
    get_history_service,
    get_transformer,
    get_usage_service,
    require_user,
)
from db.database import get_db
from schemas.transform import (
    MAX_INPUT_CHARS,
    MAX_INSTRUCTION_CHARS,
    LanguagesResponse,
    SelectionTransformBody,
    TransformRequestBody,
    clamp_max_tokens,
    clamp_temperature,
)
from schemas.validators import strip_unsafe_markup
from services.auth import UserIdentity
from services.errors import ForbiddenError, InternalError, ValidationError
from services.history import HistoryService
from services.presets import TRANSFORMATION_PRESETS, preset_categories
from services.transformer import (
    AUTO_LANGUAGE,
    SelectionTransformRequest,
    TextTransformer,
    TransformationRequest,
    is_supported_language,
    supported_language_codes,
)
from services.usage import UsageService

router = APIRouter(tags=["transform"])
logger = logging.getLogger(__name__)

CURRENT_SESSION_HEADER = "X-Current-Session-Id"


def verify_same_origin(request: Request) -> None:
    """
    Reject cross-site form posts: the Referer host must equal the Host header.

    Raises:
        ForbiddenError: when either header is missing or the hosts differ.
    """
    referer = request.headers.get("referer")
    host = request.headers.get("host")
    if not referer or not host:
        raise ForbiddenError("CSRF validation failed")
    try:
        referer_host = urlparse(referer).netloc
    except ValueError:
        raise ForbiddenError("CSRF validation failed")
    if referer_host != host:
        logger.warning(f"CSRF check failed: referer host {referer_host!r} != {host!r}")
        raise ForbiddenError("CSRF validation failed")


def _validate_target_language(code: Optional[str]) -> str:
    if code and code != AUTO_LANGUAGE and not is_supported_language(code):
        raise ValidationError(
            f"Unsupported target language: {code}. "
            f"Supported languages: {', '.join(supported_language_codes())}"
        )
    return code or AUTO_LANGUAGE


@router.get("/transform")
async def describe_transform_api():
    return {
        "message": "TextMorph AI Transform API",
        "version": "1.0.0",
        "endpoints": {
            "POST": "/api/transform - Transform text with AI",
        },
    }


@router.post("/transform")
async def transform_text(
    body: TransformRequestBody,
    request: Request,
    user: UserIdentity = Depends(require_user),
    transformer: TextTransformer = Depends(get_transformer),
    usage: UsageService = Depends(get_usage_service),
    history: HistoryService = Depends(get_history_service),
    db: AsyncSession = Depends(get_db),
):
    """Rewrite ``input_text`` following ``transformation_instruction``."""
    verify_same_origin(request)

    if not body.input_text or not body.transformation_instruction:
        raise ValidationError(
            "Missing required fields: input_text and transformation_instruction"
        )
    if len(body.input_text) > MAX_INPUT_CHARS:
        raise ValidationError("Input text too long. Maximum 10,000 characters allowed.")
    if len(body.transformation_instruction) > MAX_INSTRUCTION_CHARS:
        raise ValidationError(
            "Transformation instruction too long. Maximum 500 characters allowed."
        )
    target_language = _validate_target_language(body.target_language)

    is_pro = await usage.stored_tier(user.id, fallback=user.is_pro)
    await usage.ensure_available(user.id, is_pro)

    result = await transformer.transform(
        TransformationRequest(
            input_text=strip_unsafe_markup(body.input_text),
            transformation_instruction=strip_unsafe_markup(body.transformation_instruction),
            model_preference=body.model_preference or "default",
            max_tokens=clamp_max_tokens(body.max_tokens),
            temperature=clamp_temperature(body.temperature),
            target_language=target_language,
        )
    )
    if not result.success:
        raise InternalError(result.error or "Transformation failed")

    text_session_id = await history.owned_session_id(
        request.headers.get(CURRENT_SESSION_HEADER), user.id
    )
    await usage.record(user.id, text_session_id=text_session_id)
    await db.commit()

    return result.to_dict()


@router.post("/transform/selection")
async def transform_selection(
    body: SelectionTransformBody,
    transformer: TextTransformer = Depends(get_transformer),
):
    """Rewrite only the selected span of a larger text with a preset."""
    if not body.selected_text or not body.full_text or not body.transformation_preset:
        raise ValidationError(
            "Missing required fields: selected_text, full_text, or transformation_preset"
        )
    target_language = _validate_target_language(body.target_language)

    result = await transformer.transform_selection(
        SelectionTransformRequest(
            selected_text=strip_unsafe_markup(body.selected_text),
            full_text=body.full_text,
            transformation_preset=body.transformation_preset,
            temperature=clamp_temperature(body.temperature),
            target_language=target_language,
        )
    )
    return result.to_dict()


@router.get("/presets")
async def list_presets():
    return {
        "success": True,
        "presets": [preset.to_dict() for preset in TRANSFORMATION_PRESETS],
        "total": len(TRANSFORMATION_PRESETS),
        "categories": preset_categories(),
    }


@router.get("/languages", response_model=LanguagesResponse)
async def list_languages(transformer: TextTransformer = Depends(get_transformer)):
    languages = transformer.supported_languages()
    return {
        "success": True,
        "languages": [
            {"code": lang.code, "name": lang.name, "native_name": lang.native_name}
            for lang in languages
        ],
        "total": len(languages),
    }
