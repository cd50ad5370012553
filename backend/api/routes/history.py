import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from api.cookies import clear_current_session_cookie, set_current_session_cookie
from api.dependencies import get_history_service, require_user
from db.database import get_db
from schemas.history import (
    Pagination,
    TextRevisionCreate,
    TextRevisionResponse,
    TextRevisionUpdate,
    TextSessionCreate,
    TextSessionResponse,
    TextSessionUpdate,
    dump,
)
from services.auth import UserIdentity
from services.errors import ValidationError
from services.history import HistoryService, page_count

router = APIRouter(prefix="/history", tags=["history"])
logger = logging.getLogger(__name__)


def _session_json(session) -> dict:
    return dump(TextSessionResponse.model_validate(session))


def _revision_json(revision) -> dict:
    return dump(TextRevisionResponse.model_validate(revision))


@router.post("/sessions")
async def create_session(
    data: TextSessionCreate,
    response: Response,
    user: UserIdentity = Depends(require_user),
    history: HistoryService = Depends(get_history_service),
    db: AsyncSession = Depends(get_db),
):
    """Persist a new text session and make it the caller's current one."""
    if not data.original_text or not data.prompt or not data.language:
        raise ValidationError("Missing required fields: originalText, prompt, or language")

    session = await history.create_session(
        user_id=user.id,
        original_text=data.original_text,
        prompt=data.prompt,
        language=data.language,
        final_text=data.final_text,
        temperature=data.temperature,
        title=data.title,
    )
    await db.commit()

    set_current_session_cookie(response, session.id)
    return _session_json(session)


@router.get("/sessions")
async def list_sessions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=200),
    language: Optional[str] = Query(None, max_length=10),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    user: UserIdentity = Depends(require_user),
    history: HistoryService = Depends(get_history_service),
):
    """Caller's sessions, newest first, each with its revisions."""
    sessions, total = await history.list_sessions(
        user_id=user.id,
        page=page,
        limit=limit,
        search=search,
        language=language,
        date_from=date_from,
        date_to=date_to,
    )
    return {
        "sessions": [_session_json(session) for session in sessions],
        "pagination": Pagination(
            page=page, limit=limit, total=total, pages=page_count(total, limit)
        ).model_dump(),
    }


@router.post("/sessions/deactivate")
async def deactivate_sessions(
    response: Response,
    user: UserIdentity = Depends(require_user),
    history: HistoryService = Depends(get_history_service),
    db: AsyncSession = Depends(get_db),
):
    count = await history.deactivate_all(user.id)
    await db.commit()

    clear_current_session_cookie(response)
    return {"success": True, "deactivatedCount": count}


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: str,
    user: UserIdentity = Depends(require_user),
    history: HistoryService = Depends(get_history_service),
):
    session = await history.get_owned_session(session_id, user.id)
    return {"success": True, "session": _session_json(session)}


@router.patch("/sessions/{session_id}")
async def update_session(
    session_id: str,
    data: TextSessionUpdate,
    user: UserIdentity = Depends(require_user),
    history: HistoryService = Depends(get_history_service),
    db: AsyncSession = Depends(get_db),
):
    if not data.title:
        raise ValidationError("Title is required")

    session = await history.update_title(session_id, user.id, data.title)
    await db.commit()
    return {"success": True, "session": _session_json(session)}


@router.delete("/sessions/{session_id}")
async def delete_session(
    session_id: str,
    user: UserIdentity = Depends(require_user),
    history: HistoryService = Depends(get_history_service),
    db: AsyncSession = Depends(get_db),
):
    await history.delete_session(session_id, user.id)
    await db.commit()
    return {"success": True}


@router.post("/sessions/{session_id}/revisions")
async def add_revision(
    session_id: str,
    data: TextRevisionCreate,
    user: UserIdentity = Depends(require_user),
    history: HistoryService = Depends(get_history_service),
    db: AsyncSession = Depends(get_db),
):
    """Append a revision; its transformed text becomes the session's final text."""
    if (
        not data.selected_text
        or not data.transformed_text
        or not data.transform_prompt
        or data.start_position is None
        or data.end_position is None
    ):
        raise ValidationError(
            "Missing required fields: selectedText, transformedText, transformPrompt, "
            "startPosition, or endPosition"
        )

    revision = await history.add_revision(
        session_id=session_id,
        user_id=user.id,
        selected_text=data.selected_text,
        transformed_text=data.transformed_text,
        transform_prompt=data.transform_prompt,
        start_position=data.start_position,
        end_position=data.end_position,
        preset=data.preset,
    )
    await db.commit()
    return _revision_json(revision)


@router.get("/sessions/{session_id}/revisions")
async def list_revisions(
    session_id: str,
    user: UserIdentity = Depends(require_user),
    history: HistoryService = Depends(get_history_service),
):
    revisions = await history.list_revisions(session_id, user.id)
    return {"revisions": [_revision_json(revision) for revision in revisions]}


@router.get("/sessions/{session_id}/revisions/{revision_id}")
async def get_revision(
    session_id: str,
    revision_id: str,
    user: UserIdentity = Depends(require_user),
    history: HistoryService = Depends(get_history_service),
):
    revision = await history.get_revision(session_id, revision_id, user.id)
    return {"success": True, "revision": _revision_json(revision)}


@router.patch("/sessions/{session_id}/revisions/{revision_id}")
async def update_revision(
    session_id: str,
    revision_id: str,
    data: TextRevisionUpdate,
    user: UserIdentity = Depends(require_user),
    history: HistoryService = Depends(get_history_service),
    db: AsyncSession = Depends(get_db),
):
    revision = await history.update_revision(
        session_id,
        revision_id,
        user.id,
        transform_prompt=data.transform_prompt,
        preset=data.preset,
    )
    await db.commit()
    return {"success": True, "revision": _revision_json(revision)}


@router.delete("/sessions/{session_id}/revisions/{revision_id}")
async def delete_revision(
    session_id: str,
    revision_id: str,
    user: UserIdentity = Depends(require_user),
    history: HistoryService = Depends(get_history_service),
    db: AsyncSession = Depends(get_db),
):
    await history.delete_revision(session_id, revision_id, user.id)
    await db.commit()
    return {"success": True}
