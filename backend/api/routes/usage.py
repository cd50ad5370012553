from fastapi import APIRouter, Depends

from api.dependencies import get_usage_service, require_user
from services.auth import UserIdentity
from services.usage import UsageService

router = APIRouter(prefix="/usage", tags=["usage"])


@router.get("/quota")
async def get_quota(
    user: UserIdentity = Depends(require_user),
    usage: UsageService = Depends(get_usage_service),
):
    """Generations used in the last 24 hours against the daily limit."""
    is_pro = await usage.stored_tier(user.id, fallback=user.is_pro)
    status = await usage.quota(user.id, is_pro)
    return status.to_dict()
