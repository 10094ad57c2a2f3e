from fastapi import APIRouter, Depends, status

from app.api.deps import get_current_user_id, get_runtime
from app.domains.runtime import Runtime
from app.domains.social.schemas import CheerPut
from app.domains.social.services import CheerService

router = APIRouter(tags=["cheers"])


@router.put("/cheers/{cheer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def put_cheer(
    cheer_id: str,
    data: CheerPut,
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    """Поддержка идеи, id: ideaId_userId"""
    await CheerService(runtime.store).put_cheer(cheer_id, user_id, data)


@router.get("/cheers/{cheer_id}")
async def get_cheer(
    cheer_id: str,
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    return await CheerService(runtime.store).get_cheer(cheer_id)


@router.delete("/cheers/{cheer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_cheer(
    cheer_id: str,
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    await CheerService(runtime.store).delete_cheer(cheer_id, user_id)
