from fastapi import APIRouter, Depends, status

from app.api.deps import get_current_user_id, get_runtime
from app.domains.runtime import Runtime
from app.domains.social.schemas import VotePut
from app.domains.social.services import VoteService

router = APIRouter(tags=["votes"])


@router.put("/votes/{vote_id}", status_code=status.HTTP_204_NO_CONTENT)
async def put_vote(
    vote_id: str,
    data: VotePut,
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    """Голос за комментарий, id голоса: commentId_userId"""
    await VoteService(runtime.store).put_vote(vote_id, user_id, data)


@router.delete("/votes/{vote_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_vote(
    vote_id: str,
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    await VoteService(runtime.store).delete_vote(vote_id, user_id)
