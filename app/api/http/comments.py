from fastapi import APIRouter, Depends, Query, status
from typing import Optional

from app.api.deps import get_current_user_id, get_runtime
from app.domains.runtime import Runtime
from app.domains.social.schemas import CommentCreate, InsertedResponse
from app.domains.social.services import CommentService

router = APIRouter(prefix="/comments", tags=["comments"])


@router.get("")
async def list_comments(
    ideaId: Optional[str] = Query(None),
    authorId: Optional[str] = Query(None),
    order: str = Query("date", pattern="^(date|rating)$"),
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    """Комментарии с автором и голосом текущего пользователя"""
    service = CommentService(runtime.store, runtime.reviver)
    return await service.list_comments(user_id, ideaId, authorId, order)


@router.get("/{comment_id}")
async def get_comment(
    comment_id: str,
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    return await CommentService(runtime.store, runtime.reviver).get_comment(comment_id, user_id)


@router.post("", response_model=InsertedResponse, status_code=status.HTTP_201_CREATED)
async def create_comment(
    data: CommentCreate,
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    """Создание комментария"""
    inserted_id = await CommentService(runtime.store, runtime.reviver).create_comment(user_id, data)
    return InsertedResponse(insertedId=inserted_id)


@router.delete("/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    comment_id: str,
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    """Удаление комментария, голоса удаляет триггер"""
    await CommentService(runtime.store, runtime.reviver).delete_comment(comment_id, user_id)
