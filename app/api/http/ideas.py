from fastapi import APIRouter, Depends, Query, status
from typing import Optional

from app.api.deps import get_current_user_id, get_runtime
from app.domains.runtime import Runtime
from app.domains.social.schemas import IdeaCreate, IdeaUpdate, InsertedResponse
from app.domains.social.services import IdeaService

router = APIRouter(prefix="/ideas", tags=["ideas"])


def _service(runtime: Runtime) -> IdeaService:
    return IdeaService(runtime.store, runtime.reviver)


@router.get("")
async def list_ideas(
    goalId: Optional[str] = Query(None),
    authorId: Optional[str] = Query(None),
    regex: Optional[str] = Query(None),
    order: str = Query("date", pattern="^(date|supports)$"),
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    """Список идей с автором, целями и отметкой поддержки"""
    return await _service(runtime).list_ideas(user_id, goalId, authorId, regex, order)


@router.get("/{idea_id}")
async def get_idea(
    idea_id: str,
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    """Получение идеи"""
    return await _service(runtime).get_idea(idea_id, user_id)


@router.post("", response_model=InsertedResponse, status_code=status.HTTP_201_CREATED)
async def create_idea(
    data: IdeaCreate,
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    """Создание идеи"""
    inserted_id = await _service(runtime).create_idea(user_id, data)
    return InsertedResponse(insertedId=inserted_id)


@router.patch("/{idea_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_idea(
    idea_id: str,
    data: IdeaUpdate,
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    """Обновление идеи"""
    await _service(runtime).update_idea(idea_id, user_id, data)


@router.delete("/{idea_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_idea(
    idea_id: str,
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    """Удаление идеи"""
    await _service(runtime).delete_idea(idea_id, user_id)
