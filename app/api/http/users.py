from fastapi import APIRouter, Depends, Query, status
from typing import Optional

from app.api.deps import get_current_user_id, get_runtime
from app.domains.runtime import Runtime
from app.domains.social.schemas import UserPut
from app.domains.social.services import GoalService, UserService

router = APIRouter(tags=["users"])


@router.get("/users")
async def list_users(
    regex: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    """Поиск пользователей по имени"""
    return await UserService(runtime.store).list_users(regex)


@router.get("/users/{target_id}")
async def get_user(
    target_id: str,
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    """Профиль пользователя"""
    return await UserService(runtime.store).get_user(target_id)


@router.put("/users/{target_id}", status_code=status.HTTP_204_NO_CONTENT)
async def put_user(
    target_id: str,
    data: UserPut,
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    """Создание или замена собственного профиля"""
    await UserService(runtime.store).put_user(target_id, user_id, data)


@router.get("/goals")
async def list_goals(
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    """Список целей"""
    return await GoalService(runtime.store).list_goals()


@router.get("/goals/{goal_id}")
async def get_goal(
    goal_id: str,
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    return await GoalService(runtime.store).get_goal(goal_id)
