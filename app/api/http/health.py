from fastapi import APIRouter, Depends

from app.api.deps import get_runtime
from app.domains.runtime import Runtime

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(runtime: Runtime = Depends(get_runtime)):
    """Проверка состояния сервиса"""
    return {
        "status": "healthy",
        "watchedCollections": runtime.router.watched_collections(),
        "chatRooms": len(runtime.rooms.rooms),
    }
