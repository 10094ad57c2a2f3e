from fastapi import APIRouter

from app.api.http import (
    health_router, users_router, ideas_router, comments_router, votes_router,
    cheers_router, discussions_router, uploads_router
)
from app.api.ws.chat import router as chat_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(users_router)
api_router.include_router(ideas_router)
api_router.include_router(comments_router)
api_router.include_router(votes_router)
api_router.include_router(cheers_router)
api_router.include_router(discussions_router)
api_router.include_router(uploads_router)
api_router.include_router(chat_router)
