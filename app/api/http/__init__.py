from app.api.http.health import router as health_router
from app.api.http.users import router as users_router
from app.api.http.ideas import router as ideas_router
from app.api.http.comments import router as comments_router
from app.api.http.votes import router as votes_router
from app.api.http.cheers import router as cheers_router
from app.api.http.discussions import router as discussions_router
from app.api.http.uploads import router as uploads_router

__all__ = [
    "health_router",
    "users_router",
    "ideas_router",
    "comments_router",
    "votes_router",
    "cheers_router",
    "discussions_router",
    "uploads_router",
]
