from app.domains.social.schemas import (
    UserPut, ExternalLink, IdeaCreate, IdeaUpdate, CommentCreate, VotePut, CheerPut,
    DiscussionCreate, InsertedResponse, UploadResponse
)
from app.domains.social.services import (
    UserService, GoalService, IdeaService, CommentService, VoteService, CheerService,
    DiscussionService, NotificationService, DELETE_SENTINEL, TOMBSTONE
)

__all__ = [
    "UserPut", "ExternalLink", "IdeaCreate", "IdeaUpdate", "CommentCreate", "VotePut",
    "CheerPut", "DiscussionCreate", "InsertedResponse", "UploadResponse",
    "UserService", "GoalService", "IdeaService", "CommentService", "VoteService",
    "CheerService", "DiscussionService", "NotificationService",
    "DELETE_SENTINEL", "TOMBSTONE",
]
