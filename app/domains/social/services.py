import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from app.core.errors import NotFoundError, UnauthorizedError, ValidationError
from app.domains.documents.entities import (
    Document, Filter, Order, Patch, make_cheer_id, make_vote_id,
)
from app.domains.social.schemas import (
    CheerPut, CommentCreate, DiscussionCreate, IdeaCreate, IdeaUpdate, UserPut, VotePut,
)

logger = logging.getLogger(__name__)

# Префикс WebSocket-кадра, означающий удаление сообщения с указанным id
DELETE_SENTINEL = "__delete__"
TOMBSTONE = "This message was deleted."

_FRONTEND_IMG_SRC = re.compile(r'<img src=".*/([\w.\-]+)">')
_STORED_IMG_SRC = re.compile(r'<img src="([\w.\-]+)">')


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_author(doc: Document, user_id: str, what: str) -> None:
    if doc.get("authorId") != user_id:
        raise UnauthorizedError(f"{user_id} is not the author of the {what}")


class UserService:
    """Профили пользователей"""

    def __init__(self, store):
        self.store = store

    async def put_user(self, user_id: str, current_user_id: str, data: UserPut) -> None:
        if user_id != current_user_id:
            raise UnauthorizedError("Users can only edit their own profile")
        await self.store.upsert(f"users/{user_id}", {"name": data.name, "description": data.description})

    async def get_user(self, user_id: str) -> Document:
        return await self.store.get_one(f"users/{user_id}")

    async def list_users(self, regex: Optional[str] = None) -> List[Document]:
        filters = [Filter("name", "regex", regex)] if regex else []
        return await self.store.get_many("users", Order("name"), filters)


class GoalService:
    """Цели (справочник)"""

    def __init__(self, store):
        self.store = store

    async def list_goals(self) -> List[Document]:
        return await self.store.get_many("goals", Order("order"))

    async def get_goal(self, goal_id: str) -> Document:
        return await self.store.get_one(f"goals/{goal_id}")


class IdeaService:
    """Идеи: чтение с автором и целями, создание, правка, удаление"""

    def __init__(self, store, reviver, uploads_url: str = "/uploads"):
        self.store = store
        self.reviver = reviver
        self.uploads_url = uploads_url.rstrip("/")

    async def list_ideas(
        self,
        user_id: str,
        goal_id: Optional[str] = None,
        author_id: Optional[str] = None,
        regex: Optional[str] = None,
        order: str = "date",
    ) -> List[Document]:
        filters = []
        if goal_id:
            filters.append(Filter("goalIds", "in", [goal_id]))
        if author_id:
            filters.append(Filter("authorId", "eq", author_id))
        if regex:
            filters.append(Filter("title", "regex", regex))
        docs = await self.store.get_many("ideas", Order(order, desc=True), filters)
        if not docs:
            return []

        ideas = await self.reviver.revive_many("ideas", docs)
        cheers = await self.store.get_many("cheers", filters=[
            Filter("ideaId", "in", [d["id"] for d in docs]),
            Filter("authorId", "eq", user_id),
        ])
        cheered = {c["ideaId"] for c in cheers}
        for idea in ideas:
            idea["userHasCheered"] = idea["id"] in cheered
        return ideas

    async def get_idea(self, idea_id: str, user_id: str) -> Document:
        doc = await self.store.get_one(f"ideas/{idea_id}")
        idea = await self.reviver.revive("ideas", doc)
        try:
            await self.store.get_one(f"cheers/{make_cheer_id(idea_id, user_id)}")
            idea["userHasCheered"] = True
        except NotFoundError:
            idea["userHasCheered"] = False
        idea["content"] = _STORED_IMG_SRC.sub(
            lambda m: f'<img src="{self.uploads_url}/{m.group(1)}">', idea.get("content") or ""
        )
        return idea

    async def create_idea(self, user_id: str, data: IdeaCreate) -> str:
        return await self.store.insert("ideas", {
            "title": data.title,
            "authorId": user_id,
            "goalIds": data.goalIds,
            "content": data.content,
            "externalLinks": [],
            "date": _now(),
            "supports": 0,
            "cover": data.cover,
        })

    async def update_idea(self, idea_id: str, user_id: str, data: IdeaUpdate) -> None:
        """Правка идеи, доступна только автору"""
        path = f"ideas/{idea_id}"
        idea = await self.store.get_one(path)
        _ensure_author(idea, user_id, "idea")

        patches = []
        if data.content is not None:
            # убираем префикс, добавленный фронтендом к уже загруженным изображениям
            content = _FRONTEND_IMG_SRC.sub(r'<img src="\1">', data.content)
            patches.append(Patch("content", "set", content))
        if data.title is not None:
            patches.append(Patch("title", "set", data.title))
        if data.goalIds is not None:
            patches.append(Patch("goalIds", "set", data.goalIds))
        if data.cover is not None:
            patches.append(Patch("cover", "set", data.cover))
        if patches:
            await self.store.patch(path, patches)

        if data.removeExternalLink:
            await self.store.patch(path, Patch("externalLinks", "pull", {"type": data.removeExternalLink}))
        if data.addExternalLink:
            await self.store.patch(path, Patch("externalLinks", "addToSet", data.addExternalLink.model_dump()))

    async def delete_idea(self, idea_id: str, user_id: str) -> None:
        # изображения и комментарии удаляет триггер
        idea = await self.store.get_one(f"ideas/{idea_id}")
        _ensure_author(idea, user_id, "idea")
        await self.store.delete(f"ideas/{idea_id}")


class CommentService:
    """Комментарии к идеям"""

    def __init__(self, store, reviver):
        self.store = store
        self.reviver = reviver

    async def list_comments(
        self,
        user_id: str,
        idea_id: Optional[str] = None,
        author_id: Optional[str] = None,
        order: str = "date",
    ) -> List[Document]:
        filters = []
        if idea_id:
            filters.append(Filter("ideaId", "eq", idea_id))
        if author_id:
            filters.append(Filter("authorId", "eq", author_id))
        docs = await self.store.get_many("comments", Order(order, desc=True), filters)
        if not docs:
            return []

        comments = await self.reviver.revive_many("comments", docs)
        votes = await self.store.get_many("votes", filters=[
            Filter("commentId", "in", [d["id"] for d in docs]),
            Filter("authorId", "eq", user_id),
        ])
        user_votes = {v["commentId"]: v["value"] for v in votes}
        for comment in comments:
            comment["userVote"] = user_votes.get(comment["id"])
        return comments

    async def get_comment(self, comment_id: str, user_id: str) -> Document:
        doc = await self.store.get_one(f"comments/{comment_id}")
        comment = await self.reviver.revive("comments", doc)
        try:
            vote = await self.store.get_one(f"votes/{make_vote_id(comment_id, user_id)}")
            comment["userVote"] = vote["value"]
        except NotFoundError:
            comment["userVote"] = None
        return comment

    async def create_comment(self, user_id: str, data: CommentCreate) -> str:
        await self.store.get_one(f"ideas/{data.ideaId}")
        return await self.store.insert("comments", {
            "ideaId": data.ideaId,
            "content": data.content,
            "authorId": user_id,
            "date": _now(),
            "rating": 0,
        })

    async def delete_comment(self, comment_id: str, user_id: str) -> None:
        comment = await self.store.get_one(f"comments/{comment_id}")
        _ensure_author(comment, user_id, "comment")
        await self.store.delete(f"comments/{comment_id}")


class VoteService:
    """Голоса за комментарии, рейтинг пересчитывает триггер"""

    def __init__(self, store):
        self.store = store

    async def put_vote(self, vote_id: str, user_id: str, data: VotePut) -> None:
        if vote_id != make_vote_id(data.commentId, user_id):
            raise ValidationError("Vote id does not match comment and user")
        await self.store.get_one(f"comments/{data.commentId}")
        await self.store.upsert(f"votes/{vote_id}", {
            "authorId": user_id,
            "commentId": data.commentId,
            "value": data.value,
        })

    async def delete_vote(self, vote_id: str, user_id: str) -> None:
        vote = await self.store.get_one(f"votes/{vote_id}")
        _ensure_author(vote, user_id, "vote")
        await self.store.delete(f"votes/{vote_id}")


class CheerService:
    """Поддержка идей, счётчик supports пересчитывает триггер"""

    def __init__(self, store):
        self.store = store

    async def put_cheer(self, cheer_id: str, user_id: str, data: CheerPut) -> None:
        if cheer_id != make_cheer_id(data.ideaId, user_id):
            raise ValidationError("Cheer id does not match idea and user")
        await self.store.get_one(f"ideas/{data.ideaId}")
        await self.store.upsert(f"cheers/{cheer_id}", {"ideaId": data.ideaId, "authorId": user_id})

    async def get_cheer(self, cheer_id: str) -> Document:
        return await self.store.get_one(f"cheers/{cheer_id}")

    async def delete_cheer(self, cheer_id: str, user_id: str) -> None:
        cheer = await self.store.get_one(f"cheers/{cheer_id}")
        _ensure_author(cheer, user_id, "cheer")
        await self.store.delete(f"cheers/{cheer_id}")


class DiscussionService:
    """Обсуждения и сообщения"""

    def __init__(self, store, reviver):
        self.store = store
        self.reviver = reviver

    async def get_discussion(self, discussion_id: str, user_id: str) -> Document:
        discussion = await self.ensure_member(discussion_id, user_id)
        return await self.reviver.revive("discussions", discussion)

    async def ensure_member(self, discussion_id: str, user_id: str) -> Document:
        discussion = await self.store.get_one(f"discussions/{discussion_id}")
        if user_id not in (discussion.get("userIds") or []):
            raise UnauthorizedError(f"{user_id} is not a member of discussion {discussion_id}")
        return discussion

    async def create_discussion(self, user_id: str, data: DiscussionCreate) -> str:
        if data.toUserId == user_id:
            raise ValidationError("Cannot start a discussion with yourself")
        await self.store.get_one(f"users/{data.toUserId}")
        discussion_id = await self.store.insert("discussions", {
            "userIds": [user_id, data.toUserId],
            "readByIds": [],
        })
        await self.post_message(discussion_id, user_id, data.firstMessageContent)
        return discussion_id

    async def mark_read(self, discussion_id: str, user_id: str) -> None:
        await self.ensure_member(discussion_id, user_id)
        await self.store.patch(f"discussions/{discussion_id}", Patch("readByIds", "addToSet", user_id))

    async def post_message(self, discussion_id: str, user_id: str, content: str) -> str:
        """Новое сообщение и обновление последнего сообщения обсуждения"""
        if not content.strip():
            raise ValidationError("Message content cannot be empty")
        payload: Dict[str, Any] = {
            "discussionId": discussion_id,
            "authorId": user_id,
            "content": content,
            "date": _now(),
            "deleted": False,
        }
        message_id = await self.store.insert("messages", payload)
        await self.store.patch(f"discussions/{discussion_id}", [
            Patch("lastMessageId", "set", message_id),
            Patch("readByIds", "set", [user_id]),
            Patch("date", "set", payload["date"]),
        ])
        return message_id

    async def delete_message(self, discussion_id: str, user_id: str, message_id: str) -> None:
        """Мягкое удаление: текст заменяется заглушкой"""
        message = await self.store.get_one(f"messages/{message_id}")
        if message.get("discussionId") != discussion_id:
            raise NotFoundError(f"Message {message_id} is not part of discussion {discussion_id}")
        _ensure_author(message, user_id, "message")
        await self.store.patch(f"messages/{message_id}", [
            Patch("content", "set", TOMBSTONE),
            Patch("deleted", "set", True),
        ])

    async def handle_frame(self, discussion_id: str, user_id: str, text: str) -> None:
        """Разбор текстового кадра чата"""
        if text.startswith(DELETE_SENTINEL):
            await self.delete_message(discussion_id, user_id, text[len(DELETE_SENTINEL):].strip())
        else:
            await self.post_message(discussion_id, user_id, text)


class NotificationService:
    """Уведомления"""

    def __init__(self, store):
        self.store = store

    async def mark_read(self, notification_id: str, user_id: str) -> None:
        path = f"notifications/{notification_id}"
        notification = await self.store.get_one(path)
        if user_id not in (notification.get("toIds") or []):
            raise UnauthorizedError(f"Notification {notification_id} is not addressed to {user_id}")
        await self.store.patch(path, Patch("readByIds", "addToSet", user_id))
