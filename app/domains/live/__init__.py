from app.domains.live.sse import (
    LiveSession, PING, format_sse, member_of_discussion, addressed_to,
    discussions_session, notifications_session
)
from app.domains.live.chat import ChatRoom, ChatRoomManager, PLACEHOLDER_ID

__all__ = [
    "LiveSession", "PING", "format_sse", "member_of_discussion", "addressed_to",
    "discussions_session", "notifications_session",
    "ChatRoom", "ChatRoomManager", "PLACEHOLDER_ID",
]
