from fastapi import APIRouter, Depends, status
from fastapi.responses import StreamingResponse

from app.api.deps import get_current_user_id, get_runtime
from app.domains.live.sse import LiveSession, discussions_session, notifications_session
from app.domains.runtime import Runtime
from app.domains.social.schemas import DiscussionCreate, InsertedResponse
from app.domains.social.services import DiscussionService, NotificationService

router = APIRouter(tags=["discussions"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _stream(session: LiveSession) -> StreamingResponse:
    return StreamingResponse(session.events(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("/discussions")
async def stream_discussions(
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    """SSE: снимок обсуждений пользователя, затем изменения"""
    return _stream(discussions_session(runtime, user_id))


@router.get("/discussions/{discussion_id}")
async def get_discussion(
    discussion_id: str,
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    return await DiscussionService(runtime.store, runtime.reviver).get_discussion(discussion_id, user_id)


@router.post("/discussions", response_model=InsertedResponse, status_code=status.HTTP_201_CREATED)
async def create_discussion(
    data: DiscussionCreate,
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    """Новое обсуждение с первым сообщением"""
    service = DiscussionService(runtime.store, runtime.reviver)
    inserted_id = await service.create_discussion(user_id, data)
    return InsertedResponse(insertedId=inserted_id)


@router.patch("/discussions/{discussion_id}", status_code=status.HTTP_204_NO_CONTENT)
async def mark_discussion_read(
    discussion_id: str,
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    """Отметка обсуждения прочитанным"""
    await DiscussionService(runtime.store, runtime.reviver).mark_read(discussion_id, user_id)


@router.get("/notifications")
async def stream_notifications(
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    """SSE: снимок уведомлений пользователя, затем изменения"""
    return _stream(notifications_session(runtime, user_id))


@router.patch("/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def mark_notification_read(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    await NotificationService(runtime.store).mark_read(notification_id, user_id)
