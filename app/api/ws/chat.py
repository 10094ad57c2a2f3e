import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from app.core.auth import authenticate
from app.core.errors import AppError, AuthenticationError, NotFoundError, UnauthorizedError
from app.domains.social.services import DiscussionService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/chat/{discussion_id}")
async def chat_endpoint(websocket: WebSocket, discussion_id: str):
    """WebSocket чата обсуждения.

    Токен передаётся в ?token=. После подключения клиент получает
    историю сообщений, затем изменения сообщений обсуждения. Текстовый
    кадр создаёт сообщение, кадр ``__delete__<id>`` удаляет своё.
    """
    runtime = websocket.app.state.runtime
    try:
        user_id = authenticate(websocket, runtime.settings.jwt_secret)
    except AuthenticationError as e:
        logger.info(f"Chat connection to {discussion_id} rejected: {e.detail}")
        await websocket.close(code=4401)
        return

    service = DiscussionService(runtime.store, runtime.reviver)
    try:
        await service.ensure_member(discussion_id, user_id)
    except (NotFoundError, UnauthorizedError) as e:
        logger.info(f"Chat connection to {discussion_id} rejected for {user_id}: {e.detail}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    await runtime.rooms.join(discussion_id, user_id, websocket)

    try:
        while True:
            text = await websocket.receive_text()
            try:
                await service.handle_frame(discussion_id, user_id, text)
            except AppError as e:
                logger.warning(f"Chat frame from {user_id} in {discussion_id} rejected: {e.detail}")
    except WebSocketDisconnect:
        logger.info(f"User {user_id} disconnected from chat {discussion_id}")
    finally:
        runtime.rooms.leave(discussion_id, user_id)
