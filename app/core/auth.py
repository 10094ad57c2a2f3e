import logging
from typing import Optional

from starlette.requests import HTTPConnection

from app.core.errors import AuthenticationError
from app.core.security import extract_token_from_header, verify_token

logger = logging.getLogger(__name__)


def _token_from_connection(conn: HTTPConnection) -> Optional[str]:
    # EventSource и WebSocket не умеют передавать заголовки, поэтому допускаем ?token=
    token = extract_token_from_header(conn.headers.get("authorization"))
    if token:
        return token
    return conn.query_params.get("token")


def authenticate(conn: HTTPConnection, secret: Optional[str] = None) -> str:
    """Возвращает id пользователя из токена запроса или WebSocket"""
    token = _token_from_connection(conn)
    if not token:
        raise AuthenticationError("Missing access token")

    payload = verify_token(token, secret)
    if not payload:
        raise AuthenticationError("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Token has no subject")

    return str(user_id)
