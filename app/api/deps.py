from fastapi import Depends, Request

from app.core.auth import authenticate
from app.domains.runtime import Runtime


def get_runtime(request: Request) -> Runtime:
    """Объекты процесса из состояния приложения"""
    return request.app.state.runtime


def get_current_user_id(request: Request, runtime: Runtime = Depends(get_runtime)) -> str:
    """Id пользователя из токена (заголовок Authorization или ?token=)"""
    return authenticate(request, runtime.settings.jwt_secret)
