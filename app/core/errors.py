class AppError(Exception):
    """Базовая ошибка приложения"""

    status_code = 500

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail or self.__class__.__name__


class NotFoundError(AppError):
    """Документ не найден"""

    status_code = 404


class UnauthorizedError(AppError):
    """Действие запрещено для текущего пользователя"""

    status_code = 403


class AuthenticationError(UnauthorizedError):
    """Токен отсутствует или недействителен"""

    status_code = 401


class ValidationError(AppError):
    """Некорректный запрос или документ"""

    status_code = 422


class ConflictError(AppError):
    """Конфликт идентификаторов"""

    status_code = 409


class UpstreamFeedError(AppError):
    """Поток изменений хранилища оборван"""
