"""
Исключения приложения и их обработчики.

Каждое исключение несет человекочитаемое сообщение, машинный тип ошибки (`error_type`)
и, опционально, место ошибки (`loc`) в запросе. Обработчики превращают их в единый JSON-ответ:

    {"detail": {"type": "...", "message": "...", "loc": [...]}}
"""

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from .logging import api_log as log


class AppException(Exception):
    """
    Базовое исключение приложения.

    Attributes:
        status_code (int): HTTP статус ответа.
        message (str): Описание ошибки для клиента.
        error_type (str): Машинный идентификатор ошибки.
        loc (list[str] | None): Место ошибки в запросе (например, ["body", "day"]).
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Внутренняя ошибка сервера."
    default_error_type: str = "internal_error"

    def __init__(
        self,
        message: str | None = None,
        error_type: str | None = None,
        loc: list[str] | None = None,
    ):
        self.message = message or self.default_message
        self.error_type = error_type or self.default_error_type
        self.loc = loc
        super().__init__(self.message)

    def to_detail(self) -> dict[str, Any]:
        """Формирует тело поля `detail` ответа."""
        detail: dict[str, Any] = {"type": self.error_type, "message": self.message}

        if self.loc:
            detail["loc"] = self.loc

        return detail


class BadRequestException(AppException):
    """Некорректные входные данные (выход за объявленные границы)."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Некорректный запрос."
    default_error_type = "bad_request"


class UnauthorizedException(AppException):
    """Отсутствует или невалиден токен доступа."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Требуется аутентификация."
    default_error_type = "unauthorized"


class ForbiddenException(AppException):
    """Доступ запрещен."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Доступ запрещен."
    default_error_type = "forbidden"


class NotFoundException(AppException):
    """Запрошенный объект (участие, привычка, задача) не найден."""

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Объект не найден."
    default_error_type = "not_found"


class ConflictException(AppException):
    """Конфликт состояния (например, повторный старт активной программы)."""

    status_code = status.HTTP_409_CONFLICT
    default_message = "Конфликт состояния."
    default_error_type = "conflict"


class ServiceUnavailableException(AppException):
    """Внешняя зависимость (каталог, хранилище) недоступна."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Сервис временно недоступен."
    default_error_type = "service_unavailable"


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Преобразует AppException в JSON-ответ."""
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        log.error(f"{request.method} {request.url.path}: {exc.error_type} - {exc.message}")
    else:
        log.debug(f"{request.method} {request.url.path}: {exc.error_type} - {exc.message}")

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedException) else None

    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()}, headers=headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Преобразует ошибки валидации запроса в единый формат."""
    errors = exc.errors()
    log.debug(f"Ошибка валидации запроса {request.method} {request.url.path}: {errors}")

    # Берем первую ошибку для сообщения, полный список отдаем в `errors`
    first_error = errors[0] if errors else {}

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": {
                "type": "validation_error",
                "message": first_error.get("msg", "Некорректные данные запроса."),
                "loc": [str(part) for part in first_error.get("loc", [])],
                "errors": [
                    {"loc": [str(part) for part in error.get("loc", [])], "msg": error.get("msg")}
                    for error in errors
                ],
            }
        },
    )


async def database_unavailable_handler(request: Request, exc: OperationalError) -> JSONResponse:
    """Хранилище недоступно (нет соединения, таймаут): 503 вместо 500."""
    log.error(f"Хранилище недоступно при {request.method} {request.url.path}: {exc}")
    unavailable = ServiceUnavailableException(message="Хранилище временно недоступно.", error_type="store_unavailable")

    return JSONResponse(status_code=unavailable.status_code, content={"detail": unavailable.to_detail()})


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Последний рубеж: логирует непредвиденную ошибку и возвращает 500."""
    log.critical(f"Необработанная ошибка в {request.method} {request.url.path}: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": AppException().to_detail()},
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """
    Регистрирует обработчики исключений в приложении.

    Args:
        app (FastAPI): Экземпляр приложения.
    """
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(OperationalError, database_unavailable_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
