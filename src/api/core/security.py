"""
JWT токены доступа (PyJWT).

Токены выпускает внешний сервис идентификации общим ключом подписи; сервис участия только
проверяет их и берет из payload `user_id`. `create_access_token` выпускает токен того же формата
для служебных скриптов и тестов.
"""

from datetime import timedelta
from typing import Any

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from pydantic import ValidationError

from src.api.core.config import settings
from src.api.core.exceptions import UnauthorizedException
from src.api.core.logging import api_log as log
from src.api.schemas.auth_schema import TokenPayload
from src.api.utils.date_utils import utc_now


def create_access_token(data: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """Подписывает payload `data`, добавляя срок действия `exp`."""
    lifetime = expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

    return jwt.encode(
        {**data, "exp": int((utc_now() + lifetime).timestamp())},
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )


def verify_and_decode_token(token: str) -> TokenPayload:
    """
    Проверяет подпись и срок действия JWT.

    Args:
        token (str): JWT из заголовка Authorization.

    Returns:
        TokenPayload: Проверенный payload.

    Raises:
        UnauthorizedException: Токен истек, подпись неверна или в payload нет корректного `user_id`.
    """
    try:
        claims = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        return TokenPayload.model_validate(claims)

    except ExpiredSignatureError:
        log.debug("Предъявлен просроченный JWT.")
        raise UnauthorizedException(message="Срок действия токена истек.", error_type="token_expired") from None

    except InvalidTokenError as exc:
        log.warning(f"Невалидный JWT: {exc}")
        raise UnauthorizedException(message="Невалидный токен.", error_type="invalid_token") from exc

    except ValidationError as exc:
        log.warning(f"Некорректный payload JWT: {exc.errors()}")
        raise UnauthorizedException(
            message="Некорректные данные в токене.",
            error_type="invalid_token_payload",
        ) from exc
