"""Основной API роутер, объединяющий все остальные роутеры."""

from fastapi import APIRouter

from . import enrollments

# Основной роутер API, префикс /v1 для всех API эндпоинтов
api_router = APIRouter(prefix="/v1")

api_router.include_router(enrollments.router)

__all__ = ["api_router"]
