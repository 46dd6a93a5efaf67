"""Инициализация модуля клиентов внешних сервисов."""

from .catalog_client import (
    CatalogHTTPClient,
    EngagementRoster,
    EngagementRosterClient,
    TaskCatalog,
    TaskCatalogClient,
)

__all__ = [
    "CatalogHTTPClient",
    "TaskCatalog",
    "TaskCatalogClient",
    "EngagementRoster",
    "EngagementRosterClient",
]
