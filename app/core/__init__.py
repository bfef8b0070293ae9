"""Core module - config, database, dependencies, exceptions."""

from app.core.config import get_settings, Settings
from app.core.database import Database, get_db
from app.core.dependencies import get_current_user, get_current_user_from_query
from app.core.exceptions import (
    AppException,
    NotFoundException,
    UnauthorizedException,
    BadRequestException,
    NotReadyException,
)

__all__ = [
    "get_settings",
    "Settings",
    "Database",
    "get_db",
    "get_current_user",
    "get_current_user_from_query",
    "AppException",
    "NotFoundException",
    "UnauthorizedException",
    "BadRequestException",
    "NotReadyException",
]
