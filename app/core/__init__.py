"""Core infrastructure: settings, errors, logging and scheduling."""

from .errors import (
    AuthorizationError,
    CoreError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from .settings import Settings, settings

__all__ = [
    "AuthorizationError",
    "CoreError",
    "NotFoundError",
    "PersistenceError",
    "ValidationError",
    "Settings",
    "settings",
]
