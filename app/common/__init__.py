from app.common.config import get_settings, settings
from app.common.exceptions import (
    AuthException,
    ConditionConfigError,
    InvalidTokenException,
    NotFoundException,
    QuizNotFoundException,
    UserNotFoundException,
)

__all__ = [
    "settings",
    "get_settings",
    "AuthException",
    "InvalidTokenException",
    "NotFoundException",
    "UserNotFoundException",
    "QuizNotFoundException",
    "ConditionConfigError",
]
