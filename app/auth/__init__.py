from .auth import (
    CurrentUser,
    create_access_token,
    get_token_from_request,
    get_current_user,
    ACCESS_TOKEN_EXPIRE_MINUTES,
    ALGORITHM,
)

__all__ = [
    "CurrentUser",
    "create_access_token",
    "get_token_from_request",
    "get_current_user",
    "ACCESS_TOKEN_EXPIRE_MINUTES",
    "ALGORITHM",
]
