"""
Authentication and authorization helpers.
"""

from .tokens import AccessToken, TokenAuth, create_access_token, verify_access_token
from .permissions import AuthenticatedUser, authorize, require_guild_master

__all__ = [
    "AccessToken",
    "TokenAuth",
    "create_access_token",
    "verify_access_token",
    "AuthenticatedUser",
    "authorize",
    "require_guild_master",
]
