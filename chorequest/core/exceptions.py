"""
Custom exception classes for the application.
Provides structured error handling across all modules.

Every exception carries an HTTP status so the API layer can translate
domain failures without re-deriving them per endpoint.
"""

from typing import Any, Optional, Dict


class ChoreQuestException(Exception):
    """Base exception class for ChoreQuest backend."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(ChoreQuestException):
    """Raised when there's a configuration error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class ValidationError(ChoreQuestException):
    """Raised when data validation fails."""

    status_code = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: str = "VALIDATION_ERROR"
    ):
        super().__init__(message, code, details)


class InvalidStateError(ValidationError):
    """Raised when an entity is not in the state an operation requires."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: str = "INVALID_STATE"
    ):
        super().__init__(message, details, code)


class NotFoundError(ChoreQuestException):
    """Raised when a requested resource is not found."""

    status_code = 404

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "NOT_FOUND", details)


class AuthenticationError(ChoreQuestException):
    """Raised when authentication fails."""

    status_code = 401

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "AUTHENTICATION_ERROR", details)


class AuthorizationError(ChoreQuestException):
    """Raised when authorization fails."""

    status_code = 403

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "AUTHORIZATION_ERROR", details)


# Lookup failures
class QuestNotFoundError(NotFoundError):
    """Raised when a quest instance is not found."""

    def __init__(self, quest_id: str):
        super().__init__("Quest not found", {"quest_id": quest_id})


class CharacterNotFoundError(NotFoundError):
    """Raised when a character is not found."""

    def __init__(self, character_id: Optional[str] = None, user_id: Optional[str] = None):
        details = {}
        if character_id:
            details["character_id"] = character_id
        if user_id:
            details["user_id"] = user_id
        super().__init__("Character not found", details)


class UserNotFoundError(NotFoundError):
    """Raised when a user profile is not found."""

    def __init__(self, user_id: str):
        super().__init__("User not found", {"user_id": user_id})


class BossBattleNotFoundError(NotFoundError):
    """Raised when a boss battle is not found."""

    def __init__(self, boss_battle_id: str):
        super().__init__("Boss quest not found", {"boss_battle_id": boss_battle_id})


# Quest lifecycle exceptions
class QuestNotAvailableError(InvalidStateError):
    """Raised when a quest cannot be claimed or assigned in its current status."""

    def __init__(self, quest_id: str, status: Optional[str] = None):
        message = "Quest is not available for claiming"
        if status:
            message = f"{message} (status: {status})"
        super().__init__(
            message,
            {"quest_id": quest_id, "status": status},
            "QUEST_NOT_AVAILABLE"
        )


class FamilyQuestRequiredError(InvalidStateError):
    """Raised when a claim-style operation targets an INDIVIDUAL quest."""

    def __init__(self, quest_id: str, action: str = "claimed"):
        super().__init__(
            f"Only FAMILY quests can be {action}",
            {"quest_id": quest_id},
            "FAMILY_QUEST_REQUIRED"
        )


class AntiHoardingError(InvalidStateError):
    """Raised when a character already holds an outstanding family quest."""

    def __init__(self, character_id: str, active_quest_id: Optional[str] = None):
        super().__init__(
            "Hero already has an active family quest. "
            "Release the current quest before claiming another.",
            {"character_id": character_id, "active_family_quest_id": active_quest_id},
            "ACTIVE_FAMILY_QUEST"
        )


class ReleaseNotAllowedError(AuthorizationError):
    """Raised when a hero tries to release a quest someone else claimed."""

    def __init__(self, quest_id: str, character_id: str):
        super().__init__(
            "Only the hero who claimed this quest or a Guild Master can release it",
            {"quest_id": quest_id, "character_id": character_id}
        )


class JoinWindowClosedError(InvalidStateError):
    """Raised when joining a boss battle after its join window."""

    def __init__(self, boss_battle_id: str):
        super().__init__(
            "Join window has closed for this boss quest",
            {"boss_battle_id": boss_battle_id},
            "JOIN_WINDOW_CLOSED"
        )


class CompensationFailedError(ChoreQuestException):
    """
    Raised when a claim could not be rolled back after the character
    update failed. The quest may be left claimed with no character
    pointing at it (orphaned claim).
    """

    def __init__(self, quest_id: str, character_id: str, reason: str):
        super().__init__(
            "Failed to claim quest and could not restore its previous state",
            "ORPHANED_CLAIM",
            {"quest_id": quest_id, "character_id": character_id, "reason": reason}
        )


# Authorization exceptions
class CrossFamilyError(AuthorizationError):
    """Raised when an actor targets an entity owned by another family."""

    def __init__(self, action: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Cannot {action} outside your family", details)


class GuildMasterRequiredError(AuthorizationError):
    """Raised when a non Guild Master attempts a GM-only action."""

    def __init__(self, action: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Only Guild Masters can {action}", details)
