"""API routes package."""

from . import quests, quest_instances, boss_quests, cron, users, characters

__all__ = ["quests", "quest_instances", "boss_quests", "cron", "users", "characters"]
