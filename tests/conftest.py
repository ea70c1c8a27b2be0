"""
Shared fixtures: a throwaway SQLite database per test, a seeded family
and an HTTP client bound to the ASGI app.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from types import SimpleNamespace

import httpx
import pytest

from chorequest.auth.permissions import AuthenticatedUser
from chorequest.auth.tokens import create_access_token
from chorequest.core import database as database_module
from chorequest.core.database import init_database, close_database, DatabaseManager
from chorequest.models import (
    Character, Family, QuestInstance, QuestStatus, QuestType, UserProfile, UserRole
)


@pytest.fixture
async def database(tmp_path):
    """Initialize a fresh SQLite database for one test."""
    await init_database(f"sqlite:///{tmp_path / 'chorequest.db'}")
    await DatabaseManager.create_tables()
    yield
    await close_database()


@pytest.fixture
async def session(database):
    async with database_module.async_session_maker() as session:
        yield session


async def _create_family(session, name: str) -> SimpleNamespace:
    family = Family(name=name, timezone="UTC", week_start_day=0)
    session.add(family)
    await session.flush()

    gm = UserProfile(family_id=family.id, name=f"{name} GM", role=UserRole.GUILD_MASTER.value)
    hero = UserProfile(family_id=family.id, name=f"{name} Hero", role=UserRole.HERO.value)
    other_hero = UserProfile(family_id=family.id, name=f"{name} Sidekick", role=UserRole.HERO.value)
    session.add_all([gm, hero, other_hero])
    await session.flush()

    hero_character = Character(
        user_id=hero.id, name="Robin", character_class="ROGUE",
        level=1, xp=0, gold=0, gems=0, honor_points=0,
    )
    other_character = Character(
        user_id=other_hero.id, name="Merlin", character_class="MAGE",
        level=1, xp=0, gold=0, gems=0, honor_points=0,
    )
    gm_character = Character(
        user_id=gm.id, name="Arthur", character_class="KNIGHT",
        level=1, xp=0, gold=0, gems=0, honor_points=0,
    )
    session.add_all([hero_character, other_character, gm_character])
    await session.commit()

    return SimpleNamespace(
        family=family,
        gm=gm,
        hero=hero,
        other_hero=other_hero,
        hero_character=hero_character,
        other_character=other_character,
        gm_character=gm_character,
    )


@pytest.fixture
async def family(session):
    return await _create_family(session, "Pendragon")


@pytest.fixture
async def outsider(session, family):
    """A second, unrelated family."""
    return await _create_family(session, "Baggins")


def actor_for(profile) -> AuthenticatedUser:
    return AuthenticatedUser.from_profile(profile)


def auth_headers(profile) -> dict:
    return {"Authorization": f"Bearer {create_access_token(profile.id)}"}


async def reload(session, model, ident):
    """Re-read a row from the database, overwriting what the session holds."""
    return await session.get(model, ident, populate_existing=True)


async def make_quest(session, family_id: str, **overrides) -> QuestInstance:
    values = dict(
        family_id=family_id,
        title="Take out the trash",
        quest_type=QuestType.FAMILY.value,
        category="DAILY",
        difficulty="EASY",
        xp_reward=10,
        gold_reward=5,
        gems_reward=0,
        honor_reward=0,
        status=QuestStatus.AVAILABLE.value,
    )
    values.update(overrides)
    quest = QuestInstance(**values)
    session.add(quest)
    await session.commit()
    return quest


@pytest.fixture
async def client(database):
    from chorequest.api.main import create_app

    app = create_app()
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
