"""
Test the HTTP API: authentication, error envelopes and the main
quest, boss and cron flows end to end.
"""

import pytest
from sqlalchemy import select

from chorequest.core.config import settings
from chorequest.models import Character, QuestInstance, QuestStatus, QuestType

from conftest import auth_headers, make_quest, reload

API = settings.api_v1_prefix
CRON_HEADERS = {"Authorization": "Bearer test-cron-secret"}


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["database"] == "healthy"


async def test_request_id_is_echoed(client, family):
    given = await client.get("/health", headers={"X-Request-ID": "trace-123"})
    assert given.headers["X-Request-ID"] == "trace-123"

    generated = await client.get("/health")
    assert len(generated.headers["X-Request-ID"]) == 32
    assert generated.headers["X-Content-Type-Options"] == "nosniff"


async def test_missing_token_is_401(client, family):
    response = await client.get(f"{API}/quest-instances")
    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Missing or invalid authorization header"


async def test_bad_token_is_401(client, family):
    response = await client.get(
        f"{API}/quest-instances",
        headers={"Authorization": "Bearer nonsense"},
    )
    assert response.status_code == 401
    assert response.json()["error"] == "Authentication failed"


async def test_unknown_quest_is_404(client, family):
    response = await client.get(f"{API}/quest-instances/missing", headers=auth_headers(family.gm))
    assert response.status_code == 404
    assert response.json()["error_code"] == "NOT_FOUND"


async def test_invalid_body_is_400(client, family, session):
    quest = await make_quest(session, family.family.id)
    response = await client.post(
        f"{API}/quests/{quest.id}/claim",
        json={},
        headers=auth_headers(family.hero),
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Validation failed"


async def test_claim_and_approve_flow(client, family, session):
    quest = await make_quest(
        session, family.family.id,
        gold_reward=50, xp_reward=100, difficulty="MEDIUM",
    )

    claim = await client.post(
        f"{API}/quests/{quest.id}/claim",
        json={"characterId": family.hero_character.id},
        headers=auth_headers(family.hero),
    )
    assert claim.status_code == 200
    assert claim.json()["quest"]["status"] == QuestStatus.CLAIMED.value
    assert claim.json()["quest"]["volunteer_bonus"] == pytest.approx(0.2)

    complete = await client.patch(
        f"{API}/quest-instances/{quest.id}",
        json={"status": "COMPLETED"},
        headers=auth_headers(family.hero),
    )
    assert complete.status_code == 200

    approve = await client.post(
        f"{API}/quest-instances/{quest.id}/approve",
        json={"approverId": family.gm.id},
        headers=auth_headers(family.gm),
    )
    assert approve.status_code == 200
    body = approve.json()
    assert body["rewards"] == {"gold": 86, "xp": 150, "gems": 0, "honor_points": 0}
    assert body["characterUpdates"] == {"newLevel": 2, "previousLevel": 1, "leveledUp": True}
    assert body["transaction"]["type"] == "QUEST_REWARD"
    assert body["quest"]["status"] == QuestStatus.APPROVED.value

    character = await reload(session, Character, family.hero_character.id)
    assert (character.gold, character.xp, character.active_family_quest_id) == (86, 150, None)


async def test_hero_cannot_approve(client, family, session):
    quest = await make_quest(
        session, family.family.id,
        quest_type=QuestType.INDIVIDUAL.value,
        status=QuestStatus.COMPLETED.value,
        assigned_to_id=family.hero.id,
    )
    response = await client.post(
        f"{API}/quest-instances/{quest.id}/approve",
        headers=auth_headers(family.hero),
    )
    assert response.status_code == 403
    assert response.json()["error"] == "Only Guild Masters can approve quests"


async def test_anti_hoarding_is_400(client, family, session):
    first = await make_quest(session, family.family.id)
    second = await make_quest(session, family.family.id, title="Sweep porch")
    headers = auth_headers(family.hero)
    body = {"characterId": family.hero_character.id}

    assert (await client.post(f"{API}/quests/{first.id}/claim", json=body, headers=headers)).status_code == 200
    response = await client.post(f"{API}/quests/{second.id}/claim", json=body, headers=headers)

    assert response.status_code == 400
    assert response.json()["error_code"] == "ACTIVE_FAMILY_QUEST"


async def test_rejected_update_leaves_quest_unchanged(client, family, session):
    quest = await make_quest(
        session, family.family.id,
        quest_type=QuestType.INDIVIDUAL.value,
        status=QuestStatus.PENDING.value,
        assigned_to_id=family.hero.id,
    )
    response = await client.patch(
        f"{API}/quest-instances/{quest.id}",
        json={"status": "COMPLETED"},
        headers=auth_headers(family.other_hero),
    )
    assert response.status_code == 403

    assert (await reload(session, QuestInstance, quest.id)).status == QuestStatus.PENDING.value


async def test_cross_family_access_is_403(client, family, outsider, session):
    quest = await make_quest(session, outsider.family.id)
    response = await client.get(f"{API}/quest-instances/{quest.id}", headers=auth_headers(family.gm))
    assert response.status_code == 403

    stats = await client.get(
        f"{API}/characters/{outsider.hero_character.id}/stats",
        headers=auth_headers(family.gm),
    )
    assert stats.status_code == 403


async def test_admin_release_requires_guild_master(client, family, session):
    quest = await make_quest(session, family.family.id)
    await client.post(
        f"{API}/quests/{quest.id}/claim",
        json={"characterId": family.hero_character.id},
        headers=auth_headers(family.hero),
    )

    forbidden = await client.post(
        f"{API}/quest-instances/{quest.id}/release",
        json={},
        headers=auth_headers(family.hero),
    )
    assert forbidden.status_code == 403

    released = await client.post(
        f"{API}/quest-instances/{quest.id}/release",
        json={},
        headers=auth_headers(family.gm),
    )
    assert released.status_code == 200
    assert released.json()["quest"]["status"] == QuestStatus.AVAILABLE.value


async def test_create_and_cancel_quest(client, family):
    created = await client.post(
        f"{API}/quest-instances",
        json={"title": "Rake leaves", "questType": "FAMILY", "goldReward": 20},
        headers=auth_headers(family.gm),
    )
    assert created.status_code == 201
    quest_id = created.json()["quest"]["id"]
    assert created.json()["quest"]["status"] == QuestStatus.AVAILABLE.value

    cancelled = await client.delete(f"{API}/quest-instances/{quest_id}", headers=auth_headers(family.gm))
    assert cancelled.status_code == 200

    missing = await client.get(f"{API}/quest-instances/{quest_id}", headers=auth_headers(family.gm))
    assert missing.status_code == 404


async def test_boss_quest_flow(client, family):
    created = await client.post(
        f"{API}/boss-quests",
        json={"name": "Garage Dragon", "description": "Clear the garage", "reward_gold": 40, "reward_xp": 40},
        headers=auth_headers(family.gm),
    )
    assert created.status_code == 201
    boss_id = created.json()["bossQuest"]["id"]

    joined = await client.post(f"{API}/boss-quests/{boss_id}/join", headers=auth_headers(family.hero))
    assert joined.status_code == 200

    completed = await client.post(
        f"{API}/boss-quests/{boss_id}/complete",
        json={"decisions": []},
        headers=auth_headers(family.gm),
    )
    assert completed.status_code == 200
    assert completed.json()["appliedRewards"][0]["rewards"] == {"gold": 46, "xp": 40, "honor": 1}

    again = await client.post(f"{API}/boss-quests/{boss_id}/complete", headers=auth_headers(family.gm))
    assert again.json()["alreadyCompleted"] is True

    listed = await client.get(f"{API}/boss-quests", headers=auth_headers(family.hero))
    assert listed.json()["bossQuests"][0]["status"] == "DEFEATED"


async def test_boss_name_too_short_is_400(client, family):
    response = await client.post(
        f"{API}/boss-quests",
        json={"name": "  x ", "description": "Clear the garage"},
        headers=auth_headers(family.gm),
    )
    assert response.status_code == 400


async def test_promote_via_api(client, family):
    response = await client.post(
        f"{API}/users/{family.hero.id}/promote",
        headers=auth_headers(family.gm),
    )
    assert response.status_code == 200
    assert response.json()["user"]["role"] == "GUILD_MASTER"


async def test_cron_requires_secret(client, family):
    response = await client.post(f"{API}/cron/generate-quests")
    assert response.status_code == 401

    wrong = await client.post(
        f"{API}/cron/generate-quests",
        headers={"Authorization": "Bearer wrong"},
    )
    assert wrong.status_code == 401


async def test_cron_without_configured_secret_is_500(client, family, monkeypatch):
    monkeypatch.setattr(settings, "cron_secret", None)
    response = await client.get(f"{API}/cron/expire-quests", headers=CRON_HEADERS)
    assert response.status_code == 500
    assert response.json()["error"] == "Cron job not configured"


async def test_cron_generate_and_expire(client, family, session):
    from chorequest.models import QuestTemplate

    session.add(QuestTemplate(
        family_id=family.family.id,
        title="Water plants",
        quest_type=QuestType.FAMILY.value,
        recurrence_pattern="DAILY",
        assigned_character_ids=[],
    ))
    await session.commit()

    generated = await client.post(f"{API}/cron/generate-quests", headers=CRON_HEADERS)
    assert generated.status_code == 200
    body = generated.json()
    assert body["generated"]["family"] == 1
    assert "timestamp" in body
    assert "duration" in body

    expired = await client.get(f"{API}/cron/expire-quests", headers=CRON_HEADERS)
    assert expired.status_code == 200
    assert expired.json()["expired"]["total"] == 0

    quests = (await session.execute(select(QuestInstance))).scalars().all()
    assert len(quests) == 1
