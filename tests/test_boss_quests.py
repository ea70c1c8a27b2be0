"""
Test boss battle creation, joining and reward distribution.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from chorequest.core.exceptions import (
    CrossFamilyError, GuildMasterRequiredError, InvalidStateError, JoinWindowClosedError
)
from chorequest.models import BossBattleStatus, Transaction, TransactionType
from chorequest.models.base import utc_now
from chorequest.services.boss_quest_service import (
    BossQuestService,
    BossReward,
    ParticipantDecision,
    apply_class_bonus_if_approved,
    normalize_decisions,
    resolve_participant_decision,
)

from conftest import actor_for

BASE = BossReward(gold=100, xp=200, honor=1)


@pytest.fixture
def service(session):
    return BossQuestService(session)


async def _battle(service, family, **kwargs):
    return await service.create_boss_battle(
        actor_for(family.gm),
        name=kwargs.pop("name", "Laundry Mountain"),
        description=kwargs.pop("description", "Fold everything"),
        reward_gold=kwargs.pop("reward_gold", 100),
        reward_xp=kwargs.pop("reward_xp", 200),
        **kwargs,
    )


def test_missing_decision_means_full_approval():
    decision = resolve_participant_decision(None, BASE)
    assert decision == ParticipantDecision("APPROVED", BASE)


def test_denied_decision_yields_nothing():
    decision = resolve_participant_decision({"status": "DENIED", "gold": 50}, BASE)
    assert decision.reward == BossReward()


def test_partial_decision_uses_supplied_amounts():
    decision = resolve_participant_decision({"status": "PARTIAL", "gold": 40.7, "xp": -3}, BASE)
    assert decision.status == "PARTIAL"
    assert decision.reward == BossReward(gold=40, xp=0, honor=1)


def test_class_bonus_applies_only_to_approved():
    approved = apply_class_bonus_if_approved(ParticipantDecision("APPROVED", BASE), "MAGE")
    assert approved == BossReward(gold=100, xp=240, honor=1)

    partial = ParticipantDecision("PARTIAL", BossReward(gold=50, xp=50, honor=1))
    assert apply_class_bonus_if_approved(partial, "MAGE") == partial.reward


def test_normalize_decisions_drops_invalid_entries():
    decisions = normalize_decisions([
        {"userId": "a", "status": "partial", "gold": 5},
        {"user_id": "b", "status": "DENIED"},
        {"userId": "c", "status": "MAYBE"},
        {"status": "APPROVED"},
    ])
    assert set(decisions) == {"a", "b"}
    assert decisions["a"]["status"] == "PARTIAL"


async def test_create_sets_join_window(session, family, service):
    battle = await _battle(service, family, join_window_minutes=30)

    assert battle.status == BossBattleStatus.ACTIVE.value
    assert battle.honor_reward == 1
    assert battle.rewards_distributed is False
    window = battle.join_window_expires_at - battle.start_date
    assert window == timedelta(minutes=30)


async def test_only_guild_master_creates(session, family, service):
    with pytest.raises(GuildMasterRequiredError):
        await service.create_boss_battle(
            actor_for(family.hero), name="Nope", description="Not allowed"
        )


async def test_join_is_idempotent(session, family, service):
    battle = await _battle(service, family)
    await session.commit()
    hero = actor_for(family.hero)

    first = await service.join_boss_battle(battle.id, hero)
    second = await service.join_boss_battle(battle.id, hero)

    assert first.id == second.id
    assert first.user_id == family.hero.id


async def test_join_after_window_is_rejected(session, family, service):
    battle = await _battle(service, family)
    battle.join_window_expires_at = utc_now() - timedelta(minutes=1)
    await session.commit()

    with pytest.raises(JoinWindowClosedError):
        await service.join_boss_battle(battle.id, actor_for(family.hero))


async def test_join_from_other_family_is_rejected(session, family, outsider, service):
    battle = await _battle(service, family)
    await session.commit()

    with pytest.raises(CrossFamilyError):
        await service.join_boss_battle(battle.id, actor_for(outsider.hero))


async def test_reopen_extends_window(session, family, service):
    battle = await _battle(service, family)
    battle.join_window_expires_at = utc_now() - timedelta(minutes=5)
    await session.commit()

    reopened = await service.reopen_boss_battle(battle.id, actor_for(family.gm), minutes=15)

    assert reopened.join_window_expires_at > utc_now() + timedelta(minutes=14)
    participant = await service.join_boss_battle(battle.id, actor_for(family.hero))
    assert participant.user_id == family.hero.id


async def test_complete_distributes_rewards_once(session, family, service):
    battle = await _battle(service, family)
    await session.commit()
    await service.join_boss_battle(battle.id, actor_for(family.hero))
    await service.join_boss_battle(battle.id, actor_for(family.other_hero))
    await session.commit()

    gm = actor_for(family.gm)
    result = await service.complete_boss_battle(battle.id, gm, [
        {"userId": family.other_hero.id, "status": "PARTIAL", "gold": 30, "xp": 60},
    ])

    assert result["success"] is True
    assert result["participants"] == 2
    assert result["rewards"] == {"gold": 100, "xp": 200, "honor": 1}
    applied = {entry["participantId"]: entry for entry in result["appliedRewards"]}
    # ROGUE: gold x1.15
    assert applied[family.hero.id]["rewards"] == {"gold": 115, "xp": 200, "honor": 1}
    assert applied[family.other_hero.id] == {
        "participantId": family.other_hero.id,
        "status": "PARTIAL",
        "rewards": {"gold": 30, "xp": 60, "honor": 1},
    }

    await session.refresh(family.hero_character)
    assert family.hero_character.gold == 115
    assert family.hero_character.xp == 200
    assert family.hero_character.honor_points == 1
    assert family.hero_character.level == 3

    again = await service.complete_boss_battle(battle.id, gm)
    assert again["noop"] is True
    assert again["alreadyCompleted"] is True

    transactions = (await session.execute(
        select(Transaction).where(Transaction.related_id == battle.id)
    )).scalars().all()
    assert len(transactions) == 2
    assert {t.type for t in transactions} == {TransactionType.BOSS_VICTORY.value}
    assert "Boss quest rewards (PARTIAL)" in {t.description for t in transactions}

    refreshed = await service.get_boss_battle(battle.id)
    assert refreshed.status == BossBattleStatus.DEFEATED.value
    assert refreshed.rewards_distributed is True
    assert refreshed.defeated_at is not None


async def test_complete_sees_participants_joined_in_same_session(session, family, service):
    battle = await _battle(service, family)
    await session.commit()
    await service.join_boss_battle(battle.id, actor_for(family.hero))
    await session.commit()

    gm = actor_for(family.gm)
    result = await service.complete_boss_battle(battle.id, gm, [
        {"userId": family.hero.id, "status": "PARTIAL", "gold": 10.9, "xp": 5.4, "honor": 0},
    ])
    assert result["participants"] == 1

    again = await service.complete_boss_battle(battle.id, gm)
    assert again["noop"] is True

    await session.refresh(family.hero_character)
    assert (
        family.hero_character.gold,
        family.hero_character.xp,
        family.hero_character.honor_points,
    ) == (10, 5, 0)

    transactions = (await session.execute(
        select(Transaction).where(
            Transaction.related_id == battle.id,
            Transaction.type == TransactionType.BOSS_VICTORY.value,
        )
    )).scalars().all()
    assert len(transactions) == 1


async def test_complete_requires_guild_master(session, family, service):
    battle = await _battle(service, family)
    await session.commit()
    with pytest.raises(GuildMasterRequiredError):
        await service.complete_boss_battle(battle.id, actor_for(family.hero))


async def test_defeated_battle_refuses_new_participants(session, family, service):
    battle = await _battle(service, family)
    await session.commit()
    await service.complete_boss_battle(battle.id, actor_for(family.gm))

    with pytest.raises(InvalidStateError):
        await service.join_boss_battle(battle.id, actor_for(family.hero))
