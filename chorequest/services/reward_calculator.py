"""
Reward calculation for quests and character progression.

Pure functions only: no database access, no logging of side effects.
Multipliers are kept as Decimal so that e.g. 20 x 1.15 floors to 23
instead of 22 from binary float drift.
"""

import math
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_FLOOR
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

from chorequest.core.exceptions import ValidationError
from chorequest.models.character import CharacterClass
from chorequest.models.quest import QuestDifficulty

Number = Union[int, float, Decimal]

# XP needed to reach level 2 is XP_CURVE_BASE; the curve is quadratic.
XP_CURVE_BASE = 50


@dataclass(frozen=True)
class ClassBonus:
    """Per-currency multipliers for a character class."""
    xp: Decimal = Decimal("1.0")
    gold: Decimal = Decimal("1.0")
    honor: Decimal = Decimal("1.0")
    gems: Decimal = Decimal("1.0")


NEUTRAL_CLASS_BONUS = ClassBonus()

CLASS_BONUSES: Mapping[str, ClassBonus] = MappingProxyType({
    CharacterClass.KNIGHT.value: ClassBonus(xp=Decimal("1.05"), gold=Decimal("1.05")),
    CharacterClass.MAGE.value: ClassBonus(xp=Decimal("1.2")),
    CharacterClass.ROGUE.value: ClassBonus(gold=Decimal("1.15")),
    CharacterClass.HEALER.value: ClassBonus(xp=Decimal("1.1"), honor=Decimal("1.25")),
    CharacterClass.RANGER.value: ClassBonus(gems=Decimal("1.3")),
})

DIFFICULTY_MULTIPLIERS: Mapping[str, Decimal] = MappingProxyType({
    QuestDifficulty.EASY.value: Decimal("1.0"),
    QuestDifficulty.MEDIUM.value: Decimal("1.5"),
    QuestDifficulty.HARD.value: Decimal("2.0"),
})


@dataclass(frozen=True)
class BaseRewards:
    """Un-multiplied rewards configured on a quest."""
    gold_reward: Number = 0
    xp_reward: Number = 0
    gems_reward: Number = 0
    honor_reward: Number = 0


@dataclass(frozen=True)
class QuestRewards:
    """Final integer rewards granted to a character."""
    gold: int = 0
    xp: int = 0
    gems: int = 0
    honor_points: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class LevelUp:
    previous_level: int
    new_level: int

    def to_dict(self) -> Dict[str, int]:
        return {"previousLevel": self.previous_level, "newLevel": self.new_level}


@dataclass(frozen=True)
class LevelProgress:
    current: int
    required: int
    percentage: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _enum_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    return getattr(value, "value", value)


def _to_decimal(value: Optional[Number]) -> Decimal:
    """Convert a reward amount, treating missing, non-finite or negative values as 0."""
    if value is None:
        return Decimal(0)
    if isinstance(value, float) and not math.isfinite(value):
        return Decimal(0)
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    if not amount.is_finite() or amount < 0:
        return Decimal(0)
    return amount


def floor_amount(value: Number) -> int:
    """Floor to an integer, clamping negative and non-finite values to 0."""
    amount = _to_decimal(value)
    return int(amount.to_integral_value(rounding=ROUND_FLOOR))


def get_difficulty_multiplier(difficulty: Union[str, QuestDifficulty]) -> Decimal:
    key = _enum_value(difficulty)
    try:
        return DIFFICULTY_MULTIPLIERS[key]
    except KeyError:
        raise ValidationError(f"Unknown difficulty: {key}", {"difficulty": key})


def get_class_bonus(character_class: Optional[Union[str, CharacterClass]]) -> ClassBonus:
    """Multipliers for a class; unknown or missing classes are neutral."""
    return CLASS_BONUSES.get(_enum_value(character_class), NEUTRAL_CLASS_BONUS)


def calculate_quest_rewards(
    base: BaseRewards,
    difficulty: Union[str, QuestDifficulty],
    character_class: Optional[Union[str, CharacterClass]],
    level: int = 1,
) -> QuestRewards:
    """
    Compute the rewards a character earns for a quest.

    gold and xp are scaled by difficulty and class; gems and honor by
    class only. Each field is floored once, after all multiplications.

    ``level`` is accepted for call-site compatibility and does not
    influence the result.
    """
    multiplier = get_difficulty_multiplier(difficulty)
    bonus = get_class_bonus(character_class)

    return QuestRewards(
        gold=floor_amount(_to_decimal(base.gold_reward) * multiplier * bonus.gold),
        xp=floor_amount(_to_decimal(base.xp_reward) * multiplier * bonus.xp),
        gems=floor_amount(_to_decimal(base.gems_reward) * bonus.gems),
        honor_points=floor_amount(_to_decimal(base.honor_reward) * bonus.honor),
    )


def get_xp_required_for_level(level: int) -> int:
    """Cumulative XP needed to reach ``level`` (level 1 needs 0)."""
    if level <= 1:
        return 0
    return XP_CURVE_BASE * (level - 1) ** 2


def calculate_level_from_total_xp(total_xp: Number) -> int:
    """Highest level whose cumulative XP threshold is covered by ``total_xp``."""
    xp = _to_decimal(total_xp)
    level = 1
    while get_xp_required_for_level(level + 1) <= xp:
        level += 1
    return level


def calculate_level_up(current_xp: Number, xp_gained: Number, current_level: int) -> Optional[LevelUp]:
    """
    Level reached after gaining XP, or None when no level is gained.

    Large grants may skip several levels at once. A level never goes
    below ``current_level``.
    """
    total_xp = _to_decimal(current_xp) + _to_decimal(xp_gained)
    new_level = max(current_level, calculate_level_from_total_xp(total_xp))
    if new_level == current_level:
        return None
    return LevelUp(previous_level=current_level, new_level=new_level)


def _normalize_level(level: Any) -> int:
    if not isinstance(level, (int, float, Decimal)) or isinstance(level, bool):
        return 1
    if isinstance(level, float) and not math.isfinite(level):
        return 1
    if isinstance(level, Decimal) and not level.is_finite():
        return 1
    if level < 1:
        return 1
    return int(math.floor(level))


def _normalize_xp(total_xp: Any) -> Decimal:
    if not isinstance(total_xp, (int, float, Decimal)) or isinstance(total_xp, bool):
        return Decimal(0)
    return _to_decimal(total_xp)


def get_level_progress(level: Any, total_xp: Any) -> LevelProgress:
    """
    Progress from ``level`` towards the next level.

    current is clamped to [0, required] and percentage to [0, 100].
    """
    level = _normalize_level(level)
    xp = _normalize_xp(total_xp)

    level_floor = get_xp_required_for_level(level)
    required = get_xp_required_for_level(level + 1) - level_floor

    current = int(min(max(xp - level_floor, Decimal(0)), Decimal(required)))
    percentage = (current / required * 100) if required > 0 else 100.0
    percentage = min(max(percentage, 0.0), 100.0)

    return LevelProgress(current=current, required=required, percentage=percentage)
