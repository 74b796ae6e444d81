from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from datetime import datetime

from solcases_backend.engine.models import (
    CollectionCompletedEvent,
    CollectionProgress,
    CollectionReward,
    CollectionRewardSpec,
    LedgerEvent,
    LevelUpEvent,
    PackResult,
    Rarity,
    UserState,
)
from solcases_backend.engine.packs import COLLECTION_RULES


LAMPORTS_PER_XP = 1_000_000

# Total XP required to reach levels 1 through 11.
LEVEL_THRESHOLDS = (0, 100, 250, 450, 700, 950, 1300, 1800, 2400, 3100, 3900)
OPEN_ENDED_FROM_LEVEL = len(LEVEL_THRESHOLDS)
OPEN_ENDED_BASE_STEP = 500
OPEN_ENDED_STEP_GROWTH = 100


class CollectionClaimError(Exception):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def xp_for_bet(bet_lamports: int) -> int:
    return bet_lamports // LAMPORTS_PER_XP


def xp_for_next_level(level: int) -> int:
    if level < 1:
        raise ValueError(f"level must be >= 1, got {level}")
    if level < OPEN_ENDED_FROM_LEVEL:
        return LEVEL_THRESHOLDS[level] - LEVEL_THRESHOLDS[level - 1]
    return OPEN_ENDED_BASE_STEP + (level - OPEN_ENDED_FROM_LEVEL) * OPEN_ENDED_STEP_GROWTH


def total_xp_for_level(level: int) -> int:
    if level < 1:
        raise ValueError(f"level must be >= 1, got {level}")
    if level <= OPEN_ENDED_FROM_LEVEL:
        return LEVEL_THRESHOLDS[level - 1]
    total = LEVEL_THRESHOLDS[-1]
    for current in range(OPEN_ENDED_FROM_LEVEL, level):
        total += xp_for_next_level(current)
    return total


def calculate_level(xp: int) -> int:
    if xp < 0:
        raise ValueError(f"xp must be non-negative, got {xp}")
    if xp < LEVEL_THRESHOLDS[-1]:
        return bisect.bisect_right(LEVEL_THRESHOLDS, xp)
    level = OPEN_ENDED_FROM_LEVEL
    remaining = xp - LEVEL_THRESHOLDS[-1]
    while remaining >= xp_for_next_level(level):
        remaining -= xp_for_next_level(level)
        level += 1
    return level


def collection_rule(rarity: Rarity) -> tuple[int, CollectionRewardSpec]:
    return COLLECTION_RULES[rarity]


def add_item_to_collection(
    state: UserState,
    rarity: Rarity,
    item_name: str,
    now: datetime,
) -> CollectionCompletedEvent | None:
    """Record an item and complete the rarity the first time its threshold is met."""
    required, reward = collection_rule(rarity)
    owned = state.collections.setdefault(rarity, set())
    owned.add(item_name)
    if len(owned) < required or rarity in state.completed_collections:
        return None

    state.completed_collections.add(rarity)
    state.collection_rewards.append(
        CollectionReward(rarity=rarity, reward=reward, completed_at=now),
    )
    return CollectionCompletedEvent(rarity=rarity, reward=reward)


@dataclass
class LedgerOutcome:
    state: UserState
    xp_earned: int
    level_up: LevelUpEvent | None = None
    completions: list[CollectionCompletedEvent] = field(default_factory=list)

    @property
    def events(self) -> list[LedgerEvent]:
        events: list[LedgerEvent] = []
        if self.level_up is not None:
            events.append(self.level_up)
        events.extend(self.completions)
        return events


def apply_pack_result(
    state: UserState,
    result: PackResult,
    bet_lamports: int,
    now: datetime,
) -> LedgerOutcome:
    """Apply XP and collection progress for one pack opening.

    Works on a deep copy; ``state`` itself is left untouched so the caller can
    commit or drop the outcome as a whole.
    """
    updated = state.model_copy(deep=True)

    xp_earned = xp_for_bet(bet_lamports)
    old_level = calculate_level(updated.xp)
    updated.xp += xp_earned
    updated.level = calculate_level(updated.xp)

    level_up = None
    if updated.level > old_level:
        level_up = LevelUpEvent(
            old_level=old_level,
            new_level=updated.level,
            xp_earned=xp_earned,
            total_xp=updated.xp,
            xp_for_next_level=xp_for_next_level(updated.level),
        )

    completions = []
    for card in result.cards:
        completed = add_item_to_collection(updated, card.rarity, card.item.name, now)
        if completed is not None:
            completions.append(completed)

    return LedgerOutcome(state=updated, xp_earned=xp_earned, level_up=level_up, completions=completions)


def claim_collection_reward(state: UserState, rarity: Rarity, now: datetime) -> CollectionReward:
    if rarity not in state.completed_collections:
        raise CollectionClaimError("COLLECTION_NOT_COMPLETED", "Collection not completed.")
    for reward in state.collection_rewards:
        if reward.rarity == rarity and not reward.claimed:
            reward.claimed = True
            reward.claimed_at = now
            return reward
    raise CollectionClaimError("REWARD_ALREADY_CLAIMED", "Reward already claimed.")


def collection_progress(state: UserState) -> dict[Rarity, CollectionProgress]:
    progress: dict[Rarity, CollectionProgress] = {}
    for rarity, (required, _) in COLLECTION_RULES.items():
        collected = len(state.collections.get(rarity, ()))
        progress[rarity] = CollectionProgress(
            collected=collected,
            required=required,
            completed=rarity in state.completed_collections,
            progress=min(100.0, collected / required * 100),
        )
    return progress


def available_rewards(state: UserState) -> list[CollectionReward]:
    return [reward for reward in state.collection_rewards if not reward.claimed]
