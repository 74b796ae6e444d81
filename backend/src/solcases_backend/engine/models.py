from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


ENGINE_VERSION = "0.1.0"
FAIRNESS_VERSION = "sha256-chain-v1"

LAMPORTS_PER_SOL = 1_000_000_000
ROLL_MIN = 1
ROLL_MAX = 10_000
CARDS_PER_PACK = 5
SERVER_SEED_PATTERN = r"^[0-9a-f]{64}$"
CLIENT_SEED_PATTERN = r"^[0-9a-f]{32}$"


class Rarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"
    MYTHIC = "mythic"
    DIVINE = "divine"

    @property
    def rank(self) -> int:
        return _RARITY_ORDER.index(self)


_RARITY_ORDER = list(Rarity)


class PackType(str, Enum):
    STARTER = "starter"
    PRO = "pro"
    ELITE = "elite"
    WHALE = "whale"


class RewardKind(str, Enum):
    SOL = "sol"


class EventType(str, Enum):
    LEVEL_UP = "level_up"
    COLLECTION_COMPLETED = "collection_completed"


def lamports_to_sol(lamports: int) -> float:
    return lamports / LAMPORTS_PER_SOL


def sol_to_lamports(amount: float) -> int:
    return int(round(amount * LAMPORTS_PER_SOL))


class SeedPair(BaseModel):
    server_seed: str = Field(pattern=SERVER_SEED_PATTERN)
    client_seed: str = Field(pattern=CLIENT_SEED_PATTERN)

    model_config = ConfigDict(extra="forbid", frozen=True)


class TierRange(BaseModel):
    rarity: Rarity
    lo: int = Field(ge=ROLL_MIN, le=ROLL_MAX)
    hi: int = Field(ge=ROLL_MIN, le=ROLL_MAX)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _check_bounds(self) -> TierRange:
        if self.lo > self.hi:
            raise ValueError(f"tier {self.rarity.value} has lo {self.lo} > hi {self.hi}")
        return self

    def contains(self, roll: int) -> bool:
        return self.lo <= roll <= self.hi

    @property
    def width(self) -> int:
        return self.hi - self.lo + 1


class PackDefinition(BaseModel):
    pack_type: PackType
    display_name: str
    cost_lamports: int = Field(gt=0)
    tiers: list[TierRange]
    base_multipliers: dict[Rarity, float]
    drop_ranges: dict[Rarity, tuple[float, float]]

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _check_table(self) -> PackDefinition:
        if not self.tiers:
            raise ValueError(f"pack {self.pack_type.value} has no tiers")
        ordered = sorted(self.tiers, key=lambda tier: tier.lo)
        for prev, tier in zip(ordered, ordered[1:]):
            if tier.lo <= prev.hi:
                raise ValueError(
                    f"pack {self.pack_type.value}: {prev.rarity.value} and "
                    f"{tier.rarity.value} ranges overlap",
                )
        for tier in self.tiers:
            if tier.rarity not in self.base_multipliers:
                raise ValueError(f"pack {self.pack_type.value}: no base multiplier for {tier.rarity.value}")
            if tier.rarity not in self.drop_ranges:
                raise ValueError(f"pack {self.pack_type.value}: no drop range for {tier.rarity.value}")
            low, high = self.drop_ranges[tier.rarity]
            if low > high:
                raise ValueError(f"pack {self.pack_type.value}: inverted drop range for {tier.rarity.value}")
        return self

    @property
    def bet_amount(self) -> float:
        return lamports_to_sol(self.cost_lamports)

    @property
    def lowest_rarity(self) -> Rarity:
        return min((tier.rarity for tier in self.tiers), key=lambda rarity: rarity.rank)

    def covers_full_range(self) -> bool:
        return sum(tier.width for tier in self.tiers) == ROLL_MAX - ROLL_MIN + 1


class RewardItem(BaseModel):
    name: str
    color: str
    icon: str

    model_config = ConfigDict(extra="forbid", frozen=True)


class Card(BaseModel):
    rarity: Rarity
    roll: int = Field(ge=ROLL_MIN, le=ROLL_MAX)
    base_multiplier: float
    drop_factor: float
    final_multiplier: float
    win_amount: float
    item: RewardItem

    model_config = ConfigDict(extra="forbid", frozen=True)


class PackResult(BaseModel):
    pack_type: PackType
    bet_amount: float
    cards: list[Card]
    total_multiplier: float
    total_win_amount: float
    seed_pair: SeedPair
    initial_hash: str
    fairness_version: str = FAIRNESS_VERSION

    model_config = ConfigDict(extra="forbid", frozen=True)


class VerifiedCard(BaseModel):
    index: int
    roll_hash: str
    roll: int
    rarity: Rarity
    jitter_hash: str
    drop_factor: float
    final_multiplier: float
    win_amount: float

    model_config = ConfigDict(extra="forbid")


class VerificationResult(BaseModel):
    pack_type: PackType
    bet_amount: float
    initial_hash: str
    cards: list[VerifiedCard]
    total_multiplier: float
    total_win_amount: float
    fairness_version: str = FAIRNESS_VERSION

    model_config = ConfigDict(extra="forbid")


class CollectionRewardSpec(BaseModel):
    type: RewardKind = RewardKind.SOL
    value: float

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def lamports(self) -> int:
        return sol_to_lamports(self.value)


class CollectionReward(BaseModel):
    rarity: Rarity
    reward: CollectionRewardSpec
    completed_at: datetime
    claimed: bool = False
    claimed_at: datetime | None = None

    model_config = ConfigDict(extra="forbid")


class CollectionProgress(BaseModel):
    collected: int
    required: int
    completed: bool
    progress: float

    model_config = ConfigDict(extra="forbid")


class PendingTransaction(BaseModel):
    transaction_id: str
    pack_type: PackType
    bet_lamports: int
    started_at: datetime

    model_config = ConfigDict(extra="forbid")


class UserState(BaseModel):
    session_id: str
    user_id: str | None = None
    wallet_address: str | None = None
    username: str | None = None
    balance_lamports: int = 0
    xp: int = Field(default=0, ge=0)
    level: int = Field(default=1, ge=1)
    collections: dict[Rarity, set[str]] = Field(default_factory=dict)
    completed_collections: set[Rarity] = Field(default_factory=set)
    collection_rewards: list[CollectionReward] = Field(default_factory=list)
    inventory: dict[str, Any] = Field(default_factory=dict)
    pending_transaction: PendingTransaction | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(extra="forbid")

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None and self.wallet_address is not None

    @property
    def balance(self) -> float:
        return lamports_to_sol(self.balance_lamports)


class LevelUpEvent(BaseModel):
    type: Literal[EventType.LEVEL_UP] = EventType.LEVEL_UP
    old_level: int
    new_level: int
    xp_earned: int
    total_xp: int
    xp_for_next_level: int

    model_config = ConfigDict(extra="forbid")


class CollectionCompletedEvent(BaseModel):
    type: Literal[EventType.COLLECTION_COMPLETED] = EventType.COLLECTION_COMPLETED
    rarity: Rarity
    reward: CollectionRewardSpec

    model_config = ConfigDict(extra="forbid")


LedgerEvent = LevelUpEvent | CollectionCompletedEvent


class EngineError(BaseModel):
    code: str
    message: str
    retryable: bool = False

    model_config = ConfigDict(extra="forbid")


class OpenPackResult(BaseModel):
    pack: PackResult
    credited_amount: float
    new_balance: float
    xp_earned: int
    total_xp: int
    current_level: int
    level_up: LevelUpEvent | None = None
    collection_results: list[CollectionCompletedEvent] = Field(default_factory=list)
    next_server_seed_hash: str | None = None

    model_config = ConfigDict(extra="forbid")


class OpenPackResponse(BaseModel):
    success: bool
    error: EngineError | None = None
    result: OpenPackResult | None = None

    model_config = ConfigDict(extra="forbid")


class TransactionStatus(BaseModel):
    has_pending_transaction: bool
    transaction: PendingTransaction | None = None
    age_seconds: float | None = None

    model_config = ConfigDict(extra="forbid")


class LevelInfo(BaseModel):
    level: int
    xp: int
    xp_for_next_level: int
    total_xp_for_next_level: int

    model_config = ConfigDict(extra="forbid")


class GlobalStatsView(BaseModel):
    packs_opened: int
    sol_won: float
    house_profits: float
    active_users: int
    last_update: datetime | None = None

    model_config = ConfigDict(extra="forbid")
