from __future__ import annotations

from solcases_backend.engine.models import (
    CollectionRewardSpec,
    PackDefinition,
    PackType,
    Rarity,
    RewardItem,
    TierRange,
)


class UnknownPackType(ValueError):
    pass


STANDARD_DROP_RANGE = (0.9, 1.1)


def _drop_ranges() -> dict[Rarity, tuple[float, float]]:
    return {rarity: STANDARD_DROP_RANGE for rarity in Rarity}


PACKS: dict[PackType, PackDefinition] = {
    PackType.STARTER: PackDefinition(
        pack_type=PackType.STARTER,
        display_name="Starter Pack",
        cost_lamports=1_000_000,
        tiers=[
            TierRange(rarity=Rarity.COMMON, lo=1, hi=4500),
            TierRange(rarity=Rarity.UNCOMMON, lo=4501, hi=6500),
            TierRange(rarity=Rarity.RARE, lo=6501, hi=9000),
            TierRange(rarity=Rarity.EPIC, lo=9001, hi=9800),
            TierRange(rarity=Rarity.LEGENDARY, lo=9801, hi=10000),
        ],
        base_multipliers={
            Rarity.COMMON: 0.08,
            Rarity.UNCOMMON: 0.12,
            Rarity.RARE: 0.18,
            Rarity.EPIC: 0.35,
            Rarity.LEGENDARY: 80.0,
            Rarity.MYTHIC: 0.7,
            Rarity.DIVINE: 0.5,
        },
        drop_ranges=_drop_ranges(),
    ),
    PackType.PRO: PackDefinition(
        pack_type=PackType.PRO,
        display_name="Pro Pack",
        cost_lamports=10_000_000,
        tiers=[
            TierRange(rarity=Rarity.UNCOMMON, lo=1, hi=6000),
            TierRange(rarity=Rarity.RARE, lo=6001, hi=9000),
            TierRange(rarity=Rarity.EPIC, lo=9001, hi=9800),
            TierRange(rarity=Rarity.LEGENDARY, lo=9801, hi=9980),
            TierRange(rarity=Rarity.MYTHIC, lo=9981, hi=10000),
        ],
        base_multipliers={
            Rarity.COMMON: 0.08,
            Rarity.UNCOMMON: 0.12,
            Rarity.RARE: 0.18,
            Rarity.EPIC: 0.35,
            Rarity.LEGENDARY: 0.9,
            Rarity.MYTHIC: 70.0,
            Rarity.DIVINE: 0.5,
        },
        drop_ranges=_drop_ranges(),
    ),
    PackType.ELITE: PackDefinition(
        pack_type=PackType.ELITE,
        display_name="Elite Pack",
        cost_lamports=100_000_000,
        tiers=[
            TierRange(rarity=Rarity.RARE, lo=1, hi=5500),
            TierRange(rarity=Rarity.EPIC, lo=5501, hi=9000),
            TierRange(rarity=Rarity.LEGENDARY, lo=9001, hi=9800),
            TierRange(rarity=Rarity.MYTHIC, lo=9801, hi=9980),
            TierRange(rarity=Rarity.DIVINE, lo=9981, hi=10000),
        ],
        base_multipliers={
            Rarity.COMMON: 0.08,
            Rarity.UNCOMMON: 0.12,
            Rarity.RARE: 0.15,
            Rarity.EPIC: 0.28,
            Rarity.LEGENDARY: 0.95,
            Rarity.MYTHIC: 3.0,
            Rarity.DIVINE: 50.0,
        },
        drop_ranges=_drop_ranges(),
    ),
    PackType.WHALE: PackDefinition(
        pack_type=PackType.WHALE,
        display_name="Whale Pack",
        cost_lamports=1_000_000_000,
        tiers=[
            TierRange(rarity=Rarity.EPIC, lo=1, hi=5000),
            TierRange(rarity=Rarity.LEGENDARY, lo=5001, hi=8500),
            TierRange(rarity=Rarity.MYTHIC, lo=8501, hi=9700),
            TierRange(rarity=Rarity.DIVINE, lo=9701, hi=10000),
        ],
        base_multipliers={
            Rarity.COMMON: 0.08,
            Rarity.UNCOMMON: 0.12,
            Rarity.RARE: 0.18,
            Rarity.EPIC: 0.15,
            Rarity.LEGENDARY: 0.35,
            Rarity.MYTHIC: 0.25,
            Rarity.DIVINE: 5.0,
        },
        drop_ranges=_drop_ranges(),
    ),
}


def get_pack(pack_type: PackType | str) -> PackDefinition:
    try:
        return PACKS[PackType(pack_type)]
    except (KeyError, ValueError) as exc:
        raise UnknownPackType(f"unknown pack type: {pack_type!r}") from exc


COLORS = ("red", "blue", "green", "yellow", "pink")


def _colored(shapes: list[tuple[str, str | dict[str, str]]]) -> list[RewardItem]:
    return [
        RewardItem(
            name=f"{color}-{shape}",
            color=color,
            icon=icon[color] if isinstance(icon, dict) else icon,
        )
        for shape, icon in shapes
        for color in COLORS
    ]


ITEM_CATALOG: dict[Rarity, list[RewardItem]] = {
    Rarity.COMMON: _colored(
        [
            ("cube", {"red": "🔴", "blue": "🔵", "green": "🟢", "yellow": "🟡", "pink": "🩷"}),
            ("dice", "🎲"),
            ("banana", "🍌"),
            ("fish", "🐟"),
            ("rock", "🪨"),
            ("cup", "🥤"),
            ("leaf", "🍃"),
            ("cloud", "☁️"),
            ("mushroom", "🍄"),
            ("toiletpaper", "🧻"),
        ],
    ),
    Rarity.UNCOMMON: _colored(
        [
            ("bolt", "⚡"),
            ("chip", "🎰"),
            ("lightbulb", "💡"),
            ("key", "🔑"),
            ("star", "⭐"),
            ("magnet", "🧲"),
        ],
    ),
    Rarity.RARE: _colored(
        [
            ("sword", "⚔️"),
            ("controller", "🎮"),
            ("cookie", "🍪"),
            ("pill", "💊"),
        ],
    ),
    Rarity.EPIC: _colored(
        [
            ("burger", "🍔"),
            ("flame", "🔥"),
            ("rifle", "🔫"),
        ],
    ),
    Rarity.LEGENDARY: _colored(
        [
            ("dragon", "🐉"),
            ("rocket", "🚀"),
        ],
    ),
    Rarity.MYTHIC: _colored(
        [
            ("trophy", "🏆"),
            ("gem", "💎"),
        ],
    ),
    Rarity.DIVINE: [
        RewardItem(name="solana-throne", color="gold", icon="👑"),
        RewardItem(name="solana-crown", color="gold", icon="👑"),
        RewardItem(name="solana-blade", color="gold", icon="⚔️"),
        RewardItem(name="solana-orb", color="gold", icon="🔮"),
        RewardItem(name="solana-relic", color="gold", icon="🏛️"),
    ],
}


# Required distinct items per rarity and the SOL reward for completing it.
COLLECTION_RULES: dict[Rarity, tuple[int, CollectionRewardSpec]] = {
    Rarity.COMMON: (50, CollectionRewardSpec(value=0.001)),
    Rarity.UNCOMMON: (30, CollectionRewardSpec(value=0.005)),
    Rarity.RARE: (20, CollectionRewardSpec(value=0.02)),
    Rarity.EPIC: (15, CollectionRewardSpec(value=0.05)),
    Rarity.LEGENDARY: (10, CollectionRewardSpec(value=0.1)),
    Rarity.MYTHIC: (10, CollectionRewardSpec(value=0.2)),
    Rarity.DIVINE: (5, CollectionRewardSpec(value=0.5)),
}
