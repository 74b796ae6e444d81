from __future__ import annotations

import math
import random

from solcases_backend.engine.fairness import HashChain
from solcases_backend.engine.models import (
    CARDS_PER_PACK,
    ROLL_MAX,
    Card,
    PackDefinition,
    PackResult,
    PackType,
    Rarity,
    RewardItem,
    SeedPair,
    VerificationResult,
    VerifiedCard,
)
from solcases_backend.engine.packs import ITEM_CATALOG, get_pack
from solcases_backend.utils.hashing import hash_to_unit


NEXT_SLOT_DISCRIMINATOR = "next"


def roll_from_digest(digest: str) -> int:
    roll = math.floor(hash_to_unit(digest) * ROLL_MAX) + 1
    return min(roll, ROLL_MAX)


def resolve_tier(pack_type: PackType | str, roll: int) -> Rarity:
    return resolve_tier_for(get_pack(pack_type), roll)


def resolve_tier_for(pack: PackDefinition, roll: int) -> Rarity:
    for tier in pack.tiers:
        if tier.contains(roll):
            return tier.rarity
    return pack.lowest_rarity


def drop_factor_for(pack: PackDefinition, rarity: Rarity, unit: float) -> float:
    low, high = pack.drop_ranges[rarity]
    return low + unit * (high - low)


def _walk_chain(pack: PackDefinition, bet_amount: float, seed_pair: SeedPair) -> tuple[str, list[VerifiedCard]]:
    if not bet_amount > 0:
        raise ValueError(f"bet amount must be positive, got {bet_amount}")

    chain = HashChain.from_seed_pair(seed_pair)
    slots: list[VerifiedCard] = []
    for index in range(CARDS_PER_PACK):
        roll_hash = chain.current
        roll = roll_from_digest(roll_hash)
        rarity = resolve_tier_for(pack, roll)

        jitter_hash = chain.next_digest(str(index))
        drop_factor = drop_factor_for(pack, rarity, hash_to_unit(jitter_hash))
        final_multiplier = pack.base_multipliers[rarity] * drop_factor

        slots.append(
            VerifiedCard(
                index=index,
                roll_hash=roll_hash,
                roll=roll,
                rarity=rarity,
                jitter_hash=jitter_hash,
                drop_factor=drop_factor,
                final_multiplier=final_multiplier,
                win_amount=final_multiplier * bet_amount,
            ),
        )
        chain.next_digest(NEXT_SLOT_DISCRIMINATOR)
    return chain.initial, slots


def verify_pack(
    server_seed: str,
    client_seed: str,
    pack_type: PackType | str,
    bet_amount: float,
) -> VerificationResult:
    """Replay the monetary part of a pack opening from revealed seeds."""
    pack = get_pack(pack_type)
    seed_pair = SeedPair(server_seed=server_seed, client_seed=client_seed)
    initial_hash, slots = _walk_chain(pack, bet_amount, seed_pair)
    return VerificationResult(
        pack_type=pack.pack_type,
        bet_amount=bet_amount,
        initial_hash=initial_hash,
        cards=slots,
        total_multiplier=sum(slot.final_multiplier for slot in slots),
        total_win_amount=sum(slot.win_amount for slot in slots),
    )


class PackResolver:
    """Turns a bet and seed pair into a pack result.

    Item selection uses ``rng`` and sits outside the hash chain, so it does
    not influence rolls or payouts.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def choose_item(self, rarity: Rarity) -> RewardItem:
        return self._rng.choice(ITEM_CATALOG[rarity])

    def resolve_pack(
        self,
        bet_amount: float,
        pack_type: PackType | str,
        seed_pair: SeedPair,
    ) -> PackResult:
        pack = get_pack(pack_type)
        initial_hash, slots = _walk_chain(pack, bet_amount, seed_pair)
        cards = [
            Card(
                rarity=slot.rarity,
                roll=slot.roll,
                base_multiplier=pack.base_multipliers[slot.rarity],
                drop_factor=slot.drop_factor,
                final_multiplier=slot.final_multiplier,
                win_amount=slot.win_amount,
                item=self.choose_item(slot.rarity),
            )
            for slot in slots
        ]
        return PackResult(
            pack_type=pack.pack_type,
            bet_amount=bet_amount,
            cards=cards,
            total_multiplier=sum(card.final_multiplier for card in cards),
            total_win_amount=sum(card.win_amount for card in cards),
            seed_pair=seed_pair,
            initial_hash=initial_hash,
        )
