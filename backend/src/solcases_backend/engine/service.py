from __future__ import annotations

import asyncio
import logging
import math
import re
from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import uuid4

from solcases_backend.config import ServerConfig
from solcases_backend.engine.fairness import SeedManager
from solcases_backend.engine.internal import GlobalStats, utc_now
from solcases_backend.engine.models import (
    CLIENT_SEED_PATTERN,
    LAMPORTS_PER_SOL,
    CollectionProgress,
    CollectionReward,
    GlobalStatsView,
    LevelInfo,
    OpenPackResult,
    PackType,
    PendingTransaction,
    Rarity,
    TransactionStatus,
    UserState,
    lamports_to_sol,
    sol_to_lamports,
)
from solcases_backend.engine.packs import UnknownPackType, get_pack
from solcases_backend.engine.progression import (
    CollectionClaimError,
    apply_pack_result,
    available_rewards,
    calculate_level,
    claim_collection_reward,
    collection_progress,
    total_xp_for_level,
    xp_for_next_level,
)
from solcases_backend.engine.resolver import PackResolver
from solcases_backend.repo.base import UserStateRepository
from solcases_backend.wallets.base import WalletProvider, WalletProviderError


logger = logging.getLogger(__name__)

MAX_USERNAME_LENGTH = 20


class EngineRejectedAction(Exception):
    def __init__(self, code: str, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.retryable = retryable


class CaseEngineService:
    def __init__(
        self,
        repository: UserStateRepository,
        wallet_provider: WalletProvider,
        config: ServerConfig | None = None,
        resolver: PackResolver | None = None,
        seed_manager: SeedManager | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo = repository
        self._wallets = wallet_provider
        self._config = config or ServerConfig()
        self._resolver = resolver or PackResolver()
        self._seeds = seed_manager or SeedManager()
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}
        self._stats = GlobalStats()

    @property
    def config(self) -> ServerConfig:
        return self._config

    def _lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    async def find_state(self, session_id: str) -> UserState | None:
        return await self._repo.load(session_id)

    async def get_state(self, session_id: str) -> UserState:
        state = await self._repo.load(session_id)
        if state is None:
            return UserState(session_id=session_id)
        return state

    async def create_wallet(self, session_id: str) -> tuple[UserState, bool]:
        async with self._lock(session_id):
            state = await self.get_state(session_id)
            if state.is_authenticated:
                logger.info("Returning existing wallet for user %s", state.user_id)
                return state, False

            handle = f"user{int(self._clock().timestamp() * 1000)}"
            try:
                wallet = await self._wallets.create_wallet(handle)
            except WalletProviderError as exc:
                logger.exception("Wallet creation failed for session %s", session_id)
                raise EngineRejectedAction(
                    "WALLET_CREATION_FAILED",
                    "Failed to create wallet. Please try again.",
                    retryable=True,
                ) from exc

            state.user_id = wallet.user_id
            state.wallet_address = wallet.address
            state.created_at = self._clock()
            state.balance_lamports = await self._reconcile_balance(wallet.address)
            await self._repo.save(session_id, state)
            logger.info("Created wallet %s for user %s", wallet.address, wallet.user_id)
            return state, True

    async def _reconcile_balance(self, address: str) -> int:
        try:
            return await self._wallets.get_balance(address)
        except WalletProviderError:
            logger.warning("Could not fetch balance for %s, starting ledger at zero", address, exc_info=True)
            return 0

    async def touch_user(self, session_id: str) -> UserState:
        state = await self.get_state(session_id)
        if state.user_id is not None:
            self._stats.touch(state.user_id, self._clock())
        return state

    async def save_username(self, session_id: str, username: str) -> str:
        cleaned = username.strip()
        if not cleaned:
            raise EngineRejectedAction("INVALID_USERNAME", "Invalid username")
        if len(cleaned) > MAX_USERNAME_LENGTH:
            raise EngineRejectedAction("INVALID_USERNAME", "Username too long")

        async with self._lock(session_id):
            state = await self.get_state(session_id)
            state.username = cleaned
            await self._repo.save(session_id, state)
        logger.info("Username saved: %s for session %s", cleaned, session_id)
        return cleaned

    async def clear_session(self, session_id: str) -> None:
        async with self._lock(session_id):
            state = await self._repo.load(session_id)
            if state is not None and state.user_id is not None:
                self._stats.forget(state.user_id)
            await self._repo.delete(session_id)
            self._seeds.forget(session_id)
        self._locks.pop(session_id, None)

    async def deposit(self, session_id: str, amount: float) -> UserState:
        if not math.isfinite(amount) or amount <= 0:
            raise EngineRejectedAction("INVALID_AMOUNT", "Invalid amount")
        await self._require_authenticated(session_id)
        async with self._lock(session_id):
            state = await self._require_authenticated(session_id)
            state.balance_lamports += sol_to_lamports(amount)
            await self._repo.save(session_id, state)
        logger.info("Deposit of %.4f SOL credited to %s", amount, state.wallet_address)
        return state

    async def get_level(self, session_id: str) -> LevelInfo:
        state = await self.get_state(session_id)
        level = calculate_level(state.xp)
        return LevelInfo(
            level=level,
            xp=state.xp,
            xp_for_next_level=xp_for_next_level(level),
            total_xp_for_next_level=total_xp_for_level(level + 1),
        )

    async def get_inventory(self, session_id: str) -> dict[str, Any]:
        state = await self.get_state(session_id)
        if not state.is_authenticated:
            return {}
        return state.inventory

    async def save_inventory(self, session_id: str, inventory: dict[str, Any]) -> None:
        await self._require_authenticated(session_id)
        async with self._lock(session_id):
            state = await self._require_authenticated(session_id)
            state.inventory = inventory
            await self._repo.save(session_id, state)
        logger.info("Inventory saved for session %s (%d entries)", session_id, len(inventory))

    async def commitment(self, session_id: str) -> str:
        await self._require_authenticated(session_id)
        commitment = self._seeds.current_commitment(session_id)
        if commitment is None:
            self._seeds.issue_server_seed(session_id)
            commitment = self._seeds.current_commitment(session_id)
        return commitment

    async def open_pack(
        self,
        session_id: str,
        pack_type: PackType | str,
        client_seed: str | None = None,
    ) -> OpenPackResult:
        try:
            pack = get_pack(pack_type)
        except UnknownPackType as exc:
            raise EngineRejectedAction("UNKNOWN_PACK", f"Unknown pack type: {pack_type}") from exc
        if client_seed is not None and re.fullmatch(CLIENT_SEED_PATTERN, client_seed) is None:
            raise EngineRejectedAction("INVALID_CLIENT_SEED", "Client seed must be 32 lowercase hex characters")

        bet_lamports = pack.cost_lamports
        await self._require_authenticated(session_id)
        lock = self._lock(session_id)

        async with lock:
            state = await self._require_authenticated(session_id)
            if state.pending_transaction is not None:
                logger.warning(
                    "Rejected concurrent open for session %s, transaction %s in flight",
                    session_id,
                    state.pending_transaction.transaction_id,
                )
                raise EngineRejectedAction(
                    "TRANSACTION_IN_PROGRESS",
                    "Transaction already in progress. Please wait for completion.",
                    retryable=True,
                )
            if state.balance_lamports < bet_lamports:
                raise EngineRejectedAction("INSUFFICIENT_BALANCE", "Insufficient balance")

            pending = PendingTransaction(
                transaction_id=uuid4().hex,
                pack_type=pack.pack_type,
                bet_lamports=bet_lamports,
                started_at=self._clock(),
            )
            state.balance_lamports -= bet_lamports
            state.pending_transaction = pending
            await self._repo.save(session_id, state)
            logger.info(
                "Balance locked for transaction %s: %.4f SOL",
                pending.transaction_id,
                lamports_to_sol(bet_lamports),
            )

        try:
            seed_pair = self._seeds.reveal_seed_pair(session_id, client_seed)
            result = await asyncio.to_thread(
                self._resolver.resolve_pack,
                pack.bet_amount,
                pack.pack_type,
                seed_pair,
            )

            async with lock:
                state = await self._require_authenticated(session_id)
                current = state.pending_transaction
                if current is None or current.transaction_id != pending.transaction_id:
                    raise EngineRejectedAction(
                        "TRANSACTION_EXPIRED",
                        "Transaction expired before it could complete.",
                    )

                outcome = apply_pack_result(state, result, bet_lamports, self._clock())
                credited = math.floor(result.total_win_amount * self._config.payout_share * LAMPORTS_PER_SOL)
                committed = outcome.state
                committed.balance_lamports += credited
                committed.pending_transaction = None
                await self._repo.save(session_id, committed)
        except EngineRejectedAction:
            await self._restore_pending(session_id, pending.transaction_id)
            raise
        except Exception as exc:
            await self._restore_pending(session_id, pending.transaction_id)
            logger.exception("Case opening failed for session %s", session_id)
            raise EngineRejectedAction("RESOLUTION_FAILED", "Failed to open case") from exc
        finally:
            # A revealed seed is spent whether or not the open settled.
            if self._seeds.current_commitment(session_id) is None:
                self._seeds.issue_server_seed(session_id)

        self._record_open(committed, bet_lamports, credited)
        for completion in outcome.completions:
            logger.info(
                "Session %s completed %s collection, reward %s SOL",
                session_id,
                completion.rarity.value,
                completion.reward.value,
            )

        return OpenPackResult(
            pack=result,
            credited_amount=lamports_to_sol(credited),
            new_balance=committed.balance,
            xp_earned=outcome.xp_earned,
            total_xp=committed.xp,
            current_level=committed.level,
            level_up=outcome.level_up,
            collection_results=outcome.completions,
            next_server_seed_hash=self._seeds.current_commitment(session_id),
        )

    def _record_open(self, state: UserState, bet_lamports: int, credited: int) -> None:
        now = self._clock()
        self._stats.packs_opened += 1
        self._stats.lamports_won += credited
        self._stats.house_profit_lamports += math.floor(bet_lamports * self._config.house_fee_share)
        self._stats.last_update = now
        if state.user_id is not None:
            self._stats.touch(state.user_id, now)

    async def _restore_pending(self, session_id: str, transaction_id: str) -> None:
        async with self._lock(session_id):
            state = await self._repo.load(session_id)
            if state is None or state.pending_transaction is None:
                return
            if state.pending_transaction.transaction_id != transaction_id:
                return
            self._release_pending(state, state.pending_transaction)
            await self._repo.save(session_id, state)

    def _release_pending(self, state: UserState, pending: PendingTransaction) -> int:
        state.balance_lamports += pending.bet_lamports
        state.pending_transaction = None
        logger.info(
            "Transaction %s released, balance restored: +%.4f SOL",
            pending.transaction_id,
            lamports_to_sol(pending.bet_lamports),
        )
        return pending.bet_lamports

    async def transaction_status(self, session_id: str) -> TransactionStatus:
        state = await self.get_state(session_id)
        pending = state.pending_transaction
        if not state.is_authenticated or pending is None:
            return TransactionStatus(has_pending_transaction=False)
        return TransactionStatus(
            has_pending_transaction=True,
            transaction=pending,
            age_seconds=(self._clock() - pending.started_at).total_seconds(),
        )

    async def force_complete_transaction(self, session_id: str) -> UserState:
        await self._require_authenticated(session_id)
        async with self._lock(session_id):
            state = await self._require_authenticated(session_id)
            pending = state.pending_transaction
            if pending is None:
                raise EngineRejectedAction("NO_PENDING_TRANSACTION", "No pending transaction found")
            age = (self._clock() - pending.started_at).total_seconds()
            if age < self._config.force_complete_min_age_seconds:
                raise EngineRejectedAction(
                    "TRANSACTION_NOT_STALE",
                    "Transaction is not stale enough to force complete",
                    retryable=True,
                )
            logger.info("Force completing stale transaction %s for user %s", pending.transaction_id, state.user_id)
            self._release_pending(state, pending)
            await self._repo.save(session_id, state)
            return state

    async def sweep_stale_transactions(self) -> int:
        now = self._clock()
        released = 0
        for session_id in await self._repo.all_keys():
            async with self._lock(session_id):
                state = await self._repo.load(session_id)
                if state is None or state.pending_transaction is None:
                    continue
                age = (now - state.pending_transaction.started_at).total_seconds()
                if age <= self._config.stale_transaction_seconds:
                    continue
                logger.info(
                    "Cleaning up stale transaction for session %s: %s",
                    session_id,
                    state.pending_transaction.transaction_id,
                )
                self._release_pending(state, state.pending_transaction)
                await self._repo.save(session_id, state)
                released += 1
        return released

    async def run_stale_sweeper(self) -> None:
        while True:
            await asyncio.sleep(self._config.sweep_interval_seconds)
            try:
                released = await self.sweep_stale_transactions()
            except Exception:
                logger.exception("Stale transaction sweep failed")
                continue
            if released:
                logger.info("Released %d stale transactions", released)

    async def get_collections(
        self,
        session_id: str,
    ) -> tuple[dict[Rarity, CollectionProgress], list[Rarity], list[CollectionReward]]:
        state = await self.get_state(session_id)
        if not state.is_authenticated:
            return {}, [], []
        completed = sorted(state.completed_collections, key=lambda rarity: rarity.rank)
        return collection_progress(state), completed, available_rewards(state)

    async def claim_collection_reward(self, session_id: str, rarity: Rarity) -> tuple[CollectionReward, UserState]:
        await self._require_authenticated(session_id)
        async with self._lock(session_id):
            state = await self._require_authenticated(session_id)
            try:
                reward = claim_collection_reward(state, rarity, self._clock())
            except CollectionClaimError as exc:
                raise EngineRejectedAction(exc.code, exc.message) from exc
            state.balance_lamports += reward.reward.lamports
            await self._repo.save(session_id, state)
        logger.info("Collection reward claimed: %s SOL for %s collection", reward.reward.value, rarity.value)
        return reward, state

    def stats(self) -> GlobalStatsView:
        return self._stats.view()

    async def close(self) -> None:
        await self._wallets.aclose()

    async def _require_authenticated(self, session_id: str) -> UserState:
        state = await self._repo.load(session_id)
        if state is None or not state.is_authenticated:
            raise EngineRejectedAction("NOT_AUTHENTICATED", "Not authenticated")
        return state
