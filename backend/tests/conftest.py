from __future__ import annotations

import random
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone

import pytest

from solcases_backend.config import ServerConfig
from solcases_backend.engine.models import SeedPair, UserState
from solcases_backend.engine.resolver import PackResolver
from solcases_backend.engine.service import CaseEngineService
from solcases_backend.repo.in_memory import InMemoryUserStateRepository
from solcases_backend.wallets.in_memory import InMemoryWalletProvider


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repository() -> InMemoryUserStateRepository:
    return InMemoryUserStateRepository()


@pytest.fixture
def wallets() -> InMemoryWalletProvider:
    return InMemoryWalletProvider()


@pytest.fixture
def resolver() -> PackResolver:
    return PackResolver(rng=random.Random(7))


@pytest.fixture
def seed_pair() -> SeedPair:
    return SeedPair(server_seed="ab" * 32, client_seed="cd" * 16)


@pytest.fixture
def engine(
    repository: InMemoryUserStateRepository,
    wallets: InMemoryWalletProvider,
    resolver: PackResolver,
    clock: FakeClock,
) -> CaseEngineService:
    return CaseEngineService(repository, wallets, ServerConfig(), resolver=resolver, clock=clock)


@pytest.fixture
def open_account(engine: CaseEngineService) -> Callable[..., Awaitable[UserState]]:
    async def _open(session_id: str = "session-1", deposit: float = 1.0) -> UserState:
        state, _ = await engine.create_wallet(session_id)
        if deposit > 0:
            state = await engine.deposit(session_id, deposit)
        return state

    return _open
