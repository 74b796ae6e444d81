from __future__ import annotations

import secrets
from collections import defaultdict, deque

from solcases_backend.engine.models import SeedPair
from solcases_backend.utils.hashing import sha256_pair


SEED_HISTORY_LIMIT = 10
COMMITMENT_SUFFIX = "pending"


class HashChain:
    """Deterministic digest sequence seeded by a server/client seed pair.

    ``current`` starts at ``H(server_seed || client_seed)`` and every call to
    ``next_digest`` replaces it with ``H(current || discriminator)``.
    """

    __slots__ = ("initial", "current")

    def __init__(self, server_seed: str, client_seed: str) -> None:
        self.initial = sha256_pair(server_seed, client_seed)
        self.current = self.initial

    @classmethod
    def from_seed_pair(cls, seed_pair: SeedPair) -> HashChain:
        return cls(seed_pair.server_seed, seed_pair.client_seed)

    def next_digest(self, discriminator: str) -> str:
        self.current = sha256_pair(self.current, discriminator)
        return self.current


class SeedManager:
    """Per-user server seeds with a bounded history.

    The most recently issued seed stays committed (only its hash is public)
    until ``reveal_seed_pair`` hands it to a resolution. Once revealed a seed
    is never committed again.
    """

    def __init__(self, history_limit: int = SEED_HISTORY_LIMIT) -> None:
        self._history: dict[str, deque[str]] = defaultdict(lambda: deque(maxlen=history_limit))
        self._committed: dict[str, str] = {}

    def issue_server_seed(self, user_key: str) -> str:
        seed = secrets.token_hex(32)
        self._history[user_key].append(seed)
        self._committed[user_key] = seed
        return seed

    def current_commitment(self, user_key: str) -> str | None:
        seed = self._committed.get(user_key)
        if seed is None:
            return None
        return sha256_pair(seed, COMMITMENT_SUFFIX)

    @staticmethod
    def generate_client_seed() -> str:
        return secrets.token_hex(16)

    def reveal_seed_pair(self, user_key: str, client_seed: str | None = None) -> SeedPair:
        if user_key not in self._committed:
            self.issue_server_seed(user_key)
        seed_pair = SeedPair(
            server_seed=self._committed[user_key],
            client_seed=client_seed or self.generate_client_seed(),
        )
        del self._committed[user_key]
        return seed_pair

    def history(self, user_key: str) -> list[str]:
        return list(self._history.get(user_key, ()))

    def forget(self, user_key: str) -> None:
        self._history.pop(user_key, None)
        self._committed.pop(user_key, None)
