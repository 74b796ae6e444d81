from __future__ import annotations

import hashlib
from uuid import uuid4

from solcases_backend.wallets.base import WalletInfo, WalletProvider, WalletProviderError


_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def _fake_address(seed: str) -> str:
    digest = int.from_bytes(hashlib.sha256(seed.encode("utf-8")).digest(), byteorder="big")
    chars = []
    for _ in range(44):
        digest, index = divmod(digest, 58)
        chars.append(_BASE58_ALPHABET[index])
    return "".join(chars)


class InMemoryWalletProvider(WalletProvider):
    """Custody stand-in for local runs; balances are whatever the caller funds."""

    def __init__(self, starting_balance_lamports: int = 0) -> None:
        self._starting_balance = starting_balance_lamports
        self._balances: dict[str, int] = {}

    async def create_wallet(self, handle: str) -> WalletInfo:
        user_id = f"usr_{uuid4().hex[:16]}"
        address = _fake_address(f"{handle}:{user_id}")
        self._balances[address] = self._starting_balance
        return WalletInfo(user_id=user_id, address=address)

    async def get_balance(self, address: str) -> int:
        if address not in self._balances:
            raise WalletProviderError(f"unknown wallet {address}")
        return self._balances[address]

    def fund(self, address: str, lamports: int) -> None:
        self._balances[address] = self._balances.get(address, 0) + lamports
