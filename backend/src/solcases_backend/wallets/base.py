from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict


class WalletProviderError(Exception):
    pass


class WalletInfo(BaseModel):
    user_id: str
    address: str

    model_config = ConfigDict(extra="forbid", frozen=True)


class WalletProvider(ABC):
    @abstractmethod
    async def create_wallet(self, handle: str) -> WalletInfo:
        raise NotImplementedError

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        """Return the on-chain balance of ``address`` in lamports."""
        raise NotImplementedError

    async def aclose(self) -> None:
        return None
