from __future__ import annotations

from abc import ABC, abstractmethod

from solcases_backend.engine.models import UserState


class UserStateRepository(ABC):
    @abstractmethod
    async def load(self, session_id: str) -> UserState | None:
        raise NotImplementedError

    @abstractmethod
    async def save(self, session_id: str, state: UserState) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def all_keys(self) -> list[str]:
        raise NotImplementedError
