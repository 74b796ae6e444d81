from __future__ import annotations

from solcases_backend.engine.models import UserState
from solcases_backend.repo.base import UserStateRepository


class InMemoryUserStateRepository(UserStateRepository):
    def __init__(self) -> None:
        self._states: dict[str, UserState] = {}

    async def load(self, session_id: str) -> UserState | None:
        state = self._states.get(session_id)
        if state is None:
            return None
        return state.model_copy(deep=True)

    async def save(self, session_id: str, state: UserState) -> None:
        self._states[session_id] = state.model_copy(deep=True)

    async def delete(self, session_id: str) -> None:
        self._states.pop(session_id, None)

    async def all_keys(self) -> list[str]:
        return list(self._states)
