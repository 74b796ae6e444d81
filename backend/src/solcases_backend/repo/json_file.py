from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path

from pydantic import TypeAdapter

from solcases_backend.engine.models import UserState
from solcases_backend.repo.base import UserStateRepository


logger = logging.getLogger(__name__)

_STATES = TypeAdapter(dict[str, UserState])


class JsonFileUserStateRepository(UserStateRepository):
    """Keeps every session in memory and rewrites one JSON file on each save."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._states: dict[str, UserState] = {}
        self._write_lock = asyncio.Lock()
        if path.exists():
            self._states = _STATES.validate_json(path.read_bytes())
            logger.info("Loaded %d sessions from %s", len(self._states), path)

    async def load(self, session_id: str) -> UserState | None:
        state = self._states.get(session_id)
        if state is None:
            return None
        return state.model_copy(deep=True)

    async def save(self, session_id: str, state: UserState) -> None:
        self._states[session_id] = state.model_copy(deep=True)
        await self._flush()

    async def delete(self, session_id: str) -> None:
        if self._states.pop(session_id, None) is not None:
            await self._flush()

    async def all_keys(self) -> list[str]:
        return list(self._states)

    async def _flush(self) -> None:
        payload = _STATES.dump_python(self._states, mode="json")
        async with self._write_lock:
            await asyncio.to_thread(self._write, payload)

    def _write(self, payload: dict) -> None:
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload, indent=2))
        os.replace(tmp_path, self._path)
