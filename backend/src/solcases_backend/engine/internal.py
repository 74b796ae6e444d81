from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from solcases_backend.engine.models import GlobalStatsView, lamports_to_sol


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class GlobalStats:
    packs_opened: int = 0
    lamports_won: int = 0
    house_profit_lamports: int = 0
    active_users: set[str] = field(default_factory=set)
    user_activity: dict[str, datetime] = field(default_factory=dict)
    last_update: datetime | None = None

    def touch(self, user_id: str, now: datetime) -> None:
        self.active_users.add(user_id)
        self.user_activity[user_id] = now

    def forget(self, user_id: str) -> None:
        self.active_users.discard(user_id)
        self.user_activity.pop(user_id, None)

    def view(self) -> GlobalStatsView:
        return GlobalStatsView(
            packs_opened=self.packs_opened,
            sol_won=lamports_to_sol(self.lamports_won),
            house_profits=lamports_to_sol(self.house_profit_lamports),
            active_users=len(self.active_users),
            last_update=self.last_update,
        )


@dataclass
class ChatConnection:
    connection_id: str
    session_id: str
    username: str
    level: int
    queue: asyncio.Queue[dict[str, Any]]
    joined_at: datetime = field(default_factory=utc_now)
    last_activity: datetime = field(default_factory=utc_now)
    last_message_at: datetime | None = None
