from __future__ import annotations

import logging
import secrets

from fastapi import Request, Response

from solcases_backend.config import ServerConfig
from solcases_backend.engine.chat import ChatRelay
from solcases_backend.engine.service import CaseEngineService
from solcases_backend.repo.base import UserStateRepository
from solcases_backend.repo.in_memory import InMemoryUserStateRepository
from solcases_backend.repo.json_file import JsonFileUserStateRepository
from solcases_backend.wallets.base import WalletProvider
from solcases_backend.wallets.in_memory import InMemoryWalletProvider
from solcases_backend.wallets.privy import PrivyWalletProvider


logger = logging.getLogger(__name__)

_engine_service: CaseEngineService | None = None
_chat_relay: ChatRelay | None = None


def build_repository(config: ServerConfig) -> UserStateRepository:
    if config.sessions_file is None:
        return InMemoryUserStateRepository()
    return JsonFileUserStateRepository(config.sessions_file)


def build_wallet_provider(config: ServerConfig) -> WalletProvider:
    if not config.uses_privy:
        logger.warning("No Privy credentials configured, using in-memory wallets")
        return InMemoryWalletProvider(starting_balance_lamports=config.dev_wallet_balance_lamports)
    return PrivyWalletProvider(
        app_id=config.privy_app_id,
        app_secret=config.privy_app_secret,
        api_base=config.privy_api_base,
        rpc_url=config.solana_rpc_url,
    )


def install(engine_service: CaseEngineService, chat_relay: ChatRelay) -> None:
    global _engine_service, _chat_relay
    _engine_service = engine_service
    _chat_relay = chat_relay


def get_engine_service() -> CaseEngineService:
    if _engine_service is None:
        raise RuntimeError("CaseEngineService not initialized")
    return _engine_service


def get_chat_relay() -> ChatRelay:
    if _chat_relay is None:
        raise RuntimeError("ChatRelay not initialized")
    return _chat_relay


def get_session_id(request: Request, response: Response) -> str:
    """Resolve the caller's session id and refresh the session cookie."""
    config = get_engine_service().config
    session_id = request.headers.get(config.session_header_name) or request.cookies.get(
        config.session_cookie_name,
    )
    if not session_id:
        session_id = secrets.token_urlsafe(16)
    response.set_cookie(
        config.session_cookie_name,
        session_id,
        max_age=config.session_cookie_max_age,
        httponly=True,
        samesite="lax",
        secure=True,
        path="/",
    )
    return session_id
