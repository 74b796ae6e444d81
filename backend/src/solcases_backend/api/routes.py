from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Response, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field

from solcases_backend.api.deps import get_chat_relay, get_engine_service, get_session_id
from solcases_backend.engine.chat import ChatRelay
from solcases_backend.engine.models import (
    CLIENT_SEED_PATTERN,
    ENGINE_VERSION,
    CollectionProgress,
    CollectionReward,
    CollectionRewardSpec,
    EngineError,
    GlobalStatsView,
    LevelInfo,
    OpenPackResponse,
    PackType,
    Rarity,
    TransactionStatus,
    VerificationResult,
)
from solcases_backend.engine.packs import get_pack
from solcases_backend.engine.resolver import verify_pack
from solcases_backend.engine.service import CaseEngineService, EngineRejectedAction


router = APIRouter(prefix="/api")
ws_router = APIRouter()

STATUS_BY_CODE = {
    "NOT_AUTHENTICATED": 401,
    "UNKNOWN_PACK": 400,
    "INSUFFICIENT_BALANCE": 400,
    "TRANSACTION_IN_PROGRESS": 409,
    "TRANSACTION_EXPIRED": 409,
    "RESOLUTION_FAILED": 500,
}


def status_for(exc: EngineRejectedAction) -> int:
    return STATUS_BY_CODE.get(exc.code, 400)


def engine_error(exc: EngineRejectedAction) -> EngineError:
    return EngineError(code=exc.code, message=exc.message, retryable=exc.retryable)


class ApiModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class WalletResponse(ApiModel):
    success: bool
    session_id: str
    user_id: str | None = None
    wallet_address: str | None = None
    username: str | None = None
    message: str | None = None


class SaveUsernameRequest(ApiModel):
    username: str


class SaveUsernameResponse(ApiModel):
    success: bool
    username: str


class StatusResponse(ApiModel):
    success: bool
    message: str


class BalanceResponse(ApiModel):
    success: bool
    balance: float
    wallet_address: str | None = None
    source: str


class DepositRequest(ApiModel):
    amount: float = Field(allow_inf_nan=False)


class DepositResponse(ApiModel):
    success: bool
    new_balance: float
    deposited_amount: float


class LevelResponse(ApiModel):
    success: bool
    level: LevelInfo


class InventoryRequest(ApiModel):
    inventory: dict[str, Any]


class InventoryResponse(ApiModel):
    success: bool
    inventory: dict[str, Any]


class OpenCaseRequest(ApiModel):
    case_type: PackType
    client_seed: str | None = Field(default=None, pattern=CLIENT_SEED_PATTERN)


class CollectionsResponse(ApiModel):
    success: bool
    progress: dict[Rarity, CollectionProgress]
    completed_collections: list[Rarity]
    available_rewards: list[CollectionReward]


class ClaimRequest(ApiModel):
    rarity: Rarity


class ClaimResponse(ApiModel):
    success: bool
    reward: CollectionRewardSpec
    new_balance: float


class CommitmentResponse(ApiModel):
    success: bool
    server_seed_hash: str


class VerifyRequest(ApiModel):
    server_seed: str
    client_seed: str
    case_type: PackType
    bet_amount: float | None = None


class TransactionStatusResponse(ApiModel):
    success: bool
    status: TransactionStatus


class ForceCompleteResponse(ApiModel):
    success: bool
    message: str
    new_balance: float


class StatsResponse(ApiModel):
    success: bool
    stats: GlobalStatsView


@router.post("/create-wallet", response_model=WalletResponse)
async def create_wallet(
    engine: CaseEngineService = Depends(get_engine_service),
    session_id: str = Depends(get_session_id),
) -> WalletResponse:
    state, created = await engine.create_wallet(session_id)
    return WalletResponse(
        success=True,
        session_id=session_id,
        user_id=state.user_id,
        wallet_address=state.wallet_address,
        username=state.username,
        message="Solana wallet created successfully!" if created else "Existing wallet found",
    )


@router.get("/wallet", response_model=WalletResponse)
async def get_wallet(
    engine: CaseEngineService = Depends(get_engine_service),
    session_id: str = Depends(get_session_id),
) -> WalletResponse:
    state = await engine.touch_user(session_id)
    if not state.is_authenticated:
        return WalletResponse(success=False, session_id=session_id, message="No wallet found")
    return WalletResponse(
        success=True,
        session_id=session_id,
        user_id=state.user_id,
        wallet_address=state.wallet_address,
        username=state.username,
    )


@router.post("/save-username", response_model=SaveUsernameResponse)
async def save_username(
    request: SaveUsernameRequest,
    engine: CaseEngineService = Depends(get_engine_service),
    session_id: str = Depends(get_session_id),
) -> SaveUsernameResponse:
    username = await engine.save_username(session_id, request.username)
    return SaveUsernameResponse(success=True, username=username)


@router.post("/clear-session", response_model=StatusResponse)
async def clear_session(
    response: Response,
    engine: CaseEngineService = Depends(get_engine_service),
    session_id: str = Depends(get_session_id),
) -> StatusResponse:
    await engine.clear_session(session_id)
    response.delete_cookie(engine.config.session_cookie_name, path="/")
    return StatusResponse(success=True, message="Session cleared")


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    engine: CaseEngineService = Depends(get_engine_service),
    session_id: str = Depends(get_session_id),
) -> BalanceResponse:
    state = await engine.get_state(session_id)
    if not state.is_authenticated:
        return BalanceResponse(success=True, balance=0.0, source="new_user")
    return BalanceResponse(
        success=True,
        balance=state.balance,
        wallet_address=state.wallet_address,
        source="session",
    )


@router.post("/deposit", response_model=DepositResponse)
async def deposit(
    request: DepositRequest,
    engine: CaseEngineService = Depends(get_engine_service),
    session_id: str = Depends(get_session_id),
) -> DepositResponse:
    state = await engine.deposit(session_id, request.amount)
    return DepositResponse(success=True, new_balance=state.balance, deposited_amount=request.amount)


@router.get("/level", response_model=LevelResponse)
async def get_level(
    engine: CaseEngineService = Depends(get_engine_service),
    session_id: str = Depends(get_session_id),
) -> LevelResponse:
    return LevelResponse(success=True, level=await engine.get_level(session_id))


@router.get("/inventory", response_model=InventoryResponse)
async def get_inventory(
    engine: CaseEngineService = Depends(get_engine_service),
    session_id: str = Depends(get_session_id),
) -> InventoryResponse:
    return InventoryResponse(success=True, inventory=await engine.get_inventory(session_id))


@router.post("/inventory", response_model=StatusResponse)
async def save_inventory(
    request: InventoryRequest,
    engine: CaseEngineService = Depends(get_engine_service),
    session_id: str = Depends(get_session_id),
) -> StatusResponse:
    await engine.save_inventory(session_id, request.inventory)
    return StatusResponse(success=True, message="Inventory saved successfully")


@router.post("/open-case", response_model=OpenPackResponse)
async def open_case(
    request: OpenCaseRequest,
    response: Response,
    engine: CaseEngineService = Depends(get_engine_service),
    session_id: str = Depends(get_session_id),
) -> OpenPackResponse:
    try:
        result = await engine.open_pack(session_id, request.case_type, request.client_seed)
    except EngineRejectedAction as exc:
        response.status_code = status_for(exc)
        return OpenPackResponse(success=False, error=engine_error(exc))
    return OpenPackResponse(success=True, result=result)


@router.get("/collections", response_model=CollectionsResponse)
async def get_collections(
    engine: CaseEngineService = Depends(get_engine_service),
    session_id: str = Depends(get_session_id),
) -> CollectionsResponse:
    progress, completed, rewards = await engine.get_collections(session_id)
    return CollectionsResponse(
        success=True,
        progress=progress,
        completed_collections=completed,
        available_rewards=rewards,
    )


@router.post("/collections/claim", response_model=ClaimResponse)
async def claim_collection(
    request: ClaimRequest,
    engine: CaseEngineService = Depends(get_engine_service),
    session_id: str = Depends(get_session_id),
) -> ClaimResponse:
    reward, state = await engine.claim_collection_reward(session_id, request.rarity)
    return ClaimResponse(success=True, reward=reward.reward, new_balance=state.balance)


@router.get("/provably-fair/hash", response_model=CommitmentResponse)
async def provably_fair_hash(
    engine: CaseEngineService = Depends(get_engine_service),
    session_id: str = Depends(get_session_id),
) -> CommitmentResponse:
    return CommitmentResponse(success=True, server_seed_hash=await engine.commitment(session_id))


@router.post("/provably-fair/verify", response_model=VerificationResult)
async def provably_fair_verify(request: VerifyRequest) -> VerificationResult:
    bet_amount = request.bet_amount
    if bet_amount is None:
        bet_amount = get_pack(request.case_type).bet_amount
    try:
        return verify_pack(request.server_seed, request.client_seed, request.case_type, bet_amount)
    except ValueError as exc:
        raise EngineRejectedAction("INVALID_VERIFICATION_INPUT", str(exc)) from exc


@router.get("/transaction-status", response_model=TransactionStatusResponse)
async def transaction_status(
    engine: CaseEngineService = Depends(get_engine_service),
    session_id: str = Depends(get_session_id),
) -> TransactionStatusResponse:
    return TransactionStatusResponse(success=True, status=await engine.transaction_status(session_id))


@router.post("/force-complete-transaction", response_model=ForceCompleteResponse)
async def force_complete_transaction(
    engine: CaseEngineService = Depends(get_engine_service),
    session_id: str = Depends(get_session_id),
) -> ForceCompleteResponse:
    state = await engine.force_complete_transaction(session_id)
    return ForceCompleteResponse(success=True, message="Transaction force completed", new_balance=state.balance)


@router.get("/stats", response_model=StatsResponse)
async def get_stats(engine: CaseEngineService = Depends(get_engine_service)) -> StatsResponse:
    return StatsResponse(success=True, stats=engine.stats())


@router.get("/health")
async def health(engine: CaseEngineService = Depends(get_engine_service)) -> dict:
    return {
        "status": "healthy",
        "service": "SolCases Backend",
        "version": ENGINE_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uses_privy": engine.config.uses_privy,
    }


@ws_router.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket, relay: ChatRelay = Depends(get_chat_relay)) -> None:
    session_id = websocket.query_params.get("sessionId")
    await websocket.accept()
    if not session_id:
        await websocket.close(code=1008, reason="No session ID provided")
        return
    try:
        connection = await relay.connect(session_id)
    except KeyError:
        await websocket.close(code=1008, reason="Invalid session ID")
        return

    sender = asyncio.create_task(_pump_events(websocket, connection.queue))
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if isinstance(message, dict):
                await relay.handle_message(connection.connection_id, message)
    except WebSocketDisconnect:
        pass
    finally:
        sender.cancel()
        relay.disconnect(connection.connection_id)


async def _pump_events(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        event = await queue.get()
        await websocket.send_json(event)
