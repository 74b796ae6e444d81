from __future__ import annotations

import json
import random
from pathlib import Path

import pytest

from solcases_backend.config import ServerConfig
from solcases_backend.engine.models import PackType, PendingTransaction, Rarity, SeedPair, UserState
from solcases_backend.engine.progression import add_item_to_collection
from solcases_backend.engine.resolver import PackResolver
from solcases_backend.repo.json_file import JsonFileUserStateRepository
from solcases_backend.tools.verify_cli import check_result, main


@pytest.mark.asyncio
async def test_json_repository_survives_restart(tmp_path: Path, clock) -> None:
    path = tmp_path / "sessions.json"
    repository = JsonFileUserStateRepository(path)
    state = UserState(session_id="s1", user_id="u1", wallet_address="addr", balance_lamports=42, xp=7)
    add_item_to_collection(state, Rarity.RARE, "red-sword", clock())
    state.pending_transaction = PendingTransaction(
        transaction_id="tx",
        pack_type=PackType.PRO,
        bet_lamports=10_000_000,
        started_at=clock(),
    )
    await repository.save("s1", state)

    reloaded = JsonFileUserStateRepository(path)

    assert await reloaded.all_keys() == ["s1"]
    assert await reloaded.load("s1") == state
    await reloaded.delete("s1")
    assert await JsonFileUserStateRepository(path).load("s1") is None


def test_verify_cli_accepts_genuine_result(tmp_path: Path, seed_pair: SeedPair, capsys) -> None:
    result = PackResolver(rng=random.Random(5)).resolve_pack(0.1, PackType.ELITE, seed_pair)
    path = tmp_path / "result.json"
    path.write_text(json.dumps({"pack": result.model_dump(mode="json")}))

    assert check_result(result) == []
    assert main([str(path)]) == 0
    assert json.loads(capsys.readouterr().out)["verified"] is True


def test_verify_cli_flags_tampering(tmp_path: Path, seed_pair: SeedPair, capsys) -> None:
    payload = PackResolver(rng=random.Random(5)).resolve_pack(0.1, PackType.ELITE, seed_pair).model_dump(mode="json")
    payload["cards"][2]["win_amount"] += 1.0
    payload["total_win_amount"] += 1.0
    path = tmp_path / "result.json"
    path.write_text(json.dumps(payload))

    assert main([str(path)]) == 1
    report = json.loads(capsys.readouterr().out)
    assert report["verified"] is False
    assert report["mismatches"] == ["cards[2].win_amount", "total_win_amount"]


def test_config_from_env(monkeypatch) -> None:
    for name in ("PRIVY_APP_ID", "PRIVY_APP_SECRET"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PORT", "4000")
    monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example, https://b.example")
    monkeypatch.setenv("CHAT_BLOCKED_WORDS", "rug,scam")
    monkeypatch.setenv("STALE_TRANSACTION_SECONDS", "90")

    config = ServerConfig.from_env()

    assert config.port == 4000
    assert config.allowed_origins == ["https://a.example", "https://b.example"]
    assert config.chat_blocked_words == ["rug", "scam"]
    assert config.stale_transaction_seconds == 90.0
    assert config.payout_share == 0.85
    assert config.uses_privy is False


def test_verify_cli_accepts_open_case_response(tmp_path: Path, seed_pair: SeedPair, capsys) -> None:
    result = PackResolver(rng=random.Random(9)).resolve_pack(0.01, PackType.PRO, seed_pair)
    body = {"success": True, "result": {"pack": result.model_dump(mode="json"), "credited_amount": 0.0}}
    path = tmp_path / "open-case.json"
    path.write_text(json.dumps(body))

    assert main([str(path)]) == 0
    assert json.loads(capsys.readouterr().out)["initial_hash"] == result.initial_hash


@pytest.mark.asyncio
async def test_json_repository_keeps_inventory(tmp_path: Path) -> None:
    path = tmp_path / "sessions.json"
    state = UserState(session_id="s1", user_id="u1", wallet_address="addr")
    state.inventory = {"Red Cube": {"count": 2, "rarity": "rare"}}
    await JsonFileUserStateRepository(path).save("s1", state)

    reloaded = await JsonFileUserStateRepository(path).load("s1")

    assert reloaded.inventory == {"Red Cube": {"count": 2, "rarity": "rare"}}


def test_config_reads_env_file(tmp_path: Path, monkeypatch) -> None:
    for name in ("PORT", "ALLOWED_ORIGINS", "CHAT_BLOCKED_WORDS", "PAYOUT_SHARE"):
        monkeypatch.delenv(name, raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("PORT=5005\nALLOWED_ORIGINS=https://solcases.fun,http://localhost:3000\nPAYOUT_SHARE=0.9\n")

    config = ServerConfig.from_env(str(env_file))

    assert config.port == 5005
    assert config.allowed_origins == ["https://solcases.fun", "http://localhost:3000"]
    assert config.payout_share == 0.9
    assert config.chat_blocked_words == []


def test_config_splits_comma_lists_passed_directly() -> None:
    config = ServerConfig(chat_blocked_words="rug, scam,,", allowed_origins=["https://a.example"])

    assert config.chat_blocked_words == ["rug", "scam"]
    assert config.allowed_origins == ["https://a.example"]
