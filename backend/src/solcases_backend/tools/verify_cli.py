from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from solcases_backend.engine.models import PackResult
from solcases_backend.engine.resolver import verify_pack


def check_result(result: PackResult) -> list[str]:
    """Replay a saved pack result and list every field that does not match."""
    replay = verify_pack(
        result.seed_pair.server_seed,
        result.seed_pair.client_seed,
        result.pack_type,
        result.bet_amount,
    )
    mismatches = []
    if replay.initial_hash != result.initial_hash:
        mismatches.append("initial_hash")
    for card, expected in zip(result.cards, replay.cards):
        for field in ("roll", "rarity", "drop_factor", "final_multiplier", "win_amount"):
            if getattr(card, field) != getattr(expected, field):
                mismatches.append(f"cards[{expected.index}].{field}")
    if len(result.cards) != len(replay.cards):
        mismatches.append("cards")
    if replay.total_win_amount != result.total_win_amount:
        mismatches.append("total_win_amount")
    return mismatches


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Verify a saved pack result against its revealed seeds")
    parser.add_argument("result_file", type=Path)
    args = parser.parse_args(argv)

    payload = json.loads(args.result_file.read_text())
    # /api/open-case responses wrap the open result under "result".
    if isinstance(payload.get("result"), dict):
        payload = payload["result"]
    result = PackResult.model_validate(payload.get("pack", payload))
    mismatches = check_result(result)
    if mismatches:
        print(json.dumps({"verified": False, "mismatches": mismatches}, indent=2))
        return 1
    print(json.dumps({"verified": True, "initial_hash": result.initial_hash}, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
