from __future__ import annotations

import argparse
import json
import os
import pathlib
import sys

# Ensure imports work when running from any CWD and in Docker (/app)
_HERE = pathlib.Path(__file__).resolve()
_BACKEND_ROOT = _HERE.parents[1]
sys.path.insert(0, str(_BACKEND_ROOT))
sys.path.insert(0, "/app")
sys.path.insert(0, os.getcwd())

from app.db.session import SessionLocal
from app.services.fraud_stores import SqlAnswerKeyStore


def _parse_keys(data: object) -> dict[str, list[int]]:
    """Accepts either {"<quizId>": [..], ...}, {"quizId": .., "correctAnswers": [..]} or a list of the latter."""
    out: dict[str, list[int]] = {}

    items: list[object]
    if isinstance(data, list):
        items = list(data)
    elif isinstance(data, dict) and "quizId" in data:
        items = [data]
    elif isinstance(data, dict):
        items = [{"quizId": k, "correctAnswers": v} for k, v in data.items()]
    else:
        raise ValueError("unsupported answer key document")

    for item in items:
        if not isinstance(item, dict):
            raise ValueError("answer key entries must be objects")
        quiz_id = str(item.get("quizId") or "").strip()
        raw = item.get("correctAnswers")
        if not quiz_id or not isinstance(raw, list) or not raw:
            raise ValueError(f"invalid answer key entry: {item!r}")
        answers = [int(a) for a in raw]
        if any(a < 0 for a in answers):
            raise ValueError(f"negative option index for quiz {quiz_id}")
        out[quiz_id] = answers
    return out


def _collect_files(path: pathlib.Path) -> list[pathlib.Path]:
    if path.is_dir():
        return sorted(p for p in path.glob("*.json") if p.is_file())
    return [path]


def main() -> None:
    ap = argparse.ArgumentParser(description="Load quiz answer keys (JSON) into the fraud-check database")
    ap.add_argument("path", help="JSON file or folder of JSON files")
    ap.add_argument("--dry-run", action="store_true", help="Validate and print, do not write")
    args = ap.parse_args()

    root = pathlib.Path(args.path).expanduser().resolve()
    if not root.exists():
        raise SystemExit(f"not found: {root}")

    keys: dict[str, list[int]] = {}
    for f in _collect_files(root):
        with f.open("r", encoding="utf-8") as fh:
            keys.update(_parse_keys(json.load(fh)))

    if args.dry_run:
        for quiz_id, answers in sorted(keys.items()):
            print(f"{quiz_id}: {len(answers)} questions")
        return

    with SessionLocal() as db:
        store = SqlAnswerKeyStore(db)
        for quiz_id, answers in sorted(keys.items()):
            store.put(quiz_id, answers)

    print(f"imported {len(keys)} answer keys")


if __name__ == "__main__":
    main()
