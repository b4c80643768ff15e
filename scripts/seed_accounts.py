#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from contract_review.errors import ApiError
from contract_review.workflow import engine

_DEFAULT_ACCOUNTS = [
    {"account_id": "admin_1", "role": "admin", "display_name": "Platform Admin", "email": "admin@example.com"},
    {
        "account_id": "client_1",
        "role": "client",
        "display_name": "Demo Client",
        "email": "client@example.com",
        "credit_balance": 20,
    },
    {"account_id": "auditor_1", "role": "auditor", "display_name": "Auditor One", "email": "a1@example.com"},
    {"account_id": "auditor_2", "role": "auditor", "display_name": "Auditor Two", "email": "a2@example.com"},
]


def main() -> int:
    parser = argparse.ArgumentParser(description="Create demo accounts in the configured store backend")
    parser.add_argument("--file", default="", help="JSON file with a list of account objects; default uses built-in demo set")
    args = parser.parse_args()

    accounts = _DEFAULT_ACCOUNTS
    if args.file.strip():
        accounts = json.loads(Path(args.file).read_text(encoding="utf-8"))

    created: list[str] = []
    skipped: list[str] = []
    for fields in accounts:
        try:
            account = engine.create_account(**fields)
        except ApiError as exc:
            if exc.code != "ACCOUNT_EXISTS":
                raise
            skipped.append(str(fields.get("account_id")))
            continue
        created.append(str(account["account_id"]))
    print(json.dumps({"created": created, "skipped": skipped}, ensure_ascii=True, sort_keys=True, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
