#!/usr/bin/env python3
from __future__ import annotations

import argparse
import os
from datetime import UTC, datetime, timedelta

import jwt


def main() -> int:
    parser = argparse.ArgumentParser(description="Issue an HS256 bearer token for local API calls")
    parser.add_argument("--sub", required=True, help="account id placed in the sub claim")
    parser.add_argument("--role", required=True, choices=["client", "auditor", "admin"])
    parser.add_argument("--ttl-minutes", type=int, default=60)
    parser.add_argument("--secret", default=os.getenv("JWT_SHARED_SECRET", ""), help="HS256 shared secret")
    args = parser.parse_args()

    secret = str(args.secret or "").strip()
    if not secret:
        raise SystemExit("JWT_SHARED_SECRET is required (pass --secret or set env)")

    now = datetime.now(UTC)
    claims: dict[str, object] = {
        "sub": args.sub,
        "role": args.role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=args.ttl_minutes)).timestamp()),
    }
    issuer = os.getenv("JWT_ISSUER", "").strip()
    audience = os.getenv("JWT_AUDIENCE", "").strip()
    if issuer:
        claims["iss"] = issuer
    if audience:
        claims["aud"] = audience
    print(jwt.encode(claims, secret, algorithm="HS256"))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
