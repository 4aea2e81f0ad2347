#!/usr/bin/env python
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app.security import ROLE_PERMISSIONS, create_access_token


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Mint a bearer token for a gate or reporting operator.")
    parser.add_argument("username", help="Operator name recorded as token subject and audit actor.")
    parser.add_argument("--role", choices=sorted(ROLE_PERMISSIONS), default="supervisor")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    token, expires_in, claims = create_access_token(sub=args.username, username=args.username, role=args.role)
    print(
        json.dumps(
            {"access_token": token, "token_type": "bearer", "expires_in": expires_in, "role": claims["role"]},
            indent=2,
        )
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
