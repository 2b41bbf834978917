#!/usr/bin/env python3
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

APP_DIR = Path(__file__).resolve().parents[1]
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from services.user_access_service import RIGHTS_BY_ROLE, create_session, upsert_user_role  # noqa: E402


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Create/update one UserRoles record and print a signed operator token.",
    )
    parser.add_argument("--user-id", required=True, help="Operator id as issued by the identity provider")
    parser.add_argument("--role", choices=list(RIGHTS_BY_ROLE), default="leitor")
    parser.add_argument("--email", default=None)
    parser.add_argument("--display-name", default=None)
    parser.add_argument(
        "--ttl-seconds",
        type=int,
        default=None,
        help="Token lifetime; defaults to SESSION_TTL_SECONDS.",
    )
    parser.add_argument(
        "--db-url",
        default=os.environ.get("INVENTORY_DB_URL", "").strip(),
        help="SQLAlchemy DB URL; defaults to INVENTORY_DB_URL env var.",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    user_id = args.user_id.strip()
    if not user_id:
        parser.error("--user-id must not be empty")
    if not args.db_url:
        parser.error("Missing DB URL. Set INVENTORY_DB_URL or pass --db-url.")
    if args.ttl_seconds is not None and args.ttl_seconds <= 0:
        parser.error("--ttl-seconds must be > 0")

    engine = create_engine(args.db_url, pool_pre_ping=True, future=True)
    with Session(engine) as db:
        row = upsert_user_role(db, user_id, args.role, args.email)
        db.commit()
    engine.dispose()

    token = create_session(
        {
            "userID": row["userID"],
            "email": row["email"],
            "displayName": (args.display_name or "").strip() or None,
        },
        ttl_seconds=args.ttl_seconds,
    )
    print(f"OK user_id={row['userID']} role={row['role']} email={row['email']}")
    print(token)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
