#!/usr/bin/env python3
"""Ledger/registry consistency checks for the equipment tracking database."""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from sqlalchemy import create_engine, inspect, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, aliased

APP_DIR = Path(__file__).resolve().parents[1]
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from models.inventory_models import Tracking  # noqa: E402
from services.ledger_service import OUTSTANDING_STATUSES, MovementStatus  # noqa: E402
from services.report_service import verify_balances  # noqa: E402

EXPECTED_TABLES = [
    "Equipment",
    "Tracking",
    "Categories",
    "Bins",
    "Locations",
    "Sectors",
    "NotificationQueue",
    "AuditLogs",
    "UserRoles",
]


@dataclass
class CheckResult:
    name: str
    ok: bool
    detail: str


def _print_section(title: str) -> None:
    print(f"\n=== {title} ===")


def _get_engine(db_url: str) -> Engine:
    return create_engine(db_url, pool_pre_ping=True, future=True)


def _run_existence_checks(engine: Engine) -> list[CheckResult]:
    present = set(inspect(engine).get_table_names())
    return [
        CheckResult(f"table:{table}", table in present, "present" if table in present else "missing")
        for table in EXPECTED_TABLES
    ]


def _run_balance_checks(db: Session) -> list[CheckResult]:
    results: list[CheckResult] = []
    for check in verify_balances(db):
        results.append(
            CheckResult(
                f"balance:{check.equipment_id}:{check.name}",
                check.ok,
                f"initial={check.initial_quantity} ledger={check.ledger_delta:+d} "
                f"expected={check.expected_quantity} available={check.available_quantity}",
            )
        )
    return results


def _run_closure_checks(db: Session) -> list[CheckResult]:
    closer = aliased(Tracking)
    rows = db.execute(
        select(Tracking.TrackingID, Tracking.Status, closer.Status)
        .join(closer, closer.TrackingID == Tracking.ClosedByID)
    ).all()
    outstanding = {status.value for status in OUTSTANDING_STATUSES}
    retirements = {MovementStatus.DEVOLUCAO.value, MovementStatus.DANIFICADO.value}
    bad = [
        record_id
        for record_id, status, closer_status in rows
        if status not in outstanding or closer_status not in retirements
    ]
    return [
        CheckResult(
            "tracking:closed_by_retirement",
            not bad,
            f"closed={len(rows)}" if not bad else f"bad_records={','.join(str(item) for item in bad)}",
        )
    ]


def _print_results(title: str, rows: Iterable[CheckResult]) -> bool:
    _print_section(title)
    all_ok = True
    for row in rows:
        status = "OK" if row.ok else "FAIL"
        all_ok = all_ok and row.ok
        print(f"[{status}] {row.name} :: {row.detail}")
    return all_ok


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Equipment tracking ledger check")
    parser.add_argument("--db-url", default=os.environ.get("INVENTORY_DB_URL", ""))
    args = parser.parse_args(argv)

    db_url = (args.db_url or "").strip()
    if not db_url:
        print("INVENTORY_DB_URL is not set. Provide --db-url or export env first.")
        return 2

    try:
        engine = _get_engine(db_url)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        print(f"Could not connect to DB: {exc}")
        return 3

    tables = _run_existence_checks(engine)
    ok = _print_results("Table Existence", tables)
    if not ok:
        return 1

    with Session(engine) as db:
        ok = _print_results("Balances", _run_balance_checks(db)) and ok
        ok = _print_results("Retirements", _run_closure_checks(db)) and ok
    engine.dispose()
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
