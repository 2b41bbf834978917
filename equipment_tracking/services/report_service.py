from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from models.inventory_models import Equipment, Tracking
from services.ledger_service import DELTA_SIGN, MovementFilter, MovementStatus, list_movements

NO_SECTOR = "Sem setor"
NO_LOCATION = "Sem localização"
NO_RESPONSIBLE = "Nao informado"


def status_counts(records: Iterable[Tracking]) -> dict[str, int]:
    counts = {status.value: 0 for status in MovementStatus}
    for record in records:
        counts[record.Status] = counts.get(record.Status, 0) + 1
    return counts


def quantity_by_status(records: Iterable[Tracking]) -> list[dict]:
    totals: dict[str, int] = {}
    for record in records:
        totals[record.Status] = totals.get(record.Status, 0) + int(record.Quantity or 0)
    return [{"name": name, "quantity": quantity} for name, quantity in totals.items()]


def quantity_by_sector(records: Iterable[Tracking]) -> list[dict]:
    totals: dict[Optional[int], dict] = {}
    for record in records:
        bucket = totals.setdefault(
            record.SectorID,
            {
                "sectorID": record.SectorID,
                "name": record.Sector.SectorName if record.Sector else NO_SECTOR,
                "quantity": 0,
            },
        )
        bucket["quantity"] += int(record.Quantity or 0)
    return list(totals.values())


def quantity_by_location(records: Iterable[Tracking]) -> list[dict]:
    totals: dict[Optional[int], dict] = {}
    for record in records:
        bucket = totals.setdefault(
            record.LocationID,
            {
                "locationID": record.LocationID,
                "name": record.Location.LocationName if record.Location else NO_LOCATION,
                "quantity": 0,
            },
        )
        bucket["quantity"] += int(record.Quantity or 0)
    return list(totals.values())


def top_responsible_by_sector(records: Iterable[Tracking]) -> list[dict]:
    """Who checked out the most units in each sector, busiest sector first.

    Only checkouts count. On a tie the responsible person encountered first in
    the ledger is kept.
    """
    sectors: dict[Optional[int], dict] = {}
    for record in records:
        if record.Status != MovementStatus.SAIDA.value:
            continue
        sector = sectors.setdefault(
            record.SectorID,
            {
                "name": record.Sector.SectorName if record.Sector else NO_SECTOR,
                "responsible": {},
            },
        )
        responsible = record.ResponsiblePerson or NO_RESPONSIBLE
        sector["responsible"][responsible] = sector["responsible"].get(responsible, 0) + int(record.Quantity or 0)

    rows = []
    for sector_id, sector in sectors.items():
        top_name = NO_RESPONSIBLE
        top_quantity = 0
        for name, quantity in sector["responsible"].items():
            if quantity > top_quantity:
                top_name = name
                top_quantity = quantity
        rows.append(
            {
                "sectorID": sector_id,
                "sector": sector["name"],
                "responsible": top_name,
                "quantity": top_quantity,
            }
        )
    rows.sort(key=lambda row: row["quantity"], reverse=True)
    return rows


def low_stock_items(db: Session, threshold: int) -> list[Equipment]:
    return list(
        db.execute(
            select(Equipment)
            .where(Equipment.AvailableQuantity <= threshold)
            .order_by(Equipment.AvailableQuantity, Equipment.Name)
        ).scalars().all()
    )


def build_movement_report(db: Session, movement_filter: Optional[MovementFilter] = None) -> dict:
    records = list(list_movements(db, movement_filter))
    return {
        "totalMovements": len(records),
        "statusCounts": status_counts(records),
        "byStatus": quantity_by_status(records),
        "bySector": quantity_by_sector(records),
        "byLocation": quantity_by_location(records),
        "topResponsibleBySector": top_responsible_by_sector(records),
    }


@dataclass
class BalanceCheck:
    equipment_id: int
    name: str
    initial_quantity: int
    ledger_delta: int
    available_quantity: int

    @property
    def expected_quantity(self) -> int:
        return self.initial_quantity + self.ledger_delta

    @property
    def ok(self) -> bool:
        return self.expected_quantity == self.available_quantity


def verify_balances(db: Session) -> list[BalanceCheck]:
    deltas: dict[int, int] = {}
    rows = db.execute(
        select(Tracking.EquipmentID, Tracking.Status, func.sum(Tracking.Quantity))
        .group_by(Tracking.EquipmentID, Tracking.Status)
    ).all()
    for equipment_id, status, total in rows:
        sign = DELTA_SIGN[MovementStatus.parse(status)]
        deltas[equipment_id] = deltas.get(equipment_id, 0) + sign * int(total or 0)

    checks = []
    for equipment in db.execute(select(Equipment).order_by(Equipment.EquipmentID)).scalars().all():
        checks.append(
            BalanceCheck(
                equipment_id=equipment.EquipmentID,
                name=equipment.Name,
                initial_quantity=int(equipment.InitialQuantity or 0),
                ledger_delta=deltas.get(equipment.EquipmentID, 0),
                available_quantity=int(equipment.AvailableQuantity or 0),
            )
        )
    return checks


def serialize_balance_check(check: BalanceCheck) -> dict:
    return {
        "equipmentID": check.equipment_id,
        "name": check.name,
        "initialQuantity": check.initial_quantity,
        "ledgerDelta": check.ledger_delta,
        "expectedQuantity": check.expected_quantity,
        "availableQuantity": check.available_quantity,
        "ok": check.ok,
    }
