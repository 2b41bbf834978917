from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Iterator, Optional, Union

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from models.inventory_models import Equipment, Tracking
from services.errors import InvalidMovement, InvalidQuantity, NotFound


class MovementStatus(str, Enum):
    SAIDA = "saida"
    MANUTENCAO = "manutencao"
    DANIFICADO = "danificado"
    DEVOLUCAO = "devolucao"

    @classmethod
    def parse(cls, raw: Union[str, "MovementStatus"]) -> "MovementStatus":
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw or "").strip().lower())
        except ValueError as exc:
            raise InvalidMovement(f"Unknown movement status: {raw}") from exc


# Sign of the stock change per unit moved. Damage is zero: the unit already
# left stock with the checkout/maintenance it closes.
DELTA_SIGN = {
    MovementStatus.SAIDA: -1,
    MovementStatus.MANUTENCAO: -1,
    MovementStatus.DEVOLUCAO: 1,
    MovementStatus.DANIFICADO: 0,
}

OUTSTANDING_STATUSES = {MovementStatus.SAIDA, MovementStatus.MANUTENCAO}

DESCRIPTOR_FIELDS = {
    "locationID": "LocationID",
    "sectorID": "SectorID",
    "responsiblePerson": "ResponsiblePerson",
    "deliveredBy": "DeliveredBy",
    "receivedBy": "ReceivedBy",
    "notes": "Notes",
}


def movement_delta(status: Union[str, MovementStatus], quantity: int) -> int:
    return DELTA_SIGN[MovementStatus.parse(status)] * int(quantity)


def record_delta(record: Tracking) -> int:
    return movement_delta(record.Status, record.Quantity)


@dataclass(frozen=True)
class MovementFilter:
    equipment_id: Optional[int] = None
    status: Optional[MovementStatus] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    sector_id: Optional[int] = None
    location_id: Optional[int] = None
    search: Optional[str] = None

    @classmethod
    def build(
        cls,
        equipment_id: Optional[int] = None,
        status: Optional[str] = None,
        start: Optional[Union[date, datetime]] = None,
        end: Optional[Union[date, datetime]] = None,
        sector_id: Optional[int] = None,
        location_id: Optional[int] = None,
        search: Optional[str] = None,
    ) -> "MovementFilter":
        # A bare end date means "through the end of that day".
        if isinstance(end, date) and not isinstance(end, datetime):
            end = datetime.combine(end, time.max)
        if isinstance(start, date) and not isinstance(start, datetime):
            start = datetime.combine(start, time.min)
        if start and end and end < start:
            raise InvalidMovement("end must be on or after start.")
        parsed_status = MovementStatus.parse(status) if status not in (None, "", "all") else None
        return cls(
            equipment_id=equipment_id,
            status=parsed_status,
            start=start,
            end=end,
            sector_id=sector_id,
            location_id=location_id,
            search=(search or "").strip() or None,
        )


class MovementSequence:
    """Ledger entries matching a filter, most recent first.

    Nothing is read until iteration starts, and each new iteration re-runs the
    query, so the same object can be walked again after further writes.
    """

    def __init__(self, db: Session, movement_filter: MovementFilter, batch_size: int = 200) -> None:
        self._db = db
        self._filter = movement_filter
        self._batch_size = batch_size

    def _statement(self):
        flt = self._filter
        stmt = select(Tracking)
        if flt.search:
            pattern = f"%{flt.search.lower()}%"
            stmt = stmt.join(Equipment, Equipment.EquipmentID == Tracking.EquipmentID).where(
                or_(
                    func.lower(Equipment.Name).like(pattern),
                    func.lower(Equipment.SerialNumber).like(pattern),
                )
            )
        if flt.equipment_id is not None:
            stmt = stmt.where(Tracking.EquipmentID == flt.equipment_id)
        if flt.status is not None:
            stmt = stmt.where(Tracking.Status == flt.status.value)
        if flt.start is not None:
            stmt = stmt.where(Tracking.CreatedAt >= flt.start)
        if flt.end is not None:
            stmt = stmt.where(Tracking.CreatedAt <= flt.end)
        if flt.sector_id is not None:
            stmt = stmt.where(Tracking.SectorID == flt.sector_id)
        if flt.location_id is not None:
            stmt = stmt.where(Tracking.LocationID == flt.location_id)
        return stmt.order_by(Tracking.CreatedAt.desc(), Tracking.TrackingID.desc())

    def __iter__(self) -> Iterator[Tracking]:
        stmt = self._statement().options(
            selectinload(Tracking.Equipment),
            selectinload(Tracking.Location),
            selectinload(Tracking.Sector),
        )
        result = self._db.execute(stmt.execution_options(yield_per=self._batch_size))
        for record in result.scalars():
            yield record

    def count(self) -> int:
        stmt = select(func.count()).select_from(self._statement().order_by(None).subquery())
        return int(self._db.execute(stmt).scalar() or 0)


def append(db: Session, record: Tracking) -> int:
    if int(record.Quantity or 0) <= 0:
        raise InvalidQuantity("Movement quantity must be greater than zero.")
    record.Status = MovementStatus.parse(record.Status).value
    record.CreatedAt = datetime.now()
    db.add(record)
    db.flush()
    return record.TrackingID


def get_movement(db: Session, record_id: int) -> Tracking:
    record = db.get(Tracking, record_id)
    if not record:
        raise NotFound(f"Tracking record {record_id} not found.", record_id=record_id)
    return record


def list_movements(db: Session, movement_filter: Optional[MovementFilter] = None) -> MovementSequence:
    return MovementSequence(db, movement_filter or MovementFilter())


def update(db: Session, record_id: int, patch: dict[str, Any], operator: Optional[str] = None) -> Tracking:
    record = get_movement(db, record_id)
    for field, value in patch.items():
        column = DESCRIPTOR_FIELDS.get(field)
        if column is None:
            if field in {"status", "quantity"}:
                continue
            raise InvalidMovement(f"Field {field} cannot be changed on a tracking record.")
        setattr(record, column, value)
    if "status" in patch:
        record.Status = MovementStatus.parse(patch["status"]).value
    if "quantity" in patch:
        record.Quantity = int(patch["quantity"])
    record.UpdatedBy = operator
    record.UpdatedAt = datetime.now()
    db.flush()
    return record


def remove(db: Session, record_id: int) -> None:
    record = get_movement(db, record_id)
    db.delete(record)
    db.flush()


def latest_descriptors(db: Session, equipment_id: int) -> dict:
    record = db.execute(
        select(Tracking)
        .where(Tracking.EquipmentID == equipment_id)
        .order_by(Tracking.CreatedAt.desc(), Tracking.TrackingID.desc())
        .limit(1)
    ).scalars().first()
    if not record:
        return {}
    return {
        "locationID": record.LocationID,
        "sectorID": record.SectorID,
        "responsiblePerson": record.ResponsiblePerson,
        "deliveredBy": record.DeliveredBy,
        "receivedBy": record.ReceivedBy,
    }


def paginate(records, page: int = 1, page_size: int = 20) -> dict:
    items = list(records)
    page_size = max(1, int(page_size or 1))
    total = len(items)
    total_pages = max(1, math.ceil(total / page_size))
    current = min(max(1, int(page or 1)), total_pages)
    start_index = (current - 1) * page_size
    end_index = min(start_index + page_size, total)
    return {
        "page": current,
        "pageSize": page_size,
        "totalRecords": total,
        "totalPages": total_pages,
        "items": items[start_index:end_index],
    }


def serialize_movement(record: Tracking) -> dict:
    return {
        "trackingID": record.TrackingID,
        "equipmentID": record.EquipmentID,
        "status": record.Status,
        "quantity": record.Quantity,
        "delta": record_delta(record),
        "locationID": record.LocationID,
        "sectorID": record.SectorID,
        "responsiblePerson": record.ResponsiblePerson,
        "deliveredBy": record.DeliveredBy,
        "receivedBy": record.ReceivedBy,
        "notes": record.Notes,
        "closedByID": record.ClosedByID,
        "createdBy": record.CreatedBy,
        "updatedBy": record.UpdatedBy,
        "createdAt": record.CreatedAt,
        "updatedAt": record.UpdatedAt,
        "equipment": {
            "name": record.Equipment.Name,
            "serialNumber": record.Equipment.SerialNumber,
            "imageUrl": record.Equipment.ImageUrl,
        } if record.Equipment else None,
        "locationName": record.Location.LocationName if record.Location else None,
        "sectorName": record.Sector.SectorName if record.Sector else None,
    }
