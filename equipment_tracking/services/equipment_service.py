from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.inventory_models import Equipment, Tracking
from services.errors import ConflictingWrite, DuplicateSerialNumber, InvalidMovement, InvalidQuantity, NotFound

READ_ONLY_FIELDS = {"equipmentID", "initialQuantity", "availableQuantity"}


def _map_equipment_field(field: str) -> str:
    mapping = {
        "equipmentID": "EquipmentID",
        "name": "Name",
        "serialNumber": "SerialNumber",
        "categoryID": "CategoryID",
        "binID": "BinID",
        "description": "Description",
        "imageUrl": "ImageUrl",
        "initialQuantity": "InitialQuantity",
        "availableQuantity": "AvailableQuantity",
    }
    return mapping.get(field, field)


def _normalize_serial(raw: Optional[str]) -> Optional[str]:
    value = (raw or "").strip()
    return value or None


def get_equipment(db: Session, equipment_id: int) -> Equipment:
    equipment = db.get(Equipment, equipment_id)
    if not equipment:
        raise NotFound(f"Equipment {equipment_id} not found.", equipment_id=equipment_id)
    return equipment


def get_quantity(db: Session, equipment_id: int) -> int:
    return int(get_equipment(db, equipment_id).AvailableQuantity or 0)


def set_quantity(db: Session, equipment_id: int, new_quantity: int, expected: Optional[int] = None) -> None:
    """Overwrite the cached on-hand quantity of one equipment item.

    Only the reconciliation engine calls this, after it has validated the
    movement. With ``expected`` the write only lands if the stored value still
    equals it, otherwise ``ConflictingWrite`` is raised and nothing changes.
    """
    if new_quantity < 0:
        raise InvalidQuantity(
            f"Quantity for equipment {equipment_id} cannot be negative: {new_quantity}",
            equipment_id=equipment_id,
        )

    stmt = update(Equipment).where(Equipment.EquipmentID == equipment_id)
    if expected is not None:
        stmt = stmt.where(Equipment.AvailableQuantity == expected)
    stmt = stmt.values(AvailableQuantity=new_quantity, UpdatedDate=datetime.now())
    result = db.execute(stmt.execution_options(synchronize_session=False))

    if result.rowcount == 0:
        if db.get(Equipment, equipment_id) is None:
            raise NotFound(f"Equipment {equipment_id} not found.", equipment_id=equipment_id)
        raise ConflictingWrite(
            f"Equipment {equipment_id} quantity changed concurrently (expected {expected}).",
            equipment_id=equipment_id,
        )

    equipment = db.get(Equipment, equipment_id)
    if equipment is not None:
        db.expire(equipment, ["AvailableQuantity", "UpdatedDate"])


def list_equipment(db: Session, search: Optional[str] = None, category_id: Optional[int] = None) -> list[Equipment]:
    stmt = select(Equipment)
    query = (search or "").strip()
    if query:
        pattern = f"%{query.lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(Equipment.Name).like(pattern),
                func.lower(Equipment.SerialNumber).like(pattern),
            )
        )
    if category_id:
        stmt = stmt.where(Equipment.CategoryID == category_id)
    stmt = stmt.order_by(Equipment.CreatedDate.desc(), Equipment.EquipmentID.desc())
    return list(db.execute(stmt).scalars().all())


def find_by_serial(db: Session, serial_number: str) -> Optional[Equipment]:
    serial = _normalize_serial(serial_number)
    if not serial:
        return None
    return db.execute(
        select(Equipment).where(func.lower(Equipment.SerialNumber) == serial.lower())
    ).scalars().first()


def _ensure_unique_serial(db: Session, serial_number: Optional[str], exclude_id: Optional[int] = None) -> None:
    if not serial_number:
        return
    existing = find_by_serial(db, serial_number)
    if existing and existing.EquipmentID != exclude_id:
        raise DuplicateSerialNumber(
            f"Serial number {serial_number} is already registered.",
            serial_number=serial_number,
        )


def _flush_or_duplicate(db: Session, serial_number: Optional[str]) -> None:
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateSerialNumber(
            f"Serial number {serial_number} is already registered.",
            serial_number=serial_number,
        ) from exc


def create_equipment(db: Session, fields: dict[str, Any], operator: Optional[str] = None) -> Equipment:
    name = str(fields.get("name") or "").strip()
    if not name:
        raise InvalidMovement("Equipment name is required.")

    try:
        quantity = int(fields.get("availableQuantity") or 0)
    except (TypeError, ValueError) as exc:
        raise InvalidQuantity("availableQuantity must be an integer.") from exc
    if quantity < 0:
        raise InvalidQuantity("availableQuantity cannot be negative.")

    equipment = Equipment()
    for field, value in fields.items():
        if field in READ_ONLY_FIELDS:
            continue
        setattr(equipment, _map_equipment_field(field), value)

    equipment.Name = name
    equipment.SerialNumber = _normalize_serial(fields.get("serialNumber"))
    _ensure_unique_serial(db, equipment.SerialNumber)

    # The registry starts from here; every later change comes from the ledger.
    equipment.InitialQuantity = quantity
    equipment.AvailableQuantity = quantity
    equipment.CreatedBy = operator
    equipment.UpdatedBy = operator
    equipment.CreatedDate = datetime.now()
    equipment.UpdatedDate = datetime.now()

    db.add(equipment)
    _flush_or_duplicate(db, equipment.SerialNumber)
    return equipment


def update_equipment(db: Session, equipment: Equipment, fields: dict[str, Any], operator: Optional[str] = None) -> Equipment:
    requested_quantity = fields.get("availableQuantity")
    if requested_quantity is not None and int(requested_quantity) != int(equipment.AvailableQuantity or 0):
        raise InvalidMovement("availableQuantity can only change through tracked movements.")

    for field, value in fields.items():
        if field in READ_ONLY_FIELDS:
            continue
        if field == "name":
            value = str(value or "").strip()
            if not value:
                raise InvalidMovement("Equipment name is required.")
        if field == "serialNumber":
            value = _normalize_serial(value)
            _ensure_unique_serial(db, value, exclude_id=equipment.EquipmentID)
        setattr(equipment, _map_equipment_field(field), value)

    equipment.UpdatedBy = operator
    equipment.UpdatedDate = datetime.now()
    _flush_or_duplicate(db, equipment.SerialNumber)
    return equipment


def delete_equipment(db: Session, equipment: Equipment) -> None:
    has_history = db.execute(
        select(func.count(Tracking.TrackingID)).where(Tracking.EquipmentID == equipment.EquipmentID)
    ).scalar()
    if has_history:
        raise InvalidMovement(
            f"Equipment {equipment.EquipmentID} has {has_history} tracked movements and cannot be deleted.",
            equipment_id=equipment.EquipmentID,
        )
    db.delete(equipment)
    db.flush()


def serialize_equipment(equipment: Equipment) -> dict:
    return {
        "equipmentID": equipment.EquipmentID,
        "name": equipment.Name,
        "serialNumber": equipment.SerialNumber,
        "categoryID": equipment.CategoryID,
        "categoryName": equipment.Category.CategoryName if equipment.Category else None,
        "binID": equipment.BinID,
        "binCode": equipment.Bin.BinCode if equipment.Bin else None,
        "description": equipment.Description,
        "imageUrl": equipment.ImageUrl,
        "initialQuantity": equipment.InitialQuantity,
        "availableQuantity": equipment.AvailableQuantity,
        "createdBy": equipment.CreatedBy,
        "updatedBy": equipment.UpdatedBy,
        "createdDate": equipment.CreatedDate,
        "updatedDate": equipment.UpdatedDate,
    }
