from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterator, Optional

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.inventory_models import Equipment, Tracking
from services import equipment_service, ledger_service
from services.errors import BackendFailure, ConflictingWrite, InsufficientStock, InvalidMovement, InvalidQuantity, InventoryError, NotFound
from services.ledger_service import DESCRIPTOR_FIELDS, OUTSTANDING_STATUSES, MovementStatus, movement_delta, record_delta
from services.notification_service import LowStockEvent, crossed_low_stock, queue_low_stock_notification

LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD") or "5")
LOCK_TIMEOUT_SECONDS = float(os.environ.get("RECONCILE_LOCK_TIMEOUT_SECONDS") or "10")
MAX_CONFLICT_RETRIES = int(os.environ.get("RECONCILE_MAX_CONFLICT_RETRIES") or "3")
RETIREMENT_RECEIVER = (os.environ.get("RETIREMENT_RECEIVER") or "Sala de Setup").strip()
RECONCILE_LOGGER = logging.getLogger("equipment_tracking.reconciliation")

_LOCKS_GUARD = threading.Lock()
_EQUIPMENT_LOCKS: dict[int, threading.Lock] = {}


class RetirementCondition(str, Enum):
    GOOD = "good"
    DAMAGED = "damaged"

    @classmethod
    def parse(cls, raw: Any) -> "RetirementCondition":
        if isinstance(raw, cls):
            return raw
        value = str(raw or "").strip().lower()
        aliases = {"bom": cls.GOOD, "danificado": cls.DAMAGED}
        if value in aliases:
            return aliases[value]
        try:
            return cls(value)
        except ValueError as exc:
            raise InvalidMovement(f"Unknown retirement condition: {raw}") from exc


def _equipment_lock(equipment_id: int) -> threading.Lock:
    with _LOCKS_GUARD:
        lock = _EQUIPMENT_LOCKS.get(int(equipment_id))
        if lock is None:
            lock = threading.Lock()
            _EQUIPMENT_LOCKS[int(equipment_id)] = lock
        return lock


@contextmanager
def equipment_guard(equipment_id: int, timeout: Optional[float] = None) -> Iterator[None]:
    """Serialise read/compute/write for one equipment id within this process."""
    lock = _equipment_lock(equipment_id)
    wait = LOCK_TIMEOUT_SECONDS if timeout is None else timeout
    if not lock.acquire(timeout=max(wait, 0)):
        RECONCILE_LOGGER.error("Equipment lock timeout equipment_id=%s wait=%s", equipment_id, wait)
        raise BackendFailure(
            f"Timed out waiting for equipment {equipment_id} to become available for update.",
            equipment_id=equipment_id,
        )
    try:
        yield
    finally:
        lock.release()


def _require_positive_quantity(quantity: Any) -> int:
    if isinstance(quantity, bool):
        raise InvalidQuantity("Movement quantity must be an integer greater than zero.")
    try:
        value = int(quantity)
    except (TypeError, ValueError) as exc:
        raise InvalidQuantity("Movement quantity must be an integer greater than zero.") from exc
    if value != quantity and not isinstance(quantity, str):
        raise InvalidQuantity("Movement quantity must be a whole number.")
    if value <= 0:
        raise InvalidQuantity(f"Movement quantity must be greater than zero, got {value}.")
    return value


def _descriptor_columns(descriptors: Optional[dict]) -> dict[str, Any]:
    columns: dict[str, Any] = {}
    for field, value in (descriptors or {}).items():
        column = DESCRIPTOR_FIELDS.get(field)
        if column is None:
            raise InvalidMovement(f"Unknown movement field: {field}")
        if isinstance(value, str):
            value = value.strip() or None
        columns[column] = value
    return columns


def _bound_row_lock_wait(db: Session, timeout: Optional[float] = None) -> None:
    """Cap how long this transaction waits on another writer's row lock.

    A lock wait that runs out surfaces from the driver as an OperationalError.
    """
    wait = LOCK_TIMEOUT_SECONDS if timeout is None else timeout
    millis = max(int(wait * 1000), 1)
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        db.execute(text(f"SET LOCAL lock_timeout = '{millis}ms'"))
    elif dialect in ("mysql", "mariadb"):
        db.execute(text(f"SET SESSION innodb_lock_wait_timeout = {max(-(-millis // 1000), 1)}"))
    elif dialect == "sqlite":
        db.execute(text(f"PRAGMA busy_timeout = {millis}"))


def _lock_equipment_row(db: Session, equipment_id: int) -> Equipment:
    equipment = db.execute(
        select(Equipment)
        .where(Equipment.EquipmentID == equipment_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalars().first()
    if not equipment:
        raise NotFound(f"Equipment {equipment_id} not found.", equipment_id=equipment_id)
    return equipment


def _lock_movement_row(db: Session, record_id: int) -> Tracking:
    record = db.execute(
        select(Tracking)
        .where(Tracking.TrackingID == record_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalars().first()
    if not record:
        raise NotFound(f"Tracking record {record_id} not found.", record_id=record_id)
    return record


def _settle_once(
    db: Session,
    equipment_id: int,
    action: str,
    plan_delta: Callable[[Session], int],
    write: Callable[[Session], Tracking],
    operator: Optional[str],
    threshold: int,
) -> Tracking:
    try:
        _bound_row_lock_wait(db)
        equipment = _lock_equipment_row(db, equipment_id)
        delta = plan_delta(db)
        current = int(equipment.AvailableQuantity or 0)
        target = current + delta
        if target < 0:
            raise InsufficientStock(equipment_id, current, delta)

        if delta:
            equipment_service.set_quantity(db, equipment_id, target, expected=current)
        record = write(db)
        if crossed_low_stock(current, target, threshold):
            queue_low_stock_notification(
                db,
                LowStockEvent(
                    equipment_id=equipment_id,
                    equipment_name=equipment.Name,
                    quantity=target,
                    threshold=threshold,
                ),
            )
        db.commit()
    except InventoryError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        RECONCILE_LOGGER.error(
            "Reconciliation write failed action=%s equipment_id=%s operator=%s error=%s",
            action,
            equipment_id,
            operator,
            exc,
        )
        raise BackendFailure(
            f"Could not persist {action} for equipment {equipment_id}; no changes were committed.",
            equipment_id=equipment_id,
        ) from exc

    RECONCILE_LOGGER.info(
        "Movement settled action=%s equipment_id=%s record_id=%s delta=%s quantity=%s->%s operator=%s",
        action,
        equipment_id,
        record.TrackingID,
        delta,
        current,
        target,
        operator,
    )
    return record


def _reconcile(
    db: Session,
    equipment_id: int,
    action: str,
    plan_delta: Callable[[Session], int],
    write: Callable[[Session], Tracking],
    operator: Optional[str] = None,
    threshold: Optional[int] = None,
) -> Tracking:
    effective_threshold = LOW_STOCK_THRESHOLD if threshold is None else int(threshold)
    attempts = max(MAX_CONFLICT_RETRIES, 1)
    for attempt in range(1, attempts + 1):
        with equipment_guard(equipment_id):
            try:
                return _settle_once(db, equipment_id, action, plan_delta, write, operator, effective_threshold)
            except ConflictingWrite as exc:
                RECONCILE_LOGGER.warning(
                    "Conflicting write action=%s equipment_id=%s attempt=%s/%s",
                    action,
                    equipment_id,
                    attempt,
                    attempts,
                )
                if attempt == attempts:
                    raise BackendFailure(
                        f"Gave up on {action} for equipment {equipment_id} after {attempts} conflicting writes.",
                        equipment_id=equipment_id,
                    ) from exc
            except (InsufficientStock, InvalidQuantity, InvalidMovement) as exc:
                RECONCILE_LOGGER.warning(
                    "Movement rejected action=%s equipment_id=%s code=%s detail=%s",
                    action,
                    equipment_id,
                    exc.code,
                    exc,
                )
                raise
    raise BackendFailure(f"Could not settle {action} for equipment {equipment_id}.")


def request_movement(
    db: Session,
    equipment_id: int,
    status: Any,
    quantity: Any,
    descriptors: Optional[dict] = None,
    operator: Optional[str] = None,
    threshold: Optional[int] = None,
) -> Tracking:
    movement_status = MovementStatus.parse(status)
    units = _require_positive_quantity(quantity)
    columns = _descriptor_columns(descriptors)
    delta = movement_delta(movement_status, units)

    def write(session: Session) -> Tracking:
        record = Tracking(
            EquipmentID=equipment_id,
            Status=movement_status.value,
            Quantity=units,
            CreatedBy=operator,
            **columns,
        )
        ledger_service.append(session, record)
        return record

    return _reconcile(db, equipment_id, "request", lambda session: delta, write, operator, threshold)


def edit_movement(
    db: Session,
    record_id: int,
    new_status: Any,
    new_quantity: Any,
    descriptors: Optional[dict] = None,
    operator: Optional[str] = None,
    threshold: Optional[int] = None,
) -> Tracking:
    movement_status = MovementStatus.parse(new_status)
    units = _require_positive_quantity(new_quantity)
    _descriptor_columns(descriptors)
    equipment_id = ledger_service.get_movement(db, record_id).EquipmentID

    def plan_delta(session: Session) -> int:
        record = _lock_movement_row(session, record_id)
        changes_stock = record.Status != movement_status.value or int(record.Quantity) != units
        if record.ClosedByID and changes_stock:
            raise InvalidMovement(
                f"Tracking record {record_id} was closed by record {record.ClosedByID}; only its descriptors can change.",
                record_id=record_id,
            )
        if changes_stock:
            closed_id = session.execute(
                select(Tracking.TrackingID).where(Tracking.ClosedByID == record_id)
            ).scalars().first()
            if closed_id is not None:
                raise InvalidMovement(
                    f"Tracking record {record_id} retired record {closed_id}; only its descriptors can change.",
                    record_id=record_id,
                )
        return -record_delta(record) + movement_delta(movement_status, units)

    def write(session: Session) -> Tracking:
        patch = dict(descriptors or {})
        for field, value in patch.items():
            if isinstance(value, str):
                patch[field] = value.strip() or None
        patch["status"] = movement_status.value
        patch["quantity"] = units
        return ledger_service.update(session, record_id, patch, operator)

    return _reconcile(db, equipment_id, "edit", plan_delta, write, operator, threshold)


def _retirement_summary(at: datetime, condition: RetirementCondition, notes: Optional[str]) -> str:
    label = "good condition" if condition == RetirementCondition.GOOD else "damaged"
    summary = f"Retired at {at.strftime('%Y-%m-%d %H:%M:%S')}. Condition: {label}."
    extra = (notes or "").strip()
    if extra:
        summary = f"{summary} Notes: {extra}"
    return summary


def retire_equipment(
    db: Session,
    record_id: int,
    condition: Any,
    responsible: Optional[str] = None,
    notes: Optional[str] = None,
    operator: Optional[str] = None,
    threshold: Optional[int] = None,
) -> Tracking:
    """Close an outstanding checkout or maintenance record ("dar baixa").

    A good return puts the units back in stock; a damaged one records the loss
    without touching stock, since the original movement already removed it.
    Either way the outstanding record is linked to the retirement and cannot be
    retired twice.
    """
    retirement_condition = RetirementCondition.parse(condition)
    retirement_status = (
        MovementStatus.DEVOLUCAO if retirement_condition == RetirementCondition.GOOD else MovementStatus.DANIFICADO
    )
    equipment_id = ledger_service.get_movement(db, record_id).EquipmentID
    stamped_by = (responsible or "").strip() or operator

    def plan_delta(session: Session) -> int:
        record = _lock_movement_row(session, record_id)
        if MovementStatus.parse(record.Status) not in OUTSTANDING_STATUSES:
            raise InvalidMovement(
                f"Only checkout or maintenance records can be retired; record {record_id} is {record.Status}.",
                record_id=record_id,
            )
        if record.ClosedByID:
            raise InvalidMovement(
                f"Tracking record {record_id} was already retired by record {record.ClosedByID}.",
                record_id=record_id,
            )
        return movement_delta(retirement_status, record.Quantity)

    def write(session: Session) -> Tracking:
        outstanding = session.get(Tracking, record_id)
        now = datetime.now()
        retirement = Tracking(
            EquipmentID=equipment_id,
            Status=retirement_status.value,
            Quantity=outstanding.Quantity,
            ResponsiblePerson=stamped_by,
            DeliveredBy=stamped_by,
            ReceivedBy=RETIREMENT_RECEIVER,
            Notes=_retirement_summary(now, retirement_condition, notes),
            CreatedBy=operator,
        )
        ledger_service.append(session, retirement)
        outstanding.ClosedByID = retirement.TrackingID
        outstanding.UpdatedBy = operator
        outstanding.UpdatedAt = now
        session.flush()
        return retirement

    return _reconcile(db, equipment_id, "retire", plan_delta, write, operator, threshold)


def delete_movement(
    db: Session,
    record_id: int,
    operator: Optional[str] = None,
    threshold: Optional[int] = None,
) -> Tracking:
    """Remove a ledger entry and undo its effect on stock in the same commit."""
    equipment_id = ledger_service.get_movement(db, record_id).EquipmentID

    def plan_delta(session: Session) -> int:
        record = _lock_movement_row(session, record_id)
        if record.ClosedByID:
            raise InvalidMovement(
                f"Tracking record {record_id} was retired by record {record.ClosedByID}; delete that record first.",
                record_id=record_id,
            )
        return -record_delta(record)

    def write(session: Session) -> Tracking:
        record = session.get(Tracking, record_id)
        reopened = session.execute(select(Tracking).where(Tracking.ClosedByID == record_id)).scalars().all()
        for outstanding in reopened:
            outstanding.ClosedByID = None
            outstanding.UpdatedBy = operator
            outstanding.UpdatedAt = datetime.now()
        session.flush()
        ledger_service.remove(session, record_id)
        return record

    return _reconcile(db, equipment_id, "delete", plan_delta, write, operator, threshold)
