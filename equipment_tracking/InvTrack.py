import logging
import os
from datetime import date, datetime
from typing import NoReturn

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from dotenv import load_dotenv

load_dotenv()

from db.deps import get_inventory_db
from models.inventory_models import AuditLog, Bin, Category, Location, Sector
from schemas.access import RoleUpdate
from schemas.equipment import BinCreate, CategoryCreate, EquipmentUpsert, LocationCreate, SectorCreate
from schemas.tracking import MovementEdit, MovementRequest, RetireRequest, ScanRequest
from services import reconciliation_service
from services.equipment_service import (
    create_equipment as create_equipment_record,
    delete_equipment as delete_equipment_record,
    get_equipment as get_equipment_record,
    list_equipment,
    serialize_equipment,
    update_equipment as update_equipment_record,
)
from services.errors import InventoryError
from services.ledger_service import DESCRIPTOR_FIELDS, MovementFilter, get_movement, list_movements, paginate, serialize_movement
from services.notification_service import list_notifications, mark_notification_read, serialize_notification
from services.qr_service import build_lookup_payload, render_label_png, resolve_scan
from services.report_service import (
    build_movement_report,
    low_stock_items,
    serialize_balance_check,
    status_counts,
    verify_balances,
)
from services.user_access_service import (
    delete_user_role,
    get_session,
    get_user_role,
    list_user_roles,
    operator_label,
    upsert_user_role,
)

app = FastAPI()

ACCESS_LOGGER = logging.getLogger("equipment_tracking.access")


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in str(raw).split(",") if item.strip()]


_CORS_ALLOW_ORIGINS = _parse_csv_env(
    "CORS_ALLOW_ORIGINS",
    "http://127.0.0.1,http://localhost,http://127.0.0.1:5173,http://localhost:5173",
)
_CORS_ALLOW_CREDENTIALS = str(os.environ.get("CORS_ALLOW_CREDENTIALS", "true")).strip().lower() in {"1", "true", "yes", "on"}
if "*" in _CORS_ALLOW_ORIGINS:
    # Browsers reject wildcard origins with credentials.
    _CORS_ALLOW_CREDENTIALS = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ALLOW_ORIGINS,
    allow_credentials=_CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"]
)


def log_audit(db: Session, entity_type: str, entity_id: int, action: str, details: str | None = None, user_id: str | None = None) -> None:
    db.add(
        AuditLog(
            EntityType=entity_type,
            EntityID=entity_id,
            Action=action,
            Details=details,
            UserID=user_id,
            CreatedAt=datetime.now(),
        )
    )


def _raise_http(exc: InventoryError) -> NoReturn:
    raise HTTPException(status_code=exc.status_code, detail={"code": exc.code, "message": str(exc)}) from exc


def _require_session_or_401(session_token: str | None) -> dict:
    session = get_session(session_token)
    if not session:
        raise HTTPException(status_code=401, detail="Not logged in.")
    return session


def _require_right_or_403(db: Session, session_token: str | None, right: str, label: str) -> dict:
    session = _require_session_or_401(session_token)
    access = get_user_role(db, session["userID"])
    if not access["rights"].get(right):
        ACCESS_LOGGER.warning(
            "Access denied user_id=%s role=%s required=%s",
            session["userID"],
            access["role"],
            right,
        )
        raise HTTPException(status_code=403, detail=f"{label} role required.")
    return {**session, "role": access["role"], "rights": access["rights"]}


def _require_editor_or_403(db: Session, session_token: str | None) -> dict:
    return _require_right_or_403(db, session_token, "edit", "Editor")


def _require_developer_or_403(db: Session, session_token: str | None) -> dict:
    return _require_right_or_403(db, session_token, "delete", "Desenvolvedor")


def _resolve_operator(session: dict) -> str | None:
    return operator_label(session)


def _parse_when(raw: str | None, field: str) -> date | datetime | None:
    value = (raw or "").strip()
    if not value:
        return None
    try:
        if len(value) == 10:
            return date.fromisoformat(value)
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"{field} must be an ISO date or datetime.") from exc


def _build_filter(
    equipment_id: int | None,
    status: str | None,
    start_date: str | None,
    end_date: str | None,
    sector_id: int | None,
    location_id: int | None,
    search: str | None,
) -> MovementFilter:
    try:
        return MovementFilter.build(
            equipment_id=equipment_id,
            status=status,
            start=_parse_when(start_date, "startDate"),
            end=_parse_when(end_date, "endDate"),
            sector_id=sector_id,
            location_id=location_id,
            search=search,
        )
    except InventoryError as exc:
        _raise_http(exc)


def _commit_or_409(db: Session, detail: str) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail=detail) from exc


@app.get("/healthz")
def healthcheck():
    return {"status": "ok"}


@app.get("/api/healthz")
def healthcheck_api(db: Session = Depends(get_inventory_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok"}
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail=f"db_unavailable: {exc}") from exc


@app.get("/api/auth/me")
def auth_me(
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_session_or_401(x_session_token)
    access = get_user_role(db, session["userID"])
    return {"user": {**session, "role": access["role"], "rights": access["rights"]}}


@app.get("/api/categories")
def get_categories(
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(x_session_token)
    rows = db.execute(select(Category).order_by(Category.CategoryName)).scalars().all()
    return [
        {"categoryID": row.CategoryID, "categoryName": row.CategoryName, "description": row.Description}
        for row in rows
    ]


@app.post("/api/categories")
def create_category(
    payload: CategoryCreate,
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_editor_or_403(db, x_session_token)
    name = payload.categoryName.strip()
    if not name:
        raise HTTPException(status_code=400, detail="categoryName is required.")
    category = Category(CategoryName=name, Description=payload.description, CreatedDate=datetime.now())
    db.add(category)
    db.commit()
    log_audit(db, "Category", category.CategoryID, "CreateCategory", name, user_id=session["userID"])
    db.commit()
    return {"categoryID": category.CategoryID, "categoryName": category.CategoryName, "description": category.Description}


@app.get("/api/bins")
def get_bins(
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(x_session_token)
    rows = db.execute(select(Bin).order_by(Bin.BinCode)).scalars().all()
    return [
        {"binID": row.BinID, "binCode": row.BinCode, "zone": row.Zone, "description": row.Description}
        for row in rows
    ]


@app.post("/api/bins")
def create_bin(
    payload: BinCreate,
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_editor_or_403(db, x_session_token)
    code = payload.binCode.strip().upper()
    if not code:
        raise HTTPException(status_code=400, detail="binCode is required.")
    bin_row = Bin(BinCode=code, Zone=payload.zone, Description=payload.description, CreatedDate=datetime.now())
    db.add(bin_row)
    _commit_or_409(db, f"Bin {code} already exists.")
    log_audit(db, "Bin", bin_row.BinID, "CreateBin", code, user_id=session["userID"])
    db.commit()
    return {"binID": bin_row.BinID, "binCode": bin_row.BinCode, "zone": bin_row.Zone, "description": bin_row.Description}


@app.get("/api/locations")
def get_locations(
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(x_session_token)
    rows = db.execute(select(Location).order_by(Location.LocationName)).scalars().all()
    return [{"locationID": row.LocationID, "locationName": row.LocationName} for row in rows]


@app.post("/api/locations")
def create_location(
    payload: LocationCreate,
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_editor_or_403(db, x_session_token)
    name = payload.locationName.strip()
    if not name:
        raise HTTPException(status_code=400, detail="locationName is required.")
    location = Location(LocationName=name, CreatedDate=datetime.now())
    db.add(location)
    db.commit()
    log_audit(db, "Location", location.LocationID, "CreateLocation", name, user_id=session["userID"])
    db.commit()
    return {"locationID": location.LocationID, "locationName": location.LocationName}


@app.get("/api/sectors")
def get_sectors(
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(x_session_token)
    rows = db.execute(select(Sector).order_by(Sector.SectorName)).scalars().all()
    return [{"sectorID": row.SectorID, "sectorName": row.SectorName} for row in rows]


@app.post("/api/sectors")
def create_sector(
    payload: SectorCreate,
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_editor_or_403(db, x_session_token)
    name = payload.sectorName.strip()
    if not name:
        raise HTTPException(status_code=400, detail="sectorName is required.")
    sector = Sector(SectorName=name, CreatedDate=datetime.now())
    db.add(sector)
    db.commit()
    log_audit(db, "Sector", sector.SectorID, "CreateSector", name, user_id=session["userID"])
    db.commit()
    return {"sectorID": sector.SectorID, "sectorName": sector.SectorName}


@app.get("/api/equipment")
def get_equipment(
    search: str | None = Query(None),
    category_id: int | None = Query(None, alias="categoryID"),
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(x_session_token)
    return [serialize_equipment(item) for item in list_equipment(db, search, category_id)]


@app.get("/api/equipment/{equipment_id}")
def get_equipment_item(
    equipment_id: int,
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(x_session_token)
    try:
        return serialize_equipment(get_equipment_record(db, equipment_id))
    except InventoryError as exc:
        _raise_http(exc)


@app.post("/api/equipment")
def create_equipment(
    payload: EquipmentUpsert,
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_editor_or_403(db, x_session_token)
    try:
        equipment = create_equipment_record(db, payload.model_dump(exclude_unset=True), _resolve_operator(session))
    except InventoryError as exc:
        db.rollback()
        _raise_http(exc)
    db.commit()
    log_audit(
        db,
        "Equipment",
        equipment.EquipmentID,
        "CreateEquipment",
        f"Created {equipment.Name} with quantity {equipment.InitialQuantity}",
        user_id=session["userID"],
    )
    db.commit()
    return serialize_equipment(equipment)


@app.put("/api/equipment/{equipment_id}")
def update_equipment(
    equipment_id: int,
    payload: EquipmentUpsert,
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_editor_or_403(db, x_session_token)
    try:
        equipment = get_equipment_record(db, equipment_id)
        update_equipment_record(db, equipment, payload.model_dump(exclude_unset=True), _resolve_operator(session))
    except InventoryError as exc:
        db.rollback()
        _raise_http(exc)
    db.commit()
    log_audit(db, "Equipment", equipment_id, "UpdateEquipment", "Updated equipment fields", user_id=session["userID"])
    db.commit()
    return serialize_equipment(equipment)


@app.delete("/api/equipment/{equipment_id}")
def delete_equipment(
    equipment_id: int,
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_developer_or_403(db, x_session_token)
    try:
        equipment = get_equipment_record(db, equipment_id)
        name = equipment.Name
        delete_equipment_record(db, equipment)
    except InventoryError as exc:
        db.rollback()
        _raise_http(exc)
    db.commit()
    log_audit(db, "Equipment", equipment_id, "DeleteEquipment", f"Deleted {name}", user_id=session["userID"])
    db.commit()
    return {"ok": True}


@app.get("/api/equipment/{equipment_id}/history")
def get_equipment_history(
    equipment_id: int,
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(x_session_token)
    try:
        get_equipment_record(db, equipment_id)
    except InventoryError as exc:
        _raise_http(exc)
    records = list_movements(db, MovementFilter(equipment_id=equipment_id))
    return [serialize_movement(record) for record in records]


@app.get("/api/equipment/{equipment_id}/qr")
def get_equipment_qr_payload(
    equipment_id: int,
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(x_session_token)
    try:
        return build_lookup_payload(db, equipment_id)
    except InventoryError as exc:
        _raise_http(exc)


@app.get("/api/equipment/{equipment_id}/qr.png")
def get_equipment_qr_label(
    equipment_id: int,
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(x_session_token)
    try:
        payload = build_lookup_payload(db, equipment_id)
    except InventoryError as exc:
        _raise_http(exc)
    return Response(content=render_label_png(payload), media_type="image/png")


@app.post("/api/scan")
def scan_equipment(
    payload: ScanRequest,
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(x_session_token)
    try:
        return resolve_scan(db, payload.rawValue)
    except InventoryError as exc:
        _raise_http(exc)


@app.get("/api/tracking")
def get_tracking(
    equipment_id: int | None = Query(None, alias="equipmentID"),
    status: str | None = Query(None),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    sector_id: int | None = Query(None, alias="sectorID"),
    location_id: int | None = Query(None, alias="locationID"),
    search: str | None = Query(None),
    page: int = Query(1),
    page_size: int = Query(20, alias="pageSize"),
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(x_session_token)
    movement_filter = _build_filter(equipment_id, status, start_date, end_date, sector_id, location_id, search)
    result = paginate(list_movements(db, movement_filter), page, page_size)
    result["items"] = [serialize_movement(record) for record in result["items"]]
    return result


@app.post("/api/tracking")
def create_tracking(
    payload: MovementRequest,
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_editor_or_403(db, x_session_token)
    operator = _resolve_operator(session)
    descriptors = payload.model_dump(exclude_unset=True, include=set(DESCRIPTOR_FIELDS))
    if not (descriptors.get("deliveredBy") or "").strip():
        descriptors["deliveredBy"] = operator
    try:
        record = reconciliation_service.request_movement(
            db,
            payload.equipmentID,
            payload.status,
            payload.quantity,
            descriptors,
            operator=operator,
        )
    except InventoryError as exc:
        _raise_http(exc)
    log_audit(
        db,
        "Tracking",
        record.TrackingID,
        "CreateMovement",
        f"{record.Status} x{record.Quantity} for equipment {record.EquipmentID}",
        user_id=session["userID"],
    )
    db.commit()
    return serialize_movement(record)


@app.put("/api/tracking/{record_id}")
def update_tracking(
    record_id: int,
    payload: MovementEdit,
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_editor_or_403(db, x_session_token)
    descriptors = payload.model_dump(exclude_unset=True, include=set(DESCRIPTOR_FIELDS))
    try:
        record = reconciliation_service.edit_movement(
            db,
            record_id,
            payload.status,
            payload.quantity,
            descriptors,
            operator=_resolve_operator(session),
        )
    except InventoryError as exc:
        _raise_http(exc)
    log_audit(
        db,
        "Tracking",
        record_id,
        "UpdateMovement",
        f"Now {record.Status} x{record.Quantity}",
        user_id=session["userID"],
    )
    db.commit()
    return serialize_movement(record)


@app.delete("/api/tracking/{record_id}")
def delete_tracking(
    record_id: int,
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_developer_or_403(db, x_session_token)
    try:
        record = reconciliation_service.delete_movement(db, record_id, operator=_resolve_operator(session))
    except InventoryError as exc:
        _raise_http(exc)
    log_audit(
        db,
        "Tracking",
        record_id,
        "DeleteMovement",
        f"Deleted {record.Status} x{record.Quantity} for equipment {record.EquipmentID}",
        user_id=session["userID"],
    )
    db.commit()
    return {"ok": True}


@app.post("/api/tracking/{record_id}/retire")
def retire_tracking(
    record_id: int,
    payload: RetireRequest,
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_editor_or_403(db, x_session_token)
    try:
        retirement = reconciliation_service.retire_equipment(
            db,
            record_id,
            payload.condition,
            responsible=payload.responsible,
            notes=payload.notes,
            operator=_resolve_operator(session),
        )
    except InventoryError as exc:
        _raise_http(exc)
    log_audit(
        db,
        "Tracking",
        retirement.TrackingID,
        "RetireMovement",
        f"Closed record {record_id} as {retirement.Status}",
        user_id=session["userID"],
    )
    db.commit()
    return {
        "retirement": serialize_movement(retirement),
        "closed": serialize_movement(get_movement(db, record_id)),
    }


@app.get("/api/reports/status-counts")
def get_status_counts(
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(x_session_token)
    return status_counts(list_movements(db))


@app.get("/api/reports/movements")
def get_movement_report(
    equipment_id: int | None = Query(None, alias="equipmentID"),
    status: str | None = Query(None),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    sector_id: int | None = Query(None, alias="sectorID"),
    location_id: int | None = Query(None, alias="locationID"),
    search: str | None = Query(None),
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(x_session_token)
    movement_filter = _build_filter(equipment_id, status, start_date, end_date, sector_id, location_id, search)
    return build_movement_report(db, movement_filter)


@app.get("/api/reports/low-stock")
def get_low_stock(
    threshold: int | None = Query(None),
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(x_session_token)
    limit = reconciliation_service.LOW_STOCK_THRESHOLD if threshold is None else threshold
    return {
        "threshold": limit,
        "items": [serialize_equipment(item) for item in low_stock_items(db, limit)],
    }


@app.get("/api/reports/balance")
def get_balance_report(
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(x_session_token)
    checks = verify_balances(db)
    return {
        "ok": all(check.ok for check in checks),
        "items": [serialize_balance_check(check) for check in checks],
    }


@app.get("/api/notifications")
def get_notifications(
    unread_only: bool = Query(False, alias="unreadOnly"),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(x_session_token)
    return [serialize_notification(item) for item in list_notifications(db, unread_only, limit)]


@app.post("/api/notifications/{notification_id}/read")
def read_notification(
    notification_id: int,
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(x_session_token)
    try:
        notification = mark_notification_read(db, notification_id)
    except InventoryError as exc:
        _raise_http(exc)
    db.commit()
    return serialize_notification(notification)


@app.get("/api/audit")
def get_audit_log(
    entity_type: str | None = Query(None, alias="entityType"),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(x_session_token)
    stmt = select(AuditLog)
    if entity_type:
        stmt = stmt.where(AuditLog.EntityType == entity_type)
    rows = db.execute(stmt.order_by(AuditLog.CreatedAt.desc(), AuditLog.AuditID.desc()).limit(limit)).scalars().all()
    return [
        {
            "auditID": row.AuditID,
            "entityType": row.EntityType,
            "entityID": row.EntityID,
            "action": row.Action,
            "details": row.Details,
            "userID": row.UserID,
            "createdAt": row.CreatedAt,
        }
        for row in rows
    ]


@app.get("/api/admin/roles")
def get_roles(
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_right_or_403(db, x_session_token, "manageRoles", "Desenvolvedor")
    return list_user_roles(db)


@app.get("/api/admin/roles/{user_id}")
def get_role(
    user_id: str,
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_right_or_403(db, x_session_token, "manageRoles", "Desenvolvedor")
    return get_user_role(db, user_id)


@app.put("/api/admin/roles/{user_id}")
def put_role(
    user_id: str,
    payload: RoleUpdate,
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_right_or_403(db, x_session_token, "manageRoles", "Desenvolvedor")
    try:
        result = upsert_user_role(db, user_id, payload.role, payload.email)
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    ACCESS_LOGGER.info("Role granted user_id=%s role=%s by=%s", user_id, payload.role, session["userID"])
    log_audit(db, "UserRole", 0, "GrantRole", f"{user_id} -> {payload.role}", user_id=session["userID"])
    db.commit()
    return result


@app.delete("/api/admin/roles/{user_id}")
def delete_role(
    user_id: str,
    db: Session = Depends(get_inventory_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_right_or_403(db, x_session_token, "manageRoles", "Desenvolvedor")
    if str(user_id) == str(session["userID"]):
        raise HTTPException(status_code=400, detail="You cannot remove your own role.")
    if not delete_user_role(db, user_id):
        raise HTTPException(status_code=404, detail="Role assignment not found.")
    db.commit()
    ACCESS_LOGGER.info("Role revoked user_id=%s by=%s", user_id, session["userID"])
    log_audit(db, "UserRole", 0, "RevokeRole", user_id, user_id=session["userID"])
    db.commit()
    return {"ok": True}
