from __future__ import annotations

import io
import json
import re
from typing import Optional

import qrcode
from sqlalchemy.orm import Session

from models.inventory_models import Equipment
from services.equipment_service import find_by_serial, get_equipment
from services.errors import InvalidMovement, NotFound
from services.ledger_service import latest_descriptors

SERIAL_KEYS = ("serial_number", "serial", "serialNumber", "serial_no", "numero_serie", "numeroSerie")
_SERIAL_PATTERN = re.compile(r"(serial|serie|serial_number|numero_serie)[:=]\s*(.+)", re.IGNORECASE)


def _lookup_payload(equipment: Equipment) -> dict:
    return {
        "id": equipment.EquipmentID,
        "name": equipment.Name,
        "serialNumber": equipment.SerialNumber,
        "categoryId": equipment.CategoryID,
        "categoryName": equipment.Category.CategoryName if equipment.Category else None,
        "binId": equipment.BinID,
        "binCode": equipment.Bin.BinCode if equipment.Bin else None,
        "availableQuantity": equipment.AvailableQuantity,
        "imageUrl": equipment.ImageUrl,
    }


def build_lookup_payload(db: Session, equipment_id: int) -> dict:
    return _lookup_payload(get_equipment(db, equipment_id))


def render_label_png(payload: dict) -> bytes:
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(json.dumps(payload, ensure_ascii=True, separators=(",", ":")))
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def parse_serial_from_qr(raw_value: Optional[str]) -> str:
    trimmed = (raw_value or "").strip()
    if not trimmed:
        return ""
    try:
        parsed = json.loads(trimmed)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        for key in SERIAL_KEYS:
            candidate = parsed.get(key)
            if isinstance(candidate, str) and candidate.strip():
                return candidate.strip()

    match = _SERIAL_PATTERN.search(trimmed)
    if match and match.group(2).strip():
        return match.group(2).strip()
    return trimmed


def _payload_equipment_id(raw_value: str) -> Optional[int]:
    # Labels printed for equipment without a serial only carry the id.
    try:
        parsed = json.loads(raw_value)
    except ValueError:
        return None
    if not isinstance(parsed, dict) or any(parsed.get(key) for key in SERIAL_KEYS):
        return None
    candidate = parsed.get("id")
    return candidate if isinstance(candidate, int) and not isinstance(candidate, bool) else None


def resolve_scan(db: Session, raw_value: Optional[str]) -> dict:
    serial = parse_serial_from_qr(raw_value)
    if not serial:
        raise InvalidMovement("QR code is empty or invalid.")
    equipment_id = _payload_equipment_id(serial)
    if equipment_id is not None:
        equipment = get_equipment(db, equipment_id)
        serial = equipment.SerialNumber or ""
    else:
        equipment = find_by_serial(db, serial)
    if not equipment:
        raise NotFound(f"No equipment registered with serial {serial}.", serial_number=serial)
    return {
        "serialNumber": serial,
        "equipment": _lookup_payload(equipment),
        "lastDescriptors": latest_descriptors(db, equipment.EquipmentID),
    }
