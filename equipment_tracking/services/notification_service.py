from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.inventory_models import NotificationQueue
from services.errors import NotFound

LOW_STOCK_NOTIFICATION = "LowStock"
NOTIFICATION_LOGGER = logging.getLogger("equipment_tracking.notifications")


@dataclass(frozen=True)
class LowStockEvent:
    equipment_id: int
    equipment_name: str
    quantity: int
    threshold: int


def crossed_low_stock(previous: int, current: int, threshold: int) -> bool:
    return previous > threshold >= current


def queue_low_stock_notification(db: Session, event: LowStockEvent) -> NotificationQueue:
    payload = asdict(event)
    payload["message"] = (
        f"Low stock: {event.equipment_name} has {event.quantity} units available (threshold {event.threshold})."
    )
    notification = NotificationQueue(
        EquipmentID=event.equipment_id,
        NotificationType=LOW_STOCK_NOTIFICATION,
        Payload=json.dumps(payload, ensure_ascii=True),
        CreatedAt=datetime.now(),
    )
    db.add(notification)
    NOTIFICATION_LOGGER.warning(
        "Low stock equipment_id=%s quantity=%s threshold=%s",
        event.equipment_id,
        event.quantity,
        event.threshold,
    )
    return notification


def list_notifications(db: Session, unread_only: bool = False, limit: int = 10) -> list[NotificationQueue]:
    stmt = select(NotificationQueue)
    if unread_only:
        stmt = stmt.where(NotificationQueue.ReadAt.is_(None))
    stmt = stmt.order_by(NotificationQueue.CreatedAt.desc(), NotificationQueue.NotificationID.desc()).limit(limit)
    return list(db.execute(stmt).scalars().all())


def mark_notification_read(db: Session, notification_id: int) -> NotificationQueue:
    notification = db.get(NotificationQueue, notification_id)
    if not notification:
        raise NotFound(f"Notification {notification_id} not found.", notification_id=notification_id)
    if notification.ReadAt is None:
        notification.ReadAt = datetime.now()
    return notification


def serialize_notification(notification: NotificationQueue) -> dict:
    payload: Optional[dict] = None
    if notification.Payload:
        try:
            parsed = json.loads(notification.Payload)
            payload = parsed if isinstance(parsed, dict) else None
        except (TypeError, ValueError):
            payload = None
    return {
        "notificationID": notification.NotificationID,
        "equipmentID": notification.EquipmentID,
        "type": notification.NotificationType,
        "message": (payload or {}).get("message") or notification.Payload,
        "payload": payload,
        "createdAt": notification.CreatedAt,
        "read": notification.ReadAt is not None,
        "readAt": notification.ReadAt,
    }
