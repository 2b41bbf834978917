from __future__ import annotations

import base64
import hashlib
import hmac
import json
import os
import time
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.inventory_models import UserRole

SESSION_TTL_SECONDS = int(os.environ.get("SESSION_TTL_SECONDS") or str(60 * 60 * 12))
DEFAULT_ROLE = "leitor"

RIGHTS_BY_ROLE = {
    "leitor": {
        "read": True,
        "edit": False,
        "delete": False,
        "manageRoles": False,
    },
    "editor": {
        "read": True,
        "edit": True,
        "delete": False,
        "manageRoles": False,
    },
    "desenvolvedor": {
        "read": True,
        "edit": True,
        "delete": True,
        "manageRoles": True,
    },
}


def _require_session_secret() -> bytes:
    raw = (os.environ.get("SESSION_SIGNING_SECRET") or "").strip()
    if len(raw) < 32:
        raise RuntimeError("SESSION_SIGNING_SECRET must be set and at least 32 characters long.")
    return raw.encode("utf-8")


_SESSION_SECRET = _require_session_secret()


def normalize_role(raw_role: Optional[str]) -> str:
    role = (raw_role or "").strip().lower()
    if role in RIGHTS_BY_ROLE:
        return role
    return DEFAULT_ROLE


def rights_for(role: Optional[str]) -> dict[str, bool]:
    return dict(RIGHTS_BY_ROLE[normalize_role(role)])


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(encoded: str) -> bytes:
    return base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4))


def create_session(payload: dict[str, Any], ttl_seconds: Optional[int] = None) -> str:
    session_payload = dict(payload)
    session_payload["expiresAt"] = time.time() + (SESSION_TTL_SECONDS if ttl_seconds is None else ttl_seconds)
    body = json.dumps(session_payload, ensure_ascii=True, separators=(",", ":")).encode("utf-8")
    encoded = _b64encode(body)
    signature = hmac.new(_SESSION_SECRET, encoded.encode("ascii"), hashlib.sha256).digest()
    return f"{encoded}.{_b64encode(signature)}"


def get_session(token: Optional[str]) -> Optional[dict[str, Any]]:
    if not token:
        return None
    try:
        encoded, encoded_sig = token.split(".", 1)
        expected_sig = hmac.new(_SESSION_SECRET, encoded.encode("ascii"), hashlib.sha256).digest()
        if not hmac.compare_digest(expected_sig, _b64decode(encoded_sig)):
            return None
        decoded_session = json.loads(_b64decode(encoded).decode("utf-8"))
    except (ValueError, UnicodeError):
        return None

    if not isinstance(decoded_session, dict):
        return None
    if time.time() >= float(decoded_session.get("expiresAt") or 0.0):
        return None
    if not str(decoded_session.get("userID") or "").strip():
        return None
    return decoded_session


def operator_label(session: Optional[dict[str, Any]]) -> Optional[str]:
    if not session:
        return None
    email = str(session.get("email") or "").strip()
    display = str(session.get("displayName") or "").strip()
    return display or (email.split("@")[0] if email else None) or str(session.get("userID"))


def get_user_role(db: Session, user_id: str) -> dict[str, Any]:
    row = db.get(UserRole, str(user_id))
    role = normalize_role(row.Role if row else None)
    return {
        "userID": str(user_id),
        "email": row.Email if row else None,
        "role": role,
        "rights": rights_for(role),
        "isProvisioned": row is not None,
    }


def list_user_roles(db: Session) -> list[dict[str, Any]]:
    rows = db.execute(select(UserRole).order_by(UserRole.Email, UserRole.UserID)).scalars().all()
    return [
        {
            "userID": row.UserID,
            "email": row.Email,
            "role": normalize_role(row.Role),
            "rights": rights_for(row.Role),
        }
        for row in rows
    ]


def upsert_user_role(db: Session, user_id: str, role: str, email: Optional[str] = None) -> dict[str, Any]:
    key = str(user_id or "").strip()
    if not key:
        raise ValueError("userID is required.")
    requested = (role or "").strip().lower()
    if requested not in RIGHTS_BY_ROLE:
        raise ValueError(f"Unknown role: {role}. Expected one of {', '.join(RIGHTS_BY_ROLE)}.")

    row = db.get(UserRole, key)
    if row is None:
        row = UserRole(UserID=key, CreatedAt=datetime.now())
        db.add(row)
    row.Role = requested
    if email is not None:
        row.Email = email.strip() or None
    row.UpdatedAt = datetime.now()
    db.flush()
    return get_user_role(db, key)


def delete_user_role(db: Session, user_id: str) -> bool:
    row = db.get(UserRole, str(user_id))
    if row is None:
        return False
    db.delete(row)
    db.flush()
    return True
