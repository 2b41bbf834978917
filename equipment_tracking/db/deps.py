from collections.abc import Generator

from .session import SessionLocalInventory


def get_inventory_db() -> Generator:
    db = SessionLocalInventory()
    try:
        yield db
    finally:
        db.close()
