"""Database layer for Stockline."""

from stockline.db.postgres import PostgresStore, get_db
from stockline.db.store import InventoryStore

__all__ = ["InventoryStore", "PostgresStore", "get_db"]
