"""PostgreSQL store for Stockline."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator
from urllib.parse import quote

import psycopg
import structlog

from stockline.config import StoreSettings, get_settings
from stockline.core.errors import InvalidMovementError, StoreError
from stockline.core.models import Location, LocationBalance, Movement, MovementType

logger = structlog.get_logger()

_MOVEMENT_COLUMNS = """
    m.id, m.movement_type, m.product_code, m.delta, m.created_at,
    m.location_id, m.from_location_id, m.to_location_id,
    fl.location_code, tl.location_code, NULL, m.note
"""


def _movement_from_row(row: tuple) -> Movement:
    return Movement(
        id=row[0],
        type=MovementType(row[1]),
        product_code=row[2],
        delta=row[3],
        created_at=row[4],
        location_id=str(row[5]) if row[5] is not None else None,
        from_location_id=str(row[6]) if row[6] is not None else None,
        to_location_id=str(row[7]) if row[7] is not None else None,
        from_location_code=row[8],
        to_location_code=row[9],
        reason=row[10],
        note=row[11],
    )


def _adjustment_from_row(row: tuple) -> Movement:
    return Movement(
        id=row[0],
        type=MovementType.ADJUST,
        product_code=row[1],
        delta=row[2],
        reason=row[3],
        note=row[4],
        created_at=row[5],
    )


class PostgresStore:
    """Inventory store backed by Postgres, using psycopg async connections.

    Each write runs in its own transaction that appends the history row and
    upserts the affected on-hand rows. Nothing spans more than one call.
    """

    def __init__(self, settings: StoreSettings | None = None):
        """Initialize the store.

        Args:
            settings: Store settings. If None, uses global settings.
        """
        self._settings = settings or get_settings().store

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Get a database connection context manager.

        Commits on success and rolls back on error. Malformed or unknown
        references (bad UUIDs, missing locations) map to InvalidMovementError;
        every other driver error maps to StoreError.
        """
        try:
            conn = await psycopg.AsyncConnection.connect(self._settings.conninfo)
        except psycopg.Error as e:
            logger.error("database_connect_failed", host=self._settings.host, error=str(e))
            raise StoreError(f"Store unavailable: {e}") from e

        try:
            yield conn
            await conn.commit()
        except (psycopg.DataError, psycopg.errors.ForeignKeyViolation) as e:
            await conn.rollback()
            logger.warning("database_call_rejected", error=str(e))
            raise InvalidMovementError(f"Rejected by the store: {e}") from e
        except psycopg.Error as e:
            await conn.rollback()
            logger.error("database_call_failed", error=str(e))
            raise StoreError(str(e)) from e
        except Exception:
            await conn.rollback()
            raise
        finally:
            await conn.close()

    async def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            async with self.session() as conn:
                await conn.execute("SELECT 1")
            return True
        except StoreError as e:
            logger.error("database_health_check_failed", error=str(e))
            return False

    # Catalog

    async def find_product(self, code: str) -> bool:
        async with self.session() as conn:
            cur = await conn.execute(
                "SELECT 1 FROM products_catalog WHERE product_code = %s", (code,)
            )
            return await cur.fetchone() is not None

    async def get_image_ref(self, code: str) -> str | None:
        async with self.session() as conn:
            cur = await conn.execute(
                "SELECT image_path FROM products_catalog WHERE product_code = %s", (code,)
            )
            row = await cur.fetchone()
        return row[0] if row else None

    async def resolve_image_url(self, path: str) -> str:
        """Public URL of an image in the product image bucket."""
        base = self._settings.image_base_url.rstrip("/")
        return f"{base}/{self._settings.image_bucket}/{quote(path.lstrip('/'))}"

    async def list_locations(self) -> list[Location]:
        async with self.session() as conn:
            cur = await conn.execute(
                "SELECT id, location_code FROM locations ORDER BY location_code"
            )
            rows = await cur.fetchall()
        return [Location(id=str(row[0]), code=row[1]) for row in rows]

    # Balances

    async def get_global_on_hand(self, code: str) -> int:
        async with self.session() as conn:
            cur = await conn.execute(
                "SELECT on_hand FROM inventory_on_hand WHERE product_code = %s", (code,)
            )
            row = await cur.fetchone()
        return row[0] if row else 0

    async def get_location_balances(self, code: str) -> list[LocationBalance]:
        async with self.session() as conn:
            cur = await conn.execute(
                """
                SELECT b.location_id, b.on_hand, l.location_code
                FROM inventory_on_hand_by_location b
                JOIN locations l ON l.id = b.location_id
                WHERE b.product_code = %s
                ORDER BY b.on_hand DESC
                """,
                (code,),
            )
            rows = await cur.fetchall()
        return [
            LocationBalance(location_id=str(row[0]), on_hand=row[1], location_code=row[2])
            for row in rows
        ]

    # Movements

    async def record_adjustment(
        self, code: str, delta: int, reason: str | None, note: str | None
    ) -> Movement:
        """Apply a signed global adjustment and append it to the history."""
        async with self.session() as conn:
            await conn.execute(
                """
                INSERT INTO inventory_on_hand (product_code, on_hand)
                VALUES (%s, %s)
                ON CONFLICT (product_code)
                DO UPDATE SET on_hand = inventory_on_hand.on_hand + EXCLUDED.on_hand,
                              updated_at = NOW()
                """,
                (code, delta),
            )
            cur = await conn.execute(
                """
                INSERT INTO inventory_adjustments (product_code, delta, reason, note)
                VALUES (%s, %s, %s, %s)
                RETURNING id, product_code, delta, reason, note, created_at
                """,
                (code, delta, reason, note),
            )
            row = await cur.fetchone()

        logger.info("adjustment_recorded", product_code=code, delta=delta, reason=reason)
        return _adjustment_from_row(row)

    async def record_location_delta(
        self,
        code: str,
        location_id: str,
        delta: int,
        reason_tag: str,
        note: str | None,
    ) -> Movement:
        """Apply a signed delta at one location and append the movement.

        The by-location table rejects negative on-hand, so a debit that lost
        a race with another station fails here instead of going negative.
        """
        from_location = location_id if delta < 0 else None
        to_location = location_id if delta > 0 else None

        async with self.session() as conn:
            await conn.execute(
                """
                INSERT INTO inventory_on_hand_by_location (product_code, location_id, on_hand)
                VALUES (%s, %s, %s)
                ON CONFLICT (product_code, location_id)
                DO UPDATE SET on_hand = inventory_on_hand_by_location.on_hand
                                        + EXCLUDED.on_hand,
                              updated_at = NOW()
                """,
                (code, location_id, delta),
            )
            await conn.execute(
                """
                INSERT INTO inventory_on_hand (product_code, on_hand)
                VALUES (%s, %s)
                ON CONFLICT (product_code)
                DO UPDATE SET on_hand = inventory_on_hand.on_hand + EXCLUDED.on_hand,
                              updated_at = NOW()
                """,
                (code, delta),
            )
            cur = await conn.execute(
                f"""
                WITH m AS (
                    INSERT INTO inventory_movements
                        (movement_type, product_code, delta, location_id,
                         from_location_id, to_location_id, note)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    RETURNING *
                )
                SELECT {_MOVEMENT_COLUMNS}
                FROM m
                LEFT JOIN locations fl ON fl.id = m.from_location_id
                LEFT JOIN locations tl ON tl.id = m.to_location_id
                """,
                (reason_tag, code, delta, location_id, from_location, to_location, note),
            )
            row = await cur.fetchone()

        logger.info(
            "location_delta_recorded",
            product_code=code,
            location_id=location_id,
            delta=delta,
            movement_type=reason_tag,
        )
        return _movement_from_row(row)

    async def list_recent_adjustments(self, code: str, limit: int) -> list[Movement]:
        async with self.session() as conn:
            cur = await conn.execute(
                """
                SELECT id, product_code, delta, reason, note, created_at
                FROM inventory_adjustments
                WHERE product_code = %s
                ORDER BY created_at DESC, id DESC
                LIMIT %s
                """,
                (code, limit),
            )
            rows = await cur.fetchall()
        return [_adjustment_from_row(row) for row in rows]

    async def list_recent_movements(self, code: str, limit: int) -> list[Movement]:
        async with self.session() as conn:
            cur = await conn.execute(
                f"""
                SELECT {_MOVEMENT_COLUMNS}
                FROM inventory_movements m
                LEFT JOIN locations fl ON fl.id = m.from_location_id
                LEFT JOIN locations tl ON tl.id = m.to_location_id
                WHERE m.product_code = %s
                ORDER BY m.created_at DESC, m.id DESC
                LIMIT %s
                """,
                (code, limit),
            )
            rows = await cur.fetchall()
        return [_movement_from_row(row) for row in rows]


# Global store instance
_db: PostgresStore | None = None


def get_db() -> PostgresStore:
    """Get the global store instance."""
    global _db
    if _db is None:
        _db = PostgresStore()
    return _db
