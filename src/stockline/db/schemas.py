"""SQLAlchemy table models for Stockline."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Text, func, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


class Product(Base):
    """Catalog entry for a product code."""

    __tablename__ = "products_catalog"

    product_code: Mapped[str] = mapped_column(Text, primary_key=True)
    image_path: Mapped[str | None] = mapped_column(Text, nullable=True)


class Location(Base):
    """A stocking location."""

    __tablename__ = "locations"

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")
    )
    location_code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)


class InventoryOnHand(Base):
    """Global on-hand per product."""

    __tablename__ = "inventory_on_hand"

    product_code: Mapped[str] = mapped_column(
        Text, ForeignKey("products_catalog.product_code"), primary_key=True
    )
    on_hand: Mapped[int] = mapped_column(nullable=False, server_default="0")
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now())


class LocationOnHand(Base):
    """On-hand per product and location."""

    __tablename__ = "inventory_on_hand_by_location"

    product_code: Mapped[str] = mapped_column(
        Text, ForeignKey("products_catalog.product_code"), primary_key=True
    )
    location_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("locations.id"), primary_key=True
    )
    on_hand: Mapped[int] = mapped_column(nullable=False, server_default="0")
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now())

    __table_args__ = (
        CheckConstraint("on_hand >= 0", name="ck_location_on_hand_non_negative"),
    )


class InventoryMovement(Base):
    """Append-only record of a location-level movement."""

    __tablename__ = "inventory_movements"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    movement_type: Mapped[str] = mapped_column(Text, nullable=False)
    product_code: Mapped[str] = mapped_column(
        Text, ForeignKey("products_catalog.product_code"), nullable=False
    )
    delta: Mapped[int] = mapped_column(nullable=False)
    location_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("locations.id"), nullable=False
    )
    from_location_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("locations.id"), nullable=True
    )
    to_location_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("locations.id"), nullable=True
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "movement_type IN ('receive', 'send', 'transfer_out', 'transfer_in')",
            name="ck_movement_type",
        ),
        CheckConstraint("delta <> 0", name="ck_movement_delta_nonzero"),
        Index("idx_inventory_movements_product_ts", "product_code", "created_at"),
    )


class InventoryAdjustment(Base):
    """Append-only record of a global on-hand adjustment."""

    __tablename__ = "inventory_adjustments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    product_code: Mapped[str] = mapped_column(
        Text, ForeignKey("products_catalog.product_code"), nullable=False
    )
    delta: Mapped[int] = mapped_column(nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("delta <> 0", name="ck_adjustment_delta_nonzero"),
        Index("idx_inventory_adjustments_product_ts", "product_code", "created_at"),
    )
