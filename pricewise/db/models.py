"""SQLAlchemy database models."""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from pricewise.utils.timestamps import utcnow


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class InventoryItemRecord(Base):
    """Product being shopped for."""

    __tablename__ = "inventory_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    canonical_dimension: Mapped[str] = mapped_column(String(16), nullable=False)
    canonical_unit: Mapped[str] = mapped_column(String(16), nullable=False)
    equivalence_factor: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)
    shelf_life_sensitive: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    usage_rate_per_day: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Relationships
    offers: Mapped[list["OfferRecord"]] = relationship(
        "OfferRecord", back_populates="inventory_item", cascade="all, delete-orphan"
    )


class SupplierRecord(Base):
    """Store or vendor quoting prices."""

    __tablename__ = "suppliers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    website: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    shipping_policy: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    quality_rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class OfferRecord(Base):
    """Price quote for an inventory item."""

    __tablename__ = "offers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    inventory_item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("inventory_items.id"), nullable=False
    )
    supplier_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("suppliers.id"), nullable=False
    )
    supplier_name_snapshot: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    supplier_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_type: Mapped[str] = mapped_column(String(16), default="manual", nullable=False)
    total_price: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    shipping_cost: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    shipping_included: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_tax_included: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    tax_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    amount_unit: Mapped[str] = mapped_column(String(16), nullable=False)
    amount_canonical: Mapped[float] = mapped_column(Float, nullable=False)
    price_per_canonical_excl_shipping: Mapped[float] = mapped_column(Float, nullable=False)
    price_per_canonical_incl_shipping: Mapped[float] = mapped_column(Float, nullable=False)
    effective_price_per_canonical: Mapped[float] = mapped_column(Float, nullable=False)
    quality_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    observed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Relationships
    inventory_item: Mapped["InventoryItemRecord"] = relationship(
        "InventoryItemRecord", back_populates="offers"
    )

    __table_args__ = (
        CheckConstraint("quality_rating IS NULL OR quality_rating BETWEEN 1 AND 5", name="ck_offer_quality"),
        Index("ix_offers_item_observed", "inventory_item_id", "observed_at"),
    )


class HistoricalPriceRecord(Base):
    """Observed price point for an inventory item."""

    __tablename__ = "historical_prices"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    inventory_item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("inventory_items.id"), nullable=False
    )
    supplier_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("suppliers.id"), nullable=True
    )
    price: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    unit: Mapped[str] = mapped_column(String(16), default="unit", nullable=False)
    quantity: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)
    source: Mapped[str] = mapped_column(String(16), default="manual", nullable=False)
    # "metadata" is reserved on declarative classes
    price_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    observed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_historical_prices_item_observed", "inventory_item_id", "observed_at"),
    )
