"""
SQLAlchemy ORM models for the Stock Ledger service.

Defines the database schema for products, stock movements and the users
that act on them.
"""
import enum
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Boolean, Numeric, ForeignKey,
    Enum, CheckConstraint, Index, event,
)
from sqlalchemy.orm import Session, relationship

from .database import Base
from .exceptions import ImmutableRecordError


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class ProductStatus(str, enum.Enum):
    """Lifecycle of a product. Inactive products are soft-deleted."""
    ACTIVE = "active"
    INACTIVE = "inactive"


class MovementKind(str, enum.Enum):
    """Direction of a stock movement, derived from the sign of its quantity."""
    IN = "in"
    OUT = "out"

    @classmethod
    def from_quantity(cls, quantity: int) -> "MovementKind":
        return cls.IN if quantity > 0 else cls.OUT


class User(Base):
    """
    User model representing an actor that can change stock.

    Attributes:
        id (int): Primary key, auto-incremented user ID
        name (str): User's full name
        email (str): User's email address (unique)
        role (str): User role (admin, user)
        is_active (bool): Whether the user account is active
        created_at (datetime): Timestamp when the user was created
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    role = Column(String, default="user", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Product(Base):
    """
    Product model carrying the denormalized current stock.

    ``current_stock`` is written only by the ledger. ``version`` is bumped on
    every update and checked by the UPDATE statement, so two writers that
    read the same version cannot both commit.

    Attributes:
        id (int): Primary key, auto-incremented product ID
        name (str): Display name
        description (str): Optional free text
        sku (str): Stock Keeping Unit (unique)
        barcode (str): Optional barcode (unique)
        price (Decimal): Unit sale price
        cost (Decimal): Unit cost
        current_stock (int): Quantity on hand, never negative
        min_stock_level (int): Low-stock threshold
        max_stock_level (int): Optional upper threshold
        unit (str): Unit-of-measure label
        location (str): Free-text storage location
        status (ProductStatus): active or inactive
        version (int): Optimistic concurrency marker
        created_at (datetime): Timestamp when the product was created
        updated_at (datetime): Timestamp of the last change
    """
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    sku = Column(String, unique=True, index=True, nullable=False)
    barcode = Column(String, unique=True, index=True, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    cost = Column(Numeric(10, 2), nullable=False, default=0)
    current_stock = Column(Integer, nullable=False, default=0)
    min_stock_level = Column(Integer, nullable=False, default=10)
    max_stock_level = Column(Integer, nullable=True)
    unit = Column(String, nullable=False, default="piece")
    location = Column(String, nullable=True)
    status = Column(
        Enum(ProductStatus, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False,
        default=ProductStatus.ACTIVE,
    )
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    movements = relationship("Movement", back_populates="product", passive_deletes="all")

    __table_args__ = (
        CheckConstraint("current_stock >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("min_stock_level >= 0", name="ck_products_min_stock_non_negative"),
        CheckConstraint("price >= 0 AND cost >= 0", name="ck_products_price_cost_non_negative"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.current_stock}>"


class Movement(Base):
    """
    Movement model: one immutable record of a stock change.

    Attributes:
        id (int): Primary key, increasing in commit order for a product
        product_id (int): Product whose stock changed
        user_id (int): User who made the change
        kind (MovementKind): in or out, from the sign of ``quantity``
        quantity (int): Signed, non-zero change
        previous_stock (int): Stock immediately before the change
        new_stock (int): Stock immediately after the change
        reason (str): Mandatory human reason
        notes (str): Optional free text
        reference (str): Optional external reference (e.g. purchase order)
        created_at (datetime): When the movement was committed
    """
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    kind = Column(
        Enum(MovementKind, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False,
    )
    quantity = Column(Integer, nullable=False)
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)
    reason = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    reference = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    product = relationship("Product", back_populates="movements")
    user = relationship("User")

    __table_args__ = (
        CheckConstraint("quantity <> 0", name="ck_movements_quantity_non_zero"),
        CheckConstraint("new_stock >= 0", name="ck_movements_new_stock_non_negative"),
        CheckConstraint("new_stock = previous_stock + quantity", name="ck_movements_chain"),
        Index("ix_stock_movements_product_id_id", "product_id", "id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Movement id={self.id} product={self.product_id} "
            f"{self.previous_stock}->{self.new_stock}>"
        )


@event.listens_for(Session, "before_flush")
def _reject_movement_changes(session, flush_context, instances):
    """Movements are append-only: refuse any flush that edits or deletes one."""
    for obj in session.deleted:
        if isinstance(obj, Movement):
            raise ImmutableRecordError(f"Movement {obj.id} cannot be deleted")
    for obj in session.dirty:
        if isinstance(obj, Movement) and session.is_modified(obj, include_collections=False):
            raise ImmutableRecordError(f"Movement {obj.id} cannot be modified")
