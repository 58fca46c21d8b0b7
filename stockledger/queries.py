"""
Read-only queries over products and their movement history.

Nothing in this module writes to the database. The pure helpers
(``is_low_stock``, ``out_of_stock``, ``summarize``) do no I/O at all.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Iterator, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from . import models
from .config import MOVEMENT_PAGE_LIMIT
from .exceptions import NotFound, StorageUnavailable, ValidationError

logger = logging.getLogger(__name__)


def _unavailable(e: DBAPIError) -> StorageUnavailable:
    logger.error(f"Storage failure on read: {e}")
    return StorageUnavailable(f"Database error: {e.orig}")


def is_low_stock(product) -> bool:
    """True when stock is at or below the product's minimum level."""
    return product.current_stock <= product.min_stock_level


def out_of_stock(product) -> bool:
    return product.current_stock == 0


@dataclass
class InventorySummary:
    """Aggregate figures over the active products of a sequence."""
    total_products: int = 0
    low_stock_count: int = 0
    out_of_stock_count: int = 0
    total_value: Decimal = Decimal("0.00")
    low_stock_items: List[models.Product] = field(default_factory=list)


def summarize(products: Iterable) -> InventorySummary:
    """
    Summarize a sequence of products.

    Inactive products are skipped. Valuation is ``current_stock * price``
    summed over the rest.

    Args:
        products: Any iterable of product-like objects

    Returns:
        InventorySummary with counts, valuation and the low-stock items
    """
    summary = InventorySummary()
    for product in products:
        if product.status != models.ProductStatus.ACTIVE:
            continue
        summary.total_products += 1
        summary.total_value += Decimal(product.current_stock) * Decimal(str(product.price))
        if is_low_stock(product):
            summary.low_stock_count += 1
            summary.low_stock_items.append(product)
        if out_of_stock(product):
            summary.out_of_stock_count += 1
    summary.low_stock_items.sort(key=lambda p: (p.current_stock, p.id))
    summary.total_value = summary.total_value.quantize(Decimal("0.01"))
    return summary


class MovementPage:
    """
    A page of a product's movements, newest first.

    Newest means highest ID. IDs follow commit order for a product, since a
    retried adjustment only inserts after the competing one committed, so
    the page lines up with the stock chain whatever the writers' clocks say.

    Iterating runs the query; iterating again runs it again, so the page
    always reflects committed data at iteration time.
    """

    def __init__(self, db: Session, product_id: int, limit: int, offset: int):
        self.db = db
        self.product_id = product_id
        self.limit = limit
        self.offset = offset

    def _query(self):
        return (
            self.db.query(models.Movement)
            .filter(models.Movement.product_id == self.product_id)
            .order_by(models.Movement.id.desc())
        )

    def __iter__(self) -> Iterator[models.Movement]:
        try:
            rows = self._query().offset(self.offset).limit(self.limit).all()
        except DBAPIError as e:
            raise _unavailable(e) from e
        return iter(rows)

    def total(self) -> int:
        """Total number of movements for the product, ignoring pagination."""
        try:
            return self._query().order_by(None).count()
        except DBAPIError as e:
            raise _unavailable(e) from e


def get_product(db: Session, product_id: int) -> models.Product:
    """
    Retrieve a product by ID, active or not.

    Raises:
        NotFound: if no product has this ID
    """
    try:
        product = db.query(models.Product).filter(models.Product.id == product_id).first()
    except DBAPIError as e:
        raise _unavailable(e) from e
    if product is None:
        raise NotFound(f"Product {product_id} not found")
    return product


def get_current_stock(db: Session, product_id: int) -> int:
    return get_product(db, product_id).current_stock


def list_movements(db: Session, product_id: int, limit: int = MOVEMENT_PAGE_LIMIT,
                   offset: int = 0) -> MovementPage:
    """
    List a product's movements newest first.

    Args:
        db: Database session
        product_id: Product whose history to read
        limit: Maximum number of movements to return
        offset: Number of movements to skip

    Returns:
        MovementPage, empty when the product has no movements

    Raises:
        ValidationError: negative offset or non-positive limit
        NotFound: if the product does not exist
    """
    if limit <= 0 or offset < 0:
        raise ValidationError("limit must be positive and offset must not be negative")
    get_product(db, product_id)
    return MovementPage(db, product_id, limit, offset)


def iter_movements(db: Session, product_id: int, batch_size: int = 500) -> Iterator[models.Movement]:
    """
    Walk a product's whole history newest first, one batch at a time.

    Each batch starts below the last movement ID already returned, so
    movements committed during the walk are never repeated or skipped over.

    Raises:
        NotFound: if the product does not exist
    """
    get_product(db, product_id)
    last_id = None
    while True:
        query = db.query(models.Movement).filter(models.Movement.product_id == product_id)
        if last_id is not None:
            query = query.filter(models.Movement.id < last_id)
        try:
            batch = query.order_by(models.Movement.id.desc()).limit(batch_size).all()
        except DBAPIError as e:
            raise _unavailable(e) from e
        yield from batch
        if len(batch) < batch_size:
            return
        last_id = batch[-1].id


def search_products(db: Session, skip: int = 0, limit: int = 100, search: Optional[str] = None,
                    low_stock: bool = False, include_inactive: bool = False):
    """
    Retrieve a page of products with optional filters, newest first.

    Args:
        db: Database session
        skip: Number of records to skip (offset)
        limit: Maximum number of records to return
        search: Case-insensitive match on name, SKU or barcode
        low_stock: Only products at or below their minimum level
        include_inactive: Include soft-deleted products

    Returns:
        Tuple of (products, total matching count)
    """
    query = db.query(models.Product)
    if not include_inactive:
        query = query.filter(models.Product.status == models.ProductStatus.ACTIVE)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            models.Product.name.ilike(pattern),
            models.Product.sku.ilike(pattern),
            models.Product.barcode.ilike(pattern),
        ))
    if low_stock:
        query = query.filter(models.Product.current_stock <= models.Product.min_stock_level)

    try:
        total = query.count()
        products = (
            query.order_by(models.Product.created_at.desc(), models.Product.id.desc())
            .offset(skip).limit(limit).all()
        )
    except DBAPIError as e:
        raise _unavailable(e) from e
    return products, total


def low_stock_products(db: Session) -> List[models.Product]:
    """Active products at or below their minimum stock level, lowest stock first."""
    try:
        return (
            db.query(models.Product)
            .filter(
                models.Product.status == models.ProductStatus.ACTIVE,
                models.Product.current_stock <= models.Product.min_stock_level,
            )
            .order_by(models.Product.current_stock, models.Product.id)
            .all()
        )
    except DBAPIError as e:
        raise _unavailable(e) from e
