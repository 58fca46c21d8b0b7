"""
CRUD operations for products and users.

Descriptive product fields are managed here. Stock is not: starting stock
on creation is staged by the ledger in the same transaction as the new
product, and updates never touch ``current_stock``.
"""
import logging
import time
from typing import Optional

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from . import ledger, models, schemas
from .exceptions import NotFound, StorageUnavailable, ValidationError

logger = logging.getLogger(__name__)

INITIAL_STOCK_REASON = "Initial stock"
INITIAL_STOCK_NOTES = "Product creation"


def generate_sku(name: str, prefix: str = "GEN") -> str:
    """
    Build a SKU from a prefix, the product name and the clock.

    Example:
        generate_sku("Widget") -> "GEN-WID-482913"
    """
    name_part = "".join(ch for ch in name if ch.isalnum())[:3].upper() or "XXX"
    stamp = str(int(time.time() * 1000))[-6:]
    return f"{prefix[:3].upper()}-{name_part}-{stamp}"


def get_user(db: Session, user_id: int) -> Optional[models.User]:
    return db.get(models.User, user_id)


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.email == email).first()


def create_user(db: Session, name: str, email: str, role: str = "user") -> models.User:
    """
    Create a user record.

    Args:
        db: Database session
        name: User's full name
        email: Unique email address
        role: "admin" or "user"

    Returns:
        Created User object
    """
    db_user = models.User(name=name, email=email, role=role, is_active=True)
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user


def get_product_by_sku(db: Session, sku: str) -> Optional[models.Product]:
    return db.query(models.Product).filter(models.Product.sku == sku).first()


def get_product_by_barcode(db: Session, barcode: str) -> Optional[models.Product]:
    return db.query(models.Product).filter(models.Product.barcode == barcode).first()


def _check_unique(db: Session, sku: Optional[str], barcode: Optional[str], product_id: Optional[int] = None):
    if sku:
        existing = get_product_by_sku(db, sku)
        if existing is not None and existing.id != product_id:
            raise ValidationError(f"SKU '{sku}' already exists")
    if barcode:
        existing = get_product_by_barcode(db, barcode)
        if existing is not None and existing.id != product_id:
            raise ValidationError(f"Barcode '{barcode}' already exists")


def _integrity_error(e: IntegrityError) -> ValidationError:
    # Only a unique index violation means the SKU or barcode is taken.
    if "unique" in str(e.orig).lower():
        return ValidationError("SKU or barcode already exists")
    return ValidationError(f"Invalid product data: {e.orig}")


def create_product(db: Session, product: schemas.ProductCreate, actor_id: int) -> models.Product:
    """
    Create a product and record its starting stock.

    A positive starting quantity is written as an "Initial stock" movement
    in the same transaction as the product row. If anything fails, neither
    is stored.

    Args:
        db: Database session
        product: Product data to create
        actor_id: User creating the product

    Returns:
        Created Product object

    Raises:
        NotFound: if the acting user does not exist
        ValidationError: if the SKU or barcode is already taken
        StorageUnavailable: if the database fails
    """
    try:
        if get_user(db, actor_id) is None:
            raise NotFound(f"User {actor_id} not found")

        sku = product.sku or generate_sku(product.name)
        _check_unique(db, sku, product.barcode)

        data = product.model_dump(exclude={"sku", "stock_quantity"})
        db_product = models.Product(sku=sku, current_stock=0, status=models.ProductStatus.ACTIVE, **data)
        db.add(db_product)
        if product.stock_quantity > 0:
            ledger.stage_opening_stock(
                db, db_product, product.stock_quantity,
                reason=INITIAL_STOCK_REASON, actor_id=actor_id, notes=INITIAL_STOCK_NOTES,
            )
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise _integrity_error(e) from e
    except DBAPIError as e:
        db.rollback()
        logger.error(f"Storage failure creating product: {e}")
        raise StorageUnavailable(f"Database error: {e.orig}") from e

    db.refresh(db_product)
    logger.info(
        f"Created product {db_product.id} ({db_product.sku}) "
        f"with stock {db_product.current_stock} by user {actor_id}"
    )
    return db_product


def update_product(db: Session, product_id: int, product: schemas.ProductUpdate) -> models.Product:
    """
    Update descriptive fields of a product.

    Args:
        db: Database session
        product_id: ID of the product to update
        product: Updated product data (only provided fields will be updated)

    Returns:
        Updated Product object

    Raises:
        NotFound: if the product does not exist
        ValidationError: if the new SKU or barcode is taken
    """
    db_product = db.get(models.Product, product_id)
    if db_product is None:
        raise NotFound(f"Product {product_id} not found")

    update_data = product.model_dump(exclude_unset=True)
    _check_unique(db, update_data.get("sku"), update_data.get("barcode"), product_id)
    for key, value in update_data.items():
        setattr(db_product, key, value)

    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise _integrity_error(e) from e
    db.refresh(db_product)
    return db_product


def deactivate_product(db: Session, product_id: int) -> models.Product:
    """
    Soft-delete a product. Its movements are kept.

    Raises:
        NotFound: if the product does not exist
    """
    db_product = db.get(models.Product, product_id)
    if db_product is None:
        raise NotFound(f"Product {product_id} not found")

    db_product.status = models.ProductStatus.INACTIVE
    db.commit()
    db.refresh(db_product)
    logger.info(f"Deactivated product {product_id}")
    return db_product
