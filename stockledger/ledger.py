"""
Stock ledger: the only code path that changes a product's stock.

Each adjustment reads the product, computes the new stock, updates the
product row and inserts one movement in a single transaction. The product
UPDATE is conditional on the version that was read, so a concurrent writer
that committed first makes this one fail with ``StaleDataError``; the whole
read-validate-write cycle is then retried from scratch.
"""
import logging
import random
import time
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from . import models
from .config import LEDGER_MAX_RETRIES, LEDGER_RETRY_BACKOFF
from .exceptions import (
    Contention, InsufficientStock, NotFound, StorageUnavailable, ValidationError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockAdjustment:
    """Outcome of a committed adjustment."""
    movement: models.Movement
    product_id: int
    product_name: str
    previous_stock: int
    new_stock: int
    adjustment: int
    product_active: bool


def _require_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    return value


def validate_adjustment(product_id, quantity, reason, actor_id) -> str:
    """
    Check the shape of an adjustment before touching the database.

    Args:
        product_id: Target product ID
        quantity: Signed change
        reason: Human reason for the change
        actor_id: Acting user ID

    Returns:
        The reason with surrounding whitespace removed

    Raises:
        ValidationError: if any argument is malformed
    """
    if _require_int(product_id, "product_id") <= 0:
        raise ValidationError("product_id must be a positive integer")
    if _require_int(actor_id, "actor_id") <= 0:
        raise ValidationError("actor_id must be a positive integer")
    if _require_int(quantity, "quantity") == 0:
        raise ValidationError("quantity must not be zero")
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("reason must be a non-empty string")
    return reason.strip()


def stage_opening_stock(db: Session, product: models.Product, quantity: int, reason: str,
                        actor_id: int, notes: Optional[str] = None) -> models.Movement:
    """
    Give a product that is not yet committed its starting stock.

    The stock and its first movement are added to the session only; the
    caller commits them together with the product row, so a product never
    exists without the movement that explains its stock.

    Raises:
        ValidationError: if the quantity is not a positive integer
    """
    if _require_int(quantity, "quantity") <= 0:
        raise ValidationError("starting stock must be positive")
    previous_stock = product.current_stock or 0
    product.current_stock = previous_stock + quantity
    movement = models.Movement(
        product=product,
        user_id=actor_id,
        kind=models.MovementKind.IN,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=product.current_stock,
        reason=reason,
        notes=notes,
    )
    db.add(movement)
    return movement


def _attempt(db: Session, product_id: int, quantity: int, reason: str, actor_id: int,
             notes: Optional[str], reference: Optional[str]) -> StockAdjustment:
    product = (
        db.query(models.Product)
        .populate_existing()
        .filter(models.Product.id == product_id)
        .first()
    )
    if product is None:
        raise NotFound(f"Product {product_id} not found")

    previous_stock = product.current_stock
    new_stock = previous_stock + quantity
    if new_stock < 0:
        raise InsufficientStock(product_id, previous_stock, quantity)

    product.current_stock = new_stock
    movement = models.Movement(
        product_id=product.id,
        user_id=actor_id,
        kind=models.MovementKind.from_quantity(quantity),
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        reason=reason,
        notes=notes,
        reference=reference,
    )
    db.add(movement)
    product_name, product_active = product.name, product.is_active
    db.commit()
    db.refresh(movement)

    return StockAdjustment(
        movement=movement,
        product_id=product_id,
        product_name=product_name,
        previous_stock=previous_stock,
        new_stock=new_stock,
        adjustment=quantity,
        product_active=product_active,
    )


def adjust_stock(
    db: Session,
    product_id: int,
    quantity: int,
    reason: str,
    actor_id: int,
    notes: Optional[str] = None,
    reference: Optional[str] = None,
    max_retries: int = LEDGER_MAX_RETRIES,
) -> StockAdjustment:
    """
    Apply a signed stock change to a product and record it as a movement.

    Either the product's stock is updated and exactly one movement is
    inserted, or nothing changes at all.

    Args:
        db: Database session (must have no pending changes)
        product_id: ID of the product to adjust (active or inactive)
        quantity: Signed, non-zero change
        reason: Why the stock changed
        actor_id: ID of the user making the change
        notes: Optional free text
        reference: Optional external reference, e.g. a purchase order number
        max_retries: Attempts allowed when concurrent writers conflict

    Returns:
        StockAdjustment describing the committed movement

    Raises:
        ValidationError: malformed arguments
        NotFound: product or actor does not exist
        InsufficientStock: stock would become negative
        Contention: every attempt lost to a concurrent writer
        StorageUnavailable: the database failed
    """
    reason = validate_adjustment(product_id, quantity, reason, actor_id)

    try:
        if db.get(models.User, actor_id) is None:
            raise NotFound(f"User {actor_id} not found")

        for attempt in range(1, max_retries + 1):
            try:
                result = _attempt(db, product_id, quantity, reason, actor_id, notes, reference)
            except StaleDataError:
                db.rollback()
                logger.warning(
                    f"Concurrent update on product {product_id}, "
                    f"retrying ({attempt}/{max_retries})"
                )
                time.sleep(random.uniform(0, LEDGER_RETRY_BACKOFF * attempt))
                continue
            except (NotFound, InsufficientStock) as e:
                db.rollback()
                logger.info(f"Stock adjustment rejected: {e.message}")
                raise

            if not result.product_active:
                logger.warning(f"Stock adjusted on inactive product {product_id}")
            logger.info(
                f"Product {product_id}: {result.previous_stock} -> {result.new_stock} "
                f"({quantity:+d}) by user {actor_id}, movement {result.movement.id}"
            )
            return result
    except DBAPIError as e:
        db.rollback()
        logger.error(f"Storage failure adjusting product {product_id}: {e}")
        raise StorageUnavailable(f"Database error: {e.orig}") from e

    raise Contention(
        f"Could not adjust product {product_id} after {max_retries} attempts "
        "due to concurrent updates"
    )
