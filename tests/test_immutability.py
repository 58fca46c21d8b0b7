import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import OperationalError

from stockledger import crud, ledger, models, queries, schemas
from stockledger.exceptions import ImmutableRecordError, NotFound, StorageUnavailable


def test_movement_cannot_be_modified(db, user, make_product):
    product = make_product(stock=0)
    movement = ledger.adjust_stock(db, product.id, 5, "Receipt", user.id).movement

    movement.reason = "Edited"
    with pytest.raises(ImmutableRecordError):
        db.commit()
    db.rollback()

    db.expire_all()
    stored = db.get(models.Movement, movement.id)
    assert stored.reason == "Receipt"


def test_movement_cannot_be_deleted(db, user, make_product):
    product = make_product(stock=0)
    movement = ledger.adjust_stock(db, product.id, 5, "Receipt", user.id).movement

    db.delete(movement)
    with pytest.raises(ImmutableRecordError):
        db.commit()
    db.rollback()

    assert db.query(models.Movement).filter(models.Movement.id == movement.id).count() == 1


def test_soft_delete_keeps_history(db, user, make_product):
    product = make_product(stock=12)
    ledger.adjust_stock(db, product.id, -2, "Sale", user.id)

    crud.deactivate_product(db, product.id)

    db.refresh(product)
    assert product.status == models.ProductStatus.INACTIVE
    movements = list(queries.list_movements(db, product.id))
    assert [m.quantity for m in movements] == [-2, 12]
    assert movements[-1].reason == crud.INITIAL_STOCK_REASON


def test_update_does_not_touch_stock(db, make_product):
    product = make_product(stock=7)
    crud.update_product(db, product.id, schemas.ProductUpdate(name="Renamed", min_stock_level=2))

    db.refresh(product)
    assert product.name == "Renamed"
    assert product.current_stock == 7


def test_create_product_unknown_actor_stores_nothing(db, user):
    data = schemas.ProductCreate(name="Ghost", sku="GHOST-1", price="1", cost="1", stock_quantity=5)

    with pytest.raises(NotFound):
        crud.create_product(db, data, actor_id=user.id + 1000)

    assert crud.get_product_by_sku(db, "GHOST-1") is None


def test_create_product_is_all_or_nothing(db, user, monkeypatch):
    def broken_stage(*args, **kwargs):
        raise OperationalError("INSERT INTO stock_movements", {}, Exception("disk full"))

    monkeypatch.setattr(ledger, "stage_opening_stock", broken_stage)
    data = schemas.ProductCreate(name="Half", sku="HALF-1", price="1", cost="1", stock_quantity=5)

    with pytest.raises(StorageUnavailable):
        crud.create_product(db, data, actor_id=user.id)

    assert crud.get_product_by_sku(db, "HALF-1") is None
    assert db.query(models.Movement).count() == 0


def test_create_product_writes_stock_and_movement_together(db, user):
    data = schemas.ProductCreate(name="Crate", sku="CRATE-1", price="1", cost="1", stock_quantity=8)

    product = crud.create_product(db, data, actor_id=user.id)

    [movement] = list(queries.list_movements(db, product.id))
    assert product.current_stock == 8
    assert (movement.previous_stock, movement.new_stock, movement.quantity) == (0, 8, 8)
    assert movement.kind == models.MovementKind.IN
    assert movement.user_id == user.id


def test_update_with_null_required_field_is_rejected():
    with pytest.raises(PydanticValidationError):
        schemas.ProductUpdate(name=None)
    with pytest.raises(PydanticValidationError):
        schemas.ProductUpdate(price=None)
    with pytest.raises(PydanticValidationError):
        schemas.ProductUpdate(name="   ")

    update = schemas.ProductUpdate(name="  Bolt  ", description=None)
    assert update.model_dump(exclude_unset=True) == {"name": "Bolt", "description": None}
