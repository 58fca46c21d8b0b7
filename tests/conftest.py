import os
import tempfile
from decimal import Decimal

# Point the module-level engine at a scratch database before the app is imported.
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite:///" + os.path.join(tempfile.mkdtemp(prefix="stockledger-"), "app.db"),
)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from stockledger import crud, models, schemas
from stockledger.auth import create_access_token
from stockledger.database import get_db, make_engine


@pytest.fixture
def engine(tmp_path):
    db_engine = make_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    models.Base.metadata.create_all(bind=db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db):
    return crud.create_user(db, name="Stock Clerk", email="clerk@example.com")


@pytest.fixture
def admin(db):
    return crud.create_user(db, name="Admin", email="admin@example.com", role="admin")


@pytest.fixture
def make_product(db, user):
    counter = {"n": 0}

    def _make(stock=10, min_stock=5, price="2.50", name=None, **kwargs):
        counter["n"] += 1
        data = schemas.ProductCreate(
            name=name or f"Widget {counter['n']}",
            sku=kwargs.pop("sku", f"SKU-{counter['n']:04d}"),
            price=Decimal(price),
            cost=Decimal("1.00"),
            stock_quantity=stock,
            min_stock_level=min_stock,
            **kwargs,
        )
        return crud.create_product(db, data, actor_id=user.id)

    return _make


def token_for(user) -> str:
    return create_access_token({"sub": str(user.id), "email": user.email, "role": user.role})


@pytest.fixture
def client(session_factory):
    from stockledger.main import app

    def _get_test_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_test_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def user_headers(user):
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
def admin_headers(admin):
    return {"Authorization": f"Bearer {token_for(admin)}"}
