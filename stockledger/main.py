"""
    Stock Ledger Service API

    This module implements a FastAPI-based service for tracking product stock.
    Every change to a product's stock goes through the ledger, which records
    an immutable movement explaining who changed it, by how much and why.

    The service exposes:
    - Product endpoints: list, get, create, update, soft delete
    - Stock endpoints: adjust stock, list movements, export movements as CSV
    - Analytics endpoints: low-stock counts, the low-stock list and inventory valuation
    - Health endpoint: Provides service health status for monitoring and orchestration
"""
import csv
import io
import logging
from typing import List, Optional

from fastapi import FastAPI, Depends, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from . import auth, crud, ledger, models, queries, schemas
from .config import MOVEMENT_PAGE_LIMIT, RECENT_MOVEMENTS, configure_logging
from .database import engine, get_db
from .exceptions import LedgerError

configure_logging()
logger = logging.getLogger(__name__)

# Create database tables
models.Base.metadata.create_all(bind=engine)

app = FastAPI(title="stock-ledger-service")

ERROR_STATUS = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "insufficient_stock": status.HTTP_400_BAD_REQUEST,
    "contention": status.HTTP_409_CONFLICT,
    "storage_unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
}


@app.exception_handler(LedgerError)
def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(
        status_code=ERROR_STATUS.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR),
        content=exc.to_dict(),
    )


@app.exception_handler(StaleDataError)
def stale_data_handler(request: Request, exc: StaleDataError):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"error": "contention", "detail": "Product was modified concurrently, retry the request"},
    )


@app.exception_handler(DBAPIError)
def storage_error_handler(request: Request, exc: DBAPIError):
    logger.error(f"Unhandled storage failure on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "storage_unavailable", "detail": "Database unavailable"},
    )


def _product_detail(db: Session, product: models.Product) -> schemas.ProductDetail:
    recent = queries.list_movements(db, product.id, limit=RECENT_MOVEMENTS)
    return schemas.ProductDetail(
        **schemas.Product.model_validate(product).model_dump(),
        is_low_stock=queries.is_low_stock(product),
        out_of_stock=queries.out_of_stock(product),
        recent_movements=[schemas.Movement.model_validate(m) for m in recent],
    )


@app.get("/healthz", response_model=dict)
def health():
    """
    Health check endpoint for the stock ledger service.

    Returns:
        dict: A dictionary containing the health status of the service.
            - status (str): "healthy" if the service is operational.

    Example:
        GET /healthz
        Response: {"status": "healthy"}
    """
    return {"status": "healthy"}


@app.get("/products", response_model=schemas.ProductList)
def list_products(
    skip: int = 0,
    limit: int = 100,
    search: Optional[str] = None,
    low_stock: bool = False,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    List products with pagination and optional filters (authenticated users only).

    Args:
        skip: Number of records to skip (default: 0)
        limit: Maximum number of records to return (default: 100)
        search: Case-insensitive match on name, SKU or barcode
        low_stock: Only products at or below their minimum stock level
        include_inactive: Include soft-deleted products
        db: Database session (injected)
        current_user: Current authenticated user (injected)

    Returns:
        Page of products with pagination metadata
    """
    products, total = queries.search_products(
        db, skip=skip, limit=limit, search=search,
        low_stock=low_stock, include_inactive=include_inactive,
    )
    return {"products": products, "pagination": {"total": total, "skip": skip, "limit": limit}}


@app.get("/analytics/summary", response_model=schemas.InventorySummary)
def get_summary(
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    Get inventory analytics (authenticated users).

    Returns:
        InventorySummary: active product count, low/out of stock counts,
        total valuation and the low-stock items, lowest stock first
    """
    summary = queries.summarize(db.query(models.Product).all())
    return schemas.InventorySummary(
        total_products=summary.total_products,
        low_stock_count=summary.low_stock_count,
        out_of_stock_count=summary.out_of_stock_count,
        total_value=summary.total_value,
        low_stock_items=[
            schemas.LowStockItem(
                id=p.id, sku=p.sku, name=p.name,
                current_stock=p.current_stock, min_stock_level=p.min_stock_level,
            )
            for p in summary.low_stock_items
        ],
    )


@app.get("/analytics/low-stock", response_model=List[schemas.LowStockItem])
def get_low_stock(
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    List active products at or below their minimum stock level, lowest stock first.
    """
    return [
        schemas.LowStockItem(
            id=p.id, sku=p.sku, name=p.name,
            current_stock=p.current_stock, min_stock_level=p.min_stock_level,
        )
        for p in queries.low_stock_products(db)
    ]


@app.get("/products/{product_id}", response_model=schemas.ProductDetail)
def get_product(
    product_id: int,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    Get a single product with its most recent movements (authenticated users only).

    Raises:
        NotFound: 404 if the product does not exist
    """
    product = queries.get_product(db, product_id)
    return _product_detail(db, product)


@app.post("/products", response_model=schemas.ProductDetail, status_code=status.HTTP_201_CREATED)
def create_product(
    product: schemas.ProductCreate,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    Create a new product (authenticated users).

    A positive ``stock_quantity`` is recorded as an "Initial stock" movement
    by the creating user.

    Raises:
        ValidationError: 400 if SKU or barcode already exists
        NotFound: 404 if the acting user does not exist; nothing is stored
    """
    db_product = crud.create_product(db, product, actor_id=current_user.id)
    return _product_detail(db, db_product)


@app.put("/products/{product_id}", response_model=schemas.Product)
def update_product(
    product_id: int,
    product: schemas.ProductUpdate,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    Update descriptive fields of a product (authenticated users).

    Stock cannot be changed here; use the adjust-stock endpoint.

    Raises:
        ValidationError: 400 if the new SKU or barcode is taken
        StaleDataError: 409 if the stock changed while the update was in flight
    """
    return crud.update_product(db, product_id, product)


@app.delete("/products/{product_id}", response_model=schemas.Product)
def delete_product(
    product_id: int,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.require_admin)
):
    """
    Soft-delete a product (admin only). Its movement history is kept.
    """
    return crud.deactivate_product(db, product_id)


@app.post("/products/{product_id}/adjust-stock", response_model=schemas.StockAdjustmentResponse)
def adjust_stock(
    product_id: int,
    adjustment: schemas.StockAdjustmentRequest,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    Adjust a product's stock by a signed quantity (authenticated users).

    Args:
        product_id: ID of the product to adjust
        adjustment: Signed quantity, reason, optional notes and reference
        db: Database session (injected)
        current_user: Current authenticated user, recorded as the actor (injected)

    Returns:
        Previous and new stock, the adjustment and the movement ID. A
        ``warning`` is included when the product is inactive.

    Raises:
        NotFound: 404 if the product does not exist
        InsufficientStock: 400 if stock would become negative
        Contention: 409 if concurrent updates exhausted the retries
    """
    result = ledger.adjust_stock(
        db,
        product_id=product_id,
        quantity=adjustment.quantity,
        reason=adjustment.reason,
        actor_id=current_user.id,
        notes=adjustment.notes,
        reference=adjustment.reference,
    )
    return schemas.StockAdjustmentResponse(
        product=schemas.AdjustedProduct(
            id=result.product_id,
            name=result.product_name,
            previous_stock=result.previous_stock,
            new_stock=result.new_stock,
            adjustment=result.adjustment,
        ),
        movement_id=result.movement.id,
        warning=None if result.product_active else "Product is inactive",
    )


@app.get("/products/{product_id}/movements", response_model=schemas.MovementList)
def list_movements(
    product_id: int,
    limit: int = MOVEMENT_PAGE_LIMIT,
    offset: int = 0,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    List a product's stock movements, newest first (authenticated users).

    Args:
        product_id: ID of the product
        limit: Maximum number of movements to return
        offset: Number of movements to skip

    Returns:
        Page of movements with pagination metadata
    """
    page = queries.list_movements(db, product_id, limit=limit, offset=offset)
    return {
        "movements": list(page),
        "pagination": {"total": page.total(), "skip": offset, "limit": limit},
    }


@app.get("/products/{product_id}/movements/export/csv")
def export_movements_csv(
    product_id: int,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    Export a product's full movement history to CSV (authenticated users).

    Returns:
        CSV file with columns: id, created_at, kind, quantity, previous_stock,
        new_stock, reason, notes, reference, user_id
    """
    output = io.StringIO()
    writer = csv.writer(output)

    # Write header
    writer.writerow([
        'id', 'created_at', 'kind', 'quantity', 'previous_stock',
        'new_stock', 'reason', 'notes', 'reference', 'user_id',
    ])

    for movement in queries.iter_movements(db, product_id):
        writer.writerow([
            movement.id,
            movement.created_at.isoformat(),
            movement.kind.value,
            movement.quantity,
            movement.previous_stock,
            movement.new_stock,
            movement.reason,
            movement.notes or '',
            movement.reference or '',
            movement.user_id,
        ])

    output.seek(0)
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=product-{product_id}-movements.csv"}
    )
