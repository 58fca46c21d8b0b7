"""
Pydantic schemas for request/response validation in the Stock Ledger service.

These schemas define the structure of data for API requests and responses.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .config import DEFAULT_MIN_STOCK_LEVEL, DEFAULT_UNIT
from .models import MovementKind, ProductStatus


class ProductBase(BaseModel):
    """Base schema with the descriptive product attributes."""
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    barcode: Optional[str] = None
    price: Decimal = Field(..., ge=0, description="Unit sale price")
    cost: Decimal = Field(..., ge=0, description="Unit cost")
    min_stock_level: int = Field(default=DEFAULT_MIN_STOCK_LEVEL, ge=0)
    max_stock_level: Optional[int] = Field(default=None, ge=0)
    unit: str = DEFAULT_UNIT
    location: Optional[str] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value


class ProductCreate(ProductBase):
    """Schema for creating a product. SKU is generated when omitted."""
    sku: Optional[str] = None
    stock_quantity: int = Field(default=0, ge=0, description="Starting stock, recorded as a movement")


class ProductUpdate(BaseModel):
    """Schema for updating descriptive fields. Stock is never accepted here."""
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    sku: Optional[str] = Field(default=None, min_length=1)
    barcode: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    cost: Optional[Decimal] = Field(default=None, ge=0)
    min_stock_level: Optional[int] = Field(default=None, ge=0)
    max_stock_level: Optional[int] = Field(default=None, ge=0)
    unit: Optional[str] = None
    location: Optional[str] = None

    @field_validator("name", "sku", "price", "cost", "min_stock_level", "unit")
    @classmethod
    def reject_null(cls, value, info):
        # Omit a field to leave it unchanged; these columns cannot be cleared.
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value

    @field_validator("name", "sku", "unit")
    @classmethod
    def strip_text(cls, value, info):
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError(f"{info.field_name} must not be blank")
        return value


class Product(ProductBase):
    """
    Schema for product responses, includes all database fields.

    Attributes:
        id (int): Product's unique identifier
        sku (str): Stock Keeping Unit
        current_stock (int): Quantity on hand
        status (ProductStatus): active or inactive
        created_at (datetime): When the product was created
        updated_at (datetime): When the product last changed
    """
    id: int
    sku: str
    current_stock: int
    status: ProductStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class Movement(BaseModel):
    """
    Schema for a stock movement record.

    Attributes:
        id (int): Movement ID
        product_id (int): Product identifier
        user_id (int): Acting user
        kind (MovementKind): in or out
        quantity (int): Signed change
        previous_stock (int): Stock before the change
        new_stock (int): Stock after the change
        reason (str): Why the stock changed
        notes (str): Optional notes
        reference (str): Optional external reference
        created_at (datetime): When the movement was committed
    """
    id: int
    product_id: int
    user_id: int
    kind: MovementKind
    quantity: int
    previous_stock: int
    new_stock: int
    reason: str
    notes: Optional[str] = None
    reference: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ProductDetail(Product):
    """Product with stock flags and its most recent movements."""
    is_low_stock: bool
    out_of_stock: bool
    recent_movements: List[Movement] = Field(default_factory=list)


class Pagination(BaseModel):
    """Pagination metadata for list responses."""
    total: int
    skip: int
    limit: int


class ProductList(BaseModel):
    """Paginated product list."""
    products: List[Product]
    pagination: Pagination


class MovementList(BaseModel):
    """Paginated movement list, newest first."""
    movements: List[Movement]
    pagination: Pagination


class StockAdjustmentRequest(BaseModel):
    """Schema for a stock adjustment. Quantity is signed and must not be zero."""
    quantity: int = Field(..., description="Signed change; positive adds stock, negative removes it")
    reason: str = Field(..., description="Why the stock is changing")
    notes: Optional[str] = None
    reference: Optional[str] = Field(default=None, description="External reference, e.g. a PO number")

    @field_validator("quantity")
    @classmethod
    def quantity_not_zero(cls, value: int) -> int:
        if value == 0:
            raise ValueError("quantity must not be zero")
        return value

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("reason must not be blank")
        return value


class AdjustedProduct(BaseModel):
    """Stock values before and after an adjustment."""
    id: int
    name: str
    previous_stock: int
    new_stock: int
    adjustment: int


class StockAdjustmentResponse(BaseModel):
    """Response returned after a committed adjustment."""
    message: str = "Stock adjusted successfully"
    product: AdjustedProduct
    movement_id: int
    warning: Optional[str] = None


class LowStockItem(BaseModel):
    """A product at or below its minimum stock level."""
    id: int
    sku: str
    name: str
    current_stock: int
    min_stock_level: int


class InventorySummary(BaseModel):
    """Aggregate inventory figures over active products."""
    total_products: int
    low_stock_count: int
    out_of_stock_count: int
    total_value: Decimal
    low_stock_items: List[LowStockItem] = Field(default_factory=list)
