from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from backoffice.models.stock_movement import StockReason


class ProductCreate(BaseModel):
    name: str = Field(min_length=1)
    sku: str | None = None
    description: str = ""
    category: str = ""
    purchase_price: Decimal = Field(default=Decimal("0"), ge=0)
    selling_price: Decimal = Field(default=Decimal("0"), ge=0)
    stock_current: int = Field(default=0, ge=0)  # opening stock, booked as a StockTake movement
    stock_minimum: int = Field(default=0, ge=0)
    location: str = ""
    supplier: str = ""

    @field_validator("sku")
    @classmethod
    def blank_sku_is_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v


class ProductUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    sku: str | None = None
    description: str | None = None
    category: str | None = None
    purchase_price: Decimal | None = Field(default=None, ge=0)
    selling_price: Decimal | None = Field(default=None, ge=0)
    stock_current: int | None = Field(default=None, ge=0)  # routed through the ledger as a Correction
    stock_minimum: int | None = Field(default=None, ge=0)
    location: str | None = None
    supplier: str | None = None


class ProductOut(BaseModel):
    id: str
    sku: str | None
    name: str
    description: str
    category: str
    purchase_price: float
    selling_price: float
    stock_current: int
    stock_minimum: int
    is_low_stock: bool
    location: str
    supplier: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class StockAdjust(BaseModel):
    quantity: int  # positive to add, negative to remove
    reason: StockReason = StockReason.CORRECTION
    reference: str | None = None


class StockMovementOut(BaseModel):
    id: str
    product_id: str
    quantity: int
    reason: StockReason
    reference: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
