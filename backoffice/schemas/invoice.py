from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from backoffice.models.invoice import AuditAction, InvoiceStatus


class InvoiceItemIn(BaseModel):
    product_id: Optional[str] = None  # None = free-text line
    title: str = Field(min_length=1)
    quantity: int = Field(ge=1)
    unit_price: Decimal = Field(ge=0)


class InvoiceCreate(BaseModel):
    customer_id: str
    invoice_date: Optional[date] = None  # None = today
    delivery_date: Optional[date] = None
    due_date: Optional[date] = None  # None = invoice_date + default_due_days
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    shipping_cost: Decimal = Field(default=Decimal("0"), ge=0)
    notes: str = ""
    items: list[InvoiceItemIn] = []


class InvoiceUpdate(BaseModel):
    invoice_date: Optional[date] = None
    delivery_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    # Draft only
    customer_id: Optional[str] = None
    discount: Optional[Decimal] = Field(default=None, ge=0)
    shipping_cost: Optional[Decimal] = Field(default=None, ge=0)
    items: Optional[list[InvoiceItemIn]] = None


class InvoiceItemsReplace(BaseModel):
    items: list[InvoiceItemIn]


class InvoiceItemOut(BaseModel):
    id: str
    product_id: Optional[str]
    position: int
    title: str
    quantity: int
    unit_price: float
    total_price: float

    model_config = {"from_attributes": True}


class AuditLogOut(BaseModel):
    id: str
    action: AuditAction
    field: Optional[str]
    old_value: Optional[str]
    new_value: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class InvoiceOut(BaseModel):
    id: str
    invoice_number: str
    invoice_date: date
    delivery_date: Optional[date]
    due_date: date
    status: InvoiceStatus
    customer_id: str
    customer_name: str = ""
    discount: float
    shipping_cost: float
    subtotal: float
    vat_rate: float
    vat_amount: float
    total: float
    notes: str
    items: list[InvoiceItemOut] = []
    created_at: datetime
    updated_at: datetime


class InvoiceList(BaseModel):
    total: int
    invoices: list[InvoiceOut]


class NumberPreview(BaseModel):
    next_invoice_number: str
