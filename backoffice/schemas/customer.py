from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class CustomerCreate(BaseModel):
    name: str = Field(min_length=1)
    company: str = ""
    address: str = ""
    zip_code: str = ""
    city: str = ""
    country: str = "Deutschland"
    email: str = ""
    phone: str = ""
    vat_id: str = ""
    notes: str = ""


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    company: Optional[str] = None
    address: Optional[str] = None
    zip_code: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    vat_id: Optional[str] = None
    notes: Optional[str] = None


class CustomerOut(BaseModel):
    id: str
    name: str
    company: str
    address: str
    zip_code: str
    city: str
    country: str
    email: str
    phone: str
    vat_id: str
    notes: str
    created_at: datetime
    updated_at: datetime
    invoice_count: int = 0

    model_config = {"from_attributes": True}


class CustomerList(BaseModel):
    total: int
    customers: list[CustomerOut]
