from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class SettingsUpdate(BaseModel):
    company_name: str | None = Field(default=None, min_length=1)
    address: str | None = None
    zip_code: str | None = None
    city: str | None = None
    country: str | None = None
    email: str | None = None
    phone: str | None = None
    tax_number: str | None = None
    iban: str | None = None
    bic: str | None = None
    bank_name: str | None = None
    invoice_prefix: str | None = Field(default=None, min_length=1)
    invoice_year: int | None = Field(default=None, ge=2000, le=2100)
    invoice_start_number: int | None = Field(default=None, ge=1)
    default_due_days: int | None = Field(default=None, ge=0, le=365)
    vat_enabled: bool | None = None
    default_vat_rate: Decimal | None = Field(default=None, ge=0, le=100)


class SettingsOut(BaseModel):
    company_name: str
    address: str
    zip_code: str
    city: str
    country: str
    email: str
    phone: str
    tax_number: str
    iban: str
    bic: str
    bank_name: str
    invoice_prefix: str
    invoice_year: int
    invoice_start_number: int
    invoice_current_number: int
    next_invoice_number: str = ""
    default_due_days: int
    vat_enabled: bool
    default_vat_rate: float
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}
