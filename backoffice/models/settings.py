from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.database import Base

SETTINGS_ID = "main"


class Settings(Base):
    """Business settings. Exactly one row, id ``main``."""

    __tablename__ = "settings"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=SETTINGS_ID)

    # Company profile
    company_name: Mapped[str] = mapped_column(String, default="")
    address: Mapped[str] = mapped_column(String, default="")
    zip_code: Mapped[str] = mapped_column(String, default="")
    city: Mapped[str] = mapped_column(String, default="")
    country: Mapped[str] = mapped_column(String, default="Deutschland")
    email: Mapped[str] = mapped_column(String, default="")
    phone: Mapped[str] = mapped_column(String, default="")
    tax_number: Mapped[str] = mapped_column(String, default="")

    # Banking
    iban: Mapped[str] = mapped_column(String, default="")
    bic: Mapped[str] = mapped_column(String, default="")
    bank_name: Mapped[str] = mapped_column(String, default="")

    # Invoice numbering; the counter is only moved by numbering_service
    invoice_prefix: Mapped[str] = mapped_column(String, default="FF")
    invoice_year: Mapped[int] = mapped_column(Integer, default=lambda: datetime.now().year)
    invoice_start_number: Mapped[int] = mapped_column(Integer, default=1)
    invoice_current_number: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    default_due_days: Mapped[int] = mapped_column(Integer, default=14)
    vat_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    default_vat_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("19.00"))

    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())
