import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.database import Base


class StockReason(str, PyEnum):
    PURCHASE = "Purchase"
    SALE = "Sale"
    CORRECTION = "Correction"
    REVERSAL = "Reversal"
    STOCK_TAKE = "StockTake"


# Reasons a user may book by hand; Sale and Reversal belong to the invoice lifecycle
MANUAL_REASONS = frozenset({StockReason.PURCHASE, StockReason.CORRECTION, StockReason.STOCK_TAKE})


class StockMovement(Base):
    """Append-only record of every stock change. Never updated."""

    __tablename__ = "stock_movements"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    product_id: Mapped[str] = mapped_column(String, ForeignKey("products.id"), nullable=False, index=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)  # positive=in, negative=out
    reason: Mapped[StockReason] = mapped_column(
        Enum(StockReason, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    reference: Mapped[str | None] = mapped_column(String, nullable=True)  # invoice number or note
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None))

    product: Mapped["Product"] = relationship("Product", back_populates="movements")


from backoffice.models.product import Product  # noqa: E402, F401
