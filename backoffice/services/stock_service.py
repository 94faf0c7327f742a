"""
Stock ledger.

``Product.stock_current`` is a cached balance: it must always equal the sum of
the product's StockMovement rows. Every change therefore goes through
``adjust``, which moves the balance with a conditional SQL update (never a
read-modify-write in Python) and appends the matching movement in the same
transaction.
"""

import logging

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from backoffice.database import atomic
from backoffice.exceptions import InsufficientStockError, NotFoundError, ValidationError
from backoffice.models.product import Product
from backoffice.models.stock_movement import MANUAL_REASONS, StockMovement, StockReason

logger = logging.getLogger(__name__)


def adjust(
    db: Session,
    product_id: str,
    quantity: int,
    reason: StockReason,
    reference: str | None = None,
) -> tuple[Product, StockMovement]:
    """Move stock by ``quantity`` and record the movement. Does not commit.

    Raises InsufficientStockError, leaving the balance untouched, when the
    result would drop below zero.
    """
    if quantity == 0:
        raise ValidationError("Stock adjustment quantity must not be zero")

    product = db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product", product_id)

    result = db.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock_current + quantity >= 0)
        .values(stock_current=Product.stock_current + quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.refresh(product)
        logger.warning(
            "Rejected stock change %+d for %s (%s): only %d on hand",
            quantity, product.name, product.id, product.stock_current,
        )
        raise InsufficientStockError(product.name, product.stock_current, -quantity)

    movement = StockMovement(product_id=product_id, quantity=quantity, reason=reason, reference=reference)
    db.add(movement)
    db.flush()
    db.refresh(product)
    return product, movement


def adjust_stock(
    db: Session,
    product_id: str,
    quantity: int,
    reason: StockReason | str = StockReason.CORRECTION,
    reference: str | None = None,
) -> Product:
    """Manual stock adjustment (purchase, correction, stock take) in its own transaction."""
    try:
        reason = StockReason(reason)
    except ValueError:
        raise ValidationError(f"Unknown stock movement reason: {reason}") from None
    if reason not in MANUAL_REASONS:
        raise ValidationError(f"{reason.value} movements are only booked by the invoice lifecycle")

    with atomic(db):
        product, _ = adjust(db, product_id, quantity, reason, reference)
    logger.info("Stock %+d for %s (%s), reason=%s", quantity, product.name, product.id, reason.value)
    db.refresh(product)
    return product


def list_movements(db: Session, product_id: str, limit: int | None = None) -> list[StockMovement]:
    if db.get(Product, product_id) is None:
        raise NotFoundError("Product", product_id)
    q = (
        db.query(StockMovement)
        .filter(StockMovement.product_id == product_id)
        .order_by(StockMovement.created_at.desc())
    )
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def ledger_balance(db: Session, product_id: str) -> int:
    total = (
        db.query(func.coalesce(func.sum(StockMovement.quantity), 0))
        .filter(StockMovement.product_id == product_id)
        .scalar()
    )
    return int(total)


def find_ledger_drift(db: Session) -> list[tuple[Product, int, int]]:
    """Products whose cached balance disagrees with their movement history."""
    sums = (
        db.query(StockMovement.product_id, func.sum(StockMovement.quantity).label("ledger"))
        .group_by(StockMovement.product_id)
        .subquery()
    )
    rows = (
        db.query(Product, func.coalesce(sums.c.ledger, 0))
        .outerjoin(sums, sums.c.product_id == Product.id)
        .all()
    )
    drift = []
    for product, ledger in rows:
        if product.stock_current != int(ledger):
            drift.append((product, product.stock_current, int(ledger)))
    return drift
