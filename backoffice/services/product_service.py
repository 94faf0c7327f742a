import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from backoffice.database import atomic, lock_for_update, reject_nulls
from backoffice.exceptions import NotFoundError, ReferentialConflictError, ValidationError
from backoffice.models.invoice import InvoiceItem
from backoffice.models.product import Product
from backoffice.models.stock_movement import StockReason
from backoffice.schemas.product import ProductCreate, ProductUpdate
from backoffice.services import stock_service

logger = logging.getLogger(__name__)


def _ensure_unique_sku(db: Session, sku: str | None, exclude_id: str | None = None) -> None:
    if not sku:
        return
    q = db.query(Product).filter(Product.sku == sku)
    if exclude_id:
        q = q.filter(Product.id != exclude_id)
    if q.first():
        raise ValidationError(f"Product with SKU {sku} already exists")


def create_product(db: Session, data: ProductCreate) -> Product:
    _ensure_unique_sku(db, data.sku)
    with atomic(db):
        product = Product(**data.model_dump(exclude={"stock_current"}), stock_current=0)
        db.add(product)
        db.flush()
        # Opening stock goes through the ledger so balance == sum(movements) from day one
        if data.stock_current > 0:
            stock_service.adjust(db, product.id, data.stock_current, StockReason.STOCK_TAKE, "Initial stock")
    db.refresh(product)
    logger.info("Created product %s (%s) with %d in stock", product.name, product.id, product.stock_current)
    return product


def get_product(db: Session, product_id: str) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError("Product", product_id)
    return product


def list_products(
    db: Session,
    skip: int = 0,
    limit: int = 100,
    search: str | None = None,
    category: str | None = None,
    low_stock: bool = False,
) -> list[Product]:
    q = db.query(Product)
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern), Product.description.ilike(pattern)))
    if category:
        q = q.filter(Product.category == category)
    if low_stock:
        q = q.filter(Product.stock_current <= Product.stock_minimum)
    return q.order_by(Product.name).offset(skip).limit(limit).all()


def update_product(db: Session, product_id: str, data: ProductUpdate) -> Product:
    product = get_product(db, product_id)
    update_data = data.model_dump(exclude_unset=True)
    reject_nulls(Product, update_data)
    target_stock = update_data.pop("stock_current", None)
    if "sku" in update_data:
        update_data["sku"] = update_data["sku"] or None
        _ensure_unique_sku(db, update_data["sku"], exclude_id=product.id)

    with atomic(db):
        for field, value in update_data.items():
            setattr(product, field, value)
        db.flush()
        # A direct stock edit is booked as a correction for the difference to the locked balance
        if target_stock is not None:
            on_hand = lock_for_update(
                db.query(Product).populate_existing().filter(Product.id == product.id)
            ).one().stock_current
            if target_stock != on_hand:
                stock_service.adjust(db, product.id, target_stock - on_hand, StockReason.CORRECTION, "Manual edit")
    db.refresh(product)
    return product


def delete_product(db: Session, product_id: str) -> None:
    product = get_product(db, product_id)
    if db.query(InvoiceItem).filter(InvoiceItem.product_id == product_id).first():
        raise ReferentialConflictError("Product cannot be deleted, it is used on invoices")
    with atomic(db):
        db.delete(product)
    logger.info("Deleted product %s (%s)", product.name, product_id)


def get_low_stock(db: Session) -> list[Product]:
    return (
        db.query(Product)
        .filter(Product.stock_current <= Product.stock_minimum)
        .order_by(Product.stock_current)
        .all()
    )
