from datetime import datetime
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from backoffice.models.customer import Customer
from backoffice.models.invoice import Invoice, InvoiceStatus
from backoffice.models.product import Product
from backoffice.models.stock_movement import StockMovement, StockReason

OPEN_STATUSES = (InvoiceStatus.DRAFT, InvoiceStatus.SENT)


def dashboard_summary(db: Session) -> dict:
    products = db.query(Product).all()
    revenue = (
        db.query(func.coalesce(func.sum(Invoice.total), 0))
        .filter(Invoice.status == InvoiceStatus.PAID)
        .scalar()
    )
    outstanding = (
        db.query(func.coalesce(func.sum(Invoice.total), 0))
        .filter(Invoice.status == InvoiceStatus.SENT)
        .scalar()
    )

    return {
        "total_products": len(products),
        "total_units_in_stock": sum(p.stock_current for p in products),
        "inventory_value": round(float(sum((p.stock_current * p.purchase_price for p in products), Decimal("0"))), 2),
        "low_stock_count": sum(1 for p in products if p.is_low_stock),
        "total_customers": db.query(Customer).count(),
        "open_invoices": db.query(Invoice).filter(Invoice.status.in_(OPEN_STATUSES)).count(),
        "invoices_by_status": invoice_status_counts(db),
        "revenue": round(float(revenue), 2),
        "outstanding": round(float(outstanding), 2),
        "by_category": _group_by_category(products),
    }


def invoice_status_counts(db: Session) -> dict[str, int]:
    counts = {s.value: 0 for s in InvoiceStatus}
    for status, count in db.query(Invoice.status, func.count(Invoice.id)).group_by(Invoice.status).all():
        counts[status.value] = count
    return counts


def _group_by_category(products: list[Product]) -> list[dict]:
    cats: dict[str, dict] = {}
    for p in products:
        cat = p.category or "Uncategorized"
        if cat not in cats:
            cats[cat] = {"category": cat, "product_count": 0, "total_units": 0}
        cats[cat]["product_count"] += 1
        cats[cat]["total_units"] += p.stock_current
    return list(cats.values())


def low_stock(db: Session, limit: int = 5) -> list[dict]:
    products = (
        db.query(Product)
        .filter(Product.stock_current <= Product.stock_minimum)
        .order_by(Product.stock_current)
        .limit(limit)
        .all()
    )
    return [
        {
            "id": p.id,
            "sku": p.sku,
            "name": p.name,
            "stock_current": p.stock_current,
            "stock_minimum": p.stock_minimum,
        }
        for p in products
    ]


def recent_invoices(db: Session, limit: int = 5) -> list[dict]:
    invoices = db.query(Invoice).order_by(Invoice.created_at.desc()).limit(limit).all()
    return [
        {
            "id": inv.id,
            "invoice_number": inv.invoice_number,
            "customer_name": inv.customer.name if inv.customer else "",
            "status": inv.status.value,
            "total": float(inv.total),
            "invoice_date": inv.invoice_date.isoformat(),
        }
        for inv in invoices
    ]


def top_products(db: Session, limit: int = 10) -> list[dict]:
    """Best sellers by units leaving stock through invoices (net of reversals)."""
    net_sold = -func.sum(StockMovement.quantity)
    results = (
        db.query(StockMovement.product_id, Product.name, net_sold.label("total_sold"))
        .join(Product, Product.id == StockMovement.product_id)
        .filter(StockMovement.reason.in_((StockReason.SALE, StockReason.REVERSAL)))
        .group_by(StockMovement.product_id, Product.name)
        .having(net_sold > 0)
        .order_by(net_sold.desc())
        .limit(limit)
        .all()
    )
    return [
        {"product_id": r.product_id, "name": r.name, "total_sold": int(r.total_sold)}
        for r in results
    ]


def stock_movements(
    db: Session,
    product_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = 50,
) -> list[dict]:
    q = db.query(StockMovement).join(Product, Product.id == StockMovement.product_id)
    if product_id:
        q = q.filter(StockMovement.product_id == product_id)
    if start_date:
        q = q.filter(StockMovement.created_at >= start_date)
    if end_date:
        q = q.filter(StockMovement.created_at <= end_date)
    movements = q.order_by(StockMovement.created_at.desc()).limit(limit).all()

    return [
        {
            "id": m.id,
            "product_id": m.product_id,
            "product_name": m.product.name,
            "quantity": m.quantity,
            "reason": m.reason.value,
            "reference": m.reference,
            "created_at": m.created_at.isoformat() if m.created_at else None,
        }
        for m in movements
    ]
