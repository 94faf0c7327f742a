"""
Invoice lifecycle.

    Draft ──finalize──▶ Sent ──mark paid──▶ Paid
                         │                   │
                         └──────cancel───────┴──▶ Cancelled

A draft is deleted, never cancelled, and nothing returns to Draft. Stock is
debited on finalize (one Sale movement per product line) and credited back on
cancel (one Reversal per product line). Every operation runs as one unit of
work: the stock changes, the status change and its audit entry commit
together or not at all.
"""

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from backoffice.database import atomic, lock_for_update
from backoffice.exceptions import InsufficientStockError, InvalidStateError, NotFoundError, ValidationError
from backoffice.models.customer import Customer
from backoffice.models.invoice import AuditAction, AuditLog, Invoice, InvoiceItem, InvoiceStatus
from backoffice.models.product import Product
from backoffice.models.stock_movement import StockReason
from backoffice.schemas.invoice import InvoiceCreate, InvoiceItemIn, InvoiceUpdate
from backoffice.services import numbering_service, settings_service, stock_service
from backoffice.services.totals_service import InvoiceTotals, VatPolicy, calculate_totals, line_total, to_money

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.SENT}),
    InvoiceStatus.SENT: frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED}),
    InvoiceStatus.PAID: frozenset({InvoiceStatus.CANCELLED}),
    InvoiceStatus.CANCELLED: frozenset(),
}

DRAFT_ONLY_FIELDS = frozenset({"customer_id", "discount", "shipping_cost", "items"})


@dataclass(frozen=True)
class InvoiceEvent:
    """Something that happened to an invoice; persisted as an AuditLog row."""

    action: AuditAction
    field: str | None = None
    old_value: Any = None
    new_value: Any = None


def _serialize(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def _emit(db: Session, invoice: Invoice, event: InvoiceEvent) -> AuditLog:
    entry = AuditLog(
        invoice_id=invoice.id,
        action=event.action,
        field=event.field,
        old_value=_serialize(event.old_value),
        new_value=_serialize(event.new_value),
    )
    db.add(entry)
    return entry


def can_transition(current: InvoiceStatus, target: InvoiceStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_invoice(db: Session, invoice_id: str, for_update: bool = False) -> Invoice:
    q = db.query(Invoice).populate_existing().filter(Invoice.id == invoice_id)
    if for_update:
        q = lock_for_update(q)
    invoice = q.first()
    if not invoice:
        raise NotFoundError("Invoice", invoice_id)
    return invoice


def _validate_items(db: Session, items: Sequence[InvoiceItemIn]) -> None:
    if not items:
        raise ValidationError("An invoice needs at least one item")
    for idx, item in enumerate(items, start=1):
        if not item.title or not item.title.strip():
            raise ValidationError(f"Item {idx}: title is required")
        if item.quantity < 1:
            raise ValidationError(f"Item {idx}: quantity must be at least 1")
        if item.unit_price < 0:
            raise ValidationError(f"Item {idx}: unit price must not be negative")

    product_ids = {i.product_id for i in items if i.product_id}
    if product_ids:
        found = {pid for (pid,) in db.query(Product.id).filter(Product.id.in_(product_ids)).all()}
        missing = product_ids - found
        if missing:
            raise ValidationError(f"Product {sorted(missing)[0]} not found")


def _require_customer(db: Session, customer_id: str) -> Customer:
    customer = db.get(Customer, customer_id)
    if customer is None:
        raise ValidationError(f"Customer {customer_id} not found")
    return customer


def _build_items(items: Sequence[InvoiceItemIn]) -> list[InvoiceItem]:
    return [
        InvoiceItem(
            product_id=item.product_id or None,
            position=position,
            title=item.title.strip(),
            quantity=item.quantity,
            unit_price=to_money(item.unit_price),
            total_price=line_total(item.quantity, item.unit_price),
        )
        for position, item in enumerate(items)
    ]


def _items_snapshot(items: Sequence[InvoiceItem]) -> list[dict]:
    return [
        {
            "product_id": i.product_id,
            "title": i.title,
            "quantity": i.quantity,
            "unit_price": str(to_money(i.unit_price)),
        }
        for i in items
    ]


def _replace_items(db: Session, invoice: Invoice, items: Sequence[InvoiceItemIn]) -> None:
    """Items are never patched: drop them all, then insert the new list."""
    invoice.items.clear()
    db.flush()
    invoice.items.extend(_build_items(items))


def _apply_totals(invoice: Invoice, totals: InvoiceTotals) -> None:
    invoice.subtotal = totals.subtotal
    invoice.vat_rate = totals.vat_rate
    invoice.vat_amount = totals.vat_amount
    invoice.total = totals.total


def _recalculate(db: Session, invoice: Invoice) -> InvoiceTotals:
    # Edits always price with the VAT policy in force now
    vat = VatPolicy.from_settings(settings_service.get_settings(db))
    totals = calculate_totals(invoice.items, invoice.discount, invoice.shipping_cost, vat)
    _apply_totals(invoice, totals)
    return totals


def _reject(invoice: Invoice, message: str) -> InvalidStateError:
    logger.warning("Rejected on invoice %s (%s): %s", invoice.invoice_number, invoice.status.value, message)
    return InvalidStateError(message)


def _change_status(db: Session, invoice: Invoice, target: InvoiceStatus) -> None:
    """Compare-and-swap the status and emit the StatusChanged event."""
    current = invoice.status
    if not can_transition(current, target):
        raise _reject(invoice, f"Cannot move invoice from {current.value} to {target.value}")

    result = db.execute(
        update(Invoice)
        .where(Invoice.id == invoice.id, Invoice.status == current)
        .values(status=target)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise _reject(invoice, "Invoice was changed by another request, reload and try again")

    _emit(db, invoice, InvoiceEvent(AuditAction.STATUS_CHANGED, "status", current.value, target.value))
    db.flush()
    db.refresh(invoice)


def _product_lines(invoice: Invoice) -> list[InvoiceItem]:
    return [item for item in invoice.items if item.product_id]


def _check_stock(db: Session, lines: list[InvoiceItem]) -> None:
    """All-or-nothing sufficiency check, summing lines that share a product."""
    needed: dict[str, int] = {}
    for item in lines:
        needed[item.product_id] = needed.get(item.product_id, 0) + item.quantity

    for product_id, qty in needed.items():
        product = db.query(Product).populate_existing().filter(Product.id == product_id).first()
        if product is None:
            raise NotFoundError("Product", product_id)
        if product.stock_current < qty:
            logger.warning(
                "Insufficient stock for %s: available %d, needed %d",
                product.name, product.stock_current, qty,
            )
            raise InsufficientStockError(product.name, product.stock_current, qty)


# ---------------------------------------------------------------------------
# Lifecycle operations
# ---------------------------------------------------------------------------


def create_invoice(db: Session, data: InvoiceCreate) -> Invoice:
    _validate_items(db, data.items)
    _require_customer(db, data.customer_id)
    invoice_date = data.invoice_date or date.today()

    with atomic(db):
        settings = settings_service.get_settings(db)
        due_date = data.due_date or invoice_date + timedelta(days=settings.default_due_days)
        if due_date < invoice_date:
            raise ValidationError("Due date must not be before the invoice date")

        totals = calculate_totals(data.items, data.discount, data.shipping_cost, VatPolicy.from_settings(settings))
        number = numbering_service.allocate_next(db)

        invoice = Invoice(
            invoice_number=number,
            invoice_date=invoice_date,
            delivery_date=data.delivery_date,
            due_date=due_date,
            status=InvoiceStatus.DRAFT,
            customer_id=data.customer_id,
            discount=to_money(data.discount),
            shipping_cost=to_money(data.shipping_cost),
            notes=data.notes,
            items=_build_items(data.items),
        )
        _apply_totals(invoice, totals)
        db.add(invoice)
        db.flush()
        _emit(db, invoice, InvoiceEvent(
            AuditAction.CREATED,
            new_value={"invoice_number": number, "status": InvoiceStatus.DRAFT.value},
        ))

    db.refresh(invoice)
    logger.info("Created invoice %s (%s), total %s", invoice.invoice_number, invoice.id, invoice.total)
    return invoice


def finalize_invoice(db: Session, invoice_id: str) -> Invoice:
    """Draft -> Sent. Debits stock for every product line."""
    with atomic(db):
        invoice = _load_invoice(db, invoice_id, for_update=True)
        if invoice.status != InvoiceStatus.DRAFT:
            raise _reject(invoice, "Only draft invoices can be finalized")

        lines = _product_lines(invoice)
        _check_stock(db, lines)
        for item in lines:
            stock_service.adjust(db, item.product_id, -item.quantity, StockReason.SALE, invoice.invoice_number)
        _change_status(db, invoice, InvoiceStatus.SENT)

    db.refresh(invoice)
    logger.info("Finalized invoice %s, %d stock lines debited", invoice.invoice_number, len(lines))
    return invoice


def mark_invoice_paid(db: Session, invoice_id: str) -> Invoice:
    """Sent -> Paid."""
    with atomic(db):
        invoice = _load_invoice(db, invoice_id, for_update=True)
        if invoice.status != InvoiceStatus.SENT:
            raise _reject(invoice, "Only Sent invoices can be marked Paid")
        _change_status(db, invoice, InvoiceStatus.PAID)

    db.refresh(invoice)
    logger.info("Invoice %s marked paid", invoice.invoice_number)
    return invoice


def cancel_invoice(db: Session, invoice_id: str) -> Invoice:
    """Sent|Paid -> Cancelled. Puts back the stock taken on finalize."""
    with atomic(db):
        invoice = _load_invoice(db, invoice_id, for_update=True)
        if invoice.status == InvoiceStatus.CANCELLED:
            raise _reject(invoice, "Invoice is already cancelled")
        if invoice.status == InvoiceStatus.DRAFT:
            raise _reject(invoice, "Drafts cannot be cancelled, delete instead")

        lines = _product_lines(invoice)
        for item in lines:
            stock_service.adjust(db, item.product_id, item.quantity, StockReason.REVERSAL, invoice.invoice_number)
        _change_status(db, invoice, InvoiceStatus.CANCELLED)

    db.refresh(invoice)
    logger.info("Cancelled invoice %s, %d stock lines reversed", invoice.invoice_number, len(lines))
    return invoice


def update_invoice_items(db: Session, invoice_id: str, items: Sequence[InvoiceItemIn]) -> Invoice:
    """Replace a draft's items wholesale and re-price it."""
    _validate_items(db, items)
    with atomic(db):
        invoice = _load_invoice(db, invoice_id, for_update=True)
        if invoice.status != InvoiceStatus.DRAFT:
            raise _reject(invoice, "Items can only be edited on a draft")

        old_items = _items_snapshot(invoice.items)
        old_total = str(invoice.total)
        _replace_items(db, invoice, items)
        totals = _recalculate(db, invoice)
        _emit(db, invoice, InvoiceEvent(
            AuditAction.UPDATED,
            "items",
            {"items": old_items, "total": old_total},
            {"items": _items_snapshot(invoice.items), "total": str(totals.total)},
        ))

    db.refresh(invoice)
    logger.info("Replaced items on invoice %s, new total %s", invoice.invoice_number, invoice.total)
    return invoice


def update_invoice(db: Session, invoice_id: str, data: InvoiceUpdate) -> Invoice:
    """Edit header fields. Dates and notes stay editable until cancellation;
    customer, discount, shipping and items only while Draft."""
    # Only delivery_date can be cleared; any other null means "leave as is"
    changes = {
        k: v for k, v in data.model_dump(exclude_unset=True).items()
        if v is not None or k == "delivery_date"
    }
    if not changes:
        return get_invoice(db, invoice_id)
    if "items" in changes:
        _validate_items(db, data.items)
    if "customer_id" in changes:
        _require_customer(db, data.customer_id)

    with atomic(db):
        invoice = _load_invoice(db, invoice_id, for_update=True)
        if invoice.status == InvoiceStatus.CANCELLED:
            raise _reject(invoice, "Cancelled invoices cannot be edited")
        if DRAFT_ONLY_FIELDS & changes.keys() and invoice.status != InvoiceStatus.DRAFT:
            raise _reject(invoice, "Customer, discount, shipping and items can only be edited on a draft")

        invoice_date = changes.get("invoice_date", invoice.invoice_date)
        due_date = changes.get("due_date", invoice.due_date)
        if due_date < invoice_date:
            raise ValidationError("Due date must not be before the invoice date")

        old: dict[str, Any] = {}
        new: dict[str, Any] = {}
        for field in ("invoice_date", "delivery_date", "due_date", "notes", "customer_id"):
            if field in changes:
                old[field] = getattr(invoice, field)
                setattr(invoice, field, changes[field])
                new[field] = changes[field]
        for field in ("discount", "shipping_cost"):
            if field in changes:
                old[field] = str(getattr(invoice, field))
                setattr(invoice, field, to_money(changes[field]))
                new[field] = str(getattr(invoice, field))
        if "items" in changes:
            old["items"] = _items_snapshot(invoice.items)
            _replace_items(db, invoice, data.items)
            new["items"] = _items_snapshot(invoice.items)

        if DRAFT_ONLY_FIELDS & new.keys():
            old["total"] = str(invoice.total)
            new["total"] = str(_recalculate(db, invoice).total)

        _emit(db, invoice, InvoiceEvent(AuditAction.UPDATED, ",".join(sorted(new)), old, new))

    db.refresh(invoice)
    return invoice


def delete_invoice(db: Session, invoice_id: str) -> None:
    """Delete a draft with its items and history; hand back its number if it was the last one."""
    with atomic(db):
        invoice = _load_invoice(db, invoice_id, for_update=True)
        if invoice.status != InvoiceStatus.DRAFT:
            raise _reject(invoice, "Only drafts can be deleted")
        number = invoice.invoice_number
        db.delete(invoice)
        db.flush()
        reclaimed = numbering_service.reclaim(db, number)

    logger.info("Deleted invoice %s (%s), number reclaimed: %s", number, invoice_id, reclaimed)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def get_invoice(db: Session, invoice_id: str) -> Invoice:
    return _load_invoice(db, invoice_id)


def list_invoices(
    db: Session,
    search: str = "",
    status: InvoiceStatus | None = None,
    customer_id: str = "",
    skip: int = 0,
    limit: int = 50,
) -> tuple[int, list[Invoice]]:
    query = db.query(Invoice).join(Customer, Customer.id == Invoice.customer_id)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Invoice.invoice_number.ilike(pattern), Customer.name.ilike(pattern)))
    if status:
        query = query.filter(Invoice.status == status)
    if customer_id:
        query = query.filter(Invoice.customer_id == customer_id)
    total = query.count()
    invoices = query.order_by(Invoice.created_at.desc(), Invoice.invoice_number.desc()).offset(skip).limit(limit).all()
    return total, invoices


def get_audit_trail(db: Session, invoice_id: str) -> list[AuditLog]:
    _load_invoice(db, invoice_id)
    return (
        db.query(AuditLog)
        .filter(AuditLog.invoice_id == invoice_id)
        .order_by(AuditLog.created_at.desc())
        .all()
    )
