"""Invoice totals. Pure functions, no I/O.

The same function serves the write path (create / edit) and the render path
(PDF), so a printed document always matches the stored invoice.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class VatPolicy:
    enabled: bool
    rate: Decimal = Decimal("0")

    @classmethod
    def from_settings(cls, settings) -> "VatPolicy":
        if not settings.vat_enabled:
            return cls(enabled=False, rate=Decimal("0"))
        return cls(enabled=True, rate=Decimal(str(settings.default_vat_rate)))

    @classmethod
    def from_invoice(cls, invoice) -> "VatPolicy":
        rate = Decimal(str(invoice.vat_rate or 0))
        return cls(enabled=rate > 0, rate=rate)

    @property
    def effective_rate(self) -> Decimal:
        return self.rate if self.enabled else Decimal("0")


@dataclass(frozen=True)
class InvoiceTotals:
    items_total: Decimal
    subtotal: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    total: Decimal


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item[name]
    return getattr(item, name)


def line_total(quantity: int, unit_price: Any) -> Decimal:
    return to_money(Decimal(quantity) * to_money(unit_price))


def calculate_totals(
    items: Iterable[Any],
    discount: Any = None,
    shipping_cost: Any = None,
    vat: VatPolicy = VatPolicy(enabled=False),
) -> InvoiceTotals:
    """Derive subtotal, VAT and total.

    ``items`` may be ORM rows, pydantic models or mappings exposing
    ``quantity`` and ``unit_price``. A discount larger than the items total
    yields a negative subtotal; callers decide whether to allow that.
    """
    items_total = sum(
        (line_total(_field(i, "quantity"), _field(i, "unit_price")) for i in items),
        Decimal("0.00"),
    )
    subtotal = items_total - to_money(discount) + to_money(shipping_cost)
    if vat.enabled:
        vat_amount = (subtotal * vat.rate / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)
    else:
        vat_amount = Decimal("0.00")
    return InvoiceTotals(
        items_total=items_total,
        subtotal=subtotal,
        vat_rate=vat.effective_rate,
        vat_amount=vat_amount,
        total=subtotal + vat_amount,
    )


def totals_for_invoice(invoice) -> InvoiceTotals:
    """Re-derive totals from a persisted invoice's own items and VAT rate."""
    return calculate_totals(
        invoice.items,
        discount=invoice.discount,
        shipping_cost=invoice.shipping_cost,
        vat=VatPolicy.from_invoice(invoice),
    )


def matches_stored(invoice, totals: InvoiceTotals) -> bool:
    return (
        to_money(invoice.subtotal) == totals.subtotal
        and to_money(invoice.vat_amount) == totals.vat_amount
        and to_money(invoice.total) == totals.total
    )
