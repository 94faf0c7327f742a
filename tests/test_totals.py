from decimal import Decimal

from backoffice.services.totals_service import (
    VatPolicy,
    calculate_totals,
    line_total,
    matches_stored,
    to_money,
    totals_for_invoice,
)


class _Item:
    def __init__(self, quantity, unit_price):
        self.quantity = quantity
        self.unit_price = unit_price


class _Invoice:
    def __init__(self, items, discount, shipping_cost, vat_rate, subtotal, vat_amount, total):
        self.items = items
        self.discount = discount
        self.shipping_cost = shipping_cost
        self.vat_rate = vat_rate
        self.subtotal = subtotal
        self.vat_amount = vat_amount
        self.total = total


ITEMS = [{"quantity": 1, "unit_price": Decimal("100.00")}]


def test_to_money_rounds_half_up():
    assert to_money("2.675") == Decimal("2.68")
    assert to_money(None) == Decimal("0.00")
    assert to_money(3) == Decimal("3.00")


def test_line_total():
    assert line_total(3, "4.99") == Decimal("14.97")


def test_no_vat():
    totals = calculate_totals(ITEMS, Decimal("10"), Decimal("5"))
    assert totals.subtotal == Decimal("95.00")
    assert totals.vat_amount == Decimal("0.00")
    assert totals.vat_rate == Decimal("0")
    assert totals.total == Decimal("95.00")


def test_vat_enabled():
    totals = calculate_totals(ITEMS, Decimal("10"), Decimal("5"), VatPolicy(enabled=True, rate=Decimal("19")))
    assert totals.vat_amount == Decimal("18.05")
    assert totals.total == Decimal("113.05")
    assert totals.vat_rate == Decimal("19")


def test_disabled_policy_ignores_rate():
    totals = calculate_totals(ITEMS, vat=VatPolicy(enabled=False, rate=Decimal("19")))
    assert totals.vat_amount == Decimal("0.00")
    assert totals.total == Decimal("100.00")


def test_vat_rounding_half_up():
    # 0.50 * 7% = 0.035 -> 0.04
    totals = calculate_totals([{"quantity": 1, "unit_price": "0.50"}], vat=VatPolicy(enabled=True, rate=Decimal("7")))
    assert totals.vat_amount == Decimal("0.04")


def test_empty_items():
    totals = calculate_totals([], shipping_cost=Decimal("4.90"))
    assert totals.items_total == Decimal("0.00")
    assert totals.total == Decimal("4.90")


def test_discount_above_items_total_goes_negative():
    totals = calculate_totals(ITEMS, discount=Decimal("150"))
    assert totals.subtotal == Decimal("-50.00")


def test_accepts_objects_and_is_deterministic():
    items = [_Item(2, Decimal("12.50")), _Item(1, Decimal("0.99"))]
    first = calculate_totals(items, Decimal("1"), Decimal("0"))
    second = calculate_totals(items, Decimal("1"), Decimal("0"))
    assert first == second
    assert first.subtotal == Decimal("24.99")


def test_totals_for_invoice_uses_stored_rate():
    inv = _Invoice([_Item(1, Decimal("100"))], Decimal("10"), Decimal("5"), Decimal("19"),
                   Decimal("95.00"), Decimal("18.05"), Decimal("113.05"))
    totals = totals_for_invoice(inv)
    assert totals.total == Decimal("113.05")
    assert matches_stored(inv, totals)


def test_matches_stored_detects_drift():
    inv = _Invoice([_Item(1, Decimal("100"))], Decimal("0"), Decimal("0"), Decimal("0"),
                   Decimal("100.00"), Decimal("0.00"), Decimal("99.00"))
    assert not matches_stored(inv, totals_for_invoice(inv))
