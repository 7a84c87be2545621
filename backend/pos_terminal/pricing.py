# backend/pos_terminal/pricing.py
"""
Offline sale totals (integer cents, half-up rounding).

The terminal applies one flat tax rate to every line because it has no
access to the server's tax configuration while offline. The server
recomputes authoritative totals when the sale is submitted.
"""
from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_TAX_RATE_BPS = 825


def round_half_up_div(numerator: int, denominator: int) -> int:
    if numerator >= 0:
        return (numerator + denominator // 2) // denominator
    return -((-numerator + denominator // 2) // denominator)


@dataclass
class OfflineTotals:
    items: list[dict] = field(default_factory=list)
    subtotal_cents: int = 0
    discount_cents: int = 0
    tax_cents: int = 0
    total_cents: int = 0
    amount_paid_cents: int = 0
    change_due_cents: int = 0


def compute_totals(items: list[dict], *, amount_paid_cents: int, tax_rate_bps: int = DEFAULT_TAX_RATE_BPS) -> OfflineTotals:
    """
    items: [{product_id, sku, product_name, quantity, price_cents, discount_cents?}]

    Underpayment is not rejected here; change due is clamped at zero.
    """
    totals = OfflineTotals(amount_paid_cents=amount_paid_cents)
    for item in items:
        quantity = item["quantity"]
        price = item["price_cents"]
        discount = item.get("discount_cents") or 0

        line_subtotal = price * quantity
        taxable = line_subtotal - discount
        tax = round_half_up_div(taxable * tax_rate_bps, 10_000)

        totals.items.append({
            "product_id": item["product_id"],
            "sku": item.get("sku"),
            "product_name": item.get("product_name"),
            "quantity": quantity,
            "price_cents": price,
            "discount_cents": discount,
            "tax_cents": tax,
            "total_cents": taxable + tax,
        })
        totals.subtotal_cents += line_subtotal
        totals.discount_cents += discount
        totals.tax_cents += tax

    totals.total_cents = totals.subtotal_cents - totals.discount_cents + totals.tax_cents
    totals.change_due_cents = max(0, amount_paid_cents - totals.total_cents)
    return totals
