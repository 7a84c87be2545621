# Overview: Line and sale total math for checkout (integer cents, half-up rounding).

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import TaxRate


@dataclass(frozen=True)
class LineTotals:
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    total_cents: int


def round_half_up_div(numerator: int, denominator: int) -> int:
    """Integer division rounding halves away from zero."""
    if numerator >= 0:
        return (numerator + denominator // 2) // denominator
    return -((-numerator + denominator // 2) // denominator)


def tax_for(amount_cents: int, rate_bps: int) -> int:
    """Tax on amount_cents at rate_bps basis points (825 = 8.25%)."""
    return round_half_up_div(amount_cents * rate_bps, 10_000)


def get_default_tax_rate_bps() -> int:
    """Rate of the active default TaxRate, or 0 when none is configured."""
    rate = (
        db.session.query(TaxRate)
        .filter_by(is_default=True, is_active=True)
        .order_by(TaxRate.id.asc())
        .first()
    )
    return rate.rate_bps if rate else 0


def compute_line(*, price_cents: int, quantity: int, discount_cents: int, taxable: bool, rate_bps: int) -> LineTotals:
    """
    Line math:
        subtotal = price * quantity
        taxable amount = subtotal - discount
        tax = taxable amount * rate (only when taxable)
        total = taxable amount + tax
    """
    subtotal = price_cents * quantity
    taxable_amount = subtotal - discount_cents
    tax = tax_for(taxable_amount, rate_bps) if taxable else 0
    return LineTotals(
        subtotal_cents=subtotal,
        discount_cents=discount_cents,
        tax_cents=tax,
        total_cents=taxable_amount + tax,
    )


def loyalty_points_for(amount_cents: int, points_per_unit: int = 1) -> int:
    """Points for whole currency units only (12.99 earns 12)."""
    return (amount_cents // 100) * points_per_unit
