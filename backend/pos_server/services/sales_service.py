"""
Sales Service - authoritative sale transaction

WHY: A sale touches five aggregates (sale + items, product stock, inventory
log, customer loyalty, shift totals). They are written in ONE database
transaction so a failure anywhere leaves no partial sale behind.

Terminals that captured a sale offline submit it with its local_id. A
repeated submission with the same local_id returns the sale created the
first time and mutates nothing.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Sale, SaleItem, Refund, Product, Customer, User
from pos_server.time_utils import utcnow, start_of_day
from .audit_service import log_activity
from .catalog_service import paginate
from .concurrency import lock_for_update, run_with_retry
from .inventory_service import InventoryError, decrement_for_sale, restore_for_sale
from .pricing_service import compute_line, get_default_tax_rate_bps, loyalty_points_for
from .shift_service import get_current_shift


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None, status_code: int = 400):
        super().__init__(message)
        self.details = details or {}
        self.status_code = status_code


def generate_sale_number(now: datetime | None = None) -> str:
    """
    SALE-YYYYMMDD-NNNN where NNNN is today's sale count + 1.

    Skips forward if the number is already taken (sales created in the same
    second by another worker).
    """
    now = now or utcnow()
    day_start = start_of_day(now)
    count = db.session.query(Sale).filter(Sale.created_at >= day_start).count()

    seq = count + 1
    while True:
        number = f"SALE-{now.strftime('%Y%m%d')}-{seq:04d}"
        if db.session.query(Sale.id).filter_by(sale_number=number).first() is None:
            return number
        seq += 1


def find_by_local_id(local_id: str) -> Sale | None:
    return db.session.query(Sale).filter_by(local_id=local_id).first()


def _points_per_unit() -> int:
    return current_app.config.get("LOYALTY_POINTS_PER_UNIT", 1)


def _requested_quantities(items: list[dict]) -> dict[int, int]:
    totals: dict[int, int] = {}
    for item in items:
        totals[item["product_id"]] = totals.get(item["product_id"], 0) + item["quantity"]
    return totals


def _check_stock(products: dict[int, Product], items: list[dict]) -> None:
    insufficient = []
    for product_id, qty in _requested_quantities(items).items():
        product = products[product_id]
        if product.track_inventory and product.stock_quantity < qty:
            insufficient.append({
                "product_id": product_id,
                "name": product.name,
                "requested_quantity": qty,
                "on_hand": product.stock_quantity,
            })
    if insufficient:
        first = insufficient[0]["name"]
        raise SaleError(f"Insufficient stock for {first}", details={"items": insufficient})


def create_sale(user: User, payload: dict) -> tuple[Sale, bool]:
    """
    Create a COMPLETED sale from a validated payload.

    Returns (sale, created). created is False when local_id matched an
    existing sale.

    Nothing is written unless every product exists, stock covers every line
    and amount paid covers the total.
    """
    local_id = payload.get("local_id")
    if local_id:
        existing = find_by_local_id(local_id)
        if existing is not None:
            current_app.logger.info(
                "Sale replay for local_id=%s returned %s", local_id, existing.sale_number
            )
            return existing, False

    items = payload["items"]

    def _op():
        customer = None
        customer_id = payload.get("customer_id")
        if customer_id is not None:
            customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
            if customer is None:
                raise SaleError(f"Customer not found: {customer_id}", status_code=404)

        product_ids = sorted(_requested_quantities(items))
        rows = lock_for_update(
            db.session.query(Product).filter(Product.id.in_(product_ids))
        ).all()
        products = {p.id: p for p in rows}
        for item in items:
            if item["product_id"] not in products:
                raise SaleError(f"Product not found: {item['product_id']}", status_code=404)

        _check_stock(products, items)

        rate_bps = get_default_tax_rate_bps()
        subtotal = tax = discount = 0
        line_totals = []
        for item in items:
            product = products[item["product_id"]]
            line = compute_line(
                price_cents=item["price_cents"],
                quantity=item["quantity"],
                discount_cents=item.get("discount_cents", 0),
                taxable=product.is_taxable,
                rate_bps=rate_bps,
            )
            subtotal += line.subtotal_cents
            discount += line.discount_cents
            tax += line.tax_cents
            line_totals.append(line)

        total = subtotal - discount + tax
        amount_paid = payload["amount_paid_cents"]
        if amount_paid < total:
            raise SaleError(
                "Insufficient payment amount",
                details={"total_cents": total, "amount_paid_cents": amount_paid},
            )

        now = utcnow()
        shift = get_current_shift(user.id)

        sale = Sale(
            sale_number=generate_sale_number(now),
            local_id=local_id,
            customer_id=customer.id if customer else None,
            user_id=user.id,
            location_id=user.location_id,
            shift_id=shift.id if shift else None,
            subtotal_cents=subtotal,
            tax_cents=tax,
            discount_cents=discount,
            total_cents=total,
            payment_method=payload["payment_method"],
            amount_paid_cents=amount_paid,
            change_due_cents=amount_paid - total,
            status="COMPLETED",
            notes=payload.get("notes"),
            offline_created_at=payload.get("offline_created_at"),
            created_at=now,
            completed_at=now,
        )
        db.session.add(sale)
        db.session.flush()

        for item, line in zip(items, line_totals):
            product = products[item["product_id"]]
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=product.id,
                sku=product.sku,
                product_name=product.name,
                quantity=item["quantity"],
                price_cents=item["price_cents"],
                discount_cents=line.discount_cents,
                tax_cents=line.tax_cents,
                total_cents=line.total_cents,
                notes=item.get("notes"),
                created_at=now,
            ))
            decrement_for_sale(
                product,
                item["quantity"],
                user_id=user.id,
                sale_id=sale.id,
                notes=f"Sale {sale.sale_number}",
            )

        if customer is not None:
            customer.total_spent_cents += total
            customer.visit_count += 1
            customer.loyalty_points += loyalty_points_for(total, _points_per_unit())
            customer.last_visit_at = now

        if shift is not None:
            shift.total_sales_cents += total
            shift.total_transactions += 1

        log_activity(
            user_id=user.id,
            action="CREATE",
            entity="SALE",
            entity_id=sale.id,
            details={"sale_number": sale.sale_number, "total_cents": total, "local_id": local_id},
        )

        db.session.commit()
        return sale

    try:
        sale = _run(_op)
    except IntegrityError:
        db.session.rollback()
        # Another worker inserted the same local_id after the replay check
        existing = find_by_local_id(local_id) if local_id else None
        if existing is None:
            raise
        current_app.logger.info(
            "Concurrent submit for local_id=%s resolved to %s", local_id, existing.sale_number
        )
        return existing, False

    current_app.logger.info("Sale created: %s total_cents=%s", sale.sale_number, sale.total_cents)
    return sale, True


def _run(op):
    try:
        return run_with_retry(op)
    except InventoryError as exc:
        db.session.rollback()
        raise SaleError(str(exc), details=exc.details, status_code=exc.status_code) from exc
    except SaleError:
        db.session.rollback()
        raise


def _ensure_completed(sale: Sale, verb: str) -> None:
    if sale.status == "REFUNDED":
        raise SaleError("Sale already refunded", details={"sale_id": sale.id})
    if sale.status == "VOIDED":
        raise SaleError("Sale already voided", details={"sale_id": sale.id})
    if sale.status != "COMPLETED":
        raise SaleError(f"Only COMPLETED sales can be {verb}", details={"sale_id": sale.id, "status": sale.status})


def _restore_items(sale: Sale, user_id: int, note: str) -> None:
    for item in sale.items:
        product = lock_for_update(db.session.query(Product).filter_by(id=item.product_id)).first()
        if product is not None:
            restore_for_sale(product, item.quantity, user_id=user_id, sale_id=sale.id, notes=note)


def _refund_locked(sale: Sale, *, amount_cents: int, reason: str, notes: str | None, user_id: int) -> Refund:
    _ensure_completed(sale, "refunded")
    if amount_cents <= 0:
        raise SaleError("Refund amount must be greater than zero")
    if amount_cents > sale.total_cents:
        raise SaleError(
            "Refund amount exceeds sale total",
            details={"amount_cents": amount_cents, "total_cents": sale.total_cents},
        )

    now = utcnow()
    _restore_items(sale, user_id, f"Refund {sale.sale_number}")

    if sale.customer_id is not None:
        customer = lock_for_update(db.session.query(Customer).filter_by(id=sale.customer_id)).first()
        if customer is not None:
            customer.total_spent_cents = max(0, customer.total_spent_cents - amount_cents)
            customer.loyalty_points = max(
                0, customer.loyalty_points - loyalty_points_for(amount_cents, _points_per_unit())
            )

    refund = Refund(
        sale_id=sale.id,
        amount_cents=amount_cents,
        reason=reason,
        notes=notes,
        refunded_by_user_id=user_id,
        created_at=now,
    )
    db.session.add(refund)

    sale.status = "REFUNDED"
    sale.refunded_at = now

    log_activity(
        user_id=user_id,
        action="REFUND",
        entity="SALE",
        entity_id=sale.id,
        details={"sale_number": sale.sale_number, "amount_cents": amount_cents, "reason": reason},
    )
    return refund


def _void_locked(sale: Sale, *, reason: str | None, user_id: int) -> None:
    _ensure_completed(sale, "voided")

    now = utcnow()
    _restore_items(sale, user_id, f"Void {sale.sale_number}")

    sale.status = "VOIDED"
    sale.voided_by_user_id = user_id
    sale.voided_at = now
    sale.void_reason = reason

    log_activity(
        user_id=user_id,
        action="VOID",
        entity="SALE",
        entity_id=sale.id,
        details={"sale_number": sale.sale_number, "reason": reason},
    )


def _load_locked(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise SaleError("Sale not found", status_code=404)
    return sale


def refund_sale(sale_id: int, *, amount_cents: int, reason: str, user_id: int, notes: str | None = None) -> Sale:
    """
    COMPLETED -> REFUNDED.

    Restores every item to stock and reverses the customer's total spent and
    loyalty points by the refunded amount (not by the sale total).
    """
    def _op():
        sale = _load_locked(sale_id)
        _refund_locked(sale, amount_cents=amount_cents, reason=reason, notes=notes, user_id=user_id)
        db.session.commit()
        return sale

    sale = _run(_op)
    current_app.logger.info("Sale refunded: %s amount_cents=%s", sale.sale_number, amount_cents)
    return sale


def void_sale(sale_id: int, *, user_id: int, reason: str | None = None) -> Sale:
    """COMPLETED -> VOIDED. Restores stock only; customer and shift aggregates stay."""
    def _op():
        sale = _load_locked(sale_id)
        _void_locked(sale, reason=reason, user_id=user_id)
        db.session.commit()
        return sale

    sale = _run(_op)
    current_app.logger.info("Sale voided: %s", sale.sale_number)
    return sale


def _load_batch(sale_ids: list[int]) -> list[Sale]:
    ids = list(dict.fromkeys(sale_ids))
    sales = lock_for_update(
        db.session.query(Sale).filter(Sale.id.in_(ids)).order_by(Sale.id.asc())
    ).all()

    found = {s.id for s in sales}
    missing = [sid for sid in ids if sid not in found]
    if missing:
        raise SaleError("Sales not found", details={"sale_ids": missing}, status_code=404)

    blocked = [
        {"sale_id": s.id, "sale_number": s.sale_number, "status": s.status}
        for s in sales if s.status != "COMPLETED"
    ]
    if blocked:
        raise SaleError("Some sales are not COMPLETED", details={"sales": blocked})
    return sales


def bulk_void_sales(sale_ids: list[int], *, user_id: int, reason: str | None = None) -> list[Sale]:
    """Void every sale or none of them."""
    def _op():
        sales = _load_batch(sale_ids)
        for sale in sales:
            _void_locked(sale, reason=reason, user_id=user_id)
        db.session.commit()
        return sales

    sales = _run(_op)
    current_app.logger.info("Bulk void: %d sales", len(sales))
    return sales


def bulk_refund_sales(sale_ids: list[int], *, user_id: int, reason: str) -> list[Sale]:
    """Refund every sale for its full total, or none of them."""
    def _op():
        sales = _load_batch(sale_ids)
        for sale in sales:
            _refund_locked(sale, amount_cents=sale.total_cents, reason=reason, notes=None, user_id=user_id)
        db.session.commit()
        return sales

    sales = _run(_op)
    current_app.logger.info("Bulk refund: %d sales", len(sales))
    return sales


def get_sale(sale_id: int) -> Sale | None:
    return db.session.query(Sale).filter_by(id=sale_id).first()


def list_sales(
    *,
    status: str | None = None,
    payment_method: str | None = None,
    customer_id: int | None = None,
    user_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = 1,
    per_page: int | None = None,
) -> dict:
    q = db.session.query(Sale)
    if status:
        q = q.filter(Sale.status == status)
    if payment_method:
        q = q.filter(Sale.payment_method == payment_method)
    if customer_id is not None:
        q = q.filter(Sale.customer_id == customer_id)
    if user_id is not None:
        q = q.filter(Sale.user_id == user_id)
    if start_date is not None:
        q = q.filter(Sale.created_at >= start_date)
    if end_date is not None:
        q = q.filter(Sale.created_at <= end_date)
    q = q.order_by(Sale.created_at.desc(), Sale.id.desc())
    return paginate(q, page=page, per_page=per_page, serialize=lambda s: s.to_dict())
