# Overview: Service-layer operations for inventory; every stock change writes an InventoryLog.

from __future__ import annotations

from ..extensions import db
from ..models import Product, InventoryLog
from pos_server.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
"""
Inventory invariants:

- Product.stock_quantity is the on-hand count; it only changes through the
  helpers in this module.
- Each change appends an InventoryLog with previous/new quantity in the same
  DB transaction as the change.
- Products with track_inventory=False are never decremented or restored.
- Stock may not go negative through a sale or an adjustment.
"""


class InventoryError(Exception):
    """Raised for inventory operation errors."""
    def __init__(self, message: str, details: dict | None = None, status_code: int = 400):
        super().__init__(message)
        self.details = details or {}
        self.status_code = status_code


def _apply_delta(
    product: Product,
    delta: int,
    *,
    log_type: str,
    user_id: int | None,
    sale_id: int | None = None,
    notes: str | None = None,
) -> InventoryLog:
    previous = product.stock_quantity
    product.stock_quantity = previous + delta
    log = InventoryLog(
        product_id=product.id,
        type=log_type,
        quantity=delta,
        previous_qty=previous,
        new_qty=product.stock_quantity,
        notes=notes,
        user_id=user_id,
        sale_id=sale_id,
        created_at=utcnow(),
    )
    db.session.add(log)
    return log


def decrement_for_sale(
    product: Product,
    quantity: int,
    *,
    user_id: int | None,
    sale_id: int,
    notes: str | None = None,
) -> InventoryLog | None:
    """Take quantity out of stock for a sale. No commit; caller owns the transaction."""
    if not product.track_inventory:
        return None
    if product.stock_quantity < quantity:
        raise InventoryError(
            f"Insufficient stock for {product.name}",
            details={"product_id": product.id, "requested_quantity": quantity, "on_hand": product.stock_quantity},
        )
    return _apply_delta(product, -quantity, log_type="SALE", user_id=user_id, sale_id=sale_id, notes=notes)


def restore_for_sale(
    product: Product,
    quantity: int,
    *,
    user_id: int | None,
    sale_id: int,
    notes: str | None = None,
) -> InventoryLog | None:
    """Put quantity back into stock after a refund or void. No commit."""
    if not product.track_inventory:
        return None
    return _apply_delta(product, quantity, log_type="RETURN", user_id=user_id, sale_id=sale_id, notes=notes)


def adjust_inventory(*, product_id: int, quantity_delta: int, user_id: int | None, reason: str | None = None) -> InventoryLog:
    """Manual stock correction (count, damage, receiving)."""
    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise InventoryError("Product not found", status_code=404)
        if not product.track_inventory:
            raise InventoryError("Product does not track inventory")
        if quantity_delta == 0:
            raise InventoryError("quantity_delta must not be zero")
        if product.stock_quantity + quantity_delta < 0:
            raise InventoryError(
                "Adjustment would make stock negative",
                details={"on_hand": product.stock_quantity, "quantity_delta": quantity_delta},
            )

        log = _apply_delta(product, quantity_delta, log_type="ADJUSTMENT", user_id=user_id, notes=reason)
        db.session.commit()
        return log

    return run_with_retry(_op)


def get_low_stock_products() -> list[Product]:
    return (
        db.session.query(Product)
        .filter(
            Product.is_active.is_(True),
            Product.track_inventory.is_(True),
            Product.stock_quantity <= Product.low_stock_alert,
        )
        .order_by(Product.stock_quantity.asc(), Product.name.asc())
        .all()
    )


def list_inventory_logs(product_id: int, limit: int = 50) -> list[InventoryLog]:
    return (
        db.session.query(InventoryLog)
        .filter_by(product_id=product_id)
        .order_by(InventoryLog.created_at.desc(), InventoryLog.id.desc())
        .limit(limit)
        .all()
    )
