# Overview: Flask API routes for catalog reads and stock adjustments.

# backend/pos_server/routes/products.py
"""
Product routes.

SECURITY: All routes require authentication.
- Reads are open to every role (terminals refresh their cache here)
- Stock adjustments require ADMIN or MANAGER
"""
from flask import Blueprint, request, g, current_app

from ..services import catalog_service, inventory_service
from ..services.inventory_service import InventoryError
from ..validation import ValidationError, coerce_int, optional_int, parse_bool
from ..decorators import require_auth, require_role

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    List products.

    Query params:
    - is_active: bool (optional)
    - search: str (optional) - name, SKU or barcode substring
    - category_id: int (optional)
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - limit: int (optional) - items per page (default 20, max MAX_PAGE_SIZE)
    """
    try:
        result = catalog_service.list_products(
            is_active=parse_bool(request.args.get("is_active"), "is_active"),
            search=request.args.get("search"),
            category_id=optional_int(request.args.get("category_id"), "category_id"),
            page=optional_int(request.args.get("page"), "page", minimum=1),
            per_page=optional_int(request.args.get("limit") or request.args.get("per_page"), "limit", minimum=1),
        )
    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400
    return result


@products_bp.get("/low-stock")
@require_auth
def low_stock():
    products = inventory_service.get_low_stock_products()
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@products_bp.get("/barcode/<string:barcode>")
@require_auth
def get_by_barcode(barcode: str):
    product = catalog_service.get_product_by_barcode(barcode)
    if not product:
        return {"error": "Product not found"}, 404
    return {"product": product.to_dict()}


@products_bp.get("/<int:product_id>")
@require_auth
def get_product(product_id: int):
    product = catalog_service.get_product(product_id)
    if not product:
        return {"error": "Product not found"}, 404
    return {"product": product.to_dict()}


@products_bp.get("/<int:product_id>/inventory-logs")
@require_auth
def inventory_logs(product_id: int):
    logs = inventory_service.list_inventory_logs(product_id)
    return {"items": [log.to_dict() for log in logs], "count": len(logs)}


@products_bp.post("/<int:product_id>/adjust-inventory")
@require_auth
@require_role("ADMIN", "MANAGER")
def adjust_inventory(product_id: int):
    """
    Manual stock correction.

    Body: {"quantity_delta": int (signed, non-zero), "reason": str}
    """
    data = request.get_json(silent=True) or {}
    try:
        quantity_delta = coerce_int(data.get("quantity_delta"), "quantity_delta")
        reason = data.get("reason")
        if not reason or not str(reason).strip():
            raise ValidationError("reason is required")

        log = inventory_service.adjust_inventory(
            product_id=product_id,
            quantity_delta=quantity_delta,
            user_id=g.current_user.id,
            reason=str(reason).strip(),
        )
    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400
    except InventoryError as e:
        return {"error": str(e), "details": e.details}, e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust inventory")
        return {"error": "Internal server error"}, 500

    product = catalog_service.get_product(product_id)
    return {"product": product.to_dict(), "inventory_log": log.to_dict()}, 200
