# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/pos_server/routes/sales.py
"""Sales API routes with role enforcement"""

from flask import Blueprint, request, g, current_app

from ..services import audit_service, sales_service
from ..services.sales_service import SaleError
from ..validation import (
    ValidationError,
    optional_int,
    optional_reason,
    validate_refund_payload,
    validate_sale_ids,
    validate_sale_payload,
)
from ..decorators import require_auth, require_role
from ..models import SALE_STATUSES
from pos_server.time_utils import parse_iso_datetime


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Create a completed sale.

    Available to: admin, manager, cashier

    Returns 201 with the new sale, or 200 with the existing sale when
    local_id was already submitted.
    """
    try:
        payload = validate_sale_payload(request.get_json(silent=True))
        sale, created = sales_service.create_sale(g.current_user, payload)
        return {"sale": sale.to_dict(include_items=True)}, (201 if created else 200)

    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400
    except SaleError as e:
        return {"error": str(e), "details": e.details}, e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return {"error": "Internal server error"}, 500


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    List sales, newest first.

    Query params: status, payment_method, customer_id, user_id,
    start_date, end_date (ISO-8601), page, limit
    """
    try:
        start_date = parse_iso_datetime(request.args.get("start_date"))
        end_date = parse_iso_datetime(request.args.get("end_date"))
    except ValueError:
        return {"error": "start_date and end_date must be ISO-8601 datetimes"}, 400

    status = request.args.get("status")
    if status and status not in SALE_STATUSES:
        return {"error": "Invalid status", "details": {"allowed": list(SALE_STATUSES)}}, 400

    try:
        result = sales_service.list_sales(
            status=status,
            payment_method=request.args.get("payment_method"),
            customer_id=optional_int(request.args.get("customer_id"), "customer_id"),
            user_id=optional_int(request.args.get("user_id"), "user_id"),
            start_date=start_date,
            end_date=end_date,
            page=optional_int(request.args.get("page"), "page", minimum=1) or 1,
            per_page=optional_int(request.args.get("limit") or request.args.get("per_page"), "limit", minimum=1),
        )
    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400
    return result


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    """Get sale with items and refunds."""
    sale = sales_service.get_sale(sale_id)
    if not sale:
        return {"error": "Sale not found"}, 404
    return {"sale": sale.to_dict(include_items=True)}


@sales_bp.get("/<int:sale_id>/activity")
@require_auth
@require_role("ADMIN", "MANAGER")
def sale_activity_route(sale_id: int):
    """Activity log for one sale, newest first."""
    if not sales_service.get_sale(sale_id):
        return {"error": "Sale not found"}, 404
    entries = audit_service.list_activity(entity="SALE", entity_id=sale_id)
    return {"items": [e.to_dict() for e in entries], "count": len(entries)}


@sales_bp.post("/<int:sale_id>/refund")
@require_auth
@require_role("ADMIN", "MANAGER")
def refund_sale_route(sale_id: int):
    """
    Refund a completed sale.

    Body: {"amount_cents": int, "reason": str, "notes": str?}
    Available to: admin, manager
    """
    try:
        data = validate_refund_payload(request.get_json(silent=True))
        sale = sales_service.refund_sale(
            sale_id,
            amount_cents=data["amount_cents"],
            reason=data["reason"],
            notes=data["notes"],
            user_id=g.current_user.id,
        )
        return {"sale": sale.to_dict(include_items=True)}, 200

    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400
    except SaleError as e:
        return {"error": str(e), "details": e.details}, e.status_code
    except Exception:
        current_app.logger.exception("Failed to refund sale")
        return {"error": "Internal server error"}, 500


@sales_bp.post("/<int:sale_id>/void")
@require_auth
@require_role("ADMIN", "MANAGER")
def void_sale_route(sale_id: int):
    """
    Void a completed sale.

    Available to: admin, manager
    """
    try:
        sale = sales_service.void_sale(
            sale_id,
            user_id=g.current_user.id,
            reason=optional_reason(request.get_json(silent=True)),
        )
        return {"sale": sale.to_dict(include_items=True)}, 200

    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400
    except SaleError as e:
        return {"error": str(e), "details": e.details}, e.status_code
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return {"error": "Internal server error"}, 500


@sales_bp.post("/bulk-void")
@require_auth
@require_role("ADMIN", "MANAGER")
def bulk_void_route():
    """Void every listed sale, or none if any is not COMPLETED."""
    try:
        data = request.get_json(silent=True)
        sales = sales_service.bulk_void_sales(
            validate_sale_ids(data),
            user_id=g.current_user.id,
            reason=optional_reason(data),
        )
        return {"items": [s.to_dict() for s in sales], "count": len(sales)}, 200

    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400
    except SaleError as e:
        return {"error": str(e), "details": e.details}, e.status_code
    except Exception:
        current_app.logger.exception("Failed to bulk void sales")
        return {"error": "Internal server error"}, 500


@sales_bp.post("/bulk-refund")
@require_auth
@require_role("ADMIN", "MANAGER")
def bulk_refund_route():
    """Refund every listed sale for its full total, or none of them."""
    try:
        data = request.get_json(silent=True)
        sales = sales_service.bulk_refund_sales(
            validate_sale_ids(data),
            user_id=g.current_user.id,
            reason=optional_reason(data) or "Bulk refund",
        )
        return {"items": [s.to_dict() for s in sales], "count": len(sales)}, 200

    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400
    except SaleError as e:
        return {"error": str(e), "details": e.details}, e.status_code
    except Exception:
        current_app.logger.exception("Failed to bulk refund sales")
        return {"error": "Internal server error"}, 500
