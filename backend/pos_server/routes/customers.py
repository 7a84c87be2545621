# Overview: Flask API routes for customer lookup.

# backend/pos_server/routes/customers.py
from flask import Blueprint, request

from ..services import catalog_service
from ..validation import ValidationError, optional_int
from ..decorators import require_auth

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers():
    """
    List active customers.

    Query params: search, page (omit for all), limit
    """
    try:
        result = catalog_service.list_customers(
            search=request.args.get("search"),
            page=optional_int(request.args.get("page"), "page", minimum=1),
            per_page=optional_int(request.args.get("limit") or request.args.get("per_page"), "limit", minimum=1),
        )
    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400
    return result


@customers_bp.get("/phone/<string:phone>")
@require_auth
def get_by_phone(phone: str):
    customer = catalog_service.find_customer_by_phone(phone)
    if not customer:
        return {"error": "Customer not found"}, 404
    return {"customer": customer.to_dict()}


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer(customer_id: int):
    customer = catalog_service.get_customer(customer_id)
    if not customer:
        return {"error": "Customer not found"}, 404
    return {"customer": customer.to_dict()}


@customers_bp.get("/<int:customer_id>/history")
@require_auth
def customer_history(customer_id: int):
    customer = catalog_service.get_customer(customer_id)
    if not customer:
        return {"error": "Customer not found"}, 404
    sales = catalog_service.customer_history(customer_id)
    return {
        "customer": customer.to_dict(),
        "items": [s.to_dict() for s in sales],
        "count": len(sales),
    }
