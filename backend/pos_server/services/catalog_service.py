# backend/pos_server/services/catalog_service.py
"""
Catalog reads for the admin UI and for terminal cache refreshes.

Terminals pull the whole active catalog (no page) and replace their local
copy; there is no incremental diff protocol.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Product, Customer, Sale


def paginate(base_query, *, page: int | None, per_page: int | None, serialize) -> dict:
    """
    Shared listing envelope.

    page=None returns every row; otherwise per_page defaults to
    DEFAULT_PAGE_SIZE and is capped at MAX_PAGE_SIZE.
    """
    if page is None:
        rows = base_query.all()
        return {
            "items": [serialize(r) for r in rows],
            "count": len(rows),
        }

    default_size = current_app.config["DEFAULT_PAGE_SIZE"]
    max_size = current_app.config["MAX_PAGE_SIZE"]
    per_page = min(per_page or default_size, max_size)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serialize(r) for r in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def list_products(
    *,
    is_active: bool | None = None,
    search: str | None = None,
    category_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    q = db.session.query(Product)
    if is_active is not None:
        q = q.filter(Product.is_active.is_(is_active))
    if category_id is not None:
        q = q.filter(Product.category_id == category_id)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(
            Product.name.ilike(pattern),
            Product.sku.ilike(pattern),
            Product.barcode.ilike(pattern),
        ))
    q = q.order_by(Product.name.asc(), Product.id.asc())
    return paginate(q, page=page, per_page=per_page, serialize=lambda p: p.to_dict())


def get_product(product_id: int) -> Product | None:
    return db.session.query(Product).filter_by(id=product_id).first()


def get_product_by_barcode(barcode: str) -> Product | None:
    return db.session.query(Product).filter_by(barcode=barcode).first()


def list_customers(
    *,
    search: str | None = None,
    is_active: bool | None = True,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    q = db.session.query(Customer)
    if is_active is not None:
        q = q.filter(Customer.is_active.is_(is_active))
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(
            Customer.first_name.ilike(pattern),
            Customer.last_name.ilike(pattern),
            Customer.email.ilike(pattern),
            Customer.phone.ilike(pattern),
        ))
    q = q.order_by(Customer.last_name.asc(), Customer.first_name.asc(), Customer.id.asc())
    return paginate(q, page=page, per_page=per_page, serialize=lambda c: c.to_dict())


def get_customer(customer_id: int) -> Customer | None:
    return db.session.query(Customer).filter_by(id=customer_id).first()


def find_customer_by_phone(phone: str) -> Customer | None:
    return db.session.query(Customer).filter_by(phone=phone.strip()).first()


def customer_history(customer_id: int, limit: int = 50) -> list[Sale]:
    return (
        db.session.query(Sale)
        .filter_by(customer_id=customer_id)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(limit)
        .all()
    )
