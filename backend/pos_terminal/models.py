# backend/pos_terminal/models.py
"""
Local tables of the terminal.

cached_products / cached_customers are read-only copies of the server
catalog, replaced wholesale on every refresh. pending_sales is the durable
queue of sales captured at this terminal, drained by the sync engine.
"""
from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Terminal 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SaleSyncState(str, enum.Enum):
    """
    QUEUED -> SUBMITTING -> SYNCED
                  |
                  v
               FAILED -> SUBMITTING -> ...
                  |
                  v (failed attempts == max)
              ABANDONED
    """
    QUEUED = "queued"
    SUBMITTING = "submitting"
    FAILED = "failed"
    SYNCED = "synced"
    ABANDONED = "abandoned"


class InvalidTransition(Exception):
    """Raised when a pending sale is moved out of a state that does not allow it."""


class CachedProduct(Base):
    __tablename__ = "cached_products"

    id = Column(Integer, primary_key=True, autoincrement=False)
    sku = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category_id = Column(Integer, nullable=True)
    category_name = Column(String(120), nullable=True)
    cost_cents = Column(Integer, nullable=False, default=0)
    price_cents = Column(Integer, nullable=False)
    stock_quantity = Column(Integer, nullable=False, default=0)
    low_stock_alert = Column(Integer, nullable=False, default=10)
    barcode = Column(String(64), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=False)
    is_taxable = Column(Boolean, nullable=False, default=False)
    synced_at = Column(DateTime, nullable=False, default=utcnow)

    @classmethod
    def from_api(cls, data: dict, synced_at: datetime) -> "CachedProduct":
        return cls(
            id=data["id"],
            sku=data["sku"],
            name=data["name"],
            description=data.get("description"),
            category_id=data.get("category_id"),
            category_name=data.get("category_name"),
            cost_cents=data.get("cost_cents") or 0,
            price_cents=data["price_cents"],
            stock_quantity=data.get("stock_quantity") or 0,
            low_stock_alert=data.get("low_stock_alert", 10),
            barcode=data.get("barcode"),
            is_active=bool(data.get("is_active", False)),
            is_taxable=bool(data.get("is_taxable", False)),
            synced_at=synced_at,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "category_name": self.category_name,
            "cost_cents": self.cost_cents,
            "price_cents": self.price_cents,
            "stock_quantity": self.stock_quantity,
            "low_stock_alert": self.low_stock_alert,
            "barcode": self.barcode,
            "is_active": self.is_active,
            "is_taxable": self.is_taxable,
            "synced_at": to_utc_z(self.synced_at),
        }


class CachedCustomer(Base):
    __tablename__ = "cached_customers"

    id = Column(Integer, primary_key=True, autoincrement=False)
    email = Column(String(255), nullable=True, index=True)
    # Primary lookup key at the register
    phone = Column(String(32), nullable=True, index=True)
    first_name = Column(String(128), nullable=False)
    last_name = Column(String(128), nullable=False)
    loyalty_points = Column(Integer, nullable=False, default=0)
    total_spent_cents = Column(Integer, nullable=False, default=0)
    visit_count = Column(Integer, nullable=False, default=0)
    synced_at = Column(DateTime, nullable=False, default=utcnow)

    @classmethod
    def from_api(cls, data: dict, synced_at: datetime) -> "CachedCustomer":
        return cls(
            id=data["id"],
            email=data.get("email"),
            phone=data.get("phone"),
            first_name=data["first_name"],
            last_name=data["last_name"],
            loyalty_points=data.get("loyalty_points") or 0,
            total_spent_cents=data.get("total_spent_cents") or 0,
            visit_count=data.get("visit_count") or 0,
            synced_at=synced_at,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "phone": self.phone,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "loyalty_points": self.loyalty_points,
            "total_spent_cents": self.total_spent_cents,
            "visit_count": self.visit_count,
            "synced_at": to_utc_z(self.synced_at),
        }


class PendingSale(Base):
    """
    A sale captured at this terminal, waiting for (or past) submission.

    items is a JSON list of line snapshots:
        {product_id, sku, product_name, quantity, price_cents,
         discount_cents, tax_cents, total_cents}

    Only the transition methods below change sync_state, synced, server_id,
    sync_attempts and sync_error. synced is True exactly when server_id is
    set and sync_state is SYNCED.
    """
    __tablename__ = "pending_sales"
    __table_args__ = (
        Index("ix_pending_sales_synced_created", "synced", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    local_id = Column(String(64), nullable=False, unique=True)
    customer_id = Column(Integer, nullable=True, index=True)
    items = Column(JSON, nullable=False)

    subtotal_cents = Column(Integer, nullable=False)
    tax_cents = Column(Integer, nullable=False)
    discount_cents = Column(Integer, nullable=False)
    total_cents = Column(Integer, nullable=False)

    payment_method = Column(String(32), nullable=False)
    amount_paid_cents = Column(Integer, nullable=False)
    change_due_cents = Column(Integer, nullable=False)
    notes = Column(Text, nullable=True)

    # Terminal clock at capture time
    created_at = Column(DateTime, nullable=False, default=utcnow)

    sync_state = Column(String(16), nullable=False, default=SaleSyncState.QUEUED.value)
    synced = Column(Boolean, nullable=False, default=False)
    sync_attempts = Column(Integer, nullable=False, default=0)
    last_sync_attempt = Column(DateTime, nullable=True)
    sync_error = Column(Text, nullable=True)
    server_id = Column(String(64), nullable=True)

    @property
    def state(self) -> SaleSyncState:
        return SaleSyncState(self.sync_state or SaleSyncState.QUEUED.value)

    @property
    def is_submittable(self) -> bool:
        # SUBMITTING is resumable: the process may have died mid-request
        return self.state in (SaleSyncState.QUEUED, SaleSyncState.SUBMITTING, SaleSyncState.FAILED)

    def begin_submit(self) -> None:
        if not self.is_submittable:
            raise InvalidTransition(f"Cannot submit sale {self.local_id} in state {self.state.value}")
        self.sync_state = SaleSyncState.SUBMITTING.value

    def mark_synced(self, server_id: str, now: datetime) -> None:
        if self.state is SaleSyncState.SYNCED:
            if self.server_id != server_id:
                raise InvalidTransition(
                    f"Sale {self.local_id} already synced as {self.server_id}, not {server_id}"
                )
            return
        self.sync_state = SaleSyncState.SYNCED.value
        self.synced = True
        self.server_id = server_id
        self.last_sync_attempt = now
        self.sync_error = None

    def mark_failed(self, error: str, now: datetime, max_attempts: int) -> None:
        if self.state is SaleSyncState.SYNCED:
            raise InvalidTransition(f"Sale {self.local_id} is already synced")
        self.sync_attempts = (self.sync_attempts or 0) + 1
        self.last_sync_attempt = now
        self.sync_error = error
        if self.sync_attempts >= max_attempts:
            self.sync_state = SaleSyncState.ABANDONED.value
        else:
            self.sync_state = SaleSyncState.FAILED.value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "local_id": self.local_id,
            "customer_id": self.customer_id,
            "items": list(self.items or []),
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "amount_paid_cents": self.amount_paid_cents,
            "change_due_cents": self.change_due_cents,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "sync_state": self.sync_state,
            "synced": self.synced,
            "sync_attempts": self.sync_attempts,
            "last_sync_attempt": to_utc_z(self.last_sync_attempt),
            "sync_error": self.sync_error,
            "server_id": self.server_id,
        }


class SyncLog(Base):
    """Append-only record of local creates and sync attempts. Pruned by age."""
    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(16), nullable=False, index=True)      # sale | product | customer
    action = Column(String(16), nullable=False)                # create | update | sync
    local_id = Column(String(64), nullable=True, index=True)
    server_id = Column(String(64), nullable=True)
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)
    success = Column(Boolean, nullable=False)
    error = Column(Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "action": self.action,
            "local_id": self.local_id,
            "server_id": self.server_id,
            "timestamp": to_utc_z(self.timestamp),
            "success": self.success,
            "error": self.error,
        }


class Setting(Base):
    __tablename__ = "settings"

    key = Column(String(120), primary_key=True)
    value = Column(JSON, nullable=True)
