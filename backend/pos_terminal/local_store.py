# backend/pos_terminal/local_store.py
"""
Durable local store of the terminal (SQLite via SQLAlchemy).

Every method opens its own session and runs in a single local transaction:
either all of its rows change or none do. Database failures surface as
LocalStoreError; nothing is retried or swallowed here.
"""
from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from datetime import timedelta
from typing import Any, Iterable

from sqlalchemy import create_engine, event, func, or_, select, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .models import (
    Base,
    CachedCustomer,
    CachedProduct,
    InvalidTransition,
    PendingSale,
    Setting,
    SyncLog,
    utcnow,
)

logger = logging.getLogger(__name__)

PRODUCTS_CACHED_AT = "products_cached_at"
CUSTOMERS_CACHED_AT = "customers_cached_at"


class LocalStoreError(Exception):
    """Raised when the local database cannot complete an operation."""


def _enable_sqlite_fk_and_wal(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=FULL")
    cursor.close()


class LocalStore:
    def __init__(self, path: str, *, max_sync_attempts: int = 5, echo: bool = False):
        self.path = path
        self.max_sync_attempts = max_sync_attempts
        url = "sqlite://" if path == ":memory:" else f"sqlite:///{path}"
        self.engine = create_engine(url, future=True, echo=echo)
        if path != ":memory:":
            event.listen(self.engine, "connect", _enable_sqlite_fk_and_wal)
        self._Session = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise LocalStoreError(f"Cannot open local store at {path}: {exc}") from exc

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _transaction(self):
        session = self._Session()
        try:
            with session.begin():
                yield session
        except SQLAlchemyError as exc:
            logger.exception("Local store transaction failed")
            raise LocalStoreError(str(exc)) from exc
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Catalog cache (full replace, never patched)
    # ------------------------------------------------------------------

    def cache_products(self, products: Iterable[dict]) -> int:
        now = utcnow()
        rows = [CachedProduct.from_api(p, now) for p in products]
        with self._transaction() as session:
            session.execute(delete(CachedProduct))
            session.add_all(rows)
            self._put_setting(session, PRODUCTS_CACHED_AT, now.isoformat())
        logger.info("Cached %d products", len(rows))
        return len(rows)

    def cache_customers(self, customers: Iterable[dict]) -> int:
        now = utcnow()
        rows = [CachedCustomer.from_api(c, now) for c in customers]
        with self._transaction() as session:
            session.execute(delete(CachedCustomer))
            session.add_all(rows)
            self._put_setting(session, CUSTOMERS_CACHED_AT, now.isoformat())
        logger.info("Cached %d customers", len(rows))
        return len(rows)

    def get_products(self) -> list[CachedProduct]:
        """Active products only."""
        with self._transaction() as session:
            stmt = select(CachedProduct).where(CachedProduct.is_active.is_(True)).order_by(CachedProduct.name)
            return list(session.scalars(stmt))

    def get_all_products(self) -> list[CachedProduct]:
        with self._transaction() as session:
            return list(session.scalars(select(CachedProduct).order_by(CachedProduct.name)))

    def get_product_by_id(self, product_id: int) -> CachedProduct | None:
        with self._transaction() as session:
            return session.get(CachedProduct, product_id)

    def get_product_by_barcode(self, barcode: str) -> CachedProduct | None:
        with self._transaction() as session:
            stmt = select(CachedProduct).where(CachedProduct.barcode == barcode).limit(1)
            return session.scalars(stmt).first()

    def search_products(self, query: str) -> list[CachedProduct]:
        """Case-insensitive substring match on name, SKU or barcode."""
        pattern = f"%{query.lower()}%"
        with self._transaction() as session:
            stmt = (
                select(CachedProduct)
                .where(or_(
                    func.lower(CachedProduct.name).like(pattern),
                    func.lower(CachedProduct.sku).like(pattern),
                    func.lower(CachedProduct.barcode).like(pattern),
                ))
                .order_by(CachedProduct.name)
            )
            return list(session.scalars(stmt))

    def get_customers(self) -> list[CachedCustomer]:
        with self._transaction() as session:
            stmt = select(CachedCustomer).order_by(CachedCustomer.last_name, CachedCustomer.first_name)
            return list(session.scalars(stmt))

    def get_customer_by_id(self, customer_id: int) -> CachedCustomer | None:
        with self._transaction() as session:
            return session.get(CachedCustomer, customer_id)

    def search_customer_by_phone(self, phone: str) -> CachedCustomer | None:
        with self._transaction() as session:
            stmt = select(CachedCustomer).where(CachedCustomer.phone == phone.strip()).limit(1)
            return session.scalars(stmt).first()

    # ------------------------------------------------------------------
    # Pending-sale queue
    # ------------------------------------------------------------------

    def save_pending_sale(self, sale: PendingSale) -> int:
        """
        Queue a sale, take its quantities out of the cached stock (never
        below zero) and log the local create, all in one transaction.
        """
        with self._transaction() as session:
            session.add(sale)
            session.flush()

            for item in sale.items:
                product = session.get(CachedProduct, item["product_id"])
                if product is not None:
                    product.stock_quantity = max(0, product.stock_quantity - item["quantity"])

            session.add(SyncLog(
                type="sale",
                action="create",
                local_id=sale.local_id,
                timestamp=utcnow(),
                success=True,
            ))
            sale_id = sale.id

        logger.info("Saved pending sale with local ID: %s", sale.local_id)
        return sale_id

    def get_pending_sales(self) -> list[PendingSale]:
        """Unsynced sales, oldest first."""
        with self._transaction() as session:
            stmt = (
                select(PendingSale)
                .where(PendingSale.synced.is_(False))
                .order_by(PendingSale.created_at.asc(), PendingSale.id.asc())
            )
            return list(session.scalars(stmt))

    def get_all_pending_sales(self) -> list[PendingSale]:
        with self._transaction() as session:
            stmt = select(PendingSale).order_by(PendingSale.created_at.asc(), PendingSale.id.asc())
            return list(session.scalars(stmt))

    def get_pending_sale(self, sale_id: int) -> PendingSale | None:
        with self._transaction() as session:
            return session.get(PendingSale, sale_id)

    def get_pending_sale_count(self) -> int:
        """Unsynced sales, abandoned ones included."""
        with self._transaction() as session:
            stmt = select(func.count()).select_from(PendingSale).where(PendingSale.synced.is_(False))
            return session.scalar(stmt)

    def _load_sale(self, session, sale_id: int) -> PendingSale:
        sale = session.get(PendingSale, sale_id)
        if sale is None:
            raise LocalStoreError(f"Pending sale {sale_id} not found")
        return sale

    def mark_sale_submitting(self, sale_id: int) -> PendingSale:
        with self._transaction() as session:
            sale = self._load_sale(session, sale_id)
            try:
                sale.begin_submit()
            except InvalidTransition as exc:
                raise LocalStoreError(str(exc)) from exc
            return sale

    def mark_sale_as_synced(self, sale_id: int, server_id: str) -> PendingSale:
        """Idempotent for the same server_id."""
        with self._transaction() as session:
            sale = self._load_sale(session, sale_id)
            try:
                sale.mark_synced(str(server_id), utcnow())
            except InvalidTransition as exc:
                raise LocalStoreError(str(exc)) from exc
            return sale

    def mark_sale_sync_failed(self, sale_id: int, error: str) -> PendingSale:
        with self._transaction() as session:
            sale = self._load_sale(session, sale_id)
            try:
                sale.mark_failed(error, utcnow(), self.max_sync_attempts)
            except InvalidTransition as exc:
                raise LocalStoreError(str(exc)) from exc
            return sale

    def delete_synced_sales(self) -> int:
        with self._transaction() as session:
            result = session.execute(delete(PendingSale).where(PendingSale.synced.is_(True)))
            return result.rowcount

    # ------------------------------------------------------------------
    # Sync log
    # ------------------------------------------------------------------

    def add_sync_log(
        self,
        *,
        type: str,
        action: str,
        local_id: str | None,
        success: bool,
        server_id: str | None = None,
        error: str | None = None,
    ) -> None:
        with self._transaction() as session:
            session.add(SyncLog(
                type=type,
                action=action,
                local_id=local_id,
                server_id=server_id,
                timestamp=utcnow(),
                success=success,
                error=error,
            ))

    def get_sync_logs(self, limit: int = 100) -> list[SyncLog]:
        """Newest first."""
        with self._transaction() as session:
            stmt = select(SyncLog).order_by(SyncLog.timestamp.desc(), SyncLog.id.desc()).limit(limit)
            return list(session.scalars(stmt))

    def clear_old_sync_logs(self, days_old: int = 7) -> int:
        cutoff = utcnow() - timedelta(days=days_old)
        with self._transaction() as session:
            result = session.execute(delete(SyncLog).where(SyncLog.timestamp < cutoff))
            return result.rowcount

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @staticmethod
    def _put_setting(session, key: str, value: Any) -> None:
        setting = session.get(Setting, key)
        if setting is None:
            session.add(Setting(key=key, value=value))
        else:
            setting.value = value

    def set_setting(self, key: str, value: Any) -> None:
        with self._transaction() as session:
            self._put_setting(session, key, value)

    def get_setting(self, key: str, default: Any = None) -> Any:
        with self._transaction() as session:
            setting = session.get(Setting, key)
            return default if setting is None else setting.value

    def delete_setting(self, key: str) -> None:
        with self._transaction() as session:
            session.execute(delete(Setting).where(Setting.key == key))

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def get_stats(self) -> dict:
        with self._transaction() as session:
            stats = {
                "products": session.scalar(select(func.count()).select_from(CachedProduct)),
                "customers": session.scalar(select(func.count()).select_from(CachedCustomer)),
                "pending_sales": session.scalar(
                    select(func.count()).select_from(PendingSale).where(PendingSale.synced.is_(False))
                ),
                "sync_logs": session.scalar(select(func.count()).select_from(SyncLog)),
            }
        stats["db_size"] = os.path.getsize(self.path) if os.path.exists(self.path) else None
        return stats

    def clear_all(self) -> None:
        with self._transaction() as session:
            for model in (CachedProduct, CachedCustomer, PendingSale, SyncLog, Setting):
                session.execute(delete(model))
        logger.info("All local data cleared")

    def export_data(self) -> dict:
        with self._transaction() as session:
            return {
                "products": [p.to_dict() for p in session.scalars(select(CachedProduct))],
                "customers": [c.to_dict() for c in session.scalars(select(CachedCustomer))],
                "pending_sales": [s.to_dict() for s in session.scalars(select(PendingSale))],
                "sync_logs": [log.to_dict() for log in session.scalars(select(SyncLog))],
            }
