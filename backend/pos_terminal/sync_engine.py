# backend/pos_terminal/sync_engine.py
"""
Sync engine: drains the pending-sale queue to the server and refreshes the
local catalog cache.

Delivery is at-least-once. Every submission of a sale carries its local_id,
which the server uses to return the already-created sale instead of making
a second one.

The engine owns no globals. Construct it with a store and an API client,
then `await engine.start()` (or `async with engine:`) inside a running
event loop.
"""
from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
import uuid
from datetime import datetime
from typing import Callable

from .api_client import ApiError, PosApiClient
from .config import TerminalConfig
from .local_store import LocalStore
from .models import PendingSale, SaleSyncState, to_utc_z, utcnow
from .pricing import DEFAULT_TAX_RATE_BPS, compute_totals

logger = logging.getLogger(__name__)


class SyncStatus(str, enum.Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


class ConnectionStatus(str, enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"


@dataclasses.dataclass(frozen=True)
class SyncState:
    status: SyncStatus = SyncStatus.IDLE
    connection_status: ConnectionStatus = ConnectionStatus.OFFLINE
    pending_sales_count: int = 0
    last_sync_time: datetime | None = None
    last_error: str | None = None


class OfflineError(Exception):
    """Raised when an operation needs the server while the terminal is offline."""


SyncListener = Callable[[SyncState], None]


def build_sale_payload(sale: PendingSale) -> dict:
    """Server body for a pending sale. Items keep only what the server prices from."""
    return {
        "customer_id": sale.customer_id,
        "items": [
            {
                "product_id": item["product_id"],
                "quantity": item["quantity"],
                "price_cents": item["price_cents"],
                "discount_cents": item.get("discount_cents") or 0,
            }
            for item in sale.items
        ],
        "payment_method": sale.payment_method,
        "amount_paid_cents": sale.amount_paid_cents,
        "notes": sale.notes,
        "offline_created_at": to_utc_z(sale.created_at),
        "local_id": sale.local_id,
    }


class SyncEngine:
    def __init__(
        self,
        store: LocalStore,
        client: PosApiClient,
        *,
        online: bool = False,
        sync_interval: float = 30.0,
        submit_delay: float = 0.1,
        log_retention_days: int = 7,
        tax_rate_bps: int = DEFAULT_TAX_RATE_BPS,
    ):
        self.store = store
        self.client = client
        self.sync_interval = sync_interval
        self.submit_delay = submit_delay
        self.log_retention_days = log_retention_days
        self.tax_rate_bps = tax_rate_bps

        self.is_online = online
        self.is_syncing = False
        self._started = False
        self._timer_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        # local_ids with a request outstanding from this process
        self._in_flight: set[str] = set()
        self._listeners: list[SyncListener] = []
        self._state = SyncState(
            connection_status=ConnectionStatus.ONLINE if online else ConnectionStatus.OFFLINE,
            pending_sales_count=store.get_pending_sale_count(),
        )

    @classmethod
    def from_config(cls, config: TerminalConfig, store: LocalStore, client: PosApiClient, *, online: bool = False) -> "SyncEngine":
        return cls(
            store,
            client,
            online=online,
            sync_interval=config.sync_interval,
            submit_delay=config.submit_delay,
            log_retention_days=config.log_retention_days,
            tax_rate_bps=config.tax_rate_bps,
        )

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> SyncState:
        return self._state

    def subscribe(self, listener: SyncListener) -> Callable[[], None]:
        """Register a listener; it is called with the current state right away."""
        self._listeners.append(listener)
        listener(self._state)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _update_state(self, **changes) -> None:
        self._state = dataclasses.replace(self._state, **changes)
        for listener in list(self._listeners):
            listener(self._state)

    def refresh_pending_count(self) -> int:
        count = self.store.get_pending_sale_count()
        self._update_state(pending_sales_count=count)
        return count

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        self._started = True
        if self.is_online:
            self._start_auto_sync()

    async def stop(self) -> None:
        self._started = False
        self._stop_auto_sync()
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def __aenter__(self) -> "SyncEngine":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_for_background(self) -> None:
        """Wait for syncs triggered by set_online() or create_offline_sale()."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _start_auto_sync(self) -> None:
        if self._timer_task is not None:
            return
        self._timer_task = asyncio.get_running_loop().create_task(self._auto_sync_loop())
        logger.info("Auto-sync started (every %ss)", self.sync_interval)

    def _stop_auto_sync(self) -> None:
        if self._timer_task is None:
            return
        self._timer_task.cancel()
        self._timer_task = None
        logger.info("Auto-sync stopped")

    async def _auto_sync_loop(self) -> None:
        # Stopping the timer cancels only the sleep, never a running cycle
        while True:
            await asyncio.sleep(self.sync_interval)
            if self.is_online and not self.is_syncing:
                self._spawn(self.sync_all())

    def set_online(self, online: bool) -> None:
        """
        Connectivity change. Going online starts the timer and kicks off an
        immediate full sync; going offline stops the timer. Requests already
        in flight are left to fail on their own.
        """
        if online == self.is_online:
            return
        self.is_online = online
        logger.info("Network status: %s", "online" if online else "offline")
        self._update_state(connection_status=ConnectionStatus.ONLINE if online else ConnectionStatus.OFFLINE)

        if online:
            if self._started:
                self._start_auto_sync()
            self._spawn(self.sync_all())
        else:
            self._stop_auto_sync()

    # ------------------------------------------------------------------
    # Catalog cache
    # ------------------------------------------------------------------

    async def cache_products(self) -> int:
        if not self.is_online:
            logger.info("Cannot cache products: offline")
            return 0
        products = await self.client.list_products()
        return self.store.cache_products(products)

    async def cache_customers(self) -> int:
        if not self.is_online:
            logger.info("Cannot cache customers: offline")
            return 0
        customers = await self.client.list_customers()
        return self.store.cache_customers(customers)

    async def cache_all_data(self) -> None:
        await asyncio.gather(self.cache_products(), self.cache_customers())

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    async def create_offline_sale(
        self,
        *,
        items: list[dict],
        payment_method: str,
        amount_paid_cents: int,
        customer_id: int | None = None,
        notes: str | None = None,
        tax_rate_bps: int | None = None,
    ) -> PendingSale:
        """
        Price and queue a sale locally. When online, a background submission
        of this sale starts right away.
        """
        rate = self.tax_rate_bps if tax_rate_bps is None else tax_rate_bps
        totals = compute_totals(items, amount_paid_cents=amount_paid_cents, tax_rate_bps=rate)

        sale = PendingSale(
            local_id=str(uuid.uuid4()),
            customer_id=customer_id,
            items=totals.items,
            subtotal_cents=totals.subtotal_cents,
            tax_cents=totals.tax_cents,
            discount_cents=totals.discount_cents,
            total_cents=totals.total_cents,
            payment_method=payment_method,
            amount_paid_cents=amount_paid_cents,
            change_due_cents=totals.change_due_cents,
            notes=notes,
            created_at=utcnow(),
            sync_state=SaleSyncState.QUEUED.value,
            synced=False,
            sync_attempts=0,
        )
        self.store.save_pending_sale(sale)
        self.refresh_pending_count()

        if self.is_online:
            self._spawn(self._sync_one(sale))
        return sale

    async def _sync_one(self, sale: PendingSale) -> bool:
        ok = await self.sync_sale(sale)
        self.refresh_pending_count()
        return ok

    async def sync_sale(self, sale: PendingSale) -> bool:
        """
        Submit one sale. Returns True when the server accepted it.

        Network and HTTP failures are recorded on the sale and in the sync
        log; local store failures propagate.
        """
        if sale.id is None or sale.local_id in self._in_flight:
            return False

        # A SUBMITTING row that is not in flight here was left by an earlier run
        current = self.store.get_pending_sale(sale.id)
        if current is None or not current.is_submittable:
            return False

        self._in_flight.add(current.local_id)
        try:
            return await self._submit(current)
        finally:
            self._in_flight.discard(current.local_id)

    async def _submit(self, current: PendingSale) -> bool:
        self.store.mark_sale_submitting(current.id)
        try:
            server_sale = await self.client.create_sale(build_sale_payload(current))
        except ApiError as exc:
            error = str(exc) or "Unknown error"
            self.store.mark_sale_sync_failed(current.id, error)
            self.store.add_sync_log(
                type="sale", action="sync", local_id=current.local_id, success=False, error=error
            )
            logger.warning(
                "Failed to sync sale %s (%s): %s",
                current.local_id,
                "retryable" if exc.is_transient else "rejected",
                error,
            )
            return False

        server_id = str(server_sale["id"])
        self.store.mark_sale_as_synced(current.id, server_id)
        self.store.add_sync_log(
            type="sale", action="sync", local_id=current.local_id, server_id=server_id, success=True
        )
        logger.info("Sale synced: %s -> %s", current.local_id, server_id)
        return True

    async def sync_pending_sales(self) -> dict:
        """Submit unsynced sales oldest first. Returns {"synced": n, "failed": n}."""
        pending = self.store.get_pending_sales()
        if not pending:
            return {"synced": 0, "failed": 0}

        logger.info("Syncing %d pending sales...", len(pending))
        synced = failed = 0

        for sale in pending:
            if sale.local_id in self._in_flight:
                logger.info("Sale %s is already being submitted", sale.local_id)
                continue

            if not sale.is_submittable:
                logger.warning("Skipping sale %s: too many failed attempts", sale.local_id)
                failed += 1
                continue

            if await self.sync_sale(sale):
                synced += 1
            else:
                failed += 1

            await asyncio.sleep(self.submit_delay)

        self.refresh_pending_count()
        return {"synced": synced, "failed": failed}

    async def sync_all(self) -> dict | None:
        """
        Full cycle: pending sales, then cache refresh, then local cleanup.

        Single-flight: returns None without doing anything when offline or
        when a cycle is already running.
        """
        if not self.is_online or self.is_syncing:
            return None

        self.is_syncing = True
        self._update_state(status=SyncStatus.SYNCING)
        try:
            result = await self.sync_pending_sales()
            await self.cache_all_data()
            self.store.clear_old_sync_logs(self.log_retention_days)
            self.store.delete_synced_sales()

            self._update_state(status=SyncStatus.SUCCESS, last_sync_time=utcnow(), last_error=None)
            logger.info("Sync complete: %d synced, %d failed", result["synced"], result["failed"])
            return result
        except Exception as exc:
            logger.exception("Sync failed")
            self._update_state(status=SyncStatus.ERROR, last_error=str(exc) or "Sync failed")
            return None
        finally:
            self.is_syncing = False

    async def manual_sync(self) -> dict | None:
        if not self.is_online:
            raise OfflineError("Cannot sync while offline")
        return await self.sync_all()

    def get_stats(self) -> dict:
        return self.store.get_stats()
