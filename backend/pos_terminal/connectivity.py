# backend/pos_terminal/connectivity.py
"""Polls the backend health endpoint and feeds the result to the sync engine."""
from __future__ import annotations

import asyncio
import logging

from .api_client import PosApiClient
from .sync_engine import SyncEngine

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    def __init__(self, client: PosApiClient, engine: SyncEngine, *, interval: float = 10.0):
        self.client = client
        self.engine = engine
        self.interval = interval
        self._task: asyncio.Task | None = None

    async def check_once(self) -> bool:
        online = await self.client.health()
        self.engine.set_online(online)
        return online

    async def run(self) -> None:
        while True:
            try:
                await self.check_once()
            except Exception:
                logger.exception("Connectivity check failed")
                self.engine.set_online(False)
            await asyncio.sleep(self.interval)

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self.run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def __aenter__(self) -> "ConnectivityMonitor":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
