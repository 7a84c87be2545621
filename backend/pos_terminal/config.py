# backend/pos_terminal/config.py
from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class TerminalConfig:
    api_base_url: str = "http://127.0.0.1:5000"
    api_token: str | None = None

    # SQLite file holding the cached catalog and the pending-sale queue
    local_db: str = "pos_terminal.sqlite3"

    sync_interval: float = 30.0
    max_sync_attempts: int = 5
    submit_delay: float = 0.1
    log_retention_days: int = 7

    # Flat offline tax rate in basis points (825 = 8.25%)
    tax_rate_bps: int = 825

    request_timeout: float = 15.0
    health_interval: float = 10.0

    @classmethod
    def from_env(cls, environ=None) -> "TerminalConfig":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            api_base_url=env.get("POS_API_BASE_URL", defaults.api_base_url).rstrip("/"),
            api_token=env.get("POS_API_TOKEN") or None,
            local_db=env.get("POS_LOCAL_DB", defaults.local_db),
            sync_interval=float(env.get("POS_SYNC_INTERVAL", defaults.sync_interval)),
            max_sync_attempts=int(env.get("POS_MAX_SYNC_ATTEMPTS", defaults.max_sync_attempts)),
            submit_delay=float(env.get("POS_SUBMIT_DELAY", defaults.submit_delay)),
            log_retention_days=int(env.get("POS_LOG_RETENTION_DAYS", defaults.log_retention_days)),
            tax_rate_bps=int(env.get("POS_TAX_RATE_BPS", defaults.tax_rate_bps)),
            request_timeout=float(env.get("POS_REQUEST_TIMEOUT", defaults.request_timeout)),
            health_interval=float(env.get("POS_HEALTH_INTERVAL", defaults.health_interval)),
        )
