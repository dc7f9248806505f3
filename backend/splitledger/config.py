from __future__ import annotations

import os


class Config:
    DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
    # READ COMMITTED is enough: balances are only ever changed by relative
    # increments and edited records are locked with SELECT ... FOR UPDATE.
    LEDGER_ISOLATION_LEVEL = os.getenv("LEDGER_ISOLATION_LEVEL", "READ COMMITTED")
    # Set by the authentication layer in front of this service.
    AUTH_USER_HEADER = os.getenv("AUTH_USER_HEADER", "X-User-Id")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
