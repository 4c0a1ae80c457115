# src/devgate/config/const.py
from __future__ import annotations

# Hard defaults, changed by developers in code/build only
API_BASE: str = "https://devgate.workers.dev"

REQUEST_TIMEOUT: float = 10.0
STATUS_TIMEOUT: float = 4.0

# (elapsed seconds bound, interval seconds); the last bound is open-ended
POLL_TIERS: tuple[tuple[float | None, float], ...] = (
    (30.0, 1.0),
    (120.0, 3.0),
    (None, 15.0),
)
POLL_BUDGET: float = 30 * 60.0

INTEGRITY_POLICY: str = "log-only"

STORE_FILENAME: str = "authorization.json"
STORE_FALLBACK_FILENAME: str = "authorization_fallback.json"
KEYRING_SERVICE: str = "devgate/activation"

# Android's well-known broken ANDROID_ID plus the usual blank machine-id values
PLACEHOLDER_MACHINE_IDS: frozenset[str] = frozenset(
    {
        "",
        "9774d56d682e549c",
        "0" * 32,
        "uninitialized",
    }
)
