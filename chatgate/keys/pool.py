"""Stateless upstream credential pool.

Workers may run in fresh, isolated execution contexts (Lambda, edge), so
nothing here is remembered between calls: the pool is re-read from the
environment on every selection and the choice of key is derived from the
wall clock alone.

- ``current_key`` rotates once per minute. Every worker looking at the same
  clock minute picks the same key, spreading load across the pool without
  any shared state.
- ``rotate_on_failure`` buckets by second (offset by one), so an immediate
  retry usually lands on a different key than ``current_key`` handed out.

Environment:
    OPENROUTER_API_KEY              primary key (first in the pool)
    OPENROUTER_API_KEY_1 .. _10     additional keys, ascending
"""

import os
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from chatgate.errors import NoCredentialsConfigured
from chatgate.logging.audit import get_audit_logger

PRIMARY_ENV_VAR = "OPENROUTER_API_KEY"
MAX_INDEXED_KEYS = 10

SELECTION_BUCKET_MS = 60_000
ROTATION_BUCKET_MS = 1_000

_PROVIDER_PREFIX = "sk-or-"
_GENERIC_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]{20,100}$")

_initialized = False


@dataclass(frozen=True)
class KeySelection:
    key: str
    index: int

    def __repr__(self) -> str:
        return f"KeySelection(key='***', index={self.index})"


@dataclass(frozen=True)
class RotationStatus:
    total_keys: int
    current_index: int | None  # None when the pool is empty
    failed_count: int
    last_window_start_ms: int

    @property
    def last_reset(self) -> str:
        """Start of the current selection bucket as ISO-8601 UTC."""
        started = datetime.fromtimestamp(self.last_window_start_ms / 1000, tz=timezone.utc)
        return started.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _usable(value: str | None) -> str | None:
    if not value:
        return None
    value = value.strip()
    if not value or "placeholder" in value:
        return None
    return value


def load_credential_pool() -> list[str]:
    """Read the credential pool from the environment.

    Order is stable: primary key first, then indexed keys ascending.
    Exact duplicates keep their first position.
    """
    candidates = [os.environ.get(PRIMARY_ENV_VAR)]
    candidates += [
        os.environ.get(f"{PRIMARY_ENV_VAR}_{i}") for i in range(1, MAX_INDEXED_KEYS + 1)
    ]

    pool: list[str] = []
    for candidate in candidates:
        key = _usable(candidate)
        if key is not None and key not in pool:
            pool.append(key)
    return pool


def _require_pool() -> list[str]:
    pool = load_credential_pool()
    if not pool:
        raise NoCredentialsConfigured()
    return pool


def current_key() -> KeySelection:
    """Pick the key for this clock minute.

    Raises:
        NoCredentialsConfigured: the pool is empty.
    """
    pool = _require_pool()
    index = (_now_ms() // SELECTION_BUCKET_MS) % len(pool)
    return KeySelection(key=pool[index], index=index)


def rotate_on_failure() -> str:
    """Pick a replacement key after an upstream failure.

    Raises:
        NoCredentialsConfigured: the pool is empty.
    """
    pool = _require_pool()
    index = (_now_ms() // ROTATION_BUCKET_MS + 1) % len(pool)
    return pool[index]


def validate_key_format(candidate) -> bool:
    """Sanity-check a configured key. Never used for authorization."""
    if not candidate or not isinstance(candidate, str):
        return False
    if candidate.startswith(_PROVIDER_PREFIX):
        return 20 <= len(candidate) <= 100
    return _GENERIC_KEY_PATTERN.match(candidate) is not None


def rotation_status() -> RotationStatus:
    """Counts and indices only. Safe for a public monitoring endpoint."""
    pool = load_credential_pool()
    bucket = _now_ms() // SELECTION_BUCKET_MS
    return RotationStatus(
        total_keys=len(pool),
        current_index=bucket % len(pool) if pool else None,
        failed_count=0,  # not tracked without shared state
        last_window_start_ms=bucket * SELECTION_BUCKET_MS,
    )


def initialize() -> int:
    """Validate the pool once at process startup. Safe to call repeatedly.

    Returns the pool size.
    """
    global _initialized
    pool = load_credential_pool()
    if _initialized:
        return len(pool)

    logger = get_audit_logger()
    if not pool:
        logger.warning(
            "No upstream API keys configured",
            extra={"audit_data": {
                "expected_env": f"{PRIMARY_ENV_VAR} or {PRIMARY_ENV_VAR}_1..{MAX_INDEXED_KEYS}",
            }},
        )
    else:
        logger.info("Upstream API keys loaded", extra={"audit_data": {"pool_size": len(pool)}})
        for position, key in enumerate(pool):
            if not validate_key_format(key):
                logger.warning(
                    "Upstream API key has unexpected format",
                    extra={"audit_data": {"pool_position": position}},
                )

    _initialized = True
    return len(pool)
