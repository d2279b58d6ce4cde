"""Fixed-window admission control keyed by client identity.

Two interchangeable strategies, chosen once from settings:

- ``DurableStrategy``: exact per-window counts in a shared ``CounterStore``.
  Counter keys are ``{identity}:{window_index}`` and expire shortly after
  their window, so a new window starts from zero without any reset step.
  Store failures fail open.
- ``ApproximateStrategy``: for deployments with no shared store. Never
  denies; ``remaining`` is a deterministic hash of identity and window, good
  enough for client backoff hints but not a security control.

Returns standard rate limit metadata for response headers:
- X-RateLimit-Limit
- X-RateLimit-Remaining
- X-RateLimit-Reset
"""

import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from chatgate.config.settings import get_settings
from chatgate.counters.factory import get_counter_store
from chatgate.counters.store import CounterStore
from chatgate.errors import CounterStoreUnavailable
from chatgate.logging.audit import get_audit_logger


@dataclass(frozen=True)
class RateLimitConfig:
    window_ms: int
    max_requests: int

    def __post_init__(self):
        if self.window_ms <= 0:
            raise ValueError("window_ms must be positive")
        if self.max_requests <= 0:
            raise ValueError("max_requests must be positive")


class EndpointClass(str, Enum):
    AUTH = "AUTH"
    AI = "AI"
    CHAT = "CHAT"
    IMAGE_GENERATION = "IMAGE_GENERATION"
    READ = "READ"
    WRITE = "WRITE"
    PUBLIC = "PUBLIC"


RATE_LIMITS: dict[EndpointClass, RateLimitConfig] = {
    # Brute-force protection on sign-in/sign-up
    EndpointClass.AUTH: RateLimitConfig(window_ms=15 * 60 * 1000, max_requests=5),
    EndpointClass.AI: RateLimitConfig(window_ms=60 * 1000, max_requests=20),
    EndpointClass.CHAT: RateLimitConfig(window_ms=60 * 1000, max_requests=30),
    EndpointClass.IMAGE_GENERATION: RateLimitConfig(window_ms=60 * 1000, max_requests=5),
    EndpointClass.READ: RateLimitConfig(window_ms=60 * 1000, max_requests=60),
    EndpointClass.WRITE: RateLimitConfig(window_ms=60 * 1000, max_requests=30),
    EndpointClass.PUBLIC: RateLimitConfig(window_ms=60 * 1000, max_requests=100),
}


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_time_ms: int  # epoch milliseconds
    retry_after: int  # seconds, 0 when allowed

    @property
    def reset_epoch_seconds(self) -> int:
        return math.ceil(self.reset_time_ms / 1000)


def _now_ms() -> int:
    return int(time.time() * 1000)


def window_hash(text: str) -> int:
    """Polynomial rolling hash (h * 31 + c) with signed 32-bit wraparound."""
    h = 0
    for char in text:
        h = (h * 31 + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


class AdmissionStrategy(ABC):

    @abstractmethod
    async def check(self, identity: str, config: RateLimitConfig) -> RateLimitResult:
        ...


class DurableStrategy(AdmissionStrategy):
    """Exact counting in a shared store with per-key atomic increment."""

    def __init__(self, store: CounterStore):
        self.store = store

    async def check(self, identity: str, config: RateLimitConfig) -> RateLimitResult:
        now = _now_ms()
        window_index = now // config.window_ms
        window_key = f"{identity}:{window_index}"
        reset_time = (window_index + 1) * config.window_ms

        try:
            count = await self.store.get_count(window_key)

            if count >= config.max_requests:
                return RateLimitResult(
                    allowed=False,
                    limit=config.max_requests,
                    remaining=0,
                    reset_time_ms=reset_time,
                    retry_after=math.ceil((reset_time - now) / 1000),
                )

            ttl_seconds = math.ceil(config.window_ms / 1000) + 1
            new_count = await self.store.increment(window_key, ttl_seconds)
        except CounterStoreUnavailable as e:
            get_audit_logger().error(
                "Rate limit store unavailable, failing open",
                extra={"audit_data": {"identity": identity, "error": str(e)}},
            )
            return RateLimitResult(
                allowed=True,
                limit=config.max_requests,
                remaining=config.max_requests - 1,
                reset_time_ms=now + config.window_ms,
                retry_after=0,
            )

        return RateLimitResult(
            allowed=True,
            limit=config.max_requests,
            remaining=max(0, config.max_requests - new_count),
            reset_time_ms=reset_time,
            retry_after=0,
        )


class ApproximateStrategy(AdmissionStrategy):
    """Advisory headers only. Identical inputs within a window give identical results."""

    async def check(self, identity: str, config: RateLimitConfig) -> RateLimitResult:
        now = _now_ms()
        window_start = (now // config.window_ms) * config.window_ms
        request_slot = abs(window_hash(f"{identity}:{window_start}")) % config.max_requests

        return RateLimitResult(
            allowed=True,
            limit=config.max_requests,
            remaining=max(0, config.max_requests - request_slot - 1),
            reset_time_ms=window_start + config.window_ms,
            retry_after=0,
        )


_strategy: AdmissionStrategy | None = None


def get_admission_strategy() -> AdmissionStrategy:
    """Get the strategy singleton, chosen from RATE_LIMIT_BACKEND on first use."""
    global _strategy
    if _strategy is not None:
        return _strategy

    store = get_counter_store()
    if store is None:
        _strategy = ApproximateStrategy()
    else:
        _strategy = DurableStrategy(store)

    get_audit_logger().info(
        "Admission strategy selected",
        extra={"audit_data": {
            "strategy": type(_strategy).__name__,
            "backend": get_settings().rate_limit_backend,
        }},
    )
    return _strategy


def reset_admission_strategy() -> None:
    """Forget the selected strategy. Useful for testing."""
    global _strategy
    _strategy = None


async def check_admission(
    identity: str,
    config: RateLimitConfig,
    strategy: AdmissionStrategy | None = None,
) -> RateLimitResult:
    """Decide whether a request from ``identity`` may proceed.

    Args:
        identity: ``{endpoint_prefix}:{client_ip}``.
        config: Quota for the endpoint class.
        strategy: Overrides the configured strategy.
    """
    if strategy is None:
        strategy = get_admission_strategy()
    return await strategy.check(identity, config)
