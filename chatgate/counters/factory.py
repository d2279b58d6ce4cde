"""Factory for counter store backends."""

from chatgate.config.settings import get_settings
from chatgate.counters.store import CounterStore, MemoryCounterStore

_store: CounterStore | None = None


def get_counter_store() -> CounterStore | None:
    """Get the counter store singleton. Returns None if no store configured."""
    global _store
    if _store is not None:
        return _store

    settings = get_settings()
    backend = settings.rate_limit_backend

    if backend == "memory":
        _store = MemoryCounterStore()
        return _store

    if backend == "dynamodb":
        # Lazy import to avoid boto3 dependency when not needed
        from chatgate.counters.dynamodb_store import DynamoDBCounterStore
        _store = DynamoDBCounterStore(
            table_name=settings.rate_limit_table_name,
            region=settings.aws_region,
        )
        return _store

    return None  # "approximate": no shared store
