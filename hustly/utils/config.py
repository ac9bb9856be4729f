"""Inventory layer configuration with environment variable support."""

import os


def _env_float(name: str, default: str) -> float:
    return float(os.environ.get(name, default))


def _env_int(name: str, default: str) -> int:
    return int(os.environ.get(name, default))


class InventoryConfig:
    """Centralized inventory configuration."""

    # Query executor
    QUERY_TIMEOUT_SECONDS = _env_float("INVENTORY_QUERY_TIMEOUT_SECONDS", "3")
    MAX_QUERY_LIMIT = _env_int("INVENTORY_MAX_QUERY_LIMIT", "100")
    DEFAULT_LIMIT = _env_int("INVENTORY_DEFAULT_LIMIT", "10")

    # Cache
    CACHE_TTL_SECONDS = _env_float("INVENTORY_CACHE_TTL_SECONDS", "30")
    CACHE_STALE_SECONDS = _env_float("INVENTORY_CACHE_STALE_SECONDS", "600")
    CACHE_MAX_ENTRIES = _env_int("INVENTORY_CACHE_MAX_ENTRIES", "50")

    # Degradation controller
    DEBOUNCE_SECONDS = _env_float("INVENTORY_DEBOUNCE_SECONDS", "3")
    REFETCH_GUARD_SECONDS = _env_float("INVENTORY_REFETCH_GUARD_SECONDS", "0.5")
    MAX_TIMEOUT_RETRIES = _env_int("INVENTORY_MAX_TIMEOUT_RETRIES", "1")
    RETRY_BACKOFF_SECONDS = _env_float("INVENTORY_RETRY_BACKOFF_SECONDS", "2")

    # Mutations and health probe
    MUTATION_TIMEOUT_SECONDS = _env_float("INVENTORY_MUTATION_TIMEOUT_SECONDS", "8")
    DB_HEALTH_TIMEOUT_SECONDS = _env_float("DB_HEALTH_TIMEOUT_SECONDS", "3")

    @classmethod
    def clamp_timeout_retries(cls, retries: int) -> int:
        """Automatic retries are capped at 1-2 attempts."""
        return max(1, min(2, retries))
