"""Event handler exports."""

from .pool_events import PoolEventProcessor

__all__ = ["PoolEventProcessor"]
