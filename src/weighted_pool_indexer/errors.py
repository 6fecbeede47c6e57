"""Exceptions raised by the aggregation engine."""

from __future__ import annotations

from .monitoring.logger import current_correlation_id


class IndexerError(RuntimeError):
    """Base class for indexing failures that should stop the current event."""


class MissingEntityError(IndexerError):
    """Raised when a required entity has not been written to the store yet.

    ``event_id`` is the correlation id of the event being processed, or ``"-"``
    outside of an event.
    """

    def __init__(self, kind: str, entity_id: str, *, context: str = "") -> None:
        self.kind = kind
        self.entity_id = entity_id
        self.event_id = current_correlation_id()
        message = f"{kind} {entity_id!r} does not exist"
        details = [part for part in (context, f"event {self.event_id}" if self.event_id != "-" else "") if part]
        if details:
            message = f"{message} ({', '.join(details)})"
        super().__init__(message)


__all__ = ["IndexerError", "MissingEntityError"]
