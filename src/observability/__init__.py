"""Observability helpers (structured logging)."""

from src.observability.logging import (
    bind_cycle_context,
    clear_cycle_context,
    configure_logging,
)


__all__ = [
    "bind_cycle_context",
    "clear_cycle_context",
    "configure_logging",
]
