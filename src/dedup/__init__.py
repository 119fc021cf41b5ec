"""Ingestion-time deduplication."""

from src.dedup.deduper import Deduplicator


__all__ = ["Deduplicator"]
