"""Shared data model primitives."""

from src.data_model.base import StrictBaseModel, as_utc


__all__ = ["StrictBaseModel", "as_utc"]
