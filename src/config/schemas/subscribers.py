"""Subscriber import file schema."""

from pydantic import Field

from src.data_model import StrictBaseModel
from src.store.models import Subscriber


class SubscribersFile(StrictBaseModel):
    """Root of a subscribers.yaml import file.

    Attributes:
        subscribers: Profiles to create or update.
    """

    subscribers: list[Subscriber] = Field(default_factory=list)
