"""Scheduling: clocks, periodic triggers and the digest scheduler."""

from src.scheduler.clock import Clock, SystemClock, VirtualClock
from src.scheduler.digest import DigestScheduler, DispatchResult
from src.scheduler.periodic import PeriodicTask, PipelineScheduler
from src.scheduler.selector import (
    CandidateSelector,
    RankedEvent,
    matches_profile,
    rank_candidates,
)
from src.scheduler.slots import DueSlot, due_slots, is_slot_due, parse_slot


__all__ = [
    "CandidateSelector",
    "Clock",
    "DigestScheduler",
    "DispatchResult",
    "DueSlot",
    "PeriodicTask",
    "PipelineScheduler",
    "RankedEvent",
    "SystemClock",
    "VirtualClock",
    "due_slots",
    "is_slot_due",
    "matches_profile",
    "parse_slot",
    "rank_candidates",
]
