"""Test sessions: the attempt state machine, scoring, events, timers and resume."""

from .attempt import TestAttempt
from .attempt_store import AttemptSnapshot, AttemptStore
from .events import Event, EventBus, SessionEvent
from .machine import SessionState, TestSession
from .resume import ResumeController
from .scoring import ExperienceBreakdown, calculate_experience, compute_score, is_passed
from .timers import OverlayScheduler

__all__ = [
    "AttemptSnapshot",
    "AttemptStore",
    "Event",
    "EventBus",
    "ExperienceBreakdown",
    "OverlayScheduler",
    "ResumeController",
    "SessionEvent",
    "SessionState",
    "TestAttempt",
    "TestSession",
    "calculate_experience",
    "compute_score",
    "is_passed",
]
