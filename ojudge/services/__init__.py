"""Service layer: judging, contest scoring and statistics."""

from .dispatcher import SubmissionDispatcher, get_dispatcher
from .events import InMemoryEventBus, get_event_bus
from .judge_client import JudgeClient, get_judge_client
from .scoring import ContestScoringEngine, ScoringPolicy, get_scoring_engine

__all__ = [
    "ContestScoringEngine",
    "InMemoryEventBus",
    "JudgeClient",
    "ScoringPolicy",
    "SubmissionDispatcher",
    "get_dispatcher",
    "get_event_bus",
    "get_judge_client",
    "get_scoring_engine",
]
