"""Submission verdicts and the transitions allowed between them.

A submission is created ``Pending``, moves to ``Judging`` when it is handed to
the judge and leaves ``Judging`` exactly once, for one of the six terminal
verdicts. Terminal records never change verdict again.
"""

from __future__ import annotations

import enum
import re
from typing import Optional


class Verdict(str, enum.Enum):
    PENDING = "Pending"
    JUDGING = "Judging"
    ACCEPTED = "Accepted"
    WRONG_ANSWER = "Wrong Answer"
    TIME_LIMIT_EXCEEDED = "Time Limit Exceeded"
    MEMORY_LIMIT_EXCEEDED = "Memory Limit Exceeded"
    RUNTIME_ERROR = "Runtime Error"
    COMPILATION_ERROR = "Compilation Error"


TRANSIENT_VERDICTS = frozenset({Verdict.PENDING, Verdict.JUDGING})
TERMINAL_VERDICTS = frozenset(set(Verdict) - TRANSIENT_VERDICTS)

# Judge failures (timeouts, transport errors, garbage responses) all land here.
FAILURE_VERDICT = Verdict.RUNTIME_ERROR


class InvalidTransition(Exception):
    """Raised when a submission is asked to move to a state it cannot reach."""

    def __init__(self, current: Verdict, target: Verdict) -> None:
        super().__init__(f"Cannot move submission from {current.value!r} to {target.value!r}")
        self.current = current
        self.target = target


def is_terminal(verdict: Verdict | str) -> bool:
    return Verdict(verdict) in TERMINAL_VERDICTS


def can_transition(current: Verdict | str, target: Verdict | str) -> bool:
    current, target = Verdict(current), Verdict(target)
    if current == Verdict.PENDING:
        return target == Verdict.JUDGING or target in TERMINAL_VERDICTS
    if current == Verdict.JUDGING:
        return target in TERMINAL_VERDICTS
    return False


def ensure_transition(current: Verdict | str, target: Verdict | str) -> Verdict:
    if not can_transition(current, target):
        raise InvalidTransition(Verdict(current), Verdict(target))
    return Verdict(target)


_ABBREVIATIONS = {
    "ac": Verdict.ACCEPTED,
    "wa": Verdict.WRONG_ANSWER,
    "tle": Verdict.TIME_LIMIT_EXCEEDED,
    "mle": Verdict.MEMORY_LIMIT_EXCEEDED,
    "re": Verdict.RUNTIME_ERROR,
    "rte": Verdict.RUNTIME_ERROR,
    "ce": Verdict.COMPILATION_ERROR,
}
_BY_KEY = {re.sub(r"[\s_\-]+", "", v.value.lower()): v for v in TERMINAL_VERDICTS}


def parse_judge_verdict(raw: object) -> Optional[Verdict]:
    """Map a verdict string reported by the judge to a terminal verdict.

    Returns ``None`` for anything unrecognisable, including the transient
    states, which the judge has no business reporting.
    """
    if not isinstance(raw, str):
        return None
    key = re.sub(r"[\s_\-]+", "", raw.strip().lower())
    if not key:
        return None
    return _BY_KEY.get(key) or _ABBREVIATIONS.get(key)


__all__ = [
    "FAILURE_VERDICT",
    "InvalidTransition",
    "TERMINAL_VERDICTS",
    "TRANSIENT_VERDICTS",
    "Verdict",
    "can_transition",
    "ensure_transition",
    "is_terminal",
    "parse_judge_verdict",
]
