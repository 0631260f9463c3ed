"""ORM models; importing the package registers every table with ``Base``."""

from ojudge.models.problem import Problem, TestCase
from ojudge.models.contest import Contest, ContestParticipant, ContestProblem
from ojudge.models.submission import Submission
from ojudge.models.contest_submission import AttemptCounter, ContestSubmission

__all__ = [
    "AttemptCounter",
    "Contest",
    "ContestParticipant",
    "ContestProblem",
    "ContestSubmission",
    "Problem",
    "Submission",
    "TestCase",
]
