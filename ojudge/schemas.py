# ojudge/schemas.py
# ------------------------------------------------------------
# Pydantic v2 schemas, organized by domain
# ------------------------------------------------------------
from datetime import datetime
import re
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


_CONTROL_CHAR_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")

MAX_CODE_LENGTH = 65536


def _strip_control_chars(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    return _CONTROL_CHAR_RE.sub("", value)


# ============================================================
# Problems
# ============================================================

class TestCaseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    __test__ = False

    id: int
    position: int
    input: str
    output: str
    visible: bool


class ProblemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    author_id: Optional[str] = None
    time_limit: int
    memory_limit: int
    testcases: List[TestCaseRead] = Field(default_factory=list)


# ============================================================
# Submissions
# ============================================================

class SubmissionCreate(BaseModel):
    problem_id: int
    # Checked against the supported languages by the dispatcher.
    language: str = Field(min_length=1, max_length=16)
    code: str = Field(max_length=MAX_CODE_LENGTH)

    @field_validator("code", mode="before")
    @classmethod
    def _clean_code(cls, value: Any) -> Any:
        return _strip_control_chars(value)


class ContestSubmissionCreate(BaseModel):
    language: str = Field(min_length=1, max_length=16)
    code: str = Field(max_length=MAX_CODE_LENGTH)

    @field_validator("code", mode="before")
    @classmethod
    def _clean_code(cls, value: Any) -> Any:
        return _strip_control_chars(value)


class TestCaseResultRead(BaseModel):
    __test__ = False

    index: int
    verdict: str
    input: Optional[str] = None
    expected_output: Optional[str] = None
    actual_output: Optional[str] = None
    execution_time: int = 0
    error: Optional[str] = None
    visible: bool = False


class SubmissionSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    problem_id: int
    language: str
    verdict: str
    execution_time: int
    memory_used: int
    test_cases_passed: int
    total_test_cases: int
    created_at: datetime
    judged_at: Optional[datetime] = None


class SubmissionRead(SubmissionSummary):
    user_id: str
    code: str
    error_message: Optional[str] = None
    compiler_output: Optional[str] = None
    test_case_results: List[TestCaseResultRead] = Field(default_factory=list)


class SubmissionPage(BaseModel):
    items: List[SubmissionSummary]
    total: int
    page: int
    limit: int
    pages: int


# ============================================================
# Contests
# ============================================================

class ContestSubmissionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    contest_id: int
    user_id: str
    problem_id: int
    submission_id: int
    attempt_number: int
    is_first_solve: bool
    points: int
    penalty: int
    verdict: str
    submitted_at: datetime


class ContestSubmissionResult(ContestSubmissionRead):
    submission: SubmissionRead


class RegistrationRead(BaseModel):
    contest_id: int
    user_id: str
    registered: bool
    participants: int


class SolvedProblemRead(BaseModel):
    problem_id: int
    solved_at: datetime
    attempts: int
    points: int
    is_first_solve: bool


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    solved_count: int
    total_penalty: int
    score: int
    earliest_solve_at: Optional[datetime] = None
    solved_problems: List[SolvedProblemRead] = Field(default_factory=list)


class ContestHeader(BaseModel):
    id: int
    title: str
    start_time: datetime
    end_time: datetime
    status: str


class LeaderboardRead(BaseModel):
    contest: ContestHeader
    leaderboard: List[LeaderboardEntry]


class ContestProblemRead(BaseModel):
    problem_id: int
    title: Optional[str] = None
    points: int
    order: int


class ContestSummary(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: str
    is_public: bool
    max_participants: Optional[int] = None
    participants: int
    problems: List[ContestProblemRead] = Field(default_factory=list)


class ContestPage(BaseModel):
    items: List[ContestSummary]
    total: int
    page: int
    limit: int
    pages: int


class ContestDetail(ContestSummary):
    rank: Optional[int] = None
    score: int = 0
    solved_count: int = 0
    total_penalty: int = 0
    solved_problems: List[SolvedProblemRead] = Field(default_factory=list)
    my_submissions: List[ContestSubmissionRead] = Field(default_factory=list)


class ContestHistoryItem(ContestSummary):
    rank: int
    score: int
    solved_count: int
    total_penalty: int


class ContestHistoryPage(BaseModel):
    items: List[ContestHistoryItem]
    total: int
    page: int
    limit: int
    pages: int


# ============================================================
# Statistics
# ============================================================

class VerdictCount(BaseModel):
    verdict: str
    count: int


class UserStatsRead(BaseModel):
    total_submissions: int
    accepted_submissions: int
    acceptance_rate: float
    solved_problems: int
    verdict_breakdown: List[VerdictCount] = Field(default_factory=list)
