# ojudge/models/submission.py
from __future__ import annotations

from typing import Optional

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from ojudge.database import Base
from ojudge.utils import utcnow
from ojudge.verdicts import FAILURE_VERDICT, Verdict, ensure_transition, is_terminal


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    problem_id = Column(Integer, ForeignKey("problems.id", ondelete="CASCADE"), nullable=False, index=True)
    language = Column(String(16), nullable=False)
    code = Column(Text, nullable=False)

    verdict = Column(String(32), nullable=False, default=Verdict.PENDING.value)
    execution_time = Column(Integer, nullable=False, default=0)  # ms
    memory_used = Column(Integer, nullable=False, default=0)
    test_cases_passed = Column(Integer, nullable=False, default=0)
    total_test_cases = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    compiler_output = Column(Text, nullable=True)
    # [{index, verdict, input, expected_output, actual_output, execution_time, error, visible}]
    test_case_results = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    judged_at = Column(DateTime, nullable=True)

    problem = relationship("Problem", lazy="selectin")

    __table_args__ = (
        Index("ix_submissions_user_problem", "user_id", "problem_id"),
        Index("ix_submissions_user_verdict", "user_id", "verdict"),
    )

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------
    @property
    def status(self) -> Verdict:
        return Verdict(self.verdict or Verdict.PENDING.value)

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    def mark_judging(self) -> None:
        self.verdict = ensure_transition(self.status, Verdict.JUDGING).value

    def mark_resolved(
        self,
        *,
        verdict: Verdict,
        test_cases_passed: int,
        total_test_cases: int,
        test_case_results: list[dict],
        execution_time: int = 0,
        memory_used: int = 0,
        error_message: Optional[str] = None,
        compiler_output: Optional[str] = None,
    ) -> None:
        """Fill in every result field together with the terminal verdict."""
        self.verdict = ensure_transition(self.status, verdict).value
        self.test_cases_passed = test_cases_passed
        self.total_test_cases = total_test_cases
        self.test_case_results = test_case_results
        self.execution_time = execution_time
        self.memory_used = memory_used
        self.error_message = error_message
        self.compiler_output = compiler_output
        self.judged_at = utcnow()

    def mark_failed(self, message: str) -> None:
        self.verdict = ensure_transition(self.status, FAILURE_VERDICT).value
        self.error_message = message
        self.judged_at = utcnow()

    def __repr__(self) -> str:
        return f"<Submission id={self.id} user={self.user_id} problem={self.problem_id} verdict={self.verdict}>"
