# ojudge/models/contest_submission.py
from __future__ import annotations

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, true,
)
from sqlalchemy.orm import relationship

from ojudge.database import Base
from ojudge.utils import utcnow
from ojudge.verdicts import Verdict

PENALTY_MINUTES_PER_ATTEMPT = 20


class ContestSubmission(Base):
    """Contest entry wrapping the judged :class:`Submission`."""

    __tablename__ = "contest_submissions"

    id = Column(Integer, primary_key=True, index=True)
    contest_id = Column(Integer, ForeignKey("contests.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(64), nullable=False)
    problem_id = Column(Integer, ForeignKey("problems.id", ondelete="CASCADE"), nullable=False)
    submission_id = Column(
        Integer, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    attempt_number = Column(Integer, nullable=False)
    is_first_solve = Column(Boolean, nullable=False, default=False)
    points = Column(Integer, nullable=False, default=0)
    submitted_at = Column(DateTime, nullable=False, default=utcnow)

    submission = relationship("Submission", lazy="joined", innerjoin=True)

    __table_args__ = (
        UniqueConstraint(
            "contest_id", "user_id", "problem_id", "attempt_number",
            name="uq_contest_submission_attempt",
        ),
        # At most one first solve per (contest, problem).
        Index(
            "uq_contest_submission_first_solve",
            "contest_id", "problem_id",
            unique=True,
            sqlite_where=is_first_solve == true(),
            postgresql_where=is_first_solve == true(),
        ),
        Index("ix_contest_submissions_contest_problem", "contest_id", "problem_id"),
        Index("ix_contest_submissions_contest_time", "contest_id", "submitted_at"),
    )

    # Judged fields live on the wrapped submission.
    @property
    def verdict(self) -> str:
        return self.submission.verdict

    @property
    def status(self) -> Verdict:
        return self.submission.status

    @property
    def penalty(self) -> int:
        """Minutes of penalty carried by this entry (only accepted entries carry any)."""
        if self.status != Verdict.ACCEPTED:
            return 0
        return (self.attempt_number - 1) * PENALTY_MINUTES_PER_ATTEMPT

    def __repr__(self) -> str:
        return (
            f"<ContestSubmission id={self.id} contest={self.contest_id} user={self.user_id} "
            f"problem={self.problem_id} attempt={self.attempt_number}>"
        )


class AttemptCounter(Base):
    """Last attempt number handed out per (contest, user, problem)."""

    __tablename__ = "contest_attempt_counters"

    contest_id = Column(Integer, ForeignKey("contests.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(64), primary_key=True)
    problem_id = Column(Integer, ForeignKey("problems.id", ondelete="CASCADE"), primary_key=True)
    last_attempt = Column(Integer, nullable=False, default=0)
