# ojudge/models/contest.py
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from ojudge.database import Base
from ojudge.utils import as_naive_utc, utcnow


class Contest(Base):
    __tablename__ = "contests"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False, index=True)
    created_by = Column(String(64), nullable=True)
    is_public = Column(Boolean, nullable=False, default=True)
    max_participants = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    problems = relationship(
        "ContestProblem",
        back_populates="contest",
        cascade="all, delete-orphan",
        order_by="ContestProblem.order",
        lazy="selectin",
    )
    participants = relationship(
        "ContestParticipant",
        back_populates="contest",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def is_active(self, *, at: Optional[datetime] = None) -> bool:
        pivot = as_naive_utc(at) or utcnow()
        return as_naive_utc(self.start_time) <= pivot <= as_naive_utc(self.end_time)

    def has_started(self, *, at: Optional[datetime] = None) -> bool:
        pivot = as_naive_utc(at) or utcnow()
        return pivot >= as_naive_utc(self.start_time)

    def status(self, *, at: Optional[datetime] = None) -> str:
        pivot = as_naive_utc(at) or utcnow()
        if pivot < as_naive_utc(self.start_time):
            return "upcoming"
        if pivot <= as_naive_utc(self.end_time):
            return "ongoing"
        return "ended"

    def problem_entry(self, problem_id: int) -> Optional["ContestProblem"]:
        return next((p for p in self.problems if p.problem_id == problem_id), None)

    def is_participant(self, user_id: str) -> bool:
        return any(p.user_id == user_id for p in self.participants)


class ContestProblem(Base):
    __tablename__ = "contest_problems"

    contest_id = Column(Integer, ForeignKey("contests.id", ondelete="CASCADE"), primary_key=True)
    problem_id = Column(Integer, ForeignKey("problems.id", ondelete="CASCADE"), primary_key=True)
    points = Column(Integer, nullable=False, default=100)
    order = Column(Integer, nullable=False, default=0)
    # Bumped inside every first-solve decision; the UPDATE doubles as the row lock
    # that serializes those decisions per (contest, problem).
    solve_version = Column(Integer, nullable=False, default=0)

    contest = relationship("Contest", back_populates="problems")
    problem = relationship("Problem", lazy="selectin")


class ContestParticipant(Base):
    __tablename__ = "contest_participants"
    __table_args__ = (UniqueConstraint("contest_id", "user_id", name="uq_contest_participant"),)

    id = Column(Integer, primary_key=True)
    contest_id = Column(Integer, ForeignKey("contests.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    registered_at = Column(DateTime, nullable=False, default=utcnow)

    contest = relationship("Contest", back_populates="participants")
