# ojudge/models/problem.py
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ojudge.database import Base
from ojudge.utils import utcnow


class Problem(Base):
    """Catalog entry. Authoring lives elsewhere; judging only reads these rows."""

    __tablename__ = "problems"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    author_id = Column(String(64), nullable=True, index=True)
    time_limit = Column(Integer, nullable=False, default=2000)   # ms
    memory_limit = Column(Integer, nullable=False, default=256)  # MB
    created_at = Column(DateTime, nullable=False, default=utcnow)

    testcases = relationship(
        "TestCase",
        back_populates="problem",
        cascade="all, delete-orphan",
        order_by="TestCase.position",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Problem id={self.id} title={self.title!r}>"


class TestCase(Base):
    __tablename__ = "problem_testcases"
    __test__ = False  # not a pytest class

    id = Column(Integer, primary_key=True)
    problem_id = Column(Integer, ForeignKey("problems.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    input = Column(Text, nullable=False)
    output = Column(Text, nullable=False)
    visible = Column(Boolean, nullable=False, default=False)

    problem = relationship("Problem", back_populates="testcases")
