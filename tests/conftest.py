import asyncio
import sys
from datetime import timedelta
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ojudge.database import Base, build_session_factory  # noqa: E402
from ojudge.models import (  # noqa: E402
    Contest,
    ContestParticipant,
    ContestProblem,
    Problem,
    TestCase,
)
from ojudge.services.judge_client import JudgeResult  # noqa: E402
from ojudge.utils import utcnow  # noqa: E402
from ojudge.verdicts import Verdict  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine(tmp_path):
    db_file = tmp_path / "judge.db"
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{db_file}", connect_args={"timeout": 30}
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


class FakeJudgeClient:
    """Stands in for the HTTP judge: returns ``result`` or raises ``error``."""

    def __init__(self, result=None, error=None, delay: float = 0.0):
        self.result = result
        self.error = error
        self.delay = delay
        self.requests = []

    async def judge(self, request):
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


def accepted_result(total: int = 3) -> JudgeResult:
    return JudgeResult(
        verdict=Verdict.ACCEPTED,
        passed_tests=total,
        total_tests=total,
        test_results=[
            {
                "verdict": "Accepted",
                "input": f"in{i}",
                "expectedOutput": f"out{i}",
                "actualOutput": f"out{i}",
                "executionTime": 12,
            }
            for i in range(total)
        ],
        execution_time=12,
        memory_used=1024,
    )


def wrong_answer_result(total: int = 3) -> JudgeResult:
    return JudgeResult(
        verdict=Verdict.WRONG_ANSWER,
        passed_tests=total - 1,
        total_tests=total,
        test_results=[
            {"verdict": "Accepted" if i else "Wrong Answer", "actualOutput": "x", "executionTime": 5}
            for i in range(total)
        ],
        execution_time=5,
    )


async def create_problem(session, *, author_id="setter", visible=(True, False, False)) -> Problem:
    problem = Problem(
        title="A + B",
        author_id=author_id,
        time_limit=1000,
        memory_limit=128,
        testcases=[
            TestCase(position=i, input=f"in{i}", output=f"out{i}", visible=flag)
            for i, flag in enumerate(visible)
        ],
    )
    session.add(problem)
    await session.commit()
    return problem


async def create_contest(
    session,
    problem: Problem,
    *,
    participants=("alice", "bob"),
    starts_in: timedelta = timedelta(hours=-1),
    duration: timedelta = timedelta(hours=2),
    points: int = 100,
    **fields,
) -> Contest:
    start = utcnow() + starts_in
    contest = Contest(
        title="Round 1",
        start_time=start,
        end_time=start + duration,
        problems=[ContestProblem(problem_id=problem.id, points=points)],
        participants=[ContestParticipant(user_id=u) for u in participants],
        **fields,
    )
    session.add(contest)
    await session.commit()
    return contest
