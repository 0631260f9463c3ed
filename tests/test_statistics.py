from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from conftest import create_contest, create_problem
from ojudge.models.submission import Submission
from ojudge.services.errors import NotFound, StatisticsUnavailable
from ojudge.services.statistics import (
    acceptance_rate,
    build_leaderboard,
    contest_leaderboard,
    user_statistics,
)
from ojudge.verdicts import Verdict

T0 = datetime(2024, 5, 1, 12, 0, 0)


def _entry(id, user, problem, attempt, verdict, minutes, points=100, first=False):
    return SimpleNamespace(
        id=id,
        user_id=user,
        problem_id=problem,
        attempt_number=attempt,
        status=Verdict(verdict),
        submitted_at=T0 + timedelta(minutes=minutes),
        points=points,
        is_first_solve=first,
    )


def test_acceptance_rate_rounding():
    assert acceptance_rate(0, 0) == 0
    assert acceptance_rate(3, 10) == 30.0
    assert acceptance_rate(1, 3) == 33.33


@pytest.mark.anyio("asyncio")
async def test_user_statistics_counts_terminal_submissions(session_factory):
    async with session_factory() as session:
        problem = await create_problem(session)
        other = await create_problem(session)
        verdicts = (
            [Verdict.ACCEPTED] * 3
            + [Verdict.WRONG_ANSWER] * 5
            + [Verdict.TIME_LIMIT_EXCEEDED] * 2
        )
        for i, verdict in enumerate(verdicts):
            session.add(
                Submission(
                    user_id="alice",
                    problem_id=problem.id if i else other.id,
                    language="c",
                    code="x",
                    verdict=verdict.value,
                )
            )
        # Still judging: not counted.
        session.add(Submission(user_id="alice", problem_id=problem.id, language="c", code="x", verdict="Judging"))
        session.add(Submission(user_id="bob", problem_id=problem.id, language="c", code="x", verdict="Accepted"))
        await session.commit()

        stats = await user_statistics(session, "alice")
        empty = await user_statistics(session, "nobody")

    assert stats["total_submissions"] == 10
    assert stats["accepted_submissions"] == 3
    assert stats["acceptance_rate"] == 30.0
    assert stats["solved_problems"] == 2
    assert {b["verdict"]: b["count"] for b in stats["verdict_breakdown"]} == {
        "Accepted": 3,
        "Wrong Answer": 5,
        "Time Limit Exceeded": 2,
    }
    assert empty["total_submissions"] == 0
    assert empty["acceptance_rate"] == 0
    assert empty["verdict_breakdown"] == []


def test_leaderboard_ordering_and_shared_ranks():
    entries = [
        # alice: two problems, one wrong try first -> penalty 20
        _entry(1, "alice", 1, 1, "Wrong Answer", 1),
        _entry(2, "alice", 1, 2, "Accepted", 5),
        _entry(3, "alice", 2, 1, "Accepted", 9),
        # bob: two problems, no penalty
        _entry(4, "bob", 1, 1, "Accepted", 7, first=True),
        _entry(5, "bob", 2, 1, "Accepted", 8, first=True),
        # bob re-submits an already solved problem: ignored
        _entry(6, "bob", 2, 2, "Accepted", 30),
        # carol and dave: one problem each, same penalty and time -> shared rank
        _entry(7, "carol", 1, 1, "Accepted", 10),
        _entry(8, "dave", 1, 1, "Accepted", 10),
    ]
    board = build_leaderboard(["alice", "bob", "carol", "dave", "erin"], entries)

    assert [(r["user_id"], r["rank"]) for r in board] == [
        ("bob", 1),
        ("alice", 2),
        ("carol", 3),
        ("dave", 3),
        ("erin", 5),
    ]
    bob = board[0]
    assert bob["solved_count"] == 2
    assert bob["total_penalty"] == 0
    assert bob["score"] == 200
    assert bob["earliest_solve_at"] == T0 + timedelta(minutes=7)
    assert [p["attempts"] for p in bob["solved_problems"]] == [1, 1]
    assert board[1]["total_penalty"] == 20
    assert board[-1]["solved_count"] == 0
    assert board[-1]["earliest_solve_at"] is None


def test_earliest_solve_breaks_ties():
    entries = [
        _entry(1, "alice", 1, 1, "Accepted", 20),
        _entry(2, "bob", 1, 1, "Accepted", 10),
    ]
    board = build_leaderboard(["alice", "bob"], entries)
    assert [r["user_id"] for r in board] == ["bob", "alice"]
    assert [r["rank"] for r in board] == [1, 2]


@pytest.mark.anyio("asyncio")
async def test_contest_leaderboard_includes_every_participant(session_factory):
    async with session_factory() as session:
        problem = await create_problem(session)
        contest = await create_contest(session, problem, participants=("alice", "bob"))

        result = await contest_leaderboard(session, contest.id)
        with pytest.raises(NotFound):
            await contest_leaderboard(session, contest.id + 1)

    assert result["contest"]["status"] == "ongoing"
    assert sorted(r["user_id"] for r in result["leaderboard"]) == ["alice", "bob"]
    assert all(r["rank"] == 1 for r in result["leaderboard"])


@pytest.mark.anyio("asyncio")
async def test_store_failure_is_reported_as_unavailable():
    class BrokenSession:
        async def execute(self, stmt):
            raise OperationalError("SELECT", {}, Exception("disk I/O error"))

    with pytest.raises(StatisticsUnavailable):
        await user_statistics(BrokenSession(), "alice")
    with pytest.raises(StatisticsUnavailable):
        await contest_leaderboard(BrokenSession(), 1)
