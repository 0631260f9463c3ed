"""Read-only aggregates over the submission history."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ojudge.models.contest import Contest
from ojudge.models.contest_submission import PENALTY_MINUTES_PER_ATTEMPT, ContestSubmission
from ojudge.models.submission import Submission
from ojudge.services.errors import NotFound, StatisticsUnavailable
from ojudge.verdicts import TERMINAL_VERDICTS, Verdict

_LOGGER = logging.getLogger(__name__)

_TERMINAL_VALUES = sorted(v.value for v in TERMINAL_VERDICTS)


def acceptance_rate(accepted: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(accepted / total * 100, 2)


async def user_statistics(db: AsyncSession, user_id: str) -> dict[str, Any]:
    """Verdict breakdown, acceptance rate and solved count for one user."""
    try:
        rows = (
            await db.execute(
                select(Submission.verdict, func.count(Submission.id))
                .where(Submission.user_id == user_id, Submission.verdict.in_(_TERMINAL_VALUES))
                .group_by(Submission.verdict)
            )
        ).all()
        solved = (
            await db.execute(
                select(func.count(func.distinct(Submission.problem_id))).where(
                    Submission.user_id == user_id,
                    Submission.verdict == Verdict.ACCEPTED.value,
                )
            )
        ).scalar_one()
    except SQLAlchemyError as exc:
        _LOGGER.exception("Statistics query failed for user %s", user_id)
        raise StatisticsUnavailable("Submission statistics are temporarily unavailable") from exc

    breakdown = {verdict: int(count) for verdict, count in rows}
    total = sum(breakdown.values())
    accepted = breakdown.get(Verdict.ACCEPTED.value, 0)
    return {
        "total_submissions": total,
        "accepted_submissions": accepted,
        "acceptance_rate": acceptance_rate(accepted, total),
        "solved_problems": int(solved or 0),
        "verdict_breakdown": [
            {"verdict": verdict, "count": count} for verdict, count in sorted(breakdown.items())
        ],
    }


def _rank_rows(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    ranked, prev_key, rank = [], None, 0
    for r in rows:
        key = (r["solved_count"], r["total_penalty"], r["earliest_solve_at"])
        if key != prev_key:
            rank = len(ranked) + 1
            prev_key = key
        ranked.append({**r, "rank": rank})
    return ranked


def build_leaderboard(participants: list[str], entries: list[ContestSubmission]) -> list[dict[str, Any]]:
    """Rank participants from their contest entries.

    Only each user's first accepted entry per problem counts. Order: problems
    solved (desc), total penalty (asc), earliest solve (asc; no solve sorts last).
    """
    firsts: dict[tuple[str, int], ContestSubmission] = {}
    for entry in sorted(entries, key=lambda e: (e.submitted_at, e.id)):
        if entry.status != Verdict.ACCEPTED:
            continue
        firsts.setdefault((entry.user_id, entry.problem_id), entry)

    rows: dict[str, dict[str, Any]] = {
        user_id: {
            "user_id": user_id,
            "solved_count": 0,
            "total_penalty": 0,
            "score": 0,
            "earliest_solve_at": None,
            "solved_problems": [],
        }
        for user_id in participants
    }
    for (user_id, problem_id), entry in firsts.items():
        row = rows.setdefault(
            user_id,
            {
                "user_id": user_id,
                "solved_count": 0,
                "total_penalty": 0,
                "score": 0,
                "earliest_solve_at": None,
                "solved_problems": [],
            },
        )
        row["solved_count"] += 1
        row["total_penalty"] += (entry.attempt_number - 1) * PENALTY_MINUTES_PER_ATTEMPT
        row["score"] += entry.points or 0
        if row["earliest_solve_at"] is None or entry.submitted_at < row["earliest_solve_at"]:
            row["earliest_solve_at"] = entry.submitted_at
        row["solved_problems"].append(
            {
                "problem_id": problem_id,
                "solved_at": entry.submitted_at,
                "attempts": entry.attempt_number,
                "points": entry.points or 0,
                "is_first_solve": bool(entry.is_first_solve),
            }
        )

    ordered = sorted(
        rows.values(),
        key=lambda r: (
            -r["solved_count"],
            r["total_penalty"],
            r["earliest_solve_at"] or datetime.max,
            r["user_id"],
        ),
    )
    for row in ordered:
        row["solved_problems"].sort(key=lambda p: p["solved_at"])
    return _rank_rows(ordered)


async def contest_leaderboard(db: AsyncSession, contest_id: int) -> dict[str, Any]:
    try:
        contest = (
            await db.execute(select(Contest).where(Contest.id == contest_id))
        ).scalar_one_or_none()
        if contest is None:
            raise NotFound("Contest not found")
        entries = (
            await db.execute(
                select(ContestSubmission).where(ContestSubmission.contest_id == contest_id)
            )
        ).unique().scalars().all()
    except SQLAlchemyError as exc:
        _LOGGER.exception("Leaderboard query failed for contest %s", contest_id)
        raise StatisticsUnavailable("Leaderboard is temporarily unavailable") from exc

    participants = [p.user_id for p in contest.participants]
    return {
        "contest": {
            "id": contest.id,
            "title": contest.title,
            "start_time": contest.start_time,
            "end_time": contest.end_time,
            "status": contest.status(),
        },
        "leaderboard": build_leaderboard(participants, list(entries)),
    }


__all__ = ["acceptance_rate", "build_leaderboard", "contest_leaderboard", "user_statistics"]
