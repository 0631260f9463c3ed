"""Contest listings and per-user contest views built on the leaderboard."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ojudge.models.contest import Contest, ContestParticipant
from ojudge.models.contest_submission import ContestSubmission
from ojudge.services.errors import Forbidden, NotFound, StatisticsUnavailable, ValidationError
from ojudge.services.statistics import build_leaderboard
from ojudge.utils import utcnow

_LOGGER = logging.getLogger(__name__)

CONTEST_STATUSES = ("upcoming", "ongoing", "ended")


def contest_summary(contest: Contest) -> dict[str, Any]:
    return {
        "id": contest.id,
        "title": contest.title,
        "description": contest.description,
        "start_time": contest.start_time,
        "end_time": contest.end_time,
        "status": contest.status(),
        "is_public": bool(contest.is_public),
        "max_participants": contest.max_participants,
        "participants": len(contest.participants),
        "problems": [
            {
                "problem_id": cp.problem_id,
                "title": cp.problem.title if cp.problem is not None else None,
                "points": cp.points,
                "order": cp.order,
            }
            for cp in contest.problems
        ],
    }


def _status_condition(status: str):
    now = utcnow()
    if status == "upcoming":
        return Contest.start_time > now
    if status == "ongoing":
        return (Contest.start_time <= now) & (Contest.end_time >= now)
    return Contest.end_time < now


def _standing(contest: Contest, entries: list[ContestSubmission], user_id: str) -> dict[str, Any]:
    board = build_leaderboard([p.user_id for p in contest.participants], entries)
    row = next(r for r in board if r["user_id"] == user_id)
    return {
        "rank": row["rank"],
        "score": row["score"],
        "solved_count": row["solved_count"],
        "total_penalty": row["total_penalty"],
        "solved_problems": row["solved_problems"],
    }


async def list_public_contests(
    db: AsyncSession, *, page: int = 1, limit: int = 10, status: Optional[str] = None
) -> dict[str, Any]:
    """Public contests, latest start first, optionally filtered by computed status."""
    conditions = [Contest.is_public.is_(True)]
    if status is not None:
        if status not in CONTEST_STATUSES:
            raise ValidationError(
                f"Unknown contest status {status!r}; expected one of {', '.join(CONTEST_STATUSES)}"
            )
        conditions.append(_status_condition(status))

    total = (await db.execute(select(func.count(Contest.id)).where(*conditions))).scalar_one()
    contests = (
        await db.execute(
            select(Contest)
            .where(*conditions)
            .order_by(Contest.start_time.desc(), Contest.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
    ).scalars().all()
    return {
        "items": [contest_summary(c) for c in contests],
        "total": total,
        "page": page,
        "limit": limit,
        "pages": (total + limit - 1) // limit,
    }


async def contest_details(
    db: AsyncSession, contest_id: int, *, user_id: str, is_admin: bool = False
) -> dict[str, Any]:
    """The contest with the caller's own entries and standing. Participants and admins only."""
    contest = (
        await db.execute(select(Contest).where(Contest.id == contest_id))
    ).scalar_one_or_none()
    if contest is None:
        raise NotFound("Contest not found")
    registered = contest.is_participant(user_id)
    if not registered and not is_admin:
        raise Forbidden("You are not registered for this contest")

    try:
        entries = list(
            (
                await db.execute(
                    select(ContestSubmission).where(ContestSubmission.contest_id == contest_id)
                )
            ).unique().scalars().all()
        )
    except SQLAlchemyError as exc:
        _LOGGER.exception("Standing query failed for contest %s", contest_id)
        raise StatisticsUnavailable("Contest standings are temporarily unavailable") from exc

    own = sorted(
        (e for e in entries if e.user_id == user_id),
        key=lambda e: (e.submitted_at, e.id),
        reverse=True,
    )
    if registered:
        standing = _standing(contest, entries, user_id)
    else:
        standing = {"rank": None, "score": 0, "solved_count": 0, "total_penalty": 0, "solved_problems": []}
    return {**contest_summary(contest), **standing, "my_submissions": own}


async def contest_history(
    db: AsyncSession, *, user_id: str, page: int = 1, limit: int = 10
) -> dict[str, Any]:
    """Contests the user registered for, latest first, with their score, solved count and rank."""
    joined = select(ContestParticipant.contest_id).where(ContestParticipant.user_id == user_id)
    try:
        total = (
            await db.execute(select(func.count()).select_from(joined.subquery()))
        ).scalar_one()
        contests = (
            await db.execute(
                select(Contest)
                .where(Contest.id.in_(joined))
                .order_by(Contest.start_time.desc(), Contest.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
        ).scalars().all()
        by_contest: dict[int, list[ContestSubmission]] = defaultdict(list)
        if contests:
            entries = (
                await db.execute(
                    select(ContestSubmission).where(
                        ContestSubmission.contest_id.in_([c.id for c in contests])
                    )
                )
            ).unique().scalars().all()
            for entry in entries:
                by_contest[entry.contest_id].append(entry)
    except SQLAlchemyError as exc:
        _LOGGER.exception("Contest history query failed for user %s", user_id)
        raise StatisticsUnavailable("Contest history is temporarily unavailable") from exc

    items = []
    for contest in contests:
        standing = _standing(contest, by_contest[contest.id], user_id)
        standing.pop("solved_problems")
        items.append({**contest_summary(contest), **standing})
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": (total + limit - 1) // limit,
    }


__all__ = [
    "CONTEST_STATUSES",
    "contest_details",
    "contest_history",
    "contest_summary",
    "list_public_contests",
]
