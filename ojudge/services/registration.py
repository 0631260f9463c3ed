"""Contest participation: sign-up and withdrawal before the contest starts."""

from __future__ import annotations

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ojudge.models.contest import Contest, ContestParticipant
from ojudge.services.errors import Forbidden, NotFound, ValidationError
from ojudge.utils import utcnow

_LOGGER = logging.getLogger(__name__)


async def _load_contest(db: AsyncSession, contest_id: int) -> Contest:
    contest = (
        await db.execute(select(Contest).where(Contest.id == contest_id))
    ).scalar_one_or_none()
    if contest is None:
        raise NotFound("Contest not found")
    return contest


async def participant_count(db: AsyncSession, contest_id: int) -> int:
    return (
        await db.execute(
            select(func.count(ContestParticipant.id)).where(ContestParticipant.contest_id == contest_id)
        )
    ).scalar_one()


async def register_participant(db: AsyncSession, *, contest_id: int, user_id: str) -> int:
    """Register ``user_id``; returns the new participant count."""
    contest = await _load_contest(db, contest_id)
    if not contest.is_public:
        raise Forbidden("This contest is not public")
    if contest.is_participant(user_id):
        raise ValidationError("You are already registered for this contest")
    if contest.max_participants and len(contest.participants) >= contest.max_participants:
        raise ValidationError("Contest has reached maximum participants")
    if contest.has_started():
        raise ValidationError("Registration is closed for this contest")

    db.add(ContestParticipant(contest_id=contest_id, user_id=user_id, registered_at=utcnow()))
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ValidationError("You are already registered for this contest") from exc

    _LOGGER.info("User %s registered for contest %s", user_id, contest_id)
    return await participant_count(db, contest_id)


async def unregister_participant(db: AsyncSession, *, contest_id: int, user_id: str) -> int:
    contest = await _load_contest(db, contest_id)
    if not contest.is_participant(user_id):
        raise ValidationError("You are not registered for this contest")
    if contest.has_started():
        raise ValidationError("Cannot unregister after contest has started")

    await db.execute(
        delete(ContestParticipant).where(
            ContestParticipant.contest_id == contest_id,
            ContestParticipant.user_id == user_id,
        )
    )
    await db.commit()
    _LOGGER.info("User %s unregistered from contest %s", user_id, contest_id)
    return await participant_count(db, contest_id)


__all__ = ["participant_count", "register_participant", "unregister_participant"]
