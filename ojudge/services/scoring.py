"""Contest submissions: attempt numbering, first-solve detection and points.

Two database-level serialization points keep concurrent submissions honest:

* attempt numbers come from an atomically incremented counter row per
  (contest, user, problem), bumped in the same transaction that inserts the
  contest entry, so numbers are gap-free and follow arrival order;
* the first-solve decision runs after an UPDATE of the (contest, problem) row,
  which holds that row's lock until the verdict is committed. A partial unique
  index backs this up: at most one entry per pair can carry the flag.

Unique-constraint violations are retried once; a second one surfaces as
:class:`ConcurrencyConflict`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ojudge.languages import Language
from ojudge.models.contest import Contest, ContestProblem
from ojudge.models.contest_submission import AttemptCounter, ContestSubmission
from ojudge.models.submission import Submission
from ojudge.services.dispatcher import (
    JudgeOutcome,
    ProblemSnapshot,
    SubmissionDispatcher,
    get_dispatcher,
)
from ojudge.services.errors import ConcurrencyConflict, ContestNotActive, Forbidden, NotFound
from ojudge.services.events import (
    EventPublisher,
    LeaderboardChanged,
    SubmissionResolved,
    get_event_bus,
)
from ojudge.services.judge_client import JudgeResult
from ojudge.utils import utcnow
from ojudge.verdicts import Verdict

_LOGGER = logging.getLogger(__name__)

MAX_CONFLICT_RETRIES = 1


@dataclass(frozen=True)
class ScoringPolicy:
    """Points awarded for an accepted contest entry.

    ``points = max(minimum_points, problem_points - attempt_decay * (attempt - 1))``.
    The defaults award the problem's configured points regardless of attempts.
    """

    attempt_decay: int = 0
    minimum_points: int = 0

    @classmethod
    def from_env(cls) -> "ScoringPolicy":
        try:
            decay = int(os.getenv("CONTEST_POINTS_ATTEMPT_DECAY", "0"))
            minimum = int(os.getenv("CONTEST_POINTS_MINIMUM", "0"))
        except ValueError:
            decay, minimum = 0, 0
        return cls(attempt_decay=max(0, decay), minimum_points=max(0, minimum))

    def points_for(self, *, problem_points: int, attempt_number: int, verdict: Verdict) -> int:
        if verdict != Verdict.ACCEPTED:
            return 0
        pts = (problem_points or 0) - self.attempt_decay * (attempt_number - 1)
        return max(self.minimum_points, pts)


class ContestScoringEngine:
    def __init__(
        self,
        *,
        dispatcher: Optional[SubmissionDispatcher] = None,
        policy: Optional[ScoringPolicy] = None,
        publisher: Optional[EventPublisher] = None,
    ) -> None:
        self.dispatcher = dispatcher or get_dispatcher()
        self.policy = policy or ScoringPolicy.from_env()
        self.publisher = publisher or self.dispatcher.publisher or get_event_bus()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def submit(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        contest_id: int,
        problem_id: int,
        language: str,
        code: str,
    ) -> ContestSubmission:
        lang = self.dispatcher.validate(language=language, code=code)

        contest = await self.load_contest(db, contest_id)
        if not contest.is_active():
            raise ContestNotActive("Contest is not currently active")
        if not contest.is_participant(user_id):
            raise Forbidden("You are not registered for this contest")
        contest_problem = contest.problem_entry(problem_id)
        if contest_problem is None:
            raise NotFound("Problem not found in this contest")
        problem_points = contest_problem.points

        problem = await self.dispatcher.load_problem(db, problem_id)
        entry = await self._open_entry(db, contest_id=contest_id, problem=problem, user_id=user_id, language=lang, code=code)
        entry_id = entry.id

        outcome = await self.dispatcher.judge(entry.submission, problem)
        try:
            entry = await self._finalize(db, entry_id, problem=problem, problem_points=problem_points, outcome=outcome)
        except ConcurrencyConflict:
            # The verdict itself was committed; only the first-solve claim was dropped.
            await self._publish_resolved(await self._reload_entry(db, entry_id))
            raise

        await self._publish_resolved(entry)
        return entry

    async def _publish_resolved(self, entry: ContestSubmission) -> None:
        await self.publisher.publish(
            SubmissionResolved(
                submission_id=entry.submission_id,
                user_id=entry.user_id,
                problem_id=entry.problem_id,
                verdict=entry.verdict,
                contest_id=entry.contest_id,
            )
        )
        await self.publisher.publish(LeaderboardChanged(contest_id=entry.contest_id))

    async def load_contest(self, db: AsyncSession, contest_id: int) -> Contest:
        contest = (
            await db.execute(select(Contest).where(Contest.id == contest_id))
        ).scalar_one_or_none()
        if contest is None:
            raise NotFound("Contest not found")
        return contest

    # ------------------------------------------------------------------
    # Attempt numbering
    # ------------------------------------------------------------------
    async def next_attempt_number(
        self, db: AsyncSession, *, contest_id: int, user_id: str, problem_id: int
    ) -> int:
        """Increment and return the counter for the key inside the caller's transaction."""
        key = (
            AttemptCounter.contest_id == contest_id,
            AttemptCounter.user_id == user_id,
            AttemptCounter.problem_id == problem_id,
        )
        bumped = await db.execute(
            update(AttemptCounter)
            .where(*key)
            .values(last_attempt=AttemptCounter.last_attempt + 1)
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount:
            return (await db.execute(select(AttemptCounter.last_attempt).where(*key))).scalar_one()

        # First attempt for this key; seed from any entries already on record.
        prior = (
            await db.execute(
                select(func.count(ContestSubmission.id)).where(
                    ContestSubmission.contest_id == contest_id,
                    ContestSubmission.user_id == user_id,
                    ContestSubmission.problem_id == problem_id,
                )
            )
        ).scalar_one()
        number = prior + 1
        await db.execute(
            insert(AttemptCounter).values(
                contest_id=contest_id, user_id=user_id, problem_id=problem_id, last_attempt=number
            )
        )
        return number

    async def _open_entry(
        self,
        db: AsyncSession,
        *,
        contest_id: int,
        problem: ProblemSnapshot,
        user_id: str,
        language: Language,
        code: str,
    ) -> ContestSubmission:
        conflicts = 0
        while True:
            try:
                number = await self.next_attempt_number(
                    db, contest_id=contest_id, user_id=user_id, problem_id=problem.id
                )
                now = utcnow()
                submission = self.dispatcher.open_submission(
                    user_id=user_id, problem=problem, language=language, code=code
                )
                submission.created_at = now
                entry = ContestSubmission(
                    contest_id=contest_id,
                    user_id=user_id,
                    problem_id=problem.id,
                    attempt_number=number,
                    submitted_at=now,
                    submission=submission,
                )
                db.add_all([submission, entry])
                await db.commit()
                return entry
            except IntegrityError as exc:
                await db.rollback()
                conflicts += 1
                _LOGGER.warning(
                    "Attempt numbering conflict for contest=%s user=%s problem=%s (%s)",
                    contest_id, user_id, problem.id, conflicts,
                )
                if conflicts > MAX_CONFLICT_RETRIES:
                    raise ConcurrencyConflict(
                        "Another submission for this problem was recorded at the same time; please resubmit"
                    ) from exc

    # ------------------------------------------------------------------
    # Verdict, points and first solve
    # ------------------------------------------------------------------
    async def _finalize(
        self,
        db: AsyncSession,
        entry_id: int,
        *,
        problem: ProblemSnapshot,
        problem_points: int,
        outcome: JudgeOutcome,
    ) -> ContestSubmission:
        claim = isinstance(outcome, JudgeResult) and outcome.verdict == Verdict.ACCEPTED
        for attempt in range(MAX_CONFLICT_RETRIES + 1):
            try:
                return await self._write_result(
                    db, entry_id, problem=problem, problem_points=problem_points, outcome=outcome, claim=claim
                )
            except IntegrityError:
                await db.rollback()
                _LOGGER.warning("First-solve conflict on contest entry %s (try %s)", entry_id, attempt + 1)

        # Never leave the entry in Judging: record the verdict without the claim.
        entry = await self._write_result(
            db, entry_id, problem=problem, problem_points=problem_points, outcome=outcome, claim=False
        )
        raise ConcurrencyConflict(
            f"Verdict for contest submission {entry.id} was saved, but first-solve could not be settled"
        )

    async def _write_result(
        self,
        db: AsyncSession,
        entry_id: int,
        *,
        problem: ProblemSnapshot,
        problem_points: int,
        outcome: JudgeOutcome,
        claim: bool,
    ) -> ContestSubmission:
        try:
            if claim:
                await self._lock_contest_problem(db, entry_id)
            entry = await self._reload_entry(db, entry_id)
            submission = await self.dispatcher.reload_for_update(db, entry.submission_id)
            self.dispatcher.apply_outcome(submission, problem, outcome)

            if claim and submission.status == Verdict.ACCEPTED:
                await self._settle_first_solve(db, entry)
            entry.points = self.policy.points_for(
                problem_points=problem_points,
                attempt_number=entry.attempt_number,
                verdict=submission.status,
            )
            await db.commit()
        except IntegrityError:
            raise
        except Exception:
            await db.rollback()
            _LOGGER.exception("Failed to persist verdict for contest entry %s", entry_id)
            raise
        return entry

    async def _lock_contest_problem(self, db: AsyncSession, entry_id: int) -> None:
        pair = (
            await db.execute(
                select(ContestSubmission.contest_id, ContestSubmission.problem_id).where(
                    ContestSubmission.id == entry_id
                )
            )
        ).one()
        await db.execute(
            update(ContestProblem)
            .where(
                ContestProblem.contest_id == pair.contest_id,
                ContestProblem.problem_id == pair.problem_id,
            )
            .values(solve_version=ContestProblem.solve_version + 1)
            .execution_options(synchronize_session=False)
        )

    async def _reload_entry(self, db: AsyncSession, entry_id: int) -> ContestSubmission:
        stmt = (
            select(ContestSubmission)
            .where(ContestSubmission.id == entry_id)
            .execution_options(populate_existing=True)
        )
        entry = (await db.execute(stmt)).unique().scalar_one_or_none()
        if entry is None:
            raise NotFound("Contest submission not found")
        return entry

    async def _settle_first_solve(self, db: AsyncSession, entry: ContestSubmission) -> None:
        """Give the flag to the earliest accepted entry for the pair, ``entry`` included.

        Must run while the (contest, problem) row is locked and before ``entry``'s
        verdict is flushed.
        """
        same_pair = (
            ContestSubmission.contest_id == entry.contest_id,
            ContestSubmission.problem_id == entry.problem_id,
            ContestSubmission.id != entry.id,
        )
        earliest = (
            await db.execute(
                select(ContestSubmission)
                .join(Submission, Submission.id == ContestSubmission.submission_id)
                .where(*same_pair, Submission.verdict == Verdict.ACCEPTED.value)
                .order_by(ContestSubmission.submitted_at.asc(), ContestSubmission.id.asc())
                .limit(1)
            )
        ).unique().scalar_one_or_none()
        holders = (
            await db.execute(
                select(ContestSubmission)
                .where(*same_pair, ContestSubmission.is_first_solve.is_(True))
                .execution_options(populate_existing=True)
            )
        ).unique().scalars().all()

        winner = entry
        if earliest is not None and (earliest.submitted_at, earliest.id) < (entry.submitted_at, entry.id):
            winner = earliest
        if winner in holders:
            return

        for holder in holders:
            _LOGGER.info(
                "First solve of contest=%s problem=%s moves from entry %s to entry %s",
                entry.contest_id, entry.problem_id, holder.id, winner.id,
            )
            holder.is_first_solve = False
        if holders:
            await db.flush()
        winner.is_first_solve = True


_engine: Optional[ContestScoringEngine] = None


def get_scoring_engine() -> ContestScoringEngine:
    global _engine
    if _engine is None:
        _engine = ContestScoringEngine()
    return _engine


__all__ = ["ContestScoringEngine", "MAX_CONFLICT_RETRIES", "ScoringPolicy", "get_scoring_engine"]
