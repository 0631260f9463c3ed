from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ojudge.languages import SUPPORTED_LANGUAGES, Language
from ojudge.models.contest_submission import ContestSubmission
from ojudge.models.problem import Problem
from ojudge.models.submission import Submission
from ojudge.services.errors import NotFound, ValidationError
from ojudge.services.events import (
    EventPublisher,
    LeaderboardChanged,
    SubmissionResolved,
    get_event_bus,
)
from ojudge.services.judge_client import (
    JudgeClient,
    JudgeError,
    JudgeRequest,
    JudgeResult,
    get_judge_client,
)
from ojudge.utils import utcnow
from ojudge.verdicts import FAILURE_VERDICT, InvalidTransition, Verdict, parse_judge_verdict

_LOGGER = logging.getLogger(__name__)

JudgeOutcome = Union[JudgeResult, JudgeError]


@dataclass(frozen=True)
class ProblemSnapshot:
    """What judging needs from a problem, detached from the session.

    Rollbacks expire ORM instances; a snapshot survives them.
    """

    id: int
    author_id: Optional[str]
    time_limit: int
    memory_limit: int
    testcases: tuple[dict[str, Any], ...]

    @classmethod
    def from_problem(cls, problem: Problem) -> "ProblemSnapshot":
        return cls(
            id=problem.id,
            author_id=problem.author_id,
            time_limit=problem.time_limit,
            memory_limit=problem.memory_limit,
            testcases=tuple(
                {"input": tc.input, "output": tc.output, "visible": bool(tc.visible)}
                for tc in problem.testcases
            ),
        )

    def judge_testcases(self) -> list[dict[str, str]]:
        return [{"input": tc["input"], "output": tc["output"]} for tc in self.testcases]


def build_test_results(problem: ProblemSnapshot, raw_results: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Normalise the judge's per-test entries for storage.

    Stored entries keep full detail; the judge blanks hidden inputs, so those
    are filled back in from the problem. ``visible`` always comes from the
    problem's own test case, never from the judge.
    """
    stored = []
    for position, raw in enumerate(raw_results):
        case = problem.testcases[position] if position < len(problem.testcases) else {}
        verdict = parse_judge_verdict(raw.get("verdict")) or FAILURE_VERDICT
        stored.append(
            {
                "index": position + 1,
                "verdict": verdict.value,
                "input": raw.get("input") if raw.get("input") is not None else case.get("input"),
                "expected_output": (
                    raw.get("expectedOutput")
                    if raw.get("expectedOutput") is not None
                    else case.get("output")
                ),
                "actual_output": raw.get("actualOutput"),
                "execution_time": raw.get("executionTime") or 0,
                "error": raw.get("error"),
                "visible": bool(case.get("visible", False)),
            }
        )
    return stored


class SubmissionDispatcher:
    """Create a submission, have it judged and persist the verdict."""

    def __init__(
        self,
        *,
        judge_client: Optional[JudgeClient] = None,
        publisher: Optional[EventPublisher] = None,
    ) -> None:
        self.judge_client = judge_client or get_judge_client()
        self.publisher = publisher or get_event_bus()
        self.stale_after = timedelta(seconds=int(os.getenv("JUDGING_STALE_AFTER_SECONDS", "300")))
        self.reaper_interval = int(os.getenv("SUBMISSION_REAPER_INTERVAL", "60"))
        self._reaper_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def submit(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        problem_id: int,
        language: str,
        code: str,
    ) -> Submission:
        lang = self.validate(language=language, code=code)
        problem = await self.load_problem(db, problem_id)

        submission = self.open_submission(user_id=user_id, problem=problem, language=lang, code=code)
        db.add(submission)
        await db.commit()

        outcome = await self.judge(submission, problem)
        submission = await self.finalize(db, submission.id, problem, outcome)
        await self.publisher.publish(
            SubmissionResolved(
                submission_id=submission.id,
                user_id=submission.user_id,
                problem_id=submission.problem_id,
                verdict=submission.verdict,
            )
        )
        return submission

    # ------------------------------------------------------------------
    # Steps (shared with the contest scoring engine)
    # ------------------------------------------------------------------
    def validate(self, *, language: Optional[str], code: Optional[str]) -> Language:
        if not isinstance(code, str) or not code.strip():
            raise ValidationError("Code is required")
        lang = Language.parse(language)
        if lang is None:
            raise ValidationError(
                f"Unsupported programming language {language!r}; expected one of {', '.join(SUPPORTED_LANGUAGES)}"
            )
        return lang

    async def load_problem(self, db: AsyncSession, problem_id: int) -> ProblemSnapshot:
        problem = (
            await db.execute(select(Problem).where(Problem.id == problem_id))
        ).scalar_one_or_none()
        if problem is None:
            raise NotFound("Problem not found")
        if not problem.testcases:
            raise ValidationError("Problem has no test cases")
        return ProblemSnapshot.from_problem(problem)

    def open_submission(
        self, *, user_id: str, problem: ProblemSnapshot, language: Language, code: str
    ) -> Submission:
        submission = Submission(
            user_id=user_id,
            problem_id=problem.id,
            language=language.value,
            code=code,
            verdict=Verdict.PENDING.value,
            total_test_cases=len(problem.testcases),
            test_case_results=[],
        )
        submission.mark_judging()
        return submission

    async def judge(self, submission: Submission, problem: ProblemSnapshot) -> JudgeOutcome:
        """Run the judge call; failures come back as values, never raised."""
        request = JudgeRequest(
            language=Language(submission.language),
            code=submission.code,
            testcases=problem.judge_testcases(),
            time_limit=problem.time_limit,
            memory_limit=problem.memory_limit,
        )
        try:
            return await self.judge_client.judge(request)
        except JudgeError as exc:
            _LOGGER.warning("Judging submission %s failed: %s", submission.id, exc)
            return exc
        except Exception as exc:
            _LOGGER.exception("Unexpected error while judging submission %s", submission.id)
            return JudgeError(f"Unexpected judge error: {exc}")

    def apply_outcome(self, submission: Submission, problem: ProblemSnapshot, outcome: JudgeOutcome) -> bool:
        """Move ``submission`` to its terminal state in memory. Returns False when rejected."""
        try:
            if isinstance(outcome, JudgeError):
                submission.mark_failed(str(outcome) or outcome.__class__.__name__)
            else:
                submission.mark_resolved(
                    verdict=outcome.verdict,
                    test_cases_passed=outcome.passed_tests,
                    total_test_cases=outcome.total_tests,
                    test_case_results=build_test_results(problem, outcome.test_results),
                    execution_time=outcome.execution_time,
                    memory_used=outcome.memory_used,
                    error_message=outcome.error,
                    compiler_output=outcome.details,
                )
        except InvalidTransition as exc:
            _LOGGER.warning("Ignoring verdict for submission %s: %s", submission.id, exc)
            return False
        return True

    async def reload_for_update(self, db: AsyncSession, submission_id: int) -> Submission:
        stmt = (
            select(Submission)
            .where(Submission.id == submission_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        submission = (await db.execute(stmt)).scalar_one_or_none()
        if submission is None:
            raise NotFound("Submission not found")
        return submission

    async def finalize(
        self, db: AsyncSession, submission_id: int, problem: ProblemSnapshot, outcome: JudgeOutcome
    ) -> Submission:
        """Re-read the record and write the terminal state in one commit."""
        try:
            submission = await self.reload_for_update(db, submission_id)
            self.apply_outcome(submission, problem, outcome)
            await db.commit()
        except Exception:
            await db.rollback()
            _LOGGER.exception("Failed to persist verdict for submission %s", submission_id)
            raise
        return submission

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------
    async def reap_stale_submissions(self, db: AsyncSession) -> int:
        """Resolve submissions left non-terminal by an interrupted worker."""
        cutoff = utcnow() - self.stale_after
        stmt = (
            select(Submission)
            .where(
                Submission.verdict.in_([Verdict.PENDING.value, Verdict.JUDGING.value]),
                Submission.created_at < cutoff,
            )
            .with_for_update()
        )
        stale = (await db.execute(stmt)).scalars().all()
        if not stale:
            return 0
        for submission in stale:
            submission.mark_failed("Judging was interrupted before a verdict was recorded")

        contest_of = dict(
            (
                await db.execute(
                    select(ContestSubmission.submission_id, ContestSubmission.contest_id).where(
                        ContestSubmission.submission_id.in_([s.id for s in stale])
                    )
                )
            ).all()
        )
        await db.commit()
        _LOGGER.warning("Resolved %s stale submission(s) as %s", len(stale), FAILURE_VERDICT.value)

        for submission in stale:
            contest_id = contest_of.get(submission.id)
            await self.publisher.publish(
                SubmissionResolved(
                    submission_id=submission.id,
                    user_id=submission.user_id,
                    problem_id=submission.problem_id,
                    verdict=submission.verdict,
                    contest_id=contest_id,
                )
            )
        for contest_id in sorted(set(contest_of.values())):
            await self.publisher.publish(LeaderboardChanged(contest_id=contest_id))
        return len(stale)

    async def start_reaper_task(self, session_factory) -> None:
        if self.reaper_interval <= 0 or self._reaper_task:
            return

        async def _loop():
            while True:
                try:
                    async with session_factory() as db:
                        await self.reap_stale_submissions(db)
                except asyncio.CancelledError:  # pragma: no cover - task cancelled intentionally
                    raise
                except Exception as exc:  # pragma: no cover - logged and retried next round
                    _LOGGER.exception("Stale submission cleanup failed: %s", exc)
                await asyncio.sleep(self.reaper_interval)

        self._reaper_task = asyncio.create_task(_loop())

    async def stop_reaper_task(self) -> None:
        if not self._reaper_task:
            return
        self._reaper_task.cancel()
        try:
            await self._reaper_task
        except asyncio.CancelledError:  # pragma: no cover - expected during shutdown
            pass
        finally:
            self._reaper_task = None


_dispatcher: Optional[SubmissionDispatcher] = None


def get_dispatcher() -> SubmissionDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = SubmissionDispatcher()
    return _dispatcher


__all__ = ["JudgeOutcome", "ProblemSnapshot", "SubmissionDispatcher", "build_test_results", "get_dispatcher"]
