# ojudge/routes/submissions.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ojudge.auth_token import Identity, get_current_identity
from ojudge.database import get_db
from ojudge.deps.security import enforce_submission_rate_limit, http_error
from ojudge.models.problem import Problem
from ojudge.models.submission import Submission
from ojudge.schemas import (
    SubmissionCreate,
    SubmissionPage,
    SubmissionRead,
    SubmissionSummary,
    UserStatsRead,
)
from ojudge.services.dispatcher import SubmissionDispatcher, get_dispatcher
from ojudge.services.errors import ServiceError
from ojudge.services.statistics import user_statistics
from ojudge.verdicts import Verdict, parse_judge_verdict
from ojudge.visibility import filter_test_results

router = APIRouter(prefix="/submissions", tags=["Submissions"])


async def submission_to_read(
    db: AsyncSession, submission: Submission, identity: Optional[Identity]
) -> SubmissionRead:
    """Serialise a submission with hidden per-test results removed for the requester."""
    author_id = (
        await db.execute(select(Problem.author_id).where(Problem.id == submission.problem_id))
    ).scalar_one_or_none()
    data = SubmissionRead.model_validate(submission)
    data.test_case_results = filter_test_results(data.test_case_results, identity, author_id)
    return data


def _verdict_filter(raw: Optional[str]) -> Optional[str]:
    if raw is None:
        return None
    try:
        return Verdict(raw).value
    except ValueError:
        parsed = parse_judge_verdict(raw)
    if parsed is None:
        raise HTTPException(status_code=400, detail=f"Unknown verdict {raw!r}")
    return parsed.value


# -------------------------------------------------------------------
# POST /submissions/ – judge a practice submission
# -------------------------------------------------------------------
@router.post("/", response_model=SubmissionRead, status_code=201)
async def create_submission(
    payload: SubmissionCreate,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(enforce_submission_rate_limit),
    dispatcher: SubmissionDispatcher = Depends(get_dispatcher),
):
    try:
        submission = await dispatcher.submit(
            db,
            user_id=identity.user_id,
            problem_id=payload.problem_id,
            language=payload.language,
            code=payload.code,
        )
    except ServiceError as exc:
        raise http_error(exc)
    return await submission_to_read(db, submission, identity)


# -------------------------------------------------------------------
# GET /submissions/ – own history, newest first
# -------------------------------------------------------------------
@router.get("/", response_model=SubmissionPage)
async def list_submissions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    problem_id: Optional[int] = Query(None),
    verdict: Optional[str] = Query(None, description="Filter by verdict, e.g. 'Accepted' or 'WA'"),
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    conditions = [Submission.user_id == identity.user_id]
    if problem_id is not None:
        conditions.append(Submission.problem_id == problem_id)
    verdict_value = _verdict_filter(verdict)
    if verdict_value is not None:
        conditions.append(Submission.verdict == verdict_value)

    total = (
        await db.execute(select(func.count(Submission.id)).where(*conditions))
    ).scalar_one()
    rows = (
        await db.execute(
            select(Submission)
            .where(*conditions)
            .order_by(Submission.created_at.desc(), Submission.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
    ).scalars().all()

    return SubmissionPage(
        items=[SubmissionSummary.model_validate(s) for s in rows],
        total=total,
        page=page,
        limit=limit,
        pages=(total + limit - 1) // limit,
    )


@router.get("/stats", response_model=UserStatsRead)
async def my_statistics(
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    try:
        return await user_statistics(db, identity.user_id)
    except ServiceError as exc:
        raise http_error(exc)


@router.get("/problem/{problem_id}", response_model=list[SubmissionSummary])
async def submissions_for_problem(
    problem_id: int,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    rows = (
        await db.execute(
            select(Submission)
            .where(Submission.user_id == identity.user_id, Submission.problem_id == problem_id)
            .order_by(Submission.created_at.desc(), Submission.id.desc())
        )
    ).scalars().all()
    return [SubmissionSummary.model_validate(s) for s in rows]


@router.get("/{submission_id}", response_model=SubmissionRead)
async def get_submission(
    submission_id: int,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    submission = (
        await db.execute(select(Submission).where(Submission.id == submission_id))
    ).scalar_one_or_none()
    if submission is None:
        raise HTTPException(status_code=404, detail="Submission not found")
    if submission.user_id != identity.user_id and not identity.is_admin:
        raise HTTPException(status_code=403, detail="Access denied")
    return await submission_to_read(db, submission, identity)
