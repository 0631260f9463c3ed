# ojudge/routes/contests.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ojudge.auth_token import Identity, get_current_identity
from ojudge.database import get_db
from ojudge.deps.security import enforce_submission_rate_limit, http_error
from ojudge.models.contest_submission import ContestSubmission
from ojudge.routes.submissions import submission_to_read
from ojudge.schemas import (
    ContestDetail,
    ContestHistoryPage,
    ContestPage,
    ContestSubmissionCreate,
    ContestSubmissionRead,
    ContestSubmissionResult,
    LeaderboardRead,
    RegistrationRead,
)
from ojudge.services.contests import contest_details, contest_history, list_public_contests
from ojudge.services.errors import Forbidden, ServiceError
from ojudge.services.registration import register_participant, unregister_participant
from ojudge.services.scoring import ContestScoringEngine, get_scoring_engine
from ojudge.services.statistics import contest_leaderboard

router = APIRouter(prefix="/contests", tags=["Contests"])


@router.post("/{contest_id}/register", response_model=RegistrationRead)
async def register(
    contest_id: int,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    try:
        count = await register_participant(db, contest_id=contest_id, user_id=identity.user_id)
    except ServiceError as exc:
        raise http_error(exc)
    return RegistrationRead(contest_id=contest_id, user_id=identity.user_id, registered=True, participants=count)


@router.post("/{contest_id}/unregister", response_model=RegistrationRead)
async def unregister(
    contest_id: int,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    try:
        count = await unregister_participant(db, contest_id=contest_id, user_id=identity.user_id)
    except ServiceError as exc:
        raise http_error(exc)
    return RegistrationRead(contest_id=contest_id, user_id=identity.user_id, registered=False, participants=count)


# -------------------------------------------------------------------
# Contest listings and the caller's view of a contest
# -------------------------------------------------------------------
@router.get("/public", response_model=ContestPage)
async def public_contests(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = Query(None, description="upcoming, ongoing or ended"),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await list_public_contests(db, page=page, limit=limit, status=status)
    except ServiceError as exc:
        raise http_error(exc)


@router.get("/user/history", response_model=ContestHistoryPage)
async def my_contest_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    try:
        return await contest_history(db, user_id=identity.user_id, page=page, limit=limit)
    except ServiceError as exc:
        raise http_error(exc)


@router.get("/{contest_id}", response_model=ContestDetail)
async def get_contest(
    contest_id: int,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    try:
        data = await contest_details(
            db, contest_id, user_id=identity.user_id, is_admin=identity.is_admin
        )
    except ServiceError as exc:
        raise http_error(exc)
    entries = data.pop("my_submissions")
    return ContestDetail(
        **data,
        my_submissions=[ContestSubmissionRead.model_validate(e) for e in entries],
    )


# -------------------------------------------------------------------
# POST /contests/{id}/problems/{pid}/submit
# -------------------------------------------------------------------
@router.post(
    "/{contest_id}/problems/{problem_id}/submit",
    response_model=ContestSubmissionResult,
    status_code=201,
)
async def submit_to_contest(
    contest_id: int,
    problem_id: int,
    payload: ContestSubmissionCreate,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(enforce_submission_rate_limit),
    engine: ContestScoringEngine = Depends(get_scoring_engine),
):
    try:
        entry = await engine.submit(
            db,
            user_id=identity.user_id,
            contest_id=contest_id,
            problem_id=problem_id,
            language=payload.language,
            code=payload.code,
        )
    except ServiceError as exc:
        raise http_error(exc)

    summary = ContestSubmissionRead.model_validate(entry)
    return ContestSubmissionResult(
        **summary.model_dump(),
        submission=await submission_to_read(db, entry.submission, identity),
    )


@router.get("/{contest_id}/submissions", response_model=list[ContestSubmissionRead])
async def my_contest_submissions(
    contest_id: int,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    engine: ContestScoringEngine = Depends(get_scoring_engine),
):
    try:
        contest = await engine.load_contest(db, contest_id)
        if not contest.is_participant(identity.user_id) and not identity.is_admin:
            raise Forbidden("You are not registered for this contest")
    except ServiceError as exc:
        raise http_error(exc)

    rows = (
        await db.execute(
            select(ContestSubmission)
            .where(
                ContestSubmission.contest_id == contest_id,
                ContestSubmission.user_id == identity.user_id,
            )
            .order_by(ContestSubmission.submitted_at.desc(), ContestSubmission.id.desc())
        )
    ).unique().scalars().all()
    return [ContestSubmissionRead.model_validate(r) for r in rows]


@router.get("/{contest_id}/leaderboard", response_model=LeaderboardRead)
async def leaderboard(contest_id: int, db: AsyncSession = Depends(get_db)):
    try:
        return await contest_leaderboard(db, contest_id)
    except ServiceError as exc:
        raise http_error(exc)
