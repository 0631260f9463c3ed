# ojudge/routes/problems.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ojudge.auth_token import Identity
from ojudge.database import get_db
from ojudge.deps.security import get_identity_optional
from ojudge.models.problem import Problem
from ojudge.schemas import ProblemRead, TestCaseRead
from ojudge.visibility import filter_testcases

router = APIRouter(prefix="/problems", tags=["Problems"])


@router.get("/{problem_id}", response_model=ProblemRead)
async def get_problem(
    problem_id: int,
    db: AsyncSession = Depends(get_db),
    identity: Optional[Identity] = Depends(get_identity_optional),
):
    """Problem with the test cases the requester may see (all for admins and the author)."""
    problem = (
        await db.execute(select(Problem).where(Problem.id == problem_id))
    ).scalar_one_or_none()
    if problem is None:
        raise HTTPException(status_code=404, detail="Problem not found")

    return ProblemRead(
        id=problem.id,
        title=problem.title,
        author_id=problem.author_id,
        time_limit=problem.time_limit,
        memory_limit=problem.memory_limit,
        testcases=[
            TestCaseRead.model_validate(tc)
            for tc in filter_testcases(problem.testcases, identity, problem.author_id)
        ],
    )
