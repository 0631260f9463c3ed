import asyncio
from datetime import timedelta

import ojudge.database as database
from ojudge.models import Contest, ContestParticipant, ContestProblem, Problem, TestCase
from ojudge.utils import utcnow


async def main() -> None:
    """Create the tables, a sum-of-two-numbers problem and a contest running it."""

    await database.init_models()
    async with database.SessionLocal() as session:
        problem = Problem(
            title="Sum of Two Numbers",
            author_id="admin",
            time_limit=2000,
            memory_limit=256,
            testcases=[
                TestCase(position=0, input="1 2\n", output="3\n", visible=True),
                TestCase(position=1, input="-5 5\n", output="0\n", visible=False),
                TestCase(position=2, input="1000000 2000000\n", output="3000000\n", visible=False),
            ],
        )
        now = utcnow()
        contest = Contest(
            title="Demo Round",
            description="A one-problem warmup contest.",
            start_time=now,
            end_time=now + timedelta(hours=2),
            created_by="admin",
            problems=[ContestProblem(problem=problem, points=100, order=0)],
            participants=[ContestParticipant(user_id="demo-user")],
        )
        session.add_all([problem, contest])
        await session.commit()
        print(f"Seeded problem {problem.id} and contest {contest.id}.")


if __name__ == "__main__":
    asyncio.run(main())
