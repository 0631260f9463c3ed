from datetime import timedelta

import httpx
import pytest

from conftest import FakeJudgeClient, accepted_result, create_contest, create_problem
from ojudge.auth_token import create_access_token
from ojudge.database import get_db
from ojudge.main import app
from ojudge.services.dispatcher import SubmissionDispatcher, get_dispatcher
from ojudge.services.events import InMemoryEventBus
from ojudge.services.scoring import ContestScoringEngine, ScoringPolicy, get_scoring_engine


def _auth(user_id: str, role: str = "User") -> dict[str, str]:
    token = create_access_token({"user_id": user_id, "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def client(session_factory):
    bus = InMemoryEventBus()
    dispatcher = SubmissionDispatcher(judge_client=FakeJudgeClient(result=accepted_result(3)), publisher=bus)
    engine = ContestScoringEngine(dispatcher=dispatcher, policy=ScoringPolicy(), publisher=bus)

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_scoring_engine] = lambda: engine
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


@pytest.mark.anyio("asyncio")
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


@pytest.mark.anyio("asyncio")
async def test_submit_and_read_back_with_hidden_results_removed(client, session_factory):
    async with session_factory() as session:
        problem = await create_problem(session, author_id="setter")

    response = await client.post(
        "/submissions/",
        json={"problem_id": problem.id, "language": "cpp", "code": "int main(){}"},
        headers=_auth("alice"),
    )
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["verdict"] == "Accepted"
    assert body["test_cases_passed"] == 3
    assert [r["index"] for r in body["test_case_results"]] == [1]
    assert "in1" not in response.text

    submission_id = body["id"]
    as_admin = await client.get(f"/submissions/{submission_id}", headers=_auth("root", "Admin"))
    assert as_admin.status_code == 200
    assert len(as_admin.json()["test_case_results"]) == 3

    as_other = await client.get(f"/submissions/{submission_id}", headers=_auth("bob"))
    assert as_other.status_code == 403

    missing = await client.get("/submissions/99999", headers=_auth("alice"))
    assert missing.status_code == 404


@pytest.mark.anyio("asyncio")
async def test_submission_errors_map_to_status_codes(client, session_factory):
    async with session_factory() as session:
        problem = await create_problem(session)

    unsupported = await client.post(
        "/submissions/",
        json={"problem_id": problem.id, "language": "cobol", "code": "DISPLAY 'HI'."},
        headers=_auth("alice"),
    )
    assert unsupported.status_code == 400
    assert "Unsupported programming language" in unsupported.json()["detail"]

    unknown = await client.post(
        "/submissions/",
        json={"problem_id": 4242, "language": "c", "code": "int main(){}"},
        headers=_auth("alice"),
    )
    assert unknown.status_code == 404

    anonymous = await client.post(
        "/submissions/", json={"problem_id": problem.id, "language": "c", "code": "x"}
    )
    assert anonymous.status_code == 401


@pytest.mark.anyio("asyncio")
async def test_history_stats_and_per_problem_listing(client, session_factory):
    async with session_factory() as session:
        problem = await create_problem(session)

    for _ in range(3):
        response = await client.post(
            "/submissions/",
            json={"problem_id": problem.id, "language": "python", "code": "print(3)"},
            headers=_auth("alice"),
        )
        assert response.status_code == 201

    page = await client.get("/submissions/?limit=2&verdict=AC", headers=_auth("alice"))
    assert page.status_code == 200
    data = page.json()
    assert (data["total"], data["pages"], len(data["items"])) == (3, 2, 2)

    bad_filter = await client.get("/submissions/?verdict=Maybe", headers=_auth("alice"))
    assert bad_filter.status_code == 400

    per_problem = await client.get(f"/submissions/problem/{problem.id}", headers=_auth("alice"))
    assert len(per_problem.json()) == 3
    assert (await client.get(f"/submissions/problem/{problem.id}", headers=_auth("bob"))).json() == []

    stats = await client.get("/submissions/stats", headers=_auth("alice"))
    assert stats.json()["acceptance_rate"] == 100.0
    assert stats.json()["solved_problems"] == 1


@pytest.mark.anyio("asyncio")
async def test_problem_test_cases_are_filtered_by_requester(client, session_factory):
    async with session_factory() as session:
        problem = await create_problem(session, author_id="setter")

    anonymous = await client.get(f"/problems/{problem.id}")
    assert anonymous.status_code == 200
    assert [tc["input"] for tc in anonymous.json()["testcases"]] == ["in0"]

    author = await client.get(f"/problems/{problem.id}", headers=_auth("setter", "Problemsetter"))
    assert len(author.json()["testcases"]) == 3

    assert (await client.get("/problems/31337")).status_code == 404


@pytest.mark.anyio("asyncio")
async def test_registration_rules(client, session_factory):
    async with session_factory() as session:
        problem = await create_problem(session)
        upcoming = await create_contest(
            session, problem, participants=(), starts_in=timedelta(hours=1), max_participants=1
        )
        private = await create_contest(
            session, problem, participants=(), starts_in=timedelta(hours=1), is_public=False
        )
        running = await create_contest(session, problem, participants=())

    joined = await client.post(f"/contests/{upcoming.id}/register", headers=_auth("carol"))
    assert joined.status_code == 200
    assert joined.json()["participants"] == 1

    again = await client.post(f"/contests/{upcoming.id}/register", headers=_auth("carol"))
    assert again.status_code == 400

    full = await client.post(f"/contests/{upcoming.id}/register", headers=_auth("dave"))
    assert full.status_code == 400

    assert (await client.post(f"/contests/{private.id}/register", headers=_auth("dave"))).status_code == 403
    assert (await client.post(f"/contests/{running.id}/register", headers=_auth("dave"))).status_code == 400

    left = await client.post(f"/contests/{upcoming.id}/unregister", headers=_auth("carol"))
    assert left.status_code == 200
    assert left.json() == {
        "contest_id": upcoming.id,
        "user_id": "carol",
        "registered": False,
        "participants": 0,
    }
    assert (await client.post(f"/contests/{upcoming.id}/unregister", headers=_auth("carol"))).status_code == 400


@pytest.mark.anyio("asyncio")
async def test_contest_submission_and_leaderboard(client, session_factory):
    async with session_factory() as session:
        problem = await create_problem(session, author_id="setter")
        contest = await create_contest(session, problem, participants=("alice", "bob"))

    url = f"/contests/{contest.id}/problems/{problem.id}/submit"
    submitted = await client.post(url, json={"language": "c", "code": "int main(){}"}, headers=_auth("alice"))
    assert submitted.status_code == 201, submitted.text
    entry = submitted.json()
    assert entry["attempt_number"] == 1
    assert entry["is_first_solve"] is True
    assert entry["points"] == 100
    assert entry["penalty"] == 0
    assert len(entry["submission"]["test_case_results"]) == 1

    outsider = await client.post(url, json={"language": "c", "code": "x"}, headers=_auth("mallory"))
    assert outsider.status_code == 403

    mine = await client.get(f"/contests/{contest.id}/submissions", headers=_auth("alice"))
    assert [e["id"] for e in mine.json()] == [entry["id"]]

    board = await client.get(f"/contests/{contest.id}/leaderboard")
    assert board.status_code == 200
    rows = board.json()["leaderboard"]
    assert [(r["user_id"], r["rank"], r["solved_count"]) for r in rows] == [
        ("alice", 1, 1),
        ("bob", 2, 0),
    ]
    assert (await client.get("/contests/999/leaderboard")).status_code == 404


@pytest.mark.anyio("asyncio")
async def test_public_contest_listing_filters_by_status(client, session_factory):
    async with session_factory() as session:
        problem = await create_problem(session)
        running = await create_contest(session, problem, participants=("alice",))
        upcoming = await create_contest(session, problem, starts_in=timedelta(days=1))
        await create_contest(session, problem, starts_in=timedelta(days=-3), duration=timedelta(hours=1))
        await create_contest(session, problem, is_public=False)

    everything = await client.get("/contests/public")
    assert everything.status_code == 200
    body = everything.json()
    assert body["total"] == 3
    assert body["items"][0]["id"] == upcoming.id
    assert body["items"][0]["problems"][0]["title"] == "A + B"

    ongoing = (await client.get("/contests/public?status=ongoing")).json()
    assert [c["id"] for c in ongoing["items"]] == [running.id]
    assert ongoing["items"][0]["participants"] == 1

    paged = (await client.get("/contests/public?limit=2&page=2")).json()
    assert (paged["pages"], len(paged["items"])) == (2, 1)

    assert (await client.get("/contests/public?status=paused")).status_code == 400


@pytest.mark.anyio("asyncio")
async def test_contest_details_show_the_callers_standing(client, session_factory):
    async with session_factory() as session:
        problem = await create_problem(session)
        contest = await create_contest(session, problem, participants=("alice", "bob"))

    url = f"/contests/{contest.id}/problems/{problem.id}/submit"
    submitted = await client.post(url, json={"language": "c", "code": "int main(){}"}, headers=_auth("bob"))
    assert submitted.status_code == 201

    mine = await client.get(f"/contests/{contest.id}", headers=_auth("bob"))
    assert mine.status_code == 200
    detail = mine.json()
    assert (detail["rank"], detail["score"], detail["solved_count"]) == (1, 100, 1)
    assert [p["problem_id"] for p in detail["solved_problems"]] == [problem.id]
    assert [e["id"] for e in detail["my_submissions"]] == [submitted.json()["id"]]

    alice = (await client.get(f"/contests/{contest.id}", headers=_auth("alice"))).json()
    assert (alice["rank"], alice["solved_count"], alice["my_submissions"]) == (2, 0, [])

    assert (await client.get(f"/contests/{contest.id}", headers=_auth("mallory"))).status_code == 403
    admin = await client.get(f"/contests/{contest.id}", headers=_auth("root", "Admin"))
    assert admin.status_code == 200
    assert admin.json()["rank"] is None
    assert (await client.get("/contests/4040", headers=_auth("bob"))).status_code == 404


@pytest.mark.anyio("asyncio")
async def test_contest_history_ranks_by_solves_then_penalty(client, session_factory):
    async with session_factory() as session:
        problem = await create_problem(session)
        older = await create_contest(
            session, problem, participants=("alice",), starts_in=timedelta(days=-5), duration=timedelta(hours=1)
        )
        current = await create_contest(session, problem, participants=("alice", "bob"))
        await create_contest(session, problem, participants=("bob",))

    url = f"/contests/{current.id}/problems/{problem.id}/submit"
    assert (await client.post(url, json={"language": "c", "code": "x"}, headers=_auth("bob"))).status_code == 201

    history = await client.get("/contests/user/history", headers=_auth("alice"))
    assert history.status_code == 200
    body = history.json()
    assert body["total"] == 2
    assert [c["id"] for c in body["items"]] == [current.id, older.id]
    assert (body["items"][0]["rank"], body["items"][0]["solved_count"]) == (2, 0)
    assert body["items"][1]["rank"] == 1

    bob = (await client.get("/contests/user/history", headers=_auth("bob"))).json()
    assert bob["total"] == 2
    solved = next(c for c in bob["items"] if c["id"] == current.id)
    assert (solved["rank"], solved["score"], solved["solved_count"]) == (1, 100, 1)

    assert (await client.get("/contests/user/history")).status_code == 401
