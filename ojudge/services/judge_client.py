from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from ojudge.languages import Language
from ojudge.verdicts import Verdict, parse_judge_verdict

_LOGGER = logging.getLogger(__name__)


class JudgeError(Exception):
    """Base error for a judge call that produced no usable verdict."""


class JudgeTimeout(JudgeError):
    """The judge did not answer within the configured timeout."""


class JudgeUnavailable(JudgeError):
    """The judge could not be reached or answered with an error status."""


class JudgeMalformed(JudgeError):
    """The judge answered, but not with a recognisable result."""


@dataclass(slots=True)
class JudgeRequest:
    language: Language
    code: str
    testcases: list[dict[str, str]]
    time_limit: int
    memory_limit: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "extension": self.language.extension,
            "code": self.code,
            "testcases": [{"input": tc["input"], "output": tc["output"]} for tc in self.testcases],
            "timeLimit": self.time_limit,
            "memoryLimit": self.memory_limit,
        }


@dataclass(slots=True)
class JudgeResult:
    verdict: Verdict
    passed_tests: int
    total_tests: int
    test_results: list[dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None
    details: Optional[str] = None
    execution_time: int = 0
    memory_used: int = 0


def _as_int(value: Any, name: str, default: int = 0) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise JudgeMalformed(f"Judge field {name!r} is not a number")
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        raise JudgeMalformed(f"Judge field {name!r} is not a number: {value!r}") from None
    if number < 0:
        raise JudgeMalformed(f"Judge field {name!r} is negative")
    return number


def _as_text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return value if isinstance(value, str) else str(value)


def parse_judge_response(body: Any) -> JudgeResult:
    """Validate a decoded judge response body."""

    if not isinstance(body, dict):
        raise JudgeMalformed("Judge response is not a JSON object")

    verdict = parse_judge_verdict(body.get("verdict"))
    if verdict is None:
        raise JudgeMalformed(f"Judge response has no recognisable verdict: {body.get('verdict')!r}")

    raw_results = body.get("testResults") or []
    if not isinstance(raw_results, list) or not all(isinstance(r, dict) for r in raw_results):
        raise JudgeMalformed("Judge field 'testResults' is not a list of objects")

    # Like the judge itself, the first test's time stands for the whole run.
    first_time = raw_results[0].get("executionTime") if raw_results else body.get("executionTime")

    return JudgeResult(
        verdict=verdict,
        passed_tests=_as_int(body.get("passedTests"), "passedTests"),
        total_tests=_as_int(body.get("totalTests"), "totalTests"),
        test_results=list(raw_results),
        error=_as_text(body.get("error")),
        details=_as_text(body.get("details")),
        execution_time=_as_int(first_time, "executionTime"),
        memory_used=_as_int(body.get("memoryUsed"), "memoryUsed"),
    )


class JudgeClient:
    """Single-shot HTTP client for the execution judge. Retries are the caller's business."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or os.getenv("JUDGE_URL", "http://localhost:8000")).rstrip("/")
        self.timeout_seconds = timeout_seconds or float(os.getenv("JUDGE_TIMEOUT_SECONDS", "30"))
        self.api_key = api_key if api_key is not None else os.getenv("JUDGE_API_KEY", "")
        self._transport = transport

    @property
    def submit_url(self) -> str:
        return f"{self.base_url}/submit"

    async def judge(self, request: JudgeRequest) -> JudgeResult:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(self.submit_url, json=request.to_payload(), headers=headers)
        except httpx.TimeoutException as exc:
            raise JudgeTimeout(f"Judge timed out after {self.timeout_seconds:g}s") from exc
        except httpx.RequestError as exc:
            raise JudgeUnavailable(f"Unable to reach judge at {self.submit_url}: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            if response.is_error:
                raise JudgeUnavailable(f"Judge answered HTTP {response.status_code}") from None
            raise JudgeMalformed("Judge response is not valid JSON") from None

        try:
            result = parse_judge_response(body)
        except JudgeMalformed:
            if response.is_error:
                detail = body.get("error") if isinstance(body, dict) else None
                raise JudgeUnavailable(
                    f"Judge answered HTTP {response.status_code}" + (f": {detail}" if detail else "")
                ) from None
            raise

        _LOGGER.debug(
            "Judge returned %s (%s/%s passed)", result.verdict.value, result.passed_tests, result.total_tests
        )
        return result


_judge_client: Optional[JudgeClient] = None


def get_judge_client() -> JudgeClient:
    global _judge_client
    if _judge_client is None:
        _judge_client = JudgeClient()
    return _judge_client


__all__ = [
    "JudgeClient",
    "JudgeError",
    "JudgeMalformed",
    "JudgeRequest",
    "JudgeResult",
    "JudgeTimeout",
    "JudgeUnavailable",
    "get_judge_client",
    "parse_judge_response",
]
