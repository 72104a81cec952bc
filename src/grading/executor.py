"""Code execution collaborator: runs candidate code against test cases."""

import logging
from abc import ABC, abstractmethod

import httpx
from pydantic import BaseModel, ConfigDict

from src.core.schemas import CodeTestCase

logger = logging.getLogger(__name__)

# Judge0 CE language ids.
_LANGUAGE_IDS: dict[str, int] = {
    "javascript": 63,
    "python": 71,
    "java": 62,
    "cpp": 54,
    "c": 50,
}

_JUDGE0_ACCEPTED = 3


class CodeExecutionError(RuntimeError):
    """The executor could not run the submission at all (timeout, crash, transport)."""


class CaseOutcome(BaseModel):
    """Pass/fail for one test case, with whatever diagnostics the executor returned."""

    model_config = ConfigDict(frozen=True)

    passed: bool
    output: str = ""
    error: str = ""
    time_s: float | None = None


class CodeExecutor(ABC):
    """Runs code against test cases and reports one outcome per case, in order."""

    @abstractmethod
    def run(
        self,
        code: str,
        language: str,
        test_cases: list[CodeTestCase],
        time_limit_s: float,
    ) -> list[CaseOutcome]:
        """Execute and return per-test outcomes. Raise CodeExecutionError on total failure."""


class Judge0Executor(CodeExecutor):
    """CodeExecutor backed by a Judge0 CE deployment (synchronous submissions)."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout_s: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = client or httpx.Client(timeout=timeout_s)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["X-Auth-Token"] = self._api_key
        return headers

    def run(
        self,
        code: str,
        language: str,
        test_cases: list[CodeTestCase],
        time_limit_s: float,
    ) -> list[CaseOutcome]:
        language_id = _LANGUAGE_IDS.get(language.lower().strip())
        if language_id is None:
            msg = f"Unsupported language '{language}'"
            raise CodeExecutionError(msg)

        outcomes: list[CaseOutcome] = []
        for case in test_cases:
            submission = {
                "source_code": code,
                "language_id": language_id,
                "stdin": case.input,
                "expected_output": case.expected_output,
                "cpu_time_limit": time_limit_s,
            }
            try:
                response = self._client.post(
                    f"{self._base_url}/submissions",
                    params={"base64_encoded": "false", "wait": "true"},
                    json=submission,
                    headers=self._headers(),
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                msg = f"Judge0 request failed: {e}"
                raise CodeExecutionError(msg) from e

            result = response.json()
            status = result.get("status") or {}
            outcomes.append(
                CaseOutcome(
                    passed=status.get("id") == _JUDGE0_ACCEPTED,
                    output=result.get("stdout") or "",
                    error=result.get("stderr") or result.get("compile_output") or "",
                    time_s=float(result["time"]) if result.get("time") else None,
                )
            )

        logger.debug(
            "Judge0 ran %d test cases: %d passed",
            len(outcomes), sum(o.passed for o in outcomes),
        )
        return outcomes
