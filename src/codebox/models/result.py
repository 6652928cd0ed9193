# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""Data models for execution results and runtime health."""

from enum import Enum

from pydantic import BaseModel, ConfigDict

NO_OUTPUT_MARKER = "Code executed successfully (no output)"


class Outcome(str, Enum):
    SUCCESS = "success"
    EXECUTION_ERROR = "execution_error"
    TIMEOUT = "timeout"
    DEPENDENCY_ERROR = "dependency_error"
    INFRASTRUCTURE_ERROR = "infrastructure_error"
    UNSUPPORTED_LANGUAGE = "unsupported_language"
    INVALID_REQUEST = "invalid_request"


class ExecutionResult(BaseModel):
    """Represents the result of one execution request.

    Attributes:
        stdout: Trimmed standard output (empty for every failure outcome).
        stderr: Trimmed standard error, or the failure message.
        elapsed_ms: Wall-clock time spent on the request, in milliseconds.
        outcome: Classification of the run.
        exit_code: Exit code of the program when it was observed.
    """

    model_config = ConfigDict(frozen=True)

    stdout: str
    stderr: str
    elapsed_ms: int
    outcome: Outcome
    exit_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    @classmethod
    def failure(cls, outcome: Outcome, message: str, elapsed_ms: int, exit_code: int | None = None) -> "ExecutionResult":
        return cls(stdout="", stderr=message, elapsed_ms=elapsed_ms, outcome=outcome, exit_code=exit_code)

    def to_response(self) -> dict[str, str | int]:
        """Outbound ``{output, error, executionTime}`` shape."""
        return {
            "output": self.stdout,
            "error": self.stderr,
            "executionTime": self.elapsed_ms,
        }


class HealthStatus(BaseModel):
    available: bool
    message: str
