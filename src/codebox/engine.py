# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

import time
from typing import Any

import anyio
from pydantic import ValidationError

from codebox.config import EngineConfig
from codebox.coordinator import ExecutionCoordinator
from codebox.factory import EngineFactory
from codebox.models import ExecutionRequest, ExecutionResult, HealthStatus, Outcome
from codebox.runtime import ContainerClient
from codebox.utils.logger import logger


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ()))
        message = item.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "Invalid execution request: " + "; ".join(parts)


class CodeExecutionEngineAsync:
    """Async-native execution service (The Core).

    Owns the container client and the coordinator built from it.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        client: ContainerClient | None = None,
    ):
        """Initializes the CodeExecutionEngineAsync service.

        Args:
            config: Configuration for the engine.
            client: Optional container client; a Docker client is created when omitted.
        """
        self.config = config or EngineConfig()
        self._internal_client = client is None
        self.client = client or EngineFactory.get_client(self.config)
        self.coordinator: ExecutionCoordinator = EngineFactory.get_coordinator(self.config, self.client)

    async def __aenter__(self) -> "CodeExecutionEngineAsync":
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        """Releases the container client if this engine created it."""
        await self.aclose()

    async def aclose(self) -> None:
        if self._internal_client:
            await self.client.close()

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """Runs a validated request.

        Args:
            request: The execution request.

        Returns:
            ExecutionResult: The classified result.
        """
        return await self.coordinator.execute(request)

    async def execute_payload(self, payload: dict[str, Any]) -> dict[str, str | int]:
        """Runs an inbound ``{language, code | files+mainFile, input, ...}`` payload.

        Args:
            payload: The request body as received from the HTTP layer.

        Returns:
            dict: The ``{output, error, executionTime}`` response shape.
        """
        started = time.monotonic()
        try:
            request = ExecutionRequest.model_validate(payload)
        except ValidationError as e:
            message = _describe_validation_error(e)
            logger.warning(message)
            elapsed_ms = int((time.monotonic() - started) * 1000)
            return ExecutionResult.failure(Outcome.INVALID_REQUEST, message, elapsed_ms).to_response()

        result = await self.execute(request)
        return result.to_response()

    async def health(self) -> HealthStatus:
        """Reports whether the container runtime is reachable."""
        return await self.coordinator.health()


class CodeExecutionEngine:
    """Sync Facade for CodeExecutionEngineAsync (The Facade).

    Wraps CodeExecutionEngineAsync and executes methods via anyio.run.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        client: ContainerClient | None = None,
    ):
        self._async = CodeExecutionEngineAsync(config, client)

    def __enter__(self) -> "CodeExecutionEngine":
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        anyio.run(self._async.__aexit__, exc_type, exc_val, exc_tb)

    def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """Runs a validated request synchronously."""
        return anyio.run(self._async.execute, request)

    def execute_payload(self, payload: dict[str, Any]) -> dict[str, str | int]:
        """Runs an inbound payload synchronously and returns the response shape."""
        return anyio.run(self._async.execute_payload, payload)

    def health(self) -> HealthStatus:
        return anyio.run(self._async.health)
