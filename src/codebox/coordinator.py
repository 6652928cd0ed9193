# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""End-to-end orchestration of a single execution request.

State machine::

    RESOLVING -> PREPARING -> RUNNING -> COLLECTING -> CLEANING -> TERMINAL

Concurrent requests against the same container are not serialized; each run
is isolated only by its own workspace directory.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum

from codebox.containers import ContainerPolicy
from codebox.demux import demux
from codebox.dependencies import DependencyCacheManager, PreparedDependencies
from codebox.exceptions import (
    ContainerNotFoundError,
    ContainerRuntimeError,
    DependencyInstallError,
    ExecutionTimeoutError,
    UnsupportedLanguageError,
)
from codebox.models import NO_OUTPUT_MARKER, ExecutionRequest, ExecutionResult, HealthStatus, Outcome
from codebox.registry import LanguageRuntime, RunContext, RuntimeRegistry
from codebox.runtime import ContainerClient
from codebox.utils.audit import AuditLogger
from codebox.utils.logger import logger
from codebox.workspace import Workspace, WorkspaceManager


class ExecutionState(str, Enum):
    RESOLVING = "resolving"
    PREPARING = "preparing"
    RUNNING = "running"
    COLLECTING = "collecting"
    CLEANING = "cleaning"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class RunOutput:
    stdout: str
    stderr: str
    exit_code: int | None


class ExecutionCoordinator:
    """Runs one ``ExecutionRequest`` at a time per call; safe to call concurrently."""

    def __init__(
        self,
        client: ContainerClient,
        registry: RuntimeRegistry,
        containers: ContainerPolicy,
        workspaces: WorkspaceManager,
        dependencies: DependencyCacheManager,
        single_file_timeout: float = 10.0,
        multi_file_timeout: float = 15.0,
        audit: AuditLogger | None = None,
    ):
        self.client = client
        self.registry = registry
        self.containers = containers
        self.workspaces = workspaces
        self.dependencies = dependencies
        self.single_file_timeout = single_file_timeout
        self.multi_file_timeout = multi_file_timeout
        self.audit = audit or AuditLogger(enabled=False)

    async def health(self) -> HealthStatus:
        try:
            await self.client.ping()
        except Exception as e:
            logger.error(f"Container runtime is not available: {e}")
            return HealthStatus(available=False, message=f"Container runtime is not available: {e}")
        return HealthStatus(available=True, message="Container runtime is running")

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """Run ``request`` and classify the outcome. Never raises."""
        started = time.monotonic()

        def elapsed() -> int:
            return int((time.monotonic() - started) * 1000)

        self._transition(ExecutionState.RESOLVING, request.language)
        try:
            runtime = self.registry.resolve(request.language)
        except UnsupportedLanguageError as e:
            logger.error(str(e))
            return ExecutionResult.failure(Outcome.UNSUPPORTED_LANGUAGE, str(e), elapsed())

        await self.audit.log_pre_execution(request)

        container_ref: str | None = None
        workspace: Workspace | None = None
        try:
            self._transition(ExecutionState.PREPARING, runtime.id)
            container_ref = await self.containers.acquire(runtime)
            workspace = await self.workspaces.create(container_ref)
            context = await self._prepare(runtime, request, workspace)

            timeout = self.multi_file_timeout if request.is_project else self.single_file_timeout
            output = await self._run(runtime, workspace, context, request.stdin, timeout)
            result = self._classify(output, elapsed())
        except ExecutionTimeoutError as e:
            logger.error(f"Execution timeout in {container_ref}: {e}")
            result = ExecutionResult.failure(Outcome.TIMEOUT, str(e), elapsed())
        except DependencyInstallError as e:
            logger.error(str(e))
            result = ExecutionResult.failure(Outcome.DEPENDENCY_ERROR, str(e), elapsed())
        except ContainerNotFoundError as e:
            logger.error(f"Container not found: {e.container_ref}")
            result = ExecutionResult.failure(Outcome.INFRASTRUCTURE_ERROR, str(e), elapsed())
        except ContainerRuntimeError as e:
            logger.error(f"Container runtime error: {e}")
            result = ExecutionResult.failure(
                Outcome.INFRASTRUCTURE_ERROR, f"Container runtime is not available: {e}", elapsed()
            )
        except Exception as e:
            logger.exception(f"Unexpected execution failure: {e}")
            result = ExecutionResult.failure(Outcome.INFRASTRUCTURE_ERROR, str(e) or "Execution failed", elapsed())
        finally:
            self._transition(ExecutionState.CLEANING, runtime.id)
            if workspace is not None:
                await self.workspaces.destroy(workspace)
            if container_ref is not None:
                await self.containers.release(container_ref)

        # Cleanup time is not billed to the run
        self._transition(ExecutionState.TERMINAL, result.outcome.value)
        logger.info(f"Execution finished: {result.outcome.value} in {result.elapsed_ms}ms")
        return result

    async def _prepare(self, runtime: LanguageRuntime, request: ExecutionRequest, workspace: Workspace) -> RunContext:
        if request.files is not None:
            await self.workspaces.write_tree(workspace, request.files)
            main_file = request.main_file or ""
            sources = [f.name for f in request.files]
        else:
            main_file = runtime.source_file_name(request.code or "")
            logger.info(f"Writing code to file: {main_file}")
            await self.workspaces.write_file(workspace, main_file, request.code or "")
            sources = [main_file]

        prepared = PreparedDependencies()
        if request.has_dependencies:
            prepared = await self.dependencies.ensure(workspace.container_ref, workspace, runtime.id, request)

        return RunContext(
            workspace=workspace.path,
            main_file=main_file,
            sources=sources,
            main_source=request.main_source(),
            dependency_dir=prepared.dependency_dir,
            library_dir=prepared.library_dir,
        )

    async def _run(
        self,
        runtime: LanguageRuntime,
        workspace: Workspace,
        context: RunContext,
        stdin: str | None,
        timeout: float,
    ) -> RunOutput:
        self._transition(ExecutionState.RUNNING, runtime.id)
        command = runtime.build_run_command(context)
        logger.info(f"Executing command: {command}")

        exec_id = await self.client.create_exec(workspace.container_ref, ["sh", "-c", command], attach_stdin=True)
        stream = await self.client.start_exec(exec_id)
        # Stdin is always half-closed so programs that read it see EOF
        payload = stdin.encode("utf-8") + b"\n" if stdin else b""
        try:
            self._transition(ExecutionState.COLLECTING, runtime.id)
            try:
                # The timeout covers the stdin write as well as the read
                raw = await asyncio.wait_for(stream.communicate(payload), timeout=timeout)
            except asyncio.TimeoutError as e:
                logger.error("Execution timeout; destroying stream")
                raise ExecutionTimeoutError(timeout) from e
        finally:
            await stream.close()

        output = demux(raw)
        exit_code = await self.client.exec_exit_code(exec_id)
        return RunOutput(stdout=output.stdout, stderr=output.stderr, exit_code=exit_code)

    @staticmethod
    def _classify(output: RunOutput, elapsed_ms: int) -> ExecutionResult:
        stdout = output.stdout.strip()
        stderr = output.stderr.strip()
        failed = bool(stderr) or (output.exit_code is not None and output.exit_code != 0)
        if failed:
            message = stderr or f"Process exited with code {output.exit_code}"
            return ExecutionResult.failure(Outcome.EXECUTION_ERROR, message, elapsed_ms, exit_code=output.exit_code)
        return ExecutionResult(
            stdout=stdout or NO_OUTPUT_MARKER,
            stderr="",
            elapsed_ms=elapsed_ms,
            outcome=Outcome.SUCCESS,
            exit_code=output.exit_code,
        )

    @staticmethod
    def _transition(state: ExecutionState, detail: str) -> None:
        logger.debug(f"[{state.value}] {detail}")
