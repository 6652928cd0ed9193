# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass

from codebox.demux import demux
from codebox.exceptions import ExecutionTimeoutError


@dataclass(frozen=True)
class ContainerState:
    running: bool
    status: str


@dataclass(frozen=True)
class CommandResult:
    stdout: str
    stderr: str
    exit_code: int | None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


class ExecStream(ABC):
    """Bidirectional byte stream attached to a running exec.

    Reads return the raw multiplexed frames; see ``codebox.demux``.
    """

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """Send bytes to the process's stdin."""
        pass  # pragma: no cover

    @abstractmethod
    async def close_stdin(self) -> None:
        """Half-close the input side so the process observes EOF."""
        pass  # pragma: no cover

    @abstractmethod
    async def read_all(self) -> bytes:
        """Read until the process closes its output."""
        pass  # pragma: no cover

    @abstractmethod
    async def close(self) -> None:
        """Forcibly tear down the stream. Safe to call more than once."""
        pass  # pragma: no cover

    async def communicate(self, data: bytes | None = None) -> bytes:
        """Feed ``data`` to stdin while draining output, then read to the end.

        Output is read concurrently with the write so a process that echoes
        its input cannot stall on a full pipe. When ``data`` is not None,
        stdin is half-closed after it has been written.

        Args:
            data: Bytes for stdin, or None to leave stdin untouched.

        Returns:
            bytes: The raw multiplexed output.
        """
        reader = asyncio.ensure_future(self.read_all())
        try:
            if data is not None:
                if data:
                    await self.write(data)
                await self.close_stdin()
            return await reader
        finally:
            if not reader.done():
                reader.cancel()


class ContainerClient(ABC):
    """
    Abstract boundary to a container runtime (e.g., Docker).
    Follows the Strategy Pattern; the engine only talks to this interface.
    """

    @abstractmethod
    async def ping(self) -> bool:
        """Check that the container runtime is reachable.

        Returns:
            bool: True if the daemon answered.

        Raises:
            ContainerRuntimeError: If the daemon cannot be reached.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def inspect(self, container_ref: str) -> ContainerState:
        """Report the state of a container.

        Args:
            container_ref: Name or id of the container.

        Returns:
            ContainerState: Whether the container is running, and its status string.

        Raises:
            ContainerNotFoundError: If no such container exists.
            ContainerRuntimeError: If the runtime call fails.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def start(self, container_ref: str) -> None:
        """Start a stopped container.

        Raises:
            ContainerRuntimeError: If the runtime call fails.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def create_exec(self, container_ref: str, command: list[str], attach_stdin: bool = False) -> str:
        """Create an exec instance inside a running container.

        Args:
            container_ref: Name or id of the container.
            command: Argument vector to run.
            attach_stdin: Whether stdin should be attached.

        Returns:
            str: The exec id.

        Raises:
            ContainerRuntimeError: If the runtime call fails.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def start_exec(self, exec_id: str) -> ExecStream:
        """Start an exec and hijack its connection.

        Raises:
            ContainerRuntimeError: If the runtime call fails.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def exec_exit_code(self, exec_id: str) -> int | None:
        """Exit code of a finished exec, or None if it is still running or unknown."""
        pass  # pragma: no cover

    @abstractmethod
    async def run_container(self, image: str, mem_limit: str, cpu_limit: float, network_mode: str) -> str:
        """Boot a detached, idle container from ``image``.

        Returns:
            str: The container id.

        Raises:
            ContainerRuntimeError: If the container cannot be created.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def remove_container(self, container_ref: str) -> None:
        """Kill and remove a container."""
        pass  # pragma: no cover

    async def close(self) -> None:
        """Release client resources."""
        return None

    async def run_command(
        self,
        container_ref: str,
        command: list[str],
        stdin: bytes | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run a command to completion and collect its demultiplexed output.

        Args:
            container_ref: Name or id of the container.
            command: Argument vector to run.
            stdin: Bytes to feed on stdin; stdin is half-closed afterwards.
            timeout: Optional wall-clock limit in seconds.

        Returns:
            CommandResult: stdout, stderr and exit code.

        Raises:
            ExecutionTimeoutError: If ``timeout`` expires.
            ContainerRuntimeError: If a runtime call fails.
        """
        exec_id = await self.create_exec(container_ref, command, attach_stdin=stdin is not None)
        stream = await self.start_exec(exec_id)
        try:
            try:
                raw = await asyncio.wait_for(stream.communicate(stdin), timeout=timeout)
            except asyncio.TimeoutError as e:
                raise ExecutionTimeoutError(timeout or 0) from e
        finally:
            await stream.close()

        output = demux(raw)
        exit_code = await self.exec_exit_code(exec_id)
        return CommandResult(stdout=output.stdout, stderr=output.stderr, exit_code=exit_code)
