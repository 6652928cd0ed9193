# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

import asyncio
import base64
import shlex
from dataclasses import dataclass, field
from typing import Any

import pytest

from codebox.config import EngineConfig
from codebox.coordinator import ExecutionCoordinator
from codebox.demux import STDERR, STDOUT, encode_frame
from codebox.exceptions import ContainerNotFoundError, ContainerRuntimeError
from codebox.factory import EngineFactory
from codebox.runtime import ContainerClient, ContainerState, ExecStream

LANGUAGE_CONTAINERS = ("codebox-python", "codebox-javascript", "codebox-java", "codebox-cpp")


@dataclass
class Rule:
    pattern: str
    stdout: bytes = b""
    stderr: bytes = b""
    exit_code: int = 0
    hang: bool = False
    block_write: bool = False
    raw: bytes | None = None


@dataclass
class ExecRecord:
    exec_id: str
    container_ref: str
    command: list[str]
    attach_stdin: bool
    stdin: bytes = b""
    stdin_closed: bool = False
    closed: bool = False
    rule: Rule | None = None

    @property
    def text(self) -> str:
        return " ".join(self.command)


class FakeExecStream(ExecStream):
    def __init__(self, client: "FakeContainerClient", record: ExecRecord):
        self.client = client
        self.record = record
        self._stdin_closed = asyncio.Event()

    async def write(self, data: bytes) -> None:
        rule = self.record.rule
        if rule is not None and rule.block_write:
            # Nothing drains the process's stdin
            await asyncio.sleep(3600)
        self.record.stdin += data

    async def close_stdin(self) -> None:
        self.record.stdin_closed = True
        self._stdin_closed.set()

    async def read_all(self) -> bytes:
        rule = self.record.rule
        if rule is not None and rule.hang:
            await asyncio.sleep(3600)
        if self.record.attach_stdin:
            await self._stdin_closed.wait()
        self.client.apply_filesystem(self.record)
        if rule is None:
            return self.client.builtin_output(self.record)
        if rule.raw is not None:
            return rule.raw
        return encode_frame(STDOUT, rule.stdout) + encode_frame(STDERR, rule.stderr)

    async def close(self) -> None:
        self.record.closed = True


@dataclass
class FakeContainerClient(ContainerClient):
    """In-memory container runtime.

    Commands are matched against registered rules by substring, newest rule
    first. ``base64 -d > path``, ``cat``, ``mkdir`` and ``rm -rf`` act on a
    small in-memory filesystem when no rule matches them.
    """

    containers: dict[str, bool] = field(default_factory=lambda: {name: True for name in LANGUAGE_CONTAINERS})
    available: bool = True
    rules: list[Rule] = field(default_factory=list)
    execs: list[ExecRecord] = field(default_factory=list)
    files: dict[str, bytes] = field(default_factory=dict)
    started: list[str] = field(default_factory=list)
    booted: list[dict[str, Any]] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    closed: bool = False
    fail_exec_on: str | None = None

    def on(self, pattern: str, **kwargs: Any) -> Rule:
        rule = Rule(pattern, **kwargs)
        self.rules.insert(0, rule)
        return rule

    def commands(self, pattern: str = "") -> list[ExecRecord]:
        return [record for record in self.execs if pattern in record.text]

    def _match(self, text: str) -> Rule | None:
        for rule in self.rules:
            if rule.pattern in text:
                return rule
        return None

    def apply_filesystem(self, record: ExecRecord) -> None:
        command = record.command
        if command[:2] == ["sh", "-c"] and command[2].startswith("base64 -d > "):
            path = shlex.split(command[2][len("base64 -d > ") :])[0]
            self.files[path] = base64.b64decode(record.stdin)
        elif command[:2] == ["rm", "-rf"]:
            for path in list(self.files):
                if path == command[2] or path.startswith(command[2] + "/"):
                    del self.files[path]

    def builtin_output(self, record: ExecRecord) -> bytes:
        if record.command[0] == "cat":
            content = self.files.get(record.command[1])
            if content is None:
                record.rule = Rule("cat", stderr=b"cat: No such file or directory", exit_code=1)
                return encode_frame(STDERR, record.rule.stderr)
            return encode_frame(STDOUT, content)
        return b""

    async def ping(self) -> bool:
        if not self.available:
            raise ContainerRuntimeError("Cannot connect to the Docker daemon")
        return True

    async def inspect(self, container_ref: str) -> ContainerState:
        if container_ref not in self.containers:
            raise ContainerNotFoundError(container_ref)
        running = self.containers[container_ref]
        return ContainerState(running=running, status="running" if running else "exited")

    async def start(self, container_ref: str) -> None:
        self.started.append(container_ref)
        self.containers[container_ref] = True

    async def create_exec(self, container_ref: str, command: list[str], attach_stdin: bool = False) -> str:
        if container_ref not in self.containers:
            raise ContainerNotFoundError(container_ref)
        text = " ".join(command)
        if self.fail_exec_on is not None and self.fail_exec_on in text:
            raise ContainerRuntimeError("connection reset by peer")
        record = ExecRecord(
            exec_id=f"exec-{len(self.execs)}",
            container_ref=container_ref,
            command=list(command),
            attach_stdin=attach_stdin,
            rule=self._match(text),
        )
        self.execs.append(record)
        return record.exec_id

    async def start_exec(self, exec_id: str) -> ExecStream:
        return FakeExecStream(self, self._record(exec_id))

    async def exec_exit_code(self, exec_id: str) -> int | None:
        record = self._record(exec_id)
        return record.rule.exit_code if record.rule is not None else 0

    async def run_container(self, image: str, mem_limit: str, cpu_limit: float, network_mode: str) -> str:
        container_id = f"ephemeral-{len(self.booted)}"
        self.booted.append(
            {"image": image, "mem_limit": mem_limit, "cpu_limit": cpu_limit, "network_mode": network_mode}
        )
        self.containers[container_id] = True
        return container_id

    async def remove_container(self, container_ref: str) -> None:
        self.removed.append(container_ref)
        self.containers.pop(container_ref, None)

    async def close(self) -> None:
        self.closed = True

    def _record(self, exec_id: str) -> ExecRecord:
        return next(record for record in self.execs if record.exec_id == exec_id)


@pytest.fixture
def fake_client() -> FakeContainerClient:
    return FakeContainerClient()


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig(container_start_grace=0.0, single_file_timeout=0.5, multi_file_timeout=0.5)


@pytest.fixture
def coordinator(config: EngineConfig, fake_client: FakeContainerClient) -> ExecutionCoordinator:
    return EngineFactory.get_coordinator(config, fake_client)
