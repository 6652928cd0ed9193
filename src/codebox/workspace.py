# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

import base64
import posixpath
import secrets
import shlex
import time
from collections.abc import Iterable
from dataclasses import dataclass

from codebox.models import ProjectFile
from codebox.runtime import ContainerClient
from codebox.utils.logger import logger

WORKSPACE_PREFIX = "codebox-exec"


@dataclass(frozen=True)
class Workspace:
    container_ref: str
    path: str

    def join(self, name: str) -> str:
        return posixpath.join(self.path, name)


def directory_prefixes(names: Iterable[str]) -> list[str]:
    """Every intermediate directory implied by ``/``-separated names, parents first."""
    prefixes: set[str] = set()
    for name in names:
        parts = name.split("/")[:-1]
        for i in range(1, len(parts) + 1):
            prefixes.add("/".join(parts[:i]))
    return sorted(prefixes, key=lambda p: (p.count("/"), p))


class WorkspaceManager:
    """Creates, fills and removes per-execution directories inside a container.

    File contents are base64-encoded on the host, streamed over the exec's
    stdin and decoded by ``base64 -d`` in the container, so no user content is
    ever part of a shell command line.

    Non-zero exits from ``mkdir``/write commands are logged and tolerated; a
    missing file later surfaces as an ordinary compile or runtime error.
    Transport failures raise ``ContainerRuntimeError``.
    """

    def __init__(self, client: ContainerClient, root: str = "/tmp"):
        self.client = client
        self.root = root

    def generate_path(self) -> str:
        """A fresh workspace path: millisecond timestamp plus a random suffix."""
        return posixpath.join(self.root, f"{WORKSPACE_PREFIX}-{time.time_ns() // 1_000_000}-{secrets.token_hex(8)}")

    async def create(self, container_ref: str) -> Workspace:
        workspace = Workspace(container_ref=container_ref, path=self.generate_path())
        logger.info(f"Creating workspace {workspace.path} in {container_ref}")
        result = await self.client.run_command(container_ref, ["mkdir", "-p", workspace.path])
        if not result.succeeded:
            logger.warning(f"mkdir for workspace {workspace.path} failed: {result.stderr.strip()}")
        return workspace

    async def write_file(self, workspace: Workspace, name: str, content: str) -> bool:
        """Write ``content`` to ``name`` (relative to the workspace).

        Returns:
            bool: True if the container reported a successful write.
        """
        target = workspace.join(name)
        encoded = base64.b64encode(content.encode("utf-8"))
        result = await self.client.run_command(
            workspace.container_ref,
            ["sh", "-c", f"base64 -d > {shlex.quote(target)}"],
            stdin=encoded,
        )
        if not result.succeeded:
            logger.warning(f"Failed to write {target}: {result.stderr.strip() or result.exit_code}")
            return False
        return True

    async def write_tree(self, workspace: Workspace, files: Iterable[ProjectFile]) -> list[str]:
        """Write a multi-file project, creating intermediate directories in one command.

        Returns:
            list[str]: Names of files that failed to write.
        """
        files = list(files)
        prefixes = directory_prefixes(f.name for f in files)
        if prefixes:
            result = await self.client.run_command(
                workspace.container_ref, ["mkdir", "-p", *(workspace.join(p) for p in prefixes)]
            )
            if not result.succeeded:
                logger.warning(f"Failed to create project directories in {workspace.path}: {result.stderr.strip()}")

        failed = []
        for f in files:
            if not await self.write_file(workspace, f.name, f.content):
                failed.append(f.name)
        return failed

    async def destroy(self, workspace: Workspace) -> None:
        """Remove the workspace. Never raises."""
        try:
            result = await self.client.run_command(workspace.container_ref, ["rm", "-rf", workspace.path])
            if not result.succeeded:
                logger.warning(f"Cleanup of {workspace.path} exited with {result.exit_code}: {result.stderr.strip()}")
        except Exception as e:
            logger.warning(f"Cleanup warning for {workspace.path}: {e}")
