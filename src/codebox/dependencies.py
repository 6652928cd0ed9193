# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""Dependency installation with a per-project fingerprint cache.

Installed packages live in ``<dependency_root>/<project_id>/<language>``
together with a ``.dep_hash`` marker holding the fingerprint of the last
successful install. Concurrent installs for the same project are not
serialized; the last writer wins.
"""

import hashlib
import json
import posixpath
import shlex
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from codebox.exceptions import DependencyInstallError, ExecutionTimeoutError
from codebox.models import ExecutionRequest
from codebox.runtime import ContainerClient
from codebox.utils.logger import logger
from codebox.workspace import Workspace, WorkspaceManager

MARKER_FILE = ".dep_hash"
_VERSION_OPERATORS = ("==", "!=", "<=", ">=", "~=", "<", ">", "===")


def fingerprint(dependencies: Mapping[str, str], extra_artifacts: Iterable[str] | None = None) -> str:
    """Deterministic SHA-256 over a dependency set.

    Entries are sorted by name, so two maps with the same contents produce the
    same hash whatever their insertion order.
    """
    digest = hashlib.sha256()
    digest.update(json.dumps(sorted(dependencies.items()), separators=(",", ":")).encode("utf-8"))
    if extra_artifacts:
        digest.update(json.dumps(sorted(extra_artifacts), separators=(",", ":")).encode("utf-8"))
    return digest.hexdigest()


@dataclass(frozen=True)
class InstallOutcome:
    success: bool
    log: str = ""
    error: str = ""


@dataclass(frozen=True)
class PreparedDependencies:
    dependency_dir: str | None = None
    library_dir: str | None = None
    cached: bool = False


class ManifestInstaller(ABC):
    """Renders a language's dependency manifest and the command that installs it."""

    manifest: str

    @abstractmethod
    def render(self, existing: str, dependencies: Mapping[str, str]) -> str:
        """Merge ``dependencies`` into the existing manifest text."""
        pass  # pragma: no cover

    @abstractmethod
    def command(self, directory: str) -> list[str]:
        pass  # pragma: no cover


class RequirementsInstaller(ManifestInstaller):
    manifest = "requirements.txt"

    @staticmethod
    def requirement_line(name: str, version: str) -> str:
        version = version.strip()
        if not version or version == "*":
            line = name
        elif version.startswith(_VERSION_OPERATORS):
            line = f"{name}{version}"
        else:
            line = f"{name}=={version}"
        try:
            Requirement(line)
        except InvalidRequirement as e:
            raise ValueError(f"Invalid requirement {line!r}: {e}") from e
        return line

    def render(self, existing: str, dependencies: Mapping[str, str]) -> str:
        lines: dict[str, str] = {}
        for raw in existing.splitlines():
            raw = raw.strip()
            if not raw or raw.startswith("#"):
                continue
            try:
                lines[canonicalize_name(Requirement(raw).name)] = raw
            except InvalidRequirement:
                logger.warning(f"Dropping unparseable line from existing requirements: {raw}")
        for name, version in dependencies.items():
            lines[canonicalize_name(name)] = self.requirement_line(name, version)
        return "\n".join(lines[key] for key in sorted(lines)) + "\n"

    def command(self, directory: str) -> list[str]:
        target = posixpath.join(directory, "site-packages")
        return [
            "sh",
            "-c",
            f"cd {shlex.quote(directory)} && pip install --disable-pip-version-check --no-input "
            f"--upgrade --target {shlex.quote(target)} -r requirements.txt 2>&1",
        ]


class PackageJsonInstaller(ManifestInstaller):
    manifest = "package.json"

    def render(self, existing: str, dependencies: Mapping[str, str]) -> str:
        merged: dict[str, str] = {}
        if existing.strip():
            try:
                previous = json.loads(existing)
                merged.update(previous.get("dependencies") or {})
            except (json.JSONDecodeError, AttributeError):
                logger.warning("Existing package.json is not valid JSON; replacing it")
        merged.update({name: (version.strip() or "*") for name, version in dependencies.items()})
        package = {
            "name": "codebox-project",
            "version": "1.0.0",
            "private": True,
            "dependencies": dict(sorted(merged.items())),
        }
        return json.dumps(package, indent=2) + "\n"

    def command(self, directory: str) -> list[str]:
        return [
            "sh",
            "-c",
            f"cd {shlex.quote(directory)} && npm install --legacy-peer-deps --no-audit --no-fund 2>&1",
        ]


INSTALLERS: dict[str, ManifestInstaller] = {
    "python": RequirementsInstaller(),
    "javascript": PackageJsonInstaller(),
}


class DependencyCacheManager:
    """Installs third-party dependencies into a runtime container, skipping
    installs whose fingerprint is already recorded for the project."""

    def __init__(
        self,
        client: ContainerClient,
        workspaces: WorkspaceManager,
        dependency_root: str = "/dependencies",
        library_root: str = "/custom-libs",
        install_timeout: float = 120.0,
    ):
        self.client = client
        self.workspaces = workspaces
        self.dependency_root = dependency_root
        self.library_root = library_root
        self.install_timeout = install_timeout

    def dependency_dir(self, language: str, workspace: Workspace, project_id: str | None = None) -> str:
        if project_id:
            return posixpath.join(self.dependency_root, project_id, language)
        return workspace.join(".deps")

    def library_dir(self, project_id: str) -> str:
        return posixpath.join(self.library_root, project_id)

    def supports(self, language: str) -> bool:
        return language in INSTALLERS

    async def is_installed(self, container_ref: str, project_id: str, language: str, dependency_hash: str) -> bool:
        marker = posixpath.join(self.dependency_root, project_id, language, MARKER_FILE)
        result = await self.client.run_command(container_ref, ["cat", marker])
        if not result.succeeded:
            logger.info(f"Dependencies not cached yet for project {project_id} ({language})")
            return False
        return result.stdout.strip() == dependency_hash

    async def mark_installed(self, container_ref: str, project_id: str, language: str, dependency_hash: str) -> None:
        directory = Workspace(container_ref, posixpath.join(self.dependency_root, project_id, language))
        await self.client.run_command(container_ref, ["mkdir", "-p", directory.path])
        if await self.workspaces.write_file(directory, MARKER_FILE, dependency_hash + "\n"):
            logger.info(f"Dependencies marked as installed for project {project_id} ({language})")

    async def prepare_libraries(self, container_ref: str, project_id: str, libraries: Iterable[str]) -> str:
        directory = self.library_dir(project_id)
        result = await self.client.run_command(container_ref, ["mkdir", "-p", directory])
        if not result.succeeded:
            logger.warning(f"Failed to create library directory {directory}: {result.stderr.strip()}")
        logger.info(f"Custom library directory ready: {directory} ({len(list(libraries))} libraries)")
        return directory

    async def install(
        self,
        container_ref: str,
        workspace: Workspace,
        language: str,
        dependencies: Mapping[str, str],
        project_id: str | None = None,
    ) -> InstallOutcome:
        """Write the language's manifest and run its package installer.

        Languages without a supported manifest format succeed as a no-op.
        """
        installer = INSTALLERS.get(language)
        if installer is None:
            message = f"Dependency installation is not supported for {language}; skipping"
            logger.info(message)
            return InstallOutcome(success=True, log=message)

        directory = Workspace(container_ref, self.dependency_dir(language, workspace, project_id))
        await self.client.run_command(container_ref, ["mkdir", "-p", directory.path])

        existing = await self.client.run_command(container_ref, ["cat", directory.join(installer.manifest)])
        try:
            manifest = installer.render(existing.stdout if existing.succeeded else "", dependencies)
        except ValueError as e:
            return InstallOutcome(success=False, error=str(e))

        if not await self.workspaces.write_file(directory, installer.manifest, manifest):
            return InstallOutcome(success=False, error=f"could not write {installer.manifest}")

        logger.info(f"Installing {len(dependencies)} {language} dependencies in {directory.path}")
        try:
            result = await self.client.run_command(
                container_ref, installer.command(directory.path), timeout=self.install_timeout
            )
        except ExecutionTimeoutError:
            logger.error(f"Dependency install timed out after {self.install_timeout:g}s")
            return InstallOutcome(success=False, error=f"install timed out after {self.install_timeout:g} seconds")

        log = (result.stdout + result.stderr).strip()
        if not result.succeeded:
            logger.error(f"Dependency install failed with exit code {result.exit_code}")
            return InstallOutcome(success=False, log=log, error=log or f"installer exited with code {result.exit_code}")

        logger.info("Dependencies installed successfully")
        return InstallOutcome(success=True, log=log)

    async def ensure(self, container_ref: str, workspace: Workspace, language: str, request: ExecutionRequest) -> PreparedDependencies:
        """Install-or-skip the request's dependencies and custom libraries.

        Raises:
            DependencyInstallError: If the installer fails.
        """
        dependencies = request.dependencies or {}
        project_id = request.project_id
        library_dir = self.library_dir(project_id) if project_id and request.custom_libraries else None
        dependency_dir = (
            self.dependency_dir(language, workspace, project_id) if dependencies and self.supports(language) else None
        )

        dependency_hash = None
        if project_id:
            dependency_hash = fingerprint(dependencies, request.custom_libraries)
            if await self.is_installed(container_ref, project_id, language, dependency_hash):
                logger.info(f"Using cached dependencies for project {project_id}")
                return PreparedDependencies(dependency_dir, library_dir, cached=True)
            logger.info(f"Installing dependencies for project {project_id}")

        if dependencies:
            outcome = await self.install(container_ref, workspace, language, dependencies, project_id)
            if not outcome.success:
                raise DependencyInstallError(outcome.error, outcome.log)

        if library_dir and project_id and request.custom_libraries:
            await self.prepare_libraries(container_ref, project_id, request.custom_libraries)

        if project_id and dependency_hash:
            await self.mark_installed(container_ref, project_id, language, dependency_hash)

        return PreparedDependencies(dependency_dir, library_dir)
