# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""Registry of supported language runtimes.

Each entry names the container that runs the language, the file name a
single-file submission is saved under, and how to build the shell command
that compiles (if needed) and runs it.
"""

import posixpath
import re
import shlex
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from codebox.config import EngineConfig
from codebox.exceptions import UnsupportedLanguageError

JAVA_FALLBACK_CLASS = "Main"

_JAVA_PUBLIC_CLASS = re.compile(r"public\s+(?:final\s+|abstract\s+)*class\s+(\w+)")
_JAVA_PACKAGE = re.compile(r"^\s*package\s+([\w.]+)\s*;", re.MULTILINE)


@dataclass(frozen=True)
class RunContext:
    """Everything a command template needs for one run.

    Attributes:
        workspace: Absolute workspace path inside the container.
        main_file: Entry point, relative to the workspace.
        sources: Every file of the run, relative to the workspace.
        main_source: Text of the entry point.
        dependency_dir: Directory holding installed third-party packages.
        library_dir: Directory holding project-provided libraries.
    """

    workspace: str
    main_file: str
    sources: Sequence[str] = ()
    main_source: str = ""
    dependency_dir: str | None = None
    library_dir: str | None = None


def java_class_name(source: str) -> str:
    """Name of the public class declared in ``source``, or ``Main``."""
    match = _JAVA_PUBLIC_CLASS.search(source)
    return match.group(1) if match else JAVA_FALLBACK_CLASS


def _python_command(ctx: RunContext) -> str:
    path = [shlex.quote(ctx.workspace)]
    if ctx.dependency_dir:
        path.append(shlex.quote(posixpath.join(ctx.dependency_dir, "site-packages")))
    pythonpath = ":".join(path) + ":$PYTHONPATH"
    return f"cd {shlex.quote(ctx.workspace)} && PYTHONPATH={pythonpath} python3 -u {shlex.quote(ctx.main_file)}"


def _javascript_command(ctx: RunContext) -> str:
    env = ""
    if ctx.dependency_dir:
        node_modules = shlex.quote(posixpath.join(ctx.dependency_dir, "node_modules"))
        env = f"NODE_PATH={node_modules}:$NODE_PATH "
    return f"cd {shlex.quote(ctx.workspace)} && {env}node {shlex.quote(ctx.main_file)}"


def _java_command(ctx: RunContext) -> str:
    class_name = java_class_name(ctx.main_source)
    package = _JAVA_PACKAGE.search(ctx.main_source)
    if package:
        class_name = f"{package.group(1)}.{class_name}"

    java_files = [s for s in ctx.sources if s.endswith(".java")] or [ctx.main_file]
    classpath = "."
    if ctx.library_dir:
        classpath = f".:{posixpath.join(ctx.library_dir, '*')}"
    cp = shlex.quote(classpath)
    files = " ".join(shlex.quote(f) for f in java_files)
    return (
        f"cd {shlex.quote(ctx.workspace)} && javac -cp {cp} -d . {files} && "
        f"java -cp {cp} {shlex.quote(class_name)}"
    )


def _cpp_command(ctx: RunContext) -> str:
    cpp_files = [s for s in ctx.sources if s.endswith((".cpp", ".cc", ".cxx"))] or [ctx.main_file]
    files = " ".join(shlex.quote(f) for f in cpp_files)
    lib = run = ""
    if ctx.library_dir:
        library_dir = shlex.quote(ctx.library_dir)
        lib = f"-L{library_dir} "
        # Linked shared objects are loaded from the same dir at run time
        run = f"LD_LIBRARY_PATH={library_dir}:$LD_LIBRARY_PATH "
    return f"cd {shlex.quote(ctx.workspace)} && g++ -std=c++20 -I. {lib}-o main {files} && {run}./main"


@dataclass(frozen=True)
class LanguageRuntime:
    """A supported language and how to run it.

    Attributes:
        id: Canonical language identifier.
        container_ref: Long-lived container serving this language.
        image: Image used for per-execution containers.
        default_file_name: File name for single-file submissions.
        command_builder: Builds the shell command for a ``RunContext``.
        aliases: Alternative identifiers accepted by ``resolve``.
        compiled: Whether the command compiles before running.
        derives_file_name: Whether the file name comes from the declared class.
    """

    id: str
    container_ref: str
    image: str
    default_file_name: str
    command_builder: Callable[[RunContext], str]
    aliases: tuple[str, ...] = ()
    compiled: bool = False
    derives_file_name: bool = False

    def source_file_name(self, code: str) -> str:
        """File name a single-file submission must be saved under."""
        if self.derives_file_name:
            return f"{java_class_name(code)}.java"
        return self.default_file_name

    def build_run_command(self, context: RunContext) -> str:
        return self.command_builder(context)


class RuntimeRegistry:
    """Immutable lookup from language identifier to ``LanguageRuntime``."""

    def __init__(self, runtimes: Sequence[LanguageRuntime]):
        entries: dict[str, LanguageRuntime] = {}
        for runtime in runtimes:
            for key in (runtime.id, *runtime.aliases):
                key = key.lower()
                if key in entries:
                    raise ValueError(f"Duplicate runtime identifier: {key}")
                entries[key] = runtime
        self._entries = entries
        self._runtimes = tuple(runtimes)

    @classmethod
    def from_config(cls, config: EngineConfig) -> "RuntimeRegistry":
        def entry(language: str, **kwargs: object) -> LanguageRuntime:
            return LanguageRuntime(
                id=language,
                container_ref=config.container_name(language),
                image=config.image_name(language),
                **kwargs,  # type: ignore[arg-type]
            )

        return cls(
            [
                entry(
                    "python",
                    default_file_name="main.py",
                    command_builder=_python_command,
                ),
                entry(
                    "javascript",
                    default_file_name="main.js",
                    command_builder=_javascript_command,
                    aliases=("js",),
                ),
                entry(
                    "java",
                    default_file_name=f"{JAVA_FALLBACK_CLASS}.java",
                    command_builder=_java_command,
                    compiled=True,
                    derives_file_name=True,
                ),
                entry(
                    "cpp",
                    default_file_name="main.cpp",
                    command_builder=_cpp_command,
                    aliases=("c++",),
                    compiled=True,
                ),
            ]
        )

    def resolve(self, language: str) -> LanguageRuntime:
        """Look up the runtime for ``language``.

        Raises:
            UnsupportedLanguageError: If no runtime is registered under that identifier.
        """
        runtime = self._entries.get(language.strip().lower())
        if runtime is None:
            raise UnsupportedLanguageError(language)
        return runtime

    def languages(self) -> list[str]:
        return [runtime.id for runtime in self._runtimes]
