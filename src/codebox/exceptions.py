# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""Exception hierarchy raised inside the engine.

The coordinator converts each of these into an ``ExecutionResult``; none of
them reach the caller of ``ExecutionCoordinator.execute``.
"""


class CodeboxError(Exception):
    """Base class for all engine errors."""


class UnsupportedLanguageError(CodeboxError):
    def __init__(self, language: str):
        self.language = language
        super().__init__(f"Unsupported language: {language}")


class ContainerRuntimeError(CodeboxError):
    """The container runtime could not be reached or rejected a call."""


class ContainerNotFoundError(ContainerRuntimeError):
    def __init__(self, container_ref: str):
        self.container_ref = container_ref
        super().__init__(
            f"Container {container_ref} not found. Provision it first (for example: docker compose up -d)."
        )


class DependencyInstallError(CodeboxError):
    def __init__(self, detail: str, log: str = ""):
        self.detail = detail
        self.log = log
        super().__init__(f"Dependency installation failed: {detail}")


class ExecutionTimeoutError(CodeboxError):
    def __init__(self, seconds: float):
        self.seconds = seconds
        super().__init__(f"Execution timed out (maximum {seconds:g} seconds allowed)")
