# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""
codebox
"""

__version__ = "0.1.0"

from .config import EngineConfig
from .coordinator import ExecutionCoordinator
from .demux import demux
from .dependencies import DependencyCacheManager, fingerprint
from .engine import CodeExecutionEngine, CodeExecutionEngineAsync
from .factory import EngineFactory
from .models import ExecutionRequest, ExecutionResult, HealthStatus, Outcome, ProjectFile
from .registry import LanguageRuntime, RuntimeRegistry
from .runtime import ContainerClient
from .runtimes.docker import DockerContainerClient
from .workspace import WorkspaceManager

__all__ = [
    "CodeExecutionEngine",
    "CodeExecutionEngineAsync",
    "ContainerClient",
    "DependencyCacheManager",
    "DockerContainerClient",
    "EngineConfig",
    "EngineFactory",
    "ExecutionCoordinator",
    "ExecutionRequest",
    "ExecutionResult",
    "HealthStatus",
    "LanguageRuntime",
    "Outcome",
    "ProjectFile",
    "RuntimeRegistry",
    "WorkspaceManager",
    "demux",
    "fingerprint",
]
