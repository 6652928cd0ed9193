# src/codebox/models/__init__.py

"""
Data models for the execution engine.
"""

from .request import ExecutionRequest, ProjectFile
from .result import NO_OUTPUT_MARKER, ExecutionResult, HealthStatus, Outcome

__all__ = [
    "ExecutionRequest",
    "ExecutionResult",
    "HealthStatus",
    "NO_OUTPUT_MARKER",
    "Outcome",
    "ProjectFile",
]
