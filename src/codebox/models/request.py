# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""Inbound execution request models."""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def validate_relative_name(name: str) -> str:
    """Reject names that would escape the workspace.

    Args:
        name: A ``/``-separated relative path.

    Returns:
        str: The unchanged name.

    Raises:
        ValueError: If the name is absolute, empty, or contains empty or ``..`` segments.
    """
    if not name or name.startswith("/"):
        raise ValueError(f"File name must be a non-empty relative path: {name!r}")
    parts = name.split("/")
    if any(part in ("", ".", "..") for part in parts):
        raise ValueError(f"File name contains an empty or relative segment: {name!r}")
    if "\x00" in name:
        raise ValueError("File name contains a NUL byte")
    return name


class ProjectFile(BaseModel):
    """A single source file of a multi-file project.

    Attributes:
        name: Relative, ``/``-separated path inside the workspace.
        content: File contents.
    """

    name: str
    content: str

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        return validate_relative_name(value)


class ExecutionRequest(BaseModel):
    """A request to run code in a language runtime.

    Attributes:
        language: Language identifier (e.g. ``python``, ``java``).
        code: Source of a single-file program.
        files: Files of a multi-file project.
        main_file: Entry point of a multi-file project; must name one of ``files``.
        stdin: Optional program input, sent followed by a newline.
        dependencies: Package name to version specifier (``*`` for any).
        project_id: Scope for the dependency cache; one path segment other than ``.`` or ``..``.
        custom_libraries: Identifiers of project-provided libraries.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    language: str
    code: str | None = None
    files: list[ProjectFile] | None = None
    main_file: str | None = Field(default=None, alias="mainFile")
    stdin: str | None = Field(default=None, alias="input")
    dependencies: dict[str, str] | None = None
    project_id: str | None = Field(default=None, alias="projectId", pattern=r"^[A-Za-z0-9_.-]+$")
    custom_libraries: list[str] | None = Field(default=None, alias="customLibraries")

    @field_validator("project_id")
    @classmethod
    def _check_project_id(cls, value: str | None) -> str | None:
        # "." and ".." would resolve outside the dependency root
        if value is not None and set(value) == {"."}:
            raise ValueError("projectId must not consist only of dots")
        return value

    @model_validator(mode="after")
    def _check_shape(self) -> "ExecutionRequest":
        if self.files is None:
            if self.code is None:
                raise ValueError("Either 'code' or 'files' must be provided")
            return self
        if self.code is not None:
            raise ValueError("'code' and 'files' are mutually exclusive")
        if not self.files:
            raise ValueError("'files' must not be empty")
        if self.main_file is None:
            raise ValueError("'mainFile' is required when 'files' is provided")
        if self.main_file not in {f.name for f in self.files}:
            raise ValueError(f"'mainFile' {self.main_file!r} does not name an entry in 'files'")
        return self

    @property
    def is_project(self) -> bool:
        return self.files is not None

    @property
    def has_dependencies(self) -> bool:
        return bool(self.dependencies) or bool(self.custom_libraries)

    def main_source(self) -> str:
        """Source text of the entry point."""
        if self.files is None:
            return self.code or ""
        for f in self.files:
            if f.name == self.main_file:
                return f.content
        return ""  # pragma: no cover
