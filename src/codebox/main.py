# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

from typing import Any

from mcp.server.fastmcp import FastMCP
from mcp.types import TextContent

from codebox.engine import CodeExecutionEngineAsync

# Initialize Engine Logic
engine = CodeExecutionEngineAsync()

# Initialize MCP Server
mcp = FastMCP("codebox")


def _render(response: dict[str, Any]) -> list[TextContent]:
    output: list[TextContent] = []

    if response.get("output"):
        output.append(TextContent(type="text", text=f"OUTPUT:\n{response['output']}"))

    if response.get("error"):
        output.append(TextContent(type="text", text=f"ERROR:\n{response['error']}"))

    output.append(TextContent(type="text", text=f"Execution Time: {response.get('executionTime', 0)}ms"))
    return output


@mcp.tool()  # type: ignore[misc]
async def execute_code(language: str, code: str, input: str | None = None) -> list[TextContent]:
    """
    Run a single-file program in the language's runtime container.
    Returns captured output, error text and execution time.
    """
    payload: dict[str, Any] = {"language": language, "code": code}
    if input is not None:
        payload["input"] = input
    return _render(await engine.execute_payload(payload))


@mcp.tool()  # type: ignore[misc]
async def execute_project(
    language: str,
    files: list[dict[str, str]],
    main_file: str,
    input: str | None = None,
    dependencies: dict[str, str] | None = None,
    project_id: str | None = None,
    custom_libraries: list[str] | None = None,
) -> list[TextContent]:
    """
    Run a multi-file project. ``files`` is a list of {name, content}; ``main_file`` names the entry point.
    Dependencies are installed (and cached per project_id) before the run.
    """
    payload: dict[str, Any] = {
        "language": language,
        "files": files,
        "mainFile": main_file,
        "input": input,
        "dependencies": dependencies,
        "projectId": project_id,
        "customLibraries": custom_libraries,
    }
    return _render(await engine.execute_payload(payload))


@mcp.tool()  # type: ignore[misc]
async def runtime_status() -> dict[str, Any]:
    """
    Report whether the container runtime is reachable.
    """
    status = await engine.health()
    return status.model_dump()


def main() -> None:
    """Entry point for the MCP server."""
    mcp.run()


if __name__ == "__main__":  # pragma: no cover
    main()
