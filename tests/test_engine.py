# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

from unittest.mock import patch

import pytest

from codebox.config import EngineConfig
from codebox.engine import CodeExecutionEngine, CodeExecutionEngineAsync
from codebox.models import ExecutionRequest, Outcome

from conftest import FakeContainerClient


@pytest.mark.asyncio
async def test_execute_payload_success(config: EngineConfig, fake_client: FakeContainerClient) -> None:
    fake_client.on("node ", stdout=b"42\n")

    async with CodeExecutionEngineAsync(config, client=fake_client) as engine:
        response = await engine.execute_payload({"language": "javascript", "code": "console.log(42)"})

    assert response["output"] == "42"
    assert response["error"] == ""
    assert isinstance(response["executionTime"], int)
    # Caller-owned client stays open
    assert not fake_client.closed


@pytest.mark.asyncio
async def test_execute_payload_invalid(config: EngineConfig, fake_client: FakeContainerClient) -> None:
    engine = CodeExecutionEngineAsync(config, client=fake_client)

    response = await engine.execute_payload({"language": "python", "files": [{"name": "a.py", "content": ""}]})

    assert response["output"] == ""
    assert str(response["error"]).startswith("Invalid execution request:")
    assert "'mainFile' is required" in str(response["error"])
    assert fake_client.execs == []


@pytest.mark.asyncio
async def test_execute_payload_project(config: EngineConfig, fake_client: FakeContainerClient) -> None:
    fake_client.on("python3 -u", stdout=b"sum=3\n")
    engine = CodeExecutionEngineAsync(config, client=fake_client)

    response = await engine.execute_payload(
        {
            "language": "python",
            "files": [
                {"name": "main.py", "content": "from calc import add\nprint(f'sum={add(1, 2)}')"},
                {"name": "calc.py", "content": "def add(a, b):\n    return a + b\n"},
            ],
            "mainFile": "main.py",
            "input": None,
        }
    )

    assert response["output"] == "sum=3"


@pytest.mark.asyncio
async def test_internal_client_closed(config: EngineConfig, fake_client: FakeContainerClient) -> None:
    with patch("codebox.engine.EngineFactory.get_client", return_value=fake_client):
        engine = CodeExecutionEngineAsync(config)

    await engine.aclose()

    assert fake_client.closed


@pytest.mark.asyncio
async def test_health(config: EngineConfig, fake_client: FakeContainerClient) -> None:
    engine = CodeExecutionEngineAsync(config, client=fake_client)

    assert (await engine.health()).available


def test_sync_facade(config: EngineConfig, fake_client: FakeContainerClient) -> None:
    fake_client.on("python3 -u", stdout=b"sync\n")

    with CodeExecutionEngine(config, client=fake_client) as engine:
        result = engine.execute(ExecutionRequest(language="python", code="print('sync')"))
        response = engine.execute_payload({"language": "ruby", "code": "puts 1"})
        health = engine.health()

    assert result.outcome is Outcome.SUCCESS
    assert result.stdout == "sync"
    assert response["error"] == "Unsupported language: ruby"
    assert health.available
