# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

import asyncio
import socket
from typing import Any

import docker
from docker.errors import DockerException, NotFound

from codebox.exceptions import ContainerNotFoundError, ContainerRuntimeError
from codebox.runtime import ContainerClient, ContainerState, ExecStream
from codebox.utils.logger import logger

_READ_CHUNK = 64 * 1024


class DockerExecStream(ExecStream):
    """
    Hijacked exec connection returned by ``exec_start(socket=True)``.
    """

    def __init__(self, sock: Any):
        self._wrapper = sock
        # docker-py hands back a SocketIO wrapper on unix sockets
        self._sock: socket.socket = getattr(sock, "_sock", sock)
        self._closed = False

    async def write(self, data: bytes) -> None:
        try:
            await asyncio.to_thread(self._sock.sendall, data)
        except OSError as e:
            raise ContainerRuntimeError(f"Failed to write to exec stdin: {e}") from e

    async def close_stdin(self) -> None:
        try:
            await asyncio.to_thread(self._sock.shutdown, socket.SHUT_WR)
        except OSError as e:
            # The process may already have exited and closed its end
            logger.debug(f"Half-close of exec stdin failed: {e}")

    def _read_blocking(self) -> bytes:
        chunks = bytearray()
        while True:
            try:
                chunk = self._sock.recv(_READ_CHUNK)
            except OSError:
                if self._closed:
                    break
                raise
            if not chunk:
                break
            chunks += chunk
        return bytes(chunks)

    async def read_all(self) -> bytes:
        try:
            return await asyncio.to_thread(self._read_blocking)
        except OSError as e:
            raise ContainerRuntimeError(f"Failed to read exec output: {e}") from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            # shutdown wakes a reader blocked in recv on another thread
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            self._wrapper.close()
        except OSError as e:
            logger.warning(f"Error closing exec stream: {e}")


class DockerContainerClient(ContainerClient):
    """
    Docker-based implementation of the ContainerClient boundary.

    All docker-py calls are blocking and are offloaded to worker threads.
    """

    def __init__(self, client: docker.DockerClient | None = None, base_url: str | None = None):
        self._client = client
        self._base_url = base_url

    def _connect(self) -> docker.DockerClient:
        if self._client is None:
            try:
                if self._base_url:
                    self._client = docker.DockerClient(base_url=self._base_url)
                else:
                    self._client = docker.from_env()
            except DockerException as e:
                logger.error(f"Failed to connect to Docker: {e}")
                raise ContainerRuntimeError(str(e)) from e
        return self._client

    async def _connected(self) -> docker.DockerClient:
        if self._client is not None:
            return self._client
        # Client construction negotiates the API version with the daemon
        return await asyncio.to_thread(self._connect)

    async def ping(self) -> bool:
        client = await self._connected()
        try:
            return bool(await asyncio.to_thread(client.ping))
        except DockerException as e:
            raise ContainerRuntimeError(str(e)) from e

    async def inspect(self, container_ref: str) -> ContainerState:
        client = await self._connected()
        try:
            info = await asyncio.to_thread(client.api.inspect_container, container_ref)
        except NotFound as e:
            raise ContainerNotFoundError(container_ref) from e
        except DockerException as e:
            raise ContainerRuntimeError(f"Failed to inspect container {container_ref}: {e}") from e

        state = info.get("State") or {}
        return ContainerState(running=bool(state.get("Running")), status=str(state.get("Status", "unknown")))

    async def start(self, container_ref: str) -> None:
        client = await self._connected()
        logger.info(f"Starting container {container_ref}")
        try:
            await asyncio.to_thread(client.api.start, container_ref)
        except NotFound as e:
            raise ContainerNotFoundError(container_ref) from e
        except DockerException as e:
            logger.error(f"Failed to start container {container_ref}: {e}")
            raise ContainerRuntimeError(f"Failed to start container {container_ref}: {e}") from e

    async def create_exec(self, container_ref: str, command: list[str], attach_stdin: bool = False) -> str:
        client = await self._connected()
        try:
            created = await asyncio.to_thread(
                client.api.exec_create,
                container_ref,
                command,
                stdout=True,
                stderr=True,
                stdin=attach_stdin,
                tty=False,
            )
        except NotFound as e:
            raise ContainerNotFoundError(container_ref) from e
        except DockerException as e:
            raise ContainerRuntimeError(f"Failed to create exec in {container_ref}: {e}") from e
        return str(created["Id"])

    async def start_exec(self, exec_id: str) -> ExecStream:
        client = await self._connected()
        try:
            sock = await asyncio.to_thread(client.api.exec_start, exec_id, socket=True)
        except DockerException as e:
            raise ContainerRuntimeError(f"Failed to start exec {exec_id}: {e}") from e
        return DockerExecStream(sock)

    async def exec_exit_code(self, exec_id: str) -> int | None:
        client = await self._connected()
        try:
            info = await asyncio.to_thread(client.api.exec_inspect, exec_id)
        except DockerException as e:
            logger.warning(f"Failed to inspect exec {exec_id}: {e}")
            return None
        if info.get("Running"):
            return None
        exit_code = info.get("ExitCode")
        return int(exit_code) if exit_code is not None else None

    async def run_container(self, image: str, mem_limit: str, cpu_limit: float, network_mode: str) -> str:
        client = await self._connected()
        logger.info(f"Booting execution container from image {image}")
        try:
            container = await asyncio.to_thread(
                client.containers.run,
                image,
                command="tail -f /dev/null",
                detach=True,
                network_mode=network_mode,
                mem_limit=mem_limit,
                nano_cpus=int(cpu_limit * 1e9),
                remove=True,
            )
        except DockerException as e:
            logger.error(f"Failed to boot execution container: {e}")
            raise ContainerRuntimeError(f"Failed to boot container from {image}: {e}") from e
        logger.info(f"Execution container started: {container.short_id}")
        return str(container.id)

    async def remove_container(self, container_ref: str) -> None:
        client = await self._connected()
        logger.info(f"Terminating execution container {container_ref}")
        try:
            await asyncio.to_thread(client.api.kill, container_ref)
        except NotFound:
            logger.debug(f"Container {container_ref} already gone")
        except DockerException as e:
            logger.warning(f"Error terminating container {container_ref}: {e}")

    async def close(self) -> None:
        if self._client is not None:
            await asyncio.to_thread(self._client.close)
            self._client = None
