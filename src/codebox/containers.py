# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

import asyncio
from abc import ABC, abstractmethod

from codebox.registry import LanguageRuntime
from codebox.runtime import ContainerClient
from codebox.utils.logger import logger


class ContainerPolicy(ABC):
    """
    Decides which container an execution runs in and what happens to it afterwards.
    """

    def __init__(self, client: ContainerClient):
        self.client = client

    @abstractmethod
    async def acquire(self, runtime: LanguageRuntime) -> str:
        """Return a running container for ``runtime``.

        Raises:
            ContainerNotFoundError: If the container has not been provisioned.
            ContainerRuntimeError: If the runtime cannot be reached.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def release(self, container_ref: str) -> None:
        """Hand the container back after the run. Never raises."""
        pass  # pragma: no cover


class PersistentContainerPolicy(ContainerPolicy):
    """Reuses one long-lived container per language, starting it if it is stopped."""

    def __init__(self, client: ContainerClient, start_grace: float = 1.0):
        super().__init__(client)
        self.start_grace = start_grace

    async def acquire(self, runtime: LanguageRuntime) -> str:
        container_ref = runtime.container_ref
        state = await self.client.inspect(container_ref)
        logger.debug(f"Container {container_ref} state: {state.status}")
        if not state.running:
            logger.info(f"Container {container_ref} is {state.status}; starting it")
            await self.client.start(container_ref)
            await asyncio.sleep(self.start_grace)
        return container_ref

    async def release(self, container_ref: str) -> None:
        return None


class EphemeralContainerPolicy(ContainerPolicy):
    """Boots a fresh, resource-limited container per execution and kills it afterwards."""

    def __init__(
        self,
        client: ContainerClient,
        mem_limit: str = "256m",
        cpu_limit: float = 0.5,
        network_mode: str = "none",
    ):
        super().__init__(client)
        self.mem_limit = mem_limit
        self.cpu_limit = cpu_limit
        self.network_mode = network_mode

    async def acquire(self, runtime: LanguageRuntime) -> str:
        return await self.client.run_container(
            runtime.image,
            mem_limit=self.mem_limit,
            cpu_limit=self.cpu_limit,
            network_mode=self.network_mode,
        )

    async def release(self, container_ref: str) -> None:
        try:
            await self.client.remove_container(container_ref)
        except Exception as e:
            logger.warning(f"Error terminating execution container {container_ref}: {e}")
