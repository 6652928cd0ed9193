# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

from codebox.config import EngineConfig
from codebox.containers import ContainerPolicy, EphemeralContainerPolicy, PersistentContainerPolicy
from codebox.coordinator import ExecutionCoordinator
from codebox.dependencies import DependencyCacheManager
from codebox.registry import RuntimeRegistry
from codebox.runtime import ContainerClient
from codebox.runtimes.docker import DockerContainerClient
from codebox.utils.audit import AuditLogger
from codebox.workspace import WorkspaceManager


class EngineFactory:
    """
    Factory to wire an ExecutionCoordinator from configuration.
    """

    @staticmethod
    def get_client(config: EngineConfig) -> ContainerClient:
        return DockerContainerClient(base_url=config.docker_base_url)

    @staticmethod
    def get_policy(config: EngineConfig, client: ContainerClient) -> ContainerPolicy:
        if config.container_policy == "persistent":
            return PersistentContainerPolicy(client, start_grace=config.container_start_grace)
        elif config.container_policy == "ephemeral":
            return EphemeralContainerPolicy(
                client,
                mem_limit=config.mem_limit,
                cpu_limit=config.cpu_limit,
                network_mode=config.network_mode,
            )
        else:
            # Unreachable: container_policy is a validated Literal
            raise ValueError(f"Unknown container policy: {config.container_policy}")  # pragma: no cover

    @staticmethod
    def get_coordinator(config: EngineConfig, client: ContainerClient | None = None) -> ExecutionCoordinator:
        """
        Returns a coordinator bound to ``client`` (a Docker client by default).
        """
        client = client or EngineFactory.get_client(config)
        workspaces = WorkspaceManager(client, root=config.workspace_root)
        dependencies = DependencyCacheManager(
            client,
            workspaces,
            dependency_root=config.dependency_root,
            library_root=config.library_root,
            install_timeout=config.dependency_install_timeout,
        )
        return ExecutionCoordinator(
            client=client,
            registry=RuntimeRegistry.from_config(config),
            containers=EngineFactory.get_policy(config, client),
            workspaces=workspaces,
            dependencies=dependencies,
            single_file_timeout=config.single_file_timeout,
            multi_file_timeout=config.multi_file_timeout,
            audit=AuditLogger(enabled=config.enable_audit_logging),
        )
