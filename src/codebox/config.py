# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineConfig(BaseSettings):
    """
    Configuration for the code execution engine.
    """

    # "persistent" reuses one long-lived container per language,
    # "ephemeral" boots a fresh container for every execution.
    container_policy: Literal["persistent", "ephemeral"] = "persistent"
    container_prefix: str = "codebox"
    container_overrides: dict[str, str] = {}
    image_tag: str = "latest"

    single_file_timeout: float = 10.0
    multi_file_timeout: float = 15.0
    dependency_install_timeout: float = 120.0
    container_start_grace: float = 1.0

    workspace_root: str = "/tmp"
    dependency_root: str = "/dependencies"
    library_root: str = "/custom-libs"

    # Limits applied to per-execution containers only
    mem_limit: str = "256m"
    cpu_limit: float = 0.5
    network_mode: str = "none"

    enable_audit_logging: bool = True
    docker_base_url: str | None = None

    model_config = SettingsConfigDict(
        env_prefix="CODEBOX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def container_name(self, language: str) -> str:
        """Name of the long-lived container serving ``language``."""
        return self.container_overrides.get(language, f"{self.container_prefix}-{language}")

    def image_name(self, language: str) -> str:
        """Image used when booting a per-execution container for ``language``."""
        return f"{self.container_prefix}-{language}:{self.image_tag}"
