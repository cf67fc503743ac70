#!/usr/bin/env python3
"""
Pydantic models for utm-codex configuration.

A ProvisionConfig is built once at startup from defaults, environment, an
optional YAML file and CLI flags, then passed through the pipeline unchanged.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from utmcodex.errors import ConfigError
from utmcodex.paths import default_template_path, utm_app_path, utm_data_dir


class PollSettings(BaseModel):
    """How long to wait for the guest agent to report an address."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    attempts: int = Field(default=120, ge=1, description="Number of ip-address queries")
    interval_seconds: float = Field(default=5.0, ge=0, description="Delay between queries")


class GuestSettings(BaseModel):
    """Parameters of the PowerShell routine run inside the guest."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    runtime_package: str = Field(default="OpenJS.NodeJS.LTS", description="winget package id")
    cli_package: str = Field(default="@openai/codex", description="npm package to install")
    cli_command: str = Field(default="codex", description="Command used for the version check")
    ssh_capability: str = Field(default="OpenSSH.Server~~~~0.0.1.0")
    firewall_rule_name: str = Field(default="OpenSSH-Server-In-TCP")
    firewall_display_name: str = Field(default="OpenSSH Server (TCP-In)")
    ssh_port: int = Field(default=22, ge=1, le=65535)

    @field_validator(
        "runtime_package",
        "cli_package",
        "cli_command",
        "ssh_capability",
        "firewall_rule_name",
        "firewall_display_name",
    )
    @classmethod
    def must_be_powershell_literal(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("value cannot be empty")
        if "'" in v:
            raise ValueError("value cannot contain single quotes")
        return v.strip()

    @field_validator("cli_command")
    @classmethod
    def cli_command_is_one_word(cls, v: str) -> str:
        if len(v.split()) != 1:
            raise ValueError("cli_command must be a single word")
        return v


class ProvisionConfig(BaseModel):
    """Immutable settings for one provisioning run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    template: Path = Field(default_factory=default_template_path, description="Template VM bundle")
    name: str = Field(default="CodexWin", description="Name of the cloned VM")
    user: str = Field(default="codex", description="SSH user inside the guest")
    utm_app: Path = Field(default_factory=utm_app_path, description="UTM.app install path")
    utm_dir: Path = Field(default_factory=utm_data_dir, description="UTM VM library")
    force_install: bool = Field(default=False, description="Reinstall UTM even if present")
    ssh_connect_timeout: int = Field(default=10, ge=1)
    poll: PollSettings = Field(default_factory=PollSettings)
    guest: GuestSettings = Field(default_factory=GuestSettings)

    @field_validator("name")
    @classmethod
    def name_must_be_valid(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("VM name cannot be empty")
        if len(v) > 64:
            raise ValueError("VM name must be <= 64 characters")
        if "/" in v or v in (".", ".."):
            raise ValueError("VM name cannot contain path separators")
        return v

    @field_validator("user")
    @classmethod
    def user_must_be_valid(cls, v: str) -> str:
        v = v.strip()
        if not v or "@" in v or " " in v:
            raise ValueError("SSH user must be a single non-empty word")
        return v

    @field_validator("template", "utm_app", "utm_dir", mode="before")
    @classmethod
    def path_not_empty(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            raise ValueError("path cannot be empty")
        return v

    @field_validator("template", "utm_app", "utm_dir")
    @classmethod
    def expand_home(cls, v: Path) -> Path:
        return Path(v).expanduser()


def load_config_file(path: Path) -> Dict[str, Any]:
    """Read a YAML mapping of ProvisionConfig fields."""
    try:
        raw = yaml.safe_load(Path(path).expanduser().read_text())
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read config file {path}: {e}")

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must be a YAML mapping")
    return raw


def build_config(
    overrides: Optional[Dict[str, Any]] = None,
    config_file: Optional[Path] = None,
) -> ProvisionConfig:
    """Merge file values and *overrides* (None values ignored) into a config."""
    data: Dict[str, Any] = {}
    if config_file is not None:
        data.update(load_config_file(config_file))
    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value

    try:
        return ProvisionConfig.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigError(f"Invalid configuration: {problems}")
