from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

_LOGGER = logging.getLogger("scvibe.settings")

ReapScope = Literal["children", "system"]
REAP_SCOPES: tuple[ReapScope, ...] = ("children", "system")

DEFAULT_BOOT_TIMEOUT = 30.0
DEFAULT_PORT = 57110


def _env_str(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = _env_str(env, name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        _LOGGER.warning("Ignoring invalid %s=%r; using %s", name, value, default)
        return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = _env_str(env, name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        _LOGGER.warning("Ignoring invalid %s=%r; using %s", name, value, default)
        return default
    if parsed <= 0:
        _LOGGER.warning("Ignoring non-positive %s=%r; using %s", name, value, default)
        return default
    return parsed


def _env_flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = _env_str(env, name)
    if value is None:
        return default
    return value.lower() not in {"0", "false", "no", "off"}


def _env_scope(env: Mapping[str, str], name: str, default: ReapScope) -> ReapScope:
    value = _env_str(env, name)
    if value is None:
        return default
    lowered = value.lower()
    for scope in REAP_SCOPES:
        if scope == lowered:
            return scope
    _LOGGER.warning("Ignoring invalid %s=%r; using %s", name, value, default)
    return default


class EngineSettings(BaseModel):
    """Fixed engine configuration shared by the supervisor and the bindings."""

    host: str = "127.0.0.1"
    port: int = Field(default=DEFAULT_PORT, gt=0, lt=65536)
    boot_timeout: float = Field(default=DEFAULT_BOOT_TIMEOUT, gt=0.0)
    num_input_bus_channels: int = Field(default=0, ge=0)
    num_output_bus_channels: int = Field(default=2, ge=1)
    sample_rate: int = Field(default=48000, gt=0)
    block_size: int = Field(default=512, gt=0)
    sclang_path: str | None = None
    scsynth_path: str | None = None
    log_dir: str | None = None
    renderer_fallback: bool = True
    interpreter_fallback: bool = False
    reap_scope: ReapScope = "children"
    exit_on_fatal: bool = False
    stub_only: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> EngineSettings:
        source = os.environ if env is None else env
        return cls(
            host=_env_str(source, "SCVIBE_HOST") or "127.0.0.1",
            port=_env_int(source, "SCVIBE_PORT", DEFAULT_PORT),
            boot_timeout=_env_float(source, "SCVIBE_BOOT_TIMEOUT", DEFAULT_BOOT_TIMEOUT),
            sample_rate=_env_int(source, "SCVIBE_SAMPLE_RATE", 48000),
            block_size=_env_int(source, "SCVIBE_BLOCK_SIZE", 512),
            sclang_path=_env_str(source, "SCVIBE_SCLANG_PATH"),
            scsynth_path=_env_str(source, "SCVIBE_SCSYNTH_PATH"),
            log_dir=_env_str(source, "SCVIBE_LOG_DIR"),
            renderer_fallback=_env_flag(source, "SCVIBE_RENDERER_FALLBACK", True),
            interpreter_fallback=_env_flag(source, "SCVIBE_INTERPRETER_FALLBACK", False),
            reap_scope=_env_scope(source, "SCVIBE_REAP_SCOPE", "children"),
            exit_on_fatal=_env_flag(source, "SCVIBE_EXIT_ON_FATAL", False),
            stub_only=_env_flag(source, "SCVIBE_STUB_ONLY", False),
        )
