"""Server configuration for hostpulse."""

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from hostpulse.errors import ConfigError

ENV_PREFIX = "HOSTPULSE_"


class ServerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    host: str = "127.0.0.1"
    port: int = Field(default=3000, ge=1, le=65535)
    allowed_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    push_interval: float = Field(default=1.0, gt=0, le=60)
    metrics_ttl: float = Field(default=1.0, ge=0, le=60)
    processes_ttl: float = Field(default=30.0, ge=0, le=3600)
    system_info_ttl: float = Field(default=300.0, ge=0, le=86400)
    grace_period: float = Field(default=0.75, gt=0, le=30)
    process_limit: int = Field(default=10, ge=1, le=1000)
    process_mode: Literal["top", "rotating"] = "top"
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return level

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [o.strip() for o in v.split(",") if o.strip()]
        return v


def _from_environ(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for name in ServerConfig.model_fields:
        key = ENV_PREFIX + name.upper()
        if key in environ:
            overrides[name] = environ[key]
    return overrides


def load_config(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> ServerConfig:
    """
    Build the server configuration.

    Precedence, lowest first: defaults, JSON file at ``path``,
    ``HOSTPULSE_*`` environment variables, explicit keyword overrides
    (None values are ignored).
    """
    data: dict[str, Any] = {}
    if path:
        try:
            loaded = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ConfigError(f"Cannot read config file {path}.", path=path, reason=str(exc)) from exc
        if not isinstance(loaded, dict):
            raise ConfigError("Config file must hold a JSON object.", path=path)
        data.update(loaded)
    data.update(_from_environ(os.environ if environ is None else environ))
    data.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return ServerConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError("Invalid configuration.", errors=exc.errors()) from exc
