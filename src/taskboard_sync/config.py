"""Load client settings from an optional YAML file plus ``TASKBOARD_*`` env vars."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

CONFIG_FILE = ".taskboard.yaml"
ENV_PREFIX = "TASKBOARD_"

# env var suffix -> settings field
_ENV_FIELDS = {
    "BASE_URL": "base_url",
    "TIMEOUT": "timeout_seconds",
    "UPDATE_FAILURE_POLICY": "update_failure_policy",
    "ORDERED_UPDATES": "ordered_updates",
    "LOG_LEVEL": "log_level",
}


class ClientSettings(BaseModel):
    base_url: str = "http://localhost:5000/api"
    timeout_seconds: float = Field(default=15.0, gt=0)
    update_failure_policy: Literal["refetch", "rollback"] = "refetch"
    ordered_updates: bool = True
    log_level: str = "INFO"


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for suffix, field_name in _ENV_FIELDS.items():
        raw = environ.get(ENV_PREFIX + suffix)
        if raw is not None and raw.strip() != "":
            out[field_name] = raw.strip()
    return out


def _load_yaml(path: Path) -> tuple[dict[str, Any], Optional[str]]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except (OSError, yaml.YAMLError) as exc:
        return {}, f"Unable to read {path}: {exc}"
    if data is None:
        return {}, None
    if not isinstance(data, dict):
        return {}, f"{path} must contain a mapping"
    return data, None


def load_client_config(
    path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> tuple[ClientSettings, Optional[str]]:
    """Load the client settings.

    Args:
        path: Config file; defaults to ``.taskboard.yaml`` in the working directory.
        environ: Environment mapping; defaults to ``os.environ``.

    Returns:
        A tuple of ``(settings, error_message)``.  A missing file is not an
        error.  An unreadable or invalid file yields default settings (still
        subject to env overrides) and the error message.
    """
    environ = os.environ if environ is None else environ
    path = path or Path(CONFIG_FILE)
    data: dict[str, Any] = {}
    err: Optional[str] = None
    if path.exists():
        data, err = _load_yaml(path)

    merged = {**data, **_env_overrides(environ)}
    try:
        return ClientSettings.model_validate(merged), err
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(p) for p in first.get("loc", ()))
        message = f"Invalid setting {where}: {first.get('msg')}"
        try:
            return ClientSettings.model_validate(_env_overrides(environ)), message
        except ValidationError:
            return ClientSettings(), message
