from __future__ import annotations
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from shared.log import get_logger

logger = get_logger(__name__)

DEFAULT_CLIENT_VERSION = "texmodbot"


@dataclass(frozen=True)
class ClientSettings:
    """Protocol parameters of the client; overridable from a YAML file."""
    retry_interval: float = 0.1
    serialize_version: int = 29
    supp_compr_modes: int = 0
    min_proto_version: int = 37
    max_proto_version: int = 41
    lang: str = "en_US"
    client_version: str = DEFAULT_CLIENT_VERSION
    formspec_version: int = 4
    # Raise on a repeated HELLO instead of ignoring it
    strict_greeting: bool = False


def load_settings(path: Optional[Path] = None) -> ClientSettings:
    """
    Load client settings, applying overrides from the `client:` mapping of a
    YAML file.

    Example file:

        client:
          retry_interval: 0.5
          lang: de_DE

    Unknown keys are logged and ignored.

    Raises:
        FileNotFoundError: path given but missing
        ValueError: malformed file or a value of the wrong type
    """
    settings = ClientSettings()
    if path is None:
        return settings

    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Error reading {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    overrides = data.get("client", {}) or {}
    if not isinstance(overrides, dict):
        raise ValueError(f"{path}: 'client' must be a mapping")

    return apply_overrides(settings, overrides)


def apply_overrides(settings: ClientSettings, overrides: Dict[str, Any]) -> ClientSettings:
    known = {f.name: f for f in fields(ClientSettings)}
    accepted: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in known:
            logger.warning("Ignoring unknown client setting %r", key)
            continue
        expected = type(getattr(settings, key))
        if expected is float and isinstance(value, int) and not isinstance(value, bool):
            value = float(value)
        if expected is int and isinstance(value, bool) or not isinstance(value, expected):
            raise ValueError(f"client setting {key!r} must be {expected.__name__}, got {value!r}")
        accepted[key] = value

    result = replace(settings, **accepted)
    if result.retry_interval <= 0:
        raise ValueError("client setting 'retry_interval' must be positive")
    if result.min_proto_version > result.max_proto_version:
        raise ValueError("min_proto_version must not exceed max_proto_version")
    return result
