"""
Harness settings.

Everything here tunes timing or points at a cluster; none of it changes
what counts as converged.
"""

import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

import yaml

LATEST_CLUSTER_IMAGE = "aerospike/aerospike-server-enterprise:5.4.0.5"
UPGRADE_CLUSTER_IMAGE = "aerospike/aerospike-server-enterprise:5.5.0.3"


@dataclass(frozen=True)
class HarnessSettings:
    poll_interval: float = 5.0
    base_timeout: float = 300.0  # per node
    cleanup_interval: float = 1.0
    cleanup_timeout: float = 200.0
    current_image: str = LATEST_CLUSTER_IMAGE
    upgrade_image: str = UPGRADE_CLUSTER_IMAGE
    namespace: str = "test"
    group: str = "aerospike.com"
    version: str = "v1alpha1"
    plural: str = "aerospikeclusters"
    schema_dir: str = "deploy/config-schemas"
    secret_dir: str = "deploy/secrets"
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, environ=None) -> "HarnessSettings":
        """Read HARNESS_<FIELD> variables; unset ones keep their defaults."""
        environ = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}
        for f in fields(cls):
            raw = environ.get(f"HARNESS_{f.name.upper()}")
            if raw is None or raw == "":
                continue
            overrides[f.name] = _coerce(cls, f.name, raw)
        return cls(**overrides)

    def with_yaml(self, path: str) -> "HarnessSettings":
        """Overlay the keys of a YAML mapping file onto these settings."""
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: settings file must hold a mapping")

        known = {f.name for f in fields(self)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"{path}: unknown settings {unknown}")
        return replace(self, **{k: _coerce(type(self), k, v) for k, v in data.items()})

    @classmethod
    def load(cls, config_file: Optional[str] = None, environ=None) -> "HarnessSettings":
        environ = os.environ if environ is None else environ
        settings = cls.from_env(environ)
        config_file = config_file or environ.get("HARNESS_CONFIG")
        if config_file:
            settings = settings.with_yaml(config_file)
        return settings


def _coerce(cls, name: str, value: Any) -> Any:
    default = getattr(cls, name)
    if isinstance(default, float):
        seconds = float(value)
        if seconds < 0:
            raise ValueError(f"{name} must not be negative, got {value!r}")
        return seconds
    if value is None:
        return None
    return str(value)
