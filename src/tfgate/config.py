"""Layered configuration for tfgate.

Sources, later ones winning key by key:

1. :data:`DEFAULTS`.
2. The YAML file named by ``--config-file``, ``$TFGATE_CONFIG_FILE`` or
   ``/etc/tfgate/config.yml``. A missing file contributes nothing.
3. ``TFGATE_*`` environment variables. ``__`` separates nested keys and values
   are read as YAML scalars, so ``false`` is a boolean::

       export TFGATE_TERRAFORM__BIN=/opt/terraform/1.5.7/terraform
       export TFGATE_VERSION_MANAGER__ENABLED=false

4. Programmatic overrides.

Unknown keys at any level are rejected so typos do not go unnoticed.
"""
from __future__ import annotations

import copy
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import yaml

ENV_PREFIX = "TFGATE_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

_TRUE_WORDS = frozenset({"true", "yes", "on", "1"})
_FALSE_WORDS = frozenset({"false", "no", "off", "0"})


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class TerraformConfig:
    """Terraform binary and plan artifact locations."""

    bin: str = "terraform"
    plan_file: Path = Path("tfplan")
    plan_json_file: Path = Path("tfplan.json")
    no_color: bool = False

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "bin": self.bin,
            "plan_file": str(self.plan_file),
            "plan_json_file": str(self.plan_json_file),
            "no_color": self.no_color,
        }


@dataclass(frozen=True)
class VersionManagerConfig:
    """Settings for the optional Terraform version manager (tfenv)."""

    bin: str = "tfenv"
    enabled: bool = True

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"bin": self.bin, "enabled": self.enabled}


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for tfgate."""

    config_file: Path
    logs_dir: Path
    terraform: TerraformConfig
    version_manager: VersionManagerConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "logs_dir": str(self.logs_dir),
            "terraform": self.terraform.to_dict(),
            "version_manager": self.version_manager.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/tfgate/config.yml",
    "logs_dir": "~/.tfgate/logs",
    "terraform": {
        "bin": "terraform",
        "plan_file": "tfplan",
        "plan_json_file": "tfplan.json",
        "no_color": False,
    },
    "version_manager": {
        "bin": "tfenv",
        "enabled": True,
    },
}

# Section name -> keys it may contain. Everything else at the top level is a scalar.
_SECTIONS: dict[str, frozenset[str]] = {
    name: frozenset(value)
    for name, value in DEFAULTS.items()
    if isinstance(value, Mapping)
}
_SCALAR_KEYS = frozenset(DEFAULTS) - frozenset(_SECTIONS)


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Merge every configuration source into an :class:`AppConfig`."""
    environ = os.environ if env is None else env
    path = _config_path(config_file, environ)

    merged = copy.deepcopy(DEFAULTS)
    for layer in (_read_config_file(path), _env_layer(environ), dict(overrides or {})):
        _merge(merged, layer)
    merged["config_file"] = str(path)

    _check_keys(merged)
    return _build(merged)


def _config_path(
    explicit: str | os.PathLike[str] | None,
    environ: Mapping[str, str],
) -> Path:
    if explicit:
        return Path(explicit)
    from_env = environ.get(CONFIG_ENV_VAR)
    if from_env:
        return Path(from_env)
    return Path(str(DEFAULTS["config_file"]))


def _read_config_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    if document is None:
        return {}
    if not isinstance(document, Mapping):
        raise ConfigError(
            f"Config file {path} must contain a mapping, not {type(document).__name__}."
        )
    return _string_keys(document, str(path))


def _env_layer(environ: Mapping[str, str]) -> dict[str, object]:
    layer: dict[str, object] = {}
    for name, raw in environ.items():
        if not name.startswith(ENV_PREFIX) or name in RESERVED_ENV_KEYS:
            continue
        parts = [part.lower() for part in name[len(ENV_PREFIX) :].split("__") if part]
        if not parts:
            continue
        node = layer
        for part in parts[:-1]:
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                raise ConfigError(f"{name} nests under '{part}', which already holds a value.")
            node = child
        node[parts[-1]] = _scalar(raw)
    return layer


def _scalar(raw: str) -> object:
    text = raw.strip()
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return text


def _merge(target: dict[str, object], layer: Mapping[str, object]) -> None:
    for key, value in layer.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            _merge(current, value)
        else:
            target[key] = value


def _check_keys(merged: Mapping[str, object]) -> None:
    unknown = sorted(set(merged) - _SCALAR_KEYS - set(_SECTIONS))
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}.")
    for name, allowed in _SECTIONS.items():
        extra = sorted(set(_section(merged, name)) - allowed)
        if extra:
            raise ConfigError(f"Unknown {name} configuration keys: {', '.join(extra)}.")


def _build(merged: Mapping[str, object]) -> AppConfig:
    terraform = _section(merged, "terraform")
    manager = _section(merged, "version_manager")

    plan_file = _path(terraform.get("plan_file"), "terraform.plan_file")
    plan_json_file = _path(terraform.get("plan_json_file"), "terraform.plan_json_file")
    if plan_file == plan_json_file:
        raise ConfigError("terraform.plan_file and terraform.plan_json_file must differ.")

    return AppConfig(
        config_file=_path(merged.get("config_file"), "config_file"),
        logs_dir=_path(merged.get("logs_dir"), "logs_dir"),
        terraform=TerraformConfig(
            bin=_text(terraform.get("bin"), "terraform.bin"),
            plan_file=plan_file,
            plan_json_file=plan_json_file,
            no_color=_flag(terraform.get("no_color"), "terraform.no_color", default=False),
        ),
        version_manager=VersionManagerConfig(
            bin=_text(manager.get("bin"), "version_manager.bin"),
            enabled=_flag(manager.get("enabled"), "version_manager.enabled", default=True),
        ),
    )


def _section(merged: Mapping[str, object], name: str) -> dict[str, object]:
    value = merged.get(name)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"{name} must be a mapping, got {type(value).__name__}.")
    return _string_keys(value, name)


def _string_keys(mapping: Mapping[object, object], label: str) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in mapping.items():
        if not isinstance(key, str):
            raise ConfigError(f"{label}: keys must be strings, got {key!r}.")
        result[key] = value
    return result


def _path(value: object, label: str) -> Path:
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str) and value.strip():
        return Path(value).expanduser()
    raise ConfigError(f"{label} must be a non-empty path, got {value!r}.")


def _text(value: object, label: str) -> str:
    if isinstance(value, str) and value.strip():
        return value
    raise ConfigError(f"{label} must be a non-empty string, got {value!r}.")


def _flag(value: object, label: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    word = str(value).strip().lower() if isinstance(value, (str, int)) else None
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise ConfigError(f"{label} must be a boolean, got {value!r}.")


__all__ = [
    "AppConfig",
    "ConfigError",
    "DEFAULTS",
    "TerraformConfig",
    "VersionManagerConfig",
    "load_config",
]
