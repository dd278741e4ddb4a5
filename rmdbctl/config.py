"""Configuration loading and environment variable parsing for the RMDB console."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Tuple

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from rmdbctl.constants import (
    DEFAULT_ARCH,
    DEFAULT_CONFIG_PATH,
    DEFAULT_DIST,
    DEFAULT_KEEPALIVE_INTERVAL,
    DEFAULT_RELEASE,
    DEFAULT_STORAGE_ROOTS,
    DEFAULT_TEMPLATE,
    DEFAULT_VERIFY_ATTEMPTS,
    TEMPLATE_DIRS,
)
from rmdbctl.exceptions import ManagerError
from rmdbctl.models import Settings, TrustLevel
from rmdbctl.utils import get_env, log, parse_int_env


def load_config_file(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Read the optional YAML settings file.

    The default location may be absent; an explicitly requested file may not.
    """
    explicit = config_path is not None or get_env("RMDB_CONFIG") is not None
    if config_path is None:
        config_path = Path(get_env("RMDB_CONFIG") or DEFAULT_CONFIG_PATH)
    if not config_path.exists():
        if explicit:
            raise ManagerError(f"Console config missing: {config_path}")
        return {}
    try:
        data = yaml.safe_load(config_path.read_text())
    except yaml.YAMLError as exc:
        raise ManagerError(f"{config_path} contains invalid YAML: {exc}")
    except OSError as exc:
        raise ManagerError(f"Cannot read {config_path}: {exc}")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ManagerError(f"{config_path} must contain a YAML mapping, got {type(data).__name__}")
    log("DEBUG", f"Loaded console config from {config_path}")
    return data


def _paths(raw: Any, name: str) -> Tuple[Path, ...]:
    if isinstance(raw, str):
        items = [item for item in raw.split(":") if item.strip()]
    elif isinstance(raw, list):
        items = [str(item) for item in raw]
    else:
        raise ManagerError(f"{name} must be a list of paths")
    if not items:
        raise ManagerError(f"{name} must not be empty")
    return tuple(Path(item.strip()).expanduser() for item in items)


def _setting(data: Dict[str, Any], key: str, env: str, default: str) -> str:
    """Environment beats the file, the file beats the default."""
    value = get_env(env)
    if value is None:
        value = data.get(key, default)
    return str(value).strip()


def parse_settings(config_path: Optional[Path] = None) -> Settings:
    data = load_config_file(config_path)

    mode_raw = _setting(data, "mode", "RMDB_MODE", TrustLevel.READ_ONLY.value)
    try:
        trust = TrustLevel.parse(mode_raw)
    except ValueError as exc:
        raise ManagerError(str(exc))

    roots_env = get_env("RMDB_STORAGE_ROOTS")
    if roots_env is not None:
        storage_roots = _paths(roots_env, "RMDB_STORAGE_ROOTS")
    elif "storage_roots" in data:
        storage_roots = _paths(data["storage_roots"], "storage_roots")
    else:
        storage_roots = DEFAULT_STORAGE_ROOTS

    if "template_dirs" in data:
        template_dirs = _paths(data["template_dirs"], "template_dirs")
    else:
        template_dirs = TEMPLATE_DIRS

    keepalive_interval = parse_int_env(
        "RMDB_KEEPALIVE_INTERVAL",
        str(data.get("keepalive_interval", DEFAULT_KEEPALIVE_INTERVAL)),
        min_val=1,
        max_val=3600,
    )
    verify_attempts = parse_int_env(
        "RMDB_VERIFY_ATTEMPTS",
        str(data.get("verify_attempts", DEFAULT_VERIFY_ATTEMPTS)),
        min_val=1,
        max_val=60,
    )
    # 0 disables the per-command timeout.
    timeout_raw = parse_int_env(
        "RMDB_COMMAND_TIMEOUT",
        str(data.get("command_timeout", 0)),
        min_val=0,
    )
    command_timeout = float(timeout_raw) if timeout_raw else None

    return Settings(
        trust=trust,
        storage_roots=storage_roots,
        keepalive_interval=float(keepalive_interval),
        command_timeout=command_timeout,
        verify_attempts=verify_attempts,
        template=_setting(data, "template", "RMDB_TEMPLATE", DEFAULT_TEMPLATE),
        release=_setting(data, "release", "RMDB_RELEASE", DEFAULT_RELEASE),
        dist=_setting(data, "dist", "RMDB_DIST", DEFAULT_DIST),
        arch=_setting(data, "arch", "RMDB_ARCH", DEFAULT_ARCH),
        template_dirs=template_dirs,
    )
