"""
DualBoot Deployer Settings

Tool-wide settings: where backups and logs go, boot timeout, VM defaults.
Read from an optional YAML file, then overridden by environment variables.
"""

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from dualboot_deployer.installer.exceptions import ConfigurationError


APP_DIR_NAME = "DualBootDeployer"
ENV_PREFIX = "DUALBOOT_DEPLOYER_"


def get_default_data_dir() -> Path:
    """Per-user data directory (%LOCALAPPDATA% on Windows)."""
    local_app_data = os.environ.get("LOCALAPPDATA")
    if local_app_data:
        return Path(local_app_data) / APP_DIR_NAME
    return Path.home() / ".local" / "share" / APP_DIR_NAME


def get_default_vm_root() -> Path:
    """Default parent folder of virtual machine storage."""
    return Path.home() / "Documents" / "Virtual Machines"


@dataclass(frozen=True)
class DeployerSettings:
    """Settings shared by every run."""
    data_dir: Optional[Path] = None
    backup_dir: Optional[Path] = None
    log_dir: Optional[Path] = None
    vm_root: Optional[Path] = None
    boot_timeout_seconds: int = 10
    default_filesystem: str = "NTFS"
    cancel_grace_seconds: float = 1.0
    default_vm_memory_mb: int = 4096
    default_vm_processors: int = 2
    debug: bool = False

    def __post_init__(self):
        data_dir = Path(self.data_dir) if self.data_dir else get_default_data_dir()
        object.__setattr__(self, "data_dir", data_dir)
        object.__setattr__(
            self, "backup_dir", Path(self.backup_dir) if self.backup_dir else data_dir / "Backup"
        )
        object.__setattr__(
            self, "log_dir", Path(self.log_dir) if self.log_dir else data_dir / "Logs"
        )
        object.__setattr__(
            self, "vm_root", Path(self.vm_root) if self.vm_root else get_default_vm_root()
        )
        if self.boot_timeout_seconds < 0:
            raise ConfigurationError(
                "Boot timeout cannot be negative", field="boot_timeout_seconds"
            )
        if self.cancel_grace_seconds < 0:
            raise ConfigurationError(
                "Cancel grace period cannot be negative", field="cancel_grace_seconds"
            )


_CONVERTERS = {
    "data_dir": Path,
    "backup_dir": Path,
    "log_dir": Path,
    "vm_root": Path,
    "boot_timeout_seconds": int,
    "default_filesystem": str,
    "cancel_grace_seconds": float,
    "default_vm_memory_mb": int,
    "default_vm_processors": int,
    "debug": lambda v: v if isinstance(v, bool) else str(v).lower() in ("1", "true", "yes"),
}


def _coerce(values: Dict[str, Any], source: str) -> Dict[str, Any]:
    known = {f.name for f in fields(DeployerSettings)}
    result = {}
    for key, value in values.items():
        if key not in known:
            raise ConfigurationError(f"Unknown setting '{key}' in {source}", field=key)
        if value is None:
            continue
        try:
            result[key] = _CONVERTERS[key](value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid value for setting '{key}' in {source}", field=key, details=str(e)
            )
    return result


def _env_overrides(environ) -> Dict[str, Any]:
    overrides = {}
    for f in fields(DeployerSettings):
        value = environ.get(ENV_PREFIX + f.name.upper())
        if value is not None and value != "":
            overrides[f.name] = value
    return overrides


def load_settings(path: Optional[Path] = None, environ=None) -> DeployerSettings:
    """Load settings.

    Args:
        path: Optional YAML settings file
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Settings with file values applied first, then environment overrides
    """
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}

    if path:
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(
                f"Settings file not found: {path}",
                remediation="Pass an existing YAML file with --settings",
            )
        try:
            data = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Settings file is not valid YAML: {path}", details=str(e))
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file must contain a mapping: {path}")
        values.update(_coerce(data, str(path)))

    values.update(_coerce(_env_overrides(environ), "environment"))
    return DeployerSettings(**values)


def with_overrides(settings: DeployerSettings, **overrides) -> DeployerSettings:
    """Copy of the settings with some values replaced."""
    return replace(settings, **_coerce(overrides, "overrides"))

