"""
Installation Configuration

The value object describing one requested installation.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from dualboot_deployer.installer.exceptions import ConfigurationError


class Strategy(str, Enum):
    """How the new system is installed next to Windows."""
    DUAL_BOOT = "dual_boot"
    WSL = "wsl"
    VIRTUAL_MACHINE = "virtual_machine"

    @classmethod
    def parse(cls, value: Any) -> "Strategy":
        """Parse a strategy from a template value (case-insensitive)."""
        if isinstance(value, Strategy):
            return value
        key = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
        strategy = STRATEGY_ALIASES.get(key)
        if strategy is None:
            raise ConfigurationError(
                f"Unknown installation strategy '{value}'",
                field="strategy",
                remediation="Use one of: dual_boot, wsl, virtual_machine",
            )
        return strategy


STRATEGY_ALIASES = {
    "dual_boot": Strategy.DUAL_BOOT,
    "dualboot": Strategy.DUAL_BOOT,
    "wsl": Strategy.WSL,
    "vm": Strategy.VIRTUAL_MACHINE,
    "virtualmachine": Strategy.VIRTUAL_MACHINE,
    "virtual_machine": Strategy.VIRTUAL_MACHINE,
}

_INT_FIELDS = {
    "disk_number", "partition_size_mb", "existing_partition_number",
    "vm_ram_mb", "vm_processor_count",
}
_BOOL_FIELDS = {"create_new_partition"}


def _to_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("1", "true", "yes"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("0", "false", "no", ""):
        return False
    if isinstance(value, int):
        return bool(value)
    raise ConfigurationError(f"Expected a boolean for '{key}', got {value!r}", field=key)


def _to_int(key: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Expected an integer for '{key}', got {value!r}", field=key)


@dataclass(frozen=True)
class InstallationConfig:
    """Requested installation.

    Only the fields of the active strategy are read; the others are ignored.
    """
    strategy: Strategy
    system_name: str = ""
    system_version: str = ""
    source_path: str = ""
    install_path: str = ""
    # Dual boot
    disk_number: int = 0
    partition_size_mb: int = 0
    partition_letter: str = ""
    create_new_partition: bool = True
    existing_partition_number: int = -1
    # WSL
    distro_name: str = ""
    distro_version: str = ""
    # Virtual machine (disk size reuses partition_size_mb)
    vm_ram_mb: int = 0
    vm_processor_count: int = 0
    additional_options: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "strategy", Strategy.parse(self.strategy))
        # Freeze the options mapping as well
        options = {str(k): str(v) for k, v in dict(self.additional_options or {}).items()}
        object.__setattr__(self, "additional_options", MappingProxyType(options))

    @property
    def partition_drive_letter(self) -> str:
        """Partition letter without a trailing colon, upper-cased."""
        return self.partition_letter.strip().rstrip(":").upper()

    def option_enabled(self, name: str) -> bool:
        """True if an additional option is the literal string 'true'."""
        value = self.additional_options.get(name)
        return value is not None and value.strip().lower() == "true"

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["strategy"] = self.strategy.value
        data["additional_options"] = dict(self.additional_options)
        return data

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "InstallationConfig":
        """Build a configuration from an installation template mapping."""
        if not data:
            raise ConfigurationError("Installation template is empty", field="install")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration keys: {', '.join(unknown)}",
                field=unknown[0],
            )
        if "strategy" not in data:
            raise ConfigurationError("Installation strategy is required", field="strategy")

        values: Dict[str, Any] = {}
        for key, value in data.items():
            if value is None:
                continue
            if key in _INT_FIELDS:
                values[key] = _to_int(key, value)
            elif key in _BOOL_FIELDS:
                values[key] = _to_bool(key, value)
            elif key == "additional_options":
                if not isinstance(value, Mapping):
                    raise ConfigurationError(
                        "additional_options must be a mapping", field=key
                    )
                values[key] = {str(k): str(v).lower() if isinstance(v, bool) else str(v)
                               for k, v in value.items()}
            elif key == "strategy":
                values[key] = Strategy.parse(value)
            else:
                values[key] = str(value)
        return cls(**values)
