"""
Capability Collaborators

Abstract interfaces for the disk, boot, WSL and VM backends the orchestrator
drives, plus the records they exchange. All operations are coroutines and may
raise.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


SIZE_SUFFIXES = ["B", "KB", "MB", "GB", "TB", "PB"]


def format_size(num_bytes: float) -> str:
    """Format a byte count as a human readable string (1024 based)."""
    counter = 0
    number = float(num_bytes)
    while number >= 1024 and counter < len(SIZE_SUFFIXES) - 1:
        number /= 1024
        counter += 1
    return f"{number:.2f}".rstrip("0").rstrip(".") + f" {SIZE_SUFFIXES[counter]}"


@dataclass
class PartitionInfo:
    """A partition on a physical disk. Sizes are in bytes."""
    partition_number: int
    drive_letter: str = ""
    size: int = 0
    free_space: int = 0
    file_system: str = ""
    label: str = ""
    is_active: bool = False
    partition_type: str = ""
    offset: int = 0
    is_system: bool = False
    is_boot: bool = False

    @property
    def size_mb(self) -> int:
        return self.size // (1024 * 1024)

    @property
    def formatted_size(self) -> str:
        return format_size(self.size)

    @property
    def formatted_free_space(self) -> str:
        return format_size(self.free_space)

    def __str__(self) -> str:
        if not self.drive_letter:
            return f"Partition {self.partition_number} ({self.formatted_size})"
        return f"{self.drive_letter}: {self.label} ({self.formatted_size}, {self.file_system})"


@dataclass
class DiskInfo:
    """A physical disk and its partitions. Sizes are in bytes."""
    disk_number: int
    model: str = ""
    size: int = 0
    free_space: int = 0
    is_removable: bool = False
    is_system_disk: bool = False
    partition_style: str = "GPT"
    partitions: List[PartitionInfo] = field(default_factory=list)

    @property
    def formatted_size(self) -> str:
        return format_size(self.size)

    @property
    def formatted_free_space(self) -> str:
        return format_size(self.free_space)

    def find_partition(self, drive_letter: str) -> Optional[PartitionInfo]:
        """Find a partition by drive letter (case-insensitive, colon optional)."""
        wanted = drive_letter.strip().rstrip(":").upper()
        for partition in self.partitions:
            if partition.drive_letter.upper() == wanted:
                return partition
        return None

    def find_partition_number(self, partition_number: int) -> Optional[PartitionInfo]:
        for partition in self.partitions:
            if partition.partition_number == partition_number:
                return partition
        return None


@dataclass
class BootEntryInfo:
    """An entry of the boot manager."""
    display_name: str
    path: str = ""
    device: str = ""
    id: Optional[str] = None
    is_default: bool = False
    order: int = 0
    options: str = ""
    is_created_by_us: bool = False


class VMState(str, Enum):
    OFF = "off"
    RUNNING = "running"
    PAUSED = "paused"
    SAVED = "saved"
    STARTING = "starting"
    STOPPING = "stopping"
    FAILED = "failed"
    UNKNOWN = "unknown"


@dataclass
class VMConfig:
    """Parameters for creating a virtual machine."""
    name: str
    processor_count: int = 2
    memory_mb: int = 4096
    disk_size_gb: int = 50
    storage_path: str = ""
    is_dynamic_disk: bool = True
    generation: int = 2
    installation_iso_path: str = ""
    network_adapter: str = "Default Switch"
    enable_secure_boot: bool = True
    hypervisor_type: str = "Hyper-V"
    auto_start: bool = False
    additional_options: Dict[str, str] = field(default_factory=dict)


@dataclass
class VMInfo:
    """An existing virtual machine."""
    id: str
    name: str
    state: VMState = VMState.OFF
    memory_mb: int = 0
    processor_count: int = 0
    generation: int = 2
    path: str = ""
    hypervisor_type: str = "Hyper-V"
    notes: str = ""
    uptime_minutes: int = 0

    @property
    def formatted_uptime(self) -> str:
        if self.uptime_minutes < 60:
            return f"{self.uptime_minutes} min"
        hours, minutes = divmod(self.uptime_minutes, 60)
        if hours < 24:
            return f"{hours}h {minutes}min"
        days, hours = divmod(hours, 24)
        return f"{days}d {hours}h {minutes}min"


@dataclass
class WSLDistroInfo:
    """A WSL distribution registered on the machine."""
    name: str
    state: str = "Stopped"
    version: int = 2
    install_location: str = ""
    is_default: bool = False
    size_in_bytes: int = 0
    default_user: str = ""

    @property
    def formatted_size(self) -> str:
        return format_size(self.size_in_bytes)

    def __str__(self) -> str:
        return f"{self.name} (WSL{self.version}): {self.state}"


class DiskManager(ABC):
    """Disk and partition management."""

    capability = "disk"

    @abstractmethod
    async def list_disks(self) -> List[DiskInfo]:
        """Enumerate physical disks with their partitions."""

    @abstractmethod
    async def create_partition(
        self, disk_number: int, size_mb: int, filesystem: str = "NTFS"
    ) -> Optional[PartitionInfo]:
        """Create a partition; None on failure."""

    @abstractmethod
    async def format_partition(
        self, letter: str, filesystem: str = "NTFS", label: str = ""
    ) -> bool:
        """Format the partition mounted at ``letter``."""

    @abstractmethod
    async def has_free_space(self, disk_number: int, size_mb: int) -> bool:
        """True if the disk has ``size_mb`` of unallocated space."""

    @abstractmethod
    async def set_partition_active(self, disk_number: int, partition_number: int) -> bool:
        """Mark a partition active (bootable)."""


class BootManager(ABC):
    """Boot configuration management."""

    capability = "boot"

    @abstractmethod
    async def get_boot_entries(self) -> List[BootEntryInfo]:
        ...

    @abstractmethod
    async def configure_boot_entry(self, entry: BootEntryInfo) -> bool:
        """Create the entry, or update it when ``entry.id`` is set."""

    @abstractmethod
    async def remove_boot_entry(self, entry_id: str) -> bool:
        ...

    @abstractmethod
    async def set_default_os(self, entry_id: str) -> bool:
        ...

    @abstractmethod
    async def set_timeout(self, seconds: int) -> bool:
        ...

    @abstractmethod
    async def backup(self, path: str) -> bool:
        """Export the boot configuration to ``path``."""

    @abstractmethod
    async def restore(self, path: str) -> bool:
        """Import a boot configuration previously exported with backup()."""


class WSLManager(ABC):
    """Windows Subsystem for Linux management."""

    capability = "WSL"

    @abstractmethod
    async def is_supported(self) -> bool:
        ...

    @abstractmethod
    async def is_installed(self) -> bool:
        ...

    @abstractmethod
    async def install(self) -> bool:
        """Enable the subsystem."""

    @abstractmethod
    async def list_distros(self) -> List[WSLDistroInfo]:
        ...

    @abstractmethod
    async def install_distro(self, name: str, version: str, path: str) -> bool:
        ...

    @abstractmethod
    async def set_default_distro(self, name: str) -> bool:
        ...


class VMManager(ABC):
    """Virtual machine management."""

    capability = "virtual machine"

    @abstractmethod
    async def is_virtualization_supported(self) -> bool:
        ...

    @abstractmethod
    async def create_virtual_disk(
        self, path: str, size_gb: int, dynamic: bool = True
    ) -> Optional[str]:
        """Create a virtual disk; returns its path or None."""

    @abstractmethod
    async def create_vm(self, config: VMConfig) -> Optional[str]:
        """Create a VM; returns its id or None."""

    @abstractmethod
    async def attach_iso(self, vm_id: str, iso_path: str) -> bool:
        ...

    @abstractmethod
    async def list_vms(self) -> List[VMInfo]:
        ...
