"""
Simulated Backend

In-memory implementations of the disk, boot, WSL and VM capabilities. Used by
the CLI to rehearse an installation and by the tests to observe every call.
"""

import asyncio
import copy
import uuid
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

import yaml

from dualboot_deployer.installer.collaborators import (
    BootEntryInfo,
    BootManager,
    DiskInfo,
    DiskManager,
    PartitionInfo,
    VMConfig,
    VMInfo,
    VMManager,
    VMState,
    WSLDistroInfo,
    WSLManager,
)
from dualboot_deployer.installer.exceptions import ConfigurationError
from dualboot_deployer.installer.logging_config import get_logger

logger = get_logger(__name__)

MB = 1024 * 1024

Call = Tuple[str, str, Tuple[Any, ...]]


@dataclass
class SimulatedEnvironment:
    """State of a pretend Windows machine."""
    disks: List[DiskInfo] = field(default_factory=list)
    wsl_supported: bool = True
    wsl_installed: bool = False
    distros: List[WSLDistroInfo] = field(default_factory=list)
    virtualization_supported: bool = True
    vms: List[VMInfo] = field(default_factory=list)
    virtual_disks: Dict[str, int] = field(default_factory=dict)
    attached_isos: Dict[str, str] = field(default_factory=dict)
    boot_entries: List[BootEntryInfo] = field(default_factory=list)
    boot_timeout: int = 30
    backups: Dict[str, List[BootEntryInfo]] = field(default_factory=dict)
    # Operation names that report failure, e.g. {"format_partition"}
    fail_operations: Set[str] = field(default_factory=set)
    elevated: bool = True
    latency: float = 0.0
    calls: List[Call] = field(default_factory=list)

    def calls_to(self, capability: str) -> List[Call]:
        return [call for call in self.calls if call[0] == capability]

    def operations(self) -> List[str]:
        """Names of the operations called so far, in order."""
        return [operation for _, operation, _ in self.calls]

    def find_disk(self, disk_number: int) -> Optional[DiskInfo]:
        return next((d for d in self.disks if d.disk_number == disk_number), None)

    def used_letters(self) -> Set[str]:
        return {
            p.drive_letter.upper()
            for disk in self.disks for p in disk.partitions if p.drive_letter
        }

    def next_free_letter(self) -> Optional[str]:
        used = self.used_letters()
        for code in range(ord("D"), ord("Z") + 1):
            if chr(code) not in used:
                return chr(code)
        return None

    def free_bytes(self, path: str) -> int:
        """Free space probe for destination paths on the simulated drives.

        ``X:\\...`` paths map to the partition mounted at X; other paths map to
        the boot partition.
        """
        letter = path[0].upper() if len(path) >= 2 and path[1] == ":" else None
        for disk in self.disks:
            for partition in disk.partitions:
                if letter is None and partition.is_boot:
                    return partition.free_space
                if letter and partition.drive_letter.upper() == letter:
                    return partition.free_space
        return 0

    def is_elevated(self) -> bool:
        return self.elevated

    def managers(self) -> Tuple[
        "SimulatedDiskManager", "SimulatedBootManager", "SimulatedWSLManager", "SimulatedVMManager"
    ]:
        """One manager per capability, all sharing this environment."""
        return (
            SimulatedDiskManager(self),
            SimulatedBootManager(self),
            SimulatedWSLManager(self),
            SimulatedVMManager(self),
        )

    @classmethod
    def default(cls) -> "SimulatedEnvironment":
        """A single 500 GB system disk with 200 GB unallocated."""
        return cls(
            disks=[
                DiskInfo(
                    disk_number=0,
                    model="Simulated NVMe SSD",
                    size=500 * 1024 * MB,
                    free_space=200 * 1024 * MB,
                    is_system_disk=True,
                    partitions=[
                        PartitionInfo(
                            partition_number=1, size=100 * MB, file_system="FAT32",
                            label="EFI", is_system=True,
                        ),
                        PartitionInfo(
                            partition_number=2, drive_letter="C", size=300 * 1024 * MB,
                            free_space=120 * 1024 * MB, file_system="NTFS",
                            label="Windows", is_boot=True,
                        ),
                    ],
                )
            ],
            boot_entries=[
                BootEntryInfo(
                    display_name="Windows Boot Manager",
                    path="\\EFI\\Microsoft\\Boot\\bootmgfw.efi",
                    device="partition=C:",
                    id="{bootmgr}",
                    is_default=True,
                )
            ],
        )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SimulatedEnvironment":
        """Build an environment from the ``environment:`` section of a template.

        Sizes are given in MB. A missing or empty section gives ``default()``.
        """
        if not data:
            return cls.default()
        if not isinstance(data, dict):
            raise ConfigurationError("The environment section must be a mapping", field="environment")

        known = {
            "disks", "wsl", "virtualization", "vms", "boot", "fail", "latency", "elevated",
        }
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown environment keys: {', '.join(sorted(unknown))}", field="environment"
            )

        env = cls.default()
        if "disks" in data:
            env.disks = [_disk_from_dict(item) for item in data["disks"] or []]

        wsl = data.get("wsl") or {}
        env.wsl_supported = bool(wsl.get("supported", True))
        env.wsl_installed = bool(wsl.get("installed", False))
        env.distros = [
            WSLDistroInfo(name=name) if isinstance(name, str) else WSLDistroInfo(**name)
            for name in wsl.get("distros", [])
        ]

        env.virtualization_supported = bool(data.get("virtualization", True))
        env.vms = [
            VMInfo(id=vm.get("id") or str(uuid.uuid4()), name=vm["name"])
            for vm in data.get("vms") or []
        ]

        boot = data.get("boot") or {}
        env.boot_timeout = int(boot.get("timeout", env.boot_timeout))
        if "entries" in boot:
            env.boot_entries = [BootEntryInfo(**entry) for entry in boot["entries"] or []]

        env.fail_operations = set(data.get("fail") or [])
        env.latency = float(data.get("latency", 0.0))
        env.elevated = bool(data.get("elevated", True))
        return env


def _disk_from_dict(data: Dict[str, Any]) -> DiskInfo:
    partitions = [
        PartitionInfo(
            partition_number=int(p.get("partition_number", i)),
            drive_letter=str(p.get("drive_letter", "")).rstrip(":").upper(),
            size=int(p.get("size_mb", 0)) * MB,
            free_space=int(p.get("free_space_mb", 0)) * MB,
            file_system=p.get("file_system", "NTFS"),
            label=p.get("label", ""),
            is_active=bool(p.get("is_active", False)),
            is_system=bool(p.get("is_system", False)),
            is_boot=bool(p.get("is_boot", False)),
        )
        for i, p in enumerate(data.get("partitions") or [], 1)
    ]
    return DiskInfo(
        disk_number=int(data.get("disk_number", 0)),
        model=data.get("model", "Simulated disk"),
        size=int(data.get("size_mb", 0)) * MB,
        free_space=int(data.get("free_space_mb", 0)) * MB,
        is_removable=bool(data.get("is_removable", False)),
        is_system_disk=bool(data.get("is_system_disk", False)),
        partition_style=data.get("partition_style", "GPT"),
        partitions=partitions,
    )


class _SimulatedCapability:
    """Shared call recording, latency and injected failures."""

    capability = ""

    def __init__(self, environment: SimulatedEnvironment):
        self.env = environment

    async def _call(self, operation: str, *args) -> bool:
        """Record the call. Returns False when the operation is set to fail."""
        self.env.calls.append((self.capability, operation, args))
        logger.debug("Simulated %s.%s%s", self.capability, operation, args)
        if self.env.latency:
            await asyncio.sleep(self.env.latency)
        if operation in self.env.fail_operations:
            logger.warning("Simulated failure of %s.%s", self.capability, operation)
            return False
        return True


class SimulatedDiskManager(_SimulatedCapability, DiskManager):

    capability = DiskManager.capability

    async def list_disks(self) -> List[DiskInfo]:
        await self._call("list_disks")
        return copy.deepcopy(self.env.disks)

    async def create_partition(
        self, disk_number: int, size_mb: int, filesystem: str = "NTFS"
    ) -> Optional[PartitionInfo]:
        if not await self._call("create_partition", disk_number, size_mb, filesystem):
            return None
        disk = self.env.find_disk(disk_number)
        if disk is None or size_mb <= 0 or disk.free_space < size_mb * MB:
            return None
        letter = self.env.next_free_letter()
        if letter is None:
            return None

        number = max((p.partition_number for p in disk.partitions), default=0) + 1
        partition = PartitionInfo(
            partition_number=number,
            drive_letter=letter,
            size=size_mb * MB,
            free_space=size_mb * MB,
            file_system=filesystem,
            offset=disk.size - disk.free_space,
        )
        disk.partitions.append(partition)
        disk.free_space -= size_mb * MB
        return copy.copy(partition)

    async def format_partition(self, letter: str, filesystem: str = "NTFS", label: str = "") -> bool:
        if not await self._call("format_partition", letter, filesystem, label):
            return False
        for disk in self.env.disks:
            partition = disk.find_partition(letter)
            if partition is not None:
                partition.file_system = filesystem
                partition.label = label
                partition.free_space = partition.size
                return True
        return False

    async def has_free_space(self, disk_number: int, size_mb: int) -> bool:
        if not await self._call("has_free_space", disk_number, size_mb):
            return False
        disk = self.env.find_disk(disk_number)
        return disk is not None and disk.free_space >= size_mb * MB

    async def set_partition_active(self, disk_number: int, partition_number: int) -> bool:
        if not await self._call("set_partition_active", disk_number, partition_number):
            return False
        disk = self.env.find_disk(disk_number)
        target = disk.find_partition_number(partition_number) if disk else None
        if target is None:
            return False
        for partition in disk.partitions:
            partition.is_active = partition is target
        return True


class SimulatedBootManager(_SimulatedCapability, BootManager):
    """Boot store kept in memory. Backups are also written to disk as YAML."""

    capability = BootManager.capability

    async def get_boot_entries(self) -> List[BootEntryInfo]:
        await self._call("get_boot_entries")
        return [copy.copy(entry) for entry in self.env.boot_entries]

    def _find(self, entry_id: Optional[str]) -> Optional[BootEntryInfo]:
        return next((e for e in self.env.boot_entries if entry_id and e.id == entry_id), None)

    async def configure_boot_entry(self, entry: BootEntryInfo) -> bool:
        if not await self._call("configure_boot_entry", entry.display_name):
            return False
        existing = self._find(entry.id)
        if existing is not None:
            existing.display_name = entry.display_name
            existing.path = entry.path
            existing.device = entry.device
            existing.options = entry.options
            return True

        stored = copy.copy(entry)
        stored.id = stored.id or "{" + str(uuid.uuid4()) + "}"
        stored.order = len(self.env.boot_entries)
        self.env.boot_entries.append(stored)
        entry.id = stored.id
        return True

    async def remove_boot_entry(self, entry_id: str) -> bool:
        if not await self._call("remove_boot_entry", entry_id):
            return False
        entry = self._find(entry_id)
        if entry is None:
            return False
        self.env.boot_entries.remove(entry)
        return True

    async def set_default_os(self, entry_id: str) -> bool:
        if not await self._call("set_default_os", entry_id):
            return False
        target = self._find(entry_id)
        if target is None:
            return False
        for entry in self.env.boot_entries:
            entry.is_default = entry is target
        return True

    async def set_timeout(self, seconds: int) -> bool:
        if not await self._call("set_timeout", seconds):
            return False
        if seconds < 0:
            return False
        self.env.boot_timeout = seconds
        return True

    async def backup(self, path: str) -> bool:
        if not await self._call("backup", path):
            return False
        entries = [copy.copy(entry) for entry in self.env.boot_entries]
        self.env.backups[path] = entries

        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w") as f:
            yaml.safe_dump(
                {"timeout": self.env.boot_timeout, "entries": [asdict(e) for e in entries]},
                f,
                sort_keys=False,
            )
        return True

    async def restore(self, path: str) -> bool:
        if not await self._call("restore", path):
            return False
        if path in self.env.backups:
            self.env.boot_entries = [copy.copy(e) for e in self.env.backups[path]]
            return True

        backup_file = Path(path)
        if not backup_file.is_file():
            logger.error("Boot configuration backup not found: %s", path)
            return False
        with open(backup_file) as f:
            data = yaml.safe_load(f) or {}
        self.env.boot_entries = [BootEntryInfo(**entry) for entry in data.get("entries", [])]
        self.env.boot_timeout = int(data.get("timeout", self.env.boot_timeout))
        return True


class SimulatedWSLManager(_SimulatedCapability, WSLManager):

    capability = WSLManager.capability

    def _find(self, name: str) -> Optional[WSLDistroInfo]:
        return next((d for d in self.env.distros if d.name.lower() == name.lower()), None)

    async def is_supported(self) -> bool:
        return await self._call("is_supported") and self.env.wsl_supported

    async def is_installed(self) -> bool:
        return await self._call("is_installed") and self.env.wsl_installed

    async def install(self) -> bool:
        if not await self._call("install") or not self.env.wsl_supported:
            return False
        self.env.wsl_installed = True
        return True

    async def list_distros(self) -> List[WSLDistroInfo]:
        await self._call("list_distros")
        return [copy.copy(d) for d in self.env.distros]

    async def install_distro(self, name: str, version: str, path: str) -> bool:
        if not await self._call("install_distro", name, version, path):
            return False
        if not self.env.wsl_installed or self._find(name) is not None:
            return False
        self.env.distros.append(WSLDistroInfo(name=name, install_location=path))
        return True

    async def set_default_distro(self, name: str) -> bool:
        if not await self._call("set_default_distro", name):
            return False
        target = self._find(name)
        if target is None:
            return False
        for distro in self.env.distros:
            distro.is_default = distro is target
        return True


class SimulatedVMManager(_SimulatedCapability, VMManager):

    capability = VMManager.capability

    async def is_virtualization_supported(self) -> bool:
        return await self._call("is_virtualization_supported") and self.env.virtualization_supported

    async def create_virtual_disk(self, path: str, size_gb: int, dynamic: bool = True) -> Optional[str]:
        if not await self._call("create_virtual_disk", path, size_gb, dynamic):
            return None
        if size_gb <= 0 or path in self.env.virtual_disks:
            return None
        self.env.virtual_disks[path] = size_gb
        return path

    async def create_vm(self, config: VMConfig) -> Optional[str]:
        if not await self._call("create_vm", config.name):
            return None
        if any(vm.name == config.name for vm in self.env.vms):
            return None
        vm_id = str(uuid.uuid4())
        self.env.vms.append(VMInfo(
            id=vm_id,
            name=config.name,
            state=VMState.OFF,
            memory_mb=config.memory_mb,
            processor_count=config.processor_count,
            generation=config.generation,
            path=config.storage_path,
            hypervisor_type=config.hypervisor_type,
        ))
        return vm_id

    async def attach_iso(self, vm_id: str, iso_path: str) -> bool:
        if not await self._call("attach_iso", vm_id, iso_path):
            return False
        if not any(vm.id == vm_id for vm in self.env.vms):
            return False
        self.env.attached_isos[vm_id] = iso_path
        return True

    async def list_vms(self) -> List[VMInfo]:
        await self._call("list_vms")
        return [copy.copy(vm) for vm in self.env.vms]
