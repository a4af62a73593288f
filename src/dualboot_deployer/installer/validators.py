"""
DualBoot Deployer Validators

Input validation for installation configurations. Pure functions, no I/O.
"""

import re
from typing import Optional, Tuple

from dualboot_deployer.installer.config import InstallationConfig, Strategy
from dualboot_deployer.installer.exceptions import ConfigurationError


MIN_PARTITION_SIZE_MB = 10000
MIN_VM_MEMORY_MB = 1024


def validate_system_name(name: str) -> Tuple[bool, str]:
    """Validate the name of the system being installed.

    Args:
        name: Display name of the new system

    Returns:
        Tuple of (is_valid, message)
    """
    if not name or not name.strip():
        return False, "System name is required."
    return True, "Valid system name"


def validate_partition_size(size_mb: int) -> Tuple[bool, str]:
    """Validate the size of a partition to create.

    Args:
        size_mb: Requested size in MB

    Returns:
        Tuple of (is_valid, message)
    """
    if size_mb < MIN_PARTITION_SIZE_MB:
        return False, f"Partition size must be at least {MIN_PARTITION_SIZE_MB} MB (10 GB)."
    return True, "Valid partition size"


def validate_partition_letter(letter: str) -> Tuple[bool, str]:
    """Validate a drive letter such as 'D' or 'D:'.

    Args:
        letter: The drive letter

    Returns:
        Tuple of (is_valid, message)
    """
    if not letter:
        return False, "Partition letter is required"

    if not re.match(r'^[A-Za-z]:?$', letter.strip()):
        return False, "Partition letter should be a single letter, e.g. 'D' or 'D:'"

    return True, "Valid partition letter"


def validate_existing_partition(config: InstallationConfig) -> Tuple[bool, str]:
    """Check that a reused partition has been selected.

    A non-negative partition number or a drive letter both count as a selection.
    """
    if config.existing_partition_number >= 0:
        return True, "Existing partition selected"
    if config.partition_letter:
        return validate_partition_letter(config.partition_letter)
    return False, "Please select an existing partition."


def validate_install_path(path: str, strategy: Strategy) -> Tuple[bool, str]:
    """Validate an installation path.

    Args:
        path: Destination directory
        strategy: Strategy the path belongs to (used in the message)

    Returns:
        Tuple of (is_valid, message)
    """
    if not path or not path.strip():
        target = "WSL" if strategy == Strategy.WSL else "the virtual machine"
        return False, f"Installation path is required for {target}."
    return True, "Valid installation path"


def validate_vm_memory(memory_mb: int) -> Tuple[bool, str]:
    """Validate virtual machine memory.

    Args:
        memory_mb: RAM in MB

    Returns:
        Tuple of (is_valid, message)
    """
    if memory_mb < MIN_VM_MEMORY_MB:
        return False, "The virtual machine needs at least 1 GB (1024 MB) of RAM."
    return True, "Valid memory size"


def validate_processor_count(count: int) -> Tuple[bool, str]:
    """Validate the virtual CPU count. Zero means 'use the default'."""
    if count < 0:
        return False, "Processor count cannot be negative."
    return True, "Valid processor count"


def validate_config(config: InstallationConfig) -> Optional[str]:
    """Validate a configuration before anything touches the machine.

    Only the fields of the active strategy are checked.

    Args:
        config: The configuration to validate

    Returns:
        None when valid, otherwise a single descriptive error message
    """
    valid, message = validate_system_name(config.system_name)
    if not valid:
        return message

    checks = []
    if config.strategy == Strategy.DUAL_BOOT:
        if config.create_new_partition:
            checks.append(validate_partition_size(config.partition_size_mb))
        else:
            checks.append(validate_existing_partition(config))

    elif config.strategy == Strategy.WSL:
        checks.append(validate_install_path(config.install_path, config.strategy))

    elif config.strategy == Strategy.VIRTUAL_MACHINE:
        checks.append(validate_install_path(config.install_path, config.strategy))
        checks.append(validate_vm_memory(config.vm_ram_mb))
        checks.append(validate_processor_count(config.vm_processor_count))

    for valid, message in checks:
        if not valid:
            return message
    return None


def require_valid_config(config: InstallationConfig) -> InstallationConfig:
    """Return the configuration or raise ConfigurationError."""
    error = validate_config(config)
    if error:
        raise ConfigurationError(error, details=f"strategy={config.strategy.value}")
    return config
