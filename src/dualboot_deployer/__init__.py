"""
DualBoot Deployer: guided installation of an alternative operating system

Installs a second system next to Windows as a dual boot, a WSL distribution
or a virtual machine.
"""

try:
    from importlib.metadata import version
    __version__ = version("dualboot-deployer")
except Exception:
    __version__ = "0.0.0"  # Fallback for development

__all__ = ["__version__"]
