"""bootcheck package."""

__all__ = [
    "boot",
    "cli",
    "cloud_init",
    "config",
    "constants",
    "exceptions",
    "models",
    "network",
    "ssh",
    "utils",
    "vmm",
]
