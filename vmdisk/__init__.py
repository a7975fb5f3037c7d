"""vm-disk-provisioner package."""

__all__ = [
    "cli",
    "config",
    "constants",
    "devices",
    "exceptions",
    "formats",
    "imagetool",
    "inspector",
    "manager",
    "migrator",
    "models",
    "planner",
    "topology",
    "utils",
]
