"""rmdb-console package."""

__all__ = [
    "capabilities",
    "cli",
    "config",
    "constants",
    "credentials",
    "exceptions",
    "executor",
    "lifecycle",
    "listing",
    "models",
    "policy",
    "reconciler",
    "utils",
]
