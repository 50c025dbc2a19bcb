"""kmodbuild package."""

__all__ = [
    "build",
    "cli",
    "config",
    "constants",
    "exceptions",
    "fallback",
    "install",
    "models",
    "patcher",
    "pipeline",
    "probe",
    "services",
    "strategy",
    "toolchain",
    "utils",
    "verify",
]
