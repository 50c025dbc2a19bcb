"""Custom exceptions for kmodbuild."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional


class PipelineError(RuntimeError):
    """Raised on unrecoverable configuration or runtime errors.

    ``hints`` holds remediation lines printed under the error message.
    """

    def __init__(self, message: str, hints: Optional[Iterable[str]] = None) -> None:
        super().__init__(message)
        self.hints: List[str] = list(hints or [])


class ConfigError(PipelineError):
    """Invalid setting or unreadable configuration file."""


class PrivilegeError(PipelineError):
    """The tool was started as root instead of elevating per step."""


class ConcurrentRunError(PipelineError):
    """Another instance already holds the run lock."""


class HostEnvironmentError(PipelineError):
    """Product or kernel metadata could not be detected."""


class UnsupportedVersionError(PipelineError):
    """No build strategy is mapped for the installed product version."""


class SourceLayoutError(PipelineError):
    """The module source tree does not look like the selected strategy expects."""


class ToolchainMissingError(PipelineError):
    def __init__(self, binary: str, hint: str, reason: str = "") -> None:
        message = f"{binary} not found!"
        if reason:
            message = f"{message} {reason}"
        super().__init__(message, [f"Install with: {hint}"])
        self.binary = binary
        self.hint = hint


class BuildFailure(PipelineError):
    def __init__(self, module: str, log_paths: Iterable[Path], hints: Optional[Iterable[str]] = None) -> None:
        self.module = module
        self.log_paths: List[Path] = list(log_paths)
        logs = " and ".join(str(path) for path in self.log_paths)
        default_hints = [
            "Ensure kernel headers are installed: sudo apt/dnf/pacman install linux-headers-$(uname -r)",
            "Check if Secure Boot is disabled",
            "For Clang kernels, ensure Clang and LLD are installed",
            f"Check build logs: {logs}",
        ]
        super().__init__(f"{module} compilation failed", list(hints or []) + default_hints)


class LoadFailure(PipelineError):
    def __init__(self, module: str) -> None:
        super().__init__(
            f"Failed to load {module}",
            [
                "Check dmesg for kernel module errors: dmesg | tail -20",
                "Ensure Secure Boot is disabled",
                f"Check module dependencies: modinfo /lib/modules/$(uname -r)/misc/{module}.ko",
            ],
        )
        self.module = module
