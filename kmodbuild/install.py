"""Install built modules into the running kernel's module tree."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Callable

from kmodbuild.constants import KERNEL_MODULES_ROOT, MODULE_INSTALL_SUBDIR
from kmodbuild.exceptions import BuildFailure, PipelineError
from kmodbuild.models import BuildArtifact, BuildOutcome
from kmodbuild.utils import log, run

Runner = Callable[..., subprocess.CompletedProcess]


class ModuleDirectory:
    """Handle on /lib/modules/<release>/misc; every write goes through sudo."""

    def __init__(self, kernel_release: str, runner: Runner = run, root: Path = KERNEL_MODULES_ROOT) -> None:
        self.kernel_release = kernel_release
        self.runner = runner
        self.path = root / kernel_release / MODULE_INSTALL_SUBDIR

    def ensure(self) -> None:
        self.runner(["mkdir", "-p", str(self.path)], privileged=True)

    def install(self, artifact: BuildArtifact) -> Path:
        self.runner(["cp", str(artifact.binary_path), f"{self.path}/"], privileged=True)
        return self.path / artifact.binary_path.name

    def refresh_dependencies(self) -> None:
        # depmod rewrites metadata for every module of this kernel, not just ours.
        self.runner(["depmod", "-a", self.kernel_release], privileged=True)


class Installer:
    def __init__(self, module_dir: ModuleDirectory) -> None:
        self.module_dir = module_dir

    def install(self, outcome: BuildOutcome) -> bool:
        """Copy both binaries then run depmod once. Returns False when nothing was done."""
        if outcome.installed_by_vendor:
            log("INFO", "Modules were installed by vmware-modconfig; skipping manual install")
            return False
        for artifact in outcome.artifacts:
            if not artifact.succeeded:
                raise BuildFailure(artifact.module, [artifact.log_path])

        log("INFO", "Installing compiled modules...")
        try:
            self.module_dir.ensure()
            for artifact in outcome.artifacts:
                self.module_dir.install(artifact)
            self.module_dir.refresh_dependencies()
        except (subprocess.CalledProcessError, OSError) as exc:
            raise PipelineError(
                f"Failed to install modules into {self.module_dir.path}: {exc}",
                ["Check that sudo works for this user", f"Check free space and permissions on {self.module_dir.path}"],
            )
        log("SUCCESS", f"Modules installed to {self.module_dir.path}/")
        return True
