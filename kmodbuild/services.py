"""Restart of the VMware service layer after modules are loaded."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Callable

from kmodbuild.constants import DEFAULT_SERVICE, INIT_SCRIPT_DIR
from kmodbuild.fallback import Attempt, FallbackChain, FallbackResult
from kmodbuild.utils import log, run

Runner = Callable[..., subprocess.CompletedProcess]


class ServiceRestarter:
    """systemd first, then the legacy init script."""

    def __init__(self, service: str = DEFAULT_SERVICE, runner: Runner = run, init_dir: Path = INIT_SCRIPT_DIR) -> None:
        self.service = service
        self.runner = runner
        self.init_script = init_dir / service

    def _systemctl(self) -> bool:
        result = self.runner(
            ["systemctl", "restart", self.service],
            check=False,
            privileged=True,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        return result.returncode == 0

    def _init_script(self) -> bool:
        if not self.init_script.exists():
            log("DEBUG", f"{self.init_script} not present")
            return False
        result = self.runner(
            [str(self.init_script), "restart"],
            check=False,
            privileged=True,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        return result.returncode == 0

    def restart(self) -> FallbackResult:
        log("INFO", "Starting VMware services...")
        chain = FallbackChain(
            "Service restart",
            [
                Attempt("systemctl", self._systemctl),
                Attempt("init-script", self._init_script),
            ],
        )
        result = chain.run()
        if result.succeeded:
            log("SUCCESS", "VMware services started successfully!")
        return result
