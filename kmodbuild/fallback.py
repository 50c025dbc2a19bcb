"""Ordered fallback attempts for kmodbuild."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from kmodbuild.exceptions import PipelineError
from kmodbuild.utils import log


@dataclass(frozen=True)
class Attempt:
    name: str
    action: Callable[[], bool]


@dataclass
class FallbackResult:
    succeeded: bool
    winner: Optional[str] = None
    tried: List[str] = field(default_factory=list)


class FallbackChain:
    """Try each attempt in order until one reports success."""

    def __init__(self, label: str, attempts: Sequence[Attempt]) -> None:
        self.label = label
        self.attempts = list(attempts)

    def run(self) -> FallbackResult:
        result = FallbackResult(succeeded=False)
        for attempt in self.attempts:
            result.tried.append(attempt.name)
            try:
                ok = attempt.action()
            except (PipelineError, OSError, subprocess.CalledProcessError) as exc:
                log("WARN", f"{self.label}: {attempt.name} raised {exc}")
                ok = False
            if ok:
                result.succeeded = True
                result.winner = attempt.name
                log("DEBUG", f"{self.label}: {attempt.name} succeeded")
                return result
            remaining = len(self.attempts) - len(result.tried)
            if remaining:
                log("WARN", f"{self.label}: {attempt.name} failed, trying next option...")
            else:
                log("WARN", f"{self.label}: {attempt.name} failed")
        return result
