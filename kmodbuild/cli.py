"""CLI entry points for kmodbuild."""

from __future__ import annotations

import argparse
import dataclasses
from typing import List, Optional

from kmodbuild.config import Settings, parse_env
from kmodbuild.exceptions import PipelineError
from kmodbuild.models import PipelineReport
from kmodbuild.pipeline import Pipeline
from kmodbuild.strategy import describe
from kmodbuild.utils import log, log_hints, set_verbose


def report_error(exc: PipelineError) -> None:
    log("ERROR", str(exc))
    log_hints(exc.hints)


def show_config(settings: Settings) -> None:
    """Print the resolved settings and exit."""
    for field in dataclasses.fields(settings):
        print(f"  {field.name}: {getattr(settings, field.name)}")


def _print_block(title: str, lines: List[str]) -> None:
    max_len = max(len(line) for line in lines + [title])
    border_len = max_len + 2
    banner_colour = "\033[0;36m"
    reset = "\033[0m"
    print(f"{banner_colour}{'=' * border_len}{reset}", flush=True)
    print(f"{banner_colour}  {title}{reset}", flush=True)
    for line in lines:
        print(f"{banner_colour}{line}{reset}", flush=True)
    print(f"{banner_colour}{'=' * border_len}{reset}", flush=True)


def print_summary(report: PipelineReport) -> None:
    lines: List[str] = []
    if report.profile:
        profile = report.profile
        compiler = f"{profile.kernel_compiler_kind} {profile.kernel_compiler_version}".rstrip()
        lines.append(f"  VMware Workstation: {profile.product_version}")
        lines.append(f"  Kernel:  {profile.kernel_release} (built with {compiler})")
    if report.strategy:
        lines.append(f"  Modules: {describe(report.strategy)}")
    if report.patches_applied:
        lines.append(f"  Patched: {', '.join(report.patches_applied)}")
    if report.outcome:
        lines.append(f"  Build:   {report.outcome.method}")
    if report.verification:
        states = ", ".join(f"{name}={state}" for name, state in report.verification.module_states.items())
        lines.append(f"  Loaded:  {states}")
        if report.verification.services_restarted:
            lines.append(f"  Services: restarted via {report.verification.service_method}")
    title = "Installation Complete!" if report.verification and report.verification.state == "active" else "Finished"
    _print_block(title, lines)
    for warning in report.warnings:
        log("WARN", warning)
    if title == "Installation Complete!":
        print("You can now launch VMware Workstation.", flush=True)


def print_plan(report: PipelineReport) -> None:
    log("INFO", "=== Dry-run plan ===")
    if report.strategy:
        log("INFO", f"Strategy:    {describe(report.strategy)}")
    if report.patches_pending:
        log("INFO", f"Patches:     {', '.join(report.patches_pending)} (pending)")
    else:
        log("INFO", "Patches:     none needed")
    if report.missing_tools:
        log("ERROR", f"Tools:       missing {', '.join(report.missing_tools)}")
    else:
        log("SUCCESS", "Tools:       all available")
    for warning in report.warnings:
        log("WARN", warning)
    log("INFO", "=== Dry-run complete (nothing built or installed) ===")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Build, install and load VMware Workstation kernel modules for the running kernel"
    )
    parser.add_argument("--dry-run", action="store_true", help="Detect and plan only; change nothing")
    parser.add_argument("--show-config", action="store_true", help="Show resolved settings and exit")
    parser.add_argument("--verbose", action="store_true", help="Print debug output")
    args = parser.parse_args(argv)

    if args.verbose:
        set_verbose(True)

    try:
        settings = parse_env()
    except PipelineError as exc:
        report_error(exc)
        return 1

    if args.show_config:
        show_config(settings)
        return 0

    log("INFO", "VMware Workstation - kernel module build")
    log("INFO", f"Target kernel: {settings.kernel_release}")

    pipeline = Pipeline(settings)
    try:
        if args.dry_run:
            print_plan(pipeline.plan())
            return 0
        report = pipeline.run()
    except PipelineError as exc:
        report_error(exc)
        return 1
    except KeyboardInterrupt:
        log("ERROR", "Interrupted")
        return 130
    except Exception as exc:
        log("ERROR", f"Unexpected error: {exc}")
        log("ERROR", "This is likely a bug. Please report it with the output above.")
        import traceback

        traceback.print_exc()
        return 1

    print_summary(report)
    return 0
