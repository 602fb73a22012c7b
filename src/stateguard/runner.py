"""Check runner - discovers files and aggregates reports."""

from __future__ import annotations

import fnmatch
from pathlib import Path
from typing import TYPE_CHECKING

from stateguard.analysis.checker import Checker
from stateguard.analysis.model import Finding, Report, Severity
from stateguard.logger import get_logger

if TYPE_CHECKING:
    from stateguard.config import StateguardConfig

logger = get_logger(__name__)


def _excluded(path: Path, exclude: list[str]) -> bool:
    return any(
        fnmatch.fnmatchcase(part, pattern) for part in path.parts for pattern in exclude
    )


def collect_files(paths: list[Path], exclude: list[str]) -> list[Path]:
    """Expand files and directories into a sorted list of Python files.

    Args:
        paths: Files or directories to search.
        exclude: fnmatch patterns; a file is skipped if any path component matches.

    Returns:
        De-duplicated, sorted list of .py files.

    Raises:
        FileNotFoundError: If a given path does not exist.
    """
    found: set[Path] = set()

    for path in paths:
        if not path.exists():
            raise FileNotFoundError(f"No such file or directory: {path}")

        if path.is_file():
            # Explicit files are always checked
            found.add(path)
            continue

        for candidate in path.rglob("*.py"):
            relative = candidate.relative_to(path)
            if _excluded(relative, exclude):
                continue
            found.add(candidate)

    return sorted(found)


def check_paths(paths: list[Path], config: StateguardConfig) -> Report:
    """Check all Python files under the given paths.

    Args:
        paths: Files or directories to check.
        config: Checker configuration.

    Returns:
        Aggregated report.
    """
    checker = Checker(config)
    report = Report()

    for path in collect_files(paths, config.exclude):
        report.add(checker.check_file(path))

    logger.debug(
        "Checked %d files, %d classes, %d findings",
        report.files_checked,
        report.classes_checked,
        len(report.findings),
    )
    return report


def exit_code(report: Report, fail_on: Severity = Severity.ERROR) -> int:
    """Return 1 if any finding is at or above fail_on, or a file failed to parse."""
    if report.errors:
        return 1
    if any(f.severity.rank >= fail_on.rank for f in report.findings):
        return 1
    return 0


def format_results(report: Report, show_suggestions: bool = True) -> str:
    """Format a report for display.

    Args:
        report: The report to render.
        show_suggestions: If True, print the refactor suggestion under each finding.

    Returns:
        Formatted string for display.
    """
    lines: list[str] = []

    by_path: dict[str, list[Finding]] = {}
    for finding in report.findings:
        by_path.setdefault(finding.path, []).append(finding)

    for path in sorted(by_path):
        lines.append(path)
        for finding in by_path[path]:
            icon = {
                Severity.ERROR: "✗",  # x mark
                Severity.WARNING: "!",
                Severity.INFO: "-",
            }[finding.severity]
            owner = finding.class_name or "<module>"
            lines.append(
                f"  {icon} {finding.line}:{finding.column} {finding.code} [{owner}] {finding.message}"
            )
            if show_suggestions and finding.suggestion:
                lines.append(f"      {finding.suggestion}")
        lines.append("")

    for error in report.errors:
        where = f"{error.path}:{error.line}" if error.line else error.path
        lines.append(f"  ! {where} {error.message}")

    summary = (
        f"{report.count(Severity.ERROR)} errors, "
        f"{report.count(Severity.WARNING)} warnings, "
        f"{report.count(Severity.INFO)} info "
        f"({report.classes_checked} classes in {report.files_checked} files)"
    )
    if report.errors:
        summary += f", {len(report.errors)} files failed to parse"

    return "\n".join(lines + [summary]).strip()
