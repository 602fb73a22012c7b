"""Probe runner - calls a service and records the state each call leaves behind."""

from __future__ import annotations

import time
from typing import Any

from stateguard.async_runner import call_with_timeout
from stateguard.diagnostics import ProbeTimeoutError
from stateguard.logger import get_logger
from stateguard.probe.fingerprint import diff_snapshots, snapshot
from stateguard.probe.resolver import ServiceResolver
from stateguard.probe.scenario import CallOutcome, ProbeReport, ProbeScenario

logger = get_logger(__name__)


def probe_instance(
    instance: Any,
    scenario: ProbeScenario,
    default_timeout_ms: int | None = None,
) -> ProbeReport:
    """Run a scenario's calls against an existing instance.

    A call that raises is recorded with its error and the probe moves on;
    the state diff is taken either way.
    """
    report = ProbeReport(target=scenario.target)

    for round_number in range(1, scenario.repeat + 1):
        for call in scenario.calls:
            timeout_ms = call.timeout_ms if call.timeout_ms is not None else default_timeout_ms
            before = snapshot(instance)
            start = time.perf_counter()
            error: str | None = None

            try:
                method = getattr(instance, call.method)
                call_with_timeout(method, kwargs=call.kwargs, timeout_ms=timeout_ms)
            except ProbeTimeoutError as e:
                error = str(e)
            except Exception as e:
                error = f"{type(e).__name__}: {e}"

            duration_ms = (time.perf_counter() - start) * 1000
            changes = diff_snapshots(before, snapshot(instance))
            if changes:
                logger.debug("%s() changed %s", call.method, ", ".join(map(str, changes)))

            report.outcomes.append(
                CallOutcome.from_changes(
                    call.method,
                    round_number,
                    changes,
                    error=error,
                    duration_ms=duration_ms,
                )
            )

    return report


def run_probe(scenario: ProbeScenario, resolver: ServiceResolver) -> ProbeReport:
    """Build the scenario's target through the resolver and probe it.

    Raises:
        ResolutionError / ConstructionError: If the target cannot be built.
    """
    instance = resolver.build(scenario.target)
    return probe_instance(instance, scenario, resolver.config.timeout_ms)


def format_probe(report: ProbeReport) -> str:
    """Format a probe report for display."""
    lines = []
    for outcome in report.outcomes:
        icon = "✗" if outcome.changes else "✓"
        line = f"  {icon} round {outcome.round}: {outcome.method}()"
        if outcome.error:
            line += f" raised {outcome.error}"
        lines.append(line)
        for change in outcome.changes:
            lines.append(f"      {change}")

    verdict = "stateless" if report.stateless else "stateful"
    summary = f"\n{report.target} is {verdict} ({len(report.outcomes)} calls"
    if report.failed_calls:
        summary += f", {report.failed_calls} raised"
    summary += ")"
    return "\n".join(lines) + summary
