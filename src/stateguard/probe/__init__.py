"""stateguard probe - observe instance state around real calls."""

from stateguard.probe.fingerprint import FieldChange, diff_snapshots, fingerprint, snapshot
from stateguard.probe.resolver import ServiceResolver
from stateguard.probe.runner import format_probe, probe_instance, run_probe
from stateguard.probe.scenario import (
    CallOutcome,
    ProbeCall,
    ProbeReport,
    ProbeScenario,
    load_scenario,
)

__all__ = [
    # Fingerprints
    "FieldChange",
    "diff_snapshots",
    "fingerprint",
    "snapshot",
    # Scenarios
    "CallOutcome",
    "ProbeCall",
    "ProbeReport",
    "ProbeScenario",
    "load_scenario",
    # Running
    "ServiceResolver",
    "format_probe",
    "probe_instance",
    "run_probe",
]
