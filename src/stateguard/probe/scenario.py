"""Probe scenario models.

A scenario names a service class and the calls to make on one instance of it:

    target: example.mailer.DocumentMailer
    repeat: 2
    calls:
      - method: send
        kwargs: {customer_id: 7, document: "invoice-7.pdf"}
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from stateguard.probe.fingerprint import FieldChange


class ProbeCall(BaseModel):
    """One method call on the probed instance."""

    method: str
    kwargs: dict[str, Any] = Field(default_factory=dict)
    timeout_ms: int | None = None  # Overrides the configured default


class ProbeScenario(BaseModel):
    """Root document for a probe scenario file."""

    target: str  # Dotted class path, e.g. "myapp.services.Mailer"
    description: str | None = None
    calls: list[ProbeCall] = Field(default_factory=list)
    repeat: int = 1  # Run the call list this many times on the same instance

    @field_validator("repeat")
    @classmethod
    def positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("repeat must be at least 1")
        return v

    @field_validator("calls")
    @classmethod
    def not_empty(cls, v: list[ProbeCall]) -> list[ProbeCall]:
        if not v:
            raise ValueError("a scenario needs at least one call")
        return v


class CallOutcome(BaseModel):
    """What one probed call did."""

    method: str
    round: int
    changes: list[str] = Field(default_factory=list)
    error: str | None = None
    duration_ms: float = 0.0

    @classmethod
    def from_changes(cls, method: str, round: int, changes: list[FieldChange], **kw: Any) -> "CallOutcome":
        return cls(method=method, round=round, changes=[str(c) for c in changes], **kw)


class ProbeReport(BaseModel):
    """Result of running a scenario."""

    target: str
    outcomes: list[CallOutcome] = Field(default_factory=list)

    @property
    def stateless(self) -> bool:
        return not any(o.changes for o in self.outcomes)

    @property
    def failed_calls(self) -> int:
        return sum(1 for o in self.outcomes if o.error)


def load_scenario(path: Path) -> ProbeScenario:
    """Load a scenario from a YAML (or JSON) file."""
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in scenario {path}: {e}") from e
    return ProbeScenario.model_validate(data)
