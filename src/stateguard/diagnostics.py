"""Errors and diagnostics for stateguard.

Resolution and construction failures carry the trail of what was tried and
what to do about it, rendered into the exception message.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from stateguard.analysis.model import Finding

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


@dataclass
class SearchAttempt:
    location: str  # File, module or registration key that was tried
    found: bool
    reason: str | None = None


@dataclass
class DiagnosticContext:
    """What was tried while resolving one target, and how to fix it."""

    target: str
    searches: list[SearchAttempt] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    def add_search(self, location: str, found: bool, reason: str | None = None) -> None:
        self.searches.append(SearchAttempt(location, found, reason))

    def add_suggestion(self, suggestion: str) -> None:
        self.suggestions.append(suggestion)

    def render(self, summary: str) -> str:
        """Render the summary followed by the search trail and numbered suggestions."""
        sections = [summary]
        if self.searches:
            trail = [
                f"  {'✓' if s.found else '✗'} {s.location}" + (f" ({s.reason})" if s.reason else "")
                for s in self.searches
            ]
            sections.append("\n".join(["Searched:", *trail]))
        if self.suggestions:
            numbered = [f"  {n}. {text}" for n, text in enumerate(self.suggestions, 1)]
            sections.append("\n".join(["Suggestions:", *numbered]))
        return "\n\n".join(sections).rstrip()


class StateguardError(Exception):
    """Base for errors that may carry a DiagnosticContext."""

    def __init__(self, message: str, context: DiagnosticContext | None = None):
        self.context = context
        super().__init__(context.render(message) if context else message)


class ResolutionError(StateguardError):
    """A target class or container key could not be found."""


class ConstructionError(StateguardError):
    """A target was found but no instance could be built."""


class StatefulServiceError(StateguardError):
    """Raised when a service shared across callers keeps per-call state.

    Carries either the static findings that rejected a registration or the
    field changes observed around a guarded call.
    """

    def __init__(
        self,
        message: str,
        findings: list[Finding] | None = None,
        changes: list[Any] | None = None,
    ):
        self.findings = findings or []
        self.changes = changes or []
        lines = [message]
        lines += [f"  {f.code} {f.location}: {f.message}" for f in self.findings]
        lines += [f"  {change}" for change in self.changes]
        super().__init__("\n".join(lines))


class PragmaError(StateguardError):
    """Raised when a ``# stateguard:`` comment cannot be parsed."""

    def __init__(self, text: str, line: int, reason: str):
        self.text = text
        self.line = line
        self.reason = reason
        super().__init__(f"Invalid pragma on line {line}: {text!r} ({reason})")


class ProbeTimeoutError(StateguardError):
    """Raised when a probed call exceeds its timeout."""

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(f"Call timed out after {timeout_ms}ms")


def suggest_factory_creation(class_name: str, module_path: str, factories_dir: str | Path) -> str:
    """Show the factory file the probe would pick up for a class.

    ``module_path`` is the dotted module of the class ("myapp.services");
    the suggested file uses its last component, the flat layout.
    """
    func_name = to_snake_case(class_name)
    stem = module_path.rsplit(".", 1)[-1] if module_path else func_name
    return (
        "Create a factory function:\n\n"
        f"  # {factories_dir}/{stem}.py\n"
        f"  from {module_path} import {class_name}\n\n"
        f"  def {func_name}() -> {class_name}:\n"
        "      # Construct with fixed configuration only\n"
        f"      return {class_name}(...)\n"
    )


# Field or setter names that usually hold per-instance configuration
CONFIG_NOUNS = (
    "key",
    "token",
    "secret",
    "credential",
    "password",
    "config",
    "settings",
    "url",
    "endpoint",
    "host",
    "timeout",
    "client",
)


def suggest_refactor(
    setter: str,
    field_name: str,
    readers: list[str],
) -> str:
    """Suggest how to remove setter-based state.

    Args:
        setter: Method that stores the field (property accessors end in ".setter" or ".deleter").
        field_name: The instance attribute being stored.
        readers: Public methods that read the field.

    Returns:
        One or two sentences naming the refactor.
    """
    param = field_name.lstrip("_") or field_name
    prop, _, accessor = setter.partition(".")
    setter_label = f"the {prop} property {accessor}" if accessor else f"{setter}()"

    reader_calls = ", ".join(f"{r}({param}=...)" for r in readers)
    lowered = f"{setter} {field_name}".lower()
    fixed = any(noun in lowered for noun in CONFIG_NOUNS)

    if fixed:
        text = (
            f"If {param} is fixed for the life of the instance, take it as a constructor "
            f"argument and drop {setter_label}; otherwise pass it per call: {reader_calls}."
        )
    else:
        text = f"Pass {param} per call instead of storing it: {reader_calls}; then drop {setter_label}."

    if len(readers) > 1:
        text += " Several methods need it, so an immutable value object passed as one argument may read better."
    return text


def suggest_registration(key_name: str) -> str:
    """Suggest how to register a missing container key."""
    return f"Register it first: container.register({key_name})"


def to_snake_case(name: str) -> str:
    """Convert CamelCase to snake_case (HTTPClient -> http_client)."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()
