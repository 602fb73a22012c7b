"""Stateless-service checker - applies the SG rules to collected class facts."""

from __future__ import annotations

import ast
import fnmatch
import inspect
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from stateguard.analysis.facts import (
    PROPERTY_ACCESSORS,
    ClassFacts,
    MethodFacts,
    collect_class,
    iter_classes,
)
from stateguard.analysis.model import FileError, FileReport, Finding, Reader, Severity
from stateguard.analysis.pragma import scan_pragmas
from stateguard.analysis.rules import (
    FLUENT_SETTER,
    INVALID_PRAGMA,
    MUTABLE_STATE,
    SETTER_STATE,
    Rule,
    normalize_codes,
)
from stateguard.diagnostics import suggest_refactor
from stateguard.logger import get_logger

if TYPE_CHECKING:
    from stateguard.config import StateguardConfig

logger = get_logger(__name__)


@dataclass
class _Effect:
    line: int  # Line of the access
    via: str  # Method that performs the access


@dataclass
class _ClassEffects:
    """Reads and writes of each method, closed over self.method() calls."""

    writes: dict[str, dict[str, _Effect]]
    reads: dict[str, dict[str, _Effect]]


def _accessors(cls: ClassFacts, name: str) -> list[str]:
    """Property setter and deleter methods defined for a field name."""
    return [key for key in (f"{name}.{kind}" for kind in PROPERTY_ACCESSORS) if key in cls.methods]


def _call_edges(cls: ClassFacts, method: MethodFacts) -> set[str]:
    """Methods reached directly from a method, including property access."""
    edges = {name for name in method.calls if name in cls.methods}
    for name in method.reads:
        if name in cls.methods:
            edges.add(name)
    for name in method.writes:
        edges.update(_accessors(cls, name))
    edges.discard(method.name)
    return edges


def _own_reads(cls: ClassFacts, method: MethodFacts) -> dict[str, int]:
    # Calling a non-method attribute (a stored callback) reads it
    reads = {name: line for name, line in method.reads.items() if name not in cls.methods}
    for name, line in method.calls.items():
        if name not in cls.methods:
            reads.setdefault(name, line)
    return reads


def _own_writes(cls: ClassFacts, method: MethodFacts) -> dict[str, int]:
    # Assigning to or deleting a property runs its accessors instead
    return {
        name: line
        for name, line in method.writes.items()
        if not _accessors(cls, name)
    }


def close_effects(cls: ClassFacts) -> _ClassEffects:
    """Close each method's reads and writes over the intra-class call graph."""
    edges = {name: _call_edges(cls, m) for name, m in cls.methods.items()}
    writes: dict[str, dict[str, _Effect]] = {}
    reads: dict[str, dict[str, _Effect]] = {}

    for root in cls.methods:
        root_writes: dict[str, _Effect] = {}
        root_reads: dict[str, _Effect] = {}
        seen: set[str] = set()
        stack = [root]
        while stack:
            name = stack.pop()
            if name in seen:
                continue
            seen.add(name)
            method = cls.methods[name]
            for field_name, line in _own_writes(cls, method).items():
                root_writes.setdefault(field_name, _Effect(line, name))
            for field_name, line in _own_reads(cls, method).items():
                root_reads.setdefault(field_name, _Effect(line, name))
            stack.extend(sorted(edges[name] - seen, reverse=True))
        writes[root] = root_writes
        reads[root] = root_reads

    return _ClassEffects(writes=writes, reads=reads)


class Checker:
    """Runs the enabled rules over one file."""

    def __init__(self, config: StateguardConfig | None = None):
        if config is None:
            from stateguard.config import StateguardConfig

            config = StateguardConfig()
        self.config = config
        self._enabled = self._enabled_codes()

    def _enabled_codes(self) -> set[str]:
        codes = {INVALID_PRAGMA.code, SETTER_STATE.code, MUTABLE_STATE.code, FLUENT_SETTER.code}
        if self.config.select is not None:
            codes &= normalize_codes(self.config.select)
        codes -= normalize_codes(self.config.ignore)
        return {code for code in codes if self.config.rule_config(code).enabled}

    def _severity(self, rule: Rule) -> Severity:
        return self.config.rule_config(rule.code).severity or rule.severity

    # =========================================================================
    # Entry points
    # =========================================================================

    def check_source(self, source: str, path: str = "<string>") -> FileReport:
        """Check every class in a source string."""
        report = FileReport(path=path)

        try:
            tree = ast.parse(source, filename=path)
        except SyntaxError as e:
            report.error = FileError(path=path, line=e.lineno, message=f"SyntaxError: {e.msg}")
            return report

        pragmas = scan_pragmas(source)
        if INVALID_PRAGMA.code in self._enabled:
            for error in pragmas.errors:
                report.findings.append(
                    Finding(
                        code=INVALID_PRAGMA.code,
                        rule=INVALID_PRAGMA.name,
                        severity=self._severity(INVALID_PRAGMA),
                        path=path,
                        line=error.line,
                        class_name="",
                        message=f"Invalid pragma {error.text!r}: {error.reason}",
                    )
                )

        for node, qualname in iter_classes(tree):
            if self._skip_class(node, qualname):
                continue
            report.classes_checked += 1
            facts = collect_class(node, qualname, self.config.analysis)
            if facts.frozen:
                logger.debug("Skipping frozen dataclass %s in %s", qualname, path)
                continue
            for finding in self.check_class(facts, path):
                lines = (finding.line, self._def_line(facts, finding.method), facts.line)
                if pragmas.suppresses(finding.code, lines):
                    logger.debug("Suppressed %s for %s.%s", finding.code, qualname, finding.method)
                    continue
                report.findings.append(finding)

        report.findings.sort(key=lambda f: (f.line, f.column, f.code))
        return report

    def check_file(self, path: Path) -> FileReport:
        """Check a file on disk."""
        logger.debug("Checking %s", path)
        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return FileReport(path=str(path), error=FileError(path=str(path), message=str(e)))
        return self.check_source(source, str(path))

    def check_type(self, cls: type) -> FileReport:
        """Check a live class via its source code.

        Raises:
            OSError / TypeError: If the class source is unavailable.
        """
        source = textwrap.dedent(inspect.getsource(cls))
        path = inspect.getsourcefile(cls) or "<unknown>"
        report = self.check_source(source, path)

        # getsource starts at line 1; shift back to file lines
        _, start = inspect.getsourcelines(cls)
        offset = max(start - 1, 0)
        for finding in report.findings:
            finding.line += offset
            for reader in finding.readers:
                reader.line += offset
        return report

    # =========================================================================
    # Rules
    # =========================================================================

    def check_class(self, facts: ClassFacts, path: str) -> list[Finding]:
        """Apply the SG001-SG003 rules to one class."""
        effects = close_effects(facts)
        public = [
            m for m in facts.methods.values() if m.public and not m.constructor
        ]
        readers_of: dict[str, list[Reader]] = {}
        for method in sorted(public, key=lambda m: m.name):
            for field_name, effect in effects.reads[method.name].items():
                readers_of.setdefault(field_name, []).append(
                    Reader(method=method.name, line=effect.line)
                )

        findings: list[Finding] = []
        setter_fields: set[str] = set()

        if SETTER_STATE.code in self._enabled:
            for setter in (m for m in public if m.setter):
                for field_name, effect in sorted(effects.writes[setter.name].items()):
                    readers = [
                        r for r in readers_of.get(field_name, []) if r.method != setter.name
                    ]
                    if not readers:
                        continue
                    setter_fields.add(field_name)
                    findings.append(
                        self._finding(
                            SETTER_STATE,
                            path,
                            facts,
                            setter,
                            field_name,
                            effect,
                            readers,
                            f"Setter {setter.display_name} stores self.{field_name}, "
                            f"which is read later by {_join(readers)}",
                            suggest_refactor(
                                setter.name,
                                field_name,
                                [r.method for r in readers],
                            ),
                        )
                    )

        if MUTABLE_STATE.code in self._enabled:
            for method in (m for m in public if not m.setter):
                for field_name, effect in sorted(effects.writes[method.name].items()):
                    if field_name in setter_fields:
                        continue
                    readers = readers_of.get(field_name, [])
                    if not readers:
                        continue
                    findings.append(
                        self._finding(
                            MUTABLE_STATE,
                            path,
                            facts,
                            method,
                            field_name,
                            effect,
                            readers,
                            f"{method.display_name} writes self.{field_name} outside the "
                            f"constructor; later calls to {_join(readers)} see it",
                            "Return the value instead of storing it, or keep it in a "
                            "collaborator built to be shared.",
                        )
                    )

        if FLUENT_SETTER.code in self._enabled:
            for setter in (m for m in public if m.setter and m.returns_self):
                findings.append(
                    Finding(
                        code=FLUENT_SETTER.code,
                        rule=FLUENT_SETTER.name,
                        severity=self._severity(FLUENT_SETTER),
                        path=path,
                        line=setter.line,
                        column=0,
                        class_name=facts.name,
                        method=setter.name,
                        message=f"Setter {setter.display_name} returns self",
                        suggestion="Build an immutable value object per call and pass it "
                        "as a single argument.",
                    )
                )

        return findings

    def _finding(
        self,
        rule: Rule,
        path: str,
        facts: ClassFacts,
        method: MethodFacts,
        field_name: str,
        effect: _Effect,
        readers: list[Reader],
        message: str,
        suggestion: str,
    ) -> Finding:
        if effect.via != method.name:
            message += f" (via {facts.methods[effect.via].display_name})"
        return Finding(
            code=rule.code,
            rule=rule.name,
            severity=self._severity(rule),
            path=path,
            line=effect.line,
            column=0,
            class_name=facts.name,
            method=method.name,
            field=field_name,
            message=message,
            readers=readers,
            suggestion=suggestion,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _skip_class(self, node: ast.ClassDef, qualname: str) -> bool:
        for pattern in self.config.analysis.ignore_classes:
            if fnmatch.fnmatchcase(node.name, pattern) or fnmatch.fnmatchcase(qualname, pattern):
                logger.debug("Ignoring class %s (matches %r)", qualname, pattern)
                return True
        return False

    @staticmethod
    def _def_line(facts: ClassFacts, method: str | None) -> int:
        if method is None or method not in facts.methods:
            return facts.line
        return facts.methods[method].line


def _join(readers: list[Reader]) -> str:
    names = [f"{r.method}()" for r in readers]
    if len(names) == 1:
        return names[0]
    return ", ".join(names[:-1]) + f" and {names[-1]}"


def analyze_source(
    source: str, path: str = "<string>", config: StateguardConfig | None = None
) -> FileReport:
    """Check a source string with the given (or default) configuration."""
    return Checker(config).check_source(source, path)


def analyze_file(path: Path | str, config: StateguardConfig | None = None) -> FileReport:
    """Check a file on disk."""
    return Checker(config).check_file(Path(path))


def analyze_class(cls: type, config: StateguardConfig | None = None) -> FileReport:
    """Check a live class through ``inspect.getsource``."""
    return Checker(config).check_type(cls)
