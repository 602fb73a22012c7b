"""Report models for the stateguard checker.

These are the JSON shapes produced by ``stateguard check --format json``.
"""

from enum import Enum

from pydantic import BaseModel, Field


class Severity(str, Enum):
    """How serious a finding is."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return {Severity.INFO: 0, Severity.WARNING: 1, Severity.ERROR: 2}[self]


class Reader(BaseModel):
    """A public method that reads the field a finding is about."""

    method: str
    line: int


class Finding(BaseModel):
    """A single rule violation."""

    code: str  # e.g. "SG001"
    rule: str  # e.g. "setter-state"
    severity: Severity
    path: str
    line: int
    column: int = 0
    class_name: str
    method: str | None = None  # Method that writes the field
    field: str | None = None  # Instance attribute name
    message: str
    readers: list[Reader] = Field(default_factory=list)
    suggestion: str | None = None

    @property
    def location(self) -> str:
        return f"{self.path}:{self.line}:{self.column}"


class FileError(BaseModel):
    """A file that could not be analyzed."""

    path: str
    line: int | None = None
    message: str


class FileReport(BaseModel):
    """Result of analyzing one source file."""

    path: str
    classes_checked: int = 0
    findings: list[Finding] = Field(default_factory=list)
    error: FileError | None = None


class Report(BaseModel):
    """Result of checking a set of paths."""

    files_checked: int = 0
    classes_checked: int = 0
    findings: list[Finding] = Field(default_factory=list)
    errors: list[FileError] = Field(default_factory=list)

    def add(self, file_report: FileReport) -> None:
        """Merge a file report into this report."""
        self.files_checked += 1
        self.classes_checked += file_report.classes_checked
        self.findings.extend(file_report.findings)
        if file_report.error:
            self.errors.append(file_report.error)

    def count(self, severity: Severity) -> int:
        return sum(1 for f in self.findings if f.severity == severity)
