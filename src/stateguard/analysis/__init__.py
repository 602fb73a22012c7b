"""stateguard analysis - static detection of per-call state in service classes."""

from stateguard.analysis.checker import Checker, analyze_class, analyze_file, analyze_source
from stateguard.analysis.model import FileError, FileReport, Finding, Reader, Report, Severity
from stateguard.analysis.rules import RULES, Rule, get_rule

__all__ = [
    # Models
    "FileError",
    "FileReport",
    "Finding",
    "Reader",
    "Report",
    "Severity",
    # Rules
    "RULES",
    "Rule",
    "get_rule",
    # Checker
    "Checker",
    "analyze_class",
    "analyze_file",
    "analyze_source",
]
