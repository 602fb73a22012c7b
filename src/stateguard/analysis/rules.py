"""Rule catalogue for the stateguard checker."""

from dataclasses import dataclass

from stateguard.analysis.model import Severity


@dataclass(frozen=True)
class Rule:
    code: str
    name: str
    severity: Severity
    summary: str
    explanation: str


INVALID_PRAGMA = Rule(
    code="SG000",
    name="invalid-pragma",
    severity=Severity.ERROR,
    summary="A '# stateguard:' comment could not be parsed.",
    explanation="""\
Pragmas look like:

  # stateguard: ignore
  # stateguard: ignore[SG001, mutable-state]
  # stateguard: ignore-file[SG002]

A malformed pragma suppresses nothing and is reported so it can be fixed.""",
)

SETTER_STATE = Rule(
    code="SG001",
    name="setter-state",
    severity=Severity.ERROR,
    summary="A public setter stores a field that another public method reads.",
    explanation="""\
Setter-based configuration splits one operation across two calls:

  mailer.set_customer(42)
  mailer.send(document)

When the container hands the same instance to several callers (a singleton,
a worker reused across queue jobs), the second call may see a value left
behind by someone else. Values that vary per call belong in the parameters of
the method that uses them:

  mailer.send(customer_id=42, document=document)

Values that are fixed for the life of the instance (credentials, endpoints)
belong in the constructor.""",
)

MUTABLE_STATE = Rule(
    code="SG002",
    name="mutable-state",
    severity=Severity.WARNING,
    summary="A public method writes a field that a later public call reads.",
    explanation="""\
Outside the constructor, a service method should not leave values on the
instance for the next call to pick up. Counters, 'last result' caches and
in-flight buffers are all visible to every caller sharing the instance.

Return the value instead, or move the state into a collaborator that is
designed to be shared (a repository, a cache with its own locking).""",
)

FLUENT_SETTER = Rule(
    code="SG003",
    name="fluent-setter",
    severity=Severity.INFO,
    summary="A setter returns self, turning the service into a mutable builder.",
    explanation="""\
Chained setters (service.set_a(1).set_b(2).run()) make a shared service
behave like a builder. Build an immutable value object per call and pass it
as a single argument instead.""",
)

RULES: dict[str, Rule] = {
    rule.code: rule for rule in (INVALID_PRAGMA, SETTER_STATE, MUTABLE_STATE, FLUENT_SETTER)
}


def get_rule(name_or_code: str) -> Rule | None:
    """Look up a rule by code (case-insensitive) or by slug."""
    key = name_or_code.strip()
    if key.upper() in RULES:
        return RULES[key.upper()]
    for rule in RULES.values():
        if rule.name == key.lower():
            return rule
    return None


def normalize_codes(names: list[str]) -> set[str]:
    """Map a list of codes or slugs to rule codes.

    Raises:
        ValueError: If a name does not match any rule.
    """
    codes: set[str] = set()
    for name in names:
        rule = get_rule(name)
        if rule is None:
            raise ValueError(f"Unknown rule: {name!r}")
        codes.add(rule.code)
    return codes
