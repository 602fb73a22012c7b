"""State fingerprints - detect whether a call changed an instance.

Scalars and builtin containers are compared by value. Any other object
(an HTTP client, a repository, a logger) is a collaborator: only *which*
object the field points at is recorded, never its internals.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Hashable

MAX_DEPTH = 8

_SCALARS = (type(None), bool, int, float, complex, str, bytes)


def fingerprint(value: Any, _depth: int = 0, _seen: frozenset[int] = frozenset()) -> Hashable:
    """Build a hashable structural fingerprint of a value."""
    if isinstance(value, _SCALARS):
        return (type(value).__name__, value)

    if isinstance(value, Enum):
        return ("enum", type(value).__qualname__, value.name)

    if _depth >= MAX_DEPTH or id(value) in _seen:
        return ("ref", type(value).__qualname__, id(value))

    seen = _seen | {id(value)}
    depth = _depth + 1

    if isinstance(value, (list, tuple, deque)):
        return (type(value).__name__, tuple(fingerprint(item, depth, seen) for item in value))

    if isinstance(value, dict):
        return (
            "dict",
            tuple(
                (fingerprint(k, depth, seen), fingerprint(v, depth, seen))
                for k, v in value.items()
            ),
        )

    if isinstance(value, (set, frozenset)):
        return (type(value).__name__, frozenset(fingerprint(item, depth, seen) for item in value))

    if isinstance(value, bytearray):
        return ("bytearray", bytes(value))

    # Opaque collaborator
    return ("ref", type(value).__qualname__, id(value))


def _slot_names(obj: Any) -> list[str]:
    names: list[str] = []
    for klass in type(obj).__mro__:
        slots = klass.__dict__.get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        names.extend(s for s in slots if s not in ("__dict__", "__weakref__"))
    return names


def snapshot(obj: Any) -> dict[str, Hashable]:
    """Fingerprint every instance attribute of an object."""
    state: dict[str, Hashable] = {}
    for name, value in getattr(obj, "__dict__", {}).items():
        state[name] = fingerprint(value)
    for name in _slot_names(obj):
        try:
            state[name] = fingerprint(object.__getattribute__(obj, name))
        except AttributeError:
            # Unset slot
            continue
    return state


@dataclass(frozen=True)
class FieldChange:
    """One attribute that differs between two snapshots."""

    field: str
    kind: str  # "added", "removed" or "changed"

    def __str__(self) -> str:
        return f"self.{self.field} {self.kind}"


def diff_snapshots(before: dict[str, Hashable], after: dict[str, Hashable]) -> list[FieldChange]:
    """List the attributes added, removed or changed between two snapshots."""
    changes: list[FieldChange] = []
    for name in sorted(before.keys() | after.keys()):
        if name not in before:
            changes.append(FieldChange(name, "added"))
        elif name not in after:
            changes.append(FieldChange(name, "removed"))
        elif before[name] != after[name]:
            changes.append(FieldChange(name, "changed"))
    return changes
