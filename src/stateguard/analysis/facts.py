"""Fact collection - walks class bodies and records field reads and writes.

A field is any ``self.<name>`` attribute. The collected facts are purely
syntactic; the checker closes them over intra-class ``self.method()`` calls.
"""

from __future__ import annotations

import ast
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator

if TYPE_CHECKING:
    from stateguard.config import AnalysisConfig

# In-place mutators of builtin containers (list, dict, set, deque)
MUTATING_METHODS = frozenset(
    {
        "append",
        "appendleft",
        "clear",
        "discard",
        "extend",
        "extendleft",
        "insert",
        "pop",
        "popitem",
        "popleft",
        "remove",
        "reverse",
        "setdefault",
        "sort",
        "update",
        "add",
    }
)

# Decorators that make a method a property accessor keyed as "<name>.<kind>"
PROPERTY_ACCESSORS = ("setter", "deleter")

_FunctionNode = ast.FunctionDef | ast.AsyncFunctionDef


@dataclass
class MethodFacts:
    """What a single method does to instance fields."""

    name: str  # Property accessors are keyed as "<name>.setter" and "<name>.deleter"
    line: int
    public: bool = False
    setter: bool = False
    constructor: bool = False
    returns_self: bool = False
    writes: dict[str, int] = field(default_factory=dict)  # field -> first line
    reads: dict[str, int] = field(default_factory=dict)
    calls: dict[str, int] = field(default_factory=dict)  # self.<name>() -> first line

    @property
    def display_name(self) -> str:
        prop, _, accessor = self.name.partition(".")
        if accessor:
            return f"{prop} (property {accessor})"
        return f"{self.name}()"


@dataclass
class ClassFacts:
    """Facts for one class definition."""

    name: str  # Qualified within the module, e.g. "Outer.Inner"
    line: int
    column: int
    frozen: bool = False
    methods: dict[str, MethodFacts] = field(default_factory=dict)


def is_setter_name(name: str, prefixes: list[str]) -> bool:
    """Whether a method name looks like a setter.

    The prefix must be followed by '_', an uppercase letter or the end of the
    name, so ``set_customer`` and ``setCustomer`` match but ``settle`` does not.
    """
    for prefix in prefixes:
        if re.match(rf"^{re.escape(prefix)}(_|[A-Z]|$)", name):
            return True
    return False


class _MethodVisitor(ast.NodeVisitor):
    """Records field access inside one method body."""

    def __init__(self, self_name: str, facts: MethodFacts):
        self.self_name = self_name
        self.facts = facts
        self._depth = 0  # Nesting level of inner functions

    # =========================================================================
    # Recording
    # =========================================================================

    def _write(self, name: str, line: int) -> None:
        self.facts.writes.setdefault(name, line)

    def _read(self, name: str, line: int) -> None:
        self.facts.reads.setdefault(name, line)

    def _is_self(self, node: ast.AST) -> bool:
        return isinstance(node, ast.Name) and node.id == self.self_name

    def _field_of(self, node: ast.AST) -> str | None:
        """Return f when node is self.f or is derived from it (self.f.x, self.f[k])."""
        while isinstance(node, (ast.Attribute, ast.Subscript)):
            if isinstance(node, ast.Attribute) and self._is_self(node.value):
                return node.attr
            node = node.value
        return None

    def _visit_chain(self, node: ast.AST) -> None:
        """Visit the non-field parts of a self.f... chain (subscript keys)."""
        while isinstance(node, (ast.Attribute, ast.Subscript)):
            if isinstance(node, ast.Attribute) and self._is_self(node.value):
                return
            if isinstance(node, ast.Subscript):
                self.visit(node.slice)
            node = node.value

    # =========================================================================
    # Stores and loads
    # =========================================================================

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if isinstance(node.ctx, (ast.Store, ast.Del)):
            name = self._field_of(node)
            if name is not None:
                self._write(name, node.lineno)
                self._visit_chain(node)
                return
            self.generic_visit(node)
            return

        if self._is_self(node.value):
            self._read(node.attr, node.lineno)
            return
        self.generic_visit(node)

    def visit_Subscript(self, node: ast.Subscript) -> None:
        if isinstance(node.ctx, (ast.Store, ast.Del)):
            name = self._field_of(node)
            if name is not None:
                self._write(name, node.lineno)
                self._visit_chain(node)
                return
        self.generic_visit(node)

    def visit_AugAssign(self, node: ast.AugAssign) -> None:
        name = self._field_of(node.target)
        if name is not None:
            self._read(name, node.lineno)
        self.generic_visit(node)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        # A bare annotation (self.x: int) binds nothing
        if node.value is None:
            return
        self.visit(node.target)
        self.visit(node.value)

    def visit_Call(self, node: ast.Call) -> None:
        func = node.func

        if isinstance(func, ast.Attribute):
            # self.method(...)
            if self._is_self(func.value):
                self.facts.calls.setdefault(func.attr, node.lineno)
                self._visit_all(node.args, node.keywords)
                return

            # self.f.append(...) and friends
            name = self._field_of(func.value)
            if name is not None and func.attr in MUTATING_METHODS:
                self._write(name, node.lineno)
                self._visit_chain(func.value)
                self._visit_all(node.args, node.keywords)
                return

        # setattr(self, "f", v) / delattr(self, "f") / getattr(self, "f")
        if isinstance(func, ast.Name) and func.id in ("setattr", "delattr", "getattr"):
            if len(node.args) >= 2 and self._is_self(node.args[0]):
                key = node.args[1]
                if isinstance(key, ast.Constant) and isinstance(key.value, str):
                    if func.id == "getattr":
                        self._read(key.value, node.lineno)
                    else:
                        self._write(key.value, node.lineno)
                    self._visit_all(node.args[2:], node.keywords)
                    return

        self.generic_visit(node)

    def _visit_all(self, args: list[ast.expr], keywords: list[ast.keyword]) -> None:
        for arg in args:
            self.visit(arg)
        for keyword in keywords:
            self.visit(keyword.value)

    # =========================================================================
    # Scoping
    # =========================================================================

    def visit_Return(self, node: ast.Return) -> None:
        if self._depth == 0 and node.value is not None and self._is_self(node.value):
            self.facts.returns_self = True
        self.generic_visit(node)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._visit_nested(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._visit_nested(node)

    def visit_Lambda(self, node: ast.Lambda) -> None:
        self._visit_nested(node)

    def _visit_nested(self, node: ast.AST) -> None:
        # Closures still see self
        self._depth += 1
        self.generic_visit(node)
        self._depth -= 1

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        # Nested classes are analyzed on their own
        return


def _decorator_names(node: _FunctionNode) -> list[str]:
    names = []
    for decorator in node.decorator_list:
        target = decorator.func if isinstance(decorator, ast.Call) else decorator
        if isinstance(target, ast.Name):
            names.append(target.id)
        elif isinstance(target, ast.Attribute):
            names.append(target.attr)
    return names


def _self_name(node: _FunctionNode) -> str | None:
    positional = node.args.posonlyargs + node.args.args
    return positional[0].arg if positional else None


def _is_frozen_dataclass(node: ast.ClassDef) -> bool:
    for decorator in node.decorator_list:
        if not isinstance(decorator, ast.Call):
            continue
        func = decorator.func
        name = func.id if isinstance(func, ast.Name) else getattr(func, "attr", None)
        if name != "dataclass":
            continue
        for keyword in decorator.keywords:
            if keyword.arg == "frozen" and isinstance(keyword.value, ast.Constant):
                return bool(keyword.value.value)
    return False


def collect_method(node: _FunctionNode, config: AnalysisConfig) -> MethodFacts | None:
    """Collect facts for one method. Returns None for static and class methods."""
    decorators = _decorator_names(node)
    if "staticmethod" in decorators or "classmethod" in decorators:
        return None

    self_name = _self_name(node)
    if self_name is None:
        return None

    name = node.name
    accessor = next((kind for kind in PROPERTY_ACCESSORS if kind in decorators), None)
    public = not name.startswith("_") or name in config.public_dunders

    facts = MethodFacts(
        name=f"{name}.{accessor}" if accessor else name,
        line=node.lineno,
        public=public,
        setter=public and (accessor is not None or is_setter_name(name, config.setter_prefixes)),
        constructor=name in config.constructor_methods,
    )

    visitor = _MethodVisitor(self_name, facts)
    for statement in node.body:
        visitor.visit(statement)

    return facts


def collect_class(node: ast.ClassDef, qualname: str, config: AnalysisConfig) -> ClassFacts:
    """Collect facts for the methods defined directly in a class body."""
    facts = ClassFacts(
        name=qualname,
        line=node.lineno,
        column=node.col_offset,
        frozen=_is_frozen_dataclass(node),
    )
    for statement in node.body:
        if isinstance(statement, (ast.FunctionDef, ast.AsyncFunctionDef)):
            method = collect_method(statement, config)
            if method is not None:
                # Later definitions replace earlier ones, as at runtime
                facts.methods[method.name] = method
    return facts


def iter_classes(tree: ast.AST, prefix: str = "") -> Iterator[tuple[ast.ClassDef, str]]:
    """Yield every class in a tree with its qualified name, outermost first."""
    for child in ast.iter_child_nodes(tree):
        if isinstance(child, ast.ClassDef):
            qualname = f"{prefix}{child.name}"
            yield child, qualname
            yield from iter_classes(child, prefix=f"{qualname}.")
        elif isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef)):
            yield from iter_classes(child, prefix=f"{prefix}{child.name}.<locals>.")
        else:
            yield from iter_classes(child, prefix=prefix)
