"""Dependency-injection container with service lifetimes.

Lifetimes mirror how callers share an instance:
- shared: one instance per container, handed to every caller
- transient: a fresh instance on every resolve
- scoped: one instance per ``container.scope()`` block (a request, a job)

In strict mode the container refuses to share a class that keeps per-call
state, and wraps every shared instance in a runtime guard.
"""

from __future__ import annotations

import inspect
import threading
import typing
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterator

from stateguard.analysis.checker import analyze_class
from stateguard.analysis.model import Severity
from stateguard.diagnostics import (
    ConstructionError,
    DiagnosticContext,
    ResolutionError,
    StatefulServiceError,
    suggest_registration,
)
from stateguard.guard import guard
from stateguard.logger import get_logger

if TYPE_CHECKING:
    from stateguard.config import StateguardConfig

logger = get_logger(__name__)


class Lifetime(str, Enum):
    """How long a resolved instance lives."""

    SHARED = "shared"  # One instance per container (singleton)
    TRANSIENT = "transient"  # Fresh instance on every resolve
    SCOPED = "scoped"  # One instance per scope


@dataclass
class Registration:
    key: Any
    factory: Callable[..., Any] | None
    lifetime: Lifetime


def _name(key: Any) -> str:
    return getattr(key, "__qualname__", None) or repr(key)


class Scope:
    """A resolution scope holding its own scoped instances."""

    def __init__(self, container: Container):
        self._container = container
        self._instances: dict[Any, Any] = {}
        self._lock = threading.RLock()
        self._closed = False

    def resolve(self, key: Any) -> Any:
        """Resolve a key, creating scoped services in this scope."""
        if self._closed:
            raise ResolutionError(f"Cannot resolve {_name(key)}: scope is closed")
        return self._container._resolve(key, self, ())

    def _get_or_create(self, key: Any, create: Callable[[], Any]) -> Any:
        with self._lock:
            if key not in self._instances:
                self._instances[key] = create()
            return self._instances[key]

    def close(self) -> None:
        """Drop this scope's instances."""
        self._instances.clear()
        self._closed = True


class Container:
    """Registry of service factories and their lifetimes."""

    def __init__(self, strict: bool = False, config: StateguardConfig | None = None):
        """Initialize the container.

        Args:
            strict: Refuse stateful shared services and guard shared instances.
            config: Checker configuration used by strict mode.
        """
        self.strict = strict
        self._config = config
        self._registrations: dict[Any, Registration] = {}
        self._shared: dict[Any, Any] = {}
        self._lock = threading.RLock()

    # =========================================================================
    # Registration
    # =========================================================================

    def register(
        self,
        key: Any,
        factory: Callable[..., Any] | None = None,
        lifetime: Lifetime | str = Lifetime.SHARED,
    ) -> None:
        """Register a service.

        Args:
            key: What callers resolve (usually a class or protocol).
            factory: Callable that builds the instance. Defaults to ``key`` itself;
                constructor parameters are autowired from their annotations.
            lifetime: How long instances live.

        Raises:
            TypeError: If no factory is given and the key is not a class.
            StatefulServiceError: In strict mode, if a shared class keeps per-call state.
        """
        lifetime = Lifetime(lifetime)
        if factory is None:
            if not isinstance(key, type):
                raise TypeError(f"A factory is required to register {key!r}")
            factory = key

        if self.strict and lifetime == Lifetime.SHARED:
            # The registered class is what callers share, whatever builds it
            for cls in dict.fromkeys(c for c in (key, factory) if isinstance(c, type)):
                self._verify_stateless(cls)

        with self._lock:
            self._registrations[key] = Registration(key, factory, lifetime)
            self._shared.pop(key, None)
        logger.debug("Registered %s (%s)", _name(key), lifetime.value)

    def register_instance(self, key: Any, instance: Any) -> None:
        """Register an already-built instance as a shared service."""
        if self.strict:
            self._verify_stateless(type(instance))
            instance = guard(instance)

        with self._lock:
            self._registrations[key] = Registration(key, None, Lifetime.SHARED)
            self._shared[key] = instance

    def is_registered(self, key: Any) -> bool:
        try:
            return key in self._registrations
        except TypeError:
            # Unhashable annotation
            return False

    def _verify_stateless(self, cls: type) -> None:
        try:
            report = analyze_class(cls, self._config)
        except (OSError, TypeError):
            logger.debug("No source for %s; skipping static check", _name(cls))
            return

        errors = [f for f in report.findings if f.severity == Severity.ERROR]
        if errors:
            raise StatefulServiceError(
                f"{_name(cls)} cannot be shared: it keeps per-call state",
                findings=errors,
            )

    # =========================================================================
    # Resolution
    # =========================================================================

    def resolve(self, key: Any) -> Any:
        """Resolve a key outside any scope."""
        return self._resolve(key, None, ())

    @contextmanager
    def scope(self) -> Iterator[Scope]:
        """Open a scope; scoped services resolved through it live until exit."""
        scope = Scope(self)
        try:
            yield scope
        finally:
            scope.close()

    def _resolve(self, key: Any, scope: Scope | None, chain: tuple[Any, ...]) -> Any:
        registration = self._registrations.get(key) if self.is_registered(key) else None
        if registration is None:
            ctx = DiagnosticContext(target=_name(key))
            ctx.add_search(
                f"{len(self._registrations)} registrations", found=False, reason="not registered"
            )
            if chain:
                ctx.add_search(f"requested by {_name(chain[-1])}", found=True)
            ctx.add_suggestion(suggest_registration(_name(key)))
            raise ResolutionError(f"No registration for {_name(key)}", context=ctx)

        if key in chain:
            cycle = " -> ".join(_name(k) for k in (*chain, key))
            ctx = DiagnosticContext(target=_name(key))
            for requester, requested in zip(chain, (*chain[1:], key)):
                ctx.add_search(f"{_name(requester)} needs {_name(requested)}", found=True)
            ctx.add_suggestion(
                f"Break the cycle: pass {_name(key)} per call, or register one side with an explicit factory"
            )
            raise ConstructionError(f"Dependency cycle: {cycle}", context=ctx)

        if registration.lifetime == Lifetime.SHARED:
            return self._resolve_shared(registration, chain)

        if registration.lifetime == Lifetime.TRANSIENT:
            return self._construct(registration, scope, chain)

        if scope is None:
            ctx = DiagnosticContext(target=_name(key))
            if chain:
                ctx.add_search(f"requested by {_name(chain[-1])}", found=True)
                ctx.add_suggestion(
                    f"Shared services cannot hold scoped ones; make {_name(chain[-1])} "
                    "scoped or transient"
                )
            ctx.add_suggestion("Resolve it inside 'with container.scope() as scope:'")
            raise ResolutionError(
                f"Scoped service {_name(key)} requested outside a scope", context=ctx
            )
        return scope._get_or_create(key, lambda: self._construct(registration, scope, chain))

    def _resolve_shared(self, registration: Registration, chain: tuple[Any, ...]) -> Any:
        key = registration.key
        if key in self._shared:
            return self._shared[key]

        with self._lock:
            if key not in self._shared:
                # Shared instances never see a scope
                instance = self._construct(registration, None, chain)
                self._shared[key] = guard(instance) if self.strict else instance
            return self._shared[key]

    def _construct(
        self, registration: Registration, scope: Scope | None, chain: tuple[Any, ...]
    ) -> Any:
        factory = registration.factory
        if factory is None:
            raise ConstructionError(f"No factory for {_name(registration.key)}")

        chain = (*chain, registration.key)
        kwargs = self._autowire(factory, scope, chain)

        try:
            instance = factory(**kwargs)
        except (ResolutionError, ConstructionError, StatefulServiceError):
            raise
        except Exception as e:
            ctx = DiagnosticContext(target=_name(registration.key))
            ctx.add_search(f"{_name(factory)}({', '.join(kwargs)})", found=False, reason=str(e))
            raise ConstructionError(
                f"Cannot construct {_name(registration.key)}: {type(e).__name__}: {e}",
                context=ctx,
            ) from e

        logger.debug("Constructed %s (%s)", _name(registration.key), registration.lifetime.value)
        return instance

    def _autowire(
        self, factory: Callable[..., Any], scope: Scope | None, chain: tuple[Any, ...]
    ) -> dict[str, Any]:
        """Resolve factory parameters from their type annotations."""
        try:
            signature = inspect.signature(factory)
        except (TypeError, ValueError):
            return {}

        hints_target = factory.__init__ if isinstance(factory, type) else factory
        try:
            hints = typing.get_type_hints(hints_target)
        except (NameError, TypeError):
            hints = {}

        kwargs: dict[str, Any] = {}
        for name, param in signature.parameters.items():
            if param.kind in (
                inspect.Parameter.VAR_POSITIONAL,
                inspect.Parameter.VAR_KEYWORD,
                inspect.Parameter.POSITIONAL_ONLY,
            ):
                continue

            annotation = hints.get(name, param.annotation)
            if annotation is not inspect.Parameter.empty and self.is_registered(annotation):
                kwargs[name] = self._resolve(annotation, scope, chain)
                continue
            if param.default is not inspect.Parameter.empty:
                continue

            ctx = DiagnosticContext(target=_name(chain[-1]))
            if annotation is inspect.Parameter.empty:
                ctx.add_search(f"parameter '{name}'", found=False, reason="no annotation")
            else:
                ctx.add_search(
                    f"parameter '{name}: {_name(annotation)}'", found=False, reason="not registered"
                )
                ctx.add_suggestion(suggest_registration(_name(annotation)))
            ctx.add_suggestion(f"Register {_name(chain[-1])} with an explicit factory")
            raise ConstructionError(
                f"Cannot construct {_name(chain[-1])}: nothing to inject for '{name}'",
                context=ctx,
            )

        return kwargs
