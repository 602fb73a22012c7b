"""Service resolver for the runtime probe.

Turns a dotted target such as "myapp.services.Mailer" into a class and builds
a fresh instance of it, preferring factory functions found under the
configured factories directory.
"""

from __future__ import annotations

import importlib
import importlib.util
import sys
from pathlib import Path
from types import ModuleType
from typing import TYPE_CHECKING, Any, Iterator

from stateguard.diagnostics import (
    ConstructionError,
    DiagnosticContext,
    ResolutionError,
    suggest_factory_creation,
    to_snake_case,
)
from stateguard.logger import get_logger

if TYPE_CHECKING:
    from stateguard.config import ProbeConfig

logger = get_logger(__name__)


def _absolute(base: Path, path: str | Path) -> Path:
    path = Path(path)
    return path if path.is_absolute() else base / path


class ServiceResolver:
    """Imports service classes and builds probe instances of them."""

    def __init__(self, project_root: Path | None = None, config: ProbeConfig | None = None):
        from stateguard.config import ProbeConfig

        self.project_root = project_root or Path.cwd()
        self.config = config or ProbeConfig()
        self.factories_path = _absolute(self.project_root, self.config.factories)
        self._modules: dict[Path, ModuleType | None] = {}

        for entry in (self.project_root, *self.config.source_paths):
            entry = str(_absolute(self.project_root, entry))
            if entry not in sys.path:
                sys.path.insert(0, entry)

    # =========================================================================
    # Classes
    # =========================================================================

    def resolve_class(self, target: str) -> type:
        """Import the class a dotted target names.

        Nested classes work too ("pkg.module.Outer.Inner"): the longest
        importable module prefix wins and the rest is walked as attributes.

        Raises:
            ResolutionError: If nothing importable matches, or the match is not a class.
        """
        ctx = DiagnosticContext(target=target)
        if "." not in target:
            ctx.add_suggestion("Name the class with its module: 'module.Class'")
            raise ResolutionError(f"Invalid target format: {target}", context=ctx)

        obj = self._import_target(target, ctx)
        if obj is None:
            ctx.add_suggestion(f"Ensure the module is importable from: {self.project_root}")
            ctx.add_suggestion("Add your source directory to probe.source_paths in stateguard.yaml")
            raise ResolutionError(f"Could not resolve target: {target}", context=ctx)

        if not isinstance(obj, type):
            ctx.add_suggestion("Probe targets must be classes")
            raise ResolutionError(f"{target} is not a class", context=ctx)
        return obj

    def _import_target(self, target: str, ctx: DiagnosticContext) -> Any | None:
        parts = target.split(".")
        for split in range(len(parts) - 1, 0, -1):
            module_name, attrs = ".".join(parts[:split]), parts[split:]
            try:
                obj: Any = importlib.import_module(module_name)
            except ImportError as e:
                ctx.add_search(f"import {module_name}", found=False, reason=str(e))
                continue
            ctx.add_search(f"import {module_name}", found=True)

            for attr in attrs:
                obj = getattr(obj, attr, None)
                if obj is None:
                    ctx.add_search(f"{module_name}.{'.'.join(attrs)}", found=False, reason="attribute not found")
                    break
            else:
                return obj
        return None

    # =========================================================================
    # Instances
    # =========================================================================

    def build(self, target: str) -> Any:
        """Build a fresh instance of the target class.

        Tries, in order: a factory function, the zero-argument constructor.

        Raises:
            ResolutionError: If the class cannot be imported.
            ConstructionError: If no way of building it works.
        """
        cls = self.resolve_class(target)
        ctx = DiagnosticContext(target=target)
        func_name = to_snake_case(cls.__name__)

        for path, layout in self.factory_candidates(target, cls):
            factory = self._find_factory(path, layout, func_name, ctx)
            if factory is not None:
                logger.debug("Building %s with %s::%s()", target, path, func_name)
                try:
                    return factory()
                except Exception as e:
                    raise ConstructionError(
                        f"Factory {path.name}::{func_name}() failed: {type(e).__name__}: {e}",
                        context=ctx,
                    ) from e

        module_name = target.rsplit(".", 1)[0]
        try:
            instance = cls()
        except Exception as e:
            ctx.add_search(
                f"{cls.__name__}() (zero-arg constructor)", found=False, reason=f"{type(e).__name__}: {e}"
            )
            ctx.add_suggestion(suggest_factory_creation(cls.__name__, module_name, self.config.factories))
            raise ConstructionError(f"Cannot construct {cls.__name__}", context=ctx) from e

        logger.debug("Building %s with its zero-arg constructor", target)
        return instance

    def factory_candidates(self, target: str, cls: type) -> Iterator[tuple[Path, str]]:
        """Yield the factory files that may hold a builder for ``cls``.

        For "myapp.services.Mailer" the order is:
        factories/myapp/services.py, factories/services.py, factories/mailer.py
        """
        package = target.split(".")[:-1]
        if len(package) > 1:
            yield self.factories_path.joinpath(*package[:-1], f"{package[-1]}.py"), "nested structure"
        if package:
            yield self.factories_path / f"{package[-1]}.py", "flat structure"
        yield self.factories_path / f"{to_snake_case(cls.__name__)}.py", "class-named file"

    def _find_factory(
        self, path: Path, layout: str, func_name: str, ctx: DiagnosticContext
    ) -> Any | None:
        if not path.exists():
            ctx.add_search(f"{path} ({layout})", found=False, reason="file not found")
            return None

        module = self._load(path)
        if module is None:
            ctx.add_search(f"{path} ({layout})", found=False, reason="failed to load module")
            return None

        factory = getattr(module, func_name, None)
        if factory is None:
            ctx.add_search(f"{path} ({layout})", found=False, reason=f"no function '{func_name}'")
            return None

        ctx.add_search(f"{path}::{func_name}()", found=True)
        return factory

    def _load(self, path: Path) -> ModuleType | None:
        """Import a factory file under a private module name, once."""
        key = path.resolve()
        if key in self._modules:
            return self._modules[key]

        name = f"stateguard_factory_{path.stem}_{abs(hash(str(key)))}"
        spec = importlib.util.spec_from_file_location(name, path)
        module: ModuleType | None = None
        if spec is not None and spec.loader is not None:
            module = importlib.util.module_from_spec(spec)
            sys.modules[name] = module
            try:
                spec.loader.exec_module(module)
            except Exception as e:
                logger.debug("Failed to load factory %s: %s", path, e)
                sys.modules.pop(name, None)
                module = None

        self._modules[key] = module
        return module
