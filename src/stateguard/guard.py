"""Runtime guard - fails a call that leaves state behind on a shared service."""

from __future__ import annotations

import functools
import inspect
from typing import Any, Callable

from stateguard.diagnostics import StatefulServiceError
from stateguard.probe.fingerprint import diff_snapshots, snapshot


def _verify(target: Any, method_name: str, before: dict[str, Any]) -> None:
    changes = diff_snapshots(before, snapshot(target))
    if changes:
        raise StatefulServiceError(
            f"{type(target).__qualname__}.{method_name}() changed instance state",
            changes=changes,
        )


def _checked(target: Any, name: str, method: Callable[..., Any]) -> Callable[..., Any]:
    """Wrap a bound method so its call is compared against a state snapshot.

    Only successful calls are verified; an exception from the method
    propagates unchanged.
    """
    if inspect.iscoroutinefunction(method):

        @functools.wraps(method)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            before = snapshot(target)
            result = await method(*args, **kwargs)
            _verify(target, name, before)
            return result

        return async_wrapper

    @functools.wraps(method)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        before = snapshot(target)
        result = method(*args, **kwargs)
        _verify(target, name, before)
        return result

    return wrapper


def _forward(name: str) -> Callable[..., Any]:
    """A checked special method; returning the target hands back the proxy."""

    def method(self: GuardedService, *args: Any, **kwargs: Any) -> Any:
        target = object.__getattribute__(self, "_sg_target")
        result = _checked(target, name, getattr(target, name))(*args, **kwargs)
        return self if result is target else result

    method.__name__ = name
    return method


def _forward_async(name: str) -> Callable[..., Any]:
    async def method(self: GuardedService, *args: Any, **kwargs: Any) -> Any:
        target = object.__getattribute__(self, "_sg_target")
        result = await _checked(target, name, getattr(target, name))(*args, **kwargs)
        return self if result is target else result

    method.__name__ = name
    return method


class GuardedService:
    """Proxy around a shared service instance.

    Public methods are checked on every call; private attributes pass
    through untouched. Assigning attributes through the proxy is refused.
    ``isinstance`` sees the wrapped class.

    Special methods are looked up on the type, so the call, context-manager
    and container protocols are forwarded explicitly. Other dunders
    (arithmetic, comparison beyond identity) are not.
    """

    def __init__(self, target: Any):
        object.__setattr__(self, "_sg_target", target)

    @property  # type: ignore[misc]
    def __class__(self) -> type:
        return type(object.__getattribute__(self, "_sg_target"))

    def __getattr__(self, name: str) -> Any:
        target = object.__getattribute__(self, "_sg_target")
        attr = getattr(target, name)
        if name.startswith("_") or not inspect.ismethod(attr):
            return attr
        return _checked(target, name, attr)

    def __setattr__(self, name: str, value: Any) -> None:
        target = object.__getattribute__(self, "_sg_target")
        raise StatefulServiceError(
            f"Cannot set {name!r} on shared {type(target).__qualname__}; "
            "pass it to the method that needs it"
        )

    __call__ = _forward("__call__")
    __enter__ = _forward("__enter__")
    __exit__ = _forward("__exit__")
    __aenter__ = _forward_async("__aenter__")
    __aexit__ = _forward_async("__aexit__")

    def __iter__(self) -> Any:
        return iter(object.__getattribute__(self, "_sg_target"))

    def __len__(self) -> int:
        return len(object.__getattribute__(self, "_sg_target"))

    def __contains__(self, item: Any) -> bool:
        return item in object.__getattribute__(self, "_sg_target")

    def __bool__(self) -> bool:
        return bool(object.__getattribute__(self, "_sg_target"))

    def __repr__(self) -> str:
        return f"<guarded {object.__getattribute__(self, '_sg_target')!r}>"


def guard(service: Any) -> Any:
    """Wrap a service so state changes across calls raise StatefulServiceError."""
    if type(service) is GuardedService:
        return service
    return GuardedService(service)


def unwrap(service: Any) -> Any:
    """Return the instance behind a guard (or the object itself)."""
    if type(service) is GuardedService:
        return object.__getattribute__(service, "_sg_target")
    return service
