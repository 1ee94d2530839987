"""Runtime-checked borrows of values that are only valid inside a scope.

A :class:`Scope` is opened with :func:`scope`.  Values wrapped with
:meth:`Scope.handle` can be used for as long as that scope is active.
Once the scope has exited, every operation on the handle raises
:class:`StackError`.  Scopes are tracked per thread, so a handle is only
valid on the thread whose scope created it.
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Mapping, Sequence
from typing import Any, Callable, Generic, TypeVar

__all__ = ["StackError", "StackHandle", "Scope", "scope", "reborrow", "can_reborrow"]

T = TypeVar("T")
R = TypeVar("R")

_counter = itertools.count()
_counter_lock = threading.Lock()


class _ThreadState(threading.local):
    def __init__(self) -> None:
        self.valid_ids: set[int] = set()
        self.current: StackHandle[Any] | None = None


_local = _ThreadState()


def _next_id() -> int:
    with _counter_lock:
        return next(_counter)


class StackError(RuntimeError):
    """Raised when a handle is used outside of its scope or reborrowing fails."""


class StackHandle(Generic[T]):
    """A handle to a value that is only usable while its scope is active.

    The handle forwards the sequence, struct and call protocols to the
    wrapped value.  Each forwarded operation makes the handle the current
    one, so code running inside it can use :func:`reborrow`.
    """

    __slots__ = ("_value", "_id")

    def __init__(self, value: T, scope_id: int) -> None:
        self._value = value
        self._id = scope_id

    def is_valid(self) -> bool:
        """Return true while the scope that created the handle is active."""
        return self._id in _local.valid_ids

    def with_value(self, func: Callable[[T], R]) -> R:
        """Call ``func`` with the wrapped value and return its result."""
        if not self.is_valid():
            raise StackError("stack is gone")
        previous = _local.current
        _local.current = self
        try:
            return func(self._value)
        finally:
            _local.current = previous

    def get_item(self, idx: int) -> Any:
        """Return the item at ``idx``, or ``None`` if there is none."""

        def lookup(value: Any) -> Any:
            if hasattr(value, "get_item"):
                return value.get_item(idx)
            if idx < 0:
                return None
            try:
                return value[idx]
            except (IndexError, KeyError, TypeError):
                return None

        return self.with_value(lookup)

    def item_count(self) -> int:
        """Return the number of items of the wrapped sequence."""

        def count(value: Any) -> int:
            if hasattr(value, "item_count"):
                return value.item_count()
            return len(value)

        return self.with_value(count)

    def get_field(self, name: str) -> Any:
        """Return the field called ``name``, or ``None`` if there is none."""

        def lookup(value: Any) -> Any:
            if hasattr(value, "get_field"):
                return value.get_field(name)
            if isinstance(value, Mapping):
                return value.get(name)
            if name.startswith("_"):
                return None
            return getattr(value, name, None)

        return self.with_value(lookup)

    def fields(self) -> list[str]:
        """Return the names of the wrapped value's fields."""

        def names(value: Any) -> list[str]:
            if hasattr(value, "fields"):
                return list(value.fields())
            static = getattr(value, "static_fields", None)
            if callable(static):
                found = static()
                if found is not None:
                    return list(found)
            if isinstance(value, Mapping):
                return list(value.keys())
            return []

        return self.with_value(names)

    def field_count(self) -> int:
        """Return the number of fields of the wrapped value."""

        def count(value: Any) -> int:
            if hasattr(value, "field_count"):
                return value.field_count()
            return len(self.fields())

        return self.with_value(count)

    def call_method(self, name: str, *args: Any) -> Any:
        """Call the method ``name`` of the wrapped value."""

        def invoke(value: Any) -> Any:
            if hasattr(value, "call_method"):
                return value.call_method(name, *args)
            method = getattr(value, name, None)
            if name.startswith("_") or not callable(method):
                raise AttributeError(f"object has no method named {name}")
            return method(*args)

        return self.with_value(invoke)

    def call(self, *args: Any) -> Any:
        """Call the wrapped value itself."""

        def invoke(value: Any) -> Any:
            if hasattr(value, "call"):
                return value.call(*args)
            if not callable(value):
                raise TypeError("object is not callable")
            return value(*args)

        return self.with_value(invoke)

    def __len__(self) -> int:
        return self.item_count()

    def __str__(self) -> str:
        return self.with_value(str)

    def __repr__(self) -> str:
        return self.with_value(repr)


class Scope:
    """The calling scope that handles borrow from."""

    __slots__ = ("_id",)

    def __init__(self, scope_id: int) -> None:
        self._id = scope_id

    @property
    def id(self) -> int:
        return self._id

    def handle(self, value: T) -> StackHandle[T]:
        """Wrap ``value`` in a handle bound to this scope."""
        return StackHandle(value, self._id)

    def __repr__(self) -> str:
        return f"Scope(id={self._id})"


def scope(func: Callable[[Scope], R]) -> R:
    """Call ``func`` with a fresh scope; its handles die when ``func`` returns."""
    scope_id = _next_id()
    _local.valid_ids.add(scope_id)
    try:
        return func(Scope(scope_id))
    finally:
        _local.valid_ids.discard(scope_id)


def _type_name(obj: Any) -> str:
    return type(obj).__qualname__


def reborrow(obj: T, func: Callable[[T, Scope], R]) -> R:
    """Call ``func`` with ``obj`` and the scope of the handle currently using it.

    This only works from inside an operation on a :class:`StackHandle`
    that wraps ``obj``; otherwise :class:`StackError` is raised.
    """
    handle = _local.current
    if handle is None:
        raise StackError(
            f"cannot reborrow &{_type_name(obj)} because there is no handle on the stack"
        )
    if handle._value is not obj:
        raise StackError(
            f"cannot reborrow &{_type_name(obj)} as it's not held in an active stack handle"
        )
    if not handle.is_valid():
        raise StackError(f"cannot reborrow &{_type_name(obj)} because stack is gone")
    return func(handle._value, Scope(handle._id))


def can_reborrow(obj: Any) -> bool:
    """Return true if :func:`reborrow` would succeed for ``obj``."""
    handle = _local.current
    if handle is None or handle._value is not obj:
        return False
    return handle.is_valid()