"""Automatic re-creation of a template environment on demand or on file changes."""

from __future__ import annotations

import os
import threading
import weakref
from typing import Any, Callable, Generic, TypeVar

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

__all__ = ["AutoReloader", "EnvironmentGuard", "Notifier"]

E = TypeVar("E")

_RELOAD_EVENTS = frozenset({"created", "deleted", "modified", "moved"})


def _stop_observer(observer: Any) -> None:
    observer.stop()
    if observer is not threading.current_thread() and observer.is_alive():
        observer.join(timeout=1.0)


class _WatcherSlot:
    """Holds the file system observer so it can be shut down independently."""

    def __init__(self) -> None:
        self.observer: Any = None
        self.handler: FileSystemEventHandler | None = None
        self.watches: dict[str, Any] = {}

    def close(self) -> None:
        observer, self.observer = self.observer, None
        self.handler = None
        self.watches = {}
        if observer is not None:
            _stop_observer(observer)


class _NotifierState:
    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.should_reload = False
        self.callback: Callable[[], bool] | None = None
        self.persistent_watch = False
        self.watcher = _WatcherSlot()
        weakref.finalize(self, self.watcher.close)


class _ReloadHandler(FileSystemEventHandler):
    def __init__(self, state_ref: "weakref.ref[_NotifierState]") -> None:
        super().__init__()
        self._state_ref = state_ref

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in _RELOAD_EVENTS:
            return
        state = self._state_ref()
        if state is not None:
            with state.lock:
                state.should_reload = True


class Notifier:
    """Signals the auto reloader that the environment should be re-created.

    A notifier only weakly refers to the reloader's state: once the
    :class:`AutoReloader` that created it is gone, the notifier is dead and
    all of its operations do nothing.
    """

    def __init__(self, state: _NotifierState) -> None:
        self._state_ref = weakref.ref(state)

    def _state(self) -> _NotifierState | None:
        return self._state_ref()

    def request_reload(self) -> None:
        """Mark the environment as needing a reload."""
        state = self._state()
        if state is not None:
            with state.lock:
                state.should_reload = True

    def set_callback(self, callback: Callable[[], bool]) -> None:
        """Register a freshness check; returning true requests a reload.

        Only one callback is kept; setting a new one replaces the old one.
        """
        state = self._state()
        if state is not None:
            with state.lock:
                state.callback = callback

    def watch_path(self, path: str | os.PathLike[str], recursive: bool) -> None:
        """Watch a file or directory for changes.

        Watches are dropped on reload unless persistent watching is enabled.
        Paths that cannot be watched are silently ignored.
        """
        state = self._state()
        if state is None:
            return
        with state.lock:
            slot = state.watcher
            if slot.observer is None:
                handler = _ReloadHandler(weakref.ref(state))
                observer = Observer()
                observer.daemon = True
                observer.start()
                slot.observer = observer
                slot.handler = handler
                slot.watches = {}
            key = os.fspath(path)
            try:
                watch = slot.observer.schedule(slot.handler, key, recursive=recursive)
            except OSError:
                return
            slot.watches[key] = watch

    def unwatch_path(self, path: str | os.PathLike[str]) -> None:
        """Stop watching a path previously passed to :meth:`watch_path`."""
        state = self._state()
        if state is None:
            return
        with state.lock:
            slot = state.watcher
            if slot.observer is None:
                return
            watch = slot.watches.pop(os.fspath(path), None)
            if watch is None:
                return
            try:
                slot.observer.unschedule(watch)
            except (KeyError, OSError):
                pass

    def persistent_watch(self, yes: bool) -> None:
        """Keep file system watches alive across reloads."""
        state = self._state()
        if state is not None:
            with state.lock:
                state.persistent_watch = bool(yes)

    def is_dead(self) -> bool:
        """Return true once the owning reloader has gone away."""
        return self._state() is None


class EnvironmentGuard(Generic[E]):
    """Holds the reloader's lock and gives access to the current environment.

    Until the guard is released no reload can take place.  Attribute access
    on the guard is forwarded to the environment.
    """

    def __init__(self, lock: threading.Lock, env: E) -> None:
        self._lock = lock
        self._env = env
        self._released = False

    @property
    def env(self) -> E:
        if self._released:
            raise RuntimeError("environment guard was released")
        return self._env

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self.env, name)

    def __enter__(self) -> E:
        return self.env

    def __exit__(self, *args: Any) -> None:
        self.release()

    def release(self) -> None:
        """Release the guard; calling it again does nothing."""
        if not self.__dict__.get("_released", True):
            self._released = True
            self._lock.release()

    def __del__(self) -> None:
        self.release()


class AutoReloader(Generic[E]):
    """Lazily creates an environment and re-creates it when asked to."""

    def __init__(self, creator: Callable[[Notifier], E]) -> None:
        self._creator = creator
        self._state = _NotifierState()
        self._lock = threading.Lock()
        self._cached: E | None = None
        self._has_env = False

    def notifier(self) -> Notifier:
        """Return a notifier handle, usable for instance from other threads."""
        return Notifier(self._state)

    def _should_reload(self) -> bool:
        state = self._state
        with state.lock:
            if state.should_reload:
                return True
            return bool(state.callback()) if state.callback is not None else False

    def _perform_reload(self) -> E:
        state = self._state
        with state.lock:
            if not state.persistent_watch:
                state.watcher.close()
        env = self._creator(Notifier(state))
        with state.lock:
            state.should_reload = False
        return env

    def acquire_env(self) -> EnvironmentGuard[E]:
        """Return a guard for the environment, reloading it first if needed.

        Errors raised by the creator propagate to the caller.
        """
        self._lock.acquire()
        try:
            if not self._has_env or self._should_reload():
                self._cached = self._perform_reload()
                self._has_env = True
        except BaseException:
            self._lock.release()
            raise
        return EnvironmentGuard(self._lock, self._cached)