# envreload

Two small utilities for code that builds an expensive "environment" object,
such as a template environment, and hands values to it.

## Auto reloading: `envreload.autoreload`

An `AutoReloader` wraps a creator function. The creator receives a
`Notifier` and returns the environment, which can be any object. The first
call to `acquire_env()` runs the creator. Later calls run it again only if a
reload has been asked for since the last time.

`acquire_env()` returns an `EnvironmentGuard`. The guard holds the
reloader's lock until it is released, so no reload can happen in the
meantime. Another `acquire_env()` call, from any thread, waits until the
guard is released. Do not call it again on the same thread while you still
hold a guard, because that call will never return.

```python
from envreload.autoreload import AutoReloader

def create(notifier):
    notifier.watch_path("templates", True)
    return build_environment("templates")

reloader = AutoReloader(create)

with reloader.acquire_env() as env:
    render(env, "index.html")
```

There are several ways to use the guard:

- As a context manager. `with` gives you the environment itself and releases the guard when the block ends.
- Through its `env` property. Reading `env` after the guard has been released raises `RuntimeError`.
- Through attribute access. Public attributes are passed through to the environment, so `guard.get_template(...)` calls the environment's method.
- By calling `release()` yourself. Calling it a second time does nothing.
- By letting it be garbage collected. A guard that is collected releases its lock.

### Asking for a reload

The `Notifier` passed to the creator offers these methods:

- `request_reload()` marks the environment as stale.
- `set_callback(fn)` registers a check that runs on every acquire. If `fn()` returns true, the environment is rebuilt. Only one callback is kept at a time.
- `watch_path(path, recursive)` watches a file or directory using watchdog. If a file is created, deleted, modified or moved, the environment is marked as stale. A path that cannot be watched is ignored without an error.
- `unwatch_path(path)` stops watching a path that was passed to `watch_path`.
- `persistent_watch(True)` keeps watches in place across reloads. Without it, every reload drops all watches, and the creator is expected to set them up again.

### Notifying from other threads

`reloader.notifier()` returns a `Notifier` that holds only a weak reference
to the reloader's state, so you can pass it to other threads. Once the
reloader has been garbage collected, `is_dead()` returns true and every
method on the notifier does nothing.

### Errors

If the creator raises an exception, `acquire_env()` releases the lock and
raises that same exception. The previous environment, if there was one,
stays cached, and the pending reload request stays set.

## Scope-bound handles: `envreload.stackref`

`scope(func)` calls `func` with a fresh `Scope` and returns whatever `func`
returns. `Scope.handle(value)` wraps `value` in a `StackHandle`. The handle
is valid only while that scope is active, and only on the thread that opened
the scope. Once the scope is closed, every operation on the handle raises
`StackError`.

```python
from envreload.stackref import scope, StackError

items = [1, 2, 3]
leaked = scope(lambda s: s.handle(items))
assert not leaked.is_valid()
leaked.with_value(len)  # raises StackError: stack is gone
```

### What a handle forwards

The handle forwards each operation to the wrapped value's method of the same
name, if the value has one. Otherwise it falls back to plain Python
behaviour:

| Handle method | Forwarded to | Fallback |
| --- | --- | --- |
| `with_value(func)` | — | calls `func(value)` and returns the result |
| `get_item(idx)` | `get_item` | indexing; returns `None` if the index is missing or negative |
| `item_count()` | `item_count` | `len(value)` |
| `get_field(name)` | `get_field` | `Mapping.get`, or a public attribute; returns `None` if there is none |
| `fields()` | `fields` | `static_fields()`, or the keys of a mapping; otherwise an empty list |
| `field_count()` | `field_count` | the length of `fields()` |
| `call_method(name, *args)` | `call_method` | calls a public method; raises `AttributeError` if there is none |
| `call(*args)` | `call` | calls the value itself; raises `TypeError` if it is not callable |

`len()`, `str()` and `repr()` on a handle go to the wrapped value as well.

### Reborrowing

While one of the operations above is running, the handle is the current
handle for that thread. Code running inside it can call `reborrow(obj, func)`.
This calls `func(obj, scope)` with the handle's scope, so an object can hand
out handles to its own members. `reborrow` raises `StackError` in any of
these cases:

- no handle is active;
- the active handle does not wrap `obj` itself;
- the active handle's scope has closed.

`can_reborrow(obj)` tells you beforehand whether `reborrow` would succeed.

## What this package does not do

This package contains no template engine and no environment type. The
reloader holds whatever object your creator returns. Handles forward calls
only to the wrapped value's own methods.

## Running the tests

```
pip install -e .[test]
pytest
```