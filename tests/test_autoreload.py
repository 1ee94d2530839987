import gc
import threading
import time
from types import SimpleNamespace

import pytest

from envreload.autoreload import AutoReloader, EnvironmentGuard, Notifier


def _counting_reloader(hook=None):
    calls = []

    def creator(notifier):
        calls.append(notifier)
        if hook is not None:
            hook(notifier, len(calls))
        return SimpleNamespace(generation=len(calls))

    return AutoReloader(creator), calls


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return False


def test_environment_is_created_once():
    reloader, calls = _counting_reloader()
    with reloader.acquire_env() as env:
        assert env.generation == 1
    with reloader.acquire_env() as env:
        assert env.generation == 1
    assert len(calls) == 1


def test_request_reload_recreates_environment():
    reloader, calls = _counting_reloader()
    reloader.acquire_env().release()
    reloader.notifier().request_reload()
    guard = reloader.acquire_env()
    assert guard.env.generation == 2
    guard.release()
    guard = reloader.acquire_env()
    assert guard.generation == 2
    guard.release()
    assert len(calls) == 2


def test_creator_receives_live_notifier():
    reloader, calls = _counting_reloader()
    reloader.acquire_env().release()
    assert isinstance(calls[0], Notifier)
    assert calls[0].is_dead() is False
    calls[0].request_reload()
    with reloader.acquire_env() as env:
        assert env.generation == 2


def test_callback_controls_reload():
    wanted = {"reload": False}
    reloader, calls = _counting_reloader()
    reloader.notifier().set_callback(lambda: wanted["reload"])
    reloader.acquire_env().release()
    reloader.acquire_env().release()
    assert len(calls) == 1
    wanted["reload"] = True
    reloader.acquire_env().release()
    reloader.acquire_env().release()
    assert len(calls) == 3


def test_callback_is_replaced():
    reloader, calls = _counting_reloader()
    notifier = reloader.notifier()
    notifier.set_callback(lambda: True)
    notifier.set_callback(lambda: False)
    reloader.acquire_env().release()
    reloader.acquire_env().release()
    assert len(calls) == 1


def test_creator_error_propagates_and_retries():
    attempts = []

    def creator(notifier):
        attempts.append(notifier)
        if len(attempts) == 1:
            raise ValueError("broken")
        return SimpleNamespace(generation=len(attempts))

    reloader = AutoReloader(creator)
    with pytest.raises(ValueError, match="broken"):
        reloader.acquire_env()
    with reloader.acquire_env() as env:
        assert env.generation == 2


def test_failed_reload_keeps_reload_pending():
    fail = {"now": False}

    def creator(notifier):
        if fail["now"]:
            raise RuntimeError("nope")
        return SimpleNamespace()

    reloader = AutoReloader(creator)
    first = reloader.acquire_env()
    original = first.env
    first.release()
    reloader.notifier().request_reload()
    fail["now"] = True
    with pytest.raises(RuntimeError):
        reloader.acquire_env()
    fail["now"] = False
    with reloader.acquire_env() as env:
        assert env is not original


def test_guard_blocks_other_threads():
    reloader, calls = _counting_reloader()
    guard = reloader.acquire_env()
    assert guard.env.generation == 1
    reloader.notifier().request_reload()
    seen = []

    def worker():
        with reloader.acquire_env() as env:
            seen.append(env.generation)

    thread = threading.Thread(target=worker)
    thread.start()
    thread.join(0.2)
    assert thread.is_alive()
    assert seen == []
    assert guard.env.generation == 1
    guard.release()
    thread.join(5)
    assert seen == [2]
    with reloader.acquire_env() as env:
        assert env.generation == 2
    assert len(calls) == 2


def test_release_is_idempotent_and_env_unavailable_after():
    reloader, _ = _counting_reloader()
    guard = reloader.acquire_env()
    assert isinstance(guard, EnvironmentGuard)
    guard.release()
    guard.release()
    with pytest.raises(RuntimeError):
        guard.env
    with reloader.acquire_env() as env:
        assert env.generation == 1


def test_notifier_dies_with_reloader():
    reloader, calls = _counting_reloader()
    reloader.acquire_env().release()
    notifier = reloader.notifier()
    inner = calls[0]
    assert notifier.is_dead() is False
    del reloader
    calls.clear()
    gc.collect()
    assert notifier.is_dead() is True
    assert inner.is_dead() is True
    notifier.request_reload()
    notifier.set_callback(lambda: True)
    notifier.persistent_watch(True)
    assert notifier.is_dead() is True


def test_watch_path_triggers_reload(tmp_path):
    target = tmp_path / "template.txt"
    target.write_text("one")

    reloader, calls = _counting_reloader(
        lambda notifier, _: notifier.watch_path(tmp_path, True)
    )
    with reloader.acquire_env() as env:
        assert env.generation == 1
    time.sleep(0.2)
    target.write_text("two")

    def reloaded():
        reloader.acquire_env().release()
        return len(calls) >= 2

    assert _wait_for(reloaded)
    with reloader.acquire_env() as env:
        assert env.generation >= 2


def test_persistent_watch_survives_reload(tmp_path):
    target = tmp_path / "file.txt"
    target.write_text("one")

    def hook(notifier, count):
        if count == 1:
            notifier.persistent_watch(True)
            notifier.watch_path(tmp_path, False)

    reloader, calls = _counting_reloader(hook)
    reloader.acquire_env().release()
    reloader.notifier().request_reload()
    reloader.acquire_env().release()
    assert len(calls) == 2
    time.sleep(0.2)
    target.write_text("two")

    def reloaded():
        reloader.acquire_env().release()
        return len(calls) >= 3

    assert _wait_for(reloaded)


def test_watch_missing_path_is_ignored(tmp_path):
    reloader, calls = _counting_reloader(
        lambda notifier, _: notifier.watch_path(tmp_path / "missing", True)
    )
    with reloader.acquire_env() as env:
        assert env.generation == 1
    reloader.notifier().unwatch_path(tmp_path / "missing")
    reloader.acquire_env().release()
    assert len(calls) == 1