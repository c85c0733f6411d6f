import threading

from core.dispatch import BackgroundDispatcher, InlineDispatcher


def boom():
    raise RuntimeError("side effect failed")


def test_inline_dispatcher_isolates_failures(caplog):
    InlineDispatcher().submit(boom)
    assert "side effect failed" in caplog.text


def test_background_dispatcher_runs_off_thread():
    dispatcher = BackgroundDispatcher(max_workers=1, name="test")
    seen = []
    done = threading.Event()

    def task(value):
        seen.append((value, threading.current_thread().name))
        done.set()

    dispatcher.submit(boom)
    dispatcher.submit(task, 42)
    assert done.wait(timeout=5)
    dispatcher.shutdown()

    [(value, thread_name)] = seen
    assert value == 42
    assert thread_name.startswith("test")


def test_closed_dispatcher_drops_tasks(caplog):
    dispatcher = BackgroundDispatcher(max_workers=1)
    dispatcher.shutdown()

    dispatcher.submit(boom)

    assert "Dispatcher closed" in caplog.text
