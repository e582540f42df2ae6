from attendance_core.dispatcher import NotificationDispatcher
from attendance_core.models import Signal


def test_subscribers_called_in_registration_order():
    dispatcher = NotificationDispatcher()
    calls = []
    dispatcher.subscribe(lambda s, p: calls.append(("a", s, p)))
    dispatcher.subscribe(lambda s, p: calls.append(("b", s, p)))

    dispatcher.notify(Signal.NEW_DATA_AVAILABLE, {"args": []})

    assert calls == [
        ("a", Signal.NEW_DATA_AVAILABLE, {"args": []}),
        ("b", Signal.NEW_DATA_AVAILABLE, {"args": []}),
    ]


def test_failing_subscriber_does_not_block_others(recorder):
    dispatcher = NotificationDispatcher()

    def broken(signal, payload):
        raise RuntimeError("subscriber bug")

    dispatcher.subscribe(broken)
    dispatcher.subscribe(recorder)

    dispatcher.notify(Signal.CONNECTED)

    assert recorder.signals == [Signal.CONNECTED]


def test_duplicates_and_non_callables_ignored(recorder):
    dispatcher = NotificationDispatcher()
    dispatcher.subscribe(recorder)
    dispatcher.subscribe(recorder)
    dispatcher.subscribe("not a function")

    dispatcher.notify(Signal.DISCONNECTED)

    assert len(dispatcher) == 1
    assert recorder.signals == [Signal.DISCONNECTED]


def test_unsubscribe(recorder):
    dispatcher = NotificationDispatcher()
    dispatcher.subscribe(recorder)
    dispatcher.unsubscribe(recorder)
    dispatcher.unsubscribe(recorder)

    dispatcher.notify(Signal.CONNECTED)

    assert recorder.events == []
