"""
Status Event Hub Tests
"""

from mediation_backend.events import StatusEventHub


def test_subscribe_publish_unsubscribe():
    hub = StatusEventHub()
    received = []
    unsubscribe = hub.subscribe(received.append)

    hub.publish({"case_id": "c1", "to": "accepted"})
    unsubscribe()
    hub.publish({"case_id": "c1", "to": "cancelled"})

    assert received == [{"case_id": "c1", "to": "accepted"}]
    assert hub.listener_count == 0


def test_failing_listener_does_not_block_others():
    hub = StatusEventHub()
    received = []

    def broken(event):
        raise ValueError("boom")

    hub.subscribe(broken)
    hub.subscribe(received.append)
    hub.publish({"case_id": "c2"})

    assert received == [{"case_id": "c2"}]


def test_unsubscribe_twice_is_harmless():
    hub = StatusEventHub()
    unsubscribe = hub.subscribe(lambda event: None)
    unsubscribe()
    unsubscribe()
    assert hub.listener_count == 0
