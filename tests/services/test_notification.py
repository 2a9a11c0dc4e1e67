"""
ChangeChannel tests: explicit subscribe / unsubscribe lifecycle and
best-effort delivery.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from ledger_kernel.domain.events import ChangeEvent, ChangeOperation, EntityKind
from ledger_kernel.services.notification import ChangeChannel


def _event(kind=EntityKind.PAYMENT, op=ChangeOperation.CREATE, ledger="receivable"):
    return ChangeEvent(entity_kind=kind, operation=op, ledger=ledger, payload={"id": "x"})


class TestSubscriptionLifecycle:

    def test_subscriber_receives_events(self):
        channel = ChangeChannel()
        received = []
        channel.subscribe(received.append)
        channel.publish(_event())
        assert [e.key for e in received] == [("payment", "create")]

    def test_unsubscribe_stops_delivery(self):
        channel = ChangeChannel()
        received = []
        subscription = channel.subscribe(received.append)
        subscription.unsubscribe()
        subscription.unsubscribe()
        channel.publish(_event())
        assert received == []
        assert channel.subscriber_count == 0
        assert not subscription.active

    def test_context_manager_unsubscribes(self):
        channel = ChangeChannel()
        received = []
        with channel.subscribe(received.append):
            channel.publish(_event())
        channel.publish(_event())
        assert len(received) == 1

    def test_close_drops_everyone(self):
        channel = ChangeChannel()
        received = []
        channel.subscribe(received.append)
        channel.close()
        channel.publish(_event())
        assert received == []
        assert channel.closed
        with pytest.raises(RuntimeError):
            channel.subscribe(received.append)


class TestFiltering:

    def test_entity_kind_filter(self):
        channel = ChangeChannel()
        documents = []
        channel.subscribe(documents.append, entity_kind="document")
        channel.publish(_event(EntityKind.PAYMENT))
        channel.publish(_event(EntityKind.DOCUMENT, ChangeOperation.UPDATE))
        assert [e.key for e in documents] == [("document", "update")]

    def test_ledger_filter(self):
        channel = ChangeChannel()
        payable = []
        channel.subscribe(payable.append, ledger="payable")
        channel.publish_all([_event(ledger="receivable"), _event(ledger="payable")])
        assert [e.ledger for e in payable] == ["payable"]


class TestDelivery:

    def test_failing_subscriber_isolated(self, captured_logs):
        channel = ChangeChannel()
        received = []

        def broken(event):
            raise ValueError("boom")

        channel.subscribe(broken)
        channel.subscribe(received.append)
        channel.publish(_event())

        assert len(received) == 1
        failed = [r for r in captured_logs() if r["message"] == "subscriber_failed"]
        assert failed[0]["exc_message"] == "boom"
        assert "traceback" in failed[0]

    def test_executor_delivery(self):
        received = []
        with ThreadPoolExecutor(max_workers=2) as executor:
            channel = ChangeChannel(executor=executor)
            channel.subscribe(received.append)
            channel.publish(_event())
        assert len(received) == 1
