"""
Tests for live view subscriptions, cancellation and the async stream.
"""
import asyncio

import pytest

from medsupply.services.inventory_store import InventoryStore
from tests.conftest import make_draft


@pytest.fixture
def memory_store(clock) -> InventoryStore:
    return InventoryStore(clock=clock)


class TestSubscribe:

    def test_initial_snapshot_is_delivered_immediately(self, memory_store):
        gauze = memory_store.insert(make_draft())
        seen = []
        with memory_store.get_all() as view:
            view.subscribe(seen.append)
        assert seen == [(gauze,)]

    def test_emits_on_relevant_change(self, memory_store):
        seen = []
        view = memory_store.get_all()
        view.subscribe(seen.append)
        gauze = memory_store.insert(make_draft())
        assert seen == [(), (gauze,)]
        view.cancel()

    def test_no_emission_when_result_unchanged(self, memory_store):
        memory_store.insert(make_draft(name="Gauze", category="PPE"))
        seen = []
        view = memory_store.filter(category="PPE")
        view.subscribe(seen.append)
        memory_store.insert(make_draft(name="Insulin", category="Medication"))
        assert len(seen) == 1
        view.cancel()

    def test_cancelling_one_subscription_leaves_others(self, memory_store):
        first, second = [], []
        view = memory_store.get_all()
        sub_first = view.subscribe(first.append)
        view.subscribe(second.append)
        sub_first.cancel()
        memory_store.insert(make_draft())
        assert len(first) == 1
        assert len(second) == 2
        view.cancel()

    def test_failing_listener_does_not_break_others_or_the_write(self, memory_store):
        def broken(_):
            raise RuntimeError("render failed")

        seen = []
        view = memory_store.get_all()
        view.subscribe(broken)
        view.subscribe(seen.append)
        record = memory_store.insert(make_draft())
        assert seen[-1] == (record,)
        assert memory_store.snapshot() == (record,)
        view.cancel()

    def test_listener_that_writes_leaves_everyone_on_final_state(self, memory_store):
        view = memory_store.get_all()

        def restock(items):
            if len(items) == 1:
                memory_store.insert(make_draft(name="Masks"))

        seen = []
        view.subscribe(restock)
        view.subscribe(seen.append)
        memory_store.insert(make_draft(name="Gauze"))

        assert [r.name for r in memory_store.snapshot()] == ["Gauze", "Masks"]
        assert [r.name for r in seen[-1]] == ["Gauze", "Masks"]
        assert view.value == seen[-1]
        view.cancel()


class TestCancel:

    def test_cancelled_view_stops_receiving(self, memory_store):
        seen = []
        view = memory_store.get_all()
        view.subscribe(seen.append)
        view.cancel()
        memory_store.insert(make_draft())
        assert seen == [()]
        assert view.value == ()

    def test_cancel_is_idempotent(self, memory_store):
        view = memory_store.get_all()
        view.cancel()
        view.cancel()
        assert view.cancelled

    def test_cannot_subscribe_after_cancel(self, memory_store):
        view = memory_store.get_all()
        view.cancel()
        with pytest.raises(RuntimeError):
            view.subscribe(lambda _: None)

    def test_cancelling_a_view_does_not_affect_other_views(self, memory_store):
        kept = memory_store.get_all()
        dropped = memory_store.get_all()
        dropped.cancel()
        record = memory_store.insert(make_draft())
        assert kept.value == (record,)
        kept.cancel()


class TestStream:

    def test_stream_yields_initial_then_latest(self, memory_store):
        async def scenario():
            view = memory_store.get_all()
            stream = view.stream()
            initial = await stream.__anext__()
            memory_store.insert(make_draft(name="Gauze"))
            memory_store.insert(make_draft(name="Insulin"))
            latest = await stream.__anext__()
            view.cancel()
            with pytest.raises(StopAsyncIteration):
                await stream.__anext__()
            return initial, latest

        initial, latest = asyncio.run(scenario())
        assert initial == ()
        # The burst collapses into the final state
        assert [record.name for record in latest] == ["Gauze", "Insulin"]
