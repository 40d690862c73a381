import asyncio
import threading
import uuid
from datetime import date, datetime
from decimal import Decimal

from fintrack.services.live import (
    DELETE,
    INSERT,
    UPDATE,
    ChangeEvent,
    ChangeFeed,
    SharedReportView,
)


PROPERTY_ID = uuid.uuid4()


def payload(day, amount, kind, txn_id=None, description="Tenant rent"):
    return {
        "id": str(txn_id or uuid.uuid4()),
        "property_id": str(PROPERTY_ID),
        "date": day.isoformat(),
        "description": description,
        "amount": amount,
        "type": kind,
        "created_at": datetime(2024, 3, 1).isoformat(),
    }


class TestSharedReportView:
    def test_insert_update_delete(self):
        view = SharedReportView(month="2024-03")
        first = payload(date(2024, 3, 1), "100.00", "expense")
        second = payload(date(2024, 3, 5), "500.00", "income")

        view.apply(ChangeEvent(INSERT, PROPERTY_ID, new=first))
        view.apply(ChangeEvent(INSERT, PROPERTY_ID, new=second))
        assert [r.balance for r in view.report().rows] == [Decimal("-100.00"), Decimal("400.00")]

        changed = dict(first, amount="50.00")
        view.apply(ChangeEvent(UPDATE, PROPERTY_ID, new=changed))
        assert view.report().balance == Decimal("450.00")

        view.apply(ChangeEvent(DELETE, PROPERTY_ID, old={"id": second["id"]}))
        assert view.report().balance == Decimal("-50.00")
        assert len(view.transactions) == 1

    def test_out_of_order_insert_is_resorted(self):
        view = SharedReportView(month="2024-03")
        view.apply(ChangeEvent(INSERT, PROPERTY_ID, new=payload(date(2024, 3, 20), "10", "income")))
        view.apply(ChangeEvent(INSERT, PROPERTY_ID, new=payload(date(2024, 3, 2), "5", "expense")))
        assert [r.date for r in view.report().rows] == [date(2024, 3, 2), date(2024, 3, 20)]

    def test_insert_already_in_snapshot_is_not_doubled(self):
        row = payload(date(2024, 3, 1), "100.00", "income")
        view = SharedReportView(month="2024-03")
        view.apply(ChangeEvent(INSERT, PROPERTY_ID, new=row))
        view.apply(ChangeEvent(INSERT, PROPERTY_ID, new=row))
        assert len(view.transactions) == 1
        assert view.report().balance == Decimal("100.00")

    def test_unknown_event_is_ignored(self):
        view = SharedReportView(month="2024-03")
        assert view.apply(ChangeEvent("TRUNCATE", PROPERTY_ID)) is False
        assert view.report().is_empty


class TestChangeFeed:
    def test_delivers_from_worker_thread(self):
        feed = ChangeFeed()
        event = ChangeEvent(INSERT, PROPERTY_ID, new=payload(date(2024, 3, 1), "1", "income"))

        async def scenario():
            with feed.subscribe(PROPERTY_ID) as sub:
                worker = threading.Thread(target=feed.publish, args=(event,))
                worker.start()
                worker.join()
                return await asyncio.wait_for(sub.get(), timeout=2)

        assert asyncio.run(scenario()) == event
        assert feed.subscriber_count(PROPERTY_ID) == 0

    def test_only_matching_property_receives(self):
        feed = ChangeFeed()
        other = uuid.uuid4()

        async def scenario():
            mine = feed.subscribe(PROPERTY_ID)
            theirs = feed.subscribe(other)
            delivered = feed.publish(ChangeEvent(DELETE, PROPERTY_ID, old={"id": str(uuid.uuid4())}))
            await asyncio.sleep(0)
            return delivered, mine.pending(), theirs.pending()

        assert asyncio.run(scenario()) == (1, 1, 0)

    def test_cancel_stops_delivery(self):
        feed = ChangeFeed()

        async def scenario():
            sub = feed.subscribe(PROPERTY_ID)
            sub.cancel()
            sub.cancel()
            return feed.publish(ChangeEvent(INSERT, PROPERTY_ID, new={}))

        assert asyncio.run(scenario()) == 0

    def test_overflow_marks_stale(self):
        feed = ChangeFeed(queue_size=1)

        async def scenario():
            sub = feed.subscribe(PROPERTY_ID)
            for _ in range(3):
                feed.publish(ChangeEvent(INSERT, PROPERTY_ID, new={}))
            await asyncio.sleep(0)
            return sub.stale, sub.pending()

        assert asyncio.run(scenario()) == (True, 1)

    def test_closed_loop_drops_subscriber(self):
        feed = ChangeFeed()
        loop = asyncio.new_event_loop()
        feed.subscribe(PROPERTY_ID, loop=loop)
        loop.close()

        feed.publish(ChangeEvent(INSERT, PROPERTY_ID, new={}))
        assert feed.subscriber_count(PROPERTY_ID) == 0
