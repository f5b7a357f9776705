"""Test the event log, the queue sink and the event processor."""

import asyncio
from unittest import IsolatedAsyncioTestCase, TestCase

from selfsend.constants import Severity
from selfsend.events import Event, EventLog, QueueSink, process_events
from selfsend.formatters import format_timestamp


def event(message, severity=Severity.INFO, ref="", batch_id="b1", ts=1_700_000_000.0):
    return Event(severity, message, account_ref=ref, batch_id=batch_id, timestamp=ts)


class EventLogTest(TestCase):
    def test_history_is_bounded(self):
        log = EventLog(maxlen=3)
        for i in range(5):
            log.emit(event(f"m{i}", ts=float(i)))
        self.assertEqual(len(log), 3)
        self.assertEqual([e.message for e in log.events()], ["m2", "m3", "m4"])

    def test_filter(self):
        log = EventLog()
        log.emit(event("waiting", ts=1.0, ref="0xaaaa...1111"))
        log.emit(event("skipped", Severity.WARNING, ts=2.0, ref="0xbbbb...2222"))
        log.emit(event("confirmed", Severity.SUCCESS, ts=3.0, ref="0xaaaa...1111", batch_id="b2"))

        self.assertEqual([e.message for e in log.filter()], ["confirmed", "skipped", "waiting"])
        self.assertEqual([e.message for e in log.filter(newest_first=False)], ["waiting", "skipped", "confirmed"])
        self.assertEqual([e.message for e in log.filter(Severity.WARNING)], ["skipped"])
        self.assertEqual([e.message for e in log.filter(text="AAAA")], ["confirmed", "waiting"])
        self.assertEqual([e.message for e in log.filter(text="skip")], ["skipped"])
        self.assertEqual([e.message for e in log.filter(batch_id="b2")], ["confirmed"])

    def test_counts(self):
        log = EventLog()
        log.emit(event("a"))
        log.emit(event("b", Severity.ERROR))
        log.emit(event("c", Severity.ERROR))
        self.assertEqual(log.counts(), {"info": 1, "success": 0, "warning": 0, "error": 2, "total": 3})

    def test_export_and_clear(self):
        log = EventLog()
        ts = 1_700_000_000.0
        log.emit(event("Stop requested", Severity.WARNING, ref="0x1234...abcd", ts=ts))
        log.emit(event("done", ts=ts + 1))
        expected = (
            f"[{format_timestamp(ts)}] [WARNING] [0x1234...abcd] Stop requested\n"
            f"[{format_timestamp(ts + 1)}] [INFO] done\n"
        )
        self.assertEqual(log.export_text(), expected)
        log.clear()
        self.assertEqual(len(log), 0)
        self.assertEqual(log.export_text(), "")

    def test_to_dict(self):
        d = event("hello", Severity.SUCCESS, ref="0x1234...abcd").to_dict()
        self.assertEqual(d["severity"], "success")
        self.assertEqual(d["account"], "0x1234...abcd")
        self.assertEqual(d["message"], "hello")
        self.assertEqual(d["batch_id"], "b1")


class QueueTest(IsolatedAsyncioTestCase):
    async def test_sink_drops_when_full(self):
        sink = QueueSink(asyncio.Queue(maxsize=1))
        sink.emit(event("kept"))
        sink.emit(event("dropped"))
        self.assertEqual(sink.dropped, 1)
        self.assertEqual(sink.queue.qsize(), 1)

    async def test_processor_moves_events(self):
        queue = asyncio.Queue()
        log = EventLog()
        stop = asyncio.Event()
        processor = asyncio.create_task(process_events(queue, log, stop))
        QueueSink(queue).emit(event("one"))
        for _ in range(100):
            if len(log):
                break
            await asyncio.sleep(0.01)
        self.assertEqual([e.message for e in log.events()], ["one"])
        stop.set()
        await asyncio.wait_for(processor, timeout=2)

    async def test_processor_drains_on_stop(self):
        queue = asyncio.Queue()
        log = EventLog()
        stop = asyncio.Event()
        stop.set()
        for i in range(3):
            queue.put_nowait(event(f"m{i}"))
        await asyncio.wait_for(process_events(queue, log, stop), timeout=2)
        self.assertEqual(len(log), 3)
