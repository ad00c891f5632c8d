import unittest

from fakes import FakeGateway
from txnflow.errors import WaitTimeout
from txnflow.results import ResultPoller


class TestResultPoller(unittest.IsolatedAsyncioTestCase):
    async def test_waits_for_text(self):
        page = FakeGateway(start="show", status_text="Submitted For Settlement", status_empty_reads=3)
        poller = ResultPoller(page, poll_interval=0.005)
        self.assertEqual(await poller.await_result(timeout=1.0), "Submitted For Settlement")
        self.assertEqual(page.status_reads, 4)

    async def test_timeout_carries_last_seen(self):
        page = FakeGateway(start="show", status_empty_reads=10_000)
        poller = ResultPoller(page, poll_interval=0.005)
        with self.assertRaises(WaitTimeout) as ctx:
            await poller.await_result(timeout=0.05)
        self.assertEqual(ctx.exception.last_seen, "")
        self.assertEqual(ctx.exception.what, ["transaction status"])


if __name__ == '__main__':
    unittest.main()
