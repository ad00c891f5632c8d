import asyncio

from txnflow.constants import STATUS_TEXT_SELECTOR
from txnflow.errors import WaitTimeout
from txnflow.stages import Condition

STATUS_TEXT = Condition(selector=STATUS_TEXT_SELECTOR)


class ResultPoller:
    """Polls the status text node until it renders a non-empty value."""

    def __init__(self, page, poll_interval: float = 1.0):
        self.page = page
        self.poll_interval = poll_interval

    async def await_result(self, timeout: float) -> str:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            text = (await self.page.text_of(STATUS_TEXT) or "").strip()
            if text:
                return text
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise WaitTimeout("transaction status", timeout, last_seen=text)
            await asyncio.sleep(min(self.poll_interval, remaining))
