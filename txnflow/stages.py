"""Stage declarations and the first-past-the-post stage race.

A stage is a recognizable UI state described by alternative conditions
(logical OR). ``StageRaceDetector.detect`` runs one cooperative watcher per
stage and returns the name of the first stage whose condition holds.
"""

import asyncio
from typing import Awaitable, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from txnflow.constants import (
    NEW_TRANSACTION_HEADINGS,
    OTP_TITLE_SELECTOR,
    OTP_TITLE_TEXT,
    PAGE_HEADING_SELECTOR,
    RESULT_HEADING,
    SELECTORS,
)
from txnflow.errors import WaitTimeout


class Condition(BaseModel):
    """Selector presence, or selector presence plus text-contains."""

    model_config = ConfigDict(frozen=True)

    selector: str
    text: Optional[str] = None
    ignore_case: bool = False

    def describe(self) -> str:
        if self.text is None:
            return self.selector
        return f'{self.selector} containing "{self.text}"'


class Stage(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    alternatives: Tuple[Condition, ...]

    @classmethod
    def of(cls, name: str, *selectors: str) -> "Stage":
        return cls(name=name, alternatives=tuple(Condition(selector=s) for s in selectors))

    def also(self, *conditions: Condition) -> "Stage":
        return self.model_copy(update={"alternatives": self.alternatives + tuple(conditions)})


LOGIN = Stage.of("login", *SELECTORS["login"])
OTP = Stage.of("otp", *SELECTORS["otp"])
OTP_TITLE = Stage(name="otp_title", alternatives=(Condition(selector=OTP_TITLE_SELECTOR, text=OTP_TITLE_TEXT),))
DASHBOARD = Stage.of("dashboard", *SELECTORS["dashboard"])
TRANSACTIONS_LINK = Stage.of("transactions_link", *SELECTORS["transactions_link"])
NEW_TRANSACTION_LINK = Stage.of("new_transaction_link", *SELECTORS["new_transaction_link"])
# Structural marker first; the heading text is the fallback when the body class is missing.
NEW_TRANSACTION_PAGE = Stage.of("new_transaction", *SELECTORS["new_transaction_page"]).also(
    *(Condition(selector=PAGE_HEADING_SELECTOR, text=h, ignore_case=True) for h in NEW_TRANSACTION_HEADINGS)
)
RESULT_PAGE_BODY = Stage.of("result_body", SELECTORS["result_page"][0])
RESULT_PAGE = Stage.of("result", *SELECTORS["result_page"]).also(
    Condition(selector=PAGE_HEADING_SELECTOR, text=RESULT_HEADING)
)


async def first_completed(awaitables: Sequence[Awaitable], timeout: float, labels: Optional[Sequence[str]] = None) -> int:
    """Race awaitables; return the index of the first to finish.

    Ties go to the lowest index. The others are cancelled locally. If the
    winner raised, its exception propagates. Raises ``WaitTimeout`` when
    nothing finishes within ``timeout`` seconds.
    """
    if not awaitables:
        raise ValueError("first_completed needs at least one awaitable")
    tasks = [asyncio.ensure_future(aw) for aw in awaitables]
    try:
        done, _ = await asyncio.wait(tasks, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        losers = [t for t in tasks if not t.done()]
        for t in losers:
            t.cancel()
        if losers:
            await asyncio.gather(*losers, return_exceptions=True)
    if not done:
        raise WaitTimeout(labels or [f"race of {len(tasks)}"], timeout)
    for idx, task in enumerate(tasks):
        if task in done:
            task.result()
            return idx
    raise AssertionError("unreachable")


class StageRaceDetector:
    def __init__(self, page, poll_interval: float = 0.25):
        self._page = page
        self._poll_interval = poll_interval

    async def detect(self, stages: Sequence[Stage], timeout: float) -> str:
        """Return the name of the first stage reached within ``timeout`` seconds.

        Poll order inside a stage follows its alternatives; across stages a
        tie resolves to the stage listed first.
        """
        if not stages:
            raise ValueError("detect needs at least one stage")
        names = [s.name for s in stages]
        winner = await first_completed([self._watch(s) for s in stages], timeout, labels=names)
        return names[winner]

    async def wait_for(self, stage: Stage, timeout: float) -> str:
        return await self.detect([stage], timeout)

    async def _watch(self, stage: Stage):
        while True:
            for condition in stage.alternatives:
                if await self._page.exists(condition):
                    return
            await asyncio.sleep(self._poll_interval)
