"""Row orchestrator: sign-in waits, skip policy and the per-record flow.

Per record::

    Pending -> SkippedStatus | SkippedInvalid
    Pending -> Navigating -> Filling -> Paused              (review mode)
    Pending -> Navigating -> Filling -> Submitting -> AwaitingResult
            -> Persisted -> Returned
    any -> Failed                                           (aborts the run)

Every page operation goes through the ``PolicyGuard``; only errors it lets
through fail a record.
"""

import asyncio
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from pydantic import BaseModel
from rich.markup import escape

from txnflow.config import RunConfig
from txnflow.constants import FORM_ID, MIN_CVV_DIGITS, SELECTORS, STATUS_HEADER, SUBMIT_BUTTON
from txnflow.errors import NotFound, RunAborted, ValidationSkip, WaitTimeout
from txnflow.form import FormSequencer
from txnflow.policy import PolicyGuard
from txnflow.records import Record
from txnflow.results import ResultPoller
from txnflow.stages import (
    DASHBOARD,
    LOGIN,
    NEW_TRANSACTION_LINK,
    NEW_TRANSACTION_PAGE,
    OTP,
    OTP_TITLE,
    RESULT_PAGE,
    RESULT_PAGE_BODY,
    TRANSACTIONS_LINK,
    Stage,
    StageRaceDetector,
    first_completed,
)
from txnflow.utils import digits_only, ensure_dir, narrate


class Outcome(str, Enum):
    SKIPPED_STATUS = "skipped_status"
    SKIPPED_INVALID = "skipped_invalid"
    COMPLETED = "completed"
    PAUSED = "paused"
    FAILED = "failed"


class RowOutcome(BaseModel):
    index: int
    row: int
    outcome: Outcome
    status_text: str = ""
    error: Optional[str] = None


def _wait_forever() -> Awaitable:
    return asyncio.Event().wait()


class RowOrchestrator:
    def __init__(
        self,
        page,
        store,
        config: RunConfig,
        detector: Optional[StageRaceDetector] = None,
        on_outcome: Optional[Callable[[RowOutcome], None]] = None,
        pause: Optional[Callable[[], Awaitable]] = None,
        guard: Optional[PolicyGuard] = None,
    ):
        self.page = page
        self.store = store
        self.config = config
        self.timings = config.timings
        self.detector = detector or StageRaceDetector(page, poll_interval=self.timings.poll_interval)
        self.guard = guard or PolicyGuard(retry_delay=self.timings.retry_delay)
        self.form = FormSequencer(page, self.timings, self.guard)
        self.poller = ResultPoller(page, poll_interval=self.timings.result_poll_interval)
        self.on_outcome = on_outcome
        self.pause = pause or _wait_forever
        self.outcomes: List[RowOutcome] = []

    async def run(self) -> List[RowOutcome]:
        await self.sign_in()
        records = await asyncio.to_thread(self.store.read_all)
        narrate(f"[cyan]Loaded {len(records)} record(s) from {escape(str(self.config.input_path))}[/cyan]")
        return await self.process_records(records)

    # -- sign-in -------------------------------------------------------------

    async def sign_in(self):
        cfg, t = self.config, self.timings
        narrate(f"[cyan]Opening login page[/cyan] [dim]{escape(cfg.login_url)}[/dim]")
        await self.guard.run("session.open_login", lambda: self.page.navigate(cfg.login_url, t.login_navigation_timeout))
        await self.guard.run("session.login_page", lambda: self.detector.wait_for(LOGIN, cfg.page_load_timeout))
        narrate("[yellow]Login page ready. Enter your credentials in the browser window.[/yellow]")

        stage = await self.guard.run(
            "session.post_login", lambda: self.detector.detect([OTP, DASHBOARD], cfg.post_login_timeout)
        )
        if stage == OTP.name:
            await self.guard.run("session.otp_title", lambda: self.detector.wait_for(OTP_TITLE, t.otp_title_timeout))
            narrate("[yellow]Two-factor authentication required. Enter the code in the browser window.[/yellow]")
            await self.guard.run("session.otp_dashboard", lambda: self.detector.wait_for(DASHBOARD, cfg.otp_timeout))
        narrate("[green]✓ Signed in, dashboard ready[/green]")

    # -- records ---------------------------------------------------------------

    async def process_records(self, records: List[Record]) -> List[RowOutcome]:
        for record in records:
            result = await self.process(record)
            if result.outcome is Outcome.PAUSED:
                await self.pause()
                narrate("[yellow]Review pause ended; stopping without processing further records.[/yellow]")
                break
        return self.outcomes

    def screen(self, record: Record):
        """Raise ``ValidationSkip`` when the record must not be processed."""
        status = record.status
        if status:
            raise ValidationSkip(f"already has status {status!r}", kind="status")
        cvv = digits_only(record.field("cvv"))
        if len(cvv) < MIN_CVV_DIGITS:
            raise ValidationSkip(f"CVV has {len(cvv)} digit(s), need at least {MIN_CVV_DIGITS}")

    async def process(self, record: Record) -> RowOutcome:
        try:
            self.screen(record)
        except ValidationSkip as skip:
            kind = Outcome.SKIPPED_STATUS if skip.kind == "status" else Outcome.SKIPPED_INVALID
            return self._emit(RowOutcome(index=record.index, row=record.row_number, outcome=kind, error=skip.reason))

        narrate(f"[cyan]▶ Row {record.row_number}[/cyan]")
        try:
            await self.go_to_new_transaction()
            await self.form.fill(record, self.config.brand)
            if self.config.review_mode:
                narrate(f"[yellow]⏸ Review mode: row {record.row_number} is filled. Submit it yourself in the browser.[/yellow]")
                return self._emit(RowOutcome(index=record.index, row=record.row_number, outcome=Outcome.PAUSED))
            await self.submit()
            text = await self.capture_status()
            await self.persist(record, text)
            await self.return_to_list()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._emit(RowOutcome(index=record.index, row=record.row_number, outcome=Outcome.FAILED, error=str(exc)))
            await self.capture_evidence(record)
            raise RunAborted(record.row_number, exc) from exc
        return self._emit(
            RowOutcome(index=record.index, row=record.row_number, outcome=Outcome.COMPLETED, status_text=text)
        )

    # -- steps -------------------------------------------------------------------

    async def go_to_new_transaction(self):
        t = self.timings
        await self.guard.run("nav.transactions_link", lambda: self.detector.wait_for(TRANSACTIONS_LINK, t.nav_timeout))
        await self.guard.run("nav.click", lambda: self._click_first(SELECTORS["transactions_link"]))
        await self.guard.run("nav.settle", lambda: self._settle(NEW_TRANSACTION_LINK, t.nav_timeout))
        await self.guard.run("nav.click", lambda: self._click_first(SELECTORS["new_transaction_link"]))
        await self.guard.run("nav.settle", lambda: self._settle(NEW_TRANSACTION_PAGE, t.nav_timeout))
        await self.guard.run(
            "nav.new_transaction_page", lambda: self.detector.wait_for(NEW_TRANSACTION_PAGE, t.nav_timeout)
        )

    async def submit(self):
        t = self.timings
        await asyncio.sleep(t.submit_settle)
        how = await self.guard.run("submit.trigger", lambda: self.page.submit_form(FORM_ID, SUBMIT_BUTTON))
        narrate(f"[cyan]Submitted[/cyan] [dim]via {how}[/dim]")
        await self.guard.run("submit.navigation", lambda: self._settle(RESULT_PAGE_BODY, t.submit_timeout))
        await self.guard.run("submit.result_page", lambda: self.detector.wait_for(RESULT_PAGE, t.result_page_timeout))

    async def capture_status(self) -> str:
        """Status text of the result page, or "" when it never renders."""
        timeout = self.config.result_timeout
        await self.guard.run("result.page_ready", lambda: self.detector.wait_for(RESULT_PAGE, timeout))
        text = await self.guard.run(
            "result.capture",
            lambda: self.guard.run(
                "result.status",
                lambda: self.poller.await_result(timeout),
                retry_delay=self.timings.result_retry_delay,
            ),
            default="",
        )
        narrate(f"[green]Status:[/green] {escape(text) or '[dim](empty)[/dim]'}")
        return text

    async def persist(self, record: Record, text: str) -> bool:
        return await self.guard.run("persist.status", lambda: self._write_status(record, text), default=False)

    async def return_to_list(self) -> bool:
        return await self.guard.run("return.transactions_list", self._return_to_list, default=False)

    async def capture_evidence(self, record: Record) -> Optional[Path]:
        if self.config.evidence_dir is None:
            return None
        path = Path(self.config.evidence_dir) / f"row_{record.row_number}_failed.png"
        try:
            ensure_dir(path.parent)
            return await self.guard.run("evidence.screenshot", lambda: self._screenshot(path))
        except Exception as exc:
            # already aborting; the original failure is what gets reported
            narrate(f"[red]Could not save screenshot: {escape(str(exc))}[/red]")
            return None

    # -- helpers -------------------------------------------------------------------

    async def _click_first(self, selectors: List[str]):
        primary, fallback = selectors[0], selectors[-1]
        try:
            await self.page.click(primary)
        except (NotFound, WaitTimeout):
            narrate(f"[dim]Primary target not clickable, trying {escape(fallback)}[/dim]")
            await self.page.click(fallback)

    async def _settle(self, stage: Stage, timeout: float):
        """Wait for either a navigation or ``stage``, whichever comes first."""
        await first_completed(
            [self.detector.wait_for(stage, timeout), self.page.wait_for_navigation(timeout)],
            timeout,
            labels=[stage.name, "navigation"],
        )

    async def _write_status(self, record: Record, text: str) -> bool:
        await asyncio.to_thread(self.store.write_field, record.index, STATUS_HEADER, text)
        narrate(f"[green]✓ Saved status for row {record.row_number}[/green]")
        return True

    async def _return_to_list(self) -> bool:
        t = self.timings
        await self.detector.wait_for(TRANSACTIONS_LINK, t.return_timeout)
        await self._click_first(SELECTORS["transactions_link"])
        await first_completed(
            [self.page.wait_for_navigation(t.return_settle_timeout), self.detector.wait_for(NEW_TRANSACTION_LINK, t.return_settle_timeout)],
            t.return_settle_timeout,
            labels=["navigation", NEW_TRANSACTION_LINK.name],
        )
        return True

    async def _screenshot(self, path: Path) -> Path:
        await self.page.screenshot(str(path))
        narrate(f"[dim]Screenshot saved to {escape(str(path))}[/dim]")
        return path

    def _emit(self, result: RowOutcome) -> RowOutcome:
        self.outcomes.append(result)
        colour = {
            Outcome.COMPLETED: "green",
            Outcome.PAUSED: "yellow",
            Outcome.FAILED: "red",
        }.get(result.outcome, "dim")
        detail = f": {escape(result.error)}" if result.error else ""
        narrate(f"[{colour}]Row {result.row} → {result.outcome.value}{detail}[/{colour}]")
        if self.on_outcome:
            self.on_outcome(result)
        return result
