import asyncio
import tempfile
import unittest
from pathlib import Path

from openpyxl import Workbook, load_workbook

from fakes import FAST, FakeGateway
from txnflow.brands import BOOKING
from txnflow.config import RunConfig
from txnflow.constants import FORM_SELECTORS, SELECTORS
from txnflow.errors import NotFound, PersistenceFailure, RunAborted, WaitTimeout
from txnflow.orchestrator import Outcome, RowOrchestrator
from txnflow.records import Record, WorkbookStore

HEADER = ["MAIDS", "Amount", "Reservation ID", "Hotel Name", "Card first 4", "Card last 12", "Expiry", "CVV", "STATUS"]
ROWS = [
    ["hotel_usd", 125.4, "R-1", "Grand Plaza", "4111", "111111111111", "05/2027", "123", None],
    ["hotel_usd", 99, "R-2", "Grand Plaza", "4111", "111111111111", "05/2027", "123", "Authorized"],
    ["hotel_usd", 10, "R-3", "Grand Plaza", "4111", "111111111111", "05/2027", "12", None],
    ["hotel_eur", 80, "R-4", "Harbour Inn", "5555", "555555554444", "09/2028", "4567", None],
]


def valid_record(index=0, **overrides):
    values = dict(zip(HEADER, ["hotel_usd", "1", "R-1", "Inn", "4111", "111111111111", "05/2027", "123", ""]))
    values.update(overrides)
    return Record(index, values)


class MemoryStore:
    def __init__(self, records=(), fail_writes=False):
        self.records = list(records)
        self.fail_writes = fail_writes
        self.writes = []

    def read_all(self):
        return list(self.records)

    def write_field(self, row_index, field_name, value):
        if self.fail_writes:
            raise PersistenceFailure("sheet is open in another program")
        self.writes.append((row_index, field_name, value))


class OrchestratorCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def config(self, **overrides):
        values = dict(
            brand=BOOKING,
            review_mode=False,
            input_path=self.dir / "input_file.xlsx",
            page_load_timeout=0.5,
            post_login_timeout=0.5,
            otp_timeout=0.5,
            result_timeout=0.3,
            evidence_dir=self.dir / "evidence",
            timings=FAST,
        )
        values.update(overrides)
        return RunConfig(**values)


class TestRowProcessing(OrchestratorCase):
    async def test_end_to_end_writes_status_and_returns_to_list(self):
        path = self.dir / "input_file.xlsx"
        wb = Workbook()
        ws = wb.active
        ws.append(HEADER)
        for row in ROWS:
            ws.append(row)
        wb.save(path)

        page = FakeGateway(start="dashboard")
        seen = []
        store = WorkbookStore(path)
        orch = RowOrchestrator(page, store, self.config(input_path=path), on_outcome=seen.append)
        outcomes = await orch.process_records(store.read_all())

        self.assertEqual([o.outcome for o in outcomes], [
            Outcome.COMPLETED, Outcome.SKIPPED_STATUS, Outcome.SKIPPED_INVALID, Outcome.COMPLETED,
        ])
        self.assertEqual(seen, outcomes)
        self.assertEqual(outcomes[0].status_text, "Authorized")
        self.assertEqual(len(page.submissions), 2)
        self.assertEqual(page.submissions[1][FORM_SELECTORS["card_number"]], "5555555555554444")
        self.assertEqual(page.current, "transactions")

        ws = load_workbook(path).active
        status_col = HEADER.index("STATUS") + 1
        self.assertEqual(ws.max_column, len(HEADER))
        self.assertEqual(ws.cell(row=2, column=status_col).value, "Authorized")
        self.assertEqual(ws.cell(row=3, column=status_col).value, "Authorized")
        self.assertIsNone(ws.cell(row=4, column=status_col).value)
        self.assertEqual(ws.cell(row=5, column=status_col).value, "Authorized")

    async def test_short_cvv_is_never_touched(self):
        page = FakeGateway(start="dashboard")
        orch = RowOrchestrator(page, MemoryStore(), self.config())
        outcomes = await orch.process_records([valid_record(CVV="12")])
        self.assertEqual(outcomes[0].outcome, Outcome.SKIPPED_INVALID)
        self.assertEqual(page.calls, [])

    async def test_existing_status_is_never_touched(self):
        page = FakeGateway(start="dashboard")
        store = MemoryStore()
        orch = RowOrchestrator(page, store, self.config())
        outcomes = await orch.process_records([valid_record(STATUS="Declined")])
        self.assertEqual(outcomes[0].outcome, Outcome.SKIPPED_STATUS)
        self.assertEqual(page.calls, [])
        self.assertEqual(store.writes, [])

    async def test_new_transaction_link_fallback(self):
        page = FakeGateway(start="dashboard", hidden={SELECTORS["new_transaction_link"][0]})
        store = MemoryStore()
        orch = RowOrchestrator(page, store, self.config())
        outcomes = await orch.process_records([valid_record()])
        self.assertEqual(outcomes[0].outcome, Outcome.COMPLETED)
        self.assertIn(("click", SELECTORS["new_transaction_link"][1]), page.calls)

    async def test_empty_status_is_persisted(self):
        page = FakeGateway(start="dashboard", status_empty_reads=10_000)
        store = MemoryStore()
        orch = RowOrchestrator(page, store, self.config(result_timeout=0.05))
        outcomes = await orch.process_records([valid_record(index=4)])
        self.assertEqual(outcomes[0].outcome, Outcome.COMPLETED)
        self.assertEqual(outcomes[0].status_text, "")
        self.assertEqual(store.writes, [(4, "STATUS", "")])

    async def test_persistence_failure_is_not_fatal(self):
        page = FakeGateway(start="dashboard")
        orch = RowOrchestrator(page, MemoryStore(fail_writes=True), self.config())
        outcomes = await orch.process_records([valid_record(0), valid_record(1)])
        self.assertEqual([o.outcome for o in outcomes], [Outcome.COMPLETED, Outcome.COMPLETED])

    async def test_sheet_corrupted_before_write_back_still_completes(self):
        path = self.dir / "input_file.xlsx"
        wb = Workbook()
        ws = wb.active
        ws.append(HEADER)
        ws.append(ROWS[0])
        wb.save(path)
        store = WorkbookStore(path)
        records = store.read_all()
        path.write_bytes(b"rewritten by another program")

        page = FakeGateway(start="dashboard")
        orch = RowOrchestrator(page, store, self.config(input_path=path))
        outcomes = await orch.process_records(records)
        self.assertEqual([o.outcome for o in outcomes], [Outcome.COMPLETED])
        self.assertEqual(len(page.submissions), 1)

    async def test_return_uses_secondary_list_link(self):
        primary, fallback = SELECTORS["transactions_link"]
        page = FakeGateway(start="dashboard", page_hidden={"show": {primary}})
        store = MemoryStore()
        orch = RowOrchestrator(page, store, self.config())
        outcomes = await orch.process_records([valid_record()])
        self.assertEqual(outcomes[0].outcome, Outcome.COMPLETED)
        self.assertIn(("click", fallback), page.calls)
        self.assertEqual(page.current, "transactions")
        self.assertEqual(store.writes, [(0, "STATUS", "Authorized")])

    async def test_return_without_list_link_is_tolerated(self):
        page = FakeGateway(start="dashboard", page_hidden={"show": set(SELECTORS["transactions_link"])})
        store = MemoryStore()
        orch = RowOrchestrator(page, store, self.config())
        outcomes = await orch.process_records([valid_record()])
        self.assertEqual(outcomes[0].outcome, Outcome.COMPLETED)
        self.assertEqual(store.writes, [(0, "STATUS", "Authorized")])
        self.assertEqual(page.current, "show")

    async def test_submission_race_timeout_falls_through_to_result_stage(self):
        page = FakeGateway(start="dashboard", page_hidden={"show": {SELECTORS["result_page"][0]}})
        store = MemoryStore()
        orch = RowOrchestrator(page, store, self.config())
        outcomes = await orch.process_records([valid_record()])
        self.assertEqual(outcomes[0].outcome, Outcome.COMPLETED)
        self.assertEqual(store.writes, [(0, "STATUS", "Authorized")])

    async def test_stuck_primary_link_falls_back(self):
        primary, fallback = SELECTORS["new_transaction_link"]
        page = FakeGateway(start="dashboard", stuck_clicks={primary})
        orch = RowOrchestrator(page, MemoryStore(), self.config())
        outcomes = await orch.process_records([valid_record()])
        self.assertEqual(outcomes[0].outcome, Outcome.COMPLETED)
        self.assertIn(("click", fallback), page.calls)

    async def test_submit_guard_released_before_submission(self):
        page = FakeGateway(start="dashboard")
        orch = RowOrchestrator(page, MemoryStore(), self.config())
        await orch.process_records([valid_record()])
        names = [c[0] for c in page.calls]
        self.assertLess(names.index("remove_submit_guard"), names.index("submit_form"))
        self.assertEqual(len(page.submissions), 1)

    async def test_review_mode_pauses_before_submit(self):
        page = FakeGateway(start="dashboard")
        orch = RowOrchestrator(page, MemoryStore(), self.config(review_mode=True))
        with self.assertRaises(asyncio.TimeoutError):
            await asyncio.wait_for(orch.process_records([valid_record(0), valid_record(1)]), timeout=0.5)
        self.assertEqual([o.outcome for o in orch.outcomes], [Outcome.PAUSED])
        self.assertEqual(page.calls_named("submit_form"), [])
        self.assertEqual(len(page.calls_named("install_submit_guard")), 1)
        self.assertEqual(page.current, "new_transaction")
        self.assertFalse(page.guard_active)

    async def test_review_pause_ending_stops_the_run(self):
        page = FakeGateway(start="dashboard")
        orch = RowOrchestrator(page, MemoryStore(), self.config(review_mode=True), pause=lambda: asyncio.sleep(0))
        outcomes = await orch.process_records([valid_record(0), valid_record(1)])
        self.assertEqual([o.outcome for o in outcomes], [Outcome.PAUSED])
        self.assertEqual(page.calls_named("submit_form"), [])

    async def test_failure_aborts_the_run_with_evidence(self):
        page = FakeGateway(start="dashboard", hidden={FORM_SELECTORS["cardholder_name"]})
        orch = RowOrchestrator(page, MemoryStore(), self.config())
        with self.assertRaises(RunAborted) as ctx:
            await orch.process_records([valid_record(0), valid_record(1)])
        self.assertEqual(ctx.exception.row, 1)
        self.assertIsInstance(ctx.exception.cause, NotFound)
        self.assertEqual([o.outcome for o in orch.outcomes], [Outcome.FAILED])
        self.assertEqual(page.calls_named("submit_form"), [])
        self.assertTrue((self.dir / "evidence" / "row_1_failed.png").exists())


class TestSignIn(OrchestratorCase):
    async def test_one_time_code_branch(self):
        page = FakeGateway(operator_steps=["otp", "dashboard"], operator_delay=0.05)
        orch = RowOrchestrator(page, MemoryStore(), self.config())
        self.assertEqual(await orch.run(), [])
        self.assertEqual(page.calls_named("navigate"), [("navigate", self.config().login_url)])
        self.assertEqual(page.current, "dashboard")

    async def test_direct_to_dashboard(self):
        page = FakeGateway(operator_steps=["dashboard"])
        store = MemoryStore([valid_record()])
        orch = RowOrchestrator(page, store, self.config())
        outcomes = await orch.run()
        self.assertEqual([o.outcome for o in outcomes], [Outcome.COMPLETED])
        self.assertEqual(store.writes, [(0, "STATUS", "Authorized")])

    async def test_operator_never_signs_in(self):
        page = FakeGateway()
        orch = RowOrchestrator(page, MemoryStore(), self.config(post_login_timeout=0.1))
        with self.assertRaises(WaitTimeout) as ctx:
            await orch.run()
        self.assertEqual(ctx.exception.what, ["otp", "dashboard"])


if __name__ == '__main__':
    unittest.main()
