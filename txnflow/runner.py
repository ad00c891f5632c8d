"""Ties the browser, the record store and the orchestrator into one run."""

from pathlib import Path
from typing import Callable, List, Optional

from rich import print
from rich.markup import escape
from slugify import slugify

from txnflow.config import RunConfig
from txnflow.errors import FlowError, RunAborted
from txnflow.orchestrator import Outcome, RowOrchestrator, RowOutcome
from txnflow.records import WorkbookStore
from txnflow.session import BrowserSession

EXIT_OK = 0
EXIT_ABORTED = 1
EXIT_BAD_CONFIG = 2
EXIT_INTERRUPTED = 130

RUNS_DIR = Path("runs")


def evidence_dir_for(config: RunConfig) -> Path:
    if config.evidence_dir is not None:
        return Path(config.evidence_dir)
    return RUNS_DIR / config.brand.key / (slugify(config.input_path.stem) or "input")


def summarize(outcomes: List[RowOutcome]):
    counts = {o: 0 for o in Outcome}
    for result in outcomes:
        counts[result.outcome] += 1
    print("[bold green]═══════════════════════════════════════[/bold green]")
    for outcome, count in counts.items():
        print(f"[bold green]{outcome.value}:[/bold green] {count}")
    print("[bold green]═══════════════════════════════════════[/bold green]")


async def run_session(
    config: RunConfig,
    session_factory: Callable[[bool], BrowserSession] = BrowserSession,
    pause=None,
) -> int:
    """Run one pass over the input file. Returns a process exit code."""
    store = WorkbookStore(config.input_path)
    if not store.path.exists():
        print(f"[red]Input file not found: {escape(str(store.path))}[/red]")
        return EXIT_BAD_CONFIG
    config = config.model_copy(update={"evidence_dir": evidence_dir_for(config)})

    session = session_factory(config.headless)
    page = await session.start()
    outcomes: Optional[List[RowOutcome]] = None
    try:
        orchestrator = RowOrchestrator(page, store, config, pause=pause)
        try:
            outcomes = await orchestrator.run()
        except RunAborted as exc:
            print(f"[red]✗ {escape(str(exc))}[/red]")
            print(f"[dim]Evidence (if any): {escape(str(config.evidence_dir))}[/dim]")
            summarize(orchestrator.outcomes)
            return EXIT_ABORTED
        except FlowError as exc:
            # sign-in never reached the dashboard
            print(f"[red]✗ Sign-in failed: {escape(str(exc))}[/red]")
            return EXIT_ABORTED
        except Exception as exc:
            # browser closed by the operator, unreadable input sheet
            print(f"[red]✗ Run failed: {escape(type(exc).__name__)}: {escape(str(exc))}[/red]")
            summarize(orchestrator.outcomes)
            return EXIT_ABORTED
    finally:
        await session.stop()
    summarize(outcomes)
    return EXIT_OK
