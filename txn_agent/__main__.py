import sys
import asyncio
import argparse
from rich import print
from rich.markup import escape
from dotenv import load_dotenv
from pydantic import ValidationError

from txnflow.brands import BRANDS
from txnflow.config import load_run_config
from txnflow.runner import EXIT_BAD_CONFIG, EXIT_INTERRUPTED, evidence_dir_for, run_session


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Virtual terminal transaction runner")
    parser.add_argument("--brand", dest="brand", help=f"Billing identity ({', '.join(sorted(BRANDS))})", default=None)
    parser.add_argument("--booking", dest="brand", action="store_const", const="booking", help="Shorthand for --brand booking")
    parser.add_argument("--agoda", dest="brand", action="store_const", const="agoda", help="Shorthand for --brand agoda")
    parser.add_argument("--review", dest="review", action="store_const", const=True, default=None,
                        help="Fill each form and pause before submitting")
    parser.add_argument("--no-review", dest="review", action="store_const", const=False,
                        help="Submit automatically")
    parser.add_argument("--input", dest="input_path", help="Input .xlsx or .csv (default: INPUT_XLSX or ./input_file.xlsx)", default=None)
    parser.add_argument("--config", dest="config_file", help="Optional YAML run file", default=None)
    parser.add_argument("--headless", dest="headless", action="store_const", const=True, default=None,
                        help="Run the browser headless (sign-in still needs a human)")
    return parser


def main(argv=None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        config = load_run_config(
            brand=args.brand,
            review=args.review,
            input_path=args.input_path,
            config_file=args.config_file,
            headless=args.headless,
        )
    except (ValueError, ValidationError, OSError) as e:
        print(f"[red]Invalid configuration: {escape(str(e))}[/red]")
        return EXIT_BAD_CONFIG

    print("\n[bold cyan]╔═══════════════════════════════════════════════════════╗[/bold cyan]")
    print("[bold cyan]║   txnflow - Virtual Terminal Transaction Runner      ║[/bold cyan]")
    print("[bold cyan]╚═══════════════════════════════════════════════════════╝[/bold cyan]\n")
    print(f"[bold green]Brand:[/bold green] {config.brand.key}")
    print(f"[bold green]Mode:[/bold green] {'review (no submit)' if config.review_mode else 'auto-submit'}")
    print(f"[bold green]Input:[/bold green] {escape(str(config.input_path))}")
    print(f"[bold green]Evidence:[/bold green] {escape(str(evidence_dir_for(config)))}\n")

    try:
        return asyncio.run(run_session(config))
    except KeyboardInterrupt:
        print("\n[yellow]Interrupted by operator.[/yellow]")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
