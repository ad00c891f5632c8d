import re
from pathlib import Path
from datetime import datetime, timezone

from rich import print

_NON_DIGITS = re.compile(r"\D+")


def now_ts():
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")

def ensure_dir(p: Path):
    p.mkdir(parents=True, exist_ok=True)

def to_ms(seconds: float) -> int:
    return int(seconds * 1000)

def digits_only(value) -> str:
    return _NON_DIGITS.sub("", str(value or ""))

def narrate(message: str):
    """Print one operator-facing line, prefixed with a UTC timestamp."""
    print(f"[dim]{now_ts()}[/dim] {message}")
