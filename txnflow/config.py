"""Run configuration: brand, review mode, timeouts and pacing for one run.

Values resolve in this order, later wins: brand defaults, optional YAML file,
environment (``.env`` is loaded by the CLI), explicit arguments.
"""

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from txnflow.brands import BrandIdentity, resolve_brand
from txnflow.constants import LOGIN_URL

DEFAULT_INPUT = "input_file.xlsx"

# env var name -> RunConfig field; values are milliseconds
TIMEOUT_ENV = {
    "LOGIN_PAGE_LOAD_TIMEOUT_MS": "page_load_timeout",
    "POST_LOGIN_WAIT_TIMEOUT_MS": "post_login_timeout",
    "OTP_WAIT_TIMEOUT_MS": "otp_timeout",
    "STATUS_WAIT_TIMEOUT_MS": "result_timeout",
}

# YAML ``timeouts`` keys -> RunConfig field; values are seconds
TIMEOUT_KEYS = {
    "page_load": "page_load_timeout",
    "post_login": "post_login_timeout",
    "otp": "otp_timeout",
    "result": "result_timeout",
}


class Timings(BaseModel):
    """Fixed delays and secondary timeouts, in seconds."""

    model_config = ConfigDict(frozen=True)

    poll_interval: float = Field(0.25, gt=0)
    result_poll_interval: float = Field(1.0, gt=0)
    login_navigation_timeout: float = Field(60.0, gt=0)
    otp_title_timeout: float = Field(5.0, gt=0)
    nav_timeout: float = Field(20.0, gt=0)
    field_timeout: float = Field(30.0, gt=0)
    submit_timeout: float = Field(60.0, gt=0)
    result_page_timeout: float = Field(30.0, gt=0)
    return_timeout: float = Field(15.0, gt=0)
    return_settle_timeout: float = Field(30.0, gt=0)
    retry_delay: float = Field(1.5, ge=0)
    result_retry_delay: float = Field(2.0, ge=0)
    field_settle: float = Field(0.4, ge=0)
    merchant_settle: float = Field(0.25, ge=0)
    submit_settle: float = Field(2.0, ge=0)
    typing_delay_ms: int = Field(10, ge=0)
    merchant_typing_delay_ms: int = Field(25, ge=0)


class RunConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    brand: BrandIdentity
    review_mode: bool
    input_path: Path
    page_load_timeout: float = Field(30.0, gt=0)
    post_login_timeout: float = Field(600.0, gt=0)
    otp_timeout: float = Field(600.0, gt=0)
    result_timeout: float = Field(60.0, gt=0)
    login_url: str = LOGIN_URL
    headless: bool = False
    evidence_dir: Optional[Path] = None
    timings: Timings = Timings()


def _truthy(value) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def load_config_file(path) -> Dict[str, Any]:
    """Read a YAML run file into a flat mapping of RunConfig keywords."""
    try:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Config file {path} is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    out: Dict[str, Any] = {}
    for key in ("brand", "login_url", "evidence_dir"):
        if data.get(key):
            out[key] = data[key]
    if data.get("input"):
        out["input_path"] = data["input"]
    if "review" in data:
        out["review_mode"] = bool(data["review"])
    if "headless" in data:
        out["headless"] = bool(data["headless"])
    for key, field in TIMEOUT_KEYS.items():
        if (data.get("timeouts") or {}).get(key) is not None:
            out[field] = float(data["timeouts"][key])
    return out


def load_run_config(
    brand: Optional[str] = None,
    review: Optional[bool] = None,
    input_path=None,
    config_file=None,
    headless: Optional[bool] = None,
    env: Optional[Mapping[str, str]] = None,
    timings: Optional[Timings] = None,
) -> RunConfig:
    env = os.environ if env is None else env
    values: Dict[str, Any] = load_config_file(config_file) if config_file else {}

    identity = resolve_brand(brand or values.pop("brand", None))
    values.pop("brand", None)
    values.setdefault("result_timeout", identity.result_timeout)

    for var, field in TIMEOUT_ENV.items():
        if env.get(var):
            values[field] = float(env[var]) / 1000.0

    env_input = env.get("INPUT_XLSX")
    if input_path:
        values["input_path"] = input_path
    elif env_input and Path(env_input).exists():
        values["input_path"] = env_input
    values.setdefault("input_path", Path.cwd() / DEFAULT_INPUT)

    if headless is not None:
        values["headless"] = headless
    elif env.get("HEADLESS"):
        values["headless"] = _truthy(env["HEADLESS"])

    if review is not None:
        values["review_mode"] = review
    values.setdefault("review_mode", identity.review_by_default)

    if timings is not None:
        values["timings"] = timings
    return RunConfig(brand=identity, **values)
