import asyncio
import sys

if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

import os
import re
import subprocess
from pathlib import Path

import streamlit as st

from txnflow.brands import BRANDS, DEFAULT_BRAND

# colour escapes from the child console
_ANSI = re.compile(r"\x1b\[[0-9;]*m")


def build_command(brand: str, review: bool, headless: bool, input_path: Path):
    cmd = [sys.executable, "-m", "txn_agent", "--brand", brand, "--input", str(input_path)]
    cmd.append("--review" if review else "--no-review")
    if headless:
        cmd.append("--headless")
    return cmd


# --- Page Config ---
st.set_page_config(
    page_title="txnflow",
    page_icon="💳",
    layout="wide"
)

# --- Header ---
st.title("💳 Virtual Terminal Runner")
st.markdown("Upload the transaction sheet, sign in when the browser opens, and the runner fills (and optionally submits) one transaction per row.")

# --- Sidebar Controls ---
with st.sidebar:
    st.header("⚙️ Configuration")

    brands = sorted(BRANDS)
    brand = st.selectbox("Brand", brands, index=brands.index(DEFAULT_BRAND))
    review = st.toggle(
        "Review Mode",
        value=BRANDS[brand].review_by_default,
        help="Fill each form and pause before submitting",
    )
    headless = st.toggle("Headless Mode", value=False, help="Sign-in needs a visible browser; leave off unless a session is already trusted")

    st.divider()
    st.caption("Statuses are written back to the STATUS column of the uploaded sheet.")

# --- Main Interface ---
uploaded = st.file_uploader("Transaction sheet", type=["xlsx", "csv"])
run_btn = st.button("🚀 Start", type="primary", use_container_width=True)

# --- Execution Logic ---
if run_btn and uploaded:
    suffix = Path(uploaded.name).suffix.lower() or ".xlsx"
    input_path = Path.cwd() / f"input_file{suffix}"
    input_path.write_bytes(uploaded.getbuffer())

    cmd = build_command(brand, review, headless, input_path)
    env = dict(os.environ, PYTHONUNBUFFERED="1", NO_COLOR="1")

    with st.status("🚀 Running...", expanded=True) as status:
        st.write(f"📂 Input saved to `{input_path}`")
        log_box = st.empty()
        lines = []
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
            env=env,
        )
        for line in proc.stdout:
            lines.append(_ANSI.sub("", line.rstrip()))
            log_box.code("\n".join(lines[-200:]))
        code = proc.wait()

        if code == 0:
            status.update(label="✅ Run Complete!", state="complete", expanded=False)
        else:
            status.update(label=f"❌ Run ended with exit code {code}", state="error")

    if input_path.exists():
        st.download_button(
            "⬇️ Download updated sheet",
            data=input_path.read_bytes(),
            file_name=uploaded.name,
        )

elif run_btn and not uploaded:
    st.warning("Please upload a sheet first.")
