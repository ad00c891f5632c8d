from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from txnflow.errors import NotFound, WaitTimeout
from txnflow.stages import Condition
from txnflow.utils import to_ms

_TEXT_PROBE = """([sel, txt, ignoreCase]) => {
  const want = ignoreCase ? txt.toLowerCase() : txt;
  return Array.from(document.querySelectorAll(sel)).some((el) => {
    const content = (el.textContent || '').trim();
    return (ignoreCase ? content.toLowerCase() : content).includes(want);
  });
}"""

_SUBMIT_GUARD = """(formId) => {
  const release = (g) => {
    window.removeEventListener('keydown', g.onKey, true);
    if (g.form) g.form.removeEventListener('submit', g.onSubmit, true);
  };
  if (window.__txnflowGuard) release(window.__txnflowGuard);
  const onKey = (e) => {
    if (e.key === 'Enter' && e.target && e.target.tagName === 'INPUT') {
      e.preventDefault();
      e.stopPropagation();
    }
  };
  const onSubmit = (e) => { e.preventDefault(); e.stopPropagation(); };
  const form = document.getElementById(formId);
  window.addEventListener('keydown', onKey, true);
  if (form) form.addEventListener('submit', onSubmit, true);
  window.__txnflowGuard = { onKey, onSubmit, form, release };
  return !!form;
}"""

_RELEASE_GUARD = """() => {
  const g = window.__txnflowGuard;
  if (!g) return false;
  g.release(g);
  delete window.__txnflowGuard;
  return true;
}"""

_SUBMIT = """([formId, buttonSel]) => {
  const form = document.getElementById(formId);
  const btn = document.querySelector(buttonSel);
  if (form && typeof form.submit === 'function') { form.submit(); return 'submit'; }
  if (btn) { btn.click(); return 'button'; }
  return 'none';
}"""

_SET_VALUE = """(el, value) => {
  el.value = value;
  el.dispatchEvent(new Event('input', { bubbles: true }));
  el.dispatchEvent(new Event('change', { bubbles: true }));
}"""

_FORCE_CHECK = """(el) => {
  el.checked = true;
  el.dispatchEvent(new Event('change', { bubbles: true }));
}"""


class PlaywrightPage:
    """Page-automation capability over one Playwright page.

    Playwright timeouts surface as ``WaitTimeout`` and missing elements as
    ``NotFound``. Once the page is closed the original Playwright error is
    re-raised untouched: a dead session ends the run.
    """

    def __init__(self, page: Page, action_timeout: float = 15.0):
        self.page = page
        self.action_timeout = action_timeout

    @property
    def url(self) -> str:
        return self.page.url

    def _fail(self, exc: PlaywrightError, target: str, timeout: Optional[float] = None):
        if self.page.is_closed():
            raise exc
        if isinstance(exc, PlaywrightTimeoutError):
            raise WaitTimeout(target, timeout if timeout is not None else self.action_timeout) from exc
        raise NotFound(target, str(exc).splitlines()[0] if str(exc) else "") from exc

    async def _present(self, selector: str):
        loc = self.page.locator(selector)
        try:
            count = await loc.count()
        except PlaywrightError as exc:
            self._fail(exc, selector)
        if count == 0:
            raise NotFound(selector)
        return loc.first

    # -- condition polling ---------------------------------------------------

    async def exists(self, condition: Condition) -> bool:
        try:
            if condition.text is None:
                return await self.page.locator(condition.selector).count() > 0
            return bool(await self.page.evaluate(_TEXT_PROBE, [condition.selector, condition.text, condition.ignore_case]))
        except PlaywrightError:
            # context destroyed mid-navigation reads as "not yet"
            if self.page.is_closed():
                raise
            return False

    async def text_of(self, condition: Condition) -> str:
        try:
            loc = self.page.locator(condition.selector)
            if await loc.count() == 0:
                return ""
            return ((await loc.first.text_content()) or "").strip()
        except PlaywrightError:
            if self.page.is_closed():
                raise
            return ""

    async def value_of(self, selector: str) -> str:
        loc = await self._present(selector)
        try:
            return await loc.input_value(timeout=to_ms(self.action_timeout))
        except PlaywrightError as exc:
            self._fail(exc, selector)

    async def is_checked(self, selector: str) -> bool:
        loc = await self._present(selector)
        try:
            return await loc.is_checked(timeout=to_ms(self.action_timeout))
        except PlaywrightError as exc:
            self._fail(exc, selector)

    async def wait_for(self, selector: str, timeout: float):
        try:
            await self.page.wait_for_selector(selector, state="attached", timeout=to_ms(timeout))
        except PlaywrightError as exc:
            self._fail(exc, selector, timeout)

    # -- actions -------------------------------------------------------------

    async def click(self, selector: str):
        loc = await self._present(selector)
        try:
            await loc.click(timeout=to_ms(self.action_timeout))
        except PlaywrightError as exc:
            self._fail(exc, selector)

    async def type(self, selector: str, text: str, delay_ms: int = 10, replace: bool = True):
        """Type like a user. ``replace`` selects the current content first; otherwise append."""
        loc = await self._present(selector)
        try:
            await loc.focus(timeout=to_ms(self.action_timeout))
            if replace:
                await loc.click(click_count=3, timeout=to_ms(self.action_timeout))
            else:
                await loc.press("End")
            await loc.press_sequentially(text, delay=delay_ms)
        except PlaywrightError as exc:
            self._fail(exc, selector)

    async def press(self, selector: str, key: str):
        loc = await self._present(selector)
        try:
            await loc.press(key, timeout=to_ms(self.action_timeout))
        except PlaywrightError as exc:
            self._fail(exc, selector)

    async def set_value(self, selector: str, value: str):
        loc = await self._present(selector)
        try:
            await loc.evaluate(_SET_VALUE, value)
        except PlaywrightError as exc:
            self._fail(exc, selector)

    async def set_checked(self, selector: str):
        loc = await self._present(selector)
        try:
            await loc.evaluate(_FORCE_CHECK)
        except PlaywrightError as exc:
            self._fail(exc, selector)

    async def select_option(self, selector: str, label: str):
        loc = await self._present(selector)
        try:
            await loc.select_option(label=label, timeout=to_ms(self.action_timeout))
        except PlaywrightError as exc:
            self._fail(exc, selector)

    async def scroll_into_view(self, selector: str):
        loc = await self._present(selector)
        try:
            await loc.scroll_into_view_if_needed(timeout=to_ms(self.action_timeout))
        except PlaywrightError as exc:
            self._fail(exc, selector)

    # -- navigation and form ------------------------------------------------

    async def navigate(self, url: str, timeout: float = 60.0):
        try:
            await self.page.goto(url, wait_until="domcontentloaded", timeout=to_ms(timeout))
        except PlaywrightError as exc:
            self._fail(exc, url, timeout)

    async def wait_for_navigation(self, timeout: float):
        """Wait for the next main-frame navigation to reach DOMContentLoaded."""
        try:
            await self.page.wait_for_event(
                "framenavigated",
                predicate=lambda frame: frame == self.page.main_frame,
                timeout=to_ms(timeout),
            )
            await self.page.wait_for_load_state("domcontentloaded", timeout=to_ms(timeout))
        except PlaywrightError as exc:
            self._fail(exc, "navigation", timeout)

    async def install_submit_guard(self, form_id: str) -> bool:
        try:
            return bool(await self.page.evaluate(_SUBMIT_GUARD, form_id))
        except PlaywrightError as exc:
            self._fail(exc, f"#{form_id}")

    async def remove_submit_guard(self) -> bool:
        """Drop the listeners installed by ``install_submit_guard``."""
        try:
            return bool(await self.page.evaluate(_RELEASE_GUARD))
        except PlaywrightError as exc:
            self._fail(exc, "submit guard")

    async def submit_form(self, form_id: str, button_selector: str) -> str:
        try:
            how = await self.page.evaluate(_SUBMIT, [form_id, button_selector])
        except PlaywrightError as exc:
            self._fail(exc, f"#{form_id}")
        if how == "none":
            raise NotFound(f"#{form_id}", "no form or submit button to activate")
        return how

    async def screenshot(self, path: str):
        try:
            await self.page.screenshot(path=path, full_page=True)
        except PlaywrightError as exc:
            self._fail(exc, "screenshot")
