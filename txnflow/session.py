from typing import Optional

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from txnflow.constants import BROWSER_ARGS
from txnflow.page import PlaywrightPage


class BrowserSession:
    """One Chromium window the operator can see and type into."""

    def __init__(self, headless: bool = False):
        self.headless = headless
        self.playwright = None
        self.browser: Optional[Browser] = None
        self.ctx: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    async def start(self) -> PlaywrightPage:
        self.playwright = await async_playwright().start()
        self.browser = await self.playwright.chromium.launch(headless=self.headless, args=BROWSER_ARGS)
        # no_viewport lets --start-maximized size the page to the window
        self.ctx = await self.browser.new_context(no_viewport=True)
        self.page = await self.ctx.new_page()
        return PlaywrightPage(self.page)

    async def stop(self):
        if self.ctx: await self.ctx.close()
        if self.browser: await self.browser.close()
        if self.playwright: await self.playwright.stop()
