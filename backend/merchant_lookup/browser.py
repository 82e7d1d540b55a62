"""
Shared headless browser for the scrape fallbacks.

One Chromium instance per process, launched lazily on the first scrape and
closed once on shutdown. Every scrape gets its own context + page, which is
torn down when the scrape finishes; pages are never reused across merchants.
A semaphore caps how many pages are open at once.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from playwright.async_api import async_playwright

from merchant_lookup.errors import BrowserLaunchError
from merchant_lookup.http_client import USER_AGENT

try:
    from playwright_stealth import Stealth
    _stealth = Stealth()
except ImportError:
    _stealth = None

logger = logging.getLogger(__name__)

LAUNCH_ARGS = ["--disable-dev-shm-usage", "--no-sandbox"]


class BrowserSession:
    def __init__(self, settings, playwright_factory=async_playwright):
        self.settings = settings
        self._playwright_factory = playwright_factory
        self._playwright = None
        self._browser = None
        self._lock = asyncio.Lock()
        self._pages = asyncio.Semaphore(max(1, settings.max_concurrent_pages))
        self._open_pages = 0
        self._closed = False

    @property
    def open_pages(self) -> int:
        return self._open_pages

    async def _launch(self):
        chromium = self._playwright.chromium
        preferred = self.settings.browser_executable_path
        if preferred:
            try:
                browser = await chromium.launch(
                    headless=self.settings.headless,
                    executable_path=preferred,
                    args=LAUNCH_ARGS,
                )
                logger.info("[browser] Launched preferred browser at %s", preferred)
                return browser
            except Exception as e:
                logger.warning("[browser] Preferred browser failed (%s), falling back to bundled Chromium", e)
        try:
            browser = await chromium.launch(headless=self.settings.headless, args=LAUNCH_ARGS)
        except Exception as e:
            raise BrowserLaunchError(f"Browser launch failed: {e}") from e
        logger.info("[browser] Launched bundled Chromium")
        return browser

    async def get_browser(self):
        """Return the live browser, launching (or relaunching) it if needed."""
        async with self._lock:
            if self._closed:
                raise RuntimeError("Browser session is closed")
            if self._browser is not None and self._browser.is_connected():
                return self._browser
            if self._playwright is None:
                self._playwright = await self._playwright_factory().start()
            self._browser = await self._launch()
            return self._browser

    @asynccontextmanager
    async def page(self):
        """Open a fresh context + page; always closed on exit."""
        async with self._pages:
            browser = await self.get_browser()
            context = await browser.new_context(
                viewport={"width": self.settings.viewport_width, "height": self.settings.viewport_height},
                user_agent=USER_AGENT,
                locale="en-US",
            )
            self._open_pages += 1
            try:
                page = await context.new_page()
                page.set_default_navigation_timeout(self.settings.navigation_timeout_ms)
                if _stealth:
                    await _stealth.apply_stealth_async(page)
                yield page
            finally:
                self._open_pages -= 1
                try:
                    await context.close()
                except Exception as e:
                    logger.debug("[browser] Context close failed: %s", e)

    async def close(self):
        """Close the browser and driver. Safe to call more than once."""
        async with self._lock:
            if self._closed:
                return
            self._closed = True
            browser, self._browser = self._browser, None
            pw, self._playwright = self._playwright, None
        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                logger.warning("[browser] Browser close failed: %s", e)
        if pw is not None:
            try:
                await pw.stop()
            except Exception as e:
                logger.warning("[browser] Playwright stop failed: %s", e)
        logger.info("[browser] Closed")
