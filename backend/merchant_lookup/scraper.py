"""
Browser scrape fallbacks for the merchant hero image.

Two strategies share one page procedure:

    by merchant key   open the details page for the key, keep its modal open,
                      wait for the hero image
    by UI search      open the listing page, clear overlays, type the name
                      into the search box, pick an autocomplete option, wait
                      for the hero image

While a page is open every outgoing request for a marketplace image is
recorded. If no hero <img> shows up in the DOM before the deadline, the best
recorded request URL is used instead.

Neither strategy raises for scrape problems: failures come back as
ScrapeResult(error=reason) so the resolver can move on to the next strategy.
"""

import asyncio
import logging
import time

from merchant_lookup.assets import is_asset_image_url, pick_hero_url
from merchant_lookup.errors import BrowserLaunchError, ScrapeError
from merchant_lookup.models import ScrapeResult
from merchant_lookup.polling import poll_until

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------

# Safe to click even when the content we want lives in a modal
CONSENT_SELECTORS = [
    "#onetrust-accept-btn-handler",
    "#truste-consent-button",
    "[aria-label='Accept cookies']",
    "[data-testid='cookie-banner'] button",
    "button:has-text('Accept all')",
    "button:has-text('Accept')",
    "button:has-text('Got it')",
]

# Only clicked in full mode: these close the modal itself
MODAL_CLOSE_SELECTORS = [
    "[role='dialog'] button[aria-label='Close']",
    "[role='dialog'] button:has-text('Close')",
    "[data-testid='modal-close']",
    "button[aria-label='Close']",
    ".modal-close",
]

MODAL_SELECTOR = "[role='dialog'], [aria-modal='true']"

HERO_SELECTORS = [
    "[data-testid='merchant-hero'] img",
    "[data-testid*='hero'] img",
    "[role='dialog'] img[src*='hero']",
    "[class*='hero'] img",
    "[class*='Hero'] img",
    "img[alt*='hero' i]",
    "[role='dialog'] img[src*='banner']",
]

NAME_SELECTORS = [
    "[data-testid='merchant-name']",
    "[role='dialog'] h1",
    "[role='dialog'] h2",
    "h1",
]

SEARCH_INPUT_SELECTORS = [
    "input[type='search']",
    "input[role='combobox']",
    "[role='combobox'] input",
    "input[placeholder*='Search' i]",
    "input[aria-label*='Search' i]",
]

OPTION_SELECTOR = "[role='option'], [role='listbox'] li, [data-testid*='autocomplete'] li"
MAX_OPTIONS = 20
MAX_NAME_LENGTH = 120


def choose_option(texts: list[str], query: str) -> int | None:
    """Exact (case-insensitive) match first, then an option containing the query, then the first option."""
    if not texts:
        return None
    wanted = query.strip().casefold()
    folded = [t.strip().casefold() for t in texts]
    for i, text in enumerate(folded):
        if text == wanted:
            return i
    for i, text in enumerate(folded):
        if wanted and wanted in text:
            return i
    return 0


class MerchantScraper:
    def __init__(self, session, settings, clock=time.monotonic, sleep=asyncio.sleep):
        self.session = session
        self.settings = settings
        self._clock = clock
        self._sleep = sleep

    def _is_asset(self, url) -> bool:
        return is_asset_image_url(url, self.settings.asset_hosts)

    async def _poll(self, predicate, timeout: float):
        return await poll_until(
            predicate,
            interval=self.settings.poll_interval_seconds,
            timeout=timeout,
            clock=self._clock,
            sleep=self._sleep,
        )

    # -----------------------------------------------------------------------
    # Page helpers
    # -----------------------------------------------------------------------

    async def dismiss_overlays(self, page, full: bool = False) -> int:
        """Click away consent banners (and, in full mode, modals).

        Stops after the first round in which nothing was clicked. Returns the
        number of actions taken.
        """
        selectors = CONSENT_SELECTORS + (MODAL_CLOSE_SELECTORS if full else [])
        actions = 0
        for _ in range(self.settings.overlay_max_rounds):
            acted = False
            for selector in selectors:
                try:
                    target = page.locator(selector).first
                    if await target.is_visible():
                        await target.click(timeout=1500)
                        logger.debug("[overlay] clicked %s", selector)
                        acted = True
                        actions += 1
                except Exception as e:
                    logger.debug("[overlay] %s not clickable: %s", selector, e)
            if full:
                try:
                    if await page.locator(MODAL_SELECTOR).first.is_visible():
                        await page.keyboard.press("Escape")
                        logger.debug("[overlay] pressed Escape on open modal")
                        acted = True
                        actions += 1
                except Exception as e:
                    logger.debug("[overlay] Escape failed: %s", e)
            if not acted:
                break
            await page.wait_for_timeout(300)
        return actions

    async def find_hero_in_dom(self, page) -> str | None:
        for selector in HERO_SELECTORS:
            target = page.locator(selector).first
            if not await target.count():
                continue
            src = await target.evaluate("img => img.currentSrc || img.src", timeout=1000)
            if self._is_asset(src):
                return src
        return None

    async def read_name(self, page) -> str | None:
        for selector in NAME_SELECTORS:
            try:
                target = page.locator(selector).first
                if not await target.count():
                    continue
                text = (await target.inner_text(timeout=1000)).strip()
            except Exception:
                continue
            if text and len(text) <= MAX_NAME_LENGTH:
                return text
        return None

    async def wait_for_hero(self, page, recorded: list[str], merchant_name: str | None) -> str | None:
        hero = await self._poll(lambda: self.find_hero_in_dom(page), self.settings.hero_wait_seconds)
        if hero:
            logger.debug("[scrape] hero from DOM: %s", hero)
            return hero
        hero = pick_hero_url(recorded, self.settings.asset_hosts, merchant_name)
        logger.debug("[scrape] hero from %d recorded requests: %s", len(recorded), hero)
        return hero

    async def _scrape(self, label: str, url: str, merchant_name: str | None, prepare) -> ScrapeResult:
        recorded: list[str] = []

        def on_request(request):
            if self._is_asset(request.url):
                recorded.append(request.url)

        try:
            async with self.session.page() as page:
                page.on("request", on_request)
                try:
                    await page.goto(url, wait_until="domcontentloaded")
                except Exception as e:
                    raise ScrapeError("navigation_failed", str(e))

                await prepare(page)

                hero = await self.wait_for_hero(page, recorded, merchant_name)
                if not hero:
                    raise ScrapeError("hero_not_found")
                name = await self.read_name(page) or merchant_name
                logger.info("[%s] %s -> %s", label, merchant_name, hero)
                return ScrapeResult(hero_url=hero, name=name)
        except ScrapeError as e:
            logger.info("[%s] %s failed: %s", label, merchant_name, e)
            return ScrapeResult.failed(e.reason)
        except BrowserLaunchError:
            raise
        except Exception as e:
            logger.warning("[%s] %s raised: %s", label, merchant_name, e)
            return ScrapeResult.failed(f"scrape_exception: {e}")

    # -----------------------------------------------------------------------
    # Strategies
    # -----------------------------------------------------------------------

    async def by_merchant_key(self, merchant_key: str, merchant_name: str | None = None) -> ScrapeResult:
        url = self.settings.details_page_template.format(key=merchant_key)

        async def prepare(page):
            # The hero lives inside the details modal, so keep it open
            await self.dismiss_overlays(page, full=False)

        return await self._scrape("scrape:key", url, merchant_name, prepare)

    async def by_search(self, query: str) -> ScrapeResult:
        async def prepare(page):
            await self.dismiss_overlays(page, full=True)

            async def find_input():
                for selector in SEARCH_INPUT_SELECTORS:
                    target = page.locator(selector).first
                    if await target.count() and await target.is_visible():
                        return target
                # The input is often behind an overlay that shows up late
                await self.dismiss_overlays(page, full=True)
                return None

            search_input = await self._poll(find_input, self.settings.search_input_wait_seconds)
            if search_input is None:
                raise ScrapeError("search_input_not_found")

            await search_input.click()
            await search_input.fill("")
            await search_input.press_sequentially(query, delay=self.settings.typing_delay_ms)
            await page.keyboard.press("ArrowDown")
            await page.wait_for_timeout(500)

            async def find_options():
                options = page.locator(OPTION_SELECTOR)
                count = await options.count()
                if not count:
                    return None
                texts = []
                for i in range(min(count, MAX_OPTIONS)):
                    texts.append(await options.nth(i).inner_text(timeout=1000))
                return options, texts

            found = await self._poll(find_options, self.settings.autocomplete_wait_seconds)
            if not found:
                raise ScrapeError("no_autocomplete_options")
            options, texts = found
            index = choose_option(texts, query)
            logger.debug("[scrape:search] options=%s picked=%s", texts, index)
            await options.nth(index).click()

            await self.dismiss_overlays(page, full=False)

        return await self._scrape("scrape:search", self.settings.listing_page_url, query, prepare)
