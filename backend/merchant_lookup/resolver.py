"""
Merchant resolution: name string -> {name, logoUrl, heroUrl, merchantAri}.

    1. Mock mode short-circuits with placeholder images (no network).
    2. JSON search -> best candidate (name, logo, merchant key).
    3. With a key: details JSON, then the by-key browser scrape.
    4. Otherwise, or when step 3 finds no usable hero: UI-search scrape.

The key path converges fastest but sometimes lands on a generic fallback
image; the UI-search path renders what a shopper would see, so it is the one
we trust when the key path comes up empty. That order is a heuristic, not a
correctness guarantee.
"""

import json
import logging
from urllib.parse import quote

import httpx

from merchant_lookup.assets import is_asset_image_url
from merchant_lookup.errors import UpstreamHTTPError
from merchant_lookup.models import MerchantCandidate, MerchantRecord
from merchant_lookup.scoring import pick_best_candidate

logger = logging.getLogger(__name__)

# Search/details failures we fall back from instead of surfacing
UPSTREAM_ERRORS = (UpstreamHTTPError, httpx.HTTPError, json.JSONDecodeError)

MOCK_MERCHANT_KEY = "MOCK123"


def encode_component(value: str) -> str:
    """Percent-encode like JavaScript's encodeURIComponent."""
    return quote(value, safe="!~*'()")


def build_mock(name: str) -> MerchantRecord:
    encoded = encode_component(name)
    return MerchantRecord(
        name=name,
        logo_url=f"https://via.placeholder.com/128?text={encoded}+logo",
        hero_url=f"https://via.placeholder.com/800x400?text={encoded}+hero",
        merchant_key=MOCK_MERCHANT_KEY,
    )


class MerchantResolver:
    def __init__(self, settings, fetcher, scraper):
        self.settings = settings
        self.fetcher = fetcher
        self.scraper = scraper

    def _is_asset(self, url) -> bool:
        return is_asset_image_url(url, self.settings.asset_hosts)

    async def search_merchant(self, query: str) -> MerchantCandidate | None:
        url = self.settings.search_url_template.format(query=encode_component(query))
        payload = await self.fetcher.get_json(url)
        return pick_best_candidate(payload, query)

    async def fetch_details(self, merchant_key: str) -> dict:
        url = self.settings.details_api_template.format(key=encode_component(merchant_key))
        data = await self.fetcher.get_json(url)
        if not isinstance(data, dict):
            return {"hero_url": None, "icon_url": None}
        logger.debug(
            "[details] %s hero=%s icon=%s",
            merchant_key, bool(data.get("hero_image_url")), bool(data.get("icon_image_url")),
        )
        return {
            "hero_url": data.get("hero_image_url") or None,
            "icon_url": data.get("icon_image_url") or None,
        }

    async def lookup_merchant(self, query: str) -> MerchantRecord:
        if self.settings.use_mock:
            return build_mock(query)

        logger.debug("[lookup] Starting lookup for %r", query)

        # --- Step 2: JSON search ---
        candidate = None
        try:
            candidate = await self.search_merchant(query)
        except UPSTREAM_ERRORS as e:
            logger.info("[search] %r failed, falling back to UI search: %s", query, e)

        name = (candidate.name if candidate else None) or query
        logo_url = candidate.logo_url if candidate else None
        subtitle = candidate.subtitle if candidate else None
        merchant_key = candidate.merchant_key if candidate else None

        # --- Step 3: key path ---
        if merchant_key:
            logger.debug("[lookup] %r -> key %s (score %s)", query, merchant_key, candidate.score)

            if self.settings.use_details_api:
                try:
                    details = await self.fetch_details(merchant_key)
                except UPSTREAM_ERRORS as e:
                    logger.info("[details] %s failed: %s", merchant_key, e)
                    details = {}
                if details.get("icon_url"):
                    logo_url = details["icon_url"]
                if self._is_asset(details.get("hero_url")):
                    return MerchantRecord(
                        name=name,
                        logo_url=logo_url,
                        hero_url=details["hero_url"],
                        merchant_key=merchant_key,
                        subtitle=subtitle,
                    )

            by_key = await self.scraper.by_merchant_key(merchant_key, name)
            if by_key.ok and self._is_asset(by_key.hero_url):
                return MerchantRecord(
                    name=by_key.name or name,
                    logo_url=logo_url,
                    hero_url=by_key.hero_url,
                    merchant_key=merchant_key,
                    subtitle=subtitle,
                )
            logger.info("[lookup] key scrape for %r gave no hero (%s), trying UI search", name, by_key.error)

        # --- Step 4: UI search ---
        by_search = await self.scraper.by_search(name)
        record = MerchantRecord(
            name=by_search.name or name,
            logo_url=logo_url,
            hero_url=by_search.hero_url if by_search.ok else None,
            merchant_key=merchant_key,
            subtitle=subtitle,
            error=by_search.error,
        )
        logger.debug("[lookup] Final result: %s", record)
        return record
