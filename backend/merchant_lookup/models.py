"""
Records passed between the scorer, scraper, resolver and HTTP layer.

Internal records are plain dataclasses with snake_case fields; the HTTP layer
renders them with the camelCase keys the plugin expects.
"""

from dataclasses import dataclass

from pydantic import BaseModel


@dataclass
class MerchantCandidate:
    name: str | None
    logo_url: str | None
    merchant_key: str | None
    score: int = 0
    subtitle: str | None = None


@dataclass
class ScrapeResult:
    hero_url: str | None = None
    name: str | None = None
    error: str | None = None

    @classmethod
    def failed(cls, reason: str) -> "ScrapeResult":
        return cls(hero_url=None, name=None, error=reason)

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.hero_url)


@dataclass
class MerchantRecord:
    name: str | None
    logo_url: str | None = None
    hero_url: str | None = None
    merchant_key: str | None = None
    subtitle: str | None = None
    # Soft scrape failure; records carrying one are still cached
    error: str | None = None

    def to_response(self) -> dict:
        body = {
            "name": self.name,
            "logoUrl": self.logo_url,
            "heroUrl": self.hero_url,
            "merchantAri": self.merchant_key,
            "subtitle": self.subtitle,
        }
        if self.error:
            body["error"] = self.error
        return body


# ---------------------------------------------------------------------------
# HTTP bodies
# ---------------------------------------------------------------------------

class LookupResponse(BaseModel):
    name: str | None = None
    logoUrl: str | None = None
    heroUrl: str | None = None
    merchantAri: str | None = None
    subtitle: str | None = None
    error: str | None = None


class BatchLookupItem(LookupResponse):
    query: str
    logoProxyUrl: str | None = None
    heroProxyUrl: str | None = None
    message: str | None = None


class BatchLookupResponse(BaseModel):
    results: list[BatchLookupItem]


class HealthResponse(BaseModel):
    ok: bool
    cacheSize: int
    inFlight: int
    uptime: float


class ClearCacheResponse(BaseModel):
    ok: bool
    cleared: int
