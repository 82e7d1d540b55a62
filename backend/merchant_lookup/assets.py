"""Asset-URL classification and hero-image ranking."""

import re
from urllib.parse import urlparse, parse_qs

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp", ".gif", ".avif")

EXCLUDED_PATH_RE = re.compile(r"(/icons?/|favicon|thumbnail|/thumbs?/|[-_/]thumb[-_.]|fallback|sprite)", re.I)
HERO_SIGNAL_RE = re.compile(r"(hero|banner|cover|header|promo|lifestyle|splash|background)", re.I)
LOGO_SIGNAL_RE = re.compile(r"(logo|icon|thumb|avatar|badge|glyph)", re.I)
WIDTH_PARAM_NAMES = ("w", "width", "imwidth")
WIDTH_IN_NAME_RE = re.compile(r"(?:[-_](\d{3,4})x\d{2,4}\b|[-_]w(\d{3,4})\b|@(\d)x)", re.I)

HERO_SIGNAL_POINTS = 50
LOGO_SIGNAL_PENALTY = 80
MAX_WIDTH_POINTS = 30


def host_allowed(host: str, allowed_hosts) -> bool:
    host = host.lower()
    for allowed in allowed_hosts:
        allowed = allowed.lower()
        if host == allowed or host.endswith("." + allowed):
            return True
    return False


def is_asset_image_url(url: str | None, allowed_hosts) -> bool:
    """True for a marketplace-hosted image that could be a promo/hero asset."""
    if not url or not isinstance(url, str):
        return False
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return False
    if not host_allowed(parsed.hostname, allowed_hosts):
        return False
    path = parsed.path.lower()
    if not path.endswith(IMAGE_EXTENSIONS):
        return False
    if EXCLUDED_PATH_RE.search(path):
        return False
    return True


def declared_width(url: str) -> int:
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    for name in WIDTH_PARAM_NAMES:
        for raw in query.get(name, []):
            if raw.isdigit():
                return int(raw)
    match = WIDTH_IN_NAME_RE.search(parsed.path)
    if match:
        if match.group(1):
            return int(match.group(1))
        if match.group(2):
            return int(match.group(2))
        # @2x / @3x retina suffix
        return int(match.group(3)) * 500
    return 0


def score_hero_url(url: str) -> int:
    path = urlparse(url).path
    score = 0
    if HERO_SIGNAL_RE.search(path):
        score += HERO_SIGNAL_POINTS
    if LOGO_SIGNAL_RE.search(path):
        score -= LOGO_SIGNAL_PENALTY
    score += min(declared_width(url) // 100, MAX_WIDTH_POINTS)
    return score


def slugify(value: str | None) -> str:
    return re.sub(r"[^a-z0-9]", "", (value or "").lower())


def pick_hero_url(urls, allowed_hosts, merchant_name: str | None = None) -> str | None:
    """Pick the best hero candidate from recorded asset URLs.

    A URL whose slug contains the merchant-name slug wins over the generic
    score; among those the generic score breaks ties. Order breaks the rest.
    """
    seen = set()
    valid = []
    for url in urls:
        if url in seen or not is_asset_image_url(url, allowed_hosts):
            continue
        seen.add(url)
        valid.append(url)
    if not valid:
        return None

    name_slug = slugify(merchant_name)
    if name_slug:
        named = [u for u in valid if name_slug in slugify(u)]
        if named:
            return max(named, key=score_hero_url)
    return max(valid, key=score_hero_url)
