"""
Candidate extraction and ranking for the marketplace search payload.

The search endpoint is undocumented and its shape has moved between versions:
merchants have shown up under `modules[].entities[]`, `results[]`,
`results.merchants[]`, `merchants[]` and `data.merchants[]`, with the name,
key and logo under several different field names. Extraction is best-effort:
anything that is not the expected shape is skipped, never raised on.
"""

import logging
import re

from merchant_lookup.models import MerchantCandidate

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Weights
# ---------------------------------------------------------------------------

KEY_POINTS = 200
EXACT_MATCH_POINTS = 100
SUBSTRING_POINTS = 50
WORD_POINTS = 20
LOGO_POINTS = 10
PLACEHOLDER_LOGO_PENALTY = 15
MIN_VIABLE_SCORE = 1

NAME_FIELDS = ("title", "name", "merchant_name", "merchantName", "display_name", "displayName")
KEY_FIELDS = ("merchant_ari", "merchantAri", "ari", "merchant_key", "merchantKey")
LOGO_FIELDS = ("icon_url", "iconUrl", "logo_url", "logoUrl", "icon_image_url", "image_url", "imageUrl")
IMAGES_LOGO_FIELDS = ("logo", "icon", "logo_url", "icon_url", "url")

PLACEHOLDER_LOGO_RE = re.compile(r"(placeholder|default[-_]?(logo|icon|merchant)|generic[-_]?(logo|icon)|no[-_]?image)", re.I)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

def _as_list(value) -> list:
    return [item for item in value if isinstance(item, dict)] if isinstance(value, list) else []


def flatten_candidates(payload) -> list[dict]:
    """Collect merchant-like dicts from every nesting shape we have seen."""
    if not isinstance(payload, dict):
        return _as_list(payload)

    items: list[dict] = []

    for module in _as_list(payload.get("modules")):
        items.extend(_as_list(module.get("entities")))

    results = payload.get("results")
    if isinstance(results, list):
        items.extend(_as_list(results))
    elif isinstance(results, dict):
        items.extend(_as_list(results.get("merchants")))

    items.extend(_as_list(payload.get("merchants")))
    items.extend(_as_list(payload.get("entities")))

    data = payload.get("data")
    if isinstance(data, dict):
        items.extend(flatten_candidates(data))

    return items


def _first_str(item: dict, fields) -> str | None:
    for field in fields:
        value = item.get(field)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def extract_key(item: dict) -> str | None:
    action = item.get("action")
    if isinstance(action, dict):
        detail = action.get("merchant_detail_page")
        if isinstance(detail, dict):
            key = _first_str(detail, KEY_FIELDS)
            if key:
                return key
    return _first_str(item, KEY_FIELDS)


def extract_logo(item: dict) -> str | None:
    logo = _first_str(item, LOGO_FIELDS)
    if logo:
        return logo
    images = item.get("images")
    if isinstance(images, dict):
        for field in IMAGES_LOGO_FIELDS:
            value = images.get(field)
            if isinstance(value, str) and value.strip():
                return value.strip()
            if isinstance(value, dict):
                nested = _first_str(value, ("url", "src", "href"))
                if nested:
                    return nested
    return None


def to_candidate(item: dict) -> MerchantCandidate:
    return MerchantCandidate(
        name=_first_str(item, NAME_FIELDS),
        logo_url=extract_logo(item),
        merchant_key=extract_key(item),
        subtitle=_first_str(item, ("subtitle", "tagline", "category")),
    )


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def is_placeholder_logo(url: str | None) -> bool:
    return bool(url) and bool(PLACEHOLDER_LOGO_RE.search(url))


def name_match_points(name: str | None, query: str) -> int:
    query_lower = query.strip().lower()
    name_lower = (name or "").lower()
    if not (name_lower and query_lower):
        return 0
    points = 0
    if name_lower == query_lower:
        points += EXACT_MATCH_POINTS
    if query_lower in name_lower:
        points += SUBSTRING_POINTS
    name_words = name_lower.split()
    matching = [w for w in query_lower.split() if any(w in nw for nw in name_words)]
    return points + len(matching) * WORD_POINTS


def score_candidate(candidate: MerchantCandidate, query: str) -> int:
    score = name_match_points(candidate.name, query)

    if candidate.merchant_key:
        score += KEY_POINTS

    if candidate.logo_url:
        score += LOGO_POINTS
        if is_placeholder_logo(candidate.logo_url):
            score -= PLACEHOLDER_LOGO_PENALTY

    return score


def is_viable(candidate: MerchantCandidate, query: str) -> bool:
    """A keyless candidate only counts when its name matches the query."""
    if candidate.score < MIN_VIABLE_SCORE:
        return False
    return bool(candidate.merchant_key) or name_match_points(candidate.name, query) > 0


def rank_candidates(payload, query: str) -> list[MerchantCandidate]:
    candidates = []
    for item in flatten_candidates(payload):
        candidate = to_candidate(item)
        if not (candidate.name or candidate.merchant_key or candidate.logo_url):
            continue
        candidate.score = score_candidate(candidate, query)
        candidates.append(candidate)
    # sorted() is stable, so equal scores keep payload order
    return sorted(candidates, key=lambda c: c.score, reverse=True)


def pick_best_candidate(payload, query: str) -> MerchantCandidate | None:
    ranked = rank_candidates(payload, query)
    logger.debug("[search] scored candidates for %r: %s", query, ranked[:5])
    for candidate in ranked:
        if is_viable(candidate, query):
            return candidate
    return None
