"""
Holder-count scraper for Etherscan and Basescan token pages.

The explorers expose total holder counts on the public token page but not
through the free API tier, so the count is read from the HTML. Soft-failure
pages (Cloudflare challenges, rate-limit notices, empty bodies) are reported
as Blocked so callers can tell them apart from tokens with no holder data.
"""
import logging
import re
from typing import Optional

from bs4 import BeautifulSoup

from api_clients.errors import (
    FetchError,
    FetchResult,
    Blocked,
    MalformedResponse,
    AuthFailure,
    ProbeResult,
)
from api_clients.http_utils import send, get_json, timed_probe
from config import ETHERSCAN_API_KEY

logger = logging.getLogger(__name__)

SOURCE = "etherscan"
EXPLORER_TOKEN_URLS = {
    "ethereum": "https://etherscan.io/token",
    "base": "https://basescan.org/token",
}
STATS_API_URL = "https://api.etherscan.io/v2/api"

# Matched case-insensitively against the page <title> only
BLOCKED_TITLE_MARKERS = ("just a moment", "attention required", "access denied", "cloudflare",
                         "rate limit", "too many requests", "captcha")
CHALLENGE_ELEMENT_IDS = ("challenge-form", "challenge-running", "cf-challenge-running", "cf-wrapper", "captcha")
CHALLENGE_SCRIPT_HOSTS = ("challenges.cloudflare.com", "hcaptcha.com", "google.com/recaptcha")

HOLDER_PATTERNS = [
    re.compile(r"Holders?:\s*(\d{1,3}(?:,\d{3})*)", re.I),
    re.compile(r'data-bs-title="Holders"[^>]*>(\d{1,3}(?:,\d{3})*)', re.I),
    re.compile(r"<span[^>]*>(\d{1,3}(?:,\d{3})*)\s*(?:addresses|holders?)", re.I),
    re.compile(r"Holders?[^>]*>(\d{1,3}(?:,\d{3})*)", re.I),
    re.compile(r"(\d{1,3}(?:,\d{3})*)\s*addresses", re.I),
    re.compile(r"(\d{1,3}(?:,\d{3})*)\s*holders?", re.I),
    re.compile(r'title="Holders"[^>]*>(\d{1,3}(?:,\d{3})*)', re.I),
    re.compile(r"Holders.*?(\d{1,3}(?:,\d{3})*)<", re.I),
]


def token_page_url(token_address: str, chain: str) -> str:
    # Chains without their own explorer fall back to Basescan
    base = EXPLORER_TOKEN_URLS.get((chain or "").lower(), EXPLORER_TOKEN_URLS["base"])
    return f"{base}/{token_address}"


def is_blocked_page(soup: BeautifulSoup) -> bool:
    """Detect challenge and rate-limit pages by their title or challenge widgets, not by body text."""
    title = soup.title.get_text(" ", strip=True).lower() if soup.title else ""
    if any(marker in title for marker in BLOCKED_TITLE_MARKERS):
        return True
    if any(soup.find(id=element_id) for element_id in CHALLENGE_ELEMENT_IDS):
        return True
    if soup.find(class_=re.compile(r"^(g-recaptcha|h-captcha|cf-turnstile)$")):
        return True
    for tag in soup.find_all(["script", "iframe"], src=True):
        if any(host in tag["src"].lower() for host in CHALLENGE_SCRIPT_HOSTS):
            return True
    return False


def parse_holder_count(html: str, soup: Optional[BeautifulSoup] = None) -> Optional[int]:
    """Extract the total holder count from a token page, or None if it is not present."""
    if soup is None:
        soup = BeautifulSoup(html, "html.parser")

    # The meta description carries "Holders: 1,234" on both explorers
    meta = soup.find("meta", attrs={"name": re.compile("^description$", re.I)})
    candidates = [meta.get("content", "")] if meta else []
    candidates.append(html)

    for text in candidates:
        for pattern in HOLDER_PATTERNS:
            match = pattern.search(text)
            if not match:
                continue
            count = int(match.group(1).replace(",", ""))
            if count > 0:
                return count
    return None


def scrape_holder_count(token_address: str, chain: str, timeout: Optional[float] = None) -> FetchResult:
    """
    Scrape the holder count of a token. On success the result holds one record
    with 'holders_count', or no records when the page has no holder information.
    """
    url = token_page_url(token_address, chain)
    try:
        response = send("GET", url, SOURCE, timeout=timeout)
        html = response.text or ""

        if not html.strip():
            raise Blocked(SOURCE, f"empty page for {token_address}", status_code=response.status_code)
        soup = BeautifulSoup(html, "html.parser")
        if is_blocked_page(soup):
            raise Blocked(SOURCE, f"rate limited or challenged on {url}", status_code=response.status_code)
        if "Token" not in html and "Contract" not in html:
            raise MalformedResponse(SOURCE, f"not a token page: {url}")

        count = parse_holder_count(html, soup)
        if count is None:
            logger.warning(f"⚠️ No holder count found on page for {token_address}")
            return FetchResult.success([])

        logger.info(f"📊 Found holder count {count} for {token_address} on {chain}")
        return FetchResult.success([{"token_address": token_address.lower(), "chain": chain, "holders_count": count}])
    except FetchError as e:
        logger.error(f"❌ Holder count scrape failed for {token_address} ({e.kind}): {e.message}")
        return FetchResult.failure(e)


def _check_stats_api(timeout: float) -> None:
    if not ETHERSCAN_API_KEY:
        raise AuthFailure(SOURCE, "ETHERSCAN_API_KEY is not configured")
    params = {"chainid": 1, "module": "stats", "action": "ethprice", "apikey": ETHERSCAN_API_KEY}
    body = get_json(STATS_API_URL, SOURCE, params=params, timeout=timeout)
    if not isinstance(body, dict) or body.get("status") != "1":
        message = body.get("result") if isinstance(body, dict) else body
        raise AuthFailure(SOURCE, f"stats API rejected request: {message}")


def probe(timeout: float = 10) -> ProbeResult:
    return timed_probe(lambda: _check_stats_api(timeout), SOURCE)
