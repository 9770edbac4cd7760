# cardsync/scrape.py
"""Listing extraction from the store's search page.

The page is rendered in a throwaway headless Chromium, then parsed with
BeautifulSoup. Containers are located through a selector cascade: the first
selector that yields at least one usable listing wins. Fields are read by
independent extractors so a missing price or image never drops a card.
"""
import threading
from typing import Callable, Dict, List, Optional, Sequence

from bs4 import BeautifulSoup
from playwright.sync_api import sync_playwright, TimeoutError as PWTimeout, Error as PlaywrightError

from .config import DEFAULT_USER_AGENT
from .errors import FetchTimeoutError, NetworkError, SyncCancelledError
from .schemas import ListingEntity
from .utils import logger, retry, slugify, absolute_url, utc_now

DEFAULT_SELECTORS = [
    "article",
    '[class*="product"]',
    '[class*="item"]',
    'li[class*="product"]',
    'div[class*="product"]',
    ".search-results article",
    ".results article",
]

TITLE_SELECTOR = 'a[title], h3, h2, h4, .title, [class*="title"]'
PRICE_SELECTOR = '[class*="price"], .price, span'
IMAGE_ATTRIBUTES = ("data-src", "src", "data-lazy-src")
PLACEHOLDER_IMAGE_MARKERS = ("no_disponible.png",)
MIN_TITLE_LENGTH = 4

BLOCKED_RESOURCE_TYPES = {"image", "font", "media"}
BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-default-apps",
    "--disable-sync",
    "--disable-translate",
    "--mute-audio",
    "--no-first-run",
]

Strategy = Callable[[BeautifulSoup], Optional[List[Dict[str, str]]]]


def extract_title(element) -> Optional[str]:
    el = element.select_one(TITLE_SELECTOR)
    if el is None:
        return None
    return el.get_text(" ", strip=True) or el.get("title")

def extract_price(element) -> Optional[str]:
    el = element.select_one(PRICE_SELECTOR)
    return el.get_text(" ", strip=True) if el is not None else None

def extract_link(element) -> Optional[str]:
    el = element.select_one("a[href]")
    return el.get("href") if el is not None else None

def extract_image(element) -> Optional[str]:
    img = element.select_one("img")
    if img is None:
        return None
    for attr in IMAGE_ATTRIBUTES:
        value = img.get(attr)
        if value:
            return value
    return None

FIELD_EXTRACTORS = {
    "title": extract_title,
    "price": extract_price,
    "link": extract_link,
    "image_url": extract_image,
}


def _read_field(name, extractor, element) -> str:
    try:
        value = extractor(element)
    except Exception as e:
        logger.debug("Field %s extraction failed: %s", name, e)
        return ""
    return (value or "").strip()

def normalize_image(url: str, origin: str) -> str:
    url = absolute_url(url, origin)
    if any(marker in url for marker in PLACEHOLDER_IMAGE_MARKERS):
        return ""
    return url

def element_to_entry(element, origin: str) -> Optional[Dict[str, str]]:
    fields = {name: _read_field(name, fn, element) for name, fn in FIELD_EXTRACTORS.items()}
    if len(fields["title"]) < MIN_TITLE_LENGTH:
        return None
    return {
        "title": fields["title"],
        "price": fields["price"],
        "link": absolute_url(fields["link"], origin),
        "image_url": normalize_image(fields["image_url"], origin),
    }

def css_strategy(selector: str, origin: str) -> Strategy:
    def strategy(soup):
        entries = []
        for element in soup.select(selector):
            try:
                entry = element_to_entry(element, origin)
            except Exception as e:
                logger.debug("Skipping element matched by %r: %s", selector, e)
                continue
            if entry:
                entries.append(entry)
        return entries or None
    strategy.selector = selector
    return strategy

def run_cascade(soup, strategies: Sequence[Strategy]) -> List[Dict[str, str]]:
    for strategy in strategies:
        entries = strategy(soup)
        if entries:
            logger.info("Selector %r yielded %d listings", getattr(strategy, "selector", strategy), len(entries))
            return entries
    logger.info("No selector yielded listings")
    return []

def parse_listings(html: str, origin: str, selectors: Sequence[str] = DEFAULT_SELECTORS) -> List[Dict[str, str]]:
    soup = BeautifulSoup(html, "lxml")
    return run_cascade(soup, [css_strategy(s, origin) for s in selectors])


def _block_heavy_resources(route):
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        route.abort()
    else:
        route.continue_()

def _navigate(page, url, timeout_ms):
    page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)


class ListingScraper:
    def __init__(
        self,
        target_url: str,
        source: str,
        origin: str,
        user_agent: str = DEFAULT_USER_AGENT,
        headless: bool = True,
        navigation_timeout_ms: int = 20000,
        settle_seconds: float = 3.0,
        navigation_tries: int = 2,
        selectors: Sequence[str] = DEFAULT_SELECTORS,
        clock=utc_now,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.target_url = target_url
        self.source = source
        self.origin = origin
        self.user_agent = user_agent
        self.headless = headless
        self.navigation_timeout_ms = navigation_timeout_ms
        self.settle_seconds = settle_seconds
        self.navigation_tries = navigation_tries
        self.selectors = list(selectors)
        self._clock = clock
        self.cancel_event = cancel_event or threading.Event()

    @classmethod
    def from_settings(cls, settings, cancel_event: Optional[threading.Event] = None):
        return cls(
            target_url=settings.target_url,
            source=settings.source_name,
            origin=settings.site_origin,
            user_agent=settings.user_agent,
            headless=settings.headless,
            navigation_timeout_ms=settings.navigation_timeout_ms,
            settle_seconds=settings.settle_seconds,
            cancel_event=cancel_event,
        )

    def fetch_listings(self) -> List[ListingEntity]:
        scraped_at = self._clock()
        html = self._render_page()
        raw = parse_listings(html, self.origin, self.selectors)
        logger.info("Raw cards found: %d", len(raw))
        return [
            ListingEntity(slug=slugify(r["title"]), source=self.source, scraped_at=scraped_at, **r)
            for r in raw
        ]

    def _render_page(self) -> str:
        navigate = retry(PlaywrightError, tries=self.navigation_tries, delay=2)(_navigate)
        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(headless=self.headless, args=BROWSER_ARGS)
                try:
                    context = browser.new_context(user_agent=self.user_agent)
                    page = context.new_page()
                    page.route("**/*", _block_heavy_resources)
                    if self.cancel_event.is_set():
                        raise SyncCancelledError("extraction cancelled before navigation")
                    logger.info("Loading %s", self.target_url)
                    navigate(page, self.target_url, self.navigation_timeout_ms)
                    # no reliable loaded signal; give client-side rendering time
                    if self.cancel_event.wait(self.settle_seconds):
                        raise SyncCancelledError("extraction cancelled while the page was rendering")
                    return page.content()
                finally:
                    browser.close()
        except PWTimeout as e:
            raise FetchTimeoutError(f"timed out loading {self.target_url}: {e}") from e
        except PlaywrightError as e:
            raise NetworkError(f"failed to load {self.target_url}: {e}") from e
