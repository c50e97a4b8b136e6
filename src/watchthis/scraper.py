import asyncio
import json
import logging
import random
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from urllib.parse import quote, urljoin

import httpx
from selectolax.parser import HTMLParser, Node

from .config import (
    MAL_BASE,
    LIST_URL_PREFIX,
    LIST_URL_SUFFIX,
    STATS_SUFFIX,
    STAFF_SUFFIX,
    USER_RECS_SUFFIX,
    PAGE_ELEMENTS_INCREMENT,
    HTTP_TIMEOUT,
    MAX_HTTP_RETRIES,
    DEFAULT_RETRY_AFTER,
    ADAPTIVE_DELAY_MAX,
    RATE_LIMIT_BACKOFF,
    SOFT_BLOCK_BACKOFF,
    MAL_COOKIE,
)
from .utils import async_retry_with_backoff

logger = logging.getLogger(__name__)


# Named selectors; the core only ever refers to the keys.
SELECTORS = {
    "details_link": "#horiznav_nav > ul > li:nth-child(1) > a",
    "series_title": "h1.title-name, #contentWrapper h1 span",
    "recent_user_rows": "table.table-recently-updated tr",
    "recent_user_name": "td:first-child div.di-tc.va-m.al.pl4 > a",
    "recent_user_score": "td:nth-child(2)",
    "character_tables": "div.js-scrollfix-bottom-rel > table",
    "character_role": "td:nth-child(2) small",
    "va_name": "td:nth-child(3) table tr:first-child td:first-child a",
    "staff_rows": "tr",
    "staff_name": "td:nth-child(2) > a",
    "staff_position": "td:nth-child(2) small",
    "genres": "span[itemprop='genre']",
    "user_rec_rows": "div.borderClass td[valign]:nth-child(2)",
    "user_rec_title": "a > strong",
    "list_table": "table.list-table",
    "list_title_links": "td.data.title a.link, a.animetitle",
}

SOFT_BLOCK_PHRASES = [
    "please wait",
    "too many requests",
    "try again later",
    "access denied",
]


class PageUnavailable(Exception):
    """A page could not be fetched or lacked the fields it is required to carry."""

    def __init__(self, url: str, reason: str = ""):
        self.url = url
        self.reason = reason
        super().__init__(f"{url}: {reason}" if reason else url)


def list_url(username: str) -> str:
    return f"{LIST_URL_PREFIX}{quote(username)}{LIST_URL_SUFFIX}"


def stats_url(series_url: str, page: int) -> str:
    return f"{series_url}{STATS_SUFFIX}{page * PAGE_ELEMENTS_INCREMENT}"


def staff_url(series_url: str) -> str:
    return f"{series_url}{STAFF_SUFFIX}"


def user_recs_url(series_url: str) -> str:
    return f"{series_url}{USER_RECS_SUFFIX}"


def node_text(node: Node | None) -> str:
    """Stripped text of a node, empty string for a missing one."""
    if node is None:
        return ""
    return node.text(strip=True)


def retry_after_seconds(value: str | None, default: float = DEFAULT_RETRY_AFTER) -> float:
    """
    Seconds to wait from a Retry-After header.

    Accepts both delay-seconds and HTTP-date forms. Dates in the past give 0;
    a missing or unparseable header gives `default`.
    """
    if not value:
        return default
    value = value.strip()
    try:
        return max(0.0, float(int(value)))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug(f"Unparseable Retry-After '{value}', using {default}s")
        return default
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class Page:
    """A fetched page plus lookups by selector key."""

    def __init__(self, url: str, tree: HTMLParser, selectors: dict[str, str] | None = None):
        self.url = url
        self.tree = tree
        self.selectors = selectors or SELECTORS

    @classmethod
    def from_html(cls, url: str, html: str) -> "Page":
        return cls(url, HTMLParser(html))

    def select_single(self, key: str, within: Node | None = None) -> Node | None:
        root = within if within is not None else self.tree
        return root.css_first(self.selectors[key])

    def select_many(self, key: str, within: Node | None = None) -> list[Node]:
        root = within if within is not None else self.tree
        return list(root.css(self.selectors[key]))


def extract_list_entries(page: Page) -> list[tuple[str, str]]:
    """
    Extract (title, url) pairs from a user's anime list page.

    Modern list pages embed the rows as JSON in the table's data-items
    attribute; older layouts render one link per row.
    """
    entries: list[tuple[str, str]] = []
    table = page.select_single("list_table")
    if table is not None and table.attributes.get("data-items") is not None:
        try:
            items = json.loads(table.attributes.get("data-items") or "[]")
        except json.JSONDecodeError as exc:
            logger.debug(f"Unreadable list data on {page.url}: {exc}")
            items = []
        for item in items:
            if not isinstance(item, dict):
                continue
            title = str(item.get("anime_title") or "").strip()
            if not title:
                continue
            href = item.get("anime_url") or ""
            entries.append((title, urljoin(MAL_BASE, href) if href else ""))
        return entries

    for link in page.select_many("list_title_links"):
        title = node_text(link)
        if not title:
            continue
        href = link.attributes.get("href") or ""
        entries.append((title, urljoin(MAL_BASE, href) if href else ""))
    return entries


class MALPageSource:
    """Async page source with bounded concurrency and coordinated rate limiting."""

    def __init__(
        self,
        delay: float = 0.2,
        max_concurrent: int = 5,
        client: httpx.AsyncClient | None = None,
    ):
        self.delay = delay
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.client = client
        self._owns_client = client is None
        # Coordinated rate limiting: when one task hits 429, all tasks pause
        self._rate_limit_event = asyncio.Event()
        self._rate_limit_event.set()

    @staticmethod
    def _detect_soft_block(tree: HTMLParser | None) -> bool:
        """Detect CAPTCHA/please-wait soft blocks to avoid burning retries."""
        if not tree:
            return False

        if tree.css_first("form[action*='captcha'], .captcha-container"):
            return True

        body_el = tree.css_first("body")
        body_text = body_el.text() if body_el else ""
        return any(phrase in body_text.lower() for phrase in SOFT_BLOCK_PHRASES)

    async def __aenter__(self):
        if self.client is None:
            self.client = httpx.AsyncClient(
                headers={"User-Agent": "Mozilla/5.0 (compatible; watchthis/0.1)"},
                follow_redirects=True,
                timeout=HTTP_TIMEOUT,
                cookies={"MALSESSIONID": MAL_COOKIE} if MAL_COOKIE else None,
            )
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False

    async def aclose(self) -> None:
        if self.client and self._owns_client:
            await self.client.aclose()
            self.client = None

    @async_retry_with_backoff(
        max_retries=MAX_HTTP_RETRIES,
        initial_delay=1.0,
        exceptions=(httpx.TimeoutException,),
        max_delay=ADAPTIVE_DELAY_MAX,
    )
    async def _request(self, url: str) -> httpx.Response:
        return await self.client.get(url)

    async def _get(self, url: str) -> HTMLParser:
        for attempt in range(MAX_HTTP_RETRIES):
            await self._rate_limit_event.wait()

            try:
                resp = await self._request(url)
            except httpx.TimeoutException as exc:
                raise PageUnavailable(url, f"timed out: {exc}") from exc
            except httpx.HTTPError as exc:
                raise PageUnavailable(url, f"{type(exc).__name__}: {exc}") from exc

            if resp.status_code == 404:
                raise PageUnavailable(url, "not found")

            if resp.status_code == 429:
                retry_after = retry_after_seconds(resp.headers.get("Retry-After"))
                logger.warning(
                    f"Rate limited on {url}, pausing ALL tasks for {retry_after:.0f}s "
                    f"(attempt {attempt + 1}/{MAX_HTTP_RETRIES})"
                )
                self._rate_limit_event.clear()
                await asyncio.sleep(retry_after)
                self._rate_limit_event.set()

                jitter = random.uniform(0, self.delay * 2)
                await asyncio.sleep(jitter)
                self.delay = min(ADAPTIVE_DELAY_MAX, max(self.delay, 0.1) * RATE_LIMIT_BACKOFF)
                continue

            if resp.is_error:
                raise PageUnavailable(url, f"HTTP {resp.status_code}")
            return HTMLParser(resp.text)

        raise PageUnavailable(url, "max retries exceeded while rate limited")

    async def fetch_page(self, url: str) -> Page:
        """
        Fetch and parse a page.

        Requires the context manager (or an injected client). Raises
        PageUnavailable for 404s, HTTP errors, exhausted retries, and
        persistent soft blocks.
        """
        if not self.client:
            raise RuntimeError("MALPageSource must be used as an async context manager")

        async with self.semaphore:
            await asyncio.sleep(self.delay)
            tree = await self._get(url)

            if self._detect_soft_block(tree):
                logger.warning(f"Soft block detected on {url}, backing off...")
                for wait_time in SOFT_BLOCK_BACKOFF:
                    await asyncio.sleep(wait_time)
                    tree = await self._get(url)
                    if not self._detect_soft_block(tree):
                        break
                else:
                    logger.error(f"Persistent soft block on {url}")
                    raise PageUnavailable(url, "persistent soft block")

        logger.debug(f"Fetched {url}")
        return Page(url, tree)
