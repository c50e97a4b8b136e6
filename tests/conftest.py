import asyncio
import importlib
import random
import sys
from pathlib import Path

import pytest

# Ensure the package under test is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from watchthis.scraper import Page, PageUnavailable  # noqa: E402


class StaticPageSource:
    """
    Serves canned HTML by URL.

    Unknown URLs and URLs listed in `failing` raise PageUnavailable. An
    optional per-URL random delay shuffles completion order between workers.
    """

    def __init__(self, pages: dict[str, str], failing=(), max_delay: float = 0.0, seed: int = 0):
        self.pages = dict(pages)
        self.failing = set(failing)
        self.max_delay = max_delay
        self._rng = random.Random(seed)
        self.fetched: list[str] = []
        self.active = 0
        self.peak = 0

    async def fetch_page(self, url: str) -> Page:
        self.fetched.append(url)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.max_delay:
                await asyncio.sleep(self._rng.uniform(0, self.max_delay))
            else:
                await asyncio.sleep(0)
        finally:
            self.active -= 1

        if url in self.failing or url not in self.pages:
            raise PageUnavailable(url, "not served")
        return Page.from_html(url, self.pages[url])


@pytest.fixture
def page_source_factory():
    return StaticPageSource


@pytest.fixture
def fresh_config(monkeypatch):
    """
    Reload config so environment overrides set by a test take effect.
    """
    import watchthis.config as config

    yield importlib.reload(config)
    monkeypatch.undo()
    importlib.reload(config)
