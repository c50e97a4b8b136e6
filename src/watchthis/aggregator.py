"""Count how many sampled users have each series in their completed list."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from tqdm import tqdm

from .models import Entry, User
from .scraper import PageUnavailable, extract_list_entries
from .utils import concurrency_limiter

logger = logging.getLogger(__name__)


@dataclass
class AggregationResult:
    entries: dict[str, Entry]
    users_retrieved: int
    users_failed: list[str] = field(default_factory=list)


async def _retrieve_user_series(source, user: User, limiter) -> list[tuple[str, str]] | None:
    """Fetch one user's list; None means the fetch failed and the user is skipped."""
    async with limiter:
        try:
            page = await source.fetch_page(user.list_url)
        except PageUnavailable as exc:
            logger.warning(f"Skipping {user.username}'s list: {exc}")
            return None

    # A title counts once per user even if the page repeats it
    unique: dict[str, str] = {}
    for title, url in extract_list_entries(page):
        unique.setdefault(title, url)
    return list(unique.items())


def merge_user_series(entries: dict[str, Entry], series: list[tuple[str, str]]) -> None:
    for title, url in series:
        entry = entries.get(title)
        if entry is None:
            entries[title] = Entry(title=title, url=url)
        else:
            entry.increment_counter()
            if not entry.url and url:
                entry.url = url


async def retrieve_series_from_users_lists(
    source,
    users: list[User],
    reference_title: str,
    max_workers: int | None = None,
    progress: bool = False,
) -> AggregationResult:
    """
    Fetch every user's completed list concurrently and count series titles.

    Workers only fetch and parse; once the gather returns, results are merged
    into the title -> Entry map here, in user order, so no two writers ever
    touch the map. Users whose page could not be fetched, or whose worker
    raised anything else, are reported in `users_failed`.
    """
    entries: dict[str, Entry] = {}
    failed: list[str] = []
    limiter = concurrency_limiter(max_workers)

    with tqdm(total=len(users), desc="Lists", unit="user", disable=not progress) as bar:
        async def worker(user: User):
            try:
                return await _retrieve_user_series(source, user, limiter)
            finally:
                bar.update(1)

        results = await asyncio.gather(*(worker(user) for user in users), return_exceptions=True)

    without_reference = 0
    for user, series in zip(users, results):
        if isinstance(series, Exception):
            logger.error(f"Failed to retrieve {user.username}'s list: {type(series).__name__}: {series}")
            failed.append(user.username)
            continue
        if series is None:
            failed.append(user.username)
            continue
        if not any(title == reference_title for title, _ in series):
            without_reference += 1
        merge_user_series(entries, series)

    retrieved = len(users) - len(failed)
    logger.info(
        f"Retrieved {retrieved}/{len(users)} lists, {len(entries)} distinct series "
        f"({len(failed)} failed, {without_reference} without '{reference_title}')"
    )
    return AggregationResult(entries=entries, users_retrieved=retrieved, users_failed=failed)
