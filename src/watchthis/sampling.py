"""Pick the users whose lists are mined for a reference series."""

import logging
from urllib.parse import urljoin

from .config import NO_SCORE_MARKER
from .models import User
from .scraper import Page, PageUnavailable, node_text, stats_url

logger = logging.getLogger(__name__)


async def resolve_series_url(source, url: str) -> str:
    """
    Return the canonical series URL for any page belonging to a series.

    The "Details" tab link is used so that sub-pages (characters, stats,
    reviews...) resolve to the same base URL.
    """
    page = await source.fetch_page(url)
    link = page.select_single("details_link")
    href = link.attributes.get("href") if link is not None else None
    if not href:
        raise PageUnavailable(url, "series details link not found")
    return urljoin(url, href).rstrip("/")


def _collect_users(page: Page, users: list[User], num_of_users: int) -> int:
    """Append qualifying users from one stats page; return rows seen."""
    rows = page.select_many("recent_user_rows")[1:]  # header row
    for row in rows:
        if len(users) >= num_of_users:
            break
        score_cell = page.select_single("recent_user_score", within=row)
        name_link = page.select_single("recent_user_name", within=row)
        if score_cell is None or name_link is None:
            logger.debug(f"Skipping malformed user row on {page.url}")
            continue
        if node_text(score_cell) == NO_SCORE_MARKER:
            continue
        username = node_text(name_link)
        if not username:
            continue
        users.append(User.from_username(username))
    return len(rows)


async def get_last_updated_users(source, series_url: str, num_of_users: int) -> list[User]:
    """
    Return the last `num_of_users` users to update the series, in listing order.

    Users who have not scored the series are skipped. Pages are fetched one at
    a time until enough users are found; an empty page means the listing ran
    out and raises PageUnavailable, as does any failed fetch.
    """
    if num_of_users <= 0:
        raise ValueError(f"num_of_users must be positive, got {num_of_users}")

    users: list[User] = []
    page_number = 0
    while len(users) < num_of_users:
        url = stats_url(series_url, page_number)
        page = await source.fetch_page(url)
        if _collect_users(page, users, num_of_users) == 0:
            raise PageUnavailable(
                url, f"listing exhausted after {len(users)}/{num_of_users} users"
            )
        page_number += 1

    logger.info(f"Sampled {len(users)} users from {page_number} stats page(s)")
    return users
