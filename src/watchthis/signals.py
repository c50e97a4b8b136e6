"""
Signal weight tables built from the reference series.

Three tables are produced per run: staff/voice actor name -> weight,
genre -> weight, and recommended title -> weight. They are built once,
before any concurrent work starts, and exposed read-only afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from .config import (
    VA_MAIN_VALUE,
    VA_OTHER_VALUE,
    STAFF_POSITION_VALUES,
    STAFF_ROLE_DELIMITER,
    MAIN_ROLE,
    GENRE_VALUE,
    GENRE_VALUE_DECLINE,
    USER_REC_VALUE_INITIAL,
    USER_REC_VALUE_DECLINE,
    USER_REC_VALUE_FLOOR,
)
from .scraper import Page, PageUnavailable, node_text, staff_url, user_recs_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignalWeights:
    """Weight schedules for the three signal tables."""

    va_main: float = VA_MAIN_VALUE
    va_other: float = VA_OTHER_VALUE
    staff_positions: Mapping[str, float] = field(
        default_factory=lambda: dict(STAFF_POSITION_VALUES)
    )
    role_delimiter: str = STAFF_ROLE_DELIMITER
    genre_base: float = GENRE_VALUE
    genre_decline: float = GENRE_VALUE_DECLINE
    rec_initial: float = USER_REC_VALUE_INITIAL
    rec_decline: float = USER_REC_VALUE_DECLINE
    rec_floor: float = USER_REC_VALUE_FLOOR

    def __post_init__(self) -> None:
        object.__setattr__(self, "staff_positions", MappingProxyType(dict(self.staff_positions)))

    def genre_value(self, index: int) -> float:
        return self.genre_base - index * self.genre_decline

    def rec_value(self, index: int) -> float:
        return max(self.rec_floor, self.rec_initial - index * self.rec_decline)


@dataclass(frozen=True)
class SignalTables:
    title: str
    staff: Mapping[str, float]
    genres: Mapping[str, float]
    recommendations: Mapping[str, float]


def iter_voice_actors(page: Page) -> list[tuple[str, str]]:
    """(voice actor, character role) pairs from a characters page."""
    pairs = []
    # The last table on the page is the crew listing, not a character
    for table in page.select_many("character_tables")[:-1]:
        name = node_text(page.select_single("va_name", within=table))
        if not name:
            continue
        role = node_text(page.select_single("character_role", within=table))
        pairs.append((name, role))
    return pairs


def iter_staff(page: Page, delimiter: str = STAFF_ROLE_DELIMITER) -> list[tuple[str, list[str]]]:
    """(staff member, positions) pairs from a characters page."""
    members = []
    tables = page.select_many("character_tables")
    if not tables:
        return members
    for row in page.select_many("staff_rows", within=tables[-1]):
        position = page.select_single("staff_position", within=row)
        name = node_text(page.select_single("staff_name", within=row))
        if position is None or not name:
            continue
        roles = [role.strip() for role in node_text(position).split(delimiter) if role.strip()]
        members.append((name, roles))
    return members


def extract_genres(page: Page) -> list[str]:
    return [text for text in (node_text(node) for node in page.select_many("genres")) if text]


def build_staff_table(page: Page, weights: SignalWeights) -> dict[str, float]:
    staff: dict[str, float] = {}

    for name, role in iter_voice_actors(page):
        value = weights.va_main if role == MAIN_ROLE else weights.va_other
        staff[name] = staff.get(name, 0.0) + value

    for name, roles in iter_staff(page, weights.role_delimiter):
        for role in roles:
            value = weights.staff_positions.get(role)
            if value is None:
                continue
            staff[name] = staff.get(name, 0.0) + value

    return staff


def build_genre_table(page: Page, weights: SignalWeights) -> dict[str, float]:
    genres: dict[str, float] = {}
    for genre in extract_genres(page):
        if genre not in genres:
            genres[genre] = weights.genre_value(len(genres))
    return genres


def build_recommendation_table(page: Page, weights: SignalWeights) -> dict[str, float]:
    recs: dict[str, float] = {}
    index = 0
    for row in page.select_many("user_rec_rows"):
        title = node_text(page.select_single("user_rec_title", within=row))
        if not title:
            continue
        # Keep the first (highest) weight if a title is listed twice
        recs.setdefault(title, weights.rec_value(index))
        index += 1
    return recs


async def build_signal_tables(source, series_url: str, weights: SignalWeights | None = None) -> SignalTables:
    """
    Fetch the reference series' characters and recommendations pages and
    build its signal tables. Raises PageUnavailable if either page fails or
    the series title cannot be read.
    """
    weights = weights or SignalWeights()

    staff_page = await source.fetch_page(staff_url(series_url))
    title = node_text(staff_page.select_single("series_title"))
    if not title:
        raise PageUnavailable(staff_page.url, "series title not found")

    staff = build_staff_table(staff_page, weights)
    genres = build_genre_table(staff_page, weights)

    recs_page = await source.fetch_page(user_recs_url(series_url))
    recommendations = build_recommendation_table(recs_page, weights)

    logger.info(
        f"Signal tables for '{title}': {len(staff)} staff, {len(genres)} genres, "
        f"{len(recommendations)} user recommendations"
    )
    return SignalTables(
        title=title,
        staff=MappingProxyType(staff),
        genres=MappingProxyType(genres),
        recommendations=MappingProxyType(recommendations),
    )
