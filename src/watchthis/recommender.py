"""
Candidate scoring, ranking and the end-to-end recommendation pipeline.

Score of a candidate = normalized popularity + signal bonuses, where
normalized popularity is its counter as a percentage of the sampled users
whose list contained the reference series (see calibration).
"""

from __future__ import annotations

import asyncio
import logging

from tqdm import tqdm

from .aggregator import retrieve_series_from_users_lists
from .calibration import (
    adjust_popularity_threshold,
    is_eligible,
    normalized_popularity,
    process_sample_size,
)
from .config import DEFAULT_ASYNC_DELAY, DEFAULT_MAX_CONCURRENT, MIN_SIGHTINGS
from .models import Entry, Recommendation
from .sampling import get_last_updated_users, resolve_series_url
from .scraper import MALPageSource, Page, PageUnavailable, node_text, staff_url
from .signals import (
    SignalTables,
    SignalWeights,
    build_signal_tables,
    extract_genres,
    iter_staff,
    iter_voice_actors,
)
from .utils import concurrency_limiter

logger = logging.getLogger(__name__)


def apply_signal_bonuses(entry: Entry, page: Page, tables: SignalTables) -> None:
    """Add staff, genre and user-recommendation bonuses from a candidate's characters page."""
    names = [name for name, _ in iter_voice_actors(page)]
    names += [name for name, _ in iter_staff(page)]
    for name in dict.fromkeys(names):
        weight = tables.staff.get(name)
        if weight is not None:
            entry.add_to_bonus(weight, f"Staff: {name}")

    for genre in dict.fromkeys(extract_genres(page)):
        weight = tables.genres.get(genre)
        if weight is not None:
            entry.add_to_bonus(weight, f"Genre: {genre}")

    # Recommendation lists may use the page heading rather than the list title
    titles = [entry.title, node_text(page.select_single("series_title"))]
    for title in dict.fromkeys(t for t in titles if t):
        weight = tables.recommendations.get(title)
        if weight is not None:
            entry.add_to_bonus(weight, f"Users also recommend with {tables.title}")
            break


async def score_entry(
    source,
    entry: Entry,
    tables: SignalTables,
    adjusting_factor: float,
    sample_size: int,
    limiter,
) -> Recommendation | None:
    entry.popularity = normalized_popularity(entry.counter, adjusting_factor, sample_size)
    if not entry.url:
        logger.warning(f"Skipping '{entry.title}': no series URL")
        return None

    async with limiter:
        try:
            page = await source.fetch_page(staff_url(entry.url))
        except PageUnavailable as exc:
            logger.warning(f"Skipping '{entry.title}': {exc}")
            return None

    apply_signal_bonuses(entry, page, tables)
    return Recommendation.from_entry(entry)


async def score_candidates(
    source,
    entries: dict[str, Entry],
    tables: SignalTables,
    adjusting_factor: float,
    sample_size: int,
    cutoff: float,
    min_sightings: int = MIN_SIGHTINGS,
    max_workers: int | None = None,
    progress: bool = False,
) -> list[Recommendation]:
    """
    Score every candidate that clears both gates, concurrently.

    A candidate enters the fan-out only if it was seen more than
    `min_sightings` times and at least `cutoff` times. Candidates whose page
    fails to load, or whose worker raises, are dropped and logged. Results
    are collected by the caller-side gather, so workers never share a
    results list.
    """
    eligible = [entry for entry in entries.values() if is_eligible(entry, cutoff, min_sightings)]
    logger.info(f"Scoring {len(eligible)}/{len(entries)} candidates")
    limiter = concurrency_limiter(max_workers)

    with tqdm(total=len(eligible), desc="Candidates", unit="series", disable=not progress) as bar:
        async def worker(entry: Entry) -> Recommendation | None:
            try:
                return await score_entry(source, entry, tables, adjusting_factor, sample_size, limiter)
            finally:
                bar.update(1)

        results = await asyncio.gather(*(worker(entry) for entry in eligible), return_exceptions=True)

    scored = []
    for entry, result in zip(eligible, results):
        if isinstance(result, Exception):
            logger.error(f"Failed to score '{entry.title}': {type(result).__name__}: {result}")
        elif result is not None:
            scored.append(result)
    if len(scored) < len(eligible):
        logger.warning(f"{len(eligible) - len(scored)} candidate(s) could not be scored")
    return scored


def rank(results: list[Recommendation]) -> list[Recommendation]:
    """Highest score first; equal scores ordered by title, then URL."""
    return sorted(results, key=lambda rec: (-rec.score, rec.title, rec.url))


async def recommend(
    series_url: str,
    sample_size: int,
    min_popularity: float,
    source=None,
    weights: SignalWeights | None = None,
    max_workers: int | None = None,
    progress: bool = False,
) -> list[Recommendation]:
    """
    Recommend series for the series at `series_url`.

    Samples the last `sample_size` users who scored it, counts the series in
    their completed lists, and ranks the candidates that clear the
    popularity cutoff. Raises PageUnavailable when a mandatory page (the
    series itself, its stats listing, characters or recommendations page)
    cannot be fetched. An empty list means no candidate cleared the cutoff.
    """
    if source is None:
        async with MALPageSource(delay=DEFAULT_ASYNC_DELAY, max_concurrent=DEFAULT_MAX_CONCURRENT) as owned:
            return await recommend(
                series_url, sample_size, min_popularity,
                source=owned, weights=weights, max_workers=max_workers, progress=progress,
            )

    resolved = await resolve_series_url(source, series_url)
    logger.info(f"Reference series: {resolved}")

    users = await get_last_updated_users(source, resolved, sample_size)
    tables = await build_signal_tables(source, resolved, weights)

    aggregation = await retrieve_series_from_users_lists(
        source, users, tables.title, max_workers=max_workers, progress=progress,
    )
    entries = aggregation.entries
    _, adjusting_factor = process_sample_size(entries, tables.title, aggregation.users_retrieved)
    cutoff = adjust_popularity_threshold(min_popularity, len(entries))

    results = await score_candidates(
        source,
        entries,
        tables,
        adjusting_factor,
        aggregation.users_retrieved,
        cutoff,
        max_workers=max_workers,
        progress=progress,
    )
    ranked = rank(results)
    logger.info(f"Total recommendations: {len(ranked)}")
    return ranked
