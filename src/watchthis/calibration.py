"""Popularity normalization and the pool-size dependent cutoff."""

import logging

from .config import POOL_SIZE_MULTIPLIERS
from .models import Entry

logger = logging.getLogger(__name__)


def process_sample_size(entries: dict[str, Entry], reference_title: str, sample_size: int) -> tuple[int, float]:
    """
    Remove the reference series from the pool.

    Returns (reference_hits, adjusting_factor) where adjusting_factor is the
    share of sampled users whose list contained the reference series.
    """
    reference = entries.pop(reference_title, None)
    if reference is None:
        logger.warning(f"'{reference_title}' was not found in any retrieved list")
        reference_hits = 0
    else:
        reference_hits = reference.counter

    adjusting_factor = reference_hits / sample_size if sample_size > 0 else 0.0
    logger.info(
        f"Relevant users checked: {reference_hits}/{sample_size} "
        f"(adjusting factor {adjusting_factor:.2f})"
    )
    return reference_hits, adjusting_factor


def pool_size_multiplier(pool_size: int) -> float:
    for min_size, multiplier in POOL_SIZE_MULTIPLIERS:
        if pool_size >= min_size:
            return multiplier
    return 1.0


def adjust_popularity_threshold(min_popularity: float, pool_size: int) -> float:
    """
    Scale the minimum popularity by the candidate pool size.

    Large pools come from noisy samples and dilute per-title counts, so
    they need proportionally more sightings to pass.
    """
    cutoff = min_popularity * pool_size_multiplier(pool_size)
    logger.info(f"Candidate pool size {pool_size}: cutoff {cutoff:g} (base {min_popularity:g})")
    return cutoff


def normalized_popularity(counter: int, adjusting_factor: float, sample_size: int) -> float:
    """
    Counter as a percentage of the users who had the reference series.

    adjusting_factor * sample_size is the reference series' own hit count, so
    a candidate seen in every list the reference appeared in scores 100.
    Falls back to the sample size when the reference was never seen.
    """
    denominator = adjusting_factor * sample_size
    if denominator <= 0:
        denominator = sample_size
    if denominator <= 0:
        return 0.0
    return counter * 100.0 / denominator


def is_eligible(entry: Entry, cutoff: float, min_sightings: int) -> bool:
    return entry.counter > min_sightings and entry.counter >= cutoff
