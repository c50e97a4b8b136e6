import argparse
import asyncio
import json
import logging
import sys
from urllib.parse import urlparse

from .config import (
    DEFAULT_ASYNC_DELAY,
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_MIN_POPULARITY,
    DEFAULT_SAMPLE_SIZE,
)
from .models import Recommendation
from .recommender import recommend
from .sampling import get_last_updated_users, resolve_series_url
from .scraper import MALPageSource, PageUnavailable
from .signals import build_signal_tables

logger = logging.getLogger(__name__)


def _validate_series_url(url: str) -> str:
    """
    Validate a MyAnimeList series URL.
    Raises ValueError for anything that is not an http(s) anime page.
    """
    cleaned = url.strip()
    parsed = urlparse(cleaned)
    if parsed.scheme not in ("http", "https") or not parsed.netloc.endswith("myanimelist.net"):
        raise ValueError(f"Not a MyAnimeList URL: {url}")
    if not parsed.path.startswith("/anime/"):
        raise ValueError(f"Not an anime page: {url}")
    return cleaned


def _series_url_arg(value: str) -> str:
    try:
        return _validate_series_url(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _positive_int_arg(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Not an integer: {value}") from exc
    if number <= 0:
        raise argparse.ArgumentTypeError(f"Must be a positive integer: {value}")
    return number


def _output_recommendations(recs: list[Recommendation], args: argparse.Namespace) -> None:
    """Format and log recommendations in the requested format."""
    output_format = getattr(args, 'format', 'text')
    explain_mode = getattr(args, 'explain', False)

    if output_format == 'json':
        logger.info(json.dumps([r.to_dict() for r in recs], indent=2))
    elif output_format == 'csv':
        logger.info("Title,URL,Score,Popularity,Bonus")
        for r in recs:
            title = r.title.replace('"', '""')
            logger.info(f'"{title}",{r.url},{r.score:.2f},{r.popularity:.2f},{r.bonus:.2f}')
    else:
        if not recs:
            logger.info("No series cleared the popularity cutoff.")
            return
        logger.info(f"\nTop {len(recs)} recommendations:\n")
        for i, r in enumerate(recs, 1):
            logger.info(f"{i:2}. {r.title}  [{r.score:.1f}]")
            logger.info(f"    {r.url}")
            if explain_mode:
                logger.info(
                    f"    popularity {r.popularity:.1f} ({r.counter} lists) + bonus {r.bonus:.1f}"
                )
                for reason in r.reasons:
                    logger.info(f"      - {reason}")


def cmd_recommend(args: argparse.Namespace) -> None:
    """Generate recommendations for a series."""
    try:
        recs = asyncio.run(
            recommend(
                args.series_url,
                args.sample_size,
                args.min_popularity,
                max_workers=args.max_workers,
                progress=args.progress,
            )
        )
    except PageUnavailable as exc:
        logger.error(f"Could not load a required page: {exc}")
        sys.exit(1)

    if args.limit:
        recs = recs[:args.limit]
    _output_recommendations(recs, args)


async def _sample_users(args: argparse.Namespace) -> list:
    async with MALPageSource(delay=DEFAULT_ASYNC_DELAY, max_concurrent=DEFAULT_MAX_CONCURRENT) as source:
        series_url = await resolve_series_url(source, args.series_url)
        return await get_last_updated_users(source, series_url, args.count)


def cmd_users(args: argparse.Namespace) -> None:
    """Show the users that would be sampled for a series."""
    try:
        users = asyncio.run(_sample_users(args))
    except PageUnavailable as exc:
        logger.error(f"Could not load a required page: {exc}")
        sys.exit(1)

    for user in users:
        logger.info(f"{user.username:24} {user.list_url}")


async def _load_signals(args: argparse.Namespace):
    async with MALPageSource(delay=DEFAULT_ASYNC_DELAY, max_concurrent=DEFAULT_MAX_CONCURRENT) as source:
        series_url = await resolve_series_url(source, args.series_url)
        return await build_signal_tables(source, series_url)


def cmd_signals(args: argparse.Namespace) -> None:
    """Show the signal weight tables for a series."""
    try:
        tables = asyncio.run(_load_signals(args))
    except PageUnavailable as exc:
        logger.error(f"Could not load a required page: {exc}")
        sys.exit(1)

    logger.info(f"\n{tables.title}")
    for label, table in (
        ("Staff", tables.staff),
        ("Genres", tables.genres),
        ("Users also recommend", tables.recommendations),
    ):
        logger.info(f"\n{label} ({len(table)}):")
        for key, weight in sorted(table.items(), key=lambda kv: (-kv[1], kv[0])):
            logger.info(f"  {weight:6.1f}  {key}")


def main():
    parser = argparse.ArgumentParser(description="MyAnimeList recommender")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    rec_parser = subparsers.add_parser("recommend", help="Recommend series similar to a series")
    rec_parser.add_argument("series_url", type=_series_url_arg, help="MyAnimeList series URL")
    rec_parser.add_argument("--sample-size", type=_positive_int_arg, default=DEFAULT_SAMPLE_SIZE,
                            help="Number of recently updated users to sample")
    rec_parser.add_argument("--min-popularity", type=float, default=DEFAULT_MIN_POPULARITY,
                            help="Minimum number of sampled lists a series must appear in")
    rec_parser.add_argument("--limit", type=int, default=20, help="Number of recommendations to show (0 = all)")
    rec_parser.add_argument("--max-workers", type=_positive_int_arg, default=None,
                            help="Upper bound on concurrent workers per stage")
    rec_parser.add_argument("--format", choices=["text", "json", "csv"], default="text",
                            help="Output format")
    rec_parser.add_argument("--explain", action="store_true", help="Show score breakdown and matched signals")
    rec_parser.add_argument("--progress", action="store_true", help="Show progress bars")
    rec_parser.set_defaults(func=cmd_recommend)

    users_parser = subparsers.add_parser("users", help="List the users that would be sampled")
    users_parser.add_argument("series_url", type=_series_url_arg, help="MyAnimeList series URL")
    users_parser.add_argument("--count", type=_positive_int_arg, default=DEFAULT_SAMPLE_SIZE, help="Number of users")
    users_parser.set_defaults(func=cmd_users)

    signals_parser = subparsers.add_parser("signals", help="Show staff/genre/recommendation weights")
    signals_parser.add_argument("series_url", type=_series_url_arg, help="MyAnimeList series URL")
    signals_parser.set_defaults(func=cmd_signals)

    args = parser.parse_args()

    # Configure logging based on verbosity
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    args.func(args)


if __name__ == "__main__":
    main()
