"""CLI job to load locations once and write an interactive HTML map."""

import argparse
import logging
from typing import Optional

from service_map.core.cache import RevalidatingCache
from service_map.core.config import ConfigError, get_settings
from service_map.core.errors import SourceFetchError
from service_map.core.storage import init_store
from service_map.etl.colors import ColorAssigner
from service_map.geo.filters import FilterState, visible
from service_map.geo.render import STRATEGIES, build_map
from service_map.loader import load_locations

logger = logging.getLogger(__name__)


def run_build_map(*, output: str, strategy: str, search: Optional[str], use_cache: bool) -> int:
    """Load (falling back to the cached entry when the network fails) and render. Returns the number of locations drawn."""
    settings = get_settings()
    store = init_store(settings.storage_dir)
    cache = RevalidatingCache(lambda: load_locations(settings), store, settings)

    if use_cache:
        cache.load_cached()
    cache.refresh()
    if cache.error:
        raise SourceFetchError(cache.error)

    records = cache.records
    colors = ColorAssigner(store, settings.color_map_key).update(records)
    state = FilterState().update({"search_term": search or ""})
    shown = visible(records, state)

    fmap = build_map(shown, settings, colors, strategy=strategy)
    fmap.save(output)
    logger.info("Wrote %d locations to %s", len(shown), output)
    return len(shown)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Render service locations to an HTML map")
    parser.add_argument("--output", "-o", default="locations_map.html", help="Destination HTML file")
    parser.add_argument("--strategy", choices=STRATEGIES, default="cluster", help="Marker placement strategy")
    parser.add_argument("--search", help="Only include locations whose city, name or address match")
    parser.add_argument("--no-cache", dest="use_cache", action="store_false", help="Ignore the persisted cache entry")
    return parser


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    args = build_parser().parse_args()
    try:
        run_build_map(output=args.output, strategy=args.strategy, search=args.search, use_cache=args.use_cache)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(2) from exc
    except SourceFetchError as exc:
        logger.error("No location data available: %s", exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
