import argparse
import asyncio
import json
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Optional

from . import __version__
from .config import (
    DEFAULT_CENTER_PATH,
    DEFAULT_FETCH_CONCURRENCY,
    DEFAULT_GEOCODE_CONCURRENCY,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_REGISTRY_PATH,
    DEFAULT_RETRY_DELAY,
    PipelineConfig,
    log_level_from_env,
)
from .enrich import enrich_registry
from .env import load_env
from .geocoding import GoogleGeocoder
from .logger import get_logger
from .pipeline import PipelineController, locate_center
from .schema import validate_registry_data
from .scrapers.saved_list import SavedListFetcher
from .storage import load_registry, save_center, save_registry

logger = get_logger()


def build_config(args: argparse.Namespace) -> PipelineConfig:
    try:
        config = PipelineConfig.from_env(
            registry_path=Path(args.registry),
            sources=getattr(args, "source", None),
            region=getattr(args, "region", None),
            fetch_concurrency=1 if getattr(args, "sequential", False) else getattr(args, "fetch_concurrency", None),
            geocode_concurrency=getattr(args, "geocode_concurrency", None),
            max_attempts=getattr(args, "retries", None),
            retry_delay=getattr(args, "retry_delay", None),
            exclude_closed=True if getattr(args, "exclude_closed", False) else None,
            api_key=getattr(args, "api_key", None),
        )
    except ValueError as e:
        raise SystemExit(str(e))
    # Only written when the command was given a path.
    center_output = getattr(args, "center_output", None)
    config.center_path = Path(center_output) if center_output else None
    return config


def _make_geocoder(config: PipelineConfig) -> Optional[GoogleGeocoder]:
    if not config.api_key:
        logger.warning("GOOGLE_API_KEY is missing. Geocoding will be skipped.")
        return None
    return GoogleGeocoder(config.api_key, timeout=config.http_timeout)


def _print_center(center) -> None:
    if center is None:
        print("No places with coordinates; no center computed.")
        return
    print(json.dumps(center.report(), indent=2, ensure_ascii=False))


async def _run_pipeline(config: PipelineConfig):
    async with AsyncExitStack() as stack:
        geocoder = _make_geocoder(config)
        if geocoder is not None:
            await stack.enter_async_context(geocoder)
        controller = PipelineController(
            config,
            fetcher=SavedListFetcher(timeout=config.http_timeout),
            geocoder=geocoder,
        )
        return await controller.run()


def cmd_run(args: argparse.Namespace) -> None:
    config = build_config(args)
    if not config.sources:
        raise SystemExit("No sources specified. Use --source URL_OR_FILE (repeatable).")
    result = asyncio.run(_run_pipeline(config))
    summary = result.reconcile
    print(
        f"Done. places={len(result.registry)} new={len(summary.created)} "
        f"updated={len(summary.updated)} removed={len(summary.removed)} "
        f"dropped={len(result.enrich.dropped)}"
    )
    _print_center(result.center)
    logger.log_metrics_summary()


async def _geocode_only(config: PipelineConfig) -> None:
    registry = load_registry(config.registry_path)
    async with GoogleGeocoder(config.api_key, timeout=config.http_timeout) as geocoder:
        try:
            summary = await enrich_registry(
                registry, geocoder, config.region, concurrency=config.geocode_concurrency
            )
        finally:
            save_registry(config.registry_path, registry)
    print(f"Geocoded {len(summary.enriched)} places, dropped {len(summary.dropped)}.")


def cmd_geocode(args: argparse.Namespace) -> None:
    config = build_config(args)
    if not config.api_key:
        raise SystemExit("GOOGLE_API_KEY not set. Set env var or pass --api-key.")
    if not config.registry_path.exists():
        raise SystemExit(f"Registry not found: {config.registry_path}")
    asyncio.run(_geocode_only(config))


async def _center_only(config: PipelineConfig):
    registry = load_registry(config.registry_path)
    async with AsyncExitStack() as stack:
        geocoder = _make_geocoder(config)
        if geocoder is not None:
            await stack.enter_async_context(geocoder)
        return await locate_center(registry, geocoder, exclude_closed=config.exclude_closed)


def cmd_center(args: argparse.Namespace) -> None:
    config = build_config(args)
    if not config.registry_path.exists():
        raise SystemExit(f"Registry not found: {config.registry_path}")
    center = asyncio.run(_center_only(config))
    if center is not None and config.center_path is not None:
        save_center(config.center_path, center.to_dict())
    _print_center(center)


def cmd_list(args: argparse.Namespace) -> None:
    registry_path = Path(args.registry)
    if not registry_path.exists():
        print(f"Registry not found: {registry_path}")
        return
    registry = load_registry(registry_path)
    if not registry:
        print("No places in registry.")
        return
    print(f"Found {len(registry)} places in {registry_path}:\n")
    for name, place in registry.items():
        print(name)
        print(f"  Lists: {', '.join(place.categories)}")
        print(f"  Address: {place.address or '-'}")
        if place.coordinate:
            print(f"  Coordinate: {place.coordinate.lat:.6f}, {place.coordinate.lng:.6f}")
        if place.permanently_closed:
            print("  Permanently closed")
        print()


def cmd_validate(args: argparse.Namespace) -> None:
    registry_path = Path(args.registry)
    if not registry_path.exists():
        raise SystemExit(f"Registry not found: {registry_path}")
    try:
        with registry_path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        print(f"Invalid: not JSON ({e})")
        raise SystemExit(2)
    problems = validate_registry_data(data)
    if problems:
        print("Invalid:")
        for name, errors in problems:
            for e in errors:
                print(f" - {name}: {e}")
        raise SystemExit(2)
    print(f"Valid ({len(data)} places)")


def _add_registry_arg(p: argparse.ArgumentParser) -> None:
    p.add_argument("--registry", default=str(DEFAULT_REGISTRY_PATH), help=f"Path to places JSON (default: {DEFAULT_REGISTRY_PATH})")


def main(argv=None):
    # Load .env if present (GOOGLE_API_KEY, MEETPOINT_REGION, etc.)
    load_env()
    parser = argparse.ArgumentParser(prog="meetpoint", description="Keep a registry of saved places and find their meeting point")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--log-level", help="Console log level (default: INFO or MEETPOINT_LOG_LEVEL)")

    subparsers = parser.add_subparsers(dest="command")

    run = subparsers.add_parser("run", help="Fetch lists, reconcile the registry, geocode and compute the center")
    run.add_argument("--source", "-s", action="append", help="List URL or saved HTML file (repeatable)")
    _add_registry_arg(run)
    run.add_argument("--center-output", default=str(DEFAULT_CENTER_PATH), help=f"Where to write the center JSON (default: {DEFAULT_CENTER_PATH})")
    run.add_argument("--region", "-r", help="Region hint for geocoding (default: berlin or MEETPOINT_REGION)")
    run.add_argument("--fetch-concurrency", type=int, help=f"Parallel list fetches (default {DEFAULT_FETCH_CONCURRENCY})")
    run.add_argument("--sequential", action="store_true", help="Fetch lists one at a time")
    run.add_argument("--geocode-concurrency", type=int, help=f"Parallel geocode lookups (default {DEFAULT_GEOCODE_CONCURRENCY})")
    run.add_argument("--retries", type=int, help=f"Attempts per list before giving up (default {DEFAULT_MAX_ATTEMPTS})")
    run.add_argument("--retry-delay", type=float, help=f"Seconds between attempts (default {DEFAULT_RETRY_DELAY})")
    run.add_argument("--exclude-closed", action="store_true", help="Leave permanently closed places out of the center")
    run.add_argument("--api-key", help="Google API key (or set GOOGLE_API_KEY)")
    run.set_defaults(func=cmd_run)

    geo = subparsers.add_parser("geocode", help="Geocode places of an existing registry that lack coordinates")
    _add_registry_arg(geo)
    geo.add_argument("--region", "-r", help="Region hint for geocoding")
    geo.add_argument("--geocode-concurrency", type=int, help=f"Parallel geocode lookups (default {DEFAULT_GEOCODE_CONCURRENCY})")
    geo.add_argument("--api-key", help="Google API key (or set GOOGLE_API_KEY)")
    geo.set_defaults(func=cmd_geocode)

    cen = subparsers.add_parser("center", help="Compute the center of an existing registry")
    _add_registry_arg(cen)
    cen.add_argument("--center-output", help="Optional path to write the center JSON")
    cen.add_argument("--exclude-closed", action="store_true", help="Leave permanently closed places out")
    cen.add_argument("--api-key", help="Google API key for the reverse lookup (or set GOOGLE_API_KEY)")
    cen.set_defaults(func=cmd_center)

    lst = subparsers.add_parser("list", help="List all places in the registry")
    _add_registry_arg(lst)
    lst.set_defaults(func=cmd_list)

    val = subparsers.add_parser("validate", help="Validate a registry file")
    _add_registry_arg(val)
    val.set_defaults(func=cmd_validate)

    args = parser.parse_args(argv)
    logger.set_level(args.log_level or log_level_from_env())

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
