"""Main entry point: ingest listings, match them against profiles, notify."""

import argparse
import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

import aiosqlite
from pydantic import ValidationError

from rental_alerts.config import Settings
from rental_alerts.db import ListingStorage
from rental_alerts.filters import (
    CriteriaFilter,
    LocationRuleEvaluator,
    PreferenceMatcher,
    matches_numeric_filters,
)
from rental_alerts.logging import configure_logging, cycle_context, get_logger
from rental_alerts.models import (
    EnqueueResult,
    Listing,
    MatchResult,
    UserContact,
    UserPreferences,
)
from rental_alerts.notifiers import (
    DispatchSummary,
    NotificationDispatcher,
    NotificationQueue,
    WhatsAppNotifier,
)
from rental_alerts.scrapers import JsonFeedSource, ListingSource
from rental_alerts.utils.geocode_cache import InMemoryGeocodeCache
from rental_alerts.utils.geocoder import GeocodeResolver
from rental_alerts.utils.maps_client import GoogleMapsClient

logger = get_logger(__name__)


@dataclass
class MatchingSummary:
    """Counts from one matching pass."""

    listings: int = 0
    profiles: int = 0
    matches: int = 0
    enqueued: int = 0
    errors: int = 0


async def ingest_new_listings(
    source: ListingSource,
    storage: ListingStorage,
    *,
    delay_seconds: float = 0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> list[Listing]:
    """Fetch and store listings the store has not seen yet.

    Waits ``delay_seconds`` between successive detail fetches to stay polite
    with the listing site.

    Returns:
        Newly stored listings, in source order.
    """
    urls = await source.fetch_recent_urls()
    logger.info("ingest_started", source=source.name, urls=len(urls))

    new_listings: list[Listing] = []
    fetched = 0
    for url in urls:
        if await storage.is_seen_url(url):
            continue

        if fetched and delay_seconds:
            await sleep(delay_seconds)
        fetched += 1

        try:
            listing = await source.fetch_listing(url)
        except Exception:
            logger.error("listing_fetch_failed", url=url, exc_info=True)
            continue
        if listing is None:
            logger.warning("listing_details_missing", url=url)
            continue

        if await storage.save_listing(listing):
            new_listings.append(listing)
            logger.info("listing_saved", listing_id=listing.id)

    logger.info("ingest_complete", source=source.name, new=len(new_listings))
    return new_listings


async def match_and_enqueue(
    listings: list[Listing],
    profiles: list[UserPreferences],
    *,
    matcher: PreferenceMatcher,
    queue: NotificationQueue,
    storage: ListingStorage,
    concurrency: int = 4,
) -> MatchingSummary:
    """Match every listing against every profile and queue notifications.

    At most ``concurrency`` evaluations (each of which may call the maps
    service several times) run at once. A failure while evaluating one
    (listing, profile) pair is logged and does not stop the others; a store
    failure aborts the pass.
    """
    summary = MatchingSummary(listings=len(listings), profiles=len(profiles))
    if not listings or not profiles:
        logger.info("matching_skipped", listings=len(listings), profiles=len(profiles))
        return summary

    semaphore = asyncio.Semaphore(concurrency)

    async def _match_pair(listing: Listing, preferences: UserPreferences) -> None:
        try:
            async with semaphore:
                result = await matcher.matches(listing, preferences)
        except aiosqlite.Error:
            raise
        except Exception:
            summary.errors += 1
            logger.error(
                "match_failed",
                listing_id=listing.id,
                user_id=preferences.user_id,
                exc_info=True,
            )
            return

        if not result.is_match:
            return
        summary.matches += 1
        logger.info(
            "match_found",
            listing_id=listing.id,
            user_id=preferences.user_id,
            rules=[(m.rule.target, m.actual_duration) for m in result.matched_rules],
        )
        if await queue.enqueue(preferences.user_id, listing.id) == EnqueueResult.ENQUEUED:
            summary.enqueued += 1

    async def _match_listing(listing: Listing) -> None:
        candidates = [p for p in profiles if matches_numeric_filters(listing, p)]
        if not candidates:
            return

        if listing.coordinates is None and any(p.locations for p in candidates):
            try:
                async with semaphore:
                    located = await matcher.ensure_coordinates(listing)
            except Exception:
                summary.errors += 1
                logger.error("listing_geocode_error", listing_id=listing.id, exc_info=True)
                located = None
            if located is None:
                # Location rules cannot pass without an origin
                candidates = [p for p in candidates if not p.locations]
            else:
                assert located.coordinates is not None
                await storage.set_listing_coordinates(listing.id, located.coordinates)
                listing = located

        await asyncio.gather(*(_match_pair(listing, p) for p in candidates))

    tasks = [asyncio.create_task(_match_listing(lst)) for lst in listings]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise

    logger.info(
        "matching_complete",
        listings=summary.listings,
        profiles=summary.profiles,
        matches=summary.matches,
        enqueued=summary.enqueued,
        errors=summary.errors,
    )
    return summary


async def search_listings(
    preferences: UserPreferences,
    storage: ListingStorage,
    matcher: PreferenceMatcher,
) -> list[tuple[Listing, MatchResult]]:
    """Evaluate stored listings against one profile, newest first.

    Returns:
        Matching listings with their per-rule travel times.
    """
    candidates = CriteriaFilter(preferences).filter_listings(await storage.get_all_listings())
    results: list[tuple[Listing, MatchResult]] = []
    for listing in candidates:
        result = await matcher.matches(listing, preferences)
        if result.is_match:
            results.append((listing, result))
    logger.info("search_complete", user_id=preferences.user_id, matches=len(results))
    return results


async def import_profiles(path: Path, storage: ListingStorage) -> int:
    """Upsert preference profiles (and phone numbers) from a JSON array.

    Each entry is a preferences document with ``userId`` and an optional
    ``phoneNumber``. Invalid entries are logged and skipped.

    Returns:
        Number of profiles saved.
    """
    entries = json.loads(path.read_text(encoding="utf-8"))
    saved = 0
    for index, entry in enumerate(entries):
        try:
            preferences = UserPreferences.model_validate(entry)
        except ValidationError as e:
            logger.warning("profile_entry_invalid", index=index, errors=e.error_count())
            continue
        await storage.save_preferences(preferences)
        if "phoneNumber" in entry:
            await storage.save_user_contact(
                UserContact(user_id=preferences.user_id, phone_number=entry["phoneNumber"])
            )
        saved += 1
    logger.info("profiles_imported", path=str(path), saved=saved)
    return saved


def build_matcher(settings: Settings, maps: GoogleMapsClient) -> PreferenceMatcher:
    """Wire the matcher with a geocode cache sized from settings."""
    cache = InMemoryGeocodeCache(
        max_entries=settings.geocode_cache_max_entries,
        ttl_seconds=settings.geocode_cache_ttl_seconds,
    )
    return PreferenceMatcher(
        GeocodeResolver(maps, cache=cache),
        LocationRuleEvaluator(maps, tz=settings.tzinfo),
    )


def build_dispatcher(
    settings: Settings, storage: ListingStorage, notifier: WhatsAppNotifier
) -> NotificationDispatcher:
    return NotificationDispatcher(
        storage,
        notifier,
        batch_size=settings.dispatch_batch_size,
        max_attempts=settings.max_delivery_attempts,
        claim_timeout=timedelta(minutes=settings.claim_timeout_minutes),
    )


def _maps_client(settings: Settings) -> GoogleMapsClient:
    return GoogleMapsClient(
        api_key=settings.google_maps_api_key.get_secret_value(),
        timeout=settings.maps_timeout_seconds,
    )


async def run_dispatch(settings: Settings, storage: ListingStorage) -> DispatchSummary:
    """Drain one batch of the notification queue."""
    notifier = WhatsAppNotifier(
        bridge_url=settings.whatsapp_bridge_url,
        timeout=settings.bridge_timeout_seconds,
    )
    try:
        return await build_dispatcher(settings, storage, notifier).run_once()
    finally:
        await notifier.close()


async def run_cycle(
    settings: Settings,
    *,
    source: ListingSource | None = None,
    deliver: bool = True,
) -> MatchingSummary:
    """Run one full cycle: ingest, match new listings, queue, deliver.

    Args:
        settings: Application settings.
        source: Listing source (defaults to the configured JSON feed).
        deliver: Whether to drain the queue after matching.
    """
    with cycle_context("full" if deliver else "match"):
        source = source or JsonFeedSource(settings.listing_feed_path)
        storage = ListingStorage(settings.database_path)
        await storage.initialize()
        maps = _maps_client(settings)

        try:
            new_listings = await ingest_new_listings(
                source, storage, delay_seconds=settings.ingest_delay_seconds
            )
            profiles = await storage.get_all_preferences()
            summary = await match_and_enqueue(
                new_listings,
                profiles,
                matcher=build_matcher(settings, maps),
                queue=NotificationQueue(storage),
                storage=storage,
                concurrency=settings.match_concurrency,
            )
            if deliver:
                await run_dispatch(settings, storage)
            return summary
        finally:
            await maps.close()
            await source.close()
            await storage.close()


async def run_dispatch_only(settings: Settings) -> DispatchSummary:
    with cycle_context("dispatch"):
        storage = ListingStorage(settings.database_path)
        await storage.initialize()
        try:
            return await run_dispatch(settings, storage)
        finally:
            await storage.close()


async def run_search(settings: Settings, preferences_path: Path) -> None:
    """Print stored listings matching a preferences file."""
    preferences = UserPreferences.model_validate_json(preferences_path.read_text(encoding="utf-8"))
    storage = ListingStorage(settings.database_path)
    await storage.initialize()
    maps = _maps_client(settings)

    try:
        results = await search_listings(preferences, storage, build_matcher(settings, maps))
    finally:
        await maps.close()
        await storage.close()

    print(f"\n{'=' * 60}")
    print(f"{len(results)} matching listings")
    print(f"{'=' * 60}\n")
    for listing, result in results:
        print(f"[{listing.id}] {listing.full_address or 'address unknown'}")
        print(f"  Rent: {listing.rent} | Condo: {listing.condo_fee} | Beds: {listing.bedrooms}")
        for matched in result.matched_rules:
            print(
                f"  {matched.rule.target} ({matched.rule.travel_mode.value}): "
                f"{matched.actual_duration}/{matched.rule.max_time} min"
            )
        print(f"  URL: {listing.url}")
        print()


async def run_import_profiles(settings: Settings, path: Path) -> None:
    storage = ListingStorage(settings.database_path)
    await storage.initialize()
    try:
        await import_profiles(path, storage)
    finally:
        await storage.close()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Rental Alerts - match new rental listings to saved searches"
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--match-only",
        action="store_true",
        help="Ingest and match new listings, queue notifications, but do not deliver",
    )
    mode.add_argument(
        "--dispatch-only",
        action="store_true",
        help="Only deliver queued notifications",
    )
    mode.add_argument(
        "--search",
        type=Path,
        metavar="PREFS_JSON",
        help="Print stored listings matching a preferences file",
    )
    mode.add_argument(
        "--import-profiles",
        type=Path,
        metavar="PROFILES_JSON",
        help="Upsert preference profiles and phone numbers from a JSON file",
    )
    parser.add_argument(
        "--feed",
        type=Path,
        default=None,
        help="Listing feed file (overrides RENTAL_ALERTS_LISTING_FEED_PATH)",
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug-level logging for troubleshooting",
    )
    args = parser.parse_args()

    import logging

    configure_logging(
        json_output=args.json_logs, level=logging.DEBUG if args.debug else logging.INFO
    )

    try:
        settings = Settings()
    except ValidationError as e:
        logger.error("failed_to_load_settings", error=str(e))
        print(f"Error: Failed to load settings. {e}")
        print("Required: RENTAL_ALERTS_GOOGLE_MAPS_API_KEY, RENTAL_ALERTS_WHATSAPP_BRIDGE_URL")
        sys.exit(1)

    if args.feed is not None:
        settings = settings.model_copy(update={"listing_feed_path": str(args.feed)})

    logger.info(
        "starting_rental_alerts",
        database=settings.database_path,
        feed=settings.listing_feed_path,
        match_only=args.match_only,
        dispatch_only=args.dispatch_only,
    )

    if args.search is not None:
        asyncio.run(run_search(settings, args.search))
    elif args.import_profiles is not None:
        asyncio.run(run_import_profiles(settings, args.import_profiles))
    elif args.dispatch_only:
        asyncio.run(run_dispatch_only(settings))
    else:
        asyncio.run(run_cycle(settings, deliver=not args.match_only))


if __name__ == "__main__":
    main()
