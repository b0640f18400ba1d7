"""Session assembly and date-bucketed indexing of scanned messages."""

import asyncio
import hashlib
import time
from collections import defaultdict
from typing import Callable

from convx.cache import DEFAULT_TTL_SECONDS, CacheStats, TTLCache
from convx.logging import get_logger
from convx.models import Index, Message, ScanOptions, Session, Tool
from convx.scanners import Scanner, ScannerRegistry
from convx.timestamps import format_date_key, to_epoch_millis

logger = get_logger("indexer")

# Messages included in the index fingerprint sample
FINGERPRINT_SAMPLE = 100


def build_sessions(messages: list[Message]) -> list[Session]:
    """Group messages into sessions by (tool, session_id).

    Args:
        messages: Messages from all scanners

    Returns:
        One session per key, messages sorted ascending by timestamp
    """
    grouped: dict[tuple[Tool, str], list[Message]] = defaultdict(list)
    for message in messages:
        grouped[(message.tool, message.session_id)].append(message)

    return [Session.from_messages(group) for group in grouped.values() if group]


def group_sessions_by_date(sessions: list[Session]) -> dict[str, list[Session]]:
    """Bucket sessions by the calendar date of their start time.

    Each bucket is sorted ascending by start time.
    """
    by_date: dict[str, list[Session]] = defaultdict(list)
    for session in sessions:
        by_date[format_date_key(session.started_at)].append(session)

    for sessions_for_date in by_date.values():
        sessions_for_date.sort(key=lambda s: s.started_at)

    return dict(by_date)


def compute_fingerprint(messages: list[Message]) -> str:
    """Deterministic hash over the message count and a bounded sample.

    Only the first FINGERPRINT_SAMPLE messages contribute their
    tool/session/timestamp/size tuple.
    """
    sample = "|".join(
        f"{m.tool.value}:{m.session_id}:{to_epoch_millis(m.timestamp)}:{m.size}"
        for m in messages[:FINGERPRINT_SAMPLE]
    )
    digest = hashlib.sha256(sample.encode()).hexdigest()[:16]
    return f"{len(messages)}-{digest}"


class Indexer:
    """Builds indexes from all scanners and caches them per scan configuration.

    Concurrent builds for the same configuration share one in-flight scan.
    """

    def __init__(
        self,
        scanners: list[Scanner] | None = None,
        cache: TTLCache[Index] | None = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the indexer.

        Args:
            scanners: Scanners to run (defaults to all registered scanners)
            cache: Cache to store indexes in (defaults to a new TTLCache)
            ttl_seconds: TTL for the default cache
            clock: Clock for the default cache
        """
        self._scanners = list(scanners) if scanners is not None else ScannerRegistry.all()
        self._cache: TTLCache[Index] = cache if cache is not None else TTLCache(ttl_seconds, clock)
        self._in_flight: dict[str, asyncio.Future[Index]] = {}
        # Bumped by clear_cache(); builds started earlier neither cache nor share
        self._generation = 0
        self.build_count = 0

    @property
    def cache(self) -> TTLCache[Index]:
        return self._cache

    async def build_index(self, options: ScanOptions) -> Index:
        """Build the index for options, or return the cached one.

        Never raises for scan problems; a failing scanner contributes
        no messages.

        Args:
            options: Scan configuration

        Returns:
            Index of sessions bucketed by start date
        """
        key = options.cache_key()

        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Using cached index: key=%s", key)
            return cached

        in_flight = self._in_flight.get(key)
        if in_flight is not None:
            logger.debug("Joining in-flight index build: key=%s", key)
            return await asyncio.shield(in_flight)

        generation = self._generation
        future: asyncio.Future[Index] = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            index = await self._rebuild(key, options, generation)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Mark retrieved so an unjoined failure is not reported as unhandled
            future.exception()
            raise
        else:
            future.set_result(index)
            return index
        finally:
            if self._in_flight.get(key) is future:
                del self._in_flight[key]

    async def _rebuild(self, key: str, options: ScanOptions, generation: int) -> Index:
        logger.info("Building fresh index: key=%s", key)
        started = time.monotonic()
        self.build_count += 1

        results = await asyncio.gather(*(self._run_scanner(s, options) for s in self._scanners))
        messages = [message for result in results for message in result]

        sessions = build_sessions(messages)
        index = Index(by_date=group_sessions_by_date(sessions))

        fingerprint = compute_fingerprint(messages)
        if generation == self._generation:
            self._cache.set(key, index, fingerprint=fingerprint)
        else:
            logger.debug("Not caching index started before cache clear: key=%s", key)

        logger.info(
            "Index built: messages=%d sessions=%d dates=%d fingerprint=%s duration_ms=%d",
            len(messages),
            len(sessions),
            len(index.by_date),
            fingerprint,
            int((time.monotonic() - started) * 1000),
        )
        return index

    async def _run_scanner(self, scanner: Scanner, options: ScanOptions) -> list[Message]:
        try:
            return await scanner.scan(options)
        except Exception:
            logger.exception("Scanner failed: tool=%s", scanner.tool.value)
            return []

    def fingerprint(self, options: ScanOptions) -> str | None:
        """Fingerprint stored with the cached index for options, if any."""
        entry = self._cache.get_entry(options.cache_key())
        return entry.fingerprint if entry is not None else None

    def clear_cache(self) -> None:
        """Drop every cached index so the next build rescans.

        Builds still running keep their result to themselves; later calls
        start a fresh scan instead of joining them.
        """
        self._generation += 1
        self._in_flight.clear()
        self._cache.clear()
        logger.info("Index cache cleared")

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()


_default_indexer: Indexer | None = None


def get_default_indexer() -> Indexer:
    """Get the process-wide indexer, creating it on first use."""
    global _default_indexer
    if _default_indexer is None:
        _default_indexer = Indexer()
    return _default_indexer


async def build_index(options: ScanOptions) -> Index:
    """Build or fetch the cached index using the default indexer."""
    return await get_default_indexer().build_index(options)


def clear_cache() -> None:
    """Clear the default indexer's cache."""
    get_default_indexer().clear_cache()
