# interaction_logger/tor_exit_list.py
# Version: 1.0.0
# Cached Tor bulk exit list with lazy refresh

"""
Tor Exit List Cache

Holds a snapshot of https://check.torproject.org/torbulkexitlist and answers
membership questions from it. A snapshot older than the staleness window is
refreshed on the next lookup; if the refresh fails the old snapshot keeps
being used. Only the initial fetch is allowed to fail loudly.
"""

import ipaddress
import logging
from dataclasses import dataclass
from typing import FrozenSet, Union

from twisted.internet import defer

from interaction_logger.constants import TOR_EXIT_LIST_MAX_AGE, TOR_EXIT_LIST_URL

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


@dataclass(frozen=True)
class ExitListSnapshot:
    """Exit node addresses as of fetched_at (seconds on the cache's clock)"""

    fetched_at: float
    addresses: FrozenSet[IPAddress]

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def __contains__(self, address) -> bool:
        return address in self.addresses

    def __len__(self) -> int:
        return len(self.addresses)


def parse_exit_list(text: str) -> FrozenSet[IPAddress]:
    """Parse one address per line, skipping blanks and unparsable lines"""
    addresses = set()
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            addresses.add(ipaddress.ip_address(line))
        except ValueError:
            logger.warning(f"Ignoring invalid exit list entry: {line!r}")
    return frozenset(addresses)


def _as_address(address) -> IPAddress:
    if isinstance(address, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return address
    return ipaddress.ip_address(address)


class TorExitListCache:
    """
    Shared, lazily refreshed exit list

    Lookups on a fresh snapshot read the current reference and never wait.
    Refreshes are serialized by a DeferredLock and replace the snapshot in a
    single assignment, so every reader sees a complete snapshot.
    """

    def __init__(
        self,
        snapshot: ExitListSnapshot,
        fetcher,
        clock,
        url: str = TOR_EXIT_LIST_URL,
        max_age: float = TOR_EXIT_LIST_MAX_AGE,
    ):
        self.snapshot = snapshot
        self.fetcher = fetcher
        self.clock = clock
        self.url = url
        self.max_age = max_age
        self._refresh_lock = defer.DeferredLock()
        self.stats = {"refreshes": 0, "refresh_failures": 0}

    @classmethod
    def create(cls, fetcher, clock, url: str = TOR_EXIT_LIST_URL, max_age: float = TOR_EXIT_LIST_MAX_AGE):
        """
        Fetch the initial snapshot and build a cache around it

        Returns:
            Deferred firing with a TorExitListCache; fetch failures propagate
        """
        d = fetch_snapshot(fetcher, clock, url)

        def _created(snapshot):
            logger.info(f"Loaded Tor exit list: {len(snapshot)} addresses")
            return cls(snapshot, fetcher, clock, url, max_age)

        d.addCallback(_created)
        return d

    def is_fresh(self) -> bool:
        return self.snapshot.age(self.clock.seconds()) <= self.max_age

    def lookup(self, address):
        """
        Check whether an address is a known exit node

        Refreshes first if the snapshot is stale. A failed refresh falls back
        to the stale snapshot.

        Returns:
            Deferred firing with a bool
        """
        address = _as_address(address)

        if self.is_fresh():
            return defer.succeed(address in self.snapshot)

        d = self._refresh_lock.run(self._refresh_if_stale)
        d.addCallback(lambda _: address in self.snapshot)
        return d

    def _refresh_if_stale(self):
        # Another lookup may have refreshed while this one waited for the lock
        if self.is_fresh():
            return None

        d = fetch_snapshot(self.fetcher, self.clock, self.url)
        d.addCallbacks(self._replace, self._refresh_failed)
        return d

    def _replace(self, snapshot: ExitListSnapshot):
        self.snapshot = snapshot
        self.stats["refreshes"] += 1
        logger.info(
            f"Refreshed Tor exit list: {len(snapshot)} addresses "
            f"(refreshes: {self.stats['refreshes']}, failures: {self.stats['refresh_failures']})"
        )

    def _refresh_failed(self, failure):
        self.stats["refresh_failures"] += 1
        logger.warning(
            f"Tor exit list refresh failed, keeping snapshot from "
            f"{self.snapshot.age(self.clock.seconds()):.0f}s ago: {failure.getErrorMessage()}"
            f" (failures: {self.stats['refresh_failures']})"
        )


def fetch_snapshot(fetcher, clock, url: str = TOR_EXIT_LIST_URL):
    """Fetch and parse the exit list; fires with an ExitListSnapshot"""
    d = fetcher.fetch(url)
    d.addCallback(lambda text: ExitListSnapshot(clock.seconds(), parse_exit_list(text)))
    return d
