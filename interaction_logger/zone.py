# interaction_logger/zone.py
# Version: 1.0.0
# Authoritative zone built from the host's live public addresses

"""
Zone Builder

At startup the server asks an external echo service for its public IPv4 and
IPv6 addresses, then publishes them for the apex and for the wildcard name.
Either family may be missing; both missing is fatal because there would be
nothing to publish. The zone is built once and never changes afterwards, so
an address change needs a restart.
"""

import ipaddress
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Tuple

from twisted.internet import defer
from twisted.names import dns

from interaction_logger.constants import (
    ADDRESS_RECORD_TTL,
    IPV4_DISCOVERY_URL,
    IPV6_DISCOVERY_URL,
    SOA_EXPIRE,
    SOA_MINIMUM,
    SOA_MNAME_LABEL,
    SOA_REFRESH,
    SOA_RETRY,
    SOA_RNAME_LABEL,
    SOA_SERIAL,
    WILDCARD_LABEL,
)

logger = logging.getLogger(__name__)

RecordKey = Tuple[str, int]

_RECORD_CLASSES = {
    dns.A: dns.Record_A,
    dns.AAAA: dns.Record_AAAA,
}


class ZoneBuildError(Exception):
    """Neither address family could be discovered"""

    def __init__(self, apex: str, ipv4_reason, ipv6_reason):
        super().__init__(
            f"Couldn't obtain a public IP address for {apex}; "
            f"IPv4 request failed: {ipv4_reason}; "
            f"IPv6 request failed: {ipv6_reason}"
        )
        self.ipv4_reason = ipv4_reason
        self.ipv6_reason = ipv6_reason


@dataclass(frozen=True)
class RecordSet:
    """All records of one type at one owner name"""

    name: str
    type: int
    ttl: int
    records: Tuple[object, ...]


@dataclass(frozen=True)
class Zone:
    """Immutable authoritative data for a single apex"""

    apex: str
    records: Mapping[RecordKey, RecordSet]

    @property
    def wildcard_name(self) -> str:
        return wildcard_name(self.apex)

    def get(self, name: str, record_type: int):
        return self.records.get((name.lower(), record_type))

    def has_family(self, record_type: int) -> bool:
        return any(rtype == record_type for _, rtype in self.records)

    def records_by_name(self) -> Dict[bytes, List[object]]:
        """Records grouped by lower-cased owner name, as Twisted authorities keep them"""
        grouped: Dict[bytes, List[object]] = {}
        for record_set in self.records.values():
            key = record_set.name.lower().encode("ascii")
            grouped.setdefault(key, []).extend(record_set.records)
        return grouped

    @property
    def soa(self):
        return self.get(self.apex, dns.SOA).records[0]


def wildcard_name(apex: str) -> str:
    return f"{WILDCARD_LABEL}.{apex}"


def make_address_records(
    names: Iterable[str], record_type: int, value: str, ttl: int = ADDRESS_RECORD_TTL
) -> Dict[RecordKey, RecordSet]:
    """Build one single-address record set per owner name"""
    record_class = _RECORD_CLASSES[record_type]
    return {
        (name, record_type): RecordSet(
            name=name,
            type=record_type,
            ttl=ttl,
            records=(record_class(value, ttl=ttl),),
        )
        for name in names
    }


def make_soa_record(apex: str) -> Dict[RecordKey, RecordSet]:
    """Start-of-authority record set for the apex; timers are fixed policy"""
    soa = dns.Record_SOA(
        mname=f"{SOA_MNAME_LABEL}.{apex}",
        rname=f"{SOA_RNAME_LABEL}.{apex}",
        serial=SOA_SERIAL,
        refresh=SOA_REFRESH,
        retry=SOA_RETRY,
        expire=SOA_EXPIRE,
        minimum=SOA_MINIMUM,
        ttl=SOA_REFRESH,
    )
    return {(apex, dns.SOA): RecordSet(name=apex, type=dns.SOA, ttl=SOA_REFRESH, records=(soa,))}


def assemble_zone(apex: str, ipv4_address=None, ipv6_address=None) -> Zone:
    """
    Assemble a zone from whichever addresses were discovered

    Raises:
        ValueError: If no address is given at all
    """
    if ipv4_address is None and ipv6_address is None:
        raise ValueError(f"Zone {apex} needs at least one address")

    names = [apex, wildcard_name(apex)]
    records: Dict[RecordKey, RecordSet] = {}

    if ipv4_address is not None:
        records.update(make_address_records(names, dns.A, str(ipv4_address)))
    if ipv6_address is not None:
        records.update(make_address_records(names, dns.AAAA, str(ipv6_address)))

    records.update(make_soa_record(apex))
    return Zone(apex=apex, records=MappingProxyType(records))


def parse_public_address(text: str, family: type):
    """Parse an echo service response body as an address of the given family"""
    return family(text.strip())


def discover_address(fetcher, url: str, family: type):
    """Ask an echo service for our public address; fires with an ipaddress object"""
    d = fetcher.fetch(url)
    d.addCallback(parse_public_address, family)
    return d


def build_zone(apex: str, fetcher, ipv4_url: str = IPV4_DISCOVERY_URL, ipv6_url: str = IPV6_DISCOVERY_URL):
    """
    Discover public addresses and build the zone for an apex

    Both lookups run concurrently and both are awaited, whichever fails first.

    Args:
        apex: Normalized zone apex
        fetcher: Object with a fetch(url) method returning a Deferred of text
        ipv4_url: Echo service answering over IPv4 only
        ipv6_url: Echo service answering over IPv6 only

    Returns:
        Deferred firing with a Zone, or failing with ZoneBuildError
    """
    lookups = [
        discover_address(fetcher, ipv4_url, ipaddress.IPv4Address),
        discover_address(fetcher, ipv6_url, ipaddress.IPv6Address),
    ]
    d = defer.DeferredList(lookups, consumeErrors=True)
    d.addCallback(_zone_from_lookups, apex)
    return d


def _zone_from_lookups(results, apex: str) -> Zone:
    (ipv4_ok, ipv4_result), (ipv6_ok, ipv6_result) = results

    if not ipv4_ok and not ipv6_ok:
        raise ZoneBuildError(
            apex, ipv4_result.getErrorMessage(), ipv6_result.getErrorMessage()
        )

    addresses = {}
    for family, ok, result in (("IPv4", ipv4_ok, ipv4_result), ("IPv6", ipv6_ok, ipv6_result)):
        if ok:
            logger.info(f"Public {family} address: {result}")
            addresses[family] = result
        else:
            logger.warning(
                f"Public {family} address unavailable, publishing without it: "
                f"{result.getErrorMessage()}"
            )

    return assemble_zone(apex, addresses.get("IPv4"), addresses.get("IPv6"))
