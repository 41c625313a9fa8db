# interaction_logger/dns_server.py
# Version: 1.0.0
# Authoritative DNS server that records who looked up which subdomain

import logging
from typing import Optional, Union

from twisted.names import dns, server

from interaction_logger.authority import ZoneAuthority
from interaction_logger.events import (
    Channel,
    CorrelationEvent,
    EventSink,
    emit,
    parse_source_address,
)
from interaction_logger.zone import Zone

logger = logging.getLogger(__name__)


def subdomain_of(name: Union[bytes, str], apex: str) -> Optional[str]:
    """
    Strip the apex from a query name

    Returns:
        The labels in front of ".<apex>", or None when the name is the apex
        itself or lies outside the zone
    """
    if isinstance(name, bytes):
        name = name.decode("ascii", errors="replace")
    name = name.rstrip(".")
    suffix = "." + apex

    if len(name) <= len(suffix) or not name.lower().endswith(suffix.lower()):
        return None
    return name[: -len(suffix)]


class CorrelatingDNSServerFactory(server.DNSServerFactory):
    """
    DNS server factory answering from one zone

    Every query for a name under the apex produces a correlation event before
    the query is handed to the standard DNSServerFactory processing. The
    response is exactly what the plain factory would have sent.
    """

    def __init__(self, zone: Zone, sink: EventSink, verbose: int = 0):
        server.DNSServerFactory.__init__(self, authorities=[ZoneAuthority(zone)], verbose=verbose)
        self.apex = zone.apex
        self.sink = sink

    def handleQuery(self, message, protocol, address):
        source = self._source_host(protocol, address)

        # Each question is correlated on its own; only the first is answered
        for query in message.queries:
            self.correlate(query, source)

        return server.DNSServerFactory.handleQuery(self, message, protocol, address)

    def correlate(self, query: dns.Query, source_host: str) -> None:
        subdomain = subdomain_of(query.name.name, self.apex)
        if subdomain is None:
            return

        logger.debug(f"DNS interaction {subdomain} from {source_host}")
        emit(
            self.sink,
            CorrelationEvent(subdomain, parse_source_address(source_host), Channel.DNS),
        )

    @staticmethod
    def _source_host(protocol, address) -> str:
        # Datagram protocols pass the peer address; stream protocols don't
        if address is not None:
            return address[0]
        return protocol.transport.getPeer().host
