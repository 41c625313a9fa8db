# interaction_logger/events.py
# Version: 1.0.0
# Correlation events and their emission

"""
Correlation Events

A correlation event ties an interaction token (the subdomain) to the address
it was seen from and the channel it arrived on. Handlers never write events
directly; they hand them to an injected sink through emit(), which absorbs
any sink failure so that request handling is never affected.
"""

import ipaddress
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Union

from interaction_logger.constants import INTERACTION_LOGGER_NAME

logger = logging.getLogger(__name__)

SourceAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address, str]


class Channel(Enum):
    """Transport an interaction was observed on"""

    DNS = "dns"
    HTTP = "http"


@dataclass(frozen=True)
class CorrelationEvent:
    """One observed (subdomain, source address) pair"""

    subdomain: str
    source_address: SourceAddress
    channel: Channel

    def to_dict(self):
        return {
            "subdomain": self.subdomain,
            "source_address": str(self.source_address),
            "channel": self.channel.value,
        }


def parse_source_address(host: str) -> SourceAddress:
    """Parse a transport host string, keeping it verbatim if it is not an IP"""
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        return host


class EventSink:
    """Destination for correlation events"""

    def record(self, event: CorrelationEvent) -> None:
        raise NotImplementedError


class LoggingEventSink(EventSink):
    """Writes each event as one JSON line to the interactions logger"""

    def __init__(self, log: logging.Logger = None):
        self.log = log or logging.getLogger(INTERACTION_LOGGER_NAME)

    def record(self, event: CorrelationEvent) -> None:
        self.log.info(json.dumps(event.to_dict(), sort_keys=True))


def emit(sink: EventSink, event: CorrelationEvent) -> None:
    """Hand an event to a sink; a failing sink never reaches the caller"""
    try:
        sink.record(event)
    except Exception:
        logger.debug(f"Dropped correlation event {event}", exc_info=True)
