# interaction_logger/web.py
# Version: 1.0.0
# HTTP side: interaction reports and visitor info

"""
Web Resources

POST /dns-query records a correlation event for the reported subdomain and
the address of the connection it came in on. It never rejects input.

GET /display-your-info renders the caller's address and whether the Tor exit
list knows it.

Anything else falls through to static files when a directory is configured.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

from twisted.internet import defer
from twisted.python.filepath import FilePath
from twisted.web import http, resource, server, static, template

from interaction_logger.constants import (
    DNS_QUERY_PATH,
    SUBDOMAIN_PARAMETER,
    VISITOR_INFO_PATH,
)
from interaction_logger.events import (
    Channel,
    CorrelationEvent,
    EventSink,
    emit,
    parse_source_address,
)
from interaction_logger.tor_exit_list import TorExitListCache

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"


def client_host(request) -> Optional[str]:
    """Host of the connection a request arrived on, if it has one"""
    return getattr(request.getClientAddress(), "host", None)


def query_arguments(request) -> Dict[bytes, List[bytes]]:
    """Arguments from the query string of the request URI, ignoring any body"""
    _, _, query = request.uri.partition(b"?")
    return http.parse_qs(query, 1)


def find_parameter(args: Dict[bytes, List[bytes]], name: bytes) -> Optional[str]:
    """First value of a request argument, matching the name case-insensitively"""
    for key, values in args.items():
        if key.lower() == name and values:
            return values[0].decode("utf-8", errors="replace")
    return None


class DNSQueryResource(resource.Resource):
    """Records subdomains reported over HTTP"""

    isLeaf = True

    def __init__(self, sink: EventSink):
        resource.Resource.__init__(self)
        self.sink = sink

    def render_POST(self, request):
        subdomain = find_parameter(query_arguments(request), SUBDOMAIN_PARAMETER)
        host = client_host(request)

        if subdomain is not None and host is not None:
            logger.debug(f"HTTP interaction {subdomain} from {host}")
            emit(self.sink, CorrelationEvent(subdomain, parse_source_address(host), Channel.HTTP))

        request.setResponseCode(http.OK)
        return b""


class VisitorInfoElement(template.Element):
    loader = template.XMLFile(FilePath(str(TEMPLATE_DIR / "visitor_info.xhtml")))

    def __init__(self, address: str, is_tor: bool):
        template.Element.__init__(self)
        self.address = address
        self.is_tor = is_tor

    @template.renderer
    def visitor(self, request, tag):
        return tag.fillSlots(
            address=self.address,
            is_tor="true" if self.is_tor else "false",
        )


class VisitorInfoResource(resource.Resource):
    """Shows visitors their own address and Tor exit classification"""

    isLeaf = True

    def __init__(self, exit_list: TorExitListCache):
        resource.Resource.__init__(self)
        self.exit_list = exit_list

    def render_GET(self, request):
        host = client_host(request) or ""
        request.setHeader(b"content-type", b"text/html; charset=utf-8")

        # A stale list refresh can outlive the client connection
        disconnected = []
        request.notifyFinish().addErrback(disconnected.append)

        d = self._classify(host)
        d.addCallback(self._render, request, host, disconnected)
        d.addErrback(self._render_failed, request, disconnected)
        return server.NOT_DONE_YET

    def _classify(self, host: str):
        try:
            return self.exit_list.lookup(host)
        except ValueError:
            # Not an IP transport, so it can't be an exit node
            return defer.succeed(False)

    def _render(self, is_tor, request, host, disconnected):
        if disconnected:
            logger.debug(f"Visitor {host} disconnected before the page was ready")
            return None
        return template.renderElement(request, VisitorInfoElement(host, is_tor))

    def _render_failed(self, failure, request, disconnected):
        logger.error(f"Failed to render visitor info: {failure.getErrorMessage()}")
        if disconnected:
            return
        request.setResponseCode(http.INTERNAL_SERVER_ERROR)
        request.finish()


def build_root(exit_list: TorExitListCache, sink: EventSink, static_dir: Optional[str] = None):
    """Resource tree for the HTTP listener"""
    if static_dir:
        root = static.File(static_dir)
    else:
        root = resource.Resource()

    root.putChild(DNS_QUERY_PATH, DNSQueryResource(sink))
    root.putChild(VISITOR_INFO_PATH, VisitorInfoResource(exit_list))
    return root


def build_site(exit_list: TorExitListCache, sink: EventSink, static_dir: Optional[str] = None):
    return server.Site(build_root(exit_list, sink, static_dir))
