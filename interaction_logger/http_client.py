# interaction_logger/http_client.py
# Version: 1.0.0
# Outbound plain-text HTTP fetches

import logging

from twisted.internet import protocol
from twisted.web.client import Agent, readBody

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Upstream answered with a non-success status"""

    def __init__(self, url: str, code: int):
        super().__init__(f"GET {url} returned HTTP {code}")
        self.url = url
        self.code = code


class TextFetcher:
    """Fetches a URL and fires with its body decoded as text"""

    def __init__(self, reactor, timeout: float, agent=None):
        self.reactor = reactor
        self.timeout = timeout
        self.agent = agent or Agent(reactor)

    def fetch(self, url: str):
        """
        GET a URL

        Returns:
            Deferred firing with the response body as str, or failing with
            FetchError on a non-2xx status, or with the transport failure
        """
        logger.debug(f"Fetching {url}")
        d = self.agent.request(b"GET", url.encode("ascii"))
        d.addCallback(self._read_text, url)
        d.addTimeout(self.timeout, self.reactor)
        return d

    def _read_text(self, response, url: str):
        if not 200 <= response.code < 300:
            # Drain the body so the connection can be released
            response.deliverBody(protocol.Protocol())
            raise FetchError(url, response.code)

        d = readBody(response)
        d.addCallback(lambda body: body.decode("utf-8", errors="replace"))
        return d
