#!/usr/bin/env python3
"""Unit tests for the plain-text fetcher"""

from twisted.internet import defer, task
from twisted.web.client import ResponseDone
from twisted.python.failure import Failure

from fakes import failure_of, result_of
from interaction_logger.http_client import FetchError, TextFetcher


class FakeResponse:
    """Response that delivers a fixed body"""

    def __init__(self, code, body=b""):
        self.code = code
        self.phrase = b"OK" if code == 200 else b"Error"
        self.body = body
        self.delivered = False

    def deliverBody(self, protocol):
        self.delivered = True
        protocol.dataReceived(self.body)
        protocol.connectionLost(Failure(ResponseDone()))


class FakeAgent:
    def __init__(self, response=None):
        self.response = response
        self.requests = []
        self.pending = None

    def request(self, method, uri, headers=None, bodyProducer=None):
        self.requests.append((method, uri))
        if self.response is None:
            self.pending = defer.Deferred()
            return self.pending
        return defer.succeed(self.response)


class TestTextFetcher:
    """Test fetching plain-text bodies"""

    def test_success_returns_text(self):
        agent = FakeAgent(FakeResponse(200, b"192.0.2.10\n"))
        fetcher = TextFetcher(task.Clock(), 10.0, agent)

        body = result_of(fetcher.fetch("https://ipv4.icanhazip.com/"))

        assert body == "192.0.2.10\n"
        assert agent.requests == [(b"GET", b"https://ipv4.icanhazip.com/")]

    def test_non_success_status_fails(self):
        response = FakeResponse(503, b"busy")
        fetcher = TextFetcher(task.Clock(), 10.0, FakeAgent(response))

        failure = failure_of(fetcher.fetch("https://example.test/list"))

        assert failure.check(FetchError)
        assert failure.value.code == 503
        assert "https://example.test/list" in str(failure.value)
        assert response.delivered

    def test_undecodable_bytes_replaced(self):
        fetcher = TextFetcher(task.Clock(), 10.0, FakeAgent(FakeResponse(200, b"ok\xff")))

        assert result_of(fetcher.fetch("https://example.test/")) == "ok�"

    def test_timeout(self):
        """A request with no answer fails once the timeout passes"""
        clock = task.Clock()
        fetcher = TextFetcher(clock, 5.0, FakeAgent())

        d = fetcher.fetch("https://example.test/")
        clock.advance(5.0)

        failure = failure_of(d)
        assert failure.check(defer.TimeoutError)
