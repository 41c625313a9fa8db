#!/usr/bin/env python3
"""Unit tests for the HTTP resources"""

import ipaddress
import logging

import pytest
from twisted.internet import error
from twisted.internet.address import IPv4Address, IPv6Address, UNIXAddress
from twisted.python.failure import Failure
from twisted.web import server, static
from twisted.web.test.requesthelper import DummyChannel, DummyRequest

from fakes import FailingSink, FakeFetcher, RecordingSink, result_of
from interaction_logger.constants import TOR_EXIT_LIST_MAX_AGE
from interaction_logger.events import Channel, CorrelationEvent
from interaction_logger.tor_exit_list import TorExitListCache
from interaction_logger.web import (
    DNSQueryResource,
    VisitorInfoResource,
    build_root,
    find_parameter,
    query_arguments,
)

URL = "https://check.torproject.org/torbulkexitlist"
EXIT_LIST = "185.220.101.1\n2001:db8::dead\n"


def _request(method, host="198.51.100.9", query=b"", client=None):
    request = DummyRequest([])
    request.method = method
    request.uri = b"/dns-query?" + query if query else b"/dns-query"
    request.client = client or IPv4Address("TCP", host, 1234)
    return request


def _body(request):
    return b"".join(request.written).decode("utf-8")


@pytest.fixture
def exit_list(clock):
    fetcher = FakeFetcher({URL: EXIT_LIST})
    return result_of(TorExitListCache.create(fetcher, clock, URL))


class TestFindParameter:
    def test_first_value_wins(self):
        assert find_parameter({b"subdomain": [b"one", b"two"]}, b"subdomain") == "one"

    def test_name_is_case_insensitive(self):
        assert find_parameter({b"SubDomain": [b"abc"]}, b"subdomain") == "abc"

    def test_missing_or_empty(self):
        assert find_parameter({}, b"subdomain") is None
        assert find_parameter({b"subdomain": []}, b"subdomain") is None

    def test_undecodable_value_is_replaced(self):
        assert find_parameter({b"subdomain": [b"ab\xff"]}, b"subdomain") == "ab�"


class TestQueryArguments:
    def test_reads_uri_query(self):
        request = _request(b"POST", query=b"subdomain=a%2Eb&x=1")

        assert query_arguments(request) == {b"subdomain": [b"a.b"], b"x": [b"1"]}

    def test_no_query(self):
        assert query_arguments(_request(b"POST")) == {}


class TestDNSQueryResource:
    """Test POST /dns-query"""

    def test_records_http_event(self):
        """subdomain=token123 from 198.51.100.9 gives one HTTP event and an empty 200"""
        sink = RecordingSink()
        request = _request(b"POST", query=b"subdomain=token123")

        request.render(DNSQueryResource(sink))

        assert sink.events == [
            CorrelationEvent("token123", ipaddress.ip_address("198.51.100.9"), Channel.HTTP)
        ]
        assert request.responseCode == 200
        assert request.written == [b""]
        assert request.finished == 1

    def test_parameter_name_case_insensitive(self):
        sink = RecordingSink()
        request = _request(b"POST", query=b"SubDomain=mixed")

        request.render(DNSQueryResource(sink))

        assert [event.subdomain for event in sink.events] == ["mixed"]

    def test_ipv6_client(self):
        sink = RecordingSink()
        request = _request(
            b"POST",
            query=b"subdomain=v6",
            client=IPv6Address("TCP", "2001:db8::5", 4321),
        )

        request.render(DNSQueryResource(sink))

        assert sink.events[0].source_address == ipaddress.ip_address("2001:db8::5")

    def test_missing_parameter_is_ok_without_event(self):
        sink = RecordingSink()
        request = _request(b"POST", query=b"other=x")

        request.render(DNSQueryResource(sink))

        assert sink.events == []
        assert request.responseCode == 200

    def test_empty_subdomain_is_recorded(self):
        """The value is taken verbatim, even when empty"""
        sink = RecordingSink()
        request = _request(b"POST", query=b"subdomain=")

        request.render(DNSQueryResource(sink))

        assert [event.subdomain for event in sink.events] == [""]

    def test_form_body_is_ignored(self):
        """Only the URI query string carries the subdomain"""
        sink = RecordingSink()
        request = _request(b"POST")
        request.args = {b"subdomain": [b"from-body"]}

        request.render(DNSQueryResource(sink))

        assert sink.events == []
        assert request.responseCode == 200

    def test_sink_failure_still_ok(self):
        sink = FailingSink()
        request = _request(b"POST", query=b"subdomain=token")

        request.render(DNSQueryResource(sink))

        assert sink.calls == 1
        assert request.responseCode == 200

    def test_non_ip_transport_is_ok_without_event(self):
        sink = RecordingSink()
        request = _request(
            b"POST",
            query=b"subdomain=token",
            client=UNIXAddress(b"/run/interaction-logger.sock"),
        )

        request.render(DNSQueryResource(sink))

        assert sink.events == []
        assert request.responseCode == 200


class TestVisitorInfoResource:
    """Test GET /display-your-info"""

    def test_ordinary_visitor(self, exit_list):
        request = _request(b"GET", host="203.0.113.20")

        request.render(VisitorInfoResource(exit_list))

        body = _body(request)
        assert request.finished == 1
        assert '<dd id="address">203.0.113.20</dd>' in body
        assert '<dd id="is-tor">false</dd>' in body

    def test_tor_exit_visitor(self, exit_list):
        request = _request(b"GET", host="185.220.101.1")

        request.render(VisitorInfoResource(exit_list))

        body = _body(request)
        assert '<dd id="address">185.220.101.1</dd>' in body
        assert '<dd id="is-tor">true</dd>' in body

    def test_ipv6_tor_exit_visitor(self, exit_list):
        request = _request(b"GET", client=IPv6Address("TCP", "2001:db8::dead", 443))

        request.render(VisitorInfoResource(exit_list))

        assert '<dd id="is-tor">true</dd>' in _body(request)

    def test_response_is_html(self, exit_list):
        request = _request(b"GET")

        request.render(VisitorInfoResource(exit_list))

        assert _body(request).startswith("<!DOCTYPE html>")
        assert request.responseHeaders.getRawHeaders(b"content-type")[0].startswith(b"text/html")

    def test_stale_list_waits_for_refresh(self, exit_list, clock):
        """The page is rendered only after the stale list is reloaded"""
        clock.advance(TOR_EXIT_LIST_MAX_AGE + 1)
        del exit_list.fetcher.responses[URL]
        request = _request(b"GET", host="198.51.100.77")

        request.render(VisitorInfoResource(exit_list))
        assert request.finished == 0
        assert request.written == []

        exit_list.fetcher.pending[0].callback("198.51.100.77\n")

        assert request.finished == 1
        assert '<dd id="is-tor">true</dd>' in _body(request)

    def test_failed_refresh_uses_previous_list(self, exit_list, clock):
        clock.advance(TOR_EXIT_LIST_MAX_AGE + 1)
        exit_list.fetcher.responses[URL] = error.ConnectError("upstream down")
        request = _request(b"GET", host="185.220.101.1")

        request.render(VisitorInfoResource(exit_list))

        assert request.finished == 1
        assert '<dd id="is-tor">true</dd>' in _body(request)

    def test_client_gone_during_refresh(self, exit_list, clock, caplog):
        """A visitor who disconnects while the list reloads gets nothing written"""
        clock.advance(TOR_EXIT_LIST_MAX_AGE + 1)
        del exit_list.fetcher.responses[URL]
        request = server.Request(DummyChannel())
        request.method = b"GET"

        VisitorInfoResource(exit_list).render(request)
        request.connectionLost(Failure(error.ConnectionDone()))

        with caplog.at_level(logging.DEBUG):
            exit_list.fetcher.pending[0].callback("192.168.1.1\n")

        assert not request.finished
        assert [r for r in caplog.records if r.levelno >= logging.ERROR] == []
        # The refresh itself still lands for later visitors
        assert exit_list.stats["refreshes"] == 1

    def test_non_ip_transport_is_not_tor(self, exit_list):
        request = _request(b"GET", client=UNIXAddress(b"/run/interaction-logger.sock"))

        request.render(VisitorInfoResource(exit_list))

        assert request.finished == 1
        assert '<dd id="is-tor">false</dd>' in _body(request)


class TestBuildRoot:
    def test_routes_without_static_dir(self, exit_list):
        root = build_root(exit_list, RecordingSink())
        request = DummyRequest([])

        assert isinstance(root.getChildWithDefault(b"dns-query", request), DNSQueryResource)
        assert isinstance(
            root.getChildWithDefault(b"display-your-info", request), VisitorInfoResource
        )

    def test_static_dir_is_fallback(self, exit_list, tmp_path):
        (tmp_path / "index.html").write_text("hello")

        root = build_root(exit_list, RecordingSink(), str(tmp_path))

        assert isinstance(root, static.File)
        assert isinstance(root.getChildWithDefault(b"dns-query", DummyRequest([])), DNSQueryResource)
