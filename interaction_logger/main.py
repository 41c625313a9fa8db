#!/usr/bin/env python3
"""
Main entry point for the interaction logger
Runs the authoritative DNS listener and the HTTP listener on one reactor
"""

import argparse
import errno
import logging
import logging.handlers
import os
import sys

from twisted.internet import defer

from interaction_logger.constants import (
    DISCOVERY_TIMEOUT,
    DNS_DEFAULT_PORT,
    HTTP_DEFAULT_PORT,
    IPV4_DISCOVERY_URL,
    IPV6_DISCOVERY_URL,
    LOG_FILE_BACKUP_COUNT,
    LOG_FILE_MAX_BYTES,
    MAX_PORT_NUMBER,
    MIN_PORT_NUMBER,
    TOR_EXIT_LIST_MAX_AGE,
    TOR_EXIT_LIST_TIMEOUT,
    TOR_EXIT_LIST_URL,
)


def setup_logging(log_file=None, log_level="INFO", syslog=False):
    """Setup logging configuration"""
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    # Setup root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Clear existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file and log_file.lower() != "none":
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir and not os.path.exists(log_dir):
                os.makedirs(log_dir, mode=0o755)

            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUP_COUNT
            )
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            print(f"Warning: Could not setup file logging to {log_file}: {e}")

    if syslog:
        try:
            syslog_handler = logging.handlers.SysLogHandler(address="/dev/log")
            syslog_formatter = logging.Formatter(
                "interaction-logger[%(process)d]: %(levelname)s - %(message)s"
            )
            syslog_handler.setFormatter(syslog_formatter)
            root_logger.addHandler(syslog_handler)
        except OSError as e:
            print(f"Warning: Could not setup syslog: {e}")


def _describe_bind_error(error, port, address, logger):
    """Log port binding errors with helpful messages"""
    error_msg = str(error)
    socket_error = getattr(error, "socketError", None)
    error_number = getattr(socket_error, "errno", None)

    if "Address already in use" in error_msg or error_number == errno.EADDRINUSE:
        logger.error(f"Port {port} is already in use on {address}")
        logger.error(
            f"You can find the process using: sudo lsof -i :{port} "
            f"or sudo netstat -tulpn | grep :{port}"
        )
    elif "Permission denied" in error_msg or error_number == errno.EACCES:
        logger.error(f"Permission denied to bind to port {port}")
        if port < 1024:
            logger.error("Ports below 1024 require root privileges or CAP_NET_BIND_SERVICE")
    else:
        logger.error(f"Failed to bind to {address}:{port}: {error}")


def _listen(listen, port, address, logger):
    from twisted.internet.error import CannotListenError

    try:
        return listen()
    except CannotListenError as e:
        _describe_bind_error(e, port, address, logger)
        raise


def start_dns_listeners(reactor, factory, listen_port, listen_address, logger):
    """Bind the DNS server on UDP and TCP"""
    from twisted.names import dns

    udp_protocol = dns.DNSDatagramProtocol(controller=factory)

    udp_server = _listen(
        lambda: reactor.listenUDP(listen_port, udp_protocol, interface=listen_address),
        listen_port,
        listen_address,
        logger,
    )
    # Port 0 picks a free UDP port; TCP follows it
    actual_port = udp_server.getHost().port
    tcp_server = _listen(
        lambda: reactor.listenTCP(actual_port, factory, interface=listen_address),
        actual_port,
        listen_address,
        logger,
    )

    logger.info(f"DNS server listening on {listen_address}:{actual_port} (UDP + TCP)")
    return udp_server, tcp_server


def start_http_listener(reactor, site, listen_port, listen_address, logger):
    """Bind the web server on TCP"""
    http_server = _listen(
        lambda: reactor.listenTCP(listen_port, site, interface=listen_address),
        listen_port,
        listen_address,
        logger,
    )
    logger.info(f"Web server listening on {listen_address}:{http_server.getHost().port}")
    return http_server


def _validate_port(value):
    """Validate port number is in valid range"""
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid port number: {value}")
    if port < MIN_PORT_NUMBER or port > MAX_PORT_NUMBER:
        raise argparse.ArgumentTypeError(
            f"Port must be between {MIN_PORT_NUMBER} and {MAX_PORT_NUMBER}"
        )
    return port


def _parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Out-of-band interaction logger: an authoritative name server and "
        "HTTP listener that record which subdomain was referenced from which address.",
    )
    parser.add_argument(
        "-c",
        "--config",
        default="/etc/interaction-logger/interaction-logger.cfg",
        help="Configuration file path",
    )
    parser.add_argument("-l", "--logfile", help="Log file path (overrides config)")
    parser.add_argument(
        "-L", "--loglevel", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log level"
    )
    parser.add_argument("-z", "--zone", help="Zone apex (overrides config and host name)")
    parser.add_argument(
        "-a", "--address", help="Listen address for both listeners (overrides config)"
    )
    parser.add_argument(
        "--dns-port", type=_validate_port, help="DNS listen port (overrides config)"
    )
    parser.add_argument(
        "--http-port", type=_validate_port, help="HTTP listen port (overrides config)"
    )
    parser.add_argument("-v", "--version", action="store_true", help="Show version")

    return parser.parse_args(argv)


def _handle_version_check(args):
    """Handle version check and exit if requested"""
    if args.version:
        from interaction_logger import __version__

        print(f"Interaction logger version {__version__}")
        sys.exit(0)


def _load_configuration(config_path):
    """Load configuration from file"""
    from interaction_logger.config import InteractionLoggerConfig

    print(f"Loading configuration from: {config_path}")
    return InteractionLoggerConfig(config_path)


def _get_logging_config(config, args):
    """Get logging configuration from config and args"""
    log_file = args.logfile or config.get("log-file", "log-file")
    log_level = args.loglevel or config.get("log-file", "debug-level", "INFO")
    syslog = config.getboolean("log-file", "syslog", False)

    return log_file, log_level, syslog


def _get_service_config(config, args):
    """Get listener and upstream configuration from config and args"""
    return {
        "zone": args.zone or config.get_zone_name(),
        "dns_address": args.address or config.get("dns", "listen-address", "0.0.0.0"),
        "dns_port": args.dns_port or config.getint("dns", "listen-port", DNS_DEFAULT_PORT),
        "http_address": args.address or config.get("http", "listen-address", "0.0.0.0"),
        "http_port": args.http_port or config.getint("http", "listen-port", HTTP_DEFAULT_PORT),
        "static_dir": config.get_static_dir(),
        "ipv4_url": config.get("discovery", "ipv4-url", IPV4_DISCOVERY_URL),
        "ipv6_url": config.get("discovery", "ipv6-url", IPV6_DISCOVERY_URL),
        "discovery_timeout": config.getfloat("discovery", "timeout", DISCOVERY_TIMEOUT),
        "exit_list_url": config.get("tor-exit-list", "url", TOR_EXIT_LIST_URL),
        "exit_list_max_age": config.getfloat("tor-exit-list", "max-age", TOR_EXIT_LIST_MAX_AGE),
        "exit_list_timeout": config.getfloat("tor-exit-list", "timeout", TOR_EXIT_LIST_TIMEOUT),
    }


def _log_service_config(service_config, logger):
    logger.info("Configuration loaded:")
    logger.info(f"  Zone: {service_config['zone']}")
    logger.info(f"  DNS listen: {service_config['dns_address']}:{service_config['dns_port']}")
    logger.info(f"  HTTP listen: {service_config['http_address']}:{service_config['http_port']}")
    logger.info(f"  Static files: {service_config['static_dir'] or 'disabled'}")
    logger.info(f"  Tor exit list: {service_config['exit_list_url']}")


def initialize_services(reactor, service_config):
    """
    Discover public addresses and load the Tor exit list

    Returns:
        Deferred firing with (Zone, TorExitListCache); fails if either fails
    """
    from twisted.web.client import Agent

    from interaction_logger.http_client import TextFetcher
    from interaction_logger.tor_exit_list import TorExitListCache
    from interaction_logger.zone import build_zone

    agent = Agent(reactor)
    discovery_fetcher = TextFetcher(reactor, service_config["discovery_timeout"], agent)
    exit_list_fetcher = TextFetcher(reactor, service_config["exit_list_timeout"], agent)

    zone_d = build_zone(
        service_config["zone"],
        discovery_fetcher,
        service_config["ipv4_url"],
        service_config["ipv6_url"],
    )
    exit_list_d = TorExitListCache.create(
        exit_list_fetcher,
        reactor,
        service_config["exit_list_url"],
        service_config["exit_list_max_age"],
    )

    d = defer.gatherResults([zone_d, exit_list_d], consumeErrors=True)
    d.addErrback(_unwrap_first_error)
    return d


def _unwrap_first_error(failure):
    failure.trap(defer.FirstError)
    return failure.value.subFailure


def start_listeners(reactor, service_config, zone, exit_list, logger):
    """Bind the DNS and HTTP listeners, each with its own event sink"""
    from interaction_logger.dns_server import CorrelatingDNSServerFactory
    from interaction_logger.events import LoggingEventSink
    from interaction_logger.web import build_site

    factory = CorrelatingDNSServerFactory(zone, LoggingEventSink())
    site = build_site(exit_list, LoggingEventSink(), service_config["static_dir"])

    listeners = list(
        start_dns_listeners(
            reactor, factory, service_config["dns_port"], service_config["dns_address"], logger
        )
    )
    listeners.append(
        start_http_listener(
            reactor, site, service_config["http_port"], service_config["http_address"], logger
        )
    )
    return listeners


def describe_families(zone):
    """Address record types the zone publishes, joined for logging"""
    from twisted.names import dns

    families = [name for name, rtype in (("A", dns.A), ("AAAA", dns.AAAA)) if zone.has_family(rtype)]
    return ", ".join(families)


def run(service_config, logger):
    """Start both listeners once startup data is available; returns an exit code"""
    # Note: reactor is dynamically typed at runtime, hence the type: ignore comments
    from twisted.internet import reactor

    state = {"exit_code": 0}

    def _ready(results):
        zone, exit_list = results
        start_listeners(reactor, service_config, zone, exit_list, logger)
        logger.info(f"Interaction logger ready for {zone.apex} ({describe_families(zone)})")

    def _failed(failure):
        logger.error(f"Startup failed: {failure.getErrorMessage()}")
        state["exit_code"] = 1
        reactor.stop()  # type: ignore[attr-defined]  # Twisted reactor

    def _startup():
        d = initialize_services(reactor, service_config)
        d.addCallback(_ready)
        d.addErrback(_failed)

    reactor.callWhenRunning(_startup)  # type: ignore[attr-defined]  # Twisted reactor
    reactor.run()  # type: ignore[attr-defined]  # Twisted reactor

    logger.info("Interaction logger stopped")
    return state["exit_code"]


def main(argv=None):
    """Main entry point"""
    args = _parse_arguments(argv)

    _handle_version_check(args)

    try:
        config = _load_configuration(args.config)

        log_file, log_level, syslog = _get_logging_config(config, args)
        setup_logging(log_file, log_level, syslog)
        logger = logging.getLogger("interaction_logger")

        logger.info("Starting interaction logger")

        service_config = _get_service_config(config, args)

        from interaction_logger.dns_validator import ZoneNameError, validate_zone_name

        try:
            service_config["zone"] = validate_zone_name(service_config["zone"])
        except ZoneNameError as e:
            logger.error(f"Invalid zone name {service_config['zone']!r}: {e}")
            sys.exit(1)

        _log_service_config(service_config, logger)

        sys.exit(run(service_config, logger))

    except Exception as e:
        print(f"Error starting interaction logger: {e}", file=sys.stderr)
        import traceback

        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
