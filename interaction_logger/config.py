import configparser
import os
import socket
import sys
from typing import Any, Optional

from interaction_logger.constants import (
    DEFAULT_LISTEN_ADDRESS,
    DISCOVERY_TIMEOUT,
    DNS_DEFAULT_PORT,
    HTTP_DEFAULT_PORT,
    IPV4_DISCOVERY_URL,
    IPV6_DISCOVERY_URL,
    TOR_EXIT_LIST_MAX_AGE,
    TOR_EXIT_LIST_TIMEOUT,
    TOR_EXIT_LIST_URL,
)


class InteractionLoggerConfig:
    """Configuration manager for the interaction logger"""

    DEFAULT_CONFIG_PATH = "/etc/interaction-logger/interaction-logger.cfg"
    DEFAULT_CONFIG = {
        'dns': {
            'listen-address': DEFAULT_LISTEN_ADDRESS,
            'listen-port': str(DNS_DEFAULT_PORT),
            'zone': '',
        },
        'http': {
            'listen-address': DEFAULT_LISTEN_ADDRESS,
            'listen-port': str(HTTP_DEFAULT_PORT),
            'static-dir': '',
        },
        'discovery': {
            'ipv4-url': IPV4_DISCOVERY_URL,
            'ipv6-url': IPV6_DISCOVERY_URL,
            'timeout': str(DISCOVERY_TIMEOUT),
        },
        'tor-exit-list': {
            'url': TOR_EXIT_LIST_URL,
            'max-age': str(TOR_EXIT_LIST_MAX_AGE),
            'timeout': str(TOR_EXIT_LIST_TIMEOUT),
        },
        'log-file': {
            'log-file': 'none',
            'debug-level': 'INFO',
            'syslog': 'false',
        },
    }

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self.DEFAULT_CONFIG_PATH
        self.config = configparser.ConfigParser(interpolation=None)
        self._load_defaults()
        self._load_config()

    def _load_defaults(self):
        """Load default configuration"""
        for section, options in self.DEFAULT_CONFIG.items():
            self.config.add_section(section)
            for key, value in options.items():
                self.config.set(section, key, value)

    def _load_config(self):
        """Load configuration from file"""
        if os.path.exists(self.config_path):
            try:
                self.config.read(self.config_path)
            except configparser.Error as e:
                print(f"Error reading config file {self.config_path}: {e}", file=sys.stderr)
                sys.exit(1)
        else:
            print(f"Warning: Config file {self.config_path} not found, using defaults")

    def get(self, section: str, option: str, fallback: Any = None) -> str:
        """Get configuration value"""
        try:
            return self.config.get(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return fallback

    def getint(self, section: str, option: str, fallback: int = 0) -> int:
        """Get integer configuration value"""
        try:
            return self.config.getint(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    def getfloat(self, section: str, option: str, fallback: float = 0.0) -> float:
        """Get float configuration value"""
        try:
            return self.config.getfloat(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    def getboolean(self, section: str, option: str, fallback: bool = False) -> bool:
        """Get boolean configuration value"""
        try:
            return self.config.getboolean(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    def get_zone_name(self) -> str:
        """Zone apex, falling back to the host name

        The result is not validated here; see dns_validator.validate_zone_name.
        """
        zone = (self.get('dns', 'zone') or '').strip()
        return zone or socket.gethostname()

    def get_static_dir(self) -> Optional[str]:
        static_dir = (self.get('http', 'static-dir') or '').strip()
        return static_dir or None
