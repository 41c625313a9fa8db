# interaction_logger/constants.py
# Version: 1.0.0
# Interaction logger constants - all fixed values in one place

"""
Interaction Logger Constants

Published record timers, discovery endpoints, listener defaults and
validation limits. Everything that is policy rather than configuration
lives here.
"""

# =============================================================================
# LISTENERS
# =============================================================================
DNS_DEFAULT_PORT = 53
HTTP_DEFAULT_PORT = 80
DEFAULT_LISTEN_ADDRESS = "0.0.0.0"

# =============================================================================
# PUBLISHED ZONE
# =============================================================================
# Address records are not revalidated after startup, so keep them short-lived
ADDRESS_RECORD_TTL = 60

WILDCARD_LABEL = "*"
SOA_MNAME_LABEL = "ns"
SOA_RNAME_LABEL = "admin"
SOA_SERIAL = 1
SOA_REFRESH = 60 * 60 * 24  # 24 hours, also used as the SOA record TTL
SOA_RETRY = 60
SOA_EXPIRE = 60 * 60 * 24 * 30  # 30 days
SOA_MINIMUM = 0

# =============================================================================
# PUBLIC ADDRESS DISCOVERY
# =============================================================================
IPV4_DISCOVERY_URL = "https://ipv4.icanhazip.com/"
IPV6_DISCOVERY_URL = "https://ipv6.icanhazip.com/"
DISCOVERY_TIMEOUT = 10.0

# =============================================================================
# TOR EXIT LIST
# =============================================================================
TOR_EXIT_LIST_URL = "https://check.torproject.org/torbulkexitlist"
TOR_EXIT_LIST_MAX_AGE = 60 * 30  # Staleness window in seconds
TOR_EXIT_LIST_TIMEOUT = 15.0

# =============================================================================
# HTTP ENDPOINTS
# =============================================================================
DNS_QUERY_PATH = b"dns-query"
VISITOR_INFO_PATH = b"display-your-info"
SUBDOMAIN_PARAMETER = b"subdomain"

# =============================================================================
# LOGGING
# =============================================================================
INTERACTION_LOGGER_NAME = "interaction_logger.interactions"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUP_COUNT = 5

# =============================================================================
# NAME VALIDATION
# =============================================================================
MAX_DNS_NAME_LENGTH = 255  # Maximum length of a DNS name
MAX_DNS_LABEL_LENGTH = 63  # Maximum length of a single label

# Port range validation
MIN_PORT_NUMBER = 1
MAX_PORT_NUMBER = 65535
