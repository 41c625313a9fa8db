# interaction_logger/dns_validator.py
# Version: 1.0.0
# Zone apex validation

"""
Zone Name Validator

The apex comes from host configuration and is published as-is, so it is
checked once at startup. A name that fails here is fatal.
"""

import logging

from interaction_logger.constants import MAX_DNS_LABEL_LENGTH, MAX_DNS_NAME_LENGTH

logger = logging.getLogger(__name__)


class ZoneNameError(ValueError):
    """Configured zone name is not a valid DNS name"""

    pass


def normalize_zone_name(name: str) -> str:
    """Lower-case a domain name and drop the trailing root dot"""
    return name.strip().rstrip(".").lower()


def validate_zone_name(name: str) -> str:
    """
    Validate a zone apex and return it normalized

    Args:
        name: Domain name, optionally fully qualified with a trailing dot

    Returns:
        The normalized name

    Raises:
        ZoneNameError: If the name is not a syntactically valid DNS name
    """
    normalized = normalize_zone_name(name)

    if not normalized:
        raise ZoneNameError("Zone name is empty")

    if len(normalized) > MAX_DNS_NAME_LENGTH:
        raise ZoneNameError(
            f"DNS name too long: {len(normalized)} characters (maximum {MAX_DNS_NAME_LENGTH})"
        )

    for label in normalized.split("."):
        if not label:
            raise ZoneNameError(f"Empty label in DNS name: '{name}'")

        if len(label) > MAX_DNS_LABEL_LENGTH:
            raise ZoneNameError(
                f"DNS label too long: '{label}' is {len(label)} characters "
                f"(maximum {MAX_DNS_LABEL_LENGTH})"
            )

        # Hostnames only: ASCII letters, digits and hyphens
        if not all(c.isascii() and (c.isalnum() or c == "-") for c in label):
            raise ZoneNameError(f"Invalid characters in DNS label: '{label}'")

        if label.startswith("-") or label.endswith("-"):
            raise ZoneNameError(f"DNS label cannot start or end with hyphen: '{label}'")

    logger.debug(f"Zone name {normalized} is valid")
    return normalized
