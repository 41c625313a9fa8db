# interaction_logger/authority.py
# Version: 1.0.0
# Twisted authority serving a prebuilt Zone, with wildcard matching

import logging

from twisted.names import authority, dns

from interaction_logger.zone import Zone

logger = logging.getLogger(__name__)


class ZoneAuthority(authority.FileAuthority):
    """
    Authoritative resolver for a single in-memory Zone

    Record search is Twisted's FileAuthority logic. Twisted does not expand
    wildcards, so a name under the apex without records of its own is answered
    from the wildcard owner and the answers are renamed to the queried name.
    """

    def __init__(self, zone: Zone):
        self.zone = zone
        authority.FileAuthority.__init__(self, zone)

    def loadFile(self, zone: Zone):
        apex = zone.apex.encode("ascii")
        self.soa = (apex, zone.soa)
        self.records = zone.records_by_name()
        self._wildcard = zone.wildcard_name.encode("ascii")

    def _lookup(self, name, cls, type, timeout=None):
        lowered = name.lower()
        if (
            lowered not in self.records
            and lowered != self.soa[0]
            and dns._isSubdomainOf(lowered, self.soa[0])
            and self._wildcard in self.records
        ):
            logger.debug(f"Wildcard match for {name!r}")
            d = authority.FileAuthority._lookup(self, self._wildcard, cls, type, timeout)
            d.addCallback(self._rename_answers, name)
            return d

        return authority.FileAuthority._lookup(self, name, cls, type, timeout)

    def _rename_answers(self, result, name):
        answers, authority_section, additional = result
        for header in answers:
            if header.name.name == self._wildcard:
                header.name = dns.Name(name)
        return answers, authority_section, additional
