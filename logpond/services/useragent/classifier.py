from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ua_parser.basic import Resolver
from ua_parser.core import Domain

from logpond.services.cache import FacetCache
from logpond.services.logparser.schemas import UNKNOWN_AGENT, UserAgentFacets

if TYPE_CHECKING:
    from ua_parser.core import Matchers

logger = logging.getLogger(__name__)

# Columns are 32-bit integers.
MAX_VERSION = 2**31 - 1


def _version(value: str | None) -> int | None:
    """Integer version component, None for non-numeric parts like '0b4'."""
    if value is None or not (value.isascii() and value.isdigit()):
        return None
    number = int(value)
    return number if number <= MAX_VERSION else None


class UserAgentClassifier:
    """Resolves browser, OS and device facets with ua-parser's rule cascade.

    Each category takes the first matching rule in its own list. Results are
    memoized per exact user-agent string for the lifetime of the classifier.
    """

    def __init__(self, ruleset: Matchers, cache: FacetCache[str, UserAgentFacets] | None = None) -> None:
        self.resolver = Resolver(ruleset)
        self.cache: FacetCache[str, UserAgentFacets] = cache if cache is not None else FacetCache("user_agent")

    def classify(self, user_agent: str | None) -> UserAgentFacets:
        if not user_agent:
            return UNKNOWN_AGENT
        return self.cache.get_or_compute(user_agent, self._classify)

    def _classify(self, user_agent: str) -> UserAgentFacets:
        result = self.resolver(user_agent, Domain.ALL)
        facets: dict[str, object] = {}

        if browser := result.user_agent:
            facets.update(
                browser=browser.family,
                browser_major=_version(browser.major),
                browser_minor=_version(browser.minor),
                browser_patch=_version(browser.patch),
                browser_patch_minor=_version(browser.patch_minor),
            )

        if os := result.os:
            facets.update(
                os=os.family,
                os_major=_version(os.major),
                os_minor=_version(os.minor),
                os_patch=_version(os.patch),
                os_patch_minor=_version(os.patch_minor),
            )

        if device := result.device:
            facets.update(device=device.family, brand=device.brand, model=device.model)

        # The "Mozlila" typo is a known scanner signature.
        if "Mozlila" in user_agent:
            facets["device"] = "Spider"

        if not facets:
            logger.debug("No user-agent rule matched %r", user_agent)
            return UNKNOWN_AGENT
        return UserAgentFacets(**facets)
