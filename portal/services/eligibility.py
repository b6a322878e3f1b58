"""
Eligibility Resolver - may PRN X register under college Y?

HOW IT WORKS:
1. Normalize the identifier (trim; PRNs are opaque, no case folding)
2. Ask the range source for ENABLED ranges only
3. A range matches if the PRN equals its single PRN, or falls inside its
   interval (inclusive, numeric when PRN and bounds are all digits), AND
   the range is global or bound to the caller's college
4. First match wins; no match means matched=False

Matching is existential: an enabled global range and an enabled college
range covering the same PRN both satisfy it, and a disabled range never
matches whoever owns it.

The resolver keeps no state between calls. Every resolve() reads the
current registry, so a range edit is visible to the very next request.
"""

import logging
from typing import List, Optional, Protocol, Union

from portal.models.domain import EligibilityVerdict, PRNRange, normalize_prn

logger = logging.getLogger(__name__)


class RangeSource(Protocol):
    """Anything that can list the currently enabled ranges."""

    def enabled_ranges(self) -> List[PRNRange]:
        ...


class EligibilityResolver:

    def __init__(self, ranges: RangeSource):
        self.ranges = ranges

    def resolve(self, identifier: Union[str, int], institution_id: Optional[int] = None) -> EligibilityVerdict:
        prn = normalize_prn(identifier)

        for prn_range in self.ranges.enabled_ranges():
            # disabled ranges never match
            if not prn_range.is_enabled:
                continue
            if not prn_range.applies_to(institution_id):
                continue
            if prn_range.contains(prn):
                return EligibilityVerdict(
                    prn=prn,
                    matched=True,
                    matching_range_id=prn_range.id,
                    scope=prn_range.scope,
                    institution_id=prn_range.institution_id,
                    is_enabled=prn_range.is_enabled,
                )

        logger.debug("PRN %s not covered by any enabled range for college %s", prn, institution_id)
        return EligibilityVerdict(prn=prn, matched=False)
