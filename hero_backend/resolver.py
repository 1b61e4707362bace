from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Tuple

from .catalog import Catalog, Listing
from .intent import MatchSignals
from .utils import normalize_text

REASON_NAME = "name"
REASON_NEIGHBORHOOD_TYPE = "neighborhood+type"
REASON_NEIGHBORHOOD = "neighborhood"
REASON_TYPE = "type"
REASON_NONE = "none"
REASON_SESSION = "session"

CASCADE_REASONS = (
    REASON_NAME,
    REASON_NEIGHBORHOOD_TYPE,
    REASON_NEIGHBORHOOD,
    REASON_TYPE,
    REASON_NONE,
)


@dataclass(frozen=True)
class ResolutionResult:
    """Candidate listings plus the cascade branch that produced them.

    neighborhoods and property_types echo the signals the branch consumed, so a
    reply can say which requested type was missing from a neighborhood.
    """
    listings: Tuple[Listing, ...] = field(default_factory=tuple)
    reason: str = REASON_NONE
    neighborhoods: FrozenSet[str] = frozenset()
    property_types: FrozenSet[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not self.listings

    @property
    def type_refinement_missed(self) -> bool:
        """True when types were asked for but the neighborhood had none of them."""
        return self.reason == REASON_NEIGHBORHOOD and bool(self.property_types)


def resolve_candidates(signals: MatchSignals, catalog: Catalog) -> ResolutionResult:
    """Purpose: Pick candidate listings through the fixed priority cascade.
    Inputs/Outputs: Inputs are MatchSignals and the Catalog; output is a
        ResolutionResult whose reason names the branch that fired.
    Side Effects / State: None; single pass, no retries.
    Dependencies: Uses Listing.has_any_type; catalog order is preserved.
    Failure Modes: None; no signal yields an empty result with reason "none".
    If Removed: The assistant cannot ground any reply on real listings.
    Testing Notes: Name beats contradicting neighborhood/type; an empty
        neighborhood+type intersection keeps the whole neighborhood.
    """
    # 1. Name matches override every other signal.
    if signals.name_matches:
        return ResolutionResult(
            listings=tuple(signals.name_matches),
            reason=REASON_NAME,
            neighborhoods=signals.neighborhoods,
            property_types=signals.property_types,
        )

    # 2. Neighborhood, refined by type only when the refinement keeps something.
    if signals.neighborhoods:
        in_neighborhood = tuple(
            listing
            for listing in catalog.listings
            if normalize_text(listing.neighborhood) in signals.neighborhoods
        )
        if signals.property_types:
            refined = tuple(listing for listing in in_neighborhood if listing.has_any_type(signals.property_types))
            if refined:
                return ResolutionResult(
                    listings=refined,
                    reason=REASON_NEIGHBORHOOD_TYPE,
                    neighborhoods=signals.neighborhoods,
                    property_types=signals.property_types,
                )
        return ResolutionResult(
            listings=in_neighborhood,
            reason=REASON_NEIGHBORHOOD,
            neighborhoods=signals.neighborhoods,
            property_types=signals.property_types,
        )

    # 3. Type only.
    if signals.property_types:
        return ResolutionResult(
            listings=tuple(listing for listing in catalog.listings if listing.has_any_type(signals.property_types)),
            reason=REASON_TYPE,
            property_types=signals.property_types,
        )

    return ResolutionResult(reason=REASON_NONE)
