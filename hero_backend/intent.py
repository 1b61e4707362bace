"""Keyword and alias based signal extraction for customer messages.

Three independent extractions run over the padded, normalized message:
property-type codes, neighborhoods (direct or through the alias table), and
listing names. Lookup tables are built once and injected through MatchTables.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import FrozenSet, List, Mapping, Pattern, Tuple

from .catalog import Catalog, Listing
from .utils import contains_term, normalize_text, pad_text

WORD_EDGE_LEFT = r"(?<![a-z0-9])"
WORD_EDGE_RIGHT = r"(?![a-z0-9])"

BEDROOM_NUMBERS = {
    "1q": "1|um|uma",
    "2q": "2|dois|duas",
    "3q": "3|tres",
    "4q": "4|quatro",
}
BEDROOM_SUFFIX = r"\s*(?:q|qts?|quartos?|dorms?|dormitorios?)"

DEFAULT_NEIGHBORHOOD_ALIASES = {
    "icaria": "icarai",
    "icarahy": "icarai",
    "jardim icarai": "icarai",
    "sao franscisco": "sao francisco",
    "vital brazil": "santa rosa",
    "camboinhas": "regiao oceanica",
    "itaipu": "regiao oceanica",
}

DEFAULT_GENERIC_NAME_TOKENS = frozenset(
    {
        "residencial",
        "residence",
        "edificio",
        "condominio",
        "empreendimento",
        "tower",
        "towers",
        "park",
        "home",
        "house",
        "vila",
        "studio",
        "studios",
        "loft",
        "lofts",
        "lote",
        "lotes",
        "terreno",
        "quarto",
        "quartos",
    }
)


def _word_pattern(body: str) -> Pattern[str]:
    return re.compile(f"{WORD_EDGE_LEFT}(?:{body}){WORD_EDGE_RIGHT}")


def default_property_type_patterns() -> Tuple[Tuple[Pattern[str], str], ...]:
    """Ordered regex -> canonical code table for property types."""
    patterns: List[Tuple[Pattern[str], str]] = [
        (_word_pattern(r"studios?"), "studio"),
        (_word_pattern(r"lofts?"), "loft"),
    ]
    for code, numbers in BEDROOM_NUMBERS.items():
        patterns.append((_word_pattern(f"(?:{numbers}){BEDROOM_SUFFIX}"), code))
    patterns.append((_word_pattern(r"lotes?|terrenos?"), "lote"))
    return tuple(patterns)


@dataclass(frozen=True)
class MatchTables:
    """Immutable lookup tables for extraction, built once at startup."""
    property_type_patterns: Tuple[Tuple[Pattern[str], str], ...]
    neighborhood_aliases: Mapping[str, str]
    generic_name_tokens: FrozenSet[str] = DEFAULT_GENERIC_NAME_TOKENS
    min_name_token_len: int = 4

    @classmethod
    def default(cls) -> "MatchTables":
        return cls.build(DEFAULT_NEIGHBORHOOD_ALIASES)

    @classmethod
    def build(cls, aliases: Mapping[str, str], generic_name_tokens: FrozenSet[str] = DEFAULT_GENERIC_NAME_TOKENS) -> "MatchTables":
        """Normalize alias keys/targets and freeze them with the type table."""
        normalized = {
            normalize_text(alias): normalize_text(target)
            for alias, target in aliases.items()
            if normalize_text(alias) and normalize_text(target)
        }
        return cls(
            property_type_patterns=default_property_type_patterns(),
            neighborhood_aliases=MappingProxyType(normalized),
            generic_name_tokens=frozenset(normalize_text(token) for token in generic_name_tokens),
        )


@dataclass(frozen=True)
class MatchSignals:
    """Per-request signals extracted from one message."""
    property_types: FrozenSet[str] = frozenset()
    neighborhoods: FrozenSet[str] = frozenset()
    name_matches: Tuple[Listing, ...] = field(default_factory=tuple)

    @property
    def has_signal(self) -> bool:
        return bool(self.property_types or self.neighborhoods or self.name_matches)


def extract_property_types(padded: str, tables: MatchTables) -> FrozenSet[str]:
    """Purpose: Collect every property-type code mentioned in the message.
    Inputs/Outputs: Input is padded normalized text; output is a set of codes.
    Side Effects / State: None.
    Dependencies: Uses MatchTables.property_type_patterns.
    Failure Modes: None; no match yields an empty set.
    If Removed: Type refinement and the type-only branch disappear.
    Testing Notes: "studio ou 2 quartos" -> {"studio", "2q"}.
    """
    # Patterns are non-exclusive: every hit contributes its code.
    return frozenset(code for pattern, code in tables.property_type_patterns if pattern.search(padded))


def extract_neighborhoods(padded: str, catalog: Catalog, tables: MatchTables) -> FrozenSet[str]:
    """Purpose: Find catalog neighborhoods mentioned directly or through an alias.
    Inputs/Outputs: Inputs are padded normalized text, the catalog and tables;
        output is a set of normalized catalog neighborhoods.
    Side Effects / State: None.
    Dependencies: Uses contains_term for both direct and alias terms.
    Failure Modes: Alias targets absent from the catalog are ignored so a hit
        always maps to at least one listing.
    If Removed: Neighborhood questions fall through to the type or none branch.
    Testing Notes: "icaria" should resolve to "icarai".
    """
    found = set()
    known = set(catalog.neighborhoods)
    for neighborhood in catalog.neighborhoods:
        if contains_term(padded, neighborhood):
            found.add(neighborhood)
    for alias, target in tables.neighborhood_aliases.items():
        if target in known and contains_term(padded, alias):
            found.add(target)
    return frozenset(found)


def listing_name_matches(
    padded: str,
    listing: Listing,
    tables: MatchTables,
    skip_tokens: FrozenSet[str] = frozenset(),
) -> bool:
    """True when the full name, or one distinctive long-enough token of it, is in the text."""
    name = normalize_text(listing.name)
    if not name:
        return False
    if contains_term(padded, name):
        return True
    for token in name.split(" "):
        if len(token) < tables.min_name_token_len:
            continue
        if token in tables.generic_name_tokens or token in skip_tokens:
            continue
        if contains_term(padded, token):
            return True
    return False


def neighborhood_tokens(catalog: Catalog) -> FrozenSet[str]:
    """Words of catalog neighborhoods; inside a listing name they are not distinctive."""
    return frozenset(token for neighborhood in catalog.neighborhoods for token in neighborhood.split(" ") if token)


def extract_name_matches(padded: str, catalog: Catalog, tables: MatchTables) -> Tuple[Listing, ...]:
    # Catalog order is the tie-break for the name branch.
    skip_tokens = neighborhood_tokens(catalog)
    return tuple(
        listing for listing in catalog.listings if listing_name_matches(padded, listing, tables, skip_tokens)
    )


def extract_signals(message: str, catalog: Catalog, tables: MatchTables) -> MatchSignals:
    """Purpose: Derive all three match signal sets from a raw customer message.
    Inputs/Outputs: Inputs are the raw message, catalog and tables; output is
        MatchSignals.
    Side Effects / State: None; total over any string input.
    Dependencies: Uses normalize_text, pad_text and the three extractors.
    Failure Modes: None; empty text yields empty signals.
    If Removed: The resolver has nothing to cascade over.
    Testing Notes: Check each signal independently and combined.
    """
    padded = pad_text(normalize_text(message))
    return MatchSignals(
        property_types=extract_property_types(padded, tables),
        neighborhoods=extract_neighborhoods(padded, catalog, tables),
        name_matches=extract_name_matches(padded, catalog, tables),
    )
