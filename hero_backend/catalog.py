"""Catalog loader for the real-estate listings served by the draft assistant.

This module loads empreendimentos.json into immutable Listing objects once per
process. Request handling only ever reads the resulting Catalog.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .utils import normalize_text

logger = logging.getLogger("hero.catalog")

NAME_KEYS = ["nome", "name", "empreendimento"]
NEIGHBORHOOD_KEYS = ["bairro", "neighborhood", "regiao"]
TYPE_KEYS = ["tipologia", "tipologias", "property_types", "tipos"]
DELIVERY_KEYS = ["entrega", "delivery_status", "previsao de entrega"]
DESC_KEYS = ["descricao", "description", "detalhes"]

PROPERTY_TYPE_CODES = ("studio", "loft", "1q", "2q", "3q", "4q", "lote")
DEFAULT_DELIVERY = "a confirmar"
DELIVERY_IN_DESC_RE = re.compile(r"entrega:\s*([^|\n]+)", re.IGNORECASE)
PLACEHOLDER_RE = re.compile(r"^[\s—–-]*$")
DELIVERY_PLACEHOLDER_RE = re.compile(r"Entrega:\s*[—–-]+", re.IGNORECASE)
BEDROOM_RE = re.compile(r"(?<![0-9])([1-4])(?![0-9])")


class CatalogLoadError(RuntimeError):
    """Raised when the catalog file cannot be read or holds no usable listing."""


@dataclass(frozen=True)
class Listing:
    """One real-estate development as exposed by the catalog."""
    name: str
    neighborhood: str
    property_types: FrozenSet[str] = frozenset()
    delivery_status: str = ""
    description: str = ""

    def has_any_type(self, codes: Iterable[str]) -> bool:
        return not self.property_types.isdisjoint(codes)


@dataclass(frozen=True)
class CatalogMeta:
    """Metadata describing the catalog file version for logging."""
    file_name: str
    updated_at: str
    sha256: str


@dataclass(frozen=True)
class Catalog:
    """Immutable, ordered listing collection shared by every request."""
    listings: Tuple[Listing, ...]
    meta: Optional[CatalogMeta] = None
    neighborhoods: Tuple[str, ...] = field(init=False)

    def __post_init__(self) -> None:
        # Distinct normalized neighborhoods in catalog order.
        seen: Dict[str, None] = {}
        for listing in self.listings:
            key = normalize_text(listing.neighborhood)
            if key:
                seen.setdefault(key, None)
        object.__setattr__(self, "neighborhoods", tuple(seen))

    def __len__(self) -> int:
        return len(self.listings)

    def __iter__(self):
        return iter(self.listings)

    def display_neighborhood(self, normalized: str) -> str:
        """Return the catalog spelling for a normalized neighborhood key."""
        for listing in self.listings:
            if normalize_text(listing.neighborhood) == normalized:
                return listing.neighborhood
        return normalized


class CatalogLoader:
    def __init__(self, path: Path) -> None:
        """Store the catalog file location; load() does the work."""
        self._path = path

    def load(self) -> Catalog:
        """Purpose: Load and normalize listing data from the catalog file.
        Inputs/Outputs: No inputs; returns a Catalog with metadata.
        Side Effects / State: Reads file contents and computes hash/mtime.
        Dependencies: Uses json, hashlib, and listing_from_record.
        Failure Modes: Missing file, invalid JSON, or zero usable records raise
            CatalogLoadError; the caller must refuse to serve.
        If Removed: The assistant has nothing to ground replies on.
        Testing Notes: Load a temp JSON file and check codes/delivery defaults.
        """
        # Read bytes for hashing and parse JSON into listings.
        try:
            raw_bytes = self._path.read_bytes()
        except OSError as exc:
            raise CatalogLoadError(f"cannot read catalog {self._path}: {exc}") from exc
        try:
            data = json.loads(raw_bytes.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise CatalogLoadError(f"invalid catalog JSON in {self._path}: {exc}") from exc

        records: List[Any]
        if isinstance(data, dict):
            records = data.get("items", [])
        elif isinstance(data, list):
            records = data
        else:
            records = []

        listings: List[Listing] = []
        for record in records:
            if not isinstance(record, dict):
                continue
            listing = listing_from_record(record)
            if listing is None:
                logger.warning("catalog record skipped keys=%s", sorted(record.keys()))
                continue
            listings.append(listing)

        if not listings:
            raise CatalogLoadError(f"catalog {self._path} has no usable listings")

        meta = CatalogMeta(
            file_name=self._path.name,
            updated_at=datetime.fromtimestamp(self._path.stat().st_mtime).isoformat(),
            sha256=hashlib.sha256(raw_bytes).hexdigest(),
        )
        logger.info("catalog loaded file=%s listings=%d sha256=%s", meta.file_name, len(listings), meta.sha256[:12])
        return Catalog(listings=tuple(listings), meta=meta)


def listing_from_record(record: Dict[str, Any]) -> Optional[Listing]:
    """Purpose: Map one raw catalog record to a Listing.
    Inputs/Outputs: Input is a raw dict; output is a Listing or None when the
        record has no name or neighborhood.
    Side Effects / State: None.
    Dependencies: Uses _get_first_value, normalize_property_types, resolve_delivery.
    Failure Modes: Unknown typology labels are kept in normalized form.
    If Removed: Portuguese and English catalog exports cannot share one loader.
    Testing Notes: Feed "2 quartos" and "Entrega: —" records.
    """
    name = str(_get_first_value(record, NAME_KEYS) or "").strip()
    neighborhood = str(_get_first_value(record, NEIGHBORHOOD_KEYS) or "").strip()
    if not name or not neighborhood:
        return None
    raw_types = _get_first_value(record, TYPE_KEYS)
    description = str(_get_first_value(record, DESC_KEYS) or "").strip()
    description = DELIVERY_PLACEHOLDER_RE.sub(f"Entrega: {DEFAULT_DELIVERY}", description)
    delivery = _get_first_value(record, DELIVERY_KEYS)
    return Listing(
        name=name,
        neighborhood=neighborhood,
        property_types=normalize_property_types(raw_types),
        delivery_status=resolve_delivery(delivery, description),
        description=description,
    )


def normalize_property_type(label: str) -> str:
    """Purpose: Canonicalize a typology label such as "2 Quartos" to a code.
    Inputs/Outputs: Input is a raw label; output is one of PROPERTY_TYPE_CODES or
        the normalized label when no code applies.
    Side Effects / State: None.
    Dependencies: Uses normalize_text and BEDROOM_RE.
    Failure Modes: None; unknown labels pass through normalized.
    If Removed: Catalog types stop lining up with the codes extracted from messages.
    Testing Notes: "Studio", "3 quartos", "4Q", "Lotes" should map to codes.
    """
    value = normalize_text(label)
    if value in PROPERTY_TYPE_CODES:
        return value
    if "studio" in value:
        return "studio"
    if "loft" in value:
        return "loft"
    if "lote" in value or "terreno" in value:
        return "lote"
    compact = value.replace(" ", "")
    if re.fullmatch(r"[1-4]q", compact):
        return compact
    if "quarto" in value or "dorm" in value:
        match = BEDROOM_RE.search(value)
        if match:
            return f"{match.group(1)}q"
    return value


def normalize_property_types(raw: Any) -> FrozenSet[str]:
    """Normalize a list (or a comma separated string) of typology labels."""
    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        labels = re.split(r"[,;/]", raw)
    elif isinstance(raw, (list, tuple, set, frozenset)):
        labels = [str(item) for item in raw if item is not None]
    else:
        labels = [str(raw)]
    codes = {normalize_property_type(label) for label in labels}
    codes.discard("")
    return frozenset(codes)


def resolve_delivery(value: Any, description: str = "") -> str:
    """Purpose: Produce the descriptive delivery status for a listing.
    Inputs/Outputs: Inputs are the raw delivery field and the description; output
        is a non-empty string.
    Side Effects / State: None.
    Dependencies: Uses DELIVERY_IN_DESC_RE and PLACEHOLDER_RE.
    Failure Modes: None; falls back to DEFAULT_DELIVERY.
    If Removed: Replies would render "Entrega: —" placeholders.
    Testing Notes: Check explicit field, "Entrega: 2026" in description, and "—".
    """
    text = str(value or "").strip()
    if text and not PLACEHOLDER_RE.match(text):
        return text
    match = DELIVERY_IN_DESC_RE.search(description or "")
    if match:
        found = match.group(1).strip()
        if found and not PLACEHOLDER_RE.match(found):
            return found
    return DEFAULT_DELIVERY


def _get_first_value(item: Dict[str, Any], keys: List[str]) -> Optional[Any]:
    """Find the first non-empty field in a dict by normalized key synonyms."""
    normalized_map = {normalize_text(str(k)): k for k in item.keys()}
    for key in keys:
        actual = normalized_map.get(normalize_text(key))
        if actual is not None and _has_value(item.get(actual)):
            return item.get(actual)
    return None


def _has_value(value: Any) -> bool:
    # Treat None, empty strings and empty lists as missing values.
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    if isinstance(value, (list, tuple)) and not value:
        return False
    return True
