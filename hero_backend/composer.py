"""Deterministic reply composition and validation of generated replies.

The composer is the safety net of the draft assistant: every path that cannot
trust a generated reply ends here, either with a templated enumeration of the
candidate listings or with a reason-specific fallback that asks for the
missing signal.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError

from .catalog import DEFAULT_DELIVERY, PROPERTY_TYPE_CODES, Catalog, Listing
from .resolver import (
    REASON_NEIGHBORHOOD_TYPE,
    REASON_NONE,
    REASON_TYPE,
    ResolutionResult,
)
from .utils import safe_json_loads

MAX_LISTINGS = 8
MAX_TYPE_EXAMPLES = 5
MAX_FOLLOWUPS = 3

LISTINGS_INTRO = "Encontrei estas opções reais na nossa base:"
CALL_TO_ACTION = "Quer que eu detalhe alguma delas ou prefere agendar uma visita? 😊"
EMPTY_MESSAGE_REPLY = "Pode me dizer um pouco mais do que você procura? 😊"
NONE_REPLY = (
    "Para te orientar melhor, você pode informar o bairro ou o nome do empreendimento que procura? 😊"
)

LISTING_FOLLOWUPS = [
    "Quero mais detalhes sobre um deles",
    "Pode me enviar o book?",
    "Quero agendar uma visita",
]
FALLBACK_FOLLOWUPS: Dict[str, List[str]] = {
    REASON_NEIGHBORHOOD_TYPE: [
        "Quais tipologias vocês têm nesse bairro?",
        "Tem opções em bairros próximos?",
        "Quero agendar uma conversa",
    ],
    REASON_TYPE: [
        "Quais bairros têm essa tipologia?",
        "Tenho um bairro específico em mente",
        "Quero agendar uma conversa",
    ],
    REASON_NONE: [
        "Quais bairros vocês atendem?",
        "Procuro um apartamento de 2 quartos",
        "Quero falar com um corretor",
    ],
}

TYPE_LABELS = {
    "studio": "studio",
    "loft": "loft",
    "1q": "1 quarto",
    "2q": "2 quartos",
    "3q": "3 quartos",
    "4q": "4 quartos",
    "lote": "lote",
}


@dataclass
class ResponsePayload:
    """Final reply handed back to the HTTP layer."""
    text: str
    followups: List[str] = field(default_factory=list)


class GeneratedReply(BaseModel):
    """Expected shape of the generative collaborator's JSON output."""
    text: str
    followups: List[str] = Field(default_factory=list)


def humanize_list(items: Sequence[str]) -> str:
    """Join items as "a, b e c" (no comma before the last item)."""
    values = [item for item in items if item]
    if not values:
        return ""
    if len(values) == 1:
        return values[0]
    return f"{', '.join(values[:-1])} e {values[-1]}"


def ordered_type_codes(codes: Iterable[str]) -> List[str]:
    # Canonical codes first in table order, then anything else alphabetically.
    code_set = set(codes)
    known = [code for code in PROPERTY_TYPE_CODES if code in code_set]
    extra = sorted(code_set.difference(PROPERTY_TYPE_CODES))
    return known + extra


def humanize_types(codes: Iterable[str]) -> str:
    return humanize_list([TYPE_LABELS.get(code, code) for code in ordered_type_codes(codes)])


def render_listing(index: int, listing: Listing) -> str:
    """Render one listing block for the deterministic reply."""
    lines = [f"{index}. {listing.name}, {listing.neighborhood}"]
    types = humanize_types(listing.property_types)
    if types:
        lines.append(f"Tipologias: {types}")
    lines.append(f"Entrega: {listing.delivery_status or DEFAULT_DELIVERY}")
    if listing.description:
        lines.append(listing.description)
    return "\n".join(lines)


def compose_listing_reply(
    result: ResolutionResult,
    catalog: Optional[Catalog] = None,
    max_listings: int = MAX_LISTINGS,
) -> ResponsePayload:
    """Purpose: Build the deterministic reply enumerating candidate listings.
    Inputs/Outputs: Inputs are a non-empty ResolutionResult, the catalog (for
        neighborhood display names) and the listing cap; output is a ResponsePayload.
    Side Effects / State: None.
    Dependencies: Uses render_listing and humanize_types.
    Failure Modes: None; listings beyond the cap are omitted.
    If Removed: Requests without Gemini, or with an invalid generated reply,
        have nothing to answer with.
    Testing Notes: Check the cap, the "a confirmar" default and the missed-type note.
    """
    intro = LISTINGS_INTRO
    if result.type_refinement_missed:
        # Neighborhood matched but none of its listings has the requested type.
        bairros = humanize_list(_display_neighborhoods(result, catalog))
        intro = (
            f"Não encontrei opções de {humanize_types(result.property_types)} em {bairros} no momento, "
            f"mas tenho estas alternativas no bairro:"
        )
    blocks = [render_listing(index, listing) for index, listing in enumerate(result.listings[:max_listings], start=1)]
    text = "\n\n".join([intro, *blocks, CALL_TO_ACTION])
    return ResponsePayload(text=text, followups=list(LISTING_FOLLOWUPS))


def compose_type_examples(result: ResolutionResult) -> ResponsePayload:
    """Purpose: Reply for a type-only request, naming examples and asking to narrow.
    Inputs/Outputs: Input is a "type" ResolutionResult; output is a ResponsePayload.
    Side Effects / State: None.
    Dependencies: Uses humanize_list and FALLBACK_FOLLOWUPS.
    Failure Modes: None; with no listing of that type the reply says so.
    If Removed: Broad type questions would dump the whole catalog.
    Testing Notes: Verify at most MAX_TYPE_EXAMPLES examples are named.
    """
    types = humanize_types(result.property_types)
    examples = [f"{listing.name} em {listing.neighborhood}" for listing in result.listings[:MAX_TYPE_EXAMPLES]]
    if examples:
        text = (
            f"Tenho algumas opções de {types}, como {humanize_list(examples)}. "
            "Você tem algum bairro ou empreendimento específico em mente? 😊"
        )
    else:
        text = (
            f"No momento não encontrei opções de {types} na nossa base. "
            "Você pode me dizer o bairro ou o nome do empreendimento que procura? 😊"
        )
    return ResponsePayload(text=text, followups=list(FALLBACK_FOLLOWUPS[REASON_TYPE]))


def compose_fallback(result: ResolutionResult, catalog: Optional[Catalog] = None) -> ResponsePayload:
    """Purpose: Select the no-candidate reply for the branch that ran empty.
    Inputs/Outputs: Inputs are an empty ResolutionResult and the catalog; output
        is a ResponsePayload with 2-3 static follow-ups for that branch.
    Side Effects / State: None.
    Dependencies: Uses FALLBACK_FOLLOWUPS; unknown reasons use the "none" reply.
    Failure Modes: None.
    If Removed: Unmatched messages would get no guidance toward a usable signal.
    Testing Notes: One case per reason plus an unknown reason.
    """
    if result.reason == REASON_NEIGHBORHOOD_TYPE:
        bairros = humanize_list(_display_neighborhoods(result, catalog))
        text = (
            f"Não encontrei opções de {humanize_types(result.property_types)} em {bairros} no momento. "
            f"Posso te mostrar o que temos disponível em {bairros}? 😊"
        )
        return ResponsePayload(text=text, followups=list(FALLBACK_FOLLOWUPS[REASON_NEIGHBORHOOD_TYPE]))
    if result.reason == REASON_TYPE:
        return compose_type_examples(result)
    return ResponsePayload(text=NONE_REPLY, followups=list(FALLBACK_FOLLOWUPS[REASON_NONE]))


def compose_reply(
    result: ResolutionResult,
    catalog: Optional[Catalog] = None,
    max_listings: int = MAX_LISTINGS,
) -> ResponsePayload:
    """Route a resolution to the listing reply, the type examples or a fallback."""
    if result.reason == REASON_TYPE:
        return compose_type_examples(result)
    if result.is_empty:
        return compose_fallback(result, catalog)
    return compose_listing_reply(result, catalog, max_listings=max_listings)


def listing_context(listings: Sequence[Listing], max_listings: int = MAX_LISTINGS) -> List[Dict[str, Any]]:
    """Serializable view of the candidates shared with the generative model."""
    return [
        {
            "nome": listing.name,
            "bairro": listing.neighborhood,
            "tipologias": humanize_types(listing.property_types),
            "entrega": listing.delivery_status or DEFAULT_DELIVERY,
            "descricao": listing.description,
        }
        for listing in listings[:max_listings]
    ]


def build_system_instruction(template: str, result: ResolutionResult, max_listings: int = MAX_LISTINGS) -> str:
    """Purpose: Render the generation system instruction for resolved candidates.
    Inputs/Outputs: Inputs are the prompt template, the resolution and the cap;
        output is the instruction text.
    Side Effects / State: None.
    Dependencies: Replaces <<LISTINGS_JSON>> and <<MISSING_TYPES>> in the template.
    Failure Modes: Templates without placeholders are returned unchanged.
    If Removed: The model would be asked to reply without grounding data.
    Testing Notes: Ensure every candidate name appears in the rendered prompt.
    """
    listings_json = json.dumps(listing_context(result.listings, max_listings), ensure_ascii=False, indent=2)
    missing = humanize_types(result.property_types) if result.type_refinement_missed else ""
    return template.replace("<<LISTINGS_JSON>>", listings_json).replace("<<MISSING_TYPES>>", missing or "nenhuma")


def parse_generated_reply(raw: Any) -> Optional[ResponsePayload]:
    """Purpose: Validate the collaborator's untyped output before trusting it.
    Inputs/Outputs: Input is a dict or model text; output is a ResponsePayload or
        None when the shape is not {text, followups}.
    Side Effects / State: None.
    Dependencies: Uses safe_json_loads and the GeneratedReply model. The legacy
        "resposta" key is accepted as text.
    Failure Modes: Plain prose, non-JSON, blank text or wrong types return None.
    If Removed: Malformed model output would reach the customer.
    Testing Notes: Feed fenced JSON, plain text and a list-typed text field.
    """
    data = raw if isinstance(raw, dict) else safe_json_loads(raw if isinstance(raw, str) else "")
    if not data:
        return None
    data = dict(data)
    if "text" not in data and "resposta" in data:
        data["text"] = data.pop("resposta")
    if data.get("followups") is None:
        data["followups"] = []
    try:
        reply = GeneratedReply(**data)
    except (ValidationError, TypeError):
        return None
    text = reply.text.strip()
    if not text:
        return None
    followups = [item.strip() for item in reply.followups if item and item.strip()]
    return ResponsePayload(text=text, followups=followups[:MAX_FOLLOWUPS])


def _display_neighborhoods(result: ResolutionResult, catalog: Optional[Catalog]) -> List[str]:
    names = sorted(result.neighborhoods)
    if catalog is None:
        return names
    return [catalog.display_neighborhood(name) for name in names]
