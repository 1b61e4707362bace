import json

import pytest

from hero_backend.catalog import Catalog, Listing
from hero_backend.config import BASE_DIR
from hero_backend.intent import MatchTables

SIGNATURE = "Equipe Hero Imóveis\nCorretor de Imóveis | CRECI-RJ 000000"
COMPANY = "Hero Imóveis"
PROMPTS_DIR = BASE_DIR / "prompts"


def make_listing(name, neighborhood, types, delivery="", description=""):
    return Listing(
        name=name,
        neighborhood=neighborhood,
        property_types=frozenset(types),
        delivery_status=delivery,
        description=description,
    )


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeGemini:
    """Stands in for GeminiClient; records calls and replays a canned result."""

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def generate_content(self, contents, model=None, system_instruction=None, timeout=None, **kwargs):
        self.calls.append(
            {"contents": contents, "system_instruction": system_instruction, "timeout": timeout}
        )
        if self.error is not None:
            raise self.error
        if isinstance(self.result, dict):
            return json.dumps(self.result, ensure_ascii=False)
        return self.result


@pytest.fixture
def catalog():
    return Catalog(
        listings=(
            make_listing("Marem", "Icaraí", {"2q", "3q"}, "Dezembro/2026", "Lazer completo perto da praia."),
            make_listing("Horizonte", "Icaraí", {"3q", "4q"}, "Pronto para morar"),
            make_listing("Pulse", "Santa Rosa", {"studio", "1q"}, "Março/2027"),
            make_listing("Vila Lagoa", "Piratininga", {"3q", "4q"}),
            make_listing("Terras do Sol", "Região Oceânica", {"lote"}, "2026"),
            make_listing("Loft Centro", "Centro", {"loft", "studio"}, "Março/2026"),
            make_listing("Brisa", "Ipê", {"2q"}, "2028"),
        )
    )


@pytest.fixture
def tables():
    return MatchTables.default()
